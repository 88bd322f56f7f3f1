"""
castnorm AST Transformer
=========================
将 Lark 生成的 CST（具体语法树）转换为更易于分析的 AST 节点树。

使用 Lark 的 Transformer 机制：每个方法对应 grammar 中一条规则
（或 `-> alias`），接收已转换的子节点，返回 AST 节点对象。

使用方式：
    transformer = CastTransformer()
    ast = transformer.transform(lark_tree)

AST 约定：
  - 表达式节点是值语义的：改写时整棵子树被替换，而不是原地修改
    （见 tree/visitor.py 的 rewrite_expressions）。
  - 括号不保留为节点，打印时按优先级重新补上（见 tree/printer.py）。
"""

import copy
from dataclasses import dataclass, field, fields
from typing import Any, List, Optional

from lark import Transformer, Token, v_args


# ──────────────────────────────────────────────────────────────────────────────
# AST 节点基类
# ──────────────────────────────────────────────────────────────────────────────

class ASTNode:
    """
    所有 AST 节点的公共基类。

    Attributes:
        line, col: 源码位置（由 Transformer 从 meta 填入）
        ty:        类型分析后填写的类型（RType 实例）
        symbol:    类型分析后填写的符号引用（Symbol 实例）
    """
    line: int = -1
    col:  int = -1
    ty = None
    symbol = None

    def _pos(self):
        return f"{self.line}:{self.col}"

    def __repr__(self):
        return f"{self.__class__.__name__}@{self._pos()}"

    def children(self):
        """按字段顺序产出 (字段名, 子节点或子节点列表)"""
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, ASTNode):
                yield f.name, value
            elif isinstance(value, list) and any(isinstance(v, ASTNode) for v in value):
                yield f.name, value

    def replace(self, **changes):
        """
        浅拷贝一个节点并替换若干字段。
        位置和类型注解（line/col/ty/symbol）随拷贝一起保留。
        """
        clone = copy.copy(self)
        for name, value in changes.items():
            setattr(clone, name, value)
        return clone


class Expr(ASTNode):
    """表达式节点的标记基类"""


def _meta_pos(meta) -> tuple[int, int]:
    if meta is None or getattr(meta, 'empty', True):
        return -1, -1
    return getattr(meta, 'line', -1), getattr(meta, 'column', -1)


# ──────────────────────────────────────────────────────────────────────────────
# 顶层 & 声明节点
# ──────────────────────────────────────────────────────────────────────────────

@dataclass
class TranslationUnit(ASTNode):
    """整个翻译单元（一段源码）"""
    items: List[ASTNode] = field(default_factory=list)


@dataclass
class TypeNode(ASTNode):
    """
    类型语法。

    kind 取值：
      'named'  name
      'unit'
      'ptr'    inner, mutable
      'ref'    inner, mutable（生命周期已丢弃）
      'array'  inner, size
      'slice'  inner
      'fn'     params, inner（返回类型，可为 None）
    """
    kind:    str = 'named'
    name:    str = ''
    inner:   Optional['TypeNode'] = None
    mutable: bool = False
    size:    Optional[int] = None
    params:  List['TypeNode'] = field(default_factory=list)


@dataclass
class FnDef(ASTNode):
    name:     str = ''
    params:   List['Param'] = field(default_factory=list)
    ret_type: Optional[TypeNode] = None
    body:     'Block' = None


@dataclass
class Param(ASTNode):
    name:      str = ''
    type_spec: TypeNode = None


@dataclass
class TypeAlias(ASTNode):
    """type Alias = T;"""
    name:      str = ''
    type_spec: TypeNode = None


# ──────────────────────────────────────────────────────────────────────────────
# 语句节点
# ──────────────────────────────────────────────────────────────────────────────

@dataclass
class Block(ASTNode):
    stmts: List[ASTNode] = field(default_factory=list)


@dataclass
class LetStmt(ASTNode):
    name:      str = ''
    type_spec: Optional[TypeNode] = None
    init:      Optional[Expr] = None
    mutable:   bool = False


@dataclass
class ExprStmt(ASTNode):
    expr: Expr = None


@dataclass
class ReturnStmt(ASTNode):
    value: Optional[Expr] = None


# ──────────────────────────────────────────────────────────────────────────────
# 表达式节点
# ──────────────────────────────────────────────────────────────────────────────

@dataclass
class Identifier(Expr):
    name: str = ''

    def __repr__(self):
        return f"Id({self.name})"


INT_SUFFIXES = ('i8', 'i16', 'i32', 'i64', 'i128', 'isize',
                'u8', 'u16', 'u32', 'u64', 'u128', 'usize')
FLOAT_SUFFIXES = ('f32', 'f64')


@dataclass
class IntLiteral(Expr):
    """
    整数字面量。text 不含后缀，可含 0x/0o/0b 前缀与 `_` 分隔符；
    字面量本身总是非负的，负数由 Neg 包裹。
    """
    text:   str = '0'
    suffix: str = ''

    @property
    def value(self) -> int:
        digits = self.text.replace('_', '')
        prefix = digits[:2].lower()
        if prefix == '0x':
            return int(digits[2:], 16)
        if prefix == '0o':
            return int(digits[2:], 8)
        if prefix == '0b':
            return int(digits[2:], 2)
        return int(digits, 10)

    def __repr__(self):
        return f"Int({self.text}{self.suffix})"


@dataclass
class FloatLiteral(Expr):
    """浮点字面量。text 不含后缀（可能是 `1`，此时必须带后缀才是浮点）"""
    text:   str = '0.0'
    suffix: str = ''

    def __repr__(self):
        return f"Float({self.text}{self.suffix})"


@dataclass
class BoolLiteral(Expr):
    value: bool = False


@dataclass
class CharLiteral(Expr):
    raw: str = "' '"   # 含引号的原始文本


@dataclass
class Neg(Expr):
    """一元负号 -e"""
    operand: Expr = None


@dataclass
class UnaryOp(Expr):
    """其余一元运算：'!'（取反）、'*'（解引用）"""
    op:      str = ''
    operand: Expr = None


@dataclass
class AddrOf(Expr):
    """&e / &mut e"""
    operand: Expr = None
    mutable: bool = False


@dataclass
class BinaryOp(Expr):
    op:    str = ''
    left:  Expr = None
    right: Expr = None

    def __repr__(self):
        return f"BinOp({self.op})"


@dataclass
class CastExpr(Expr):
    """e as T"""
    expr:        Expr = None
    target_type: TypeNode = None

    def __repr__(self):
        return f"Cast({self.expr!r} as {self.target_type.name or self.target_type.kind})"


@dataclass
class FuncCall(Expr):
    callee: Expr = None
    args:   List[Expr] = field(default_factory=list)


@dataclass
class MethodCall(Expr):
    """receiver.method(args)"""
    receiver: Expr = None
    method:   str = ''
    args:     List[Expr] = field(default_factory=list)


@dataclass
class IndexExpr(Expr):
    base:  Expr = None
    index: Expr = None


LITERAL_NODES = (IntLiteral, FloatLiteral, BoolLiteral, CharLiteral)


# ──────────────────────────────────────────────────────────────────────────────
# Transformer
# ──────────────────────────────────────────────────────────────────────────────

def _str(tok) -> str:
    """Token → str"""
    return str(tok)


def _is_tok(tok, *types) -> bool:
    return isinstance(tok, Token) and str(tok.type) in types


def _nodes(items, cls=ASTNode) -> list:
    """去掉 None 占位与 Token，只留下 AST 节点"""
    return [i for i in items if isinstance(i, cls)]


def split_suffix(raw: str, suffixes) -> tuple[str, str]:
    """把 `12u8` 拆成 ('12', 'u8')；十六进制数字不会被误当成后缀"""
    for suffix in sorted(suffixes, key=len, reverse=True):
        if raw.endswith(suffix) and len(raw) > len(suffix):
            body = raw[:-len(suffix)]
            # 0x1f32 是十六进制数字，不是 f32 后缀
            if body[:2].lower() == '0x' and suffix in FLOAT_SUFFIXES:
                continue
            return body, suffix
    return raw, ''


class CastTransformer(Transformer):
    """
    将 Lark CST 转换为 castnorm AST。
    规则名与 grammar 中的产生式名 / 别名保持一致。

    使用 @v_args(meta=True) 来获取源码位置
    （需要 Lark(..., propagate_positions=True)）。
    """

    # ── 辅助 ────────────────────────────────────────────────────────────────

    @staticmethod
    def _set_pos(node: ASTNode, meta) -> ASTNode:
        line, col = _meta_pos(meta)
        if line != -1:
            node.line = line
            node.col  = col
        return node

    @staticmethod
    def _tok_pos(node: ASTNode, tok) -> ASTNode:
        node.line = getattr(tok, 'line', -1)
        node.col  = getattr(tok, 'column', -1)
        return node

    # ── 顶层 ────────────────────────────────────────────────────────────────

    def start(self, items):
        return TranslationUnit(items=_nodes(items))

    @v_args(meta=True)
    def fn_def(self, meta, items):
        # NAME params... [type] block
        name = _str(items[0])
        params = _nodes(items[1:], Param)
        types = _nodes(items[1:], TypeNode)
        body = items[-1]
        node = FnDef(name=name, params=params,
                     ret_type=types[0] if types else None, body=body)
        return self._set_pos(node, meta)

    @v_args(meta=True)
    def param(self, meta, items):
        node = Param(name=_str(items[0]), type_spec=items[1])
        return self._set_pos(node, meta)

    @v_args(meta=True)
    def type_alias(self, meta, items):
        node = TypeAlias(name=_str(items[0]), type_spec=items[1])
        return self._set_pos(node, meta)

    # ── 语句 ────────────────────────────────────────────────────────────────

    @v_args(meta=True)
    def block(self, meta, items):
        node = Block(stmts=_nodes(items))
        return self._set_pos(node, meta)

    @v_args(meta=True)
    def let_stmt(self, meta, items):
        # MUT? NAME [type] [expr]
        mutable = bool(items) and _is_tok(items[0], 'MUT')
        rest = items[1:] if mutable else items
        name = _str(rest[0])
        type_spec = rest[1] if len(rest) > 1 else None
        init = rest[2] if len(rest) > 2 else None
        node = LetStmt(name=name, type_spec=type_spec, init=init, mutable=mutable)
        return self._set_pos(node, meta)

    @v_args(meta=True)
    def return_stmt(self, meta, items):
        value = items[0] if items else None
        node = ReturnStmt(value=value)
        return self._set_pos(node, meta)

    @v_args(meta=True)
    def expr_stmt(self, meta, items):
        node = ExprStmt(expr=items[0])
        return self._set_pos(node, meta)

    # ── 类型 ────────────────────────────────────────────────────────────────

    @v_args(meta=True)
    def named_type(self, meta, items):
        node = TypeNode(kind='named', name=_str(items[0]))
        return self._set_pos(node, meta)

    @v_args(meta=True)
    def unit_type(self, meta, items):
        node = TypeNode(kind='unit', name='()')
        return self._set_pos(node, meta)

    @v_args(meta=True)
    def ptr_type(self, meta, items):
        # "*" (CONST | MUT) type；"*" 可能以 STAR Token 的形式保留下来
        mutable = any(_is_tok(i, 'MUT') for i in items)
        node = TypeNode(kind='ptr', inner=items[-1], mutable=mutable)
        return self._set_pos(node, meta)

    @v_args(meta=True)
    def ref_type(self, meta, items):
        # AMP LIFETIME? MUT? type：生命周期在这里被擦除
        mutable = any(_is_tok(i, 'MUT') for i in items)
        node = TypeNode(kind='ref', inner=items[-1], mutable=mutable)
        return self._set_pos(node, meta)

    @v_args(meta=True)
    def array_type(self, meta, items):
        inner = items[0]
        size_tok = items[1]
        digits, _ = split_suffix(_str(size_tok), INT_SUFFIXES)
        size = IntLiteral(text=digits).value
        node = TypeNode(kind='array', inner=inner, size=size)
        return self._set_pos(node, meta)

    @v_args(meta=True)
    def slice_type(self, meta, items):
        node = TypeNode(kind='slice', inner=items[0])
        return self._set_pos(node, meta)

    @v_args(meta=True)
    def fn_type(self, meta, items):
        # [type ("," type)*] ["->" type]：最后一个占位是返回类型
        ret = items[-1] if items else None
        params = _nodes(items[:-1], TypeNode)
        node = TypeNode(kind='fn', params=params, inner=ret)
        return self._set_pos(node, meta)

    # ── 表达式（二元运算：左结合，多个运算符） ───────────────────────────────

    def _fold_binary(self, meta, items):
        if len(items) == 1:
            return items[0]
        result = items[0]
        i = 1
        while i < len(items):
            op  = _str(items[i]); i += 1
            rhs = items[i];       i += 1
            node = BinaryOp(op=op, left=result, right=rhs)
            self._set_pos(node, meta)
            result = node
        return result

    @v_args(meta=True)
    def lor_expr(self, meta, items):
        return self._fold_binary(meta, items)

    @v_args(meta=True)
    def land_expr(self, meta, items):
        return self._fold_binary(meta, items)

    @v_args(meta=True)
    def cmp_expr(self, meta, items):
        return self._fold_binary(meta, items)

    @v_args(meta=True)
    def bitor_expr(self, meta, items):
        return self._fold_binary(meta, items)

    @v_args(meta=True)
    def bitxor_expr(self, meta, items):
        return self._fold_binary(meta, items)

    @v_args(meta=True)
    def bitand_expr(self, meta, items):
        return self._fold_binary(meta, items)

    @v_args(meta=True)
    def shift_expr(self, meta, items):
        return self._fold_binary(meta, items)

    @v_args(meta=True)
    def sum_expr(self, meta, items):
        return self._fold_binary(meta, items)

    @v_args(meta=True)
    def product_expr(self, meta, items):
        return self._fold_binary(meta, items)

    @v_args(meta=True)
    def cast(self, meta, items):
        node = CastExpr(expr=items[0], target_type=items[-1])
        return self._set_pos(node, meta)

    # ── 一元 ────────────────────────────────────────────────────────────────

    @v_args(meta=True)
    def neg(self, meta, items):
        node = Neg(operand=items[-1])
        return self._set_pos(node, meta)

    @v_args(meta=True)
    def not_(self, meta, items):
        node = UnaryOp(op='!', operand=items[-1])
        return self._set_pos(node, meta)

    @v_args(meta=True)
    def deref(self, meta, items):
        node = UnaryOp(op='*', operand=items[-1])
        return self._set_pos(node, meta)

    @v_args(meta=True)
    def addr_of(self, meta, items):
        mutable = any(_is_tok(i, 'MUT') for i in items)
        node = AddrOf(operand=items[-1], mutable=mutable)
        return self._set_pos(node, meta)

    # ── 后缀 ────────────────────────────────────────────────────────────────

    @v_args(meta=True)
    def method_call(self, meta, items):
        receiver, name = items[0], _str(items[1])
        args = items[2] if len(items) > 2 and items[2] is not None else []
        node = MethodCall(receiver=receiver, method=name, args=args)
        return self._set_pos(node, meta)

    @v_args(meta=True)
    def call(self, meta, items):
        args = items[1] if len(items) > 1 and items[1] is not None else []
        node = FuncCall(callee=items[0], args=args)
        return self._set_pos(node, meta)

    @v_args(meta=True)
    def index(self, meta, items):
        node = IndexExpr(base=items[0], index=items[1])
        return self._set_pos(node, meta)

    def args(self, items):
        return _nodes(items)

    # ── 主表达式 ─────────────────────────────────────────────────────────────

    def var(self, items):
        tok = items[0]
        return self._tok_pos(Identifier(name=_str(tok)), tok)

    def int_lit(self, items):
        tok = items[0]
        text, suffix = split_suffix(_str(tok), INT_SUFFIXES)
        return self._tok_pos(IntLiteral(text=text, suffix=suffix), tok)

    def float_lit(self, items):
        tok = items[0]
        text, suffix = split_suffix(_str(tok), FLOAT_SUFFIXES)
        return self._tok_pos(FloatLiteral(text=text, suffix=suffix), tok)

    def char_lit(self, items):
        tok = items[0]
        return self._tok_pos(CharLiteral(raw=_str(tok)), tok)

    @v_args(meta=True)
    def true_lit(self, meta, items):
        return self._set_pos(BoolLiteral(value=True), meta)

    @v_args(meta=True)
    def false_lit(self, meta, items):
        return self._set_pos(BoolLiteral(value=False), meta)
