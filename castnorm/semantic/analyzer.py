"""
castnorm 类型分析器
====================
使用访问者模式遍历 AST，完成：
  1. 符号表构建（type 别名、fn 定义、let 绑定、形参）
  2. 类型推导与类型检查
  3. 作用域分析（let 遮蔽、块作用域）
  4. 返回值检查

设计原则：
  - 遇到错误后继续分析（使用 ErrorType 作为错误恢复类型）
  - 所有错误写入 DiagnosticBag，不抛异常
  - 分析完成后，每个表达式节点的 .ty 属性被填写，
    改写引擎通过 resolved_type() 读取

字面量推导：
  无后缀的整数 / 浮点字面量默认为 i32 / f64；
  在 let 初始化、return、函数实参、二元运算的另一侧已知时，
  采用期望的同类数值类型（整数只采用整数类型，浮点只采用浮点类型）。
"""

from __future__ import annotations
import logging
from typing import Iterable, Optional

from castnorm.error import DiagnosticBag
from .type import (
    RType, IntType, FloatType, NamedType, PointerType, RefType, FnPtrType,
    ArrayType, SliceType, ErrorType,
    BOOL, CHAR, UNIT, USIZE, ERROR_T,
    BUILTIN_TYPES, INT_TYPES, FLOAT_TYPES, DEFAULT_INT, DEFAULT_FLOAT,
    is_integer, is_float, is_numeric, is_error, int_bounds,
    can_assign, is_castable, resolve_binary_op,
)
from .symbol import Symbol, SymbolKind, SymbolTable

from ..tree.transformer import (
    ASTNode, TranslationUnit, FnDef, TypeAlias, TypeNode,
    Block, LetStmt, ExprStmt, ReturnStmt,
    Identifier, IntLiteral, FloatLiteral, BoolLiteral, CharLiteral,
    Neg, UnaryOp, AddrOf, BinaryOp, CastExpr,
    FuncCall, MethodCall, IndexExpr,
)

_log = logging.getLogger(__name__)


def resolved_type(node: ASTNode) -> RType:
    """
    类型查询接口：返回分析器为节点填写的类型。
    未分析（或分析失败）的节点返回 ErrorType。
    """
    ty = getattr(node, 'ty', None)
    return ERROR_T if ty is None else ty


def _is_unsuffixed_literal(expr) -> bool:
    """无后缀字面量（或其取负），类型可由上下文决定"""
    if isinstance(expr, Neg):
        expr = expr.operand
    return isinstance(expr, (IntLiteral, FloatLiteral)) and not expr.suffix


class TypeAnalyzer:
    """
    castnorm 类型分析器。

    用法：
        analyzer = TypeAnalyzer()
        diags = analyzer.analyze(ast_root)
        if diags.has_errors:
            print(diags.report())
    """

    def __init__(self, opaque_types: Iterable[str] = ()):
        """
        Args:
            opaque_types: 额外登记的不透明类型名（struct 等），
                          引擎把它们一律归为 Other
        """
        self.diag  = DiagnosticBag()
        self.table = SymbolTable()

        # 分析器状态
        self._curr_ret: Optional[RType] = None     # 当前函数的返回类型
        self._curr_func_name: str = ''

        # 注册内置类型
        for name, rtype in BUILTIN_TYPES.items():
            self.table.define(Symbol(name, rtype, SymbolKind.TYPE))
        for name in opaque_types:
            self.table.define(Symbol(name, NamedType(name), SymbolKind.TYPE))

    # ══════════════════════════════════════════════════════════════════════
    # 入口
    # ══════════════════════════════════════════════════════════════════════

    def analyze(self, root: TranslationUnit) -> DiagnosticBag:
        """
        分析整个翻译单元，返回诊断信息袋。
        分析后每个表达式节点的 .ty 会被填写。
        """
        self._visit(root)
        _log.debug("类型分析完成：%d 个顶层项，%d 条诊断",
                   len(root.items), len(self.diag))
        return self.diag

    # ══════════════════════════════════════════════════════════════════════
    # 分发器
    # ══════════════════════════════════════════════════════════════════════

    def _visit(self, node: ASTNode) -> RType:
        """
        分发到对应的 _visit_* 方法。
        返回节点的类型（对表达式有意义）。
        """
        if node is None:
            return UNIT
        method = '_visit_' + type(node).__name__
        handler = getattr(self, method, self._visit_default)
        result = handler(node)
        return result if result is not None else UNIT

    def _visit_default(self, node: ASTNode):
        self.diag.error(f"类型分析不支持节点 '{type(node).__name__}'", node)
        node.ty = ERROR_T
        return ERROR_T

    def _visit_expected(self, expr, expected: Optional[RType]) -> RType:
        """带期望类型访问表达式：无后缀字面量在此采用期望类型"""
        if expected is not None and _is_unsuffixed_literal(expr):
            lit = expr.operand if isinstance(expr, Neg) else expr
            if ((isinstance(lit, IntLiteral) and is_integer(expected)) or
                    (isinstance(lit, FloatLiteral) and is_float(expected))):
                if isinstance(expr, Neg):
                    return self._visit_Neg(expr, literal_type=expected)
                return self._type_literal(lit, expected)
        return self._visit(expr)

    # ══════════════════════════════════════════════════════════════════════
    # 顶层 & 声明
    # ══════════════════════════════════════════════════════════════════════

    def _visit_TranslationUnit(self, node: TranslationUnit):
        # 第一遍：type 别名（按出现顺序）
        for item in node.items:
            if isinstance(item, TypeAlias):
                self._register_alias(item)

        # 第二遍：函数签名（允许先调用后定义）
        for item in node.items:
            if isinstance(item, FnDef):
                self._register_func(item)

        # 第三遍：函数体与顶层语句
        for item in node.items:
            if isinstance(item, TypeAlias):
                continue
            self._visit(item)

    def _visit_TypeAlias(self, node: TypeAlias):
        pass   # 第一遍已处理

    def _register_alias(self, node: TypeAlias):
        underlying = self._resolve_type_spec(node.type_spec)
        sym = Symbol(node.name, underlying, SymbolKind.TYPE, node=node)
        if not self.table.define(sym):
            self.diag.error(f"类型 '{node.name}' 重复定义", node)

    def _register_func(self, node: FnDef):
        param_types = [self._resolve_type_spec(p.type_spec) for p in node.params]
        ret_type = (self._resolve_type_spec(node.ret_type)
                    if node.ret_type is not None else UNIT)
        sym = Symbol(node.name, FnPtrType(param_types, ret_type),
                     SymbolKind.FUNC, node=node)
        if not self.table.define(sym):
            self.diag.error(f"'{node.name}' 重复定义", node)
            return
        node.symbol = sym

    def _visit_FnDef(self, node: FnDef):
        func_sym = node.symbol
        if func_sym is None:
            return   # 重复定义，签名登记时已报错

        self._curr_ret       = func_sym.rtype.return_type
        self._curr_func_name = node.name

        self.table.enter_function(node.name)
        for param, ptype in zip(node.params, func_sym.rtype.param_types):
            psym = Symbol(param.name, ptype, SymbolKind.PARAM, node=param)
            param.ty = ptype
            if not self.table.define(psym):
                self.diag.error(f"形参 '{param.name}' 重复定义", param)

        self._visit_Block(node.body)

        self.table.leave_scope()
        self._curr_ret       = None
        self._curr_func_name = ''

    # ══════════════════════════════════════════════════════════════════════
    # 类型语法 → RType
    # ══════════════════════════════════════════════════════════════════════

    def _resolve_type_spec(self, spec: TypeNode) -> RType:
        """把类型语法解析为 RType；别名被展开，生命周期在解析时已丢弃"""
        if spec is None:
            return UNIT
        kind = spec.kind
        if kind == 'named':
            sym = self.table.lookup(spec.name)
            if sym is None or sym.kind != SymbolKind.TYPE:
                self.diag.error(f"未知类型 '{spec.name}'", spec)
                rtype = ERROR_T
            else:
                rtype = sym.rtype
        elif kind == 'unit':
            rtype = UNIT
        elif kind == 'ptr':
            rtype = PointerType(self._resolve_type_spec(spec.inner), spec.mutable)
        elif kind == 'ref':
            rtype = RefType(self._resolve_type_spec(spec.inner), spec.mutable)
        elif kind == 'array':
            rtype = ArrayType(self._resolve_type_spec(spec.inner), spec.size)
        elif kind == 'slice':
            rtype = SliceType(self._resolve_type_spec(spec.inner))
        elif kind == 'fn':
            params = [self._resolve_type_spec(p) for p in spec.params]
            ret = self._resolve_type_spec(spec.inner) if spec.inner is not None else UNIT
            rtype = FnPtrType(params, ret)
        else:
            self.diag.error(f"无法识别的类型语法 '{kind}'", spec)
            rtype = ERROR_T
        spec.ty = rtype
        return rtype

    # ══════════════════════════════════════════════════════════════════════
    # 语句
    # ══════════════════════════════════════════════════════════════════════

    def _visit_Block(self, node: Block):
        self.table.enter_block()
        for stmt in node.stmts:
            self._visit(stmt)
        self.table.leave_scope()

    def _visit_LetStmt(self, node: LetStmt):
        declared = (self._resolve_type_spec(node.type_spec)
                    if node.type_spec is not None else None)

        init_type = None
        if node.init is not None:
            init_type = self._visit_expected(node.init, declared)
            if declared is not None and not can_assign(declared, init_type):
                self.diag.error(
                    f"变量 '{node.name}' 的初始值类型 '{init_type}' "
                    f"无法赋值给 '{declared}'", node.init)

        if declared is not None:
            rtype = declared
        elif init_type is not None:
            rtype = init_type
        else:
            self.diag.error(f"变量 '{node.name}' 缺少类型标注，无法推导类型", node)
            rtype = ERROR_T

        # let 允许遮蔽同名绑定
        sym = Symbol(node.name, rtype, SymbolKind.VAR, mutable=node.mutable, node=node)
        self.table.define(sym, shadow=True)
        node.ty = rtype

    def _visit_ExprStmt(self, node: ExprStmt):
        if node.expr is not None:
            self._visit(node.expr)

    def _visit_ReturnStmt(self, node: ReturnStmt):
        if self._curr_ret is None:
            self.diag.error("return 语句只能出现在函数内部", node)
            if node.value is not None:
                self._visit(node.value)
            return

        expected = self._curr_ret
        if node.value is not None:
            actual = self._visit_expected(node.value, expected)
            if not can_assign(expected, actual):
                self.diag.error(
                    f"函数 '{self._curr_func_name}' 期望返回 '{expected}'，"
                    f"实际返回 '{actual}'", node.value)
        elif expected != UNIT and not is_error(expected):
            self.diag.error(
                f"函数 '{self._curr_func_name}' 需要返回 '{expected}' 类型的值", node)

    # ══════════════════════════════════════════════════════════════════════
    # 表达式：字面量与名字
    # ══════════════════════════════════════════════════════════════════════

    def _type_literal(self, node, rtype: RType, negative: bool = False) -> RType:
        if isinstance(node, IntLiteral) and isinstance(rtype, IntType) and not rtype.is_size:
            value = -node.value if negative else node.value
            lo, hi = int_bounds(rtype.bits, rtype.signed)
            if not lo <= value <= hi:
                self.diag.warning(
                    f"字面量 {'-' if negative else ''}{node.text} 超出类型 '{rtype}' 的范围",
                    node, hint=f"'{rtype}' 的范围是 {lo}..={hi}")
        node.ty = rtype
        return rtype

    def _visit_IntLiteral(self, node: IntLiteral) -> RType:
        rtype = INT_TYPES[node.suffix] if node.suffix else DEFAULT_INT
        return self._type_literal(node, rtype)

    def _visit_FloatLiteral(self, node: FloatLiteral) -> RType:
        rtype = FLOAT_TYPES[node.suffix] if node.suffix else DEFAULT_FLOAT
        return self._type_literal(node, rtype)

    def _visit_BoolLiteral(self, node: BoolLiteral) -> RType:
        node.ty = BOOL
        return BOOL

    def _visit_CharLiteral(self, node: CharLiteral) -> RType:
        node.ty = CHAR
        return CHAR

    def _visit_Identifier(self, node: Identifier) -> RType:
        sym = self.table.lookup(node.name)
        if sym is None:
            self.diag.error(f"未定义的名字 '{node.name}'", node)
            node.ty = ERROR_T
            return ERROR_T
        if sym.kind == SymbolKind.TYPE:
            self.diag.error(f"'{node.name}' 是类型，不能作为值使用", node)
            node.ty = ERROR_T
            return ERROR_T
        node.ty    = sym.rtype
        node.symbol = sym
        return sym.rtype

    # ══════════════════════════════════════════════════════════════════════
    # 表达式：运算符
    # ══════════════════════════════════════════════════════════════════════

    def _visit_Neg(self, node: Neg, literal_type: Optional[RType] = None) -> RType:
        operand = node.operand
        if isinstance(operand, (IntLiteral, FloatLiteral)):
            if literal_type is None:
                if isinstance(operand, IntLiteral):
                    literal_type = INT_TYPES[operand.suffix] if operand.suffix else DEFAULT_INT
                else:
                    literal_type = FLOAT_TYPES[operand.suffix] if operand.suffix else DEFAULT_FLOAT
            operand_type = self._type_literal(operand, literal_type, negative=True)
        else:
            operand_type = self._visit(operand)

        if is_error(operand_type):
            node.ty = ERROR_T
            return ERROR_T
        if not is_numeric(operand_type) or (is_integer(operand_type) and not operand_type.signed):
            self.diag.error(
                f"一元运算符 '-' 要求有符号数值类型，实际为 '{operand_type}'", operand)
            node.ty = ERROR_T
            return ERROR_T
        node.ty = operand_type
        return operand_type

    def _visit_UnaryOp(self, node: UnaryOp) -> RType:
        operand_type = self._visit(node.operand)
        op = node.op

        if isinstance(operand_type, ErrorType):
            node.ty = ERROR_T
            return ERROR_T

        if op == '!':
            if operand_type != BOOL and not is_integer(operand_type):
                self.diag.error(
                    f"'!' 要求 bool 或整数类型，实际为 '{operand_type}'", node.operand)
                node.ty = ERROR_T
                return ERROR_T
            node.ty = operand_type
            return operand_type

        if op == '*':
            if not isinstance(operand_type, (RefType, PointerType)):
                self.diag.error(
                    f"类型 '{operand_type}' 不能解引用", node.operand)
                node.ty = ERROR_T
                return ERROR_T
            node.ty = operand_type.pointee
            return operand_type.pointee

        self.diag.error(f"未知一元运算符 '{op}'", node)
        node.ty = ERROR_T
        return ERROR_T

    def _visit_AddrOf(self, node: AddrOf) -> RType:
        operand_type = self._visit(node.operand)
        if is_error(operand_type):
            node.ty = ERROR_T
            return ERROR_T
        rtype = RefType(operand_type, node.mutable)
        node.ty = rtype
        return rtype

    def _visit_BinaryOp(self, node: BinaryOp) -> RType:
        # 一侧是无后缀字面量时，先分析另一侧，再让字面量采用它的类型
        if _is_unsuffixed_literal(node.left) and not _is_unsuffixed_literal(node.right):
            rtype = self._visit(node.right)
            ltype = self._visit_expected(node.left, self._literal_hint(node.op, rtype))
        else:
            ltype = self._visit(node.left)
            rtype = self._visit_expected(node.right, self._literal_hint(node.op, ltype))

        result = resolve_binary_op(node.op, ltype, rtype)
        if result is None:
            self.diag.error(
                f"运算符 '{node.op}' 不支持操作数类型 '{ltype}' 和 '{rtype}'", node)
            result = ERROR_T
        node.ty = result
        return result

    @staticmethod
    def _literal_hint(op: str, other: RType) -> Optional[RType]:
        # 移位的右操作数与左侧类型无关
        if op in ('<<', '>>', '&&', '||'):
            return None
        return other if is_numeric(other) else None

    def _visit_CastExpr(self, node: CastExpr) -> RType:
        src_type    = self._visit(node.expr)
        target_type = self._resolve_type_spec(node.target_type)

        if not is_castable(src_type, target_type):
            self.diag.warning(
                f"强制类型转换 '{src_type}' → '{target_type}' 不是合法的原始类型转换", node)

        node.ty = target_type
        return target_type

    # ══════════════════════════════════════════════════════════════════════
    # 表达式：后缀
    # ══════════════════════════════════════════════════════════════════════

    def _visit_FuncCall(self, node: FuncCall) -> RType:
        callee_type = self._visit(node.callee)

        if isinstance(callee_type, ErrorType):
            for arg in node.args:
                self._visit(arg)
            node.ty = ERROR_T
            return ERROR_T

        if not isinstance(callee_type, FnPtrType):
            for arg in node.args:
                self._visit(arg)
            self.diag.error(
                f"类型 '{callee_type}' 不可调用", node.callee)
            node.ty = ERROR_T
            return ERROR_T

        expected_params = callee_type.param_types
        if len(node.args) != len(expected_params):
            for arg in node.args:
                self._visit(arg)
            self.diag.error(
                f"函数调用参数数量错误：期望 {len(expected_params)} 个，"
                f"实际传入 {len(node.args)} 个", node)
        else:
            for i, (arg, expected) in enumerate(zip(node.args, expected_params)):
                actual = self._visit_expected(arg, expected)
                if not can_assign(expected, actual):
                    self.diag.error(
                        f"第 {i+1} 个参数类型不匹配：期望 '{expected}'，实际 '{actual}'",
                        arg)

        node.ty = callee_type.return_type
        return callee_type.return_type

    @staticmethod
    def _sequence_of(rtype: RType):
        """
        穿过引用找到数组 / 切片，返回 (元素类型, 是否可变)。
        不是序列时返回 (None, False)。
        """
        mutable = True
        while isinstance(rtype, RefType):
            mutable = mutable and rtype.mutable
            rtype = rtype.pointee
        if isinstance(rtype, (ArrayType, SliceType)):
            return rtype.element_type, mutable
        return None, False

    def _visit_MethodCall(self, node: MethodCall) -> RType:
        recv_type = self._visit(node.receiver)
        for arg in node.args:
            self._visit(arg)

        if isinstance(recv_type, ErrorType):
            node.ty = ERROR_T
            return ERROR_T

        elem, mutable = self._sequence_of(recv_type)
        if elem is None:
            self.diag.error(
                f"类型 '{recv_type}' 没有方法 '{node.method}'", node)
            node.ty = ERROR_T
            return ERROR_T

        if node.args:
            self.diag.error(f"方法 '{node.method}' 不接受参数", node)

        if node.method == 'len':
            result = USIZE
        elif node.method == 'as_ptr':
            result = PointerType(elem, mutable=False)
        elif node.method == 'as_mut_ptr':
            if not mutable:
                self.diag.error(
                    f"'as_mut_ptr' 需要可变的接收者，实际为 '{recv_type}'", node.receiver)
            result = PointerType(elem, mutable=True)
        else:
            self.diag.error(
                f"类型 '{recv_type}' 没有方法 '{node.method}'", node)
            result = ERROR_T

        node.ty = result
        return result

    def _visit_IndexExpr(self, node: IndexExpr) -> RType:
        base_type  = self._visit(node.base)
        index_type = self._visit_expected(node.index, USIZE)

        if not is_error(index_type) and index_type != USIZE:
            self.diag.error(
                f"下标必须是 usize 类型，实际为 '{index_type}'", node.index)

        if isinstance(base_type, ErrorType):
            node.ty = ERROR_T
            return ERROR_T

        elem, _ = self._sequence_of(base_type)
        if elem is None:
            self.diag.error(
                f"下标运算符 '[]' 只能用于数组或切片，实际为 '{base_type}'", node.base)
            node.ty = ERROR_T
            return ERROR_T
        node.ty = elem
        return elem
