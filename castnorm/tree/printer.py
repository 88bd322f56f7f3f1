"""
castnorm 源码打印器
====================
把 AST 还原为源码文本。

输出是规范化的：缩进固定 4 空格，括号只在优先级需要时出现，
因此打印结果重新解析后得到同一棵树。注释与原始空白不保留。
"""

from .transformer import (
    TranslationUnit, FnDef, Param, TypeAlias, TypeNode,
    Block, LetStmt, ExprStmt, ReturnStmt,
    Identifier, IntLiteral, FloatLiteral, BoolLiteral, CharLiteral,
    Neg, UnaryOp, AddrOf, BinaryOp, CastExpr,
    FuncCall, MethodCall, IndexExpr,
)


# ──────────────────────────────────────────────────────────────────────────────
# 优先级表（数值越大绑定越紧）
# ──────────────────────────────────────────────────────────────────────────────

PREC_LOR     = 0
PREC_LAND    = 1
PREC_CMP     = 2
PREC_BITOR   = 3
PREC_BITXOR  = 4
PREC_BITAND  = 5
PREC_SHIFT   = 6
PREC_SUM     = 7
PREC_PRODUCT = 8
PREC_CAST    = 9
PREC_UNARY   = 10
PREC_POSTFIX = 11
PREC_PRIMARY = 12

BINARY_PREC = {
    '||': PREC_LOR,
    '&&': PREC_LAND,
    '==': PREC_CMP, '!=': PREC_CMP, '<': PREC_CMP, '>': PREC_CMP,
    '<=': PREC_CMP, '>=': PREC_CMP,
    '|':  PREC_BITOR,
    '^':  PREC_BITXOR,
    '&':  PREC_BITAND,
    '<<': PREC_SHIFT, '>>': PREC_SHIFT,
    '+':  PREC_SUM, '-': PREC_SUM,
    '*':  PREC_PRODUCT, '/': PREC_PRODUCT, '%': PREC_PRODUCT,
}

INDENT = '    '


def precedence(expr) -> int:
    if isinstance(expr, BinaryOp):
        return BINARY_PREC[expr.op]
    if isinstance(expr, CastExpr):
        return PREC_CAST
    if isinstance(expr, (Neg, UnaryOp, AddrOf)):
        return PREC_UNARY
    if isinstance(expr, (FuncCall, MethodCall, IndexExpr)):
        return PREC_POSTFIX
    return PREC_PRIMARY


# ──────────────────────────────────────────────────────────────────────────────
# 类型
# ──────────────────────────────────────────────────────────────────────────────

def format_type(t: TypeNode) -> str:
    if t.kind == 'named':
        return t.name
    if t.kind == 'unit':
        return '()'
    if t.kind == 'ptr':
        return f"*{'mut' if t.mutable else 'const'} {format_type(t.inner)}"
    if t.kind == 'ref':
        return f"&{'mut ' if t.mutable else ''}{format_type(t.inner)}"
    if t.kind == 'array':
        return f"[{format_type(t.inner)}; {t.size}]"
    if t.kind == 'slice':
        return f"[{format_type(t.inner)}]"
    if t.kind == 'fn':
        params = ', '.join(format_type(p) for p in t.params)
        ret = f" -> {format_type(t.inner)}" if t.inner is not None else ''
        return f"fn({params}){ret}"
    raise ValueError(f"未知类型节点 kind={t.kind!r}")


# ──────────────────────────────────────────────────────────────────────────────
# 表达式
# ──────────────────────────────────────────────────────────────────────────────

def format_expr(expr) -> str:
    if isinstance(expr, Identifier):
        return expr.name
    if isinstance(expr, IntLiteral):
        return f"{expr.text}{expr.suffix}"
    if isinstance(expr, FloatLiteral):
        return f"{expr.text}{expr.suffix}"
    if isinstance(expr, BoolLiteral):
        return 'true' if expr.value else 'false'
    if isinstance(expr, CharLiteral):
        return expr.raw

    if isinstance(expr, BinaryOp):
        prec = BINARY_PREC[expr.op]
        # 比较运算不可结合：两侧都必须更紧
        left_min = prec + 1 if prec == PREC_CMP else prec
        left  = _wrap(expr.left, left_min)
        right = _wrap(expr.right, prec + 1)
        return f"{left} {expr.op} {right}"

    if isinstance(expr, CastExpr):
        return f"{_wrap(expr.expr, PREC_CAST)} as {format_type(expr.target_type)}"

    if isinstance(expr, Neg):
        return _prefix('-', expr.operand)
    if isinstance(expr, UnaryOp):
        return _prefix(expr.op, expr.operand)
    if isinstance(expr, AddrOf):
        return _prefix('&mut ' if expr.mutable else '&', expr.operand)

    if isinstance(expr, FuncCall):
        args = ', '.join(format_expr(a) for a in expr.args)
        return f"{_wrap(expr.callee, PREC_POSTFIX)}({args})"
    if isinstance(expr, MethodCall):
        args = ', '.join(format_expr(a) for a in expr.args)
        return f"{_wrap(expr.receiver, PREC_POSTFIX)}.{expr.method}({args})"
    if isinstance(expr, IndexExpr):
        return f"{_wrap(expr.base, PREC_POSTFIX)}[{format_expr(expr.index)}]"

    raise ValueError(f"无法打印表达式节点 {type(expr).__name__}")


def _wrap(expr, min_prec: int) -> str:
    text = format_expr(expr)
    if precedence(expr) < min_prec:
        return f"({text})"
    return text


def _prefix(op: str, operand) -> str:
    text = _wrap(operand, PREC_UNARY)
    # `- -x`、`& &x`：避免被词法分析合并成 `--`、`&&`
    if op in ('-', '&') and text.startswith(op):
        return f"{op} {text}"
    return f"{op}{text}"


# ──────────────────────────────────────────────────────────────────────────────
# 语句 & 顶层
# ──────────────────────────────────────────────────────────────────────────────

def _format_stmt(stmt, depth: int) -> list[str]:
    pad = INDENT * depth
    if isinstance(stmt, LetStmt):
        text = 'let '
        if stmt.mutable:
            text += 'mut '
        text += stmt.name
        if stmt.type_spec is not None:
            text += f": {format_type(stmt.type_spec)}"
        if stmt.init is not None:
            text += f" = {format_expr(stmt.init)}"
        return [f"{pad}{text};"]
    if isinstance(stmt, ReturnStmt):
        if stmt.value is None:
            return [f"{pad}return;"]
        return [f"{pad}return {format_expr(stmt.value)};"]
    if isinstance(stmt, ExprStmt):
        return [f"{pad}{format_expr(stmt.expr)};"]
    if isinstance(stmt, FnDef):
        return _format_fn(stmt, depth)
    if isinstance(stmt, TypeAlias):
        return [f"{pad}type {stmt.name} = {format_type(stmt.type_spec)};"]
    raise ValueError(f"无法打印语句节点 {type(stmt).__name__}")


def _format_param(param: Param) -> str:
    return f"{param.name}: {format_type(param.type_spec)}"


def _format_fn(fn: FnDef, depth: int) -> list[str]:
    pad = INDENT * depth
    params = ', '.join(_format_param(p) for p in fn.params)
    head = f"{pad}fn {fn.name}({params})"
    if fn.ret_type is not None:
        head += f" -> {format_type(fn.ret_type)}"
    return [head + ' ' + line if i == 0 else line
            for i, line in enumerate(_format_block(fn.body, depth))]


def _format_block(block: Block, depth: int) -> list[str]:
    if not block.stmts:
        return ['{}']
    lines = ['{']
    for stmt in block.stmts:
        lines.extend(_format_stmt(stmt, depth + 1))
    lines.append(INDENT * depth + '}')
    return lines


def format_unit(unit: TranslationUnit) -> str:
    """打印整个翻译单元；函数定义之间空一行"""
    chunks = []
    prev = None
    for item in unit.items:
        if prev is not None and (isinstance(item, FnDef) or isinstance(prev, FnDef)):
            chunks.append('')
        chunks.extend(_format_stmt(item, 0))
        prev = item
    return '\n'.join(chunks) + '\n' if chunks else ''
