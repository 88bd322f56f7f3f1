"""
castnorm 字面量后缀改写
========================
把 `X_ty1 as ty2` 中的字面量直接改写成 ty2 的字面量 `X_ty2`。

这里只负责"能不能写出来"；值是否真的相同由调用方用 eval_const()
比较改写前后的值来确认。
"""

from __future__ import annotations
import math
from typing import Optional

from castnorm.semantic.type import RType, IntType, FloatType, int_bounds
from castnorm.tree.transformer import IntLiteral, FloatLiteral
from .const_eval import parse_float, format_float, float_to_int

# isize / usize 的宽度只知道至少 16 位
_SIZE_MAX = {True: int_bounds(16, True)[1], False: int_bounds(16, False)[1]}


def _fits(value: int, target: IntType) -> bool:
    if target.is_size:
        return value <= _SIZE_MAX[target.signed]
    return value <= int_bounds(target.bits, target.signed)[1]


def _copy_pos(new, old):
    new.line, new.col = old.line, old.col
    return new


def replace_suffix(lit, target: RType) -> Optional[IntLiteral | FloatLiteral]:
    """
    返回带 target 后缀的新字面量；无法表示时返回 None。
    字面量总是非负的（负号在外层的 Neg 节点上）。
    """
    if isinstance(lit, IntLiteral):
        value = lit.value
        if isinstance(target, IntType):
            if not _fits(value, target):
                return None
            new = IntLiteral(text=lit.text, suffix=target.name)
        elif isinstance(target, FloatType):
            new = FloatLiteral(text=str(value), suffix=target.name)
        else:
            return None

    elif isinstance(lit, FloatLiteral):
        bits = 32 if lit.suffix == 'f32' else 64
        value = parse_float(lit.text, bits)
        if value is None or not math.isfinite(value):
            return None
        if isinstance(target, IntType):
            as_int = float_to_int(value, 128, False)
            if not _fits(as_int, target):
                return None
            new = IntLiteral(text=str(as_int), suffix=target.name)
        elif isinstance(target, FloatType):
            new = FloatLiteral(text=format_float(value, bits), suffix=target.name)
        else:
            return None

    else:
        return None

    # 超出目标浮点范围的字面量写不出来（会变成 inf）
    if isinstance(new, FloatLiteral):
        check = parse_float(new.text, target.bits)
        if check is None or not math.isfinite(check):
            return None

    new.ty = target
    return _copy_pos(new, lit)
