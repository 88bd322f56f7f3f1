"""
castnorm 常量求值
==================
只对"字面量 / 取负 / 转换"三种节点求值，用来确认一次字面量改写
前后的值完全相同。不是通用的常量折叠。

数值模型：
  - 整数统一放在 128 位里表示（Int 为有符号，Uint 为无符号）
  - isize / usize 按 16 位处理，与字面量改写的保守区间一致
  - f32 用 Python float 保存（每个 f32 值都能被 f64 精确表示），
    所有舍入到 f32 的地方都经过 round_f32()，避免二次舍入
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum, auto
from fractions import Fraction
from typing import Optional

from castnorm.error import InternalInvariantError
from castnorm.semantic.type import RType, IntType, FloatType, INT_TYPES, FLOAT_TYPES, int_bounds
from castnorm.semantic.analyzer import resolved_type
from castnorm.tree.transformer import (
    IntLiteral, FloatLiteral, BoolLiteral, CharLiteral, Neg, CastExpr,
)

I128_MIN, I128_MAX = int_bounds(128, True)
U128_MAX = int_bounds(128, False)[1]

SIZE_MODEL_BITS = 16

F32_MANT_BITS = 24
F32_MIN_EXP   = -126
F32_OVERFLOW  = 2 ** 128


# ──────────────────────────────────────────────────────────────────────────────
# ConstantValue
# ──────────────────────────────────────────────────────────────────────────────

class ConstKind(Enum):
    INT     = auto()
    UINT    = auto()
    FLOAT32 = auto()
    FLOAT64 = auto()


@dataclass(frozen=True, eq=False)
class ConstantValue:
    kind:  ConstKind
    value: object

    def __eq__(self, other):
        # 精确比较：种类必须一致，NaN 不等于任何值
        if not isinstance(other, ConstantValue):
            return NotImplemented
        if self.kind != other.kind:
            return False
        if self.kind in (ConstKind.FLOAT32, ConstKind.FLOAT64):
            # -0.0 与 0.0 位模式不同，视为不同的值
            return (self.value == other.value and
                    math.copysign(1.0, self.value) == math.copysign(1.0, other.value))
        return self.value == other.value

    def __hash__(self):
        return hash((self.kind, self.value))

    def __repr__(self):
        return f"{self.kind.name.capitalize()}({self.value!r})"

    @property
    def is_int(self) -> bool:
        return self.kind in (ConstKind.INT, ConstKind.UINT)


def Int(v: int) -> ConstantValue:
    return ConstantValue(ConstKind.INT, v)

def Uint(v: int) -> ConstantValue:
    return ConstantValue(ConstKind.UINT, v)

def Float32(v: float) -> ConstantValue:
    return ConstantValue(ConstKind.FLOAT32, v)

def Float64(v: float) -> ConstantValue:
    return ConstantValue(ConstKind.FLOAT64, v)


# ──────────────────────────────────────────────────────────────────────────────
# 数值工具
# ──────────────────────────────────────────────────────────────────────────────

def _pow2(e: int) -> Fraction:
    return Fraction(1 << e) if e >= 0 else Fraction(1, 1 << -e)


def round_f32(value) -> float:
    """
    把一个精确值（int / Fraction / float）按 IEEE 754 最近偶数舍入到 f32。
    超出范围得到 ±inf；支持次正规数。
    """
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value) or value == 0.0:
            return value
    q = Fraction(value)
    if q == 0:
        return 0.0
    sign = -1.0 if q < 0 else 1.0
    q = abs(q)

    # 2**exp <= q < 2**(exp+1)
    exp = q.numerator.bit_length() - q.denominator.bit_length()
    if _pow2(exp) > q:
        exp -= 1
    exp = max(exp, F32_MIN_EXP)

    ulp = _pow2(exp - (F32_MANT_BITS - 1))
    rounded = round(q / ulp) * ulp     # Fraction.__round__ 是银行家舍入
    if rounded >= F32_OVERFLOW:
        return sign * math.inf
    return sign * float(rounded)


def parse_float(text: str, bits: int) -> Optional[float]:
    """按声明精度解析浮点文本；`_` 分隔符被忽略，解析失败返回 None"""
    text = text.replace('_', '')
    try:
        if bits == 32:
            return round_f32(Fraction(text))
        return float(text)
    except (ValueError, ZeroDivisionError):
        return None


def format_float(value: float, bits: int) -> str:
    """
    渲染能在给定精度下还原的最短十进制文本，不用指数形式，
    整数值不带小数部分（1.0 → "1"）。调用方保证 value 是有限值。
    """
    if bits == 32:
        text = repr(value)
        for digits in range(1, 10):
            candidate = f"{value:.{digits - 1}e}"
            if round_f32(Fraction(candidate)) == value:
                text = candidate
                break
    else:
        text = repr(value)
    plain = format(Decimal(text), 'f')
    if '.' in plain:
        plain = plain.rstrip('0').rstrip('.')
    return plain


def wrap_int(value: int, bits: int, signed: bool) -> int:
    """二进制补码回绕到给定位宽"""
    value &= (1 << bits) - 1
    if signed and value >= 1 << (bits - 1):
        value -= 1 << bits
    return value


def float_to_int(value: float, bits: int, signed: bool) -> int:
    """向零截断并饱和到给定位宽；NaN → 0"""
    if math.isnan(value):
        return 0
    lo, hi = int_bounds(bits, signed)
    if math.isinf(value):
        return hi if value > 0 else lo
    return max(lo, min(hi, math.trunc(value)))


def _int_model(t: IntType) -> tuple[int, bool]:
    return (SIZE_MODEL_BITS if t.is_size else t.bits), t.signed


# ──────────────────────────────────────────────────────────────────────────────
# 转换语义
# ──────────────────────────────────────────────────────────────────────────────

def as_ty(value: ConstantValue, target: RType) -> ConstantValue:
    """对常量执行一次 `value as target`"""
    if isinstance(target, IntType):
        bits, signed = _int_model(target)
        if value.is_int:
            result = wrap_int(value.value, bits, signed)
        else:
            result = float_to_int(value.value, bits, signed)
        return Int(result) if signed else Uint(result)

    if isinstance(target, FloatType):
        if target.bits == 32:
            return Float32(round_f32(value.value))
        if value.is_int:
            return Float64(float(value.value))
        return Float64(value.value)

    raise InternalInvariantError(f"常量不能转换为非数值类型 '{target}'")


# ──────────────────────────────────────────────────────────────────────────────
# 求值入口
# ──────────────────────────────────────────────────────────────────────────────

def _fits(value: int, t: IntType) -> bool:
    lo, hi = int_bounds(*_int_model(t))
    return lo <= value <= hi


def _literal_type(lit) -> Optional[RType]:
    """后缀优先；无后缀时取分析器按上下文推断的类型（可能没有）"""
    if lit.suffix:
        return INT_TYPES[lit.suffix] if isinstance(lit, IntLiteral) else FLOAT_TYPES[lit.suffix]
    ty = getattr(lit, 'ty', None)
    return ty if isinstance(ty, (IntType, FloatType)) else None


def _eval_int_literal(lit: IntLiteral, negative: bool) -> Optional[ConstantValue]:
    """
    整数字面量按它的类型求值。
    超出该类型范围的字面量（rustc 的 overflowing_literals）不给出值：
    它在运行时回绕成别的数，无法用于证明改写前后相等。
    负号属于字面量本身，因此 -128i8 合法而 128i8 不合法。
    """
    value = -lit.value if negative else lit.value
    t = _literal_type(lit)
    if not isinstance(t, IntType):
        # 未经分析的无后缀字面量：只受 128 位表示范围限制
        base = Uint(lit.value) if lit.value <= U128_MAX else None
        if base is None or not negative:
            return base
        return _negate(base)
    if not _fits(value, t):
        return None
    return Int(value) if t.signed else Uint(value)


def _eval_literal(lit) -> Optional[ConstantValue]:
    if isinstance(lit, IntLiteral):
        return _eval_int_literal(lit, negative=False)

    if isinstance(lit, FloatLiteral):
        t = _literal_type(lit)
        if isinstance(t, FloatType) and t.bits == 32:
            v = parse_float(lit.text, 32)
            return None if v is None else Float32(v)
        v = parse_float(lit.text, 64)
        return None if v is None else Float64(v)

    # bool / char 字面量没有数值
    return None


def _negate(value: ConstantValue) -> Optional[ConstantValue]:
    if value.kind == ConstKind.UINT:
        if value.value > I128_MAX:
            return None
        return Int(-value.value)
    if value.kind == ConstKind.INT:
        if value.value == I128_MIN:
            return None
        return Int(-value.value)
    return ConstantValue(value.kind, -value.value)


def eval_const(expr) -> Optional[ConstantValue]:
    """
    对字面量、取负、转换组成的表达式求值。
    溢出或无法表示时返回 None；其他节点形状属于调用方的 bug。
    """
    if isinstance(expr, (IntLiteral, FloatLiteral, BoolLiteral, CharLiteral)):
        return _eval_literal(expr)

    if isinstance(expr, Neg):
        if isinstance(expr.operand, IntLiteral):
            return _eval_int_literal(expr.operand, negative=True)
        inner = eval_const(expr.operand)
        result = None if inner is None else _negate(inner)
        # -(128 as i8) 在 i8 里溢出
        ty = resolved_type(expr)
        if result is not None and result.is_int and isinstance(ty, IntType):
            if not _fits(result.value, ty):
                return None
        return result

    if isinstance(expr, CastExpr):
        inner = eval_const(expr.expr)
        if inner is None:
            return None
        return as_ty(inner, resolved_type(expr))

    raise InternalInvariantError(
        f"eval_const 不支持节点 '{type(expr).__name__}'")
