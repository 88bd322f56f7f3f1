"""
castnorm 转换分类
==================
把静态类型压缩成 SimpleTy，再把一次 `from as to` 转换归类为 CastKind。

SimpleTy 只保留与位级语义相关的信息：
  Int(width, signed)  定宽整数 i8…i128 / u8…u128
  Size(signed)        平台宽度整数 isize / usize
  Float32 / Float64
  Pointer             裸指针、引用、函数指针
  Other               其余一切（含分析失败的类型）

平台宽度按保守区间处理：isize / usize / 指针至少 16 位、至多 64 位。
"""

from dataclasses import dataclass
from enum import Enum, auto

from castnorm.semantic.type import (
    RType, IntType, FloatType, PointerType, RefType, FnPtrType,
)


# ──────────────────────────────────────────────────────────────────────────────
# SimpleTy
# ──────────────────────────────────────────────────────────────────────────────

class SimpleKind(Enum):
    INT     = auto()
    SIZE    = auto()
    FLOAT32 = auto()
    FLOAT64 = auto()
    POINTER = auto()
    OTHER   = auto()


@dataclass(frozen=True)
class SimpleTy:
    """
    简化类型。width 只对 INT 有意义；signed 只对 INT / SIZE 有意义。
    """
    kind:   SimpleKind
    width:  int = 0
    signed: bool = False

    @property
    def is_signed(self) -> bool:
        """
        双重转换规则里用到的符号位。
        浮点报告 True（仅作为规则匹配的依据），指针与 Other 报告 False。
        """
        if self.kind in (SimpleKind.FLOAT32, SimpleKind.FLOAT64):
            return True
        if self.kind in (SimpleKind.INT, SimpleKind.SIZE):
            return self.signed
        return False

    @property
    def is_float(self) -> bool:
        return self.kind in (SimpleKind.FLOAT32, SimpleKind.FLOAT64)

    def __repr__(self):
        if self.kind == SimpleKind.INT:
            return f"Int({self.width}, {'signed' if self.signed else 'unsigned'})"
        if self.kind == SimpleKind.SIZE:
            return f"Size({'signed' if self.signed else 'unsigned'})"
        return self.kind.name.capitalize()


def Int(width: int, signed: bool) -> SimpleTy:
    return SimpleTy(SimpleKind.INT, width, signed)

def Size(signed: bool) -> SimpleTy:
    return SimpleTy(SimpleKind.SIZE, 0, signed)

FLOAT32 = SimpleTy(SimpleKind.FLOAT32)
FLOAT64 = SimpleTy(SimpleKind.FLOAT64)
POINTER = SimpleTy(SimpleKind.POINTER)
OTHER   = SimpleTy(SimpleKind.OTHER)


def classify(rtype: RType) -> SimpleTy:
    """静态类型 → SimpleTy。总是成功，认不出的一律 Other"""
    if isinstance(rtype, IntType):
        if rtype.is_size:
            return Size(rtype.signed)
        return Int(rtype.bits, rtype.signed)
    if isinstance(rtype, FloatType):
        return FLOAT32 if rtype.bits == 32 else FLOAT64
    if isinstance(rtype, (PointerType, RefType, FnPtrType)):
        return POINTER
    return OTHER


# ──────────────────────────────────────────────────────────────────────────────
# CastKind
# ──────────────────────────────────────────────────────────────────────────────

class CastTag(Enum):
    EXTEND       = auto()   # 变宽；signed 记录源类型的符号（决定符号扩展还是零扩展）
    TRUNCATE     = auto()   # 变窄，只保留低位
    SAME_WIDTH   = auto()   # 位模式不变
    FROM_POINTER = auto()   # 平台宽度 → 32 位整数：可能扩展也可能截断
    TO_POINTER   = auto()   # 32 位整数 → 平台宽度：可能扩展也可能截断
    UNKNOWN      = auto()   # 无法做位级推理


@dataclass(frozen=True)
class CastKind:
    tag:    CastTag
    signed: bool = False    # 仅 EXTEND / FROM_POINTER / TO_POINTER 携带

    def __repr__(self):
        if self.tag in (CastTag.EXTEND, CastTag.FROM_POINTER, CastTag.TO_POINTER):
            return f"{self.tag.name}({'signed' if self.signed else 'unsigned'})"
        return self.tag.name


def Extend(signed: bool) -> CastKind:
    return CastKind(CastTag.EXTEND, signed)

def FromPointer(signed: bool) -> CastKind:
    return CastKind(CastTag.FROM_POINTER, signed)

def ToPointer(signed: bool) -> CastKind:
    return CastKind(CastTag.TO_POINTER, signed)

TRUNCATE   = CastKind(CastTag.TRUNCATE)
SAME_WIDTH = CastKind(CastTag.SAME_WIDTH)
UNKNOWN    = CastKind(CastTag.UNKNOWN)

_PTR_LIKE = (SimpleKind.SIZE, SimpleKind.POINTER)


def cast_kind(src: SimpleTy, dst: SimpleTy) -> CastKind:
    """对每一对有序的 SimpleTy 恰好给出一种 CastKind"""
    sk, dk = src.kind, dst.kind

    if sk == SimpleKind.INT and dk == SimpleKind.INT:
        if src.width < dst.width:
            return Extend(src.signed)
        if src.width > dst.width:
            return TRUNCATE
        return SAME_WIDTH

    # 平台宽度在 [16, 64] 之间
    if sk == SimpleKind.INT and dk in _PTR_LIKE:
        if src.width <= 16:
            return Extend(src.signed)
        if src.width >= 64:
            return TRUNCATE
        return ToPointer(src.signed)

    if sk in _PTR_LIKE and dk == SimpleKind.INT:
        if dst.width >= 64:
            return Extend(src.is_signed)
        if dst.width <= 16:
            return TRUNCATE
        return FromPointer(src.is_signed)

    if sk in _PTR_LIKE and dk in _PTR_LIKE:
        return SAME_WIDTH

    if src.is_float and dst.is_float:
        if sk == dk:
            return SAME_WIDTH
        if sk == SimpleKind.FLOAT32:
            return Extend(True)
        return TRUNCATE

    return UNKNOWN
