"""
castnorm 双重转换判定
======================
给定 `e as T1 as T2` 中三个类型（源 E、中间 T1、目标 T2），
判断两次转换能否整体删除、删除内层，还是必须保留。

判定表是位级推理的结果，测试套件里用 z3 对所有类型三元组做了穷举证明
（tests/test_double_cast_verification.py）。改动判定表必须重新跑那组证明。
"""

from enum import Enum, auto

from .cast_kind import SimpleTy, CastTag, cast_kind


class DoubleCastAction(Enum):
    REMOVE_BOTH  = auto()   # e as T1 as T2  →  e
    REMOVE_INNER = auto()   # e as T1 as T2  →  e as T2
    KEEP_BOTH    = auto()


def check_double_cast(e: SimpleTy, t1: SimpleTy, t2: SimpleTy) -> DoubleCastAction:
    """
    调用方保证完整的中间类型与目标类型不同（相同时外层转换本应
    先被当作冗余单转换删掉）。简化后相同是允许的，
    例如 `*const u8` 与 `*const i8` 都是 Pointer。
    """
    inner = cast_kind(e, t1)
    outer = cast_kind(t1, t2)
    it, ot = inner.tag, outer.tag

    # 1. 往返：位模式被还原
    if e == t2 and ((it, ot) == (CastTag.SAME_WIDTH, CastTag.SAME_WIDTH) or
                    (it, ot) == (CastTag.EXTEND, CastTag.TRUNCATE)):
        return DoubleCastAction.REMOVE_BOTH

    # 2. 外层扩展的符号与源一致：内层可以省掉
    if ((it, ot) in ((CastTag.EXTEND, CastTag.EXTEND),
                     (CastTag.SAME_WIDTH, CastTag.EXTEND),
                     (CastTag.SAME_WIDTH, CastTag.FROM_POINTER),
                     (CastTag.SAME_WIDTH, CastTag.TO_POINTER))
            and outer.signed == e.is_signed):
        return DoubleCastAction.REMOVE_INNER

    # 3. 外层只保留低位（或位宽不变）：内层的高位无关紧要。
    #    内层是整数 ↔ 浮点的数值转换时不成立（-1.0 as i32 as u32 ≠ -1.0 as u32）
    if ot in (CastTag.SAME_WIDTH, CastTag.TRUNCATE):
        if it == CastTag.UNKNOWN and (e.is_float or t1.is_float):
            return DoubleCastAction.KEEP_BOTH
        return DoubleCastAction.REMOVE_INNER

    return DoubleCastAction.KEEP_BOTH
