"""
castnorm 类型系统
==================
Rust 风格片段语言的静态类型。

分析器为每个表达式节点填写一个 RType；改写引擎只读取这些类型，
再通过 classify() 压缩成 SimpleTy。类型在进入引擎之前已经规范化：
type 别名已展开，引用上的生命周期已擦除。
"""


class RType:
    """所有类型的基类"""
    def __eq__(self, other):
        return isinstance(other, self.__class__)

    def __hash__(self):
        return hash(repr(self))

    def __repr__(self):
        return self.__class__.__name__


# ──────────────────────────────────────────────────────────────────────────────
# 标量类型
# ──────────────────────────────────────────────────────────────────────────────

class IntType(RType):
    """
    整数类型。

    bits 为 None 表示平台宽度（isize / usize），
    这类类型的位宽在分析阶段未知，只知道至少 32 位。
    """
    def __init__(self, name: str, bits, signed: bool):
        self.name   = name
        self.bits   = bits
        self.signed = signed

    @property
    def is_size(self) -> bool:
        return self.bits is None

    def __eq__(self, other):
        return isinstance(other, IntType) and self.name == other.name

    def __hash__(self):
        return hash(self.name)

    def __repr__(self):
        return self.name


class FloatType(RType):
    """IEEE 754 浮点（f32 / f64）"""
    def __init__(self, name: str, bits: int):
        self.name = name
        self.bits = bits

    def __eq__(self, other):
        return isinstance(other, FloatType) and self.name == other.name

    def __hash__(self):
        return hash(self.name)

    def __repr__(self):
        return self.name


class BasicType(RType):
    """其他内置标量：bool、char、str、()"""
    def __init__(self, name: str):
        self.name = name

    def __eq__(self, other):
        return isinstance(other, BasicType) and self.name == other.name

    def __hash__(self):
        return hash(self.name)

    def __repr__(self):
        return self.name


class NamedType(RType):
    """
    用户命名的不透明类型（struct、enum 等）。
    引擎对它们一无所知，classify() 一律归为 Other。
    """
    def __init__(self, name: str):
        self.name = name

    def __eq__(self, other):
        return isinstance(other, NamedType) and self.name == other.name

    def __hash__(self):
        return hash(('named', self.name))

    def __repr__(self):
        return self.name


# ──────────────────────────────────────────────────────────────────────────────
# 指针类复合类型
# ──────────────────────────────────────────────────────────────────────────────

class PointerType(RType):
    """裸指针 *const T / *mut T"""
    def __init__(self, pointee: RType, mutable: bool = False):
        self.pointee = pointee
        self.mutable = mutable

    def __eq__(self, other):
        return (isinstance(other, PointerType) and
                self.mutable == other.mutable and
                self.pointee == other.pointee)

    def __hash__(self):
        return hash(('ptr', self.mutable, self.pointee))

    def __repr__(self):
        return f"*{'mut' if self.mutable else 'const'} {self.pointee}"


class RefType(RType):
    """引用 &T / &mut T（生命周期在解析时已擦除）"""
    def __init__(self, pointee: RType, mutable: bool = False):
        self.pointee = pointee
        self.mutable = mutable

    def __eq__(self, other):
        return (isinstance(other, RefType) and
                self.mutable == other.mutable and
                self.pointee == other.pointee)

    def __hash__(self):
        return hash(('ref', self.mutable, self.pointee))

    def __repr__(self):
        return f"&{'mut ' if self.mutable else ''}{self.pointee}"


class FnPtrType(RType):
    """函数指针 fn(T, ...) -> U"""
    def __init__(self, param_types: list, return_type: RType):
        self.param_types = param_types or []
        self.return_type = return_type

    def __eq__(self, other):
        return (isinstance(other, FnPtrType) and
                self.return_type == other.return_type and
                self.param_types == other.param_types)

    def __hash__(self):
        return hash(('fn', self.return_type, tuple(self.param_types)))

    def __repr__(self):
        params = ', '.join(map(str, self.param_types))
        ret = '' if self.return_type == UNIT else f" -> {self.return_type}"
        return f"fn({params}){ret}"


class ArrayType(RType):
    """定长数组 [T; N]"""
    def __init__(self, element_type: RType, size: int):
        self.element_type = element_type
        self.size = size

    def __eq__(self, other):
        return (isinstance(other, ArrayType) and
                self.size == other.size and
                self.element_type == other.element_type)

    def __hash__(self):
        return hash(('array', self.element_type, self.size))

    def __repr__(self):
        return f"[{self.element_type}; {self.size}]"


class SliceType(RType):
    """切片 [T]（只能出现在引用或指针之后）"""
    def __init__(self, element_type: RType):
        self.element_type = element_type

    def __eq__(self, other):
        return isinstance(other, SliceType) and self.element_type == other.element_type

    def __hash__(self):
        return hash(('slice', self.element_type))

    def __repr__(self):
        return f"[{self.element_type}]"


# ──────────────────────────────────────────────────────────────────────────────
# 特殊哨兵类型（用于错误恢复，不对外暴露）
# ──────────────────────────────────────────────────────────────────────────────

class ErrorType(RType):
    """
    语义错误恢复类型。
    当子表达式已经报过错时，父节点使用 ErrorType，避免级联错误。

    ErrorType 只等于它自己：改写引擎用 == 判断
    "冗余转换"，ErrorType 若与一切相等就会错误地删除转换。
    兼容性放在 can_assign() 里处理。
    """
    def __repr__(self):
        return '<error>'

    def __hash__(self):
        return hash('error')


# ──────────────────────────────────────────────────────────────────────────────
# 预定义类型常量
# ──────────────────────────────────────────────────────────────────────────────

I8    = IntType('i8', 8, True)
I16   = IntType('i16', 16, True)
I32   = IntType('i32', 32, True)
I64   = IntType('i64', 64, True)
I128  = IntType('i128', 128, True)
ISIZE = IntType('isize', None, True)
U8    = IntType('u8', 8, False)
U16   = IntType('u16', 16, False)
U32   = IntType('u32', 32, False)
U64   = IntType('u64', 64, False)
U128  = IntType('u128', 128, False)
USIZE = IntType('usize', None, False)

F32 = FloatType('f32', 32)
F64 = FloatType('f64', 64)

BOOL = BasicType('bool')
CHAR = BasicType('char')
STR  = BasicType('str')
UNIT = BasicType('()')

ERROR_T = ErrorType()

INT_TYPES: dict[str, IntType] = {
    t.name: t for t in (I8, I16, I32, I64, I128, ISIZE,
                        U8, U16, U32, U64, U128, USIZE)
}
FLOAT_TYPES: dict[str, FloatType] = {'f32': F32, 'f64': F64}

# 所有内置类型名（用于初始化符号表）
BUILTIN_TYPES: dict[str, RType] = {
    **INT_TYPES,
    **FLOAT_TYPES,
    'bool': BOOL, 'char': CHAR, 'str': STR,
}

# 字面量默认类型（无后缀时）
DEFAULT_INT   = I32
DEFAULT_FLOAT = F64


# ──────────────────────────────────────────────────────────────────────────────
# 类型工具函数
# ──────────────────────────────────────────────────────────────────────────────

def is_integer(t: RType) -> bool:
    return isinstance(t, IntType)

def is_float(t: RType) -> bool:
    return isinstance(t, FloatType)

def is_numeric(t: RType) -> bool:
    """整数或浮点"""
    return is_integer(t) or is_float(t)

def is_error(t) -> bool:
    return t is None or isinstance(t, ErrorType)

def int_bounds(bits: int, signed: bool) -> tuple[int, int]:
    """给定位宽与符号，返回可表示的 [最小值, 最大值]"""
    if signed:
        return -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    return 0, (1 << bits) - 1

def can_assign(dst: RType, src: RType) -> bool:
    """
    判断 src 能否赋值给 dst。

    Rust 没有隐式数值转换：除 ErrorType（错误恢复）外必须类型完全一致，
    唯一放宽的是 &mut T → &T 与 *mut T → *const T。
    """
    if is_error(dst) or is_error(src):
        return True
    if dst == src:
        return True
    if isinstance(dst, RefType) and isinstance(src, RefType):
        return not dst.mutable and dst.pointee == src.pointee
    if isinstance(dst, PointerType) and isinstance(src, PointerType):
        return not dst.mutable and dst.pointee == src.pointee
    return False

def is_castable(src: RType, dst: RType) -> bool:
    """
    粗略判断 `src as dst` 是否是合法的原始类型转换。
    只用来产生警告，引擎不依赖它。
    """
    if is_error(src) or is_error(dst) or src == dst:
        return True
    if is_numeric(src) and is_numeric(dst):
        return True
    if src in (BOOL, CHAR) and is_integer(dst):
        return True
    if src == U8 and dst == CHAR:
        return True
    pointerish = (PointerType, RefType, FnPtrType)
    if isinstance(src, pointerish) and isinstance(dst, PointerType):
        return True
    if isinstance(src, (PointerType, FnPtrType)) and is_integer(dst):
        return True
    if is_integer(src) and isinstance(dst, PointerType):
        return True
    return False

def resolve_binary_op(op: str, ltype: RType, rtype: RType):
    """
    给定二元运算符和两个操作数类型，返回结果类型。
    无法推导时返回 None。
    """
    if is_error(ltype) or is_error(rtype):
        return ERROR_T

    # 算术：两侧类型必须一致
    if op in ('+', '-', '*', '/', '%'):
        if is_numeric(ltype) and ltype == rtype:
            return ltype
        return None

    # 移位：右操作数可以是任意整数
    if op in ('<<', '>>'):
        if is_integer(ltype) and is_integer(rtype):
            return ltype
        return None

    # 位运算
    if op in ('&', '|', '^'):
        if (is_integer(ltype) or ltype == BOOL) and ltype == rtype:
            return ltype
        return None

    # 比较
    if op in ('<', '>', '<=', '>=', '==', '!='):
        if ltype == rtype:
            return BOOL
        return None

    # 逻辑
    if op in ('&&', '||'):
        if ltype == BOOL and rtype == BOOL:
            return BOOL
        return None

    return None
