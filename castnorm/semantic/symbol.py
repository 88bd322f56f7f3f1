"""
castnorm 符号表
================
作用域嵌套的符号表，支持全局 / 函数 / 块级作用域。

片段语言的特性：
  - let 允许遮蔽（同一作用域内重复 let 同名变量是合法的）
  - type 别名在登记时即展开为底层类型
  - fn 定义登记为函数指针类型的符号
"""

from enum import Enum, auto
from .type import RType


class SymbolKind(Enum):
    VAR      = auto()   # let 绑定
    PARAM    = auto()   # 函数形参
    FUNC     = auto()   # fn 定义
    TYPE     = auto()   # 内置类型名 / type 别名


class Symbol:
    """
    符号表条目。

    Attributes:
        name:     符号名
        rtype:    解析后的类型（RType 实例，别名已展开）
        kind:     SymbolKind
        mutable:  let mut 绑定
        node:     对应的 AST 节点（用于报错定位）
    """
    def __init__(self, name: str, rtype: RType, kind: SymbolKind, *,
                 mutable=False, node=None):
        self.name    = name
        self.rtype   = rtype
        self.kind    = kind
        self.mutable = mutable
        self.node    = node

    def __repr__(self):
        flag_str = 'mut ' if self.mutable else ''
        return f"Symbol({self.kind.name} {flag_str}{self.rtype} {self.name!r})"


class Scope:
    """单个作用域（一个哈希表）"""
    def __init__(self, name: str = ''):
        self.name    = name
        self._table: dict[str, Symbol] = {}

    def define(self, sym: Symbol, shadow: bool = False) -> bool:
        if sym.name in self._table and not shadow:
            return False
        self._table[sym.name] = sym
        return True

    def lookup_local(self, name: str):
        return self._table.get(name)

    def symbols(self):
        return self._table.values()


class SymbolTable:
    """
    嵌套作用域符号表。

    作用域层次：
      global → function-param → block → block …
    """
    def __init__(self):
        self._scopes: list[Scope] = []
        self._enter('global')

    # ── 作用域管理 ──────────────────────────────────────────────────────────

    def _enter(self, name: str = ''):
        self._scopes.append(Scope(name))

    def enter_function(self, func_name: str):
        self._enter(f'func:{func_name}')

    def enter_block(self):
        self._enter('block')

    def leave_scope(self):
        if len(self._scopes) > 1:
            self._scopes.pop()

    @property
    def current_scope(self) -> Scope:
        return self._scopes[-1]

    @property
    def is_global(self) -> bool:
        return len(self._scopes) == 1

    # ── 符号操作 ────────────────────────────────────────────────────────────

    def define(self, sym: Symbol, shadow: bool = False) -> bool:
        """在当前作用域定义符号；shadow=False 时重复定义返回 False"""
        return self.current_scope.define(sym, shadow=shadow)

    def lookup(self, name: str) -> Symbol | None:
        """从最内层作用域向外查找"""
        for scope in reversed(self._scopes):
            sym = scope.lookup_local(name)
            if sym is not None:
                return sym
        return None

    def lookup_local(self, name: str) -> Symbol | None:
        """仅在当前作用域查找（用于检测同层重定义）"""
        return self.current_scope.lookup_local(name)

    # ── 调试辅助 ────────────────────────────────────────────────────────────

    def dump(self) -> str:
        lines = []
        for i, scope in enumerate(self._scopes):
            indent = '  ' * i
            lines.append(f"{indent}[{scope.name}]")
            for sym in scope.symbols():
                lines.append(f"{indent}  {sym}")
        return '\n'.join(lines)
