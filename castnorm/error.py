"""
castnorm 诊断信息
==================
前端（Lark 解析与类型分析）把发现的问题记进 DiagnosticBag，
分析照常进行到底，最后由流水线决定能否改写：有任何 error 就不改写。

改写引擎本身不产生诊断：证明不了安全的改写直接跳过。
唯一的例外是内部不变量被破坏（InternalInvariantError），
这说明调用顺序有 bug，必须中止本次改写。
"""

from dataclasses import dataclass, replace
from enum import Enum


class Severity(Enum):
    WARNING = 'warning'
    ERROR   = 'error'


@dataclass(frozen=True)
class Diagnostic:
    """一条诊断；line / column 从 1 开始，-1 表示没有位置"""
    severity: Severity
    message:  str
    line:     int = -1
    column:   int = -1
    hint:     str = ''

    def render(self, source: str = '<input>') -> str:
        where = source
        if self.line > 0:
            where += f":{self.line}:{self.column}"
        text = f"{where}: {self.severity.value}: {self.message}"
        if self.hint:
            text += f"\n    = 提示: {self.hint}"
        return text

    def __str__(self):
        return self.render()


class InternalInvariantError(RuntimeError):
    """
    改写引擎内部不变量被破坏。

    例如双重转换的中间类型等于目标类型却到达了 check_double_cast，
    或者常量求值器遇到了它不应该被调用的节点形状。
    不是用户错误，不做恢复。
    """


class DiagnosticBag:
    """一份源码的全部诊断，按记录顺序保存"""

    def __init__(self, source_name: str = '<input>'):
        self.source_name = source_name
        self._diags: list[Diagnostic] = []

    def error(self, message: str, at=None, hint: str = ''):
        self._add(Severity.ERROR, message, at, hint)

    def warning(self, message: str, at=None, hint: str = ''):
        self._add(Severity.WARNING, message, at, hint)

    def _add(self, severity, message, at, hint):
        line, column = _position(at)
        self._diags.append(Diagnostic(severity, message, line, column, hint))

    def extend(self, other: 'DiagnosticBag'):
        self._diags.extend(other)

    def deny_warnings(self):
        """把已有的警告全部升级为错误（-D warnings）"""
        self._diags = [replace(d, severity=Severity.ERROR) for d in self._diags]

    # ── 查询 ────────────────────────────────────────────────────────────────

    @property
    def has_errors(self) -> bool:
        return any(d.severity == Severity.ERROR for d in self._diags)

    @property
    def count(self) -> int:
        return len(self._diags)

    @property
    def errors(self):
        return [d for d in self._diags if d.severity == Severity.ERROR]

    @property
    def warnings(self):
        return [d for d in self._diags if d.severity == Severity.WARNING]

    def __iter__(self):
        return iter(self._diags)

    def __len__(self):
        return len(self._diags)

    def report(self) -> str:
        """按源码位置排序输出，末尾附计数"""
        if not self._diags:
            return "没有诊断信息。"
        ordered = sorted(self._diags, key=lambda d: (d.line, d.column))
        lines = [d.render(self.source_name) for d in ordered]
        lines.append(f"{len(self.errors)} 个错误，{len(self.warnings)} 个警告")
        return '\n'.join(lines)


def _position(at) -> tuple[int, int]:
    """AST 节点带 line/col；Lark Token 与 UnexpectedInput 带 line/column"""
    if at is None:
        return -1, -1
    line = getattr(at, 'line', None)
    column = getattr(at, 'col', None)
    if column is None:
        column = getattr(at, 'column', None)
    if line is None or column is None:
        return -1, -1
    return line, column
