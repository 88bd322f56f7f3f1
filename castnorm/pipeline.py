"""
castnorm 分析流水线
====================
将词法分析 → 语法分析 → AST 转换 → 类型分析串联为一个高层接口，
并在其上按名字运行改写命令。
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from lark import Lark, exceptions as lark_exc

from .tree.transformer import CastTransformer, TranslationUnit
from .tree.printer import format_unit
from .semantic.analyzer import TypeAnalyzer
from .semantic.symbol import SymbolTable
from .command import Registry, default_registry
from castnorm.error import DiagnosticBag, InternalInvariantError

_log = logging.getLogger(__name__)

GRAMMAR_FILE = Path(__file__).parent / 'tree' / 'castnorm.lark'


# ─── 结果对象 ──────────────────────────────────────────────────────────────────

@dataclass
class FrontendResult:
    """分析流水线的输出"""
    ast:          Optional[TranslationUnit]   # None 表示语法分析失败
    diags:        DiagnosticBag
    symbol_table: Optional[SymbolTable]       # None 表示未进入类型分析

    @property
    def success(self) -> bool:
        return self.ast is not None and not self.diags.has_errors


@dataclass
class RefactorResult:
    """一次改写的输出"""
    source:   str                              # 改写后的源码（失败时为原文）
    ast:      Optional[TranslationUnit]
    diags:    DiagnosticBag
    rewrites: dict[str, int] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return any(self.rewrites.values())


# ─── 主流水线 ─────────────────────────────────────────────────────────────────

class CastFrontend:
    """
    castnorm 前端。

    主要流程：
      1. Lark 解析（词法 + 语法）→ CST
      2. CastTransformer → AST
      3. TypeAnalyzer    → 类型注解 + 符号表

    用法::

        frontend = CastFrontend()
        result = frontend.process_string("fn f(x: i32) -> i32 { return x as i64 as i32; }")
        print(result.diags.report())
    """

    def __init__(self, grammar_file: str | Path = None, grammar_text: str = None,
                 opaque_types: Iterable[str] = (), deny_warnings: bool = False):
        """
        Args:
            grammar_file:  .lark 文件路径（与 grammar_text 二选一，都不给时用包内自带的）
            grammar_text:  直接传入 grammar 字符串
            opaque_types:  额外的不透明类型名，转交给 TypeAnalyzer
            deny_warnings: 警告按错误处理（例如越界字面量），此时不做任何改写
        """
        if grammar_text is not None:
            self._parser = Lark(
                grammar_text,
                parser='lalr',
                propagate_positions=True,
                maybe_placeholders=True,
            )
        else:
            self._parser = Lark.open(
                str(grammar_file or GRAMMAR_FILE),
                parser='lalr',
                propagate_positions=True,
                maybe_placeholders=True,
            )

        self._transformer = CastTransformer()
        self._opaque_types = tuple(opaque_types)
        self._deny_warnings = deny_warnings

    # ── 分析入口 ───────────────────────────────────────────────────────────

    def process_file(self, path: str | Path) -> FrontendResult:
        """分析单个源文件"""
        path = Path(path)
        if not path.exists():
            diag = DiagnosticBag(str(path))
            diag.error(f"文件不存在: {path}")
            return FrontendResult(ast=None, diags=diag, symbol_table=None)
        source = path.read_text(encoding='utf-8', errors='replace')
        return self.process_string(source, source_name=str(path))

    def process_string(self, source: str, source_name: str = '<input>') -> FrontendResult:
        """
        分析源码字符串，返回 FrontendResult。
        即使有错误也尽量完成分析（错误恢复模式）。
        """
        diag = DiagnosticBag(source_name)

        # ── Step 1: 词法 + 语法分析 ─────────────────────────────────────
        try:
            cst = self._parser.parse(source)
        except lark_exc.UnexpectedCharacters as e:
            diag.error(
                f"词法错误：意外字符 '{e.char}' at {e.line}:{e.column}",
                e, hint=f"期望：{', '.join(sorted(e.allowed or ()))}")
            return FrontendResult(ast=None, diags=diag, symbol_table=None)
        except lark_exc.UnexpectedToken as e:
            diag.error(
                f"语法错误：意外 token '{e.token}' (类型 {e.token.type}) "
                f"at {e.line}:{e.column}",
                e.token, hint=f"期望：{', '.join(sorted(e.expected or ()))}")
            return FrontendResult(ast=None, diags=diag, symbol_table=None)
        except lark_exc.UnexpectedInput as e:
            diag.error(f"语法分析失败 at {e.line}:{e.column}: {e}")
            return FrontendResult(ast=None, diags=diag, symbol_table=None)

        # ── Step 2: CST → AST ───────────────────────────────────────────
        try:
            ast = self._transformer.transform(cst)
        except lark_exc.VisitError as e:
            diag.error(f"AST 转换失败（Transformer 未完整覆盖某规则）: {e.orig_exc}")
            return FrontendResult(ast=None, diags=diag, symbol_table=None)

        if not isinstance(ast, TranslationUnit):
            diag.error(f"AST 根节点类型错误：{type(ast).__name__}")
            return FrontendResult(ast=None, diags=diag, symbol_table=None)

        # ── Step 3: 类型分析 ─────────────────────────────────────────────
        analyzer = TypeAnalyzer(opaque_types=self._opaque_types)
        diag.extend(analyzer.analyze(ast))
        if self._deny_warnings:
            diag.deny_warnings()
        _log.debug("%s: %s", source_name,
                   f"{len(diag.errors)} error(s), {len(diag.warnings)} warning(s)")

        return FrontendResult(
            ast=ast,
            diags=diag,
            symbol_table=analyzer.table,
        )

    # ── 改写 ───────────────────────────────────────────────────────────────

    def refactor(self, source: str, commands: Iterable[str],
                 registry: Registry = None,
                 source_name: str = '<input>') -> RefactorResult:
        """
        分析源码并依次运行 commands。
        有错误诊断时不做任何改写，原样返回源码。

        每个命令运行之前都重新分析上一步的输出，
        保证命令看到的类型与打印出来的源码一致。
        """
        registry = registry or default_registry()
        commands = list(commands)
        for name in commands:
            registry.get(name)   # 先确认命令都存在

        result = self.process_string(source, source_name)
        if not result.success:
            return RefactorResult(source=source, ast=result.ast, diags=result.diags)

        current_src = source
        ast = result.ast
        rewrites: dict[str, int] = {}
        for i, name in enumerate(commands):
            if i > 0:
                result = self.process_string(current_src, source_name)
                if not result.success:
                    raise InternalInvariantError(
                        f"命令 '{commands[i - 1]}' 的输出无法通过类型分析：\n"
                        f"{result.diags.report()}")
                ast = result.ast
            ast, count = registry.run(name, ast)
            rewrites[name] = rewrites.get(name, 0) + count
            current_src = format_unit(ast)

        if not rewrites:
            current_src = format_unit(ast)
        return RefactorResult(source=current_src, ast=ast,
                              diags=result.diags, rewrites=rewrites)

    # ── 调试工具 ───────────────────────────────────────────────────────────

    def parse_only(self, source: str):
        """仅做语法分析，返回 Lark Tree（调试用）"""
        return self._parser.parse(source)

    def transform_only(self, source: str) -> TranslationUnit:
        """语法分析 + AST 转换，不做类型分析（调试用）"""
        cst = self._parser.parse(source)
        return self._transformer.transform(cst)


_default_frontend: Optional[CastFrontend] = None


def refactor_string(source: str, commands: Iterable[str]) -> RefactorResult:
    """用包内 grammar 的共享前端运行改写（便捷接口）"""
    global _default_frontend
    if _default_frontend is None:
        _default_frontend = CastFrontend()
    return _default_frontend.refactor(source, commands)
