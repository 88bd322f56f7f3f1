"""
castnorm - 类型转换规范化
==========================
删除 Rust 风格代码里冗余的 `as` 转换、合并双重转换、把转换并入字面量后缀，
并保证改写前后每个表达式的运行时值逐位相同。

模块结构：
  castnorm/
    __init__.py          本文件：公共 API
    __main__.py          命令行入口
    error.py             诊断信息
    pipeline.py          解析 → AST → 类型分析 → 改写
    command.py           改写命令注册表
    tree/
      castnorm.lark      片段语言 grammar
      transformer.py     CST → AST 转换器 & AST 节点定义
      visitor.py         后序改写器
      printer.py         AST → 源码
    semantic/
      type.py            类型系统
      symbol.py          符号表
      analyzer.py        类型分析器
    transform/
      cast_kind.py       SimpleTy 与 CastKind
      double_cast.py     双重转换判定表
      literal.py         字面量后缀改写
      const_eval.py      常量求值
      casts.py           remove_redundant_casts / convert_cast_as_ptr

快速使用示例：

    from castnorm import refactor_string

    result = refactor_string(source_code, ['remove_redundant_casts'])
    if result.diags.has_errors:
        print(result.diags.report())
    else:
        print(result.source)
"""

from .pipeline import CastFrontend, FrontendResult, RefactorResult, refactor_string
from .command import Registry, Transform, register_commands, default_registry
from .error import Diagnostic, DiagnosticBag, InternalInvariantError
from .semantic.type import (
    RType, IntType, FloatType, PointerType, RefType, ArrayType, SliceType,
)

__all__ = [
    'CastFrontend', 'FrontendResult', 'RefactorResult', 'refactor_string',
    'Registry', 'Transform', 'register_commands', 'default_registry',
    'Diagnostic', 'DiagnosticBag', 'InternalInvariantError',
    'RType', 'IntType', 'FloatType', 'PointerType', 'RefType', 'ArrayType', 'SliceType',
]
