"""
castnorm 命令注册表
====================
改写命令按名字注册，由流水线或命令行按名字取出并依次运行。
每个命令都不带参数；每次 get() 都构造一个新的命令实例，
命令之间、两次运行之间不共享状态。
"""

from __future__ import annotations
import logging
from typing import Callable

from castnorm.tree.transformer import TranslationUnit

_log = logging.getLogger(__name__)


class Transform:
    """
    改写命令基类。

    子类实现 transform()：接收一棵已完成类型分析的树，返回新树，
    不修改输入。rewrites 记录最近一次运行做了多少处改写。
    """
    name = ''

    def __init__(self):
        self.rewrites = 0

    def transform(self, unit: TranslationUnit) -> TranslationUnit:
        raise NotImplementedError

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.name!r}>"


Builder = Callable[[], Transform]


class UnknownCommandError(KeyError):
    """按名字找不到命令"""

    def __str__(self):
        return f"未知命令 '{self.args[0]}'"


class Registry:
    """命令名 → 构造函数"""

    def __init__(self):
        self._builders: dict[str, Builder] = {}

    def register(self, name: str, builder: Builder):
        if name in self._builders:
            raise ValueError(f"命令 '{name}' 重复注册")
        self._builders[name] = builder

    def get(self, name: str) -> Transform:
        try:
            builder = self._builders[name]
        except KeyError:
            raise UnknownCommandError(name) from None
        return builder()

    def names(self) -> list[str]:
        return sorted(self._builders)

    def __contains__(self, name: str) -> bool:
        return name in self._builders

    def run(self, name: str, unit: TranslationUnit) -> tuple[TranslationUnit, int]:
        """运行单个命令，返回改写后的树与改写次数"""
        command = self.get(name)
        result = command.transform(unit)
        _log.info("%s: %d 处改写", name, command.rewrites)
        return result, command.rewrites


def register_commands(reg: Registry):
    from castnorm.transform.casts import RemoveRedundantCasts, ConvertCastAsPtr

    reg.register('remove_redundant_casts', RemoveRedundantCasts)
    reg.register('convert_cast_as_ptr', ConvertCastAsPtr)


def default_registry() -> Registry:
    """注册了全部内置命令的注册表"""
    reg = Registry()
    register_commands(reg)
    return reg
