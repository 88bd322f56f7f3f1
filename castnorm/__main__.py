"""
castnorm 命令行
================

    castnorm [-c CMD]... [-o OUT] [--check] [-D] [--list] [-v] FILE|-

不给 -c 时运行 remove_redundant_casts。
-D（--deny-warnings）把警告当作错误，例如越界的字面量。
退出码：0 成功；1 有错误诊断，或 --check 模式下还有待做的改写；
2 改写引擎内部不变量被破坏。
"""

import argparse
import logging
import sys
from pathlib import Path

from castnorm.command import default_registry, UnknownCommandError
from castnorm.error import InternalInvariantError
from castnorm.pipeline import CastFrontend

_log = logging.getLogger('castnorm')

DEFAULT_COMMANDS = ['remove_redundant_casts']


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='castnorm',
        description='删除冗余的 as 转换，并保证运行时值不变')
    parser.add_argument('file', nargs='?', default=None,
                        help="源文件路径，'-' 表示标准输入")
    parser.add_argument('-c', '--command', dest='commands', action='append',
                        metavar='CMD', help='要运行的改写命令，可重复，按顺序执行')
    parser.add_argument('-o', '--output', metavar='OUT',
                        help='输出文件（默认写到标准输出）')
    parser.add_argument('--check', action='store_true',
                        help='只检查：还有可做的改写时以退出码 1 结束，不输出源码')
    parser.add_argument('-D', '--deny-warnings', action='store_true',
                        help='警告按错误处理：有任何警告时不改写，以退出码 1 结束')
    parser.add_argument('--list', action='store_true',
                        help='列出所有可用命令')
    parser.add_argument('-v', '--verbose', action='count', default=0,
                        help='-v 输出改写统计，-vv 输出每一次等价性检查')
    return parser


def _read_source(path: str) -> str:
    if path == '-':
        return sys.stdin.read()
    return Path(path).read_text(encoding='utf-8')


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format='%(levelname)s %(name)s: %(message)s')

    registry = default_registry()
    if args.list:
        for name in registry.names():
            print(name)
        return 0

    if args.file is None:
        parser.error('缺少输入文件')

    commands = args.commands or DEFAULT_COMMANDS
    for name in commands:
        if name not in registry:
            parser.error(str(UnknownCommandError(name)))

    try:
        source = _read_source(args.file)
    except OSError as e:
        print(f"castnorm: 无法读取 {args.file}: {e}", file=sys.stderr)
        return 1

    source_name = '<stdin>' if args.file == '-' else args.file
    frontend = CastFrontend(deny_warnings=args.deny_warnings)
    try:
        result = frontend.refactor(source, commands, registry=registry,
                                   source_name=source_name)
    except InternalInvariantError as e:
        _log.error("内部不变量被破坏: %s", e)
        return 2

    if result.diags.count:
        print(result.diags.report(), file=sys.stderr)
    if result.diags.has_errors:
        return 1

    if args.check:
        if result.changed:
            print(f"{source_name}: 有 {sum(result.rewrites.values())} 处可改写",
                  file=sys.stderr)
            return 1
        return 0

    if args.output:
        Path(args.output).write_text(result.source, encoding='utf-8')
    else:
        sys.stdout.write(result.source)
    return 0


if __name__ == '__main__':
    sys.exit(main())
