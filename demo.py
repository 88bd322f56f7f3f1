#!/usr/bin/env python3
"""
castnorm 使用示例
==================
展示如何用分析流水线检查一段代码，再按名字运行改写命令。

假设目录结构：
  your_project/
    castnorm/           ← 本项目代码
    samples/            ← 待处理的 .rs 片段
    demo.py             ← 本文件
"""

import logging
import sys
from pathlib import Path

from castnorm import CastFrontend, default_registry


# ════════════════════════════════════════════════════════════════════════════
# 示例 1：分析并改写内联字符串
# ════════════════════════════════════════════════════════════════════════════

SAMPLE_SOURCE = r"""
type Byte = u8;

fn checksum(buf: &[u8], seed: i32) -> u32 {
    let p = buf as *const u8;
    let wide = seed as i64 as i32;
    let b: Byte = buf[0] as u8;
    let scaled = 2.5 as f32;
    let mask = -1 as i64;
    let byte = wide as i8 as u8;
    return (b as u16 as u32) + byte as u32;
}
"""


def demo_inline():
    print("=" * 60)
    print("示例 1：分析并改写内联源码")
    print("=" * 60)

    frontend = CastFrontend()

    ast = frontend.transform_only(SAMPLE_SOURCE)
    print("AST 类型:", type(ast).__name__)         # 应该是 'TranslationUnit'

    result = frontend.process_string(SAMPLE_SOURCE, source_name="demo.rs")
    if result.diags.count > 0:
        print(result.diags.report())
    else:
        print("✓ 分析成功，无错误/警告")

    if result.symbol_table:
        print("\n符号表：")
        print(result.symbol_table.dump())

    refactored = frontend.refactor(
        SAMPLE_SOURCE, ['convert_cast_as_ptr', 'remove_redundant_casts'],
        source_name="demo.rs")
    print("\n改写统计：", refactored.rewrites)
    print("\n改写结果：")
    print(refactored.source)
    return refactored


# ════════════════════════════════════════════════════════════════════════════
# 示例 2：批量检查 .rs 文件
# ════════════════════════════════════════════════════════════════════════════

def demo_batch(samples_dir: str, commands=('remove_redundant_casts',)):
    """
    对目录下所有 .rs 文件运行改写（不写回），汇总每个文件的可改写处数。

    Args:
        samples_dir: 包含 .rs 文件的目录
        commands:    依次运行的命令名
    """
    print("=" * 60)
    print("示例 2：批量检查")
    print("=" * 60)

    frontend = CastFrontend()
    registry = default_registry()

    samples = sorted(Path(samples_dir).rglob("*.rs"))
    print(f"找到 {len(samples)} 个 .rs 文件\n")

    total_rewrites = 0
    failed_files   = []

    for sample in samples:
        source = sample.read_text(encoding='utf-8', errors='replace')
        result = frontend.refactor(source, commands, registry=registry,
                                   source_name=str(sample))
        errors = len(result.diags.errors)
        if errors > 0:
            failed_files.append(sample)
            print(f"✗ {sample.name}: {errors} error(s)")
            for d in result.diags.errors:
                print(f"  [{sample.name}] {d}")
            continue

        count = sum(result.rewrites.values())
        total_rewrites += count
        if count:
            print(f"△ {sample.name}: {count} 处可改写")
        else:
            print(f"✓ {sample.name}")

    print(f"\n{'─' * 60}")
    print(f"总计: {total_rewrites} 处可改写")
    print(f"失败文件: {len(failed_files)} / {len(samples)}")


# ════════════════════════════════════════════════════════════════════════════
# 示例 3：只用判定表与常量求值（不经过 Lark）
# ════════════════════════════════════════════════════════════════════════════

def demo_engine_only():
    """
    直接调用双重转换判定表与常量求值器。
    适合单独检查某个类型组合，或集成到其他工具链。
    """
    print("=" * 60)
    print("示例 3：直接使用判定表与常量求值")
    print("=" * 60)

    from castnorm.semantic.type import I8, I32, I64, U8, U32, F64
    from castnorm.transform.cast_kind import classify
    from castnorm.transform.double_cast import check_double_cast
    from castnorm.transform.const_eval import eval_const
    from castnorm.tree.transformer import CastExpr, TypeNode, Neg, FloatLiteral

    triples = [
        (I32, I64, I32, "往返"),
        (I32, I8, U8, "截断后换符号"),
        (U8, I8, I32, "换符号后符号扩展"),
        (F64, I32, U32, "浮点 → 整数 → 截断"),
    ]
    print("\ncheck_double_cast：")
    for e, t1, t2, desc in triples:
        action = check_double_cast(classify(e), classify(t1), classify(t2))
        print(f"  {e} as {t1} as {t2} → {action.name}  ← {desc}")

    # 手动构建 -1.0 as u32
    lit = FloatLiteral(text='1.0')
    spec = TypeNode(kind='named', name='u32')
    spec.ty = U32
    cast = CastExpr(expr=Neg(operand=lit), target_type=spec)
    cast.ty = U32
    print(f"\neval_const(-1.0 as u32) = {eval_const(cast)!r}")


# ════════════════════════════════════════════════════════════════════════════
# 主入口
# ════════════════════════════════════════════════════════════════════════════

if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(levelname)s %(name)s: %(message)s')

    demo_inline()
    demo_engine_only()

    if len(sys.argv) > 1:
        demo_batch(sys.argv[1])
