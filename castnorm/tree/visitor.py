"""
castnorm 树改写器
==================
后序（子节点优先）遍历 AST，对每个表达式节点调用改写函数。

约定：
  - 改写函数接收一个表达式节点，返回替换它的节点（不变则原样返回）
  - 输入树从不被修改：子树有变化时父节点被浅拷贝后重新挂接，
    没有变化的子树在新旧两棵树之间共享
  - 外层节点看到的是子节点已经改写之后的形状
"""

from dataclasses import fields
from typing import Callable

from .transformer import ASTNode, Expr, TypeNode


RewriteFn = Callable[[Expr], Expr]


def rewrite_expressions(root: ASTNode, fn: RewriteFn) -> ASTNode:
    """
    返回改写后的新树。没有任何改动时返回 root 本身。
    """
    return _rewrite(root, fn)


def _rewrite(node, fn: RewriteFn):
    if not isinstance(node, ASTNode) or isinstance(node, TypeNode):
        return node

    changes = {}
    for f in fields(node):
        value = getattr(node, f.name)
        if isinstance(value, ASTNode):
            new_value = _rewrite(value, fn)
        elif isinstance(value, list):
            new_value = [_rewrite(v, fn) for v in value]
            if all(a is b for a, b in zip(new_value, value)):
                new_value = value
        else:
            continue
        if new_value is not value:
            changes[f.name] = new_value

    if changes:
        node = node.replace(**changes)
    if isinstance(node, Expr):
        node = fn(node)
    return node
