"""
castnorm 转换改写命令
======================
  remove_redundant_casts
      删除 `e as T`（e 已经是 T 类型）这样的冗余转换；
      对 `e as T1 as T2` 这样的双重转换，按判定表删除一层或两层；
      对 `X_ty1 as ty2` / `-X_ty1 as ty2` 把转换并入字面量后缀。

  convert_cast_as_ptr
      `e as *const T`（e: &[T] / &[T; N]）改写为 `e.as_ptr()`，
      `e as *mut T`（e: &mut [T] / &mut [T; N]）改写为 `e.as_mut_ptr()`。

两个命令都是纯函数式的：树按后序重建，外层转换看到的是
已经改写过的操作数。
"""

from __future__ import annotations
import logging

from castnorm.command import Transform
from castnorm.error import InternalInvariantError
from castnorm.semantic.analyzer import resolved_type
from castnorm.semantic.type import (
    PointerType, RefType, ArrayType, SliceType, is_error,
)
from castnorm.tree.printer import format_expr
from castnorm.tree.transformer import (
    TranslationUnit, Expr, CastExpr, Neg, MethodCall, LITERAL_NODES,
)
from castnorm.tree.visitor import rewrite_expressions

from .cast_kind import classify
from .const_eval import eval_const
from .double_cast import DoubleCastAction, check_double_cast
from .literal import replace_suffix

_log = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────────────────
# remove_redundant_casts
# ──────────────────────────────────────────────────────────────────────────────

class RemoveRedundantCasts(Transform):
    name = 'remove_redundant_casts'

    def transform(self, unit: TranslationUnit) -> TranslationUnit:
        self.rewrites = 0
        return rewrite_expressions(unit, self._visit)

    def _visit(self, expr: Expr) -> Expr:
        if not isinstance(expr, CastExpr):
            return expr
        result = self.simplify(expr)
        if result is not expr:
            self.rewrites += 1
            _log.debug("%s → %s", format_expr(expr), format_expr(result))
        return result

    def simplify(self, cast: CastExpr) -> Expr:
        """化简一个转换节点（操作数已经化简过）；无法化简时原样返回"""
        operand = cast.expr
        src_ty = resolved_type(operand)
        dst_ty = resolved_type(cast)
        if is_error(src_ty) or is_error(dst_ty):
            return cast

        if src_ty == dst_ty:
            return operand

        if isinstance(operand, CastExpr):
            return self._double_cast(cast, operand)

        if isinstance(operand, LITERAL_NODES):
            return self._fold_literal(cast, operand, negated=False)

        if isinstance(operand, Neg) and isinstance(operand.operand, LITERAL_NODES):
            return self._fold_literal(cast, operand.operand, negated=True)

        return cast

    def _double_cast(self, cast: CastExpr, inner: CastExpr) -> Expr:
        innermost = inner.expr
        e_ty  = resolved_type(innermost)
        t1_ty = resolved_type(inner.target_type)
        t2_ty = resolved_type(cast)
        if is_error(e_ty) or is_error(t1_ty):
            return cast
        if t1_ty == t2_ty:
            raise InternalInvariantError(
                f"双重转换 '{format_expr(cast)}' 的中间类型与目标类型相同，"
                f"外层转换应当已被删除")

        action = check_double_cast(classify(e_ty), classify(t1_ty), classify(t2_ty))

        # 位模式相同但静态类型不同（例如两种指针）时不能整体删除，退化为删除内层
        if action == DoubleCastAction.REMOVE_BOTH and e_ty != t2_ty:
            action = DoubleCastAction.REMOVE_INNER

        if action == DoubleCastAction.REMOVE_BOTH:
            return innermost
        if action == DoubleCastAction.REMOVE_INNER:
            fused = cast.replace(expr=innermost)
            # 新的转换本身可能还能继续化简
            return self.simplify(fused)
        return cast

    def _fold_literal(self, cast: CastExpr, lit, negated: bool) -> Expr:
        target = resolved_type(cast)
        new_lit = replace_suffix(lit, target)
        if new_lit is None:
            return cast

        if negated:
            candidate = cast.expr.replace(operand=new_lit)
            candidate.ty = target
        else:
            candidate = new_lit

        before = eval_const(cast)
        after  = eval_const(candidate)
        _log.debug("checking %s == %s: %r == %r",
                   format_expr(cast), format_expr(candidate), before, after)
        if after is not None and after == before:
            return candidate
        return cast


# ──────────────────────────────────────────────────────────────────────────────
# convert_cast_as_ptr
# ──────────────────────────────────────────────────────────────────────────────

class ConvertCastAsPtr(Transform):
    name = 'convert_cast_as_ptr'

    def transform(self, unit: TranslationUnit) -> TranslationUnit:
        self.rewrites = 0
        return rewrite_expressions(unit, self._visit)

    def _visit(self, expr: Expr) -> Expr:
        if not isinstance(expr, CastExpr):
            return expr

        target = resolved_type(expr)
        src = resolved_type(expr.expr)
        if not isinstance(target, PointerType) or not isinstance(src, RefType):
            return expr
        seq = src.pointee
        if not isinstance(seq, (ArrayType, SliceType)):
            return expr
        if seq.element_type != target.pointee:
            return expr

        if target.mutable:
            if not src.mutable:
                return expr
            method = 'as_mut_ptr'
        else:
            method = 'as_ptr'

        call = MethodCall(receiver=expr.expr, method=method, args=[])
        call.line, call.col = expr.line, expr.col
        call.ty = target
        self.rewrites += 1
        _log.debug("%s → %s", format_expr(expr), format_expr(call))
        return call
