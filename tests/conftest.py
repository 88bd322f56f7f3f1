import pytest

from castnorm.pipeline import CastFrontend
from castnorm.semantic.type import RType
from castnorm.tree.printer import format_expr
from castnorm.tree.transformer import CastExpr, TypeNode


@pytest.fixture(scope='session')
def frontend():
    return CastFrontend()


@pytest.fixture
def analyze(frontend):
    """解析 + 类型分析，要求没有错误，返回 AST"""
    def _analyze(source):
        result = frontend.process_string(source)
        assert result.success, result.diags.report()
        return result.ast
    return _analyze


@pytest.fixture
def refactor(frontend):
    """运行改写命令，要求没有错误，返回 RefactorResult"""
    def _refactor(source, *commands):
        result = frontend.refactor(source, commands or ['remove_redundant_casts'])
        assert not result.diags.has_errors, result.diags.report()
        return result
    return _refactor


@pytest.fixture
def simplify(refactor):
    """
    把表达式放进 `fn f(params) -> ret { return expr; }`，
    运行改写后返回 return 表达式的文本。
    """
    def _simplify(params, ret, expr, *commands):
        source = f"fn f({params}) -> {ret} {{ return {expr}; }}"
        result = refactor(source, *commands)
        fn = result.ast.items[0]
        return format_expr(fn.body.stmts[-1].value)
    return _simplify


def make_cast(expr, rtype: RType) -> CastExpr:
    """手工构造一个已标注类型的转换节点"""
    spec = TypeNode(kind='named', name=repr(rtype))
    spec.ty = rtype
    node = CastExpr(expr=expr, target_type=spec)
    node.ty = rtype
    return node


@pytest.fixture
def cast_node():
    return make_cast
