import pytest

from castnorm import CastFrontend, refactor_string
from castnorm.error import DiagnosticBag, Severity
from castnorm.pipeline import GRAMMAR_FILE
from castnorm.semantic.type import (
    I32, U8, U16, U64, USIZE, F64, RefType, SliceType, NamedType,
)
from castnorm.tree.printer import format_expr, format_unit
from castnorm.tree.transformer import FnDef, TypeAlias, CastExpr, IntLiteral


def _messages(result):
    return [d.message for d in result.diags]


def _return_value(ast, fn_index=0):
    return ast.items[fn_index].body.stmts[-1].value


# ══════════════════════════════════════════════════════════════════════════
# 解析 & AST
# ══════════════════════════════════════════════════════════════════════════

class TestParsing:
    def test_items(self, frontend):
        ast = frontend.transform_only(
            "type Byte = u8;\nfn f(x: i32, y: u8,) -> i64 { return x as i64; }")
        assert isinstance(ast.items[0], TypeAlias)
        fn = ast.items[1]
        assert isinstance(fn, FnDef)
        assert [p.name for p in fn.params] == ['x', 'y']
        assert isinstance(fn.body.stmts[0].value, CastExpr)

    def test_positions(self, frontend):
        ast = frontend.transform_only("\nfn f() {}")
        assert ast.items[0].line == 2

    def test_cast_is_left_associative(self, frontend):
        ast = frontend.transform_only("fn f(x: u8) { return x as u16 as u32; }")
        outer = _return_value(ast)
        assert outer.target_type.name == 'u32'
        assert outer.expr.target_type.name == 'u16'

    def test_unary_binds_tighter_than_cast(self, frontend):
        ast = frontend.transform_only("fn f() { return -1 as u8; }")
        cast = _return_value(ast)
        assert isinstance(cast, CastExpr)
        assert format_expr(cast.expr) == '-1'

    @pytest.mark.parametrize('text, value, suffix', [
        ('0xff', 255, ''), ('0o17', 15, ''), ('0b101', 5, ''),
        ('1_000', 1000, ''), ('7u8', 7, 'u8'), ('3usize', 3, 'usize'),
    ])
    def test_int_literals(self, frontend, text, value, suffix):
        lit = _return_value(frontend.transform_only(f"fn f() {{ return {text}; }}"))
        assert isinstance(lit, IntLiteral)
        assert lit.value == value
        assert lit.suffix == suffix

    def test_comments_are_ignored(self, frontend):
        ast = frontend.transform_only("// leading\nfn f() { // inside\n}")
        assert len(ast.items) == 1

    def test_custom_grammar_text(self):
        fe = CastFrontend(grammar_text=GRAMMAR_FILE.read_text(encoding='utf-8'))
        assert fe.process_string("fn f() {}").success


# ══════════════════════════════════════════════════════════════════════════
# 类型分析
# ══════════════════════════════════════════════════════════════════════════

class TestAnalysis:
    def test_alias_is_resolved(self, analyze):
        ast = analyze("type Byte = u8;\nfn f(x: Byte) -> u8 { return x; }")
        assert ast.items[1].params[0].ty == U8

    def test_lifetime_is_erased(self, analyze):
        ast = analyze("fn f(a: &'a [u8]) -> usize { return a.len(); }")
        assert ast.items[0].params[0].ty == RefType(SliceType(U8))
        assert _return_value(ast).ty == USIZE

    def test_call_before_definition(self, analyze):
        analyze("fn a() -> i32 { return b(); }\nfn b() -> i32 { return 1; }")

    def test_shadowing(self, analyze):
        ast = analyze("fn f() -> u32 { let x = 1u8; let x = x as u32; return x; }")
        assert _return_value(ast).ty.name == 'u32'

    def test_symbol_table(self, frontend):
        result = frontend.process_string("fn f(x: i32) -> i64 { return x as i64; }")
        sym = result.symbol_table.lookup('f')
        assert repr(sym.rtype) == 'fn(i32) -> i64'
        assert 'f' in result.symbol_table.dump()

    def test_opaque_types(self):
        fe = CastFrontend(opaque_types=['Foo'])
        result = fe.process_string("fn f(x: &Foo) -> *const Foo { return x as *const Foo; }")
        assert result.success
        assert result.ast.items[0].params[0].ty == RefType(NamedType('Foo'))


class TestLiteralInference:
    def test_defaults(self, analyze):
        ast = analyze("fn f() { let a = 1; let b = 1.5; let c = -1; }")
        a, b, c = ast.items[0].body.stmts
        assert a.ty == I32
        assert b.ty == F64
        assert c.ty == I32

    def test_let_annotation(self, analyze):
        ast = analyze("fn f() { let a: u8 = 1; }")
        assert ast.items[0].body.stmts[0].init.ty == U8

    def test_return_type(self, analyze):
        ast = analyze("fn f() -> u64 { return 1; }")
        assert _return_value(ast).ty == U64

    def test_other_operand(self, analyze):
        ast = analyze("fn f(x: u64) -> u64 { return 1 + x; }")
        assert _return_value(ast).left.ty == U64

    def test_call_argument(self, analyze):
        ast = analyze("fn g(a: u16) -> u16 { return a; }\nfn f() -> u16 { return g(7); }")
        assert _return_value(ast, 1).args[0].ty == U16

    def test_index(self, analyze):
        ast = analyze("fn f(a: [u8; 4]) -> u8 { return a[0]; }")
        assert _return_value(ast).index.ty == USIZE

    def test_cast_operand_keeps_default(self, analyze):
        ast = analyze("fn f() -> u8 { return 1 as u8; }")
        assert _return_value(ast).expr.ty == I32


class TestDiagnostics:
    def test_unknown_name(self, frontend):
        result = frontend.process_string("fn f() -> i32 {\n    return y;\n}")
        assert not result.success
        err = result.diags.errors[0]
        assert "'y'" in err.message
        assert err.line == 2

    def test_unknown_type(self, frontend):
        result = frontend.process_string("fn f(x: Foo) {}")
        assert any("未知类型 'Foo'" in m for m in _messages(result))

    def test_syntax_error(self, frontend):
        result = frontend.process_string("fn f( {")
        assert result.ast is None
        assert result.diags.errors[0].message.startswith('语法错误')

    def test_lexical_error(self, frontend):
        result = frontend.process_string("fn f() { $ }")
        assert result.ast is None
        assert result.diags.errors[0].message.startswith('词法错误')

    def test_return_type_mismatch(self, frontend):
        result = frontend.process_string("fn f(x: i32) -> i64 { return x; }")
        assert result.diags.has_errors

    def test_no_implicit_numeric_conversion(self, frontend):
        result = frontend.process_string("fn f(x: u8, y: u16) -> u16 { return x + y; }")
        assert result.diags.has_errors

    def test_negating_unsigned(self, frontend):
        result = frontend.process_string("fn f(x: u32) -> u32 { return -x; }")
        assert result.diags.has_errors

    def test_as_mut_ptr_needs_mutable_receiver(self, frontend):
        result = frontend.process_string("fn f(a: &[u8]) -> *mut u8 { return a.as_mut_ptr(); }")
        assert result.diags.has_errors

    def test_index_must_be_usize(self, frontend):
        result = frontend.process_string("fn f(a: [u8; 4], i: i32) -> u8 { return a[i]; }")
        assert result.diags.has_errors

    def test_literal_out_of_range_is_a_warning(self, frontend):
        result = frontend.process_string("fn f() { let x: u8 = 256; }")
        assert result.success
        assert len(result.diags.warnings) == 1

    def test_invalid_cast_is_a_warning(self, frontend):
        result = frontend.process_string("fn f(x: bool) -> f32 { return x as f32; }")
        assert result.success
        assert result.diags.warnings

    def test_missing_file(self, frontend, tmp_path):
        result = frontend.process_file(tmp_path / 'missing.rs')
        assert result.ast is None
        assert '文件不存在' in result.diags.errors[0].message

    def test_process_file(self, frontend, tmp_path):
        path = tmp_path / 'ok.rs'
        path.write_text("fn f(x: u8) -> u8 { return x; }", encoding='utf-8')
        assert frontend.process_file(path).success


class TestDiagnosticBag:
    def test_empty(self):
        bag = DiagnosticBag()
        assert bag.report() == '没有诊断信息。'
        assert not bag.has_errors

    def test_counts_and_report(self):
        bag = DiagnosticBag('a.rs')
        bag.warning('w')
        bag.error('e', hint='h')
        assert bag.count == 2
        assert [d.severity for d in bag] == [Severity.WARNING, Severity.ERROR]
        report = bag.report()
        assert 'a.rs: error: e\n    = 提示: h' in report
        assert report.endswith('1 个错误，1 个警告')

    def test_position_from_node(self, frontend):
        result = frontend.process_string("fn f() -> i32 {\n    return y;\n}", 'b.rs')
        assert result.diags.report().startswith("b.rs:2:12: error: 未定义的名字 'y'")

    def test_position_from_token(self, frontend):
        err = frontend.process_string("fn f( {").diags.errors[0]
        assert (err.line, err.column) == (1, 7)

    def test_report_is_sorted_by_position(self):
        class At:
            def __init__(self, line):
                self.line, self.col = line, 1
        bag = DiagnosticBag()
        bag.error('second', At(2))
        bag.warning('first', At(1))
        assert [line.split(': ', 2)[2] for line in bag.report().splitlines()[:2]] == \
            ['first', 'second']

    def test_deny_warnings(self):
        bag = DiagnosticBag()
        bag.warning('w')
        bag.deny_warnings()
        assert bag.has_errors
        assert not bag.warnings

    def test_extend(self):
        a, b = DiagnosticBag(), DiagnosticBag()
        b.error('x')
        a.extend(b)
        assert a.has_errors

    def test_deny_warnings_blocks_rewrites(self):
        fe = CastFrontend(deny_warnings=True)
        source = "fn f() -> i64 { return 2147483648 as i32 as i64; }"
        result = fe.refactor(source, ['remove_redundant_casts'])
        assert result.diags.has_errors
        assert result.source == source
        assert result.rewrites == {}


# ══════════════════════════════════════════════════════════════════════════
# 打印器
# ══════════════════════════════════════════════════════════════════════════

class TestPrinter:
    @pytest.fixture
    def reprint(self, frontend):
        def _reprint(expr):
            ast = frontend.transform_only(f"fn f() {{ return {expr}; }}")
            return format_expr(_return_value(ast))
        return _reprint

    @pytest.mark.parametrize('source, expected', [
        ('(a + b) * c', '(a + b) * c'),
        ('a + (b * c)', 'a + b * c'),
        ('a - (b - c)', 'a - (b - c)'),
        ('(a - b) - c', 'a - b - c'),
        ('-(x as i8)', '-(x as i8)'),
        ('(-x) as i64', '-x as i64'),
        ('- -x', '- -x'),
        ('-(-x)', '- -x'),
        ('&(&x)', '& &x'),
        ('(x as i64) as i32', 'x as i64 as i32'),
        ('(a + b) as u8', '(a + b) as u8'),
        ('(a < b) == c', '(a < b) == c'),
        ('(&a)[0]', '(&a)[0]'),
        ('(*p).len()', '(*p).len()'),
        ('f(1, (x))', 'f(1, x)'),
        ('!(a && b) || c', '!(a && b) || c'),
    ])
    def test_minimal_parentheses(self, reprint, source, expected):
        assert reprint(source) == expected

    def test_unit_layout(self, frontend):
        source = ("type T = *mut [u8; 4];\n"
                  "fn a() {}\n"
                  "fn b(x: &'a mut T, g: fn(i32) -> u8) -> () { let mut y: T = *x; return; }\n")
        ast = frontend.transform_only(source)
        assert format_unit(ast) == (
            "type T = *mut [u8; 4];\n"
            "\n"
            "fn a() {}\n"
            "\n"
            "fn b(x: &mut T, g: fn(i32) -> u8) -> () {\n"
            "    let mut y: T = *x;\n"
            "    return;\n"
            "}\n"
        )

    def test_reparse_is_stable(self, frontend):
        source = (
            "fn f(a: &[u8], p: *const u16, x: f32) -> bool {\n"
            "    let n = a.len() as u32 >> 2 & 0xff;\n"
            "    let c = 'c' as u32 + -1i64 as u32;\n"
            "    return (x as f64 as i32 + 1) * 2 < n as i32 || *p == 0u16;\n"
            "}\n"
        )
        once = format_unit(frontend.transform_only(source))
        twice = format_unit(frontend.transform_only(once))
        assert once == twice == source


class TestRefactorString:
    def test_convenience_api(self):
        result = refactor_string("fn f(x: i32) -> i32 { return x as i32; }",
                                 ['remove_redundant_casts'])
        assert result.source == "fn f(x: i32) -> i32 {\n    return x;\n}\n"
        assert result.changed

    def test_no_commands_reformats(self):
        result = refactor_string("fn f(x: i32) -> i32 {return x;}", [])
        assert result.source == "fn f(x: i32) -> i32 {\n    return x;\n}\n"
        assert not result.changed
