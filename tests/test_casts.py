import pytest

from castnorm.command import Registry, UnknownCommandError, default_registry
from castnorm.error import InternalInvariantError
from castnorm.semantic.type import I16, I32, I64
from castnorm.transform.casts import RemoveRedundantCasts, ConvertCastAsPtr
from castnorm.tree.printer import format_unit
from castnorm.tree.transformer import Identifier


class TestRedundantSingleCast:
    def test_same_type(self, simplify):
        assert simplify('x: i32', 'i32', 'x as i32') == 'x'

    def test_alias_resolves_to_same_type(self, refactor):
        result = refactor("type Word = u32;\nfn f(x: u32) -> Word { return x as Word; }")
        assert 'return x;' in result.source

    def test_different_type_is_kept(self, simplify):
        assert simplify('x: i32', 'i64', 'x as i64') == 'x as i64'

    def test_nested_in_expression(self, simplify):
        assert simplify('a: u8, b: u8', 'u8', 'a as u8 + b as u8') == 'a + b'


class TestDoubleCast:
    def test_extend_then_truncate_back(self, simplify):
        assert simplify('x: i32', 'i32', 'x as i64 as i32') == 'x'

    def test_two_sign_flips(self, simplify):
        assert simplify('x: i32', 'i32', 'x as u32 as i32') == 'x'

    def test_chain_of_zero_extensions(self, simplify):
        assert simplify('x: u8', 'u32', 'x as u16 as u32') == 'x as u32'

    def test_truncate_then_sign_flip(self, simplify):
        assert simplify('x: i32', 'u8', 'x as i8 as u8') == 'x as u8'

    def test_sign_flip_then_extend_is_kept(self, simplify):
        assert simplify('x: u8', 'i32', 'x as i8 as i32') == 'x as i8 as i32'

    def test_int_float_int_is_kept(self, simplify):
        assert simplify('x: i64', 'i32', 'x as f32 as i32') == 'x as f32 as i32'

    def test_float_int_truncate_is_kept(self, simplify):
        assert simplify('x: f64', 'u32', 'x as i32 as u32') == 'x as i32 as u32'

    def test_triple_chain(self, simplify):
        assert simplify('x: i32', 'i16', 'x as i64 as i32 as i16') == 'x as i16'

    def test_pointers_with_different_pointees(self, simplify):
        # 两种指针的位模式相同，但静态类型不同：只能删除内层
        got = simplify('p: *const u16', '*const i8', 'p as *const u8 as *const i8')
        assert got == 'p as *const i8'

    def test_pointer_round_trip_through_usize(self, simplify):
        got = simplify('p: *const u8', '*const u8', 'p as usize as *const u8')
        assert got == 'p'

    def test_parenthesized_operand(self, simplify):
        assert simplify('a: i32, b: i32', 'i32', '(a + b) as i64 as i32') == 'a + b'


class TestLiteralFolding:
    def test_int_to_float(self, simplify):
        assert simplify('', 'f64', '1i32 as f64') == '1f64'

    def test_unsuffixed_to_wider(self, simplify):
        assert simplify('', 'u64', '7 as u64') == '7u64'

    def test_out_of_range_is_kept(self, simplify):
        assert simplify('', 'i8', '200 as i8') == '200 as i8'
        assert simplify('', 'u8', '300 as u8') == '300 as u8'

    def test_negative_literal(self, simplify):
        assert simplify('', 'i64', '-1 as i64') == '-1i64'

    def test_negative_to_unsigned_is_kept(self, simplify):
        assert simplify('', 'u32', '-1 as u32') == '-1 as u32'

    def test_float_narrowing(self, simplify):
        assert simplify('', 'f32', '1.5 as f32') == '1.5f32'

    def test_float_to_int_truncates(self, simplify):
        assert simplify('', 'i32', '2.5 as i32') == '2i32'

    def test_inexact_float_narrowing(self, simplify):
        # 0.1 在 f32 里不精确，但最短形式按 f32 解析回来仍是同一个值
        assert simplify('', 'f32', '0.1 as f32') == '0.1f32'

    def test_double_cast_then_fold(self, simplify):
        # -1 as u8 不能折叠；外层删除内层后 -1 as i8 可以
        assert simplify('', 'i8', '-1 as u8 as i8') == '-1i8'

    def test_bool_literal_is_kept(self, simplify):
        assert simplify('', 'u8', 'true as u8') == 'true as u8'


class TestOverflowingLiterals:
    """超出推断类型范围的字面量在运行时会回绕，不能把它的数学值写进新后缀"""

    def test_redundant_cast_removed_but_not_folded(self, simplify):
        # 2147483648 作为 i32 是 -2147483648；不能变成 2147483648i64
        assert simplify('', 'i64', '2147483648 as i32 as i64') == '2147483648 as i64'

    def test_unsigned_target(self, simplify):
        assert simplify('', 'u64', '2147483648 as u64') == '2147483648 as u64'

    def test_negative_beyond_i32(self, simplify):
        assert simplify('', 'i64', '-2147483649 as i64') == '-2147483649 as i64'

    def test_i32_min_is_folded(self, simplify):
        assert simplify('', 'i64', '-2147483648 as i64') == '-2147483648i64'

    def test_suffixed_literal(self, simplify):
        assert simplify('', 'i16', '128i8 as i16') == '128i8 as i16'

    def test_negative_suffixed_literal(self, simplify):
        assert simplify('', 'i16', '-128i8 as i16') == '-128i16'

    def test_warning_is_reported_and_output_is_stable(self, refactor):
        once = refactor("fn f() -> i64 { return 2147483648 as i32 as i64; }")
        assert len(once.diags.warnings) == 1
        assert 'return 2147483648 as i64;' in once.source
        twice = refactor(once.source)
        assert twice.source == once.source
        assert not twice.changed


class TestRemoveRedundantCastsCommand:
    SOURCE = (
        "fn f(x: i32, y: u8) -> i64 {\n"
        "    let a: i32 = x as i64 as i32;\n"
        "    let b = y as u16 as u32;\n"
        "    return 1 as i64;\n"
        "}\n"
    )

    def test_output(self, refactor):
        result = refactor(self.SOURCE)
        assert result.source == (
            "fn f(x: i32, y: u8) -> i64 {\n"
            "    let a: i32 = x;\n"
            "    let b = y as u32;\n"
            "    return 1i64;\n"
            "}\n"
        )
        assert result.rewrites == {'remove_redundant_casts': 3}
        assert result.changed

    def test_idempotent(self, refactor):
        once = refactor(self.SOURCE)
        twice = refactor(once.source)
        assert twice.source == once.source
        assert not twice.changed

    def test_input_tree_is_not_modified(self, analyze):
        ast = analyze(self.SOURCE)
        before = format_unit(ast)
        command = RemoveRedundantCasts()
        out = command.transform(ast)
        assert format_unit(ast) == before
        assert format_unit(out) != before
        assert command.rewrites == 3

    def test_no_casts(self, refactor):
        result = refactor("fn f(x: i32) -> i32 { return x + 1; }")
        assert not result.changed
        assert result.rewrites == {'remove_redundant_casts': 0}

    def test_source_with_errors_is_untouched(self, frontend):
        source = "fn f(x: i32) -> i32 { return y as i32; }"
        result = frontend.refactor(source, ['remove_redundant_casts'])
        assert result.diags.has_errors
        assert result.source == source
        assert result.rewrites == {}

    def test_inconsistent_tree_is_an_internal_error(self, cast_node):
        x = Identifier(name='x')
        x.ty = I16
        inner = cast_node(x, I64)
        inner.ty = I32          # 与目标类型不一致
        outer = cast_node(inner, I64)
        with pytest.raises(InternalInvariantError):
            RemoveRedundantCasts().simplify(outer)


class TestConvertCastAsPtr:
    def test_slice_to_const_pointer(self, simplify):
        got = simplify('a: &[u8]', '*const u8', 'a as *const u8', 'convert_cast_as_ptr')
        assert got == 'a.as_ptr()'

    def test_mut_array_to_mut_pointer(self, simplify):
        got = simplify('a: &mut [u8; 4]', '*mut u8', 'a as *mut u8', 'convert_cast_as_ptr')
        assert got == 'a.as_mut_ptr()'

    def test_mut_slice_to_const_pointer(self, simplify):
        got = simplify('a: &mut [u8]', '*const u8', 'a as *const u8', 'convert_cast_as_ptr')
        assert got == 'a.as_ptr()'

    def test_shared_ref_to_mut_pointer_is_kept(self, simplify):
        got = simplify('a: &[u8; 4]', '*mut u8', 'a as *mut u8', 'convert_cast_as_ptr')
        assert got == 'a as *mut u8'

    def test_element_type_mismatch_is_kept(self, simplify):
        got = simplify('a: &[u8]', '*const i8', 'a as *const i8', 'convert_cast_as_ptr')
        assert got == 'a as *const i8'

    def test_not_a_sequence(self, simplify):
        got = simplify('a: &u8', '*const u8', 'a as *const u8', 'convert_cast_as_ptr')
        assert got == 'a as *const u8'

    def test_address_of_array(self, refactor):
        result = refactor(
            "fn f(buf: [u8; 16]) -> *const u8 { return &buf as *const u8; }",
            'convert_cast_as_ptr')
        assert 'return (&buf).as_ptr();' in result.source

    def test_followed_by_remove_redundant_casts(self, refactor):
        result = refactor(
            "fn f(a: &[u8]) -> *const u8 { return a as *const u8 as *const u8; }",
            'convert_cast_as_ptr', 'remove_redundant_casts')
        assert 'return a.as_ptr();' in result.source
        assert result.rewrites == {'convert_cast_as_ptr': 1,
                                   'remove_redundant_casts': 1}

    def test_rewritten_call_is_typed(self, analyze):
        ast = analyze("fn f(a: &[u16]) -> *const u16 { return a as *const u16; }")
        out = ConvertCastAsPtr().transform(ast)
        call = out.items[0].body.stmts[0].value
        assert call.method == 'as_ptr'
        assert repr(call.ty) == '*const u16'


class TestRegistry:
    def test_builtin_commands(self):
        reg = default_registry()
        assert reg.names() == ['convert_cast_as_ptr', 'remove_redundant_casts']
        assert 'remove_redundant_casts' in reg

    def test_fresh_instance_per_get(self):
        reg = default_registry()
        assert reg.get('remove_redundant_casts') is not reg.get('remove_redundant_casts')

    def test_unknown_command(self):
        with pytest.raises(UnknownCommandError) as exc:
            default_registry().get('remove_all_casts')
        assert 'remove_all_casts' in str(exc.value)

    def test_unknown_command_is_a_key_error(self):
        with pytest.raises(KeyError):
            default_registry().get('nope')

    def test_duplicate_registration(self):
        reg = Registry()
        reg.register('x', RemoveRedundantCasts)
        with pytest.raises(ValueError):
            reg.register('x', ConvertCastAsPtr)

    def test_refactor_checks_names_first(self, frontend):
        with pytest.raises(UnknownCommandError):
            frontend.refactor("fn f() {}", ['remove_redundant_casts', 'nope'])

    def test_run(self, analyze):
        ast = analyze("fn f(x: u8) -> u8 { return x as u8; }")
        out, count = default_registry().run('remove_redundant_casts', ast)
        assert 'return x;' in format_unit(out)
        assert count == 1
