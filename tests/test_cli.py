import io
import logging
import sys

import pytest

from castnorm.__main__ import main
from castnorm.error import InternalInvariantError
from castnorm.pipeline import CastFrontend

SOURCE = "fn f(x: i32) -> i32 { return x as i64 as i32; }\n"
CLEAN = "fn f(x: i32) -> i32 {\n    return x;\n}\n"


@pytest.fixture
def src_file(tmp_path):
    path = tmp_path / 'input.rs'
    path.write_text(SOURCE, encoding='utf-8')
    return path


class TestCommandLine:
    def test_list(self, capsys):
        assert main(['--list']) == 0
        out = capsys.readouterr().out
        assert out.split() == ['convert_cast_as_ptr', 'remove_redundant_casts']

    def test_rewrite_to_stdout(self, src_file, capsys):
        assert main([str(src_file)]) == 0
        assert capsys.readouterr().out == CLEAN

    def test_output_file(self, src_file, tmp_path, capsys):
        out_path = tmp_path / 'out.rs'
        assert main([str(src_file), '-o', str(out_path)]) == 0
        assert out_path.read_text(encoding='utf-8') == CLEAN
        assert capsys.readouterr().out == ''

    def test_stdin(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, 'stdin', io.StringIO(SOURCE))
        assert main(['-']) == 0
        assert capsys.readouterr().out == CLEAN

    def test_explicit_commands(self, tmp_path, capsys):
        path = tmp_path / 'ptr.rs'
        path.write_text("fn f(a: &[u8]) -> *const u8 { return a as *const u8; }",
                        encoding='utf-8')
        assert main([str(path), '-c', 'convert_cast_as_ptr']) == 0
        assert 'return a.as_ptr();' in capsys.readouterr().out

    def test_verbose_logs_rewrite_counts(self, src_file, caplog):
        with caplog.at_level(logging.INFO, logger='castnorm'):
            assert main([str(src_file), '-v']) == 0
        counts = [r.getMessage() for r in caplog.records
                  if 'remove_redundant_casts' in r.getMessage()]
        assert counts == ['remove_redundant_casts: 1 处改写']


class TestCheckMode:
    def test_pending_rewrites(self, src_file, capsys):
        assert main([str(src_file), '--check']) == 1
        captured = capsys.readouterr()
        assert captured.out == ''
        assert '可改写' in captured.err

    def test_clean_source(self, tmp_path):
        path = tmp_path / 'clean.rs'
        path.write_text(CLEAN, encoding='utf-8')
        assert main([str(path), '--check']) == 0


class TestDenyWarnings:
    OVERFLOW = "fn f() -> i64 { return 2147483648 as i32 as i64; }\n"

    def test_warning_alone_still_rewrites(self, tmp_path, capsys):
        path = tmp_path / 'w.rs'
        path.write_text(self.OVERFLOW, encoding='utf-8')
        assert main([str(path)]) == 0
        captured = capsys.readouterr()
        assert 'return 2147483648 as i64;' in captured.out
        assert 'warning' in captured.err

    def test_deny_warnings(self, tmp_path, capsys):
        path = tmp_path / 'w.rs'
        path.write_text(self.OVERFLOW, encoding='utf-8')
        assert main([str(path), '-D']) == 1
        captured = capsys.readouterr()
        assert captured.out == ''
        assert 'error' in captured.err


class TestFailures:
    def test_syntax_error(self, tmp_path, capsys):
        path = tmp_path / 'bad.rs'
        path.write_text("fn f( {", encoding='utf-8')
        assert main([str(path)]) == 1
        assert '语法错误' in capsys.readouterr().err

    def test_type_error_leaves_no_output(self, tmp_path, capsys):
        path = tmp_path / 'bad.rs'
        path.write_text("fn f() -> i32 { return y as i32; }", encoding='utf-8')
        assert main([str(path)]) == 1
        assert capsys.readouterr().out == ''

    def test_unreadable_file(self, tmp_path, capsys):
        assert main([str(tmp_path / 'missing.rs')]) == 1
        assert '无法读取' in capsys.readouterr().err

    def test_missing_file_argument(self):
        with pytest.raises(SystemExit) as exc:
            main([])
        assert exc.value.code == 2

    def test_unknown_command(self, src_file):
        with pytest.raises(SystemExit) as exc:
            main([str(src_file), '-c', 'remove_all_casts'])
        assert exc.value.code == 2

    def test_internal_error(self, src_file, monkeypatch):
        def broken(self, *args, **kwargs):
            raise InternalInvariantError('broken')
        monkeypatch.setattr(CastFrontend, 'refactor', broken)
        assert main([str(src_file)]) == 2
