"""Tests for the Transformer: injection, idempotency, imports, file processing."""

from __future__ import annotations

import ast
import contextlib
import sys
import types
import stat
from pathlib import Path
from textwrap import dedent

import pytest

from pytrackfunc.exceptions import BootstrapError, FormatError, ReadError
from pytrackfunc.transform import instrument_source
from pytrackfunc.transform.injector import Transformer, ensure_import, iter_functions
from pytrackfunc.transform.source import parse_unit, render
from pytrackfunc.transform.types import FileStatus

PIPELINE = "demo.pytrackfunc"

HOOK = 'with pytrackfunc.hook("{}", _pytrackfunc_time.perf_counter_ns()):'
CLOCK_IMPORT = "import time as _pytrackfunc_time\n"


def _instrument(source: str, module: str = "foo") -> tuple[str, int]:
    return instrument_source(dedent(source), module, PIPELINE)


# ---------------------------------------------------------------------------
# Injection shape
# ---------------------------------------------------------------------------
class TestInjection:
    def test_simple_inject(self):
        """A pass body gets the hook and both imports."""
        output, count = _instrument("""\
            def Bar():
                pass
        """)
        assert count == 1
        assert output == dedent(f"""\
            import time as _pytrackfunc_time
            from demo import pytrackfunc

            def Bar():
                {HOOK.format('foo.Bar')}
                    pass
        """)

    def test_hook_is_first_statement_with_literal_name(self):
        output, _ = _instrument("""\
            def Bar():
                pass
        """)
        tree = ast.parse(output)
        func = tree.body[-1]
        first = func.body[0]
        assert isinstance(first, ast.With)
        call = first.items[0].context_expr
        expected = "pytrackfunc.hook('foo.Bar', _pytrackfunc_time.perf_counter_ns())"
        assert ast.unparse(call) == expected

    def test_docstring_stays_first(self):
        output, _ = _instrument('''\
            def bar(x):
                """Add one."""
                y = x + 1
                return y
        ''')
        assert dedent(f'''\
            def bar(x):
                """Add one."""
                {HOOK.format("foo.bar")}
                    y = x + 1
                    return y
        ''') in output
        func = ast.parse(output).body[-1]
        assert ast.get_docstring(func) == "Add one."

    def test_one_line_body(self):
        output, _ = _instrument("""\
            def bar(): return 1
        """)
        assert dedent(f"""\
            def bar():
                {HOOK.format('foo.bar')}
                    return 1
        """) in output

    def test_multiline_string_not_reindented(self):
        output, _ = _instrument('''\
            def bar():
                text = """
            line one
                line two
            """
                return text
        ''')
        assert dedent(f'''\
            def bar():
                {HOOK.format("foo.bar")}
                    text = """
            line one
                line two
            """
                    return text
        ''') in output

    def test_method_uses_module_and_function_name(self):
        output, _ = _instrument("""\
            class Service:
                def run(self):
                    return 1
        """)
        assert (
            "    def run(self):\n"
            f"        {HOOK.format('foo.run')}\n"
            "            return 1\n"
        ) in output

    def test_nested_function_moves_with_outer_body(self):
        output, count = _instrument("""\
            def outer():
                def inner():
                    return 1
                return inner()
        """)
        assert count == 1
        assert dedent(f"""\
            def outer():
                {HOOK.format('foo.outer')}
                    def inner():
                        return 1
                    return inner()
        """) in output

    def test_async_function(self):
        output, count = _instrument("""\
            async def fetch():
                return await thing()
        """)
        assert count == 1
        assert f"    {HOOK.format('foo.fetch')}\n        return await thing()\n" in output

    def test_comments_and_blank_lines_survive(self):
        output, _ = _instrument("""\
            # module comment

            def bar():
                x = 1  # keep me

                return x
        """)
        assert "# module comment\n" in output
        assert "        x = 1  # keep me\n\n        return x\n" in output

    def test_decorated_nested_function_first(self):
        output, count = _instrument("""\
            def outer():
                @functools.lru_cache
                def inner():
                    return 1
                return inner()
        """)
        assert count == 1
        assert dedent(f"""\
            def outer():
                {HOOK.format('foo.outer')}
                    @functools.lru_cache
                    def inner():
                        return 1
                    return inner()
        """) in output

    def test_decorated_nested_class_after_docstring(self):
        output, count = _instrument('''\
            def outer():
                """Build a point."""
                @dataclasses.dataclass(frozen=True)
                # comment between decorator and class
                class P:
                    x: int
                return P(1)
        ''')
        assert count == 1
        assert dedent(f'''\
            def outer():
                """Build a point."""
                {HOOK.format("foo.outer")}
                    @dataclasses.dataclass(frozen=True)
                    # comment between decorator and class
                    class P:
                        x: int
                    return P(1)
        ''') in output


# ---------------------------------------------------------------------------
# Clock binding
# ---------------------------------------------------------------------------
@pytest.fixture
def recorded(monkeypatch):
    """Install a stand-in ``demo.pytrackfunc`` and collect hooked names."""
    names: list[str] = []

    def hook(name, start):
        assert isinstance(start, int)
        names.append(name)
        return contextlib.nullcontext()

    demo = types.ModuleType("demo")
    demo.pytrackfunc = types.SimpleNamespace(hook=hook)
    monkeypatch.setitem(sys.modules, "demo", demo)
    return names


def _run(source: str) -> dict:
    output, _ = _instrument(source)
    namespace: dict = {}
    exec(compile(output, "<foo>", "exec"), namespace)  # noqa: S102
    return namespace


class TestClockBinding:
    def test_from_time_import_time_keeps_working(self, recorded):
        namespace = _run("""\
            from time import time


            def stamp():
                return time()
        """)
        assert isinstance(namespace["stamp"](), float)
        assert recorded == ["foo.stamp"]

    def test_local_named_time(self, recorded):
        namespace = _run("""\
            def elapsed(a, b):
                time = b - a
                return time
        """)
        assert namespace["elapsed"](1, 4) == 3
        assert recorded == ["foo.elapsed"]

    def test_user_time_import_left_alone(self):
        output, _ = _instrument("""\
            import time


            def wait():
                time.sleep(0)
        """)
        assert output.startswith("import time\n" + CLOCK_IMPORT)
        assert output.count("import time\n") == 1


# ---------------------------------------------------------------------------
# Eligibility
# ---------------------------------------------------------------------------
class TestEligibility:
    def test_skip_marker_respected(self):
        source = """\
            # notrack
            def hot():
                return 1

            def cold():
                return 2
        """
        output, count = _instrument(source)
        assert count == 1
        assert "def hot():\n    return 1\n" in output
        assert HOOK.format("foo.cold") in output

    def test_skip_marker_survives_repeated_passes(self):
        source = dedent('''\
            def hot():
                """Hot path. notrack"""
                return 1
        ''')
        output = source
        for _ in range(3):
            output, count = instrument_source(output, "foo", PIPELINE)
            assert count == 0
        assert output == source

    def test_comment_marker_on_first_statement_kept_attached(self):
        """New imports go above the comment block of the first function."""
        source = dedent("""\
            # notrack
            def hot():
                return 1

            def cold():
                return 2
        """)
        first, _ = instrument_source(source, "foo", PIPELINE)
        assert first.startswith(
            CLOCK_IMPORT + "from demo import pytrackfunc\n\n# notrack\ndef hot():"
        )
        second, count = instrument_source(first, "foo", PIPELINE)
        assert count == 0
        assert second == first

    def test_stubs_untouched(self):
        source = dedent('''\
            class Proto:
                def size(self) -> int: ...

                def name(self) -> str:
                    """Return the name."""
        ''')
        output, count = instrument_source(source, "foo", PIPELINE)
        assert count == 0
        assert output == source

    def test_user_with_statement_is_not_a_marker(self):
        output, count = _instrument("""\
            def bar():
                with open("x") as f:
                    return f.read()
        """)
        assert count == 1
        assert HOOK.format("foo.bar") in output


# ---------------------------------------------------------------------------
# Idempotency
# ---------------------------------------------------------------------------
class TestIdempotency:
    SOURCE = dedent('''\
        """Module doc."""

        from __future__ import annotations

        import os


        class Service:
            def run(self):
                return os.getcwd()


        def helper(a, b):
            """Add."""
            return a + b


        def short(): return 1
    ''')

    def test_second_pass_is_byte_identical(self):
        first, count = instrument_source(self.SOURCE, "foo", PIPELINE)
        assert count == 3
        second, count = instrument_source(first, "foo", PIPELINE)
        assert count == 0
        assert second == first

    def test_imports_appended_to_first_group(self):
        output, _ = instrument_source(self.SOURCE, "foo", PIPELINE)
        expected = "import os\n" + CLOCK_IMPORT + "from demo import pytrackfunc\n\n\nclass Service:"
        assert expected in output
        assert output.count(CLOCK_IMPORT) == 1

    def test_crlf_line_endings_preserved(self):
        source = "def bar():\r\n    pass\r\n"
        first, _ = instrument_source(source, "foo", PIPELINE)
        assert "\n" not in first.replace("\r\n", "")
        second, _ = instrument_source(first, "foo", PIPELINE)
        assert second == first


# ---------------------------------------------------------------------------
# ensure_import
# ---------------------------------------------------------------------------
class TestEnsureImport:
    def test_repeated_calls_add_one_entry(self):
        unit = parse_unit(Path("foo.py"), "x = 1\n", "foo")
        results = [ensure_import(unit, "time") for _ in range(5)]
        assert results == [True, False, False, False, False]
        assert unit.imports.count("time") == 1
        assert render(unit).count("import time") == 1

    def test_existing_import_is_kept(self):
        unit = parse_unit(Path("foo.py"), "import time\n", "foo")
        assert not ensure_import(unit, "time")
        assert not unit.modified

    def test_aliased_import_does_not_count(self):
        unit = parse_unit(Path("foo.py"), "import time as t\n", "foo")
        assert ensure_import(unit, "time")
        assert render(unit) == "import time as t\nimport time\n"

    def test_alias_suffix_binds_alias(self):
        unit = parse_unit(Path("foo.py"), "import os\n", "foo")
        assert ensure_import(unit, "time as _pytrackfunc_time")
        assert ensure_import(unit, "demo.pytrackfunc as tracker")
        assert render(unit) == (
            "import os\nimport time as _pytrackfunc_time\nfrom demo import pytrackfunc as tracker\n"
        )

    def test_existing_alias_detected(self):
        unit = parse_unit(Path("foo.py"), "import time as _pytrackfunc_time\n", "foo")
        assert not ensure_import(unit, "time as _pytrackfunc_time")
        assert ensure_import(unit, "time")

    def test_dotted_identifier_uses_from_import(self):
        unit = parse_unit(Path("foo.py"), "import os\n", "foo")
        ensure_import(unit, "demo.pytrackfunc")
        assert render(unit) == "import os\nfrom demo import pytrackfunc\n"

    def test_existing_from_import_detected(self):
        unit = parse_unit(Path("foo.py"), "from demo import pytrackfunc\n", "foo")
        assert not ensure_import(unit, "demo.pytrackfunc")

    def test_new_group_after_docstring_and_shebang(self):
        source = '#!/usr/bin/env python\n"""Doc."""\n\nx = 1\n'
        unit = parse_unit(Path("foo.py"), source, "foo")
        ensure_import(unit, "time")
        assert render(unit) == '#!/usr/bin/env python\n"""Doc."""\n\nimport time\n\nx = 1\n'

    def test_new_group_below_shebang_without_docstring(self):
        source = "#!/usr/bin/env python\n# -*- coding: utf-8 -*-\nx = 1\n"
        unit = parse_unit(Path("foo.py"), source, "foo")
        ensure_import(unit, "time")
        assert render(unit) == (
            "#!/usr/bin/env python\n# -*- coding: utf-8 -*-\nimport time\n\nx = 1\n"
        )


# ---------------------------------------------------------------------------
# Declaration walk
# ---------------------------------------------------------------------------
class TestIterFunctions:
    def test_source_order_and_nesting(self):
        tree = ast.parse(
            dedent("""\
                def a():
                    def closure():
                        pass

                class K:
                    def b(self):
                        pass

                    class Inner:
                        async def c(self):
                            pass

                if True:
                    def d():
                        pass
                else:
                    def e():
                        pass

                try:
                    def f():
                        pass
                except ImportError:
                    def g():
                        pass
            """)
        )
        assert [n.name for n in iter_functions(tree)] == ["a", "b", "c", "d", "e", "f", "g"]

    def test_lambdas_ignored(self):
        tree = ast.parse("square = lambda x: x * x\n")
        assert list(iter_functions(tree)) == []


# ---------------------------------------------------------------------------
# process_file / run_batch
# ---------------------------------------------------------------------------
class TestProcessFile:
    def test_writes_instrumented_file(self, transformer, tmp_path):
        path = tmp_path / "foo.py"
        path.write_text("def Bar():\n    pass\n", encoding="utf-8")

        result = transformer.process_file(path)

        assert result.status == FileStatus.INSTRUMENTED
        assert result.instrumented == 1
        assert 'pytrackfunc.hook("foo.Bar", _pytrackfunc_time.perf_counter_ns())' in path.read_text()

    def test_preserves_permissions(self, transformer, tmp_path):
        path = tmp_path / "script.py"
        path.write_text("def main():\n    pass\n", encoding="utf-8")
        path.chmod(0o755)

        transformer.process_file(path)

        assert stat.S_IMODE(path.stat().st_mode) == 0o755

    def test_unchanged_file_not_rewritten(self, transformer, tmp_path):
        path = tmp_path / "consts.py"
        path.write_text("X = 1\n", encoding="utf-8")
        before = path.stat().st_mtime_ns

        result = transformer.process_file(path)

        assert result.status == FileStatus.UNCHANGED
        assert path.stat().st_mtime_ns == before

    def test_missing_file_raises_read_error(self, transformer, tmp_path):
        with pytest.raises(ReadError, match="read"):
            transformer.process_file(tmp_path / "missing.py")

    def test_format_failure_leaves_file_untouched(self, transformer, tmp_path, monkeypatch):
        path = tmp_path / "foo.py"
        original = "def Bar():\n    pass\n"
        path.write_text(original, encoding="utf-8")

        def broken(text, path):
            raise FormatError("format: boom")  # noqa: EM101

        monkeypatch.setattr("pytrackfunc.transform.injector.validate", broken)
        with pytest.raises(FormatError):
            transformer.process_file(path)
        assert path.read_text(encoding="utf-8") == original

    def test_batch_continues_after_errors(self, transformer, tmp_path):
        bad = tmp_path / "bad.py"
        bad.write_text("def broken(:\n", encoding="utf-8")
        good = tmp_path / "good.py"
        good.write_text("def ok():\n    pass\n", encoding="utf-8")

        report = transformer.run_batch([tmp_path / "missing.py", bad, good])

        statuses = [r.status for r in report.results]
        assert statuses == [FileStatus.FAILED, FileStatus.FAILED, FileStatus.INSTRUMENTED]
        assert report.instrumented_files == 1
        assert report.instrumented_functions == 1
        assert len(report.failed) == 2
        assert "parse" in report.failed[1].error

    def test_batch_logs_each_file(self, transformer, tmp_path, caplog):
        path = tmp_path / "foo.py"
        path.write_text("def Bar():\n    pass\n", encoding="utf-8")
        with caplog.at_level("INFO", logger="pytrackfunc"):
            transformer.run_batch([path])
        assert f"Processing {path}" in caplog.text

    def test_bootstrap_error_aborts_batch(self, tmp_config, tmp_path):
        def fail() -> str:
            raise BootstrapError("cannot create runtime")  # noqa: EM101

        path = tmp_path / "foo.py"
        path.write_text("def Bar():\n    pass\n", encoding="utf-8")

        with pytest.raises(BootstrapError):
            Transformer(tmp_config, fail).run_batch([path])
        assert path.read_text(encoding="utf-8") == "def Bar():\n    pass\n"

    def test_pipeline_not_prepared_when_nothing_injected(self, tmp_config, tmp_path):
        calls: list[int] = []

        def prepare() -> str:
            calls.append(1)
            return PIPELINE

        path = tmp_path / "consts.py"
        path.write_text("X = 1\n", encoding="utf-8")
        Transformer(tmp_config, prepare).run_batch([path])
        assert calls == []
