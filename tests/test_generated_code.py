"""
Compiles and runs generated bindings against a fake library.

dlopen is wrapped at link time (GNU ld --wrap) so the harness can count how
many times the generated loader tries to open the library.
"""

import os
import platform
import subprocess
from textwrap import dedent

import pytest

from compile import build_executable, build_shared_library, find_compiler, syntax_check
from errors import CompilationError
from out_types import Function, Header
from synthesizer import SymbolTableStrategy, synthesize

pytestmark = pytest.mark.skipif(find_compiler() is None, reason="no C++ compiler available")

MYLIB_H = dedent("""\
    #ifndef MYLIB_H
    #define MYLIB_H
    int Add(int a, int b);
    void Log(const char *msg);
    const char *Version(void);
    #endif
    """)

# Version is deliberately absent so its symbol lookup fails
FAKE_LIBRARY = dedent("""\
    #include <cstdio>

    extern "C" int Add(int a, int b)
    {
        return a + b;
    }

    extern "C" void Log(const char *msg)
    {
        std::printf("log:%s\\n", msg);
    }
    """)

HARNESS = dedent("""\
    #include <cstdio>

    extern "C" {
    #include "mylib.h"
    }

    static int g_dlopen_calls = 0;

    extern "C" void *__real_dlopen(const char *file, int mode);

    extern "C" void *__wrap_dlopen(const char *file, int mode)
    {
        ++g_dlopen_calls;
        return __real_dlopen(file, mode);
    }

    int main()
    {
        const int first = Add(2, 3);
        Log("hello");
        const int second = Add(4, 5);
        const int missing = Version() == nullptr;
        std::printf("%d %d %d %d\\n", first, second, g_dlopen_calls, missing);
        return 0;
    }
    """)

MYLIB = Header(
    display_name="mylib.h",
    functions=(
        Function("Add", "int", ("int", "int")),
        Function("Log", "void", ("const char *",)),
        Function("Version", "const char *"),
    ),
)

needs_gnu_ld = pytest.mark.skipif(platform.system() != "Linux", reason="needs GNU ld --wrap")


def _write_sources(tmp_path, strategy, system_dir_only=False):
    (tmp_path / "mylib.h").write_text(MYLIB_H, encoding="utf-8")
    shim = tmp_path / "mylib_shim.cpp"
    shim.write_text(synthesize([MYLIB], "mylib.dll", system_dir_only=system_dir_only, strategy=strategy),
                    encoding="utf-8")
    return shim


def _build_harness(tmp_path, strategy):
    shim = _write_sources(tmp_path, strategy)
    harness = tmp_path / "harness.cpp"
    harness.write_text(HARNESS, encoding="utf-8")
    return build_executable([str(shim), str(harness)], str(tmp_path / "harness"),
                            include_dirs=[str(tmp_path)], extra_flags=["-Wl,--wrap=dlopen"])


def _run(executable, library_dir):
    env = dict(os.environ, LD_LIBRARY_PATH=str(library_dir))
    result = subprocess.run([executable], stdout=subprocess.PIPE, text=True, env=env, check=True)
    return result.stdout


@pytest.mark.parametrize("strategy", list(SymbolTableStrategy))
@pytest.mark.parametrize("system_dir_only", [False, True])
def test_generated_document_compiles(tmp_path, strategy, system_dir_only):
    shim = _write_sources(tmp_path, strategy, system_dir_only)
    syntax_check(str(shim), include_dirs=[str(tmp_path)])


def test_syntax_check_reports_compiler_output(tmp_path):
    broken = tmp_path / "broken.cpp"
    broken.write_text("int broken( {\n", encoding="utf-8")
    with pytest.raises(CompilationError) as excinfo:
        syntax_check(str(broken))
    assert "broken.cpp" in excinfo.value.output


@needs_gnu_ld
@pytest.mark.parametrize("strategy", list(SymbolTableStrategy))
def test_missing_library_returns_defaults_and_loads_once(tmp_path, strategy):
    executable = _build_harness(tmp_path, strategy)
    empty_dir = tmp_path / "nolib"
    empty_dir.mkdir()
    assert _run(executable, empty_dir) == "0 0 1 1\n"


@needs_gnu_ld
@pytest.mark.parametrize("strategy", list(SymbolTableStrategy))
def test_present_library_forwards_calls_and_loads_once(tmp_path, strategy):
    executable = _build_harness(tmp_path, strategy)
    lib_dir = tmp_path / "lib"
    lib_dir.mkdir()
    fake = tmp_path / "fake_mylib.cpp"
    fake.write_text(FAKE_LIBRARY, encoding="utf-8")
    build_shared_library([str(fake)], str(lib_dir / "libmylib.so"))
    assert _run(executable, lib_dir) == "log:hello\n5 9 1 1\n"


def test_restrict_qualified_parameters_compile(tmp_path):
    (tmp_path / "copy.h").write_text(
        "void Copy(char *__restrict dst, const char *__restrict src);\n", encoding="utf-8")
    header = Header("copy.h", (Function("Copy", "void", ("char *restrict", "const char *restrict")),))
    shim = tmp_path / "copy_shim.cpp"
    shim.write_text(synthesize([header], "copy"), encoding="utf-8")
    syntax_check(str(shim), include_dirs=[str(tmp_path)])
