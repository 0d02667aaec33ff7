import os
import platform
import shutil
import subprocess
from typing import List, Optional, Sequence

from diagnostics import get_logger
from errors import CompilationError

logger = get_logger("compile")

CXX_STANDARD = "-std=c++17"
CANDIDATE_COMPILERS = ("c++", "clang++", "g++")


def find_compiler() -> Optional[str]:
    """Returns $CXX if set, otherwise the first C++ compiler found on PATH."""
    from_env = os.getenv("CXX")
    if from_env:
        return from_env
    for candidate in CANDIDATE_COMPILERS:
        path = shutil.which(candidate)
        if path:
            return path
    return None


def platform_link_flags() -> List[str]:
    # dlopen lives in libdl before glibc 2.34; naming it is harmless afterwards
    if platform.system() == "Linux":
        return ["-ldl"]
    return []


def run(cmd: Sequence[str]) -> str:
    logger.debug(">> %s", " ".join(cmd))
    result = subprocess.run(list(cmd), stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True)
    if result.returncode != 0:
        raise CompilationError(cmd, result.stdout)
    return result.stdout


def _require_compiler(compiler: Optional[str]) -> str:
    compiler = compiler or find_compiler()
    if not compiler:
        raise CompilationError(["c++"], "No C++ compiler found (set CXX)")
    return compiler


def syntax_check(source: str, include_dirs: Sequence[str] = (), extra_flags: Sequence[str] = (),
                 compiler: Optional[str] = None) -> None:
    """Runs the compiler in syntax-only mode over a generated document."""
    compiler = _require_compiler(compiler)
    cmd = [compiler, CXX_STANDARD, "-fsyntax-only"]
    cmd += [f"-I{d}" for d in include_dirs]
    cmd += list(extra_flags)
    cmd.append(source)
    run(cmd)
    logger.info("Syntax check passed: %s", source)


# Link a harness against generated bindings, and a stand-in library for it to load
def build_executable(sources: Sequence[str], output: str, include_dirs: Sequence[str] = (),
                     extra_flags: Sequence[str] = (), compiler: Optional[str] = None) -> str:
    compiler = _require_compiler(compiler)
    cmd = [compiler, CXX_STANDARD, *sources, "-o", output]
    cmd += [f"-I{d}" for d in include_dirs]
    cmd += list(extra_flags) + platform_link_flags()
    run(cmd)
    return output


def build_shared_library(sources: Sequence[str], output: str, compiler: Optional[str] = None) -> str:
    compiler = _require_compiler(compiler)
    shared_flag = "-shared" if platform.system() != "Darwin" else "-dynamiclib"
    run([compiler, *sources, shared_flag, "-fPIC", "-o", output])
    return output
