import os
import re
import tempfile
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Sequence

from num2words import num2words

import loader_templates as templates
from diagnostics import get_logger
from errors import DuplicateSymbolError, InvalidInput, OutputWriteError
from names import c_string_literal, library_base_name, library_file_names
from out_types import CallingConvention, Function, Header

logger = get_logger("synthesizer")

_RESTRICT = re.compile(r"\brestrict\b")


class SymbolTableStrategy(Enum):
    LAZY = "lazy"
    EAGER = "eager"


def is_pointer_or_reference(type_spelling: str) -> bool:
    return type_spelling.endswith(("*", "&"))


def cxx_type_spelling(type_spelling: str) -> str:
    """libclang spells both C99 restrict and __restrict as 'restrict', which C++ lacks."""
    return _RESTRICT.sub("__restrict", type_spelling)


def declarator_type(type_spelling: str) -> str:
    """Spells a type so that an identifier may directly follow it."""
    type_spelling = cxx_type_spelling(type_spelling)
    if "(" in type_spelling or "[" in type_spelling:
        return f"delayload_type_t<{type_spelling}>"
    return type_spelling


def join_declarator(type_spelling: str, name: str) -> str:
    """'int' + 'arg1' -> 'int arg1'; 'char *' + 'arg1' -> 'char *arg1'."""
    spelled = declarator_type(type_spelling)
    separator = "" if is_pointer_or_reference(spelled) else " "
    return f"{spelled}{separator}{name}"


def argument_names(function: Function) -> List[str]:
    return [f"arg{i}" for i in range(1, len(function.parameters) + 1)]


def prototype_name(function: Function) -> str:
    return f"PFN_{function.name.upper()}"


def pointer_name(function: Function) -> str:
    return f"pfn_{function.name.lower()}"


def symbol_index_name(function: Function) -> str:
    return f"DELAYLOAD_SYMBOL_{function.name}"


def _count_phrase(count: int, noun: str) -> str:
    plural = noun if count == 1 else f"{noun}s"
    return f"{count} ({num2words(count)}) {plural}"


class BindingSynthesizer:
    """
    Generates a C++ translation unit of delay-loaded forwarding functions.

    Every generated function resolves its native counterpart from the target
    library on first use and returns a value-initialised result when the
    library or the symbol is missing. The library is opened at most once per
    process and a failed open is never retried.
    """

    def __init__(self, library: str, system_dir_only: bool = False,
                 strategy: SymbolTableStrategy = SymbolTableStrategy.LAZY,
                 deduplicate: bool = False):
        self.library = library_base_name(library or "")
        self.system_dir_only = system_dir_only
        self.strategy = strategy
        self.deduplicate = deduplicate

    def _collect_functions(self, headers: Sequence[Header]) -> List[Function]:
        """Validates the input and flattens it into emission order."""
        if not headers:
            raise InvalidInput("No headers were given to wrap")
        if not self.library.strip():
            raise InvalidInput("The library name is empty")

        origins: Dict[str, str] = {}
        functions: List[Function] = []
        for header in headers:
            local = set()
            if header.is_empty():
                raise InvalidInput(f"Header '{header.display_name}' has no functions to wrap")
            for function in header.functions:
                if not function.name:
                    raise InvalidInput(f"Header '{header.display_name}' contains an unnamed function")
                if function.is_variadic:
                    raise InvalidInput(f"Variadic function '{function.name}' cannot be forwarded")
                # Redeclared within one header
                if function.name in local:
                    continue
                local.add(function.name)
                first = origins.get(function.name)
                if first is not None:
                    if not self.deduplicate:
                        raise DuplicateSymbolError(function.name, first, header.display_name)
                    logger.info("Dropping duplicate declaration of %s from %s (first seen in %s)",
                                function.name, header.display_name, first)
                    continue
                origins[function.name] = header.display_name
                functions.append(function)
        return functions

    def generate_bindings(self, headers: Sequence[Header], timestamp: Optional[datetime] = None) -> str:
        """Renders the whole document; nothing is rendered unless every input is valid."""
        functions = self._collect_functions(headers)

        def generate_primitives():
            file_names = library_file_names(self.library)
            windows = templates.WINDOWS_PRIMITIVES.substitute(
                windows_file=c_string_literal(file_names["windows"]),
                windows_load_call=(templates.WINDOWS_LOAD_SYSTEM32 if self.system_dir_only
                                   else templates.WINDOWS_LOAD_DEFAULT),
            )
            posix = templates.POSIX_PRIMITIVES.substitute(
                linux_file=c_string_literal(file_names["linux"]),
                darwin_file=c_string_literal(file_names["darwin"]),
                posix_open=(templates.POSIX_OPEN_SYSTEM_DIRS if self.system_dir_only
                            else templates.POSIX_OPEN_DEFAULT),
            )
            return windows + posix

        def generate_symbol_table():
            lines = ["namespace {", ""]
            if self.strategy == SymbolTableStrategy.EAGER:
                lines.append("enum DelayLoadSymbol : std::size_t")
                lines.append("{")
                for function in functions:
                    lines.append(f"    {symbol_index_name(function)},")
                lines.append("    DELAYLOAD_SYMBOL_COUNT")
                lines.append("};")
                lines.append("")
                lines.append("constexpr const char *kDelayLoadSymbolNames[DELAYLOAD_SYMBOL_COUNT] = {")
                for function in functions:
                    lines.append(f'    "{function.name}",')
                lines.append("};")
                lines.append("")
                lines.append(templates.LIBRARY_OBJECT)
                lines.append(templates.EAGER_INITIALIZER)
            else:
                lines.append(templates.LIBRARY_OBJECT)
                lines.append(templates.LAZY_ACCESSOR)
            lines.append("} // namespace")
            return "\n".join(lines) + "\n"

        def generate_includes():
            # Wrapped headers declare the types the forwarding functions use
            lines = ['extern "C" {']
            seen = set()
            for header in headers:
                if header.display_name in seen:
                    continue
                seen.add(header.display_name)
                lines.append(f'#include "{header.display_name}"')
            lines.append("}")
            return "\n".join(lines) + "\n"

        def generate_functions():
            return "\n".join(self.render_function(function) for function in functions)

        def generate_trailer():
            lines = [
                f"// Wrapped {_count_phrase(len(functions), 'function')} "
                f"from {_count_phrase(len(headers), 'header')}."
            ]
            if timestamp is not None:
                lines.append(f"// Generated at {timestamp.isoformat(timespec='seconds')}")
            return "\n".join(lines) + "\n"

        code_parts = [
            templates.BANNER.substitute(library=self.library),
            templates.COMMON_PRELUDE,
            generate_primitives(),
            generate_symbol_table(),
            generate_includes(),
            generate_functions(),
            generate_trailer(),
        ]
        return "\n".join(code_parts)

    def render_function(self, function: Function) -> str:
        """Renders one extern "C" forwarding function with positional arguments."""
        convention = function.calling_convention
        if convention == CallingConvention.UNKNOWN:
            logger.warning("Unknown calling convention for %s; emitting no annotation", function.name)

        name = function.name
        if convention.annotation:
            name = f"{convention.annotation} {name}"
        args = argument_names(function)
        parameter_list = ", ".join(
            join_declarator(type_spelling, arg) for type_spelling, arg in zip(function.parameters, args)
        )
        prototype = prototype_name(function)
        pointer = pointer_name(function)

        if self.strategy == SymbolTableStrategy.EAGER:
            resolve = templates.EAGER_RESOLVE.substitute(
                pointer=pointer, prototype=prototype, index=symbol_index_name(function))
        else:
            resolve = templates.LAZY_RESOLVE.substitute(
                pointer=pointer, prototype=prototype, symbol=function.name)

        call = f"{pointer}({', '.join(args)})"
        lines = [
            f'extern "C" {join_declarator(function.result_type, name)}({parameter_list})',
            "{",
            f"    using {prototype} = decltype(&::{function.name});",
            resolve.rstrip("\n"),
            f"    if (!{pointer}) {{",
            "        return;" if function.returns_void else "        return {};",
            "    }",
            f"    {call};" if function.returns_void else f"    return {call};",
            "}",
        ]
        return "\n".join(lines) + "\n"


def synthesize(headers: Sequence[Header], library: str, system_dir_only: bool = False,
               strategy: SymbolTableStrategy = SymbolTableStrategy.LAZY,
               deduplicate: bool = False, timestamp: Optional[datetime] = None) -> str:
    synthesizer = BindingSynthesizer(library, system_dir_only=system_dir_only,
                                     strategy=strategy, deduplicate=deduplicate)
    return synthesizer.generate_bindings(headers, timestamp=timestamp)


def _current_umask() -> int:
    umask = os.umask(0)
    os.umask(umask)
    return umask


def write_bindings(document: str, output_path: str) -> None:
    """
    Writes the document atomically: it goes to a temporary file beside the
    destination first and is renamed into place only once fully written, so
    a failure never leaves a truncated output behind.
    """
    directory = os.path.dirname(os.path.abspath(output_path))
    try:
        fd, temp_path = tempfile.mkstemp(prefix=".delayloadgen-", suffix=".tmp", dir=directory)
    except OSError as e:
        raise OutputWriteError(output_path, e.strerror or str(e)) from e

    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(document)
        os.chmod(temp_path, 0o666 & ~_current_umask())
        os.replace(temp_path, output_path)
    except OSError as e:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise OutputWriteError(output_path, e.strerror or str(e)) from e
    logger.debug("Wrote %d bytes to %s", len(document), output_path)
