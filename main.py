#!/usr/bin/env python3
import argparse
import os
import sys
from datetime import datetime, timezone
from typing import List, Optional

from ast_query import configure_libclang
from compile import syntax_check
from diagnostics import configure_logging, get_logger
from errors import DelayLoadError, InvalidInput
from extractor import DeclarationExtractor, ExtractionPolicy
from names import library_base_name, library_file_names
from out_types import Header
from synthesizer import BindingSynthesizer, SymbolTableStrategy, write_bindings

logger = get_logger("main")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="delayloadgen",
        description="Generate delay-loaded C++ forwarding functions for the functions "
                    "declared in C header files.",
    )
    parser.add_argument("headers", nargs="+", metavar="HEADER",
                        help="C header file(s) to wrap, in include order.")
    parser.add_argument("-o", "--output", required=True,
                        help="Path of the C++ source file to generate.")
    parser.add_argument("-l", "--library", required=True,
                        help="Library to load at run time (e.g. 'mylib', 'mylib.dll' or 'libmylib.so').")
    parser.add_argument("--system-dir-only", action="store_true",
                        help="Only load the library from trusted system directories.")
    parser.add_argument("--symbol-table", choices=[s.value for s in SymbolTableStrategy],
                        default=SymbolTableStrategy.LAZY.value,
                        help="Resolve each symbol on its first call (lazy, default) "
                             "or all symbols on the first call of any function (eager).")
    parser.add_argument("--dedupe", action="store_true",
                        help="Keep the first declaration when headers declare the same function "
                             "(default: fail).")
    parser.add_argument("--keep-reserved", action="store_true",
                        help="Also wrap functions whose names start with an underscore.")
    parser.add_argument("--allow-non-c", action="store_true",
                        help="Do not require declarations to come from C source language.")
    parser.add_argument("--main-file-only", action="store_true",
                        help="Skip declarations that come from headers included by the inputs.")
    parser.add_argument("-I", dest="include_dirs", action="append", default=[],
                        help="Add a directory to the Clang include path (e.g., -I/usr/include).")
    parser.add_argument("-D", dest="defines", action="append", default=[],
                        help="Define a preprocessor macro for parsing (e.g., -DMYLIB_API=).")
    parser.add_argument("--clang-arg", dest="clang_args", action="append", default=[],
                        help="Pass an extra argument to Clang verbatim.")
    parser.add_argument("--libclang", default=None,
                        help="Path to the libclang shared library (default: $LIBCLANG_PATH or the bundled one).")
    parser.add_argument("--no-timestamp", action="store_true",
                        help="Omit the generation timestamp so output is reproducible.")
    parser.add_argument("--syntax-check", action="store_true",
                        help="Run the C++ compiler in syntax-only mode on the generated file.")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Increase log verbosity for troubleshooting.")
    return parser


def policy_from_args(args: argparse.Namespace) -> ExtractionPolicy:
    return ExtractionPolicy(
        require_c_language=not args.allow_non_c,
        skip_reserved_names=not args.keep_reserved,
        main_file_only=args.main_file_only,
    )


def clang_args_from_args(args: argparse.Namespace) -> List[str]:
    clang_args = [f"-I{d}" for d in args.include_dirs]
    clang_args += [f"-D{d}" for d in args.defines]
    return clang_args + list(args.clang_args)


def run(args: argparse.Namespace) -> int:
    """Extracts every header in order, then synthesizes and writes the document."""
    library = library_base_name(args.library)
    if not library:
        raise InvalidInput(f"'{args.library}' does not name a library")
    synthesizer = BindingSynthesizer(
        args.library,
        system_dir_only=args.system_dir_only,
        strategy=SymbolTableStrategy(args.symbol_table),
        deduplicate=args.dedupe,
    )

    configure_libclang(args.libclang)
    extractor = DeclarationExtractor(clang_args_from_args(args), policy_from_args(args))
    headers: List[Header] = []
    for header_path in args.headers:
        header = extractor.extract_header(header_path)
        logger.info("%s: %d function(s)", header.display_name, len(header.functions))
        headers.append(header)

    timestamp = None if args.no_timestamp else datetime.now(timezone.utc)
    document = synthesizer.generate_bindings(headers, timestamp=timestamp)
    write_bindings(document, args.output)

    if args.syntax_check:
        syntax_check(args.output, include_dirs=list(args.include_dirs) + _header_dirs(args.headers),
                     extra_flags=[f"-D{d}" for d in args.defines])

    total = sum(len(h.functions) for h in headers)
    file_names = library_file_names(library)
    print("\n--- Generation Summary ---")
    print(f"Headers: {len(headers)}, Functions: {total}")
    print(f"Library: {file_names['windows']} / {file_names['linux']} / {file_names['darwin']}")
    print("--------------------------")
    print(f"\nSuccessfully generated delay-load bindings at: {args.output}")
    return 0


def _header_dirs(header_paths) -> List[str]:
    dirs: List[str] = []
    for path in header_paths:
        directory = os.path.dirname(os.path.abspath(path))
        if directory not in dirs:
            dirs.append(directory)
    return dirs


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line interface for the delay-load binding generator."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(verbose=args.verbose)

    try:
        return run(args)
    except (FileNotFoundError, DelayLoadError) as e:
        print(f"An error occurred: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
