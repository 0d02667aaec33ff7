import os
from dataclasses import dataclass
from typing import List, Optional

from clang.cindex import Diagnostic, Index, TranslationUnit, TranslationUnitLoadError

from ast_query import (AstQuery, ClangQuery, DeclarationKind, Linkage,
                       SourceLanguage, Visibility)
from diagnostics import get_logger
from errors import EmptyExtraction, ParseError
from out_types import CallingConvention, Function, Header, RawDeclaration

logger = get_logger("extractor")


@dataclass(frozen=True)
class ExtractionPolicy:
    """Heuristic filters applied on top of the linkage and visibility rules."""
    require_c_language: bool = True
    skip_reserved_names: bool = True
    main_file_only: bool = False


def _snapshot(node, query: AstQuery, kind: DeclarationKind) -> RawDeclaration:
    spelling = query.spelling(node)
    if kind != DeclarationKind.FUNCTION:
        return RawDeclaration(
            kind=kind, spelling=spelling,
            linkage=query.linkage(node), visibility=query.visibility(node),
            language=query.language(node), source_file=query.source_file(node),
        )

    parameters = tuple(
        query.type_spelling(child)
        for child in query.children(node)
        if query.kind(child) == DeclarationKind.PARAMETER
    )
    return RawDeclaration(
        kind=kind,
        spelling=spelling,
        linkage=query.linkage(node),
        visibility=query.visibility(node),
        language=query.language(node),
        result_type=query.result_type(node),
        canonical_result_type=query.canonical_result_type(node),
        calling_convention=query.calling_convention(node),
        is_variadic=query.is_variadic(node),
        parameters=parameters,
        source_file=query.source_file(node),
    )


def traverse(root, query: AstQuery) -> List[RawDeclaration]:
    """
    Snapshots every top-level declaration under root, in source order.

    Only function declarations are descended into, and only their direct
    parameter children are recorded, so parameters of function-pointer
    parameters never leak into the enclosing signature.
    """
    return [_snapshot(node, query, query.kind(node)) for node in query.children(root)]


def _rejection_reason(decl: RawDeclaration, policy: ExtractionPolicy, main_file: Optional[str]) -> Optional[str]:
    if decl.kind != DeclarationKind.FUNCTION:
        return "not a function"
    if not decl.spelling:
        return "unnamed"
    if decl.linkage != Linkage.EXTERNAL:
        return f"{decl.linkage.name.lower()} linkage"
    if decl.visibility != Visibility.DEFAULT:
        return f"{decl.visibility.name.lower()} visibility"
    if policy.require_c_language and decl.language != SourceLanguage.C:
        return f"{decl.language.name.lower()} language"
    if policy.skip_reserved_names and decl.spelling.startswith("_"):
        return "reserved name"
    if policy.main_file_only and main_file and decl.source_file \
            and os.path.normcase(os.path.abspath(decl.source_file)) != main_file:
        return f"declared in {decl.source_file}"
    if decl.is_variadic:
        return "variadic"
    return None


def select_functions(declarations, policy: ExtractionPolicy = ExtractionPolicy(),
                     main_file: Optional[str] = None) -> List[Function]:
    """
    Turns raw declarations into Functions, keeping declaration order.

    A function declared more than once in the translation unit is kept once,
    at its first qualifying declaration.
    """
    if main_file:
        main_file = os.path.normcase(os.path.abspath(main_file))

    functions: List[Function] = []
    seen = set()
    foreign: List[str] = []
    for decl in declarations:
        reason = _rejection_reason(decl, policy, main_file)
        if reason is not None:
            if reason == "variadic":
                logger.warning("Skipping variadic function %s: it cannot be forwarded", decl.spelling)
            elif decl.kind == DeclarationKind.FUNCTION:
                logger.debug("Skipping %s: %s", decl.spelling, reason)
            continue
        if decl.spelling in seen:
            logger.debug("Skipping redeclaration of %s", decl.spelling)
            continue
        seen.add(decl.spelling)

        if main_file and decl.source_file \
                and os.path.normcase(os.path.abspath(decl.source_file)) != main_file:
            foreign.append(decl.spelling)

        if decl.calling_convention == CallingConvention.UNKNOWN:
            logger.debug("Unrecognised calling convention for %s", decl.spelling)
        logger.debug("Found Function: %s(%s)", decl.spelling, ", ".join(decl.parameters))
        functions.append(Function(
            name=decl.spelling,
            result_type=decl.result_type,
            parameters=decl.parameters,
            calling_convention=decl.calling_convention,
            canonical_result_type=decl.canonical_result_type,
            is_variadic=decl.is_variadic,
        ))

    if foreign:
        logger.warning("%d wrapped function(s) are declared in included headers (%s%s); "
                       "pass --main-file-only to wrap only the header's own declarations",
                       len(foreign), ", ".join(foreign[:5]), ", ..." if len(foreign) > 5 else "")
    return functions


class DeclarationExtractor:
    """
    Extracts wrappable function declarations from C headers using libclang.

    Every parse_header call builds its own index and translation unit, so
    nothing carries over from one header to the next.
    """

    def __init__(self, clang_args: Optional[List[str]] = None,
                 policy: ExtractionPolicy = ExtractionPolicy(),
                 query: Optional[AstQuery] = None):
        self.clang_args = list(clang_args or [])
        self.policy = policy
        self.query = query or ClangQuery()

    def _parse_args(self) -> List[str]:
        # Force parsing as a C header unless the caller picked a language
        args = [] if "-x" in self.clang_args else ["-x", "c-header"]
        return args + self.clang_args

    def parse_header(self, header_path: str) -> List[Function]:
        """Parses one header and returns its qualifying functions in declaration order."""
        if not os.path.isfile(header_path):
            raise ParseError(header_path, "file not found")
        if not os.access(header_path, os.R_OK):
            raise ParseError(header_path, "file is not readable")

        logger.info("Parsing header: %s", header_path)
        args = self._parse_args()
        logger.debug("Parsing with args: %s", args)
        index = Index.create()
        try:
            tu = index.parse(header_path, args=args,
                             options=TranslationUnit.PARSE_SKIP_FUNCTION_BODIES)
        except TranslationUnitLoadError as e:
            raise ParseError(header_path, str(e) or "libclang returned no translation unit") from e

        for diag in tu.diagnostics:
            if diag.severity >= Diagnostic.Fatal:
                raise ParseError(header_path, diag.spelling)
            if diag.severity >= Diagnostic.Error:
                logger.warning("Clang error in %s: %s", header_path, diag.spelling)

        declarations = traverse(tu.cursor, self.query)
        return select_functions(declarations, self.policy, main_file=header_path)

    def extract_header(self, header_path: str) -> Header:
        functions = self.parse_header(header_path)
        if not functions:
            raise EmptyExtraction(header_path)
        return Header.from_path(header_path, functions)
