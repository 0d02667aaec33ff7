"""
Read-only view of a parsed header.

The extractor only ever talks to an AstQuery; ClangQuery answers those
questions from libclang cursors. Visibility, source language and calling
convention are not exposed as cursor properties by every release of the
clang bindings, so they are read straight from the libclang entry points.
"""

import os
from ctypes import c_int
from enum import Enum
from typing import Iterable, Optional

from clang.cindex import Config, Cursor, CursorKind, Type, TypeKind, conf

from diagnostics import get_logger
from out_types import CallingConvention

logger = get_logger("ast_query")


class DeclarationKind(Enum):
    FUNCTION = "function"
    PARAMETER = "parameter"
    OTHER = "other"


class Linkage(Enum):
    INVALID = 0
    NO_LINKAGE = 1
    INTERNAL = 2
    UNIQUE_EXTERNAL = 3
    EXTERNAL = 4


class Visibility(Enum):
    INVALID = 0
    HIDDEN = 1
    PROTECTED = 2
    DEFAULT = 3


class SourceLanguage(Enum):
    INVALID = 0
    C = 1
    OBJC = 2
    CPLUSPLUS = 3


def _enum_or_invalid(enum_type, value: int):
    try:
        return enum_type(value)
    except ValueError:
        return enum_type.INVALID


class AstQuery:
    """The questions the extractor may ask about a declaration node."""

    def children(self, node) -> Iterable:
        raise NotImplementedError

    def kind(self, node) -> DeclarationKind:
        raise NotImplementedError

    def linkage(self, node) -> Linkage:
        raise NotImplementedError

    def visibility(self, node) -> Visibility:
        raise NotImplementedError

    def language(self, node) -> SourceLanguage:
        raise NotImplementedError

    def spelling(self, node) -> str:
        raise NotImplementedError

    def result_type(self, node) -> str:
        raise NotImplementedError

    def canonical_result_type(self, node) -> str:
        raise NotImplementedError

    def calling_convention(self, node) -> CallingConvention:
        raise NotImplementedError

    def is_variadic(self, node) -> bool:
        raise NotImplementedError

    def type_spelling(self, node) -> str:
        raise NotImplementedError

    def source_file(self, node) -> Optional[str]:
        raise NotImplementedError


_raw_functions = {}


def _libclang_function(name: str, argtype):
    func = _raw_functions.get(name)
    if func is None:
        func = getattr(conf.lib, name)
        func.argtypes = [argtype]
        func.restype = c_int
        _raw_functions[name] = func
    return func


class ClangQuery(AstQuery):
    def children(self, node: Cursor):
        return node.get_children()

    def kind(self, node: Cursor) -> DeclarationKind:
        if node.kind == CursorKind.FUNCTION_DECL:
            return DeclarationKind.FUNCTION
        if node.kind == CursorKind.PARM_DECL:
            return DeclarationKind.PARAMETER
        return DeclarationKind.OTHER

    def linkage(self, node: Cursor) -> Linkage:
        value = _libclang_function("clang_getCursorLinkage", Cursor)(node)
        return _enum_or_invalid(Linkage, value)

    def visibility(self, node: Cursor) -> Visibility:
        value = _libclang_function("clang_getCursorVisibility", Cursor)(node)
        return _enum_or_invalid(Visibility, value)

    def language(self, node: Cursor) -> SourceLanguage:
        value = _libclang_function("clang_getCursorLanguage", Cursor)(node)
        return _enum_or_invalid(SourceLanguage, value)

    def spelling(self, node: Cursor) -> str:
        return node.spelling or ""

    def result_type(self, node: Cursor) -> str:
        return node.result_type.spelling

    def canonical_result_type(self, node: Cursor) -> str:
        return node.result_type.get_canonical().spelling

    def calling_convention(self, node: Cursor) -> CallingConvention:
        value = _libclang_function("clang_getFunctionTypeCallingConv", Type)(node.type)
        return CallingConvention.from_clang(value)

    def is_variadic(self, node: Cursor) -> bool:
        # K&R style "int f()" is reported as variadic by libclang; it has no prototype, not varargs
        if node.type.kind != TypeKind.FUNCTIONPROTO:
            return False
        return bool(node.type.is_function_variadic())

    def type_spelling(self, node: Cursor) -> str:
        return node.type.spelling

    def source_file(self, node: Cursor) -> Optional[str]:
        location_file = node.location.file
        return location_file.name if location_file else None


def configure_libclang(library_file: Optional[str] = None) -> None:
    """Points the clang bindings at an explicit libclang, falling back to $LIBCLANG_PATH."""
    library_file = library_file or os.getenv("LIBCLANG_PATH")
    if not library_file:
        return
    if Config.loaded:
        logger.warning("libclang is already loaded; ignoring library file %s", library_file)
        return
    if os.path.isdir(library_file):
        Config.set_library_path(library_file)
    else:
        Config.set_library_file(library_file)
    logger.debug("Using libclang from %s", library_file)
