from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional, Tuple

from names import base_name_of

if TYPE_CHECKING:
    from ast_query import DeclarationKind, Linkage, SourceLanguage, Visibility


class CallingConvention(Enum):
    CDECL = "cdecl"
    STDCALL = "stdcall"
    FASTCALL = "fastcall"
    THISCALL = "thiscall"
    VECTORCALL = "vectorcall"
    UNKNOWN = "unknown"

    @classmethod
    def from_clang(cls, value: int) -> "CallingConvention":
        """Maps a libclang CXCallingConv value; anything unrecognised is UNKNOWN."""
        return _CLANG_CALLING_CONVENTIONS.get(value, cls.UNKNOWN)

    @property
    def annotation(self) -> str:
        """The keyword placed before a function name, empty for the C default."""
        return _ANNOTATIONS.get(self, "")


_CLANG_CALLING_CONVENTIONS = {
    1: CallingConvention.CDECL,
    2: CallingConvention.STDCALL,
    3: CallingConvention.FASTCALL,
    4: CallingConvention.THISCALL,
    12: CallingConvention.VECTORCALL,
}

_ANNOTATIONS = {
    CallingConvention.STDCALL: "__stdcall",
    CallingConvention.FASTCALL: "__fastcall",
    CallingConvention.THISCALL: "__thiscall",
    CallingConvention.VECTORCALL: "__vectorcall",
}


@dataclass(frozen=True)
class RawDeclaration:
    """Snapshot of one top-level declaration, taken before any filtering."""
    kind: "DeclarationKind"
    spelling: str
    linkage: "Linkage"
    visibility: "Visibility"
    language: "SourceLanguage"
    result_type: str = ""
    canonical_result_type: str = ""
    calling_convention: CallingConvention = CallingConvention.UNKNOWN
    is_variadic: bool = False
    parameters: Tuple[str, ...] = ()
    source_file: Optional[str] = None


@dataclass(frozen=True)
class Function:
    name: str
    result_type: str
    parameters: Tuple[str, ...] = ()
    calling_convention: CallingConvention = CallingConvention.CDECL
    canonical_result_type: str = ""
    is_variadic: bool = False

    @property
    def returns_void(self) -> bool:
        # Canonical spelling catches typedef'd void (e.g. VOID on Windows)
        result = (self.canonical_result_type or self.result_type).strip()
        return result in ("", "void")


@dataclass(frozen=True)
class Header:
    display_name: str
    functions: Tuple[Function, ...] = field(default_factory=tuple)
    path: Optional[str] = None

    def is_empty(self) -> bool:
        return not self.functions

    @classmethod
    def from_path(cls, path: str, functions) -> "Header":
        return cls(display_name=base_name_of(path), functions=tuple(functions), path=path)

