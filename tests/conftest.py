import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import pytest

PROJECT_DIR = Path(__file__).resolve().parent.parent
if str(PROJECT_DIR) not in sys.path:
    sys.path.insert(0, str(PROJECT_DIR))

from ast_query import AstQuery, DeclarationKind, Linkage, SourceLanguage, Visibility  # noqa: E402
from out_types import CallingConvention, Function, Header  # noqa: E402


@dataclass
class FakeNode:
    kind: DeclarationKind
    spelling: str = ""
    linkage: Linkage = Linkage.EXTERNAL
    visibility: Visibility = Visibility.DEFAULT
    language: SourceLanguage = SourceLanguage.C
    result_type: str = "void"
    canonical_result_type: str = ""
    calling_convention: CallingConvention = CallingConvention.CDECL
    is_variadic: bool = False
    type_spelling: str = ""
    source_file: Optional[str] = None
    children: List["FakeNode"] = field(default_factory=list)


class FakeQuery(AstQuery):
    """Answers AST queries from FakeNode trees and records which nodes were descended into."""

    def __init__(self):
        self.descended: List[str] = []

    def children(self, node):
        self.descended.append(node.spelling)
        return iter(node.children)

    def kind(self, node):
        return node.kind

    def linkage(self, node):
        return node.linkage

    def visibility(self, node):
        return node.visibility

    def language(self, node):
        return node.language

    def spelling(self, node):
        return node.spelling

    def result_type(self, node):
        return node.result_type

    def canonical_result_type(self, node):
        return node.canonical_result_type

    def calling_convention(self, node):
        return node.calling_convention

    def is_variadic(self, node):
        return node.is_variadic

    def type_spelling(self, node):
        return node.type_spelling

    def source_file(self, node):
        return node.source_file


def param(type_spelling: str, *children: FakeNode) -> FakeNode:
    return FakeNode(kind=DeclarationKind.PARAMETER, type_spelling=type_spelling, children=list(children))


def func(name: str, result_type: str = "void", *params: str, **overrides) -> FakeNode:
    return FakeNode(kind=DeclarationKind.FUNCTION, spelling=name, result_type=result_type,
                    children=[param(p) for p in params], **overrides)


def other(name: str) -> FakeNode:
    return FakeNode(kind=DeclarationKind.OTHER, spelling=name, linkage=Linkage.NO_LINKAGE)


def unit(*nodes: FakeNode) -> FakeNode:
    return FakeNode(kind=DeclarationKind.OTHER, spelling="<tu>", children=list(nodes))


@pytest.fixture
def fake_query() -> FakeQuery:
    return FakeQuery()


@pytest.fixture
def mylib_header() -> Header:
    return Header(
        display_name="mylib.h",
        functions=(
            Function("Add", "int", ("int", "int")),
            Function("Log", "void", ("const char *",)),
        ),
        path="include/mylib.h",
    )


@pytest.fixture(autouse=True)
def _reset_logging():
    # The CLI reconfigures the delayloadgen logger; restore propagation so caplog sees records
    yield
    logger = logging.getLogger("delayloadgen")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
