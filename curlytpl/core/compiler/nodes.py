# curlytpl/core/compiler/nodes.py
"""Intermediate representation produced by the parser and consumed by codegen."""
from dataclasses import dataclass, field
from typing import List, Optional, Union


@dataclass
class Text:
    value: str


@dataclass
class Output:
    # interpolation; expression already translated to python
    code: str
    filter: Optional[str] = None


@dataclass
class Constant:
    name: str


@dataclass
class Load:
    # python expression evaluating to the template name
    target: str


@dataclass
class BlockCall:
    key: str


@dataclass
class Statement:
    code: str


@dataclass
class Branch:
    test: Optional[str]  # None for the final else
    body: List["Node"] = field(default_factory=list)


@dataclass
class If:
    branches: List[Branch] = field(default_factory=list)


@dataclass
class Foreach:
    collection: str
    key: str
    value: Optional[str] = None
    guarded: bool = True
    body: List["Node"] = field(default_factory=list)
    empty: Optional[List["Node"]] = None


@dataclass
class For:
    target: str
    iterable: str
    body: List["Node"] = field(default_factory=list)


@dataclass
class While:
    test: str
    body: List["Node"] = field(default_factory=list)


Node = Union[Text, Output, Constant, Load, BlockCall, Statement, If, Foreach, For, While]


@dataclass
class BlockDef:
    name: str
    key: str
    body: List[Node] = field(default_factory=list)


@dataclass
class TemplateIR:
    body: List[Node] = field(default_factory=list)
    blocks: List[BlockDef] = field(default_factory=list)
    nocache: bool = False
