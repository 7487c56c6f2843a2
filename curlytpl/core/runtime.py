# curlytpl/core/runtime.py
"""
Helpers imported by compiled artifacts. Kept small and dependency-free since
every artifact module imports them on load.
"""
import html
from collections.abc import Mapping
from typing import Any, Iterable, Iterator, Tuple


class UndefinedType:
    """The "absent" marker produced for variables that were never assigned.

    Renders as empty text, is falsy and empty, and absorbs further lookups so
    `missing.deeper.path` stays Undefined instead of raising.
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __str__(self) -> str:
        return ""

    def __repr__(self) -> str:
        return "Undefined"

    def __len__(self) -> int:
        return 0

    def __iter__(self) -> Iterator[Any]:
        return iter(())

    def __getitem__(self, key: Any) -> "UndefinedType":
        return self

    def __getattr__(self, name: str) -> "UndefinedType":
        if name.startswith("__"):
            raise AttributeError(name)
        return self

    def __eq__(self, other: Any) -> bool:
        return other is self or other is None

    def __hash__(self) -> int:
        return hash(None)


Undefined = UndefinedType()


class Variables(dict):
    # the flat variable map shared by a whole render; unbound names read as Undefined.
    def __missing__(self, key: Any) -> UndefinedType:
        return Undefined


def to_text(value: Any) -> str:
    if value is None or value is Undefined:
        return ""
    return value if isinstance(value, str) else str(value)


def escape(value: Any) -> str:
    return html.escape(to_text(value), quote=True)


def upper(value: Any) -> str:
    return to_text(value).upper()


def lower(value: Any) -> str:
    return to_text(value).lower()


def not_empty(value: Any) -> bool:
    return bool(value)


def pairs(value: Any) -> Iterable[Tuple[Any, Any]]:
    # key/value iteration: mapping items, or (index, item) for sequences.
    if isinstance(value, Mapping):
        return value.items()
    return enumerate(value)


def values(value: Any) -> Iterable[Any]:
    # single-target iteration: mapping values, or the items of a sequence.
    if isinstance(value, Mapping):
        return value.values()
    return value


def lookup(container: Any, key: Any) -> Any:
    """One step of a dotted path.

    Subscript first, then attribute access for plain objects. A missing key,
    index or attribute reads as Undefined so `{if row.flag}` works on rows
    without that field.
    """
    try:
        return container[key]
    except (KeyError, IndexError):
        return Undefined
    except TypeError:
        if isinstance(key, str):
            return getattr(container, key, Undefined)
        return Undefined
