"""
ModelGraph Kernel: Shared Types

Constants and small data classes used across schema, model, refs and collection.
These are the contracts that bind the kernel together.
"""

from __future__ import annotations

from collections.abc import Mapping, MutableSequence
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Serialization tags
# ---------------------------------------------------------------------------

# Key holding the model type when a model is converted into plain data
TYPE_PROP = "__type__"

# Type of models whose class does not declare one (read from the type attribute)
DEFAULT_TYPE = "__default_type__"

# Suffix of the accessor exposing a reference's raw id(s): owner -> owner_id
REF_ID_SUFFIX = "_id"

# Names that must never be written as model attributes by update()
RESERVED_KEYS: frozenset[str] = frozenset(
    {
        "schema",
        "assign",
        "assign_ref",
        "unassign",
        "update",
        "get",
        "set",
        "to_js",
        "snapshot",
        "watch",
        "patch_listen",
        "apply_patch",
        "record_id",
        "record_type",
        "collection",
        "preprocess",
        "auto_id_function",
    }
)

# Python scalar types accepted as identifiers
IdType = str | int

# Where an id or type lives in model data: a key, or a path of nested keys
AttributePath = str | tuple[str, ...]


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelOpts:
    """Explicit type and/or id override passed to a Model constructor."""

    type: str | None = None
    id: IdType | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def is_sequence(value: Any) -> bool:
    """True for list-like reference values (lists, tuples, reference lists)."""
    return isinstance(value, (MutableSequence, tuple))


def map_items(data: Any, fn: Callable[[Any], T]) -> T | list[T] | None:
    """Apply fn to a single item or to every item of a list. None stays None."""
    if is_sequence(data):
        return [fn(item) for item in data]
    if data is None:
        return None
    return fn(data)


def first(items: list[T]) -> T | None:
    return items[0] if items else None


def as_path(attribute: AttributePath | list[str]) -> tuple[str, ...]:
    """Normalize an attribute declaration: "id" -> ("id",), ["meta", "id"] -> ("meta", "id")."""
    path = (attribute,) if isinstance(attribute, str) else tuple(attribute)
    if not path:
        raise ValueError("Attribute path must not be empty")
    return path


def get_path(data: Any, path: tuple[str, ...]) -> Any:
    """Value at a nested path, or None when any step is missing. An empty path returns data."""
    value = data
    for key in path:
        if not isinstance(value, Mapping):
            return None
        value = value.get(key)
    return value


def set_path(data: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
    """
    Write value at a nested path of data.

    Intermediate mappings are copied rather than mutated, so nested dicts shared
    with the caller are left alone. Missing or non-mapping steps become dicts.
    """
    *parents, last = path
    target = data
    for key in parents:
        child = target.get(key)
        child = dict(child) if isinstance(child, Mapping) else {}
        target[key] = child
        target = child
    target[last] = value
