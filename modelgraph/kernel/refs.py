"""
ModelGraph Kernel: Reference Resolution

Translates between the ids a model stores for a reference and the live models
they denote.

  write: to_ref_id()        model / mapping / scalar -> id (upserting mappings)
  read:  resolve_ref()      stored id(s) -> Model | RefList | None
         resolve_external() inverse lookup over the collection

RefList is the list form of a resolved reference. It holds no models of its
own: every read goes through the owner's stored id list, and every mutation
is funnelled into Model._splice_ref(), so the model list and the id list
always describe the same ordered references.
"""

from __future__ import annotations

from collections.abc import Mapping, MutableSequence
from typing import TYPE_CHECKING, Any, Iterable, Iterator

from modelgraph.kernel.errors import ReferenceTypeError, UnanchoredReferenceError
from modelgraph.kernel.reactive import transaction
from modelgraph.kernel.schema import ExternalReference
from modelgraph.kernel.types import IdType, is_sequence

if TYPE_CHECKING:
    from modelgraph.kernel.model import Model


# ---------------------------------------------------------------------------
# Write path
# ---------------------------------------------------------------------------


def is_model(value: Any) -> bool:
    from modelgraph.kernel.model import Model

    return isinstance(value, Model)


def holds_objects(value: Any) -> bool:
    """True if value (or any item of it) is a model or a mapping to upsert."""
    items = value if is_sequence(value) else [value]
    return any(is_model(item) or isinstance(item, Mapping) for item in items)


def to_ref_id(owner: Model, ref_type: str, item: Any) -> IdType | None:
    """
    Turn one reference item into the id to store.

    Models and mappings are upserted into the owner's collection under
    ref_type; scalars are taken as ids; None stays None.
    """
    if item is None:
        return None

    if not (is_model(item) or isinstance(item, Mapping)):
        return item

    collection = owner.collection
    if collection is None:
        raise UnanchoredReferenceError(
            f"{owner!r} needs to be in a collection to reference {item!r}"
        )
    if is_model(item) and item.record_type != ref_type:
        raise ReferenceTypeError(f"The model should be a '{ref_type}', got '{item.record_type}'")

    # Mappings are built as ref_type, whatever their own type tag says
    return collection.add(item, ref_type).record_id


# ---------------------------------------------------------------------------
# Read path
# ---------------------------------------------------------------------------


def resolve_ref(owner: Model, key: str) -> Model | RefList | None:
    """Resolve a direct reference. Registers dependencies when read inside a Derived."""
    collection = owner._collection_cell.get()
    ids = owner._data[key].get()
    if collection is None or ids is None:
        return None
    if isinstance(ids, list):
        # Items resolve on access; depend on membership so target arrival and removal invalidate
        collection._members.get()
        return RefList(owner, key)
    return collection.find(owner._refs[key], ids)


def resolve_external(owner: Model, definition: ExternalReference) -> list[Model]:
    """Every `definition.model` whose `definition.property` is or contains owner."""
    collection = owner._collection_cell.get()
    if collection is None:
        return []

    result = []
    for candidate in collection.find_all(definition.model):
        value = candidate.get(definition.property)
        if value is owner:
            result.append(candidate)
        elif is_sequence(value) and any(item is owner for item in value):
            result.append(candidate)
    return result


# ---------------------------------------------------------------------------
# RefList
# ---------------------------------------------------------------------------


class RefList(MutableSequence):
    """
    Live list of the models an array reference points to.

    Supports everything a list does (indexing, slicing, append, insert, extend,
    pop, remove, del, +=). Items may be Models, mappings (upserted) or ids.
    Unresolvable ids read as None.
    """

    __slots__ = ("_owner", "_key")

    def __init__(self, owner: Model, key: str) -> None:
        self._owner = owner
        self._key = key

    @property
    def ids(self) -> list[IdType | None]:
        """Copy of the underlying id list."""
        return list(self._ids())

    def _ids(self) -> list[IdType | None]:
        ids = self._owner._data[self._key].get()
        return ids if isinstance(ids, list) else []

    def _resolve(self, ref_id: IdType | None) -> Model | None:
        collection = self._owner._collection_cell.get()
        if collection is None or ref_id is None:
            return None
        return collection.find(self._owner._refs[self._key], ref_id)

    def _splice(self, index: int, remove_count: int, added: list[Any]) -> None:
        self._owner._splice_ref(self._key, index, remove_count, added)

    # -- reads --

    def __len__(self) -> int:
        return len(self._ids())

    def __getitem__(self, index: int | slice) -> Any:
        ids = self._ids()
        if isinstance(index, slice):
            return [self._resolve(ref_id) for ref_id in ids[index]]
        return self._resolve(ids[index])

    def __iter__(self) -> Iterator[Model | None]:
        for ref_id in self._ids():
            yield self._resolve(ref_id)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, (RefList, list, tuple)):
            return list(self) == list(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"RefList({list(self)!r})"

    # -- mutations (all through _splice) --

    def __setitem__(self, index: int | slice, value: Any) -> None:
        length = len(self)
        if isinstance(index, slice):
            start, stop, step = index.indices(length)
            if step != 1:
                raise ValueError("extended slice assignment is not supported on reference lists")
            self._splice(start, max(stop - start, 0), list(value))
        else:
            self._splice(_normalize(index, length), 1, [value])

    def __delitem__(self, index: int | slice) -> None:
        length = len(self)
        if isinstance(index, slice):
            positions = range(*index.indices(length))
            if positions.step == 1:
                self._splice(positions.start, len(positions), [])
                return
            with transaction():
                for position in sorted(positions, reverse=True):
                    self._splice(position, 1, [])
        else:
            self._splice(_normalize(index, length), 1, [])

    def insert(self, index: int, value: Any) -> None:
        length = len(self)
        if index < 0:
            index = max(length + index, 0)
        self._splice(min(index, length), 0, [value])

    def extend(self, values: Iterable[Any]) -> None:
        self._splice(len(self), 0, list(values))

    def clear(self) -> None:
        self._splice(0, len(self), [])


def _normalize(index: int, length: int) -> int:
    if index < 0:
        index += length
    if not 0 <= index < length:
        raise IndexError("reference list index out of range")
    return index
