"""
ModelGraph Kernel: Collection

The index of every model in a graph. Holds at most one model per (type, id),
upserts on add, resolves references through find(), and re-broadcasts member
patches with collection-level paths (/<type>/<id>/<field>).

Subclasses register their model classes for constructor dispatch:

  class Store(Collection):
      types = [Person, Pet]
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Callable, ClassVar, Iterator

from modelgraph.kernel.errors import InvalidPatchError, UnknownTypeError
from modelgraph.kernel.model import Model
from modelgraph.kernel.patches import (
    Patch,
    PatchListener,
    PatchListeners,
    PatchOp,
    coerce_patch,
    join_path,
    split_path,
)
from modelgraph.kernel.reactive import Cell, Derived, transaction
from modelgraph.kernel.types import TYPE_PROP, IdType, first, is_sequence

logger = logging.getLogger(__name__)

IndexKey = tuple[str, IdType]


class Collection:
    """Typed store of models, keyed by (type, id)."""

    types: ClassVar[list[type[Model]]] = []

    def __init__(self, data: list[Mapping[str, Any]] | Mapping[str, Any] | None = None) -> None:
        self._members = Cell([])
        self._index: dict[IndexKey, Model] = {}
        self._by_type_cells: dict[str, Derived] = {}
        self._listeners = PatchListeners()

        if data:
            self.insert(data)

    # -- adding --

    def add(self, model: Any, type: str | None = None) -> Any:
        """
        Add a model, a mapping or a list of either.

        Mappings are built with the class registered for `type` (else their
        "__type__" tag). A model or mapping matching an existing (type, id) is
        merged into the existing member, which is returned instead.
        """
        if is_sequence(model):
            with transaction():
                return [self.add(item, type) for item in model]

        with transaction():
            if isinstance(model, Model):
                return self._add_instance(model)
            if not isinstance(model, Mapping):
                raise TypeError(f"Collection.add() expects a Model or a mapping, got {model!r}")
            return self._add_data(model, type)

    def _add_instance(self, model: Model) -> Model:
        existing = self._index.get(_key(model))
        if existing is model:
            return model
        if existing is not None:
            logger.debug("Merging %r into existing member", model)
            existing.update(model)
            if model._collection_cell.peek() is self:
                model._detach()
            return existing

        previous = model._collection_cell.peek()
        if previous is not None and previous is not self and model in previous:
            previous.remove(model.record_type, model.record_id)
        return self._append(model)

    def _add_data(self, data: Mapping[str, Any], type: str | None) -> Model:
        tag = type if type is not None else data.get(TYPE_PROP)
        model_class = self._model_class(tag)
        schema = model_class.schema()
        opts = tag if tag is not None and schema.dynamic_type else None

        # Look for the target before construction so nested upserts run once
        values = model_class.preprocess(dict(data))
        record_id = schema.resolve_id(values)
        if record_id is not None:
            record_type = opts if opts is not None else schema.resolve_type({**schema.defaults, **values})
            existing = self._index.get((record_type, record_id))
            if existing is not None:
                logger.debug("Merging data into %r", existing)
                existing.update(values)
                return existing

        instance = model_class(data, opts, self)
        existing = self._index.get(_key(instance))
        if existing is not None:
            # Constructing the instance upserted an equivalent model through its refs
            instance._detach()
            existing.update(instance)
            return existing
        return self._append(instance)

    def _append(self, model: Model) -> Model:
        model._attach(self)
        self._index[_key(model)] = model
        self._members.peek().append(model)
        self._members.touch()
        logger.debug("Added %r", model)
        if self._listeners:
            self._trigger_change(
                Patch(op=PatchOp.ADD, path=join_path(model.record_type, model.record_id), value=model.to_js()),
                model,
            )
        return model

    def _model_class(self, type: str | None) -> type[Model]:
        """First registered class whose static type is `type`, else the base Model."""
        for model_class in self.types:
            if type is not None and model_class.type == type:
                return model_class
        return Model

    def insert(self, data: list[Mapping[str, Any]] | Mapping[str, Any]) -> list[Model]:
        """Import serialized models. Every item must carry its "__type__" tag."""
        items = list(data) if is_sequence(data) else [data]
        for item in items:
            if not isinstance(item, Mapping) or item.get(TYPE_PROP) is None:
                raise UnknownTypeError(f"Cannot determine the type of {item!r}")

        with transaction():
            models = [self.add(item, item[TYPE_PROP]) for item in items]
        logger.debug("Inserted %d models", len(models))
        return models

    # -- lookups --

    def find(self, type: str, id: IdType | None = None) -> Model | None:
        """The model with this type and id, or the first of the type when id is None."""
        self._members.get()
        if id is None:
            return first(self.find_all(type))
        return self._index.get((type, id))

    def find_all(self, type: str) -> list[Model]:
        return list(self.by_type(type).get())

    def by_type(self, type: str) -> Derived:
        """Reactive list of the members of one type, in insertion order."""
        cell = self._by_type_cells.get(type)
        if cell is None:
            cell = self._by_type_cells[type] = Derived(
                lambda: [model for model in self._members.get() if model.record_type == type]
            )
        return cell

    def __getattr__(self, name: str) -> list[Model]:
        if name.startswith("_"):
            raise AttributeError(name)
        known = {model_class.type for model_class in self.types}
        known.update(model.record_type for model in self._members.peek())
        if name in known:
            return self.find_all(name)
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    def __len__(self) -> int:
        return len(self._members.get())

    def __iter__(self) -> Iterator[Model]:
        return iter(list(self._members.get()))

    def __contains__(self, model: object) -> bool:
        return isinstance(model, Model) and self._index.get(_key(model)) is model

    # -- removing --

    def remove(self, type: str, id: IdType | None = None) -> Model | None:
        """Remove one model (the first of the type when id is None). Returns it, or None."""
        model = self.find(type, id)
        if model is not None:
            self._remove_models([model])
        return model

    def remove_all(self, type: str) -> list[Model]:
        models = self.find_all(type)
        self._remove_models(models)
        return models

    def reset(self) -> None:
        """Remove every model."""
        models = list(self._members.peek())
        self._remove_models(models)
        logger.debug("Reset collection (%d models removed)", len(models))

    def _remove_models(self, models: list[Model]) -> None:
        if not models:
            return
        doomed = {id(model) for model in models}
        with transaction():
            self._members.set([model for model in self._members.peek() if id(model) not in doomed])
            for model in models:
                key = _key(model)
                if self._index.get(key) is model:
                    del self._index[key]
                model._detach()
                logger.debug("Removed %r", model)
                if self._listeners:
                    self._trigger_change(
                        Patch(op=PatchOp.REMOVE, path=join_path(*key), old_value=model.to_js()),
                        model,
                    )

    def _reindex(self, model: Model, old_type: str) -> None:
        """Re-key a member whose dynamic type attribute changed."""
        old_key = (old_type, model.record_id)
        if self._index.get(old_key) is not model:
            return
        del self._index[old_key]

        new_key = _key(model)
        if new_key in self._index:
            logger.warning("Cannot re-index %r: %s/%s is taken, it is no longer found by id", model, *new_key)
        else:
            self._index[new_key] = model
        self._members.touch()

    # -- serialization --

    def to_js(self) -> list[dict[str, Any]]:
        return [model.to_js() for model in self._members.peek()]

    @property
    def snapshot(self) -> list[dict[str, Any]]:
        return self.to_js()

    # -- patches --

    def patch_listen(self, listener: PatchListener) -> Callable[[], None]:
        """Register listener(patch, model) for every change in the collection."""
        return self._listeners.add(listener)

    def _trigger_change(self, patch: Patch, model: Model) -> None:
        self._listeners.emit(patch, model)

    def _on_patch_trigger(self, patch: Patch, model: Model, record_type: str | None = None) -> None:
        if record_type is None:
            record_type = model.record_type
        # Models built for a merge point here without being members
        if self._index.get((record_type, model.record_id)) is not model:
            return
        self._trigger_change(
            Patch(
                op=patch.op,
                path=join_path(record_type, model.record_id) + patch.path,
                value=patch.value,
                old_value=patch.old_value,
            ),
            model,
        )

    def apply_patch(self, patch: Patch | dict[str, Any]) -> None:
        """
        Replay a collection-level patch.

          /<type>/<id>/<field>   forwarded to the model
          /<type>/<id>           add (value = model data) or remove
        """
        patch = coerce_patch(patch)
        segments = split_path(patch.path)
        if len(segments) < 2:
            raise InvalidPatchError(f"Collection patch must address /<type>/<id>: {patch.path}")
        record_type, path_id, *field = segments

        if field:
            model = self._find_by_path_id(record_type, path_id)
            if model is None:
                logger.warning("Dropping patch for missing model: %s", patch.path)
                return
            model.apply_patch(Patch(op=patch.op, path=join_path(*field), value=patch.value, old_value=patch.old_value))
        elif patch.op == PatchOp.ADD:
            self.add(patch.value, record_type)
        elif patch.op == PatchOp.REMOVE:
            model = self._find_by_path_id(record_type, path_id)
            if model is not None:
                self._remove_models([model])
        else:
            raise InvalidPatchError(f"Unsupported collection operation {patch.op.value}: {patch.path}")

    def _find_by_path_id(self, type: str, path_id: str) -> Model | None:
        model = self._index.get((type, path_id))
        if model is not None:
            return model
        for candidate in self.find_all(type):
            if str(candidate.record_id) == path_id:
                return candidate
        return None


def _key(model: Model) -> IndexKey:
    return (model.record_type, model.record_id)
