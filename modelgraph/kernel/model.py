"""
ModelGraph Kernel: Model

One entity: plain attributes, typed references to other models, and a patch
stream describing every change.

Attribute access is dispatched through the class schema rather than installed
per instance:

  model.first_name          plain attribute
  model.owner               direct reference, resolved live (Model | None)
  model.pets                array reference, resolved live (RefList)
  model.owner_id            raw id(s) stored for a reference
  model.friends_of          external reference, derived (list[Model])

Every value lives in a reactive Cell, so derived values (resolved references,
collection type lists, autorun reactions) recompute when it changes.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Callable, ClassVar

from modelgraph.config import settings
from modelgraph.kernel.errors import (
    ExternalReferenceError,
    InvalidPatchError,
    MissingIdentifierError,
    UnanchoredReferenceError,
)
from modelgraph.kernel.patches import (
    Patch,
    PatchListener,
    PatchListeners,
    PatchOp,
    coerce_patch,
    join_path,
    split_path,
)
from modelgraph.kernel.reactive import Cell, Derived, Observable, transaction
from modelgraph.kernel.refs import holds_objects, resolve_external, resolve_ref, to_ref_id
from modelgraph.kernel.schema import ModelSchema, build_schema
from modelgraph.kernel.types import (
    DEFAULT_TYPE,
    REF_ID_SUFFIX,
    RESERVED_KEYS,
    TYPE_PROP,
    AttributePath,
    IdType,
    ModelOpts,
    first,
    get_path,
    is_sequence,
    map_items,
    set_path,
)

if TYPE_CHECKING:
    from modelgraph.kernel.collection import Collection

logger = logging.getLogger(__name__)

# Instance internals; everything else assigned on a model is data
_INTERNAL = frozenset(
    {
        "_schema",
        "_data",
        "_refs",
        "_ref_cells",
        "_keys_cell",
        "_collection_cell",
        "_listeners",
        "_silent",
    }
)


def _same(a: Any, b: Any) -> bool:
    return a is b or a == b


def _copy_ids(ids: Any) -> Any:
    return list(ids) if isinstance(ids, list) else ids


def _is_collection(value: Any) -> bool:
    from modelgraph.kernel.collection import Collection

    return isinstance(value, Collection)


class Model:
    """
    Base class for every entity kind.

    Subclasses configure themselves with class attributes:

      type            static type tag (DEFAULT_TYPE: read it from type_attribute)
      id_attribute    field holding the identifier (or a tuple path into nested data)
      type_attribute  field (or path) holding the type when `type` is DEFAULT_TYPE
      refs            {name: "target_type"} or {name: ExternalReference(...)}
      defaults        values merged under the constructor data
      enable_auto_id  assign ids from auto_id_function() when none is given
    """

    __slots__ = tuple(_INTERNAL)

    type: ClassVar[str] = DEFAULT_TYPE
    id_attribute: ClassVar[AttributePath] = "id"
    type_attribute: ClassVar[AttributePath] = TYPE_PROP
    refs: ClassVar[dict[str, Any]] = {}
    defaults: ClassVar[dict[str, Any]] = {}
    enable_auto_id: ClassVar[bool] = settings.ENABLE_AUTO_ID
    autoincrement_value: ClassVar[int] = settings.AUTO_ID_START

    def __init__(
        self,
        data: Mapping[str, Any] | None = None,
        opts: ModelOpts | Mapping[str, Any] | str | Collection | None = None,
        collection: Collection | None = None,
    ) -> None:
        if _is_collection(opts):
            collection, opts = opts, None

        schema = type(self).schema()
        values = copy.deepcopy(dict(schema.defaults))
        values.update(type(self).preprocess(dict(data or {})))

        id_set = False
        if isinstance(opts, str):
            opts = ModelOpts(type=opts)
        elif isinstance(opts, Mapping):
            opts = ModelOpts(**opts)
        if opts is not None:
            if opts.type is not None and schema.dynamic_type:
                set_path(values, schema.type_attribute, opts.type)
            if opts.id is not None:
                set_path(values, schema.id_attribute, opts.id)
                id_set = True

        if not id_set:
            self._ensure_id(schema, values, collection)

        self._schema = schema
        self._collection_cell = Cell(collection)
        self._listeners = PatchListeners()
        self._keys_cell = Cell(None)
        self._refs: dict[str, str] = {name: ref.type for name, ref in schema.refs.items()}
        self._ref_cells: dict[str, Derived] = {}
        self._data: dict[str, Cell] = {name: Cell(None) for name in self._refs}

        # Construction is silent: no patches for the initial data
        self._silent = True
        try:
            self.update(values)
        finally:
            self._silent = False

    # -- class-level configuration --

    @classmethod
    def schema(cls) -> ModelSchema:
        """The class configuration, resolved once per class."""
        cached = cls.__dict__.get("_schema_cache")
        if cached is None:
            cached = build_schema(cls)
            cls._schema_cache = cached
        return cached

    @classmethod
    def preprocess(cls, raw_data: dict[str, Any]) -> dict[str, Any]:
        """Hook for reshaping incoming data (e.g. an API payload) before use."""
        return raw_data

    @classmethod
    def auto_id_function(cls) -> IdType:
        """Next value of the per-class autoincrement counter."""
        # Each class counts on its own; an undeclared counter starts fresh
        value = cls.__dict__.get("autoincrement_value", settings.AUTO_ID_START)
        cls.autoincrement_value = value + 1
        return value

    def _ensure_id(self, schema: ModelSchema, values: dict[str, Any], collection: Collection | None) -> None:
        """Fill in an id, skipping any the target collection already holds for this type."""
        if schema.resolve_id(values) is not None:
            return
        if not schema.enable_auto_id:
            raise MissingIdentifierError(f"{'.'.join(schema.id_attribute)} is required!")

        record_type = schema.resolve_type(values)
        new_id = type(self).auto_id_function()
        while collection is not None and collection.find(record_type, new_id) is not None:
            new_id = type(self).auto_id_function()
        set_path(values, schema.id_attribute, new_id)

    # -- identity --

    @property
    def record_id(self) -> IdType | None:
        return self._path_value(self._schema.id_attribute)

    @property
    def record_type(self) -> str:
        schema = self._schema
        if not schema.dynamic_type:
            return schema.type
        value = self._path_value(schema.type_attribute)
        return DEFAULT_TYPE if value is None else value

    def _path_value(self, path: tuple[str, ...], track: bool = True) -> Any:
        cell = self._data.get(path[0])
        if cell is None:
            return None
        return get_path(cell.get() if track else cell.peek(), path[1:])

    @property
    def collection(self) -> Collection | None:
        return self._collection_cell.get()

    def _attach(self, collection: Collection) -> None:
        self._collection_cell.set(collection)

    def _detach(self) -> None:
        self._collection_cell.set(None)

    # -- attribute dispatch --

    def __getattr__(self, name: str) -> Any:
        # Only reached when normal lookup fails
        if name in _INTERNAL:
            raise AttributeError(name)
        try:
            return self._read(name)
        except KeyError:
            raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}") from None

    def __setattr__(self, name: str, value: Any) -> None:
        if name in _INTERNAL or isinstance(getattr(type(self), name, None), property):
            object.__setattr__(self, name, value)
            return
        self.assign(name, value)

    def __delattr__(self, name: str) -> None:
        if name in _INTERNAL:
            object.__delattr__(self, name)
            return
        self.unassign(name)

    def get(self, key: str, default: Any = None) -> Any:
        """Read an attribute, reference or reference id; default if absent."""
        try:
            return self._read(key)
        except KeyError:
            return default

    def set(self, key: str, value: Any) -> Any:
        return self.assign(key, value)

    def _read(self, key: str) -> Any:
        if key in self._schema.external_refs:
            return self._external_cell(key).get()
        if key in self._refs:
            return self._ref_cell(key).get()

        ref = self._ref_for_id_key(key)
        if ref is not None:
            return _copy_ids(self._data[ref].get())

        cell = self._data.get(key)
        if cell is None:
            # Depend on the key set so a later add is seen by derived readers
            self._keys_cell.get()
            raise KeyError(key)
        return cell.get()

    def _ref_for_id_key(self, key: str) -> str | None:
        if not key.endswith(REF_ID_SUFFIX):
            return None
        ref = key[: -len(REF_ID_SUFFIX)]
        return ref if ref in self._refs else None

    def _ref_cell(self, key: str) -> Derived:
        cell = self._ref_cells.get(key)
        if cell is None:
            cell = self._ref_cells[key] = Derived(lambda: resolve_ref(self, key))
        return cell

    def _external_cell(self, key: str) -> Derived:
        cell = self._ref_cells.get(key)
        if cell is None:
            definition = self._schema.external_refs[key]
            cell = self._ref_cells[key] = Derived(lambda: resolve_external(self, definition))
        return cell

    def watch(self, key: str) -> Observable:
        """Reactive view of one attribute or reference, for subscribe()."""
        if key in self._refs:
            return self._ref_cell(key)
        if key in self._schema.external_refs:
            return self._external_cell(key)
        return Derived(lambda: self.get(key))

    # -- writes --

    def update(self, data: Model | Mapping[str, Any]) -> dict[str, Any]:
        """
        Merge data into the model.

        Skips reserved names, the id once it is set, the serialization type tag
        and external references. Returns {key: assign() result} for the keys
        that actually changed.
        """
        if data is self:
            return {}
        if isinstance(data, Model):
            data = data._raw()

        changed: dict[str, Any] = {}
        with transaction():
            for key, value in data.items():
                if not self._updatable(key):
                    continue
                result, did_change = self._assign(key, value)
                if did_change:
                    changed[key] = result
        return changed

    def _updatable(self, key: str) -> bool:
        schema = self._schema
        if key in RESERVED_KEYS or key in schema.external_refs:
            return False
        if key == TYPE_PROP and not (key == schema.type_key and schema.dynamic_type):
            return False
        if key == schema.id_key and len(schema.id_attribute) == 1:
            return self._path_value(schema.id_attribute, track=False) is None
        return True

    def assign(self, key: str, value: Any) -> Any:
        """
        Set one attribute. References take models, mappings (upserted into the
        collection) or ids and return the resolved model(s); plain attributes
        return the stored value.
        """
        return self._assign(key, value)[0]

    def _assign(self, key: str, value: Any) -> tuple[Any, bool]:
        schema = self._schema
        if key in schema.external_refs:
            raise ExternalReferenceError(f"{key} is an external reference")
        if key in self._refs:
            return self._set_ref(key, value)
        ref = self._ref_for_id_key(key)
        if ref is not None:
            return self._set_ref(ref, value)

        if key == schema.id_key:
            value = self._keep_id(value)

        cell = self._data.get(key)
        tracks_type = key == schema.type_key and schema.dynamic_type
        old_type = self.record_type if tracks_type else None

        with transaction():
            if cell is None:
                self._data[key] = Cell(value)
                self._keys_cell.touch()
                op, old, changed = PatchOp.ADD, None, True
            else:
                old = cell.peek()
                changed = not _same(value, old)
                cell.set(value)
                op = PatchOp.REPLACE

            # Published under the old (type, id) so replicas can find the model
            if changed:
                self._trigger_change(op, key, value, old, record_type=old_type)
            if tracks_type:
                self._type_changed(old_type)
        return value, changed

    def _keep_id(self, value: Any) -> Any:
        """Rewrite value so it carries the current id, if one is already set."""
        path = self._schema.id_attribute
        current = self._path_value(path, track=False)
        if current is None:
            return value
        if not _same(get_path(value, path[1:]), current):
            logger.warning("Ignoring change of %s on %r to %r: ids are write-once", ".".join(path), self, value)
        holder = {path[0]: value}
        set_path(holder, path, current)
        return holder[path[0]]

    def assign_ref(self, key: str, value: Any, type: str | None = None) -> Any:
        """
        Turn key into a reference at runtime and set it.

        The target type comes from the first item of value when it is a Model,
        otherwise from `type`.
        """
        if key in self._schema.external_refs:
            raise ExternalReferenceError(f"{key} is an external reference")
        if key in self._refs:
            return self.assign(key, value)

        item = first(list(value)) if is_sequence(value) else value
        ref_type = item.record_type if isinstance(item, Model) else type
        self._check_anchor(key, value)

        with transaction():
            self._refs[key] = ref_type or DEFAULT_TYPE
            cell = self._data.get(key)
            if cell is None:
                cell = self._data[key] = Cell(None)
                self._keys_cell.touch()
            old = cell.peek()
            ids = map_items(value, lambda ref_item: to_ref_id(self, self._refs[key], ref_item))
            cell.set(ids)
            self._trigger_change(PatchOp.ADD, key, _copy_ids(ids), old)
        return self._ref_cell(key).get()

    def unassign(self, key: str) -> None:
        """Remove an attribute. References are reset to None. Absent keys are ignored."""
        schema = self._schema
        if key in schema.external_refs:
            raise ExternalReferenceError(f"{key} is an external reference")
        key = self._ref_for_id_key(key) or key

        cell = self._data.get(key)
        if cell is None:
            return
        old = cell.peek()

        if key in self._refs:
            if old is None:
                return
            with transaction():
                cell.set(None)
                self._trigger_change(PatchOp.REMOVE, key, None, _copy_ids(old))
            return

        if key == schema.id_key and self._path_value(schema.id_attribute, track=False) is not None:
            logger.warning("Ignoring removal of %s on %r: ids are write-once", key, self)
            return

        tracks_type = key == schema.type_key and schema.dynamic_type
        old_type = self.record_type if tracks_type else None
        with transaction():
            del self._data[key]
            cell.touch()
            self._keys_cell.touch()
            self._trigger_change(PatchOp.REMOVE, key, None, old, record_type=old_type)
            if tracks_type:
                self._type_changed(old_type)

    def _type_changed(self, old_type: str) -> None:
        collection = self._collection_cell.peek()
        if collection is not None and old_type != self.record_type:
            collection._reindex(self, old_type)

    # -- reference write path --

    def _check_anchor(self, key: str, value: Any) -> None:
        if self._collection_cell.peek() is None and holds_objects(value):
            raise UnanchoredReferenceError(f"Model needs to be in a collection to set the '{key}' reference")

    def _set_ref(self, key: str, value: Any) -> tuple[Any, bool]:
        self._check_anchor(key, value)
        ref_type = self._refs[key]

        with transaction():
            ids = map_items(value, lambda item: to_ref_id(self, ref_type, item))
            cell = self._data[key]
            old = cell.peek()
            changed = not _same(ids, old)
            if changed:
                cell.set(ids)
                if ids is None:
                    op = PatchOp.REMOVE
                elif old is None:
                    op = PatchOp.ADD
                else:
                    op = PatchOp.REPLACE
                self._trigger_change(op, key, _copy_ids(ids), _copy_ids(old))
        return self._ref_cell(key).get(), changed

    def _splice_ref(self, key: str, index: int, remove_count: int, added: list[Any]) -> None:
        """Apply a list mutation made through a RefList to the stored id list."""
        ref_type = self._refs[key]
        self._check_anchor(key, added)

        with transaction():
            new_ids = [to_ref_id(self, ref_type, item) for item in added]
            cell = self._data[key]
            old = cell.peek()
            ids = list(old) if isinstance(old, list) else []
            ids[index : index + remove_count] = new_ids
            cell.set(ids)
            op = PatchOp.ADD if old is None else PatchOp.REPLACE
            self._trigger_change(op, key, list(ids), _copy_ids(old))

    # -- serialization --

    def _raw(self) -> dict[str, Any]:
        return {key: _copy_ids(cell.peek()) for key, cell in self._data.items()}

    def to_js(self) -> dict[str, Any]:
        """Plain data: every attribute (references as ids) plus the type tag."""
        data = {key: copy.deepcopy(cell.peek()) for key, cell in self._data.items()}
        data[TYPE_PROP] = self.record_type
        return data

    @property
    def snapshot(self) -> dict[str, Any]:
        return self.to_js()

    # -- patches --

    def patch_listen(self, listener: PatchListener) -> Callable[[], None]:
        """Register listener(patch, model). Returns a function that removes it."""
        return self._listeners.add(listener)

    def apply_patch(self, patch: Patch | dict[str, Any]) -> None:
        """Replay a model-level patch (path "/<field>")."""
        patch = coerce_patch(patch)
        segments = split_path(patch.path)
        if len(segments) != 1 or not segments[0]:
            raise InvalidPatchError(f"Model patch must address a single field: {patch.path}")
        field = segments[0]

        if patch.op in (PatchOp.ADD, PatchOp.REPLACE):
            self.assign(field, patch.value)
        elif patch.op == PatchOp.REMOVE:
            self.unassign(field)
        else:
            raise InvalidPatchError(f"Unsupported patch operation: {patch.op.value}")

    def _trigger_change(
        self,
        op: PatchOp,
        field: str,
        value: Any = None,
        old_value: Any = None,
        record_type: str | None = None,
    ) -> None:
        """Emit a model patch. record_type overrides the collection path type during a type change."""
        if self._silent:
            return
        if op == PatchOp.REPLACE and _same(value, old_value):
            return

        patch = Patch(op=op, path=join_path(field), value=value, old_value=old_value)
        self._listeners.emit(patch, self)

        collection = self._collection_cell.peek()
        if collection is not None:
            collection._on_patch_trigger(patch, self, record_type)

    def __repr__(self) -> str:
        try:
            return f"<{type(self).__name__} {self.record_type}/{self.record_id}>"
        except AttributeError:
            return f"<{type(self).__name__} (uninitialized)>"
