"""
ModelGraph Kernel: Model Schema

Per-class static configuration, resolved once into a frozen ModelSchema:
identifier and type attributes, defaults, auto id policy, and the reference
definitions.

The identifier and type attributes are stored as key paths, so a class can key
nested payloads:

  id_attribute = ("meta", "id")       # {"meta": {"id": 1}, ...}

A class declares references in its `refs` mapping:

  refs = {
      "owner": "person",                                      # direct
      "pets": ExternalReference(model="pet", property="owner"),  # inverse
      "friends": {"model": "person", "property": "friends"},  # inverse, dict form
  }

Direct references store the target's id (or a list of ids). External references
are derived and read-only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping

from modelgraph.kernel.types import DEFAULT_TYPE, IdType, as_path, get_path

if TYPE_CHECKING:
    from modelgraph.kernel.model import Model


@dataclass(frozen=True)
class Reference:
    """Attribute whose raw value is a foreign id (or id list) of `type`."""

    type: str


@dataclass(frozen=True)
class ExternalReference:
    """Every `model` in the collection whose `property` points back at this one."""

    model: str
    property: str


RefDefinition = Reference | ExternalReference


def parse_ref_definition(name: str, raw: Any) -> RefDefinition:
    if isinstance(raw, (Reference, ExternalReference)):
        return raw
    if isinstance(raw, str):
        return Reference(type=raw)
    if isinstance(raw, Mapping):
        try:
            return ExternalReference(model=raw["model"], property=raw["property"])
        except KeyError as e:
            raise ValueError(f"External reference '{name}' is missing {e}") from e
    raise ValueError(f"Reference '{name}' must be a type name or an external reference, got {raw!r}")


@dataclass(frozen=True)
class ModelSchema:
    """Static configuration of one Model class."""

    type: str
    id_attribute: tuple[str, ...]
    type_attribute: tuple[str, ...]
    enable_auto_id: bool
    defaults: Mapping[str, Any] = field(default_factory=dict)
    refs: Mapping[str, Reference] = field(default_factory=dict)
    external_refs: Mapping[str, ExternalReference] = field(default_factory=dict)

    @property
    def dynamic_type(self) -> bool:
        """True when the type is read from each instance's type attribute."""
        return self.type == DEFAULT_TYPE

    @property
    def id_key(self) -> str:
        """Top-level data key holding the id (or the mapping nesting it)."""
        return self.id_attribute[0]

    @property
    def type_key(self) -> str:
        return self.type_attribute[0]

    def resolve_id(self, data: Mapping[str, Any]) -> IdType | None:
        return get_path(data, self.id_attribute)

    def resolve_type(self, data: Mapping[str, Any]) -> str:
        if not self.dynamic_type:
            return self.type
        value = get_path(data, self.type_attribute)
        return DEFAULT_TYPE if value is None else value

    def is_ref(self, key: str) -> bool:
        return key in self.refs or key in self.external_refs


def build_schema(cls: type[Model]) -> ModelSchema:
    refs: dict[str, Reference] = {}
    external: dict[str, ExternalReference] = {}
    for name, raw in (cls.refs or {}).items():
        definition = parse_ref_definition(name, raw)
        if isinstance(definition, ExternalReference):
            external[name] = definition
        else:
            refs[name] = definition

    return ModelSchema(
        type=cls.type,
        id_attribute=as_path(cls.id_attribute),
        type_attribute=as_path(cls.type_attribute),
        enable_auto_id=cls.enable_auto_id,
        defaults=MappingProxyType(dict(cls.defaults or {})),
        refs=MappingProxyType(refs),
        external_refs=MappingProxyType(external),
    )
