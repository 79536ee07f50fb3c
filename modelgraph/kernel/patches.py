"""
ModelGraph Kernel: Patch Protocol

JSON-Patch style change records emitted by models and collections, plus the
listener registry both of them use.

Paths:
  model level       /<field>
  collection level  /<type>/<id>/<field>   (field omitted for whole-model add/remove)

Segments are JSON-Pointer escaped ("~" -> "~0", "/" -> "~1").
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from pydantic import BaseModel, Field

from modelgraph.kernel.errors import InvalidPatchError

if TYPE_CHECKING:
    from modelgraph.kernel.model import Model


class PatchOp(str, Enum):
    ADD = "add"
    REPLACE = "replace"
    REMOVE = "remove"
    # Reserved by the JSON-Patch vocabulary, never emitted
    COPY = "copy"
    MOVE = "move"
    TEST = "test"


class Patch(BaseModel):
    """One change record. Frozen: a patch never changes after it is emitted."""

    model_config = {"frozen": True, "extra": "forbid", "populate_by_name": True}

    op: PatchOp
    path: str = Field(pattern=r"^/")
    value: Any = None
    old_value: Any = Field(default=None, alias="oldValue")

    def to_dict(self) -> dict[str, Any]:
        """Wire form: {"op", "path", "value"?, "oldValue"?}."""
        d: dict[str, Any] = {"op": self.op.value, "path": self.path}
        if self.op != PatchOp.REMOVE:
            d["value"] = self.value
        if self.old_value is not None:
            d["oldValue"] = self.old_value
        return d

    @property
    def segments(self) -> list[str]:
        return split_path(self.path)


PatchListener = Callable[[Patch, "Model"], None]


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------


def escape_segment(segment: Any) -> str:
    return str(segment).replace("~", "~0").replace("/", "~1")


def unescape_segment(segment: str) -> str:
    return segment.replace("~1", "/").replace("~0", "~")


def join_path(*segments: Any) -> str:
    return "".join("/" + escape_segment(s) for s in segments)


def split_path(path: str) -> list[str]:
    """
    Split a patch path into unescaped segments.

    Examples:
      "/name"            -> ["name"]
      "/person/1/name"   -> ["person", "1", "name"]
      "/a~1b/1"          -> ["a/b", "1"]
    """
    if not path.startswith("/"):
        raise InvalidPatchError(f"Patch path must start with '/': {path!r}")
    return [unescape_segment(s) for s in path[1:].split("/")]


def coerce_patch(patch: Patch | dict[str, Any]) -> Patch:
    """Accept a Patch or its wire dict."""
    if isinstance(patch, Patch):
        return patch
    return Patch.model_validate(patch)


# ---------------------------------------------------------------------------
# Listener registry
# ---------------------------------------------------------------------------


class PatchListeners:
    """Ordered set of patch listeners. Listener exceptions propagate to the writer."""

    __slots__ = ("_listeners",)

    def __init__(self) -> None:
        self._listeners: list[PatchListener] = []

    def add(self, listener: PatchListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            self._listeners = [item for item in self._listeners if item is not listener]

        return remove

    def emit(self, patch: Patch, model: Model) -> None:
        for listener in list(self._listeners):
            listener(patch, model)

    def __len__(self) -> int:
        return len(self._listeners)
