"""
ModelGraph Kernel: the normalized object graph.

Components:
  model       Model, one entity with attributes, references and patches
  collection  Collection, the (type, id) index with upsert semantics
  refs        reference resolution (ids <-> live models) and RefList
  schema      per-class configuration and reference definitions
  patches     Patch wire format and listener registry
  reactive    Cell / Derived / transaction / autorun
"""

from modelgraph.kernel.collection import Collection
from modelgraph.kernel.errors import (
    ExternalReferenceError,
    InvalidPatchError,
    MissingIdentifierError,
    ModelGraphError,
    ReferenceTypeError,
    UnanchoredReferenceError,
    UnknownTypeError,
)
from modelgraph.kernel.model import Model
from modelgraph.kernel.patches import Patch, PatchOp
from modelgraph.kernel.reactive import autorun, transaction
from modelgraph.kernel.refs import RefList
from modelgraph.kernel.schema import ExternalReference, Reference
from modelgraph.kernel.types import DEFAULT_TYPE, TYPE_PROP, ModelOpts

__all__ = [
    "Collection",
    "Model",
    "ModelOpts",
    "RefList",
    "Reference",
    "ExternalReference",
    "Patch",
    "PatchOp",
    "transaction",
    "autorun",
    "TYPE_PROP",
    "DEFAULT_TYPE",
    "ModelGraphError",
    "MissingIdentifierError",
    "ReferenceTypeError",
    "UnanchoredReferenceError",
    "ExternalReferenceError",
    "UnknownTypeError",
    "InvalidPatchError",
]
