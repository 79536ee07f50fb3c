"""
ModelGraph: an in-memory graph of typed models that reference each other by id.
"""

from modelgraph.kernel import (
    DEFAULT_TYPE,
    TYPE_PROP,
    Collection,
    ExternalReference,
    Model,
    ModelOpts,
    Patch,
    PatchOp,
    autorun,
    transaction,
)

__all__ = [
    "Collection",
    "Model",
    "ModelOpts",
    "ExternalReference",
    "Patch",
    "PatchOp",
    "transaction",
    "autorun",
    "TYPE_PROP",
    "DEFAULT_TYPE",
]
