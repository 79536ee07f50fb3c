"""
ModelGraph Kernel: Exceptions

Every error here is a broken data contract or a programming mistake.
They are raised synchronously and never caught inside the kernel.
Absence (find/remove of something that is not there) is not an error.
"""

from __future__ import annotations


class ModelGraphError(Exception):
    """Base class for all kernel errors."""
    pass


class MissingIdentifierError(ModelGraphError):
    """Auto id is disabled and the data carries no identifier."""
    pass


class ReferenceTypeError(ModelGraphError):
    """An object upserted through a reference resolved to the wrong model type."""
    pass


class UnanchoredReferenceError(ModelGraphError):
    """A reference was set to a model or object while the owner has no collection."""
    pass


class ExternalReferenceError(ModelGraphError):
    """A derived (external) reference was written to."""
    pass


class UnknownTypeError(ModelGraphError):
    """Serialized data passed to insert() has no type tag."""
    pass


class InvalidPatchError(ModelGraphError):
    """A patch path does not address anything this object understands."""
    pass
