"""
Plutus Exceptions

Errors raised by administration paths. Request-path operations report soft
outcomes as typed results instead.
"""


class PlutusError(Exception):
    """Base class for engine errors."""


class ValidationError(PlutusError):
    """A definition was rejected at creation."""


class InvalidStateError(PlutusError):
    """A lifecycle transition is not allowed from the current status."""


class NotFoundError(PlutusError):
    """An entity id is unknown."""

    def __init__(self, kind: str, entity_id: str):
        super().__init__(f"{kind} {entity_id} not found")
        self.kind = kind
        self.entity_id = entity_id


class StorageError(PlutusError):
    """The persistence port failed or timed out."""
