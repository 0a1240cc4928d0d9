from __future__ import annotations

from typing import Any, Optional


class LedgerError(Exception):
    """Base class for every failure raised by the fee engine.

    Carries enough context (entity kind, id, current state) for a caller to
    render a precise message without re-querying the store.
    """

    def __init__(
        self,
        message: str,
        *,
        entity: Optional[str] = None,
        entity_id: Any = None,
        state: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.entity = entity
        self.entity_id = entity_id
        self.state = state

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "entity": self.entity,
            "entity_id": self.entity_id,
            "state": self.state,
        }


class ValidationError(LedgerError, ValueError):
    """Malformed or out-of-range input; the caller should re-prompt."""


class InvalidStateError(LedgerError):
    """The entity is not in the state the operation requires (already processed)."""


class PermissionDenied(LedgerError, PermissionError):
    """The actor's role lacks the capability."""


class NotFoundError(LedgerError, LookupError):
    pass
