from __future__ import annotations

import inspect
from functools import wraps
from typing import TYPE_CHECKING, Callable, TypeVar, Any, cast

if TYPE_CHECKING:  # pragma: no cover
    from utils.permissions import Action

F = TypeVar("F", bound=Callable[..., Any])


def permission_required(action: "Action") -> Callable[[F], F]:
    """Decorator that re-checks the caller's role before an engine operation.

    - The wrapped function must take an ``actor_id`` argument.
    - The actor is loaded from the store on every call and must hold ``action``;
      otherwise ``PermissionDenied`` is raised before any work is done.
    """

    def decorator(func: F) -> F:
        sig = inspect.signature(func)

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any):
            # Deferred: models imports utils.errors, which loads this package first
            from utils.permissions import require_permission

            bound = sig.bind_partial(*args, **kwargs)
            require_permission(bound.arguments.get("actor_id"), action)
            return func(*args, **kwargs)

        return cast(F, wrapper)

    return decorator
