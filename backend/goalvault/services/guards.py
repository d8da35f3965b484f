"""Re-entrancy lock and admin capability shared by the core components."""

from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from goalvault.errors import ReentrantCall, Unauthorized, ZeroAddress

F = TypeVar("F", bound=Callable[..., Any])


class ReentrancyGuard:
    """Mixin holding the lock flag checked by `non_reentrant` methods.

    One flag per component instance: while any guarded entry point is running,
    every guarded entry point on the same instance rejects nested calls.
    """

    _entered_operation: str | None = None

    @property
    def locked(self) -> bool:
        return self._entered_operation is not None


def non_reentrant(method: F) -> F:
    @functools.wraps(method)
    def wrapper(self: ReentrancyGuard, *args: Any, **kwargs: Any) -> Any:
        if self._entered_operation is not None:
            raise ReentrantCall(
                f"{type(self).__name__}.{method.__name__} called while "
                f"{self._entered_operation} is in flight"
            )
        self._entered_operation = method.__name__
        try:
            return method(self, *args, **kwargs)
        finally:
            self._entered_operation = None

    return wrapper  # type: ignore[return-value]


@dataclass(frozen=True)
class AdminCapability:
    """Names the single account allowed through admin-gated entry points."""

    account: str

    def __post_init__(self) -> None:
        if not self.account:
            raise ZeroAddress("admin account is required")

    def require(self, caller: str) -> None:
        if caller != self.account:
            raise Unauthorized("admin role required")


def require_account(account: str, label: str = "account") -> str:
    if not account:
        raise ZeroAddress(f"{label} is required")
    return account
