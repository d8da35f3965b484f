"""Domain errors shared by the goal manager, vault adapter and yield router.

Every error is raised before the failing call commits any state change. The
four category bases map one-to-one onto HTTP status codes in the routers.
"""

from __future__ import annotations


class GoalVaultError(Exception):
    """Base class for all domain errors."""


class ValidationError(GoalVaultError, ValueError):
    """Bad input: zero amounts, empty accounts, out-of-range percentages."""


class AuthorizationError(GoalVaultError):
    """Caller does not own the goal or lacks the admin capability."""


class StateError(GoalVaultError):
    """Operation attempted while the target is in the wrong state."""


class ExternalDependencyError(GoalVaultError):
    """Reserve or ledger could not supply the requested value. Retry later."""


class GoalNotFound(GoalVaultError, LookupError):
    pass


# Validation
class ZeroAmount(ValidationError):
    pass


class ZeroAddress(ValidationError):
    pass


class InvalidPercentage(ValidationError):
    pass


class InvalidDuration(ValidationError):
    pass


class CurrencyNotSupported(ValidationError):
    pass


class TokenNotWhitelisted(ValidationError):
    pass


class VaultNotConfigured(ValidationError):
    pass


class ArrayLengthMismatch(ValidationError):
    pass


class InsufficientShares(ValidationError):
    pass


# Authorization
class Unauthorized(AuthorizationError):
    pass


# State
class GoalNotActive(StateError):
    pass


class GoalNotCompleted(StateError):
    pass


class InvalidTransition(StateError):
    pass


class NoPosition(StateError):
    pass


class RouterPaused(StateError):
    pass


class ReentrantCall(StateError):
    pass


# External dependency
class InsufficientBalance(ExternalDependencyError):
    pass


class InsufficientLiquidity(ExternalDependencyError):
    pass


class PlacementFailed(ExternalDependencyError):
    pass
