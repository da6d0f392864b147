"""Error hierarchy for the fan-out operator.

Error layers:
- FanoutError: Base class for all operator errors
- DomainError: Invalid resources, missing objects, version conflicts
- InfrastructureError: Upstream sources, secrets and the API server

Each class carries a ``retryable`` flag. The controller runtime uses it to
decide between requeueing a key and recording a terminal failure.
"""

from typing import ClassVar


class FanoutError(Exception):
    """Base class for all operator errors."""

    retryable: ClassVar[bool] = True

    def __init__(self, message: str, code: str | None = None) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        super().__init__(message)


# =============================================================================
# Domain Errors
# =============================================================================


class DomainError(FanoutError):
    """Base class for domain errors."""


class ConfigInvalid(DomainError):
    """Resource spec can never succeed as written (bad path, missing variant)."""

    retryable: ClassVar[bool] = False

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, code="CONFIG_INVALID")
        self.field = field


class NotFoundError(DomainError):
    """Object not found in the control plane."""


class PlatformConflict(DomainError):
    """Stale resource version on update."""


class AlreadyExistsError(PlatformConflict):
    """Create of an object that already exists."""


# =============================================================================
# Infrastructure Errors
# =============================================================================


class InfrastructureError(FanoutError):
    """Base class for infrastructure/system errors."""


class FetchFailed(InfrastructureError):
    """A source adaptor could not produce items (network, auth, non-2xx, SQL)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message, code="FETCH_FAILED")
        self.status_code = status_code


class DependencyNotReady(InfrastructureError):
    """A referenced ledger, secret or secret key does not exist yet."""


class SecretNotFound(DependencyNotReady):
    """Referenced secret does not exist."""


class ControlPlaneError(InfrastructureError):
    """The API server rejected or failed a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
