"""Error taxonomy shared by every boundary component.

``BoundaryError`` is the root.  Concrete errors pick one category base,
and the category decides how a failure is presented:

- ``ValidationError``: bad input or configuration.
- ``TransientError``: the dependency may recover; the user can try again.
- ``PermanentError``: the request itself was refused (4xx, conflicts).
- ``ContractError``: the backend answered in a shape we do not understand.

``retryable`` is narrower than the category.  It answers one question:
may the *same* call repeat the request immediately?  The API client's
retry loop reads it directly, so a transient error such as an open
circuit breaker can still be non-retryable.
"""

from __future__ import annotations

from typing import ClassVar


class BoundaryError(Exception):
    """Base exception for all boundary-domain errors.

    Attributes:
        message: Human-readable error description.
        stage: Component where the error occurred (``"transport"``, ``"config"``).
        code: Machine-readable error code (e.g. ``"RATE_LIMITED"``).
        retryable: Whether the failing call may repeat the request at once.
    """

    default_stage: ClassVar[str] = ""
    default_code: ClassVar[str] = ""
    default_retryable: ClassVar[bool] = False

    def __init__(
        self,
        message: str = "",
        *,
        stage: str = "",
        code: str = "",
        retryable: bool | None = None,
    ) -> None:
        self.message = message
        self.stage = stage or self.default_stage
        self.code = code or self.default_code
        self.retryable = self.default_retryable if retryable is None else retryable
        super().__init__(message)

    @property
    def category(self) -> str:
        for base, name in _CATEGORIES:
            if isinstance(self, base):
                return name
        return "transient" if self.retryable else "permanent"

    def to_error_dict(self) -> dict[str, object]:
        """Stable structured payload, used as the ``error=`` field in logs."""
        return {
            "category": self.category,
            "code": self.code,
            "stage": self.stage,
            "message": self.message,
            "retryable": self.retryable,
        }


# ---------------------------------------------------------------------------
# Category bases
# ---------------------------------------------------------------------------


class ValidationError(BoundaryError):
    """Input or configuration rejected before any request is made."""

    default_stage = "validation"


class TransientError(BoundaryError):
    """The dependency may recover; retryable unless a subclass says otherwise."""

    default_retryable = True


class PermanentError(BoundaryError):
    """The request was refused and repeating it will not help."""


class ContractError(BoundaryError):
    """Response shape drift from the backend."""


# Checked in order: the first matching base names the category.
_CATEGORIES: tuple[tuple[type[BoundaryError], str], ...] = (
    (ContractError, "contract"),
    (ValidationError, "validation"),
    (TransientError, "transient"),
    (PermanentError, "permanent"),
)
