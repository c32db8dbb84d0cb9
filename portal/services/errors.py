"""Typed errors raised by the content hierarchy and progress services."""

from __future__ import annotations

from typing import Any, Optional


class PortalError(RuntimeError):
    """Base class for every error surfaced by the portal services."""


class NotFoundError(PortalError):
    """Raised when an identifier does not resolve to a stored record."""

    def __init__(self, kind: str, identifier: Any) -> None:
        super().__init__(f"{kind.capitalize()} {identifier} not found")
        self.kind = kind
        self.identifier = identifier


class ValidationError(PortalError):
    """Raised when a required field is missing or malformed."""


class DeletionBlockedError(PortalError):
    """Raised when the deletion guard refuses to remove a module."""

    reason = "blocked"

    def __init__(self, module_id: int) -> None:
        super().__init__(f"Module {module_id} cannot be deleted: {self.reason}")
        self.module_id = module_id


class HasChildrenError(DeletionBlockedError):
    reason = "it still has sub-modules"


class HasVideosError(DeletionBlockedError):
    reason = "videos are still attached to it"


class PartialOrderSwapError(PortalError):
    """The second half of a sibling order exchange failed.

    The first node already carries the order of the second one, so the
    sibling group holds two nodes with the same order value. The caller has to
    reconcile; retrying the swap blindly would apply the first write twice.
    """

    def __init__(
        self,
        module_id: int,
        target_id: int,
        *,
        module_order: int,
        target_order: int,
        cause: Optional[BaseException] = None,
    ) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(
            f"Order swap between modules {module_id} and {target_id} left partially applied"
            f" (module {module_id} now has order {target_order},"
            f" module {target_id} still has order {target_order}){detail}"
        )
        self.module_id = module_id
        self.target_id = target_id
        self.module_order = module_order
        self.target_order = target_order


__all__ = [
    "DeletionBlockedError",
    "HasChildrenError",
    "HasVideosError",
    "NotFoundError",
    "PartialOrderSwapError",
    "PortalError",
    "ValidationError",
]
