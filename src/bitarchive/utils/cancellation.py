"""Cooperative cancellation for multi-step archive operations."""

from ..errors import OperationCancelledError
from ..logging_config import get_logger

logger = get_logger(__name__)


class CancellationToken:
    """
    Flag shared between a caller and one logical operation.

    Operations check the token between units of work (batch items, listing
    materializations). Requests already in flight run to completion; no new
    ones are started after cancel().
    """

    def __init__(self, label: str = "") -> None:
        self.label = label
        self._cancelled = False
        self._reason: str | None = None

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if not self._cancelled:
            logger.info("operation_cancel_requested", operation=self.label, reason=reason)
        self._cancelled = True
        self._reason = reason

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelledError(
                f"Operation {self.label or 'unnamed'} cancelled: {self._reason}",
                details={"operation": self.label},
            )


def check_cancelled(token: CancellationToken | None) -> None:
    """raise_if_cancelled() for an optional token."""
    if token is not None:
        token.raise_if_cancelled()
