"""TALLY — External Collaborator Interfaces.

The engine performs no access control and renders nothing. It asks an
``Authorizer`` whether a caller may see or change something, and tells a
``ViewInvalidator`` when a scorecard's persisted state changed so the
presentation layer can re-fetch.
"""

from abc import ABC, abstractmethod
from typing import Optional

from tally.core.logging import get_logger

logger = get_logger("collaborators")


class Authorizer(ABC):
    """Visibility and mutation decisions, supplied by the host application."""

    @abstractmethod
    def can_view_scorecard(self, caller_id: Optional[str], scorecard) -> bool:
        """Return True if the caller may read this scorecard."""
        ...

    @abstractmethod
    def can_edit_scorecard(self, caller_id: Optional[str], scorecard) -> bool:
        """Return True if the caller may add or reorder metrics on this scorecard."""
        ...

    @abstractmethod
    def can_mutate_metric(self, caller_id: Optional[str], metric) -> bool:
        """Return True if the caller may change this metric or its entries."""
        ...


class AllowAllAuthorizer(Authorizer):
    """Grants everything. Suitable for tests and single-user deployments."""

    def can_view_scorecard(self, caller_id: Optional[str], scorecard) -> bool:
        return True

    def can_edit_scorecard(self, caller_id: Optional[str], scorecard) -> bool:
        return True

    def can_mutate_metric(self, caller_id: Optional[str], metric) -> bool:
        return True


class ViewInvalidator(ABC):
    """Receives "view is stale" signals after successful mutations."""

    @abstractmethod
    def scorecard_changed(self, scorecard_id: int) -> None:
        ...


class LoggingViewInvalidator(ViewInvalidator):
    """Default invalidator: records the signal and nothing else."""

    def scorecard_changed(self, scorecard_id: int) -> None:
        logger.debug(
            f"Scorecard {scorecard_id} marked stale",
            extra={"scorecard_id": scorecard_id},
        )


default_authorizer: Authorizer = AllowAllAuthorizer()
default_invalidator: ViewInvalidator = LoggingViewInvalidator()
