"""Domain ports (interfaces) for the trending-ticker watcher.

The session core only talks to the outside world through these abstract
classes; concrete adapters live in the infrastructure layer.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from trendwatch.domain.models import Credential


class CredentialProviderPort(ABC):
    """Port for obtaining short-lived access credentials."""

    @abstractmethod
    async def acquire(self) -> Credential:
        """Exchange the long-lived refresh credential for an access credential.

        Returns:
            A freshly issued Credential

        Raises:
            AuthError: If the exchange fails for any reason

        """


class FeedTransportPort(ABC):
    """Port for one persistent bidirectional feed connection.

    An instance represents a single connection attempt and is not reused
    after it has been closed.
    """

    @abstractmethod
    async def open(self) -> None:
        """Open the connection.

        Raises:
            TransportError: If the connection cannot be established

        """

    @abstractmethod
    async def send(self, message: str) -> None:
        """Send one text frame.

        Args:
            message: Encoded frame

        """

    @abstractmethod
    def frames(self) -> AsyncIterator[str | bytes]:
        """Yield inbound frames until the connection closes.

        The iterator ends on a clean close and raises TransportClosedError
        on an abnormal one.
        """

    @abstractmethod
    async def close(self) -> None:
        """Close the connection; a no-op when already closed."""

    @property
    @abstractmethod
    def close_code(self) -> int | None:
        """Close code reported once the connection has closed."""

    @property
    @abstractmethod
    def close_reason(self) -> str:
        """Close reason reported once the connection has closed."""


class NotifierPort(ABC):
    """Port for delivering a notification about one feed item."""

    @abstractmethod
    async def send(self, item_id: str) -> None:
        """Deliver a notification for ``item_id``.

        Raises:
            NotificationError: If delivery failed

        """
