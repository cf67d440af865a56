"""WindowResolver: map an optional window id to a concrete window label."""

from __future__ import annotations

import logging
from typing import List, Optional

from bridgedriver.driver import protocol
from bridgedriver.driver.transport import TransportClient
from bridgedriver.errors import CommandError, ProtocolError, WindowNotFoundError
from bridgedriver.models import MAIN_WINDOW, Command, WindowDescriptor

logger = logging.getLogger(__name__)


class WindowResolver:
    """Validates window ids against the live window list.  No caching."""

    def __init__(self, client: TransportClient):
        self._client = client

    async def list_windows(self) -> List[WindowDescriptor]:
        """Fetch the current window list from the bridge."""
        response = await self._client.send_command(Command(name=protocol.LIST_WINDOWS))
        if not response.success:
            raise CommandError(
                f"Failed to list windows: {response.error or 'Unknown error'}",
                command=protocol.LIST_WINDOWS,
            )
        if not isinstance(response.data, list):
            raise ProtocolError(
                f"Expected a window list, got {type(response.data).__name__}"
            )
        return [WindowDescriptor.model_validate(w) for w in response.data]

    async def resolve(self, window_id: Optional[str] = None) -> str:
        """Return the label to target.

        Omitted or empty ids resolve to "main" without asking the bridge.

        :raises WindowNotFoundError: ``window_id`` matches no open window.
        """
        if not window_id:
            return MAIN_WINDOW

        labels = [w.label for w in await self.list_windows()]
        if window_id not in labels:
            raise WindowNotFoundError(window_id, labels)
        logger.debug("Resolved window '%s'", window_id)
        return window_id
