"""ScriptRegistry: scripts that stay injected across navigations.

The registry is the source of truth.  Entries are materialised in the web
view as ``<script data-mcp-script-id="...">`` elements; a navigation throws
those away, so the registry listens to the transport's event stream and
replays its current contents after every navigation event.  Replays for a
window coalesce: however many navigations arrive, the last pass injects
whatever is registered at that moment.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Set

from bridgedriver.driver import protocol
from bridgedriver.driver.transport import TransportClient
from bridgedriver.driver.windows import WindowResolver
from bridgedriver.errors import BridgeError, InvalidArgumentsError
from bridgedriver.models import MAIN_WINDOW, BridgeEvent, Command, ScriptEntry, ScriptKind

logger = logging.getLogger(__name__)

_INJECT_JS = """(function () {
  var id = %(id)s;
  var selector = 'script[%(attr)s=' + JSON.stringify(id) + ']';
  document.querySelectorAll(selector).forEach(function (el) { el.remove(); });
  var el = document.createElement('script');
  el.setAttribute('%(attr)s', id);
  %(body)s
  (document.head || document.documentElement).appendChild(el);
  return true;
})();"""

_REMOVE_JS = """(function () {
  var selector = 'script[%(attr)s=' + JSON.stringify(%(id)s) + ']';
  var found = document.querySelectorAll(selector);
  found.forEach(function (el) { el.remove(); });
  return found.length;
})();"""

_CLEAR_JS = """(function () {
  var found = document.querySelectorAll('script[%(attr)s]');
  found.forEach(function (el) { el.remove(); });
  return found.length;
})();"""


def build_injection(entry: ScriptEntry) -> str:
    """JavaScript that (re)creates the tagged element for ``entry``."""
    if entry.kind is ScriptKind.URL:
        body = f"el.src = {json.dumps(entry.content)};"
    else:
        body = f"el.textContent = {json.dumps(entry.content)};"
    return _INJECT_JS % {
        "id": json.dumps(entry.id),
        "attr": protocol.SCRIPT_ID_ATTRIBUTE,
        "body": body,
    }


def build_removal(script_id: str) -> str:
    return _REMOVE_JS % {
        "id": json.dumps(script_id),
        "attr": protocol.SCRIPT_ID_ATTRIBUTE,
    }


def build_clear() -> str:
    return _CLEAR_JS % {"attr": protocol.SCRIPT_ID_ATTRIBUTE}


class ScriptRegistry:
    """Ordered id -> ScriptEntry mapping kept in sync with the web view."""

    def __init__(self, client: TransportClient, resolver: Optional[WindowResolver] = None):
        self._client = client
        self._resolver = resolver or WindowResolver(client)
        self._entries: Dict[str, ScriptEntry] = {}
        self._initialized = False
        # Windows holding injections this session; closed ones are pruned
        self._windows: Set[str] = {MAIN_WINDOW}
        self._dirty: Set[str] = set()
        self._replays: Dict[str, asyncio.Task] = {}
        client.add_event_listener(self._on_event)

    @property
    def initialized(self) -> bool:
        return self._initialized

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Registry operations
    # ------------------------------------------------------------------

    async def register(self, script_id: str, kind: Any, content: str) -> Dict[str, Any]:
        """Add or replace a script and inject it right away.

        Re-registering an id replaces its kind and content in place: the
        registry size and the entry's position are unchanged.
        """
        if not script_id:
            raise InvalidArgumentsError("Script id is required")
        try:
            kind = ScriptKind(kind)
        except ValueError:
            raise InvalidArgumentsError(
                f"Unknown script kind '{kind}'. Use 'inline' or 'url'."
            ) from None
        if not content:
            raise InvalidArgumentsError(f"Script '{script_id}' has no content")

        existing = self._entries.get(script_id)
        if existing is not None:
            entry = existing.model_copy(update={"kind": kind, "content": content})
            logger.info("Replacing script '%s'", script_id)
        else:
            entry = ScriptEntry(id=script_id, kind=kind, content=content)
            logger.info("Registering script '%s'", script_id)
        self._entries[script_id] = entry

        injected = False
        if self._client.is_connected():
            results = [await self._inject(entry, label) for label in await self._open_windows()]
            injected = all(results)
        return {"registered": True, "scriptId": script_id, "injected": injected}

    async def remove(self, script_id: str) -> Dict[str, Any]:
        """Remove a script and its live element.  Unknown ids are not errors."""
        if self._entries.pop(script_id, None) is None:
            return {"removed": False, "scriptId": script_id}

        logger.info("Removing script '%s'", script_id)
        if self._client.is_connected():
            for label in await self._open_windows():
                await self._run(build_removal(script_id), label, f"remove '{script_id}'")
        return {"removed": True, "scriptId": script_id}

    async def clear(self) -> Dict[str, int]:
        """Remove every script; returns how many entries were registered."""
        count = len(self._entries)
        self._entries.clear()
        if self._client.is_connected():
            for label in await self._open_windows():
                await self._run(build_clear(), label, "clear scripts")
        logger.info("Cleared %d script(s)", count)
        return {"cleared": count}

    def list(self) -> List[ScriptEntry]:
        """Snapshot of the entries in registration order."""
        return [entry.model_copy() for entry in self._entries.values()]

    def is_registered(self, script_id: str) -> bool:
        return script_id in self._entries

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> int:
        """Materialise the registry into a freshly connected session.

        Runs once per session; returns the number of scripts injected.
        """
        if self._initialized:
            return 0
        self._initialized = True
        if not self._entries or not self._client.is_connected():
            return 0
        injected = 0
        for entry in list(self._entries.values()):
            if await self._inject(entry, MAIN_WINDOW):
                injected += 1
        logger.info("Injected %d registered script(s) into new session", injected)
        return injected

    def reset_initialization(self) -> None:
        """Forget per-session state so the next session re-injects."""
        self._initialized = False
        self._windows = {MAIN_WINDOW}
        self._dirty.clear()
        for task in self._replays.values():
            task.cancel()
        self._replays.clear()

    async def wait_consistent(self) -> None:
        """Wait until no navigation replay is pending."""
        while True:
            running = [t for t in self._replays.values() if not t.done()]
            if not running:
                return
            await asyncio.gather(*running, return_exceptions=True)

    # ------------------------------------------------------------------
    # Navigation replay
    # ------------------------------------------------------------------

    def _on_event(self, event: BridgeEvent) -> None:
        if event.name not in protocol.NAVIGATION_EVENTS:
            return
        payload = event.payload if isinstance(event.payload, dict) else {}
        label = payload.get("windowLabel") or payload.get("window") or MAIN_WINDOW
        logger.debug("Navigation in window '%s'; scheduling replay", label)
        self.schedule_replay(str(label))

    def schedule_replay(self, label: str = MAIN_WINDOW) -> None:
        """Mark ``label`` stale and make sure a replay task is running."""
        self._windows.add(label)
        self._dirty.add(label)
        task = self._replays.get(label)
        if task is None or task.done():
            self._replays[label] = asyncio.ensure_future(self._replay(label))

    async def _replay(self, label: str) -> None:
        try:
            while label in self._dirty:
                self._dirty.discard(label)
                for entry in list(self._entries.values()):
                    if not self._client.is_connected():
                        return
                    # Skip entries removed or replaced since the snapshot
                    if self._entries.get(entry.id) is not entry:
                        continue
                    await self._inject(entry, label)
        finally:
            if self._replays.get(label) is asyncio.current_task():
                del self._replays[label]

    # ------------------------------------------------------------------
    # Bridge calls
    # ------------------------------------------------------------------

    async def _open_windows(self) -> List[str]:
        """Tracked windows that are still open, closed ones forgotten.

        Only asks the bridge when something besides "main" is tracked.
        If the window list is unavailable the tracked set is used as-is.
        """
        if self._windows == {MAIN_WINDOW}:
            return [MAIN_WINDOW]
        try:
            open_labels = {w.label for w in await self._resolver.list_windows()}
        except BridgeError as e:
            logger.warning("Could not list windows, using tracked set: %s", e)
            return sorted(self._windows)
        closed = self._windows - open_labels - {MAIN_WINDOW}
        if closed:
            logger.info("Forgetting closed window(s): %s", ", ".join(sorted(closed)))
            self._windows -= closed
            self._dirty -= closed
        return sorted(self._windows)

    async def _inject(self, entry: ScriptEntry, label: str) -> bool:
        return await self._run(build_injection(entry), label, f"inject '{entry.id}'")

    async def _run(self, script: str, label: str, what: str) -> bool:
        command = Command(
            name=protocol.EXECUTE_JS,
            args={"script": script, "windowLabel": label},
        )
        try:
            response = await self._client.send_command(command)
        except BridgeError as e:
            logger.warning("Failed to %s in window '%s': %s", what, label, e)
            return False
        if not response.success:
            logger.warning(
                "Failed to %s in window '%s': %s", what, label, response.error
            )
            return False
        return True
