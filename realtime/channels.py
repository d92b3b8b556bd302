"""
MODULE OVERVIEW:
The boundary to the hosted realtime service, plus an in-memory stand-in.

WHAT IS HAPPENING HERE:
`RealtimeClient` / `RealtimeChannel` describe the small slice of the hosted
BaaS realtime API the notification center needs: table change streams and a
presence channel. `InMemoryRealtimeClient` implements the same surface on a
single event loop so the server demo, the terminal dashboard and the tests can
run without a backend. Its fan-out mirrors what the real service does:
`publish_change()` reaches every subscribed channel listening on that table,
and `track()` fires `join` and then a full `sync` on every subscribed channel
with the same name.
"""
from typing import Any, Callable, Protocol
from collections import defaultdict
from loguru import logger

ChangePayload = dict[str, Any]
ChangeCallback = Callable[[ChangePayload], None]
PresenceState = dict[str, list[dict[str, Any]]]
PresenceCallback = Callable[..., None]


class RealtimeChannel(Protocol):
    name: str

    def on_postgres_changes(self, table: str, callback: ChangeCallback) -> "RealtimeChannel": ...

    def on_presence_sync(self, callback: Callable[[], None]) -> "RealtimeChannel": ...

    def on_presence_join(self, callback: PresenceCallback) -> "RealtimeChannel": ...

    def on_presence_leave(self, callback: PresenceCallback) -> "RealtimeChannel": ...

    async def subscribe(self) -> "RealtimeChannel": ...

    async def unsubscribe(self) -> None: ...

    async def track(self, payload: dict[str, Any]) -> None: ...

    def presence_state(self) -> PresenceState: ...


class RealtimeClient(Protocol):
    def channel(self, name: str, presence_key: str | None = None) -> RealtimeChannel: ...


class InMemoryChannel:
    def __init__(self, client: "InMemoryRealtimeClient", name: str, presence_key: str | None = None):
        self._client = client
        self.name = name
        self.presence_key = presence_key
        self.subscribed = False
        self._change_callbacks: dict[str, list[ChangeCallback]] = defaultdict(list)
        self._presence_callbacks: dict[str, list[PresenceCallback]] = defaultdict(list)

    # ==========================
    # REGISTRATION
    # ==========================
    def on_postgres_changes(self, table: str, callback: ChangeCallback) -> "InMemoryChannel":
        self._change_callbacks[table].append(callback)
        return self

    def on_presence_sync(self, callback: Callable[[], None]) -> "InMemoryChannel":
        self._presence_callbacks["sync"].append(callback)
        return self

    def on_presence_join(self, callback: PresenceCallback) -> "InMemoryChannel":
        self._presence_callbacks["join"].append(callback)
        return self

    def on_presence_leave(self, callback: PresenceCallback) -> "InMemoryChannel":
        self._presence_callbacks["leave"].append(callback)
        return self

    # ==========================
    # LIFECYCLE
    # ==========================
    async def subscribe(self) -> "InMemoryChannel":
        self.subscribed = True
        self._client._attach(self)
        logger.info(f"channel={self.name} event=subscribe")
        return self

    async def unsubscribe(self) -> None:
        if not self.subscribed:
            return
        self.subscribed = False
        self._client._detach(self)
        logger.info(f"channel={self.name} event=unsubscribe")
        if self.presence_key is not None:
            self._client._untrack(self.name, self.presence_key)

    # ==========================
    # PRESENCE
    # ==========================
    async def track(self, payload: dict[str, Any]) -> None:
        key = self.presence_key or str(payload.get("user_id", "anonymous"))
        self.presence_key = key
        self._client._track(self.name, key, payload)

    def presence_state(self) -> PresenceState:
        return self._client.presence_state(self.name)

    # ==========================
    # DISPATCH
    # ==========================
    def _dispatch_change(self, table: str, payload: ChangePayload) -> None:
        for callback in list(self._change_callbacks.get(table, [])):
            try:
                callback(payload)
            except Exception as e:
                logger.error(f"channel={self.name} table={table} event=callback_error reason='{e}'")

    def _dispatch_presence(self, event: str, *args: Any) -> None:
        for callback in list(self._presence_callbacks.get(event, [])):
            try:
                callback(*args)
            except Exception as e:
                logger.error(f"channel={self.name} presence={event} event=callback_error reason='{e}'")


class InMemoryRealtimeClient:
    def __init__(self):
        self._channels: list[InMemoryChannel] = []
        # channel name -> presence key -> payloads
        self._presence: dict[str, dict[str, list[dict[str, Any]]]] = defaultdict(dict)
        self.total_changes_published = 0

    def channel(self, name: str, presence_key: str | None = None) -> InMemoryChannel:
        return InMemoryChannel(self, name, presence_key)

    @property
    def active_channels(self) -> list[InMemoryChannel]:
        return list(self._channels)

    def _attach(self, channel: InMemoryChannel) -> None:
        if channel not in self._channels:
            self._channels.append(channel)

    def _detach(self, channel: InMemoryChannel) -> None:
        if channel in self._channels:
            self._channels.remove(channel)

    def publish_change(
        self,
        table: str,
        event_type: str,
        new: dict[str, Any] | None = None,
        old: dict[str, Any] | None = None,
    ) -> None:
        """Fan a row change out to every subscribed channel listening on `table`."""
        self.total_changes_published += 1
        payload: ChangePayload = {"eventType": event_type, "table": table, "new": new, "old": old}
        for channel in list(self._channels):
            channel._dispatch_change(table, payload)

    def presence_state(self, name: str) -> PresenceState:
        return {key: list(payloads) for key, payloads in self._presence.get(name, {}).items()}

    def replace_presence_state(self, name: str, state: PresenceState) -> None:
        """Overwrite the whole roster of `name` and announce it with a sync."""
        self._presence[name] = {key: [dict(p) for p in payloads] for key, payloads in state.items()}
        for channel in self._subscribed(name):
            channel._dispatch_presence("sync")

    def _subscribed(self, name: str) -> list[InMemoryChannel]:
        return [c for c in self._channels if c.name == name]

    def _track(self, name: str, key: str, payload: dict[str, Any]) -> None:
        self._presence[name][key] = [dict(payload)]
        for channel in self._subscribed(name):
            channel._dispatch_presence("join", key, [dict(payload)])
        for channel in self._subscribed(name):
            channel._dispatch_presence("sync")

    def _untrack(self, name: str, key: str) -> None:
        left = self._presence.get(name, {}).pop(key, None)
        if left is None:
            return
        for channel in self._subscribed(name):
            channel._dispatch_presence("leave", key, left)
        for channel in self._subscribed(name):
            channel._dispatch_presence("sync")
