"""
MODULE OVERVIEW:
The realtime notification center: a bounded notification feed and an online
roster, both fed by the hosted realtime service.

WHAT IS HAPPENING HERE:
`start()` opens three independent channels:
  1. row changes on the maintenance table   -> maintenance_request notifications
  2. row changes on the payments table      -> payment_update notifications
  3. a presence channel                     -> the online-users roster

Every inbound change is turned into a `NotificationData`, prepended to the feed
(newest first) and the feed is capped at `feed_limit` entries. `unread_count`
counts notifications inserted and not yet marked read. It is NOT backed out
when an unread item falls off the end of the capped feed, so after heavy
traffic it can exceed the number of unread items still visible.

The roster is never patched incrementally. Each presence `sync` replaces it
wholesale with the channel's full state; `join` / `leave` are only logged.

Callbacks run on the event loop and never await while mutating the feed or
the roster, so handlers cannot interleave their read-modify-write.
"""
import time
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any

from loguru import logger

from realtime.channels import RealtimeChannel, RealtimeClient
from realtime.toasts import LoggingToaster, Toaster
from shared.config import settings
from shared.models import (
    BroadcastRequest,
    CenterStats,
    FeedSnapshot,
    NotificationData,
    PresenceStatus,
    UserPresence,
    utc_now_iso,
)

UNKNOWN = "Unknown"
_PRESENCE_STATUSES = ("online", "away", "busy")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _make_id(prefix: str, entity_id: Any = None) -> str:
    now = _now_ms()
    entity = entity_id if entity_id not in (None, "") else now
    return f"{prefix}-{entity}-{now}-{uuid.uuid4().hex[:6]}"


def _record_of(payload: Any) -> dict[str, Any]:
    """The new row for INSERT/UPDATE, the old row for DELETE, else `{}`."""
    if not isinstance(payload, dict):
        return {}
    record = payload.get("new") or payload.get("old") or {}
    return record if isinstance(record, dict) else {}


def _event_type_of(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    return payload.get("eventType")


def _field(record: dict[str, Any], name: str) -> str:
    value = record.get(name)
    if value is None or value == "":
        return UNKNOWN
    return str(value)


def _format_amount(record: dict[str, Any]) -> str:
    try:
        return f"{float(record['amount']) / 100:.2f}"
    except (KeyError, TypeError, ValueError):
        return "0.00"


def maintenance_notification(payload: Any) -> NotificationData:
    record = _record_of(payload)
    event_type = _event_type_of(payload)
    title = _field(record, "title")

    if event_type == "INSERT":
        message = f"New maintenance request: {title}"
    elif event_type == "UPDATE":
        message = f"Maintenance request updated: {title}"
    else:
        message = f"Maintenance request deleted: {title}"

    return NotificationData(
        id=_make_id("maintenance", record.get("id")),
        type="maintenance_request",
        title="Maintenance Update",
        message=message,
        data=record,
    )


def payment_notification(payload: Any) -> NotificationData:
    record = _record_of(payload)
    event_type = _event_type_of(payload)

    if event_type == "INSERT":
        message = f"New payment: ${_format_amount(record)}"
    elif event_type == "UPDATE":
        message = f"Payment status updated: {_field(record, 'status')}"
    else:
        message = f"Payment deleted: {_field(record, 'id')}"

    return NotificationData(
        id=_make_id("payment", record.get("id")),
        type="payment_update",
        title="Payment Update",
        message=message,
        data=record,
    )


def presence_from_state(user_id: str, presences: Any) -> UserPresence:
    first = presences[0] if isinstance(presences, list) and presences else {}
    if not isinstance(first, dict):
        first = {}
    status = first.get("status")
    current_page = first.get("current_page")
    return UserPresence(
        user_id=str(user_id),
        online_at=str(first.get("online_at") or utc_now_iso()),
        status=status if status in _PRESENCE_STATUSES else "online",
        current_page=str(current_page) if current_page is not None else None,
    )


class NotificationCenter:
    def __init__(
        self,
        client: RealtimeClient,
        toaster: Toaster | None = None,
        user_id: str = "current-user",
        feed_limit: int = settings.NOTIFICATION_FEED_LIMIT,
        toast_duration_ms: int = settings.TOAST_DURATION_MS,
        maintenance_table: str = settings.MAINTENANCE_TABLE,
        payments_table: str = settings.PAYMENTS_TABLE,
        presence_channel: str = settings.PRESENCE_CHANNEL,
    ):
        self._client = client
        self._toaster: Toaster = toaster if toaster is not None else LoggingToaster()
        self.user_id = user_id
        self.feed_limit = feed_limit
        self.toast_duration_ms = toast_duration_ms
        self.maintenance_table = maintenance_table
        self.payments_table = payments_table
        self.presence_channel_name = presence_channel

        # The route the user is looking at; published with every presence update.
        self.current_page: str | None = "/"

        self._feed: deque[NotificationData] = deque(maxlen=feed_limit)
        self._unread_count = 0
        self._online_users: list[UserPresence] = []
        self._total_received = 0

        self._maintenance_channel: RealtimeChannel | None = None
        self._payment_channel: RealtimeChannel | None = None
        self._presence_channel: RealtimeChannel | None = None

    # ==========================
    # STATE
    # ==========================
    @property
    def notifications(self) -> list[NotificationData]:
        return list(self._feed)

    @property
    def unread_count(self) -> int:
        return self._unread_count

    @property
    def online_users(self) -> list[UserPresence]:
        return list(self._online_users)

    @property
    def is_running(self) -> bool:
        return self._presence_channel is not None

    def snapshot(self) -> FeedSnapshot:
        return FeedSnapshot(notifications=self.notifications, unread_count=self._unread_count)

    def stats(self) -> CenterStats:
        channels = (self._maintenance_channel, self._payment_channel, self._presence_channel)
        return CenterStats(
            feed_length=len(self._feed),
            unread_count=self._unread_count,
            online_users=len(self._online_users),
            total_received=self._total_received,
            active_channels=sum(1 for c in channels if c is not None),
            server_time=datetime.now(timezone.utc),
        )

    # ==========================
    # LIFECYCLE
    # ==========================
    async def start(self) -> None:
        if self.is_running:
            return

        try:
            self._maintenance_channel = await (
                self._client.channel("maintenance-updates")
                .on_postgres_changes(self.maintenance_table, self._on_maintenance_change)
                .subscribe()
            )
            self._payment_channel = await (
                self._client.channel("payment-updates")
                .on_postgres_changes(self.payments_table, self._on_payment_change)
                .subscribe()
            )
            # The first sync can arrive while subscribe() is still running, so the
            # handler reads state from the channel it was registered on.
            presence = self._client.channel(self.presence_channel_name, presence_key=self.user_id)
            presence.on_presence_sync(lambda: self._on_presence_sync(presence))
            presence.on_presence_join(self._on_presence_join)
            presence.on_presence_leave(self._on_presence_leave)
            self._presence_channel = await presence.subscribe()
        except Exception as e:
            logger.error(f"center user_id={self.user_id} event=start_failed reason='{e}'")
            await self.stop()
            raise
        logger.info(f"center user_id={self.user_id} event=started channels=3")

    async def stop(self) -> None:
        channels = [self._maintenance_channel, self._payment_channel, self._presence_channel]
        self._maintenance_channel = self._payment_channel = self._presence_channel = None

        for channel in channels:
            if channel is None:
                continue
            try:
                await channel.unsubscribe()
            except Exception as e:
                logger.error(f"channel={channel.name} event=unsubscribe_error reason='{e}'")
        logger.info(f"center user_id={self.user_id} event=stopped")

    async def __aenter__(self) -> "NotificationCenter":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    # ==========================
    # INBOUND CHANGES
    # ==========================
    def _on_maintenance_change(self, payload: dict[str, Any]) -> None:
        logger.debug(f"table={self.maintenance_table} event={_event_type_of(payload)}")
        self._ingest(maintenance_notification, payload)

    def _on_payment_change(self, payload: dict[str, Any]) -> None:
        logger.debug(f"table={self.payments_table} event={_event_type_of(payload)}")
        self._ingest(payment_notification, payload)

    def _ingest(self, mapper, payload: Any) -> None:
        try:
            notification = mapper(payload)
        except Exception as e:
            logger.error(f"center event=mapping_error mapper={mapper.__name__} reason='{e}'")
            return
        self._total_received += 1
        self.add_notification(notification)

    # ==========================
    # PRESENCE
    # ==========================
    def _on_presence_sync(self, channel: RealtimeChannel) -> None:
        state = channel.presence_state()
        roster: list[UserPresence] = []
        for user_id, presences in state.items():
            try:
                roster.append(presence_from_state(user_id, presences))
            except Exception as e:
                logger.warning(f"presence event=skip user_id={user_id} reason='{e}'")
        self._online_users = roster
        logger.debug(f"presence event=sync online={len(roster)}")

    def _on_presence_join(self, key: str, new_presences: Any = None) -> None:
        logger.info(f"presence event=join user_id={key} presences={new_presences}")

    def _on_presence_leave(self, key: str, left_presences: Any = None) -> None:
        logger.info(f"presence event=leave user_id={key} presences={left_presences}")

    async def track_presence(self, status: PresenceStatus = "online") -> None:
        channel = self._presence_channel
        if channel is None:
            return
        presence = UserPresence(
            user_id=self.user_id,
            online_at=utc_now_iso(),
            status=status,
            current_page=self.current_page,
        )
        await channel.track(presence.model_dump())

    # ==========================
    # FEED
    # ==========================
    def _toast(self, title: str, description: str, duration_ms: int | None = None, variant: str = "default") -> None:
        try:
            self._toaster(title, description, duration_ms=duration_ms, variant=variant)
        except Exception as e:
            logger.warning(f"toast event=failed title='{title}' reason='{e}'")

    def add_notification(self, notification: NotificationData) -> None:
        # deque(maxlen) silently drops the oldest entry from the right.
        self._feed.appendleft(notification)
        self._unread_count += 1

        if notification.is_important:
            self._toast(notification.title, notification.message, duration_ms=self.toast_duration_ms)

    def mark_as_read(self, notification_id: str) -> bool:
        for index, notification in enumerate(self._feed):
            if notification.id != notification_id:
                continue
            if notification.read:
                return False
            self._feed[index] = notification.model_copy(update={"read": True})
            self._unread_count = max(0, self._unread_count - 1)
            return True
        return False

    def mark_all_as_read(self) -> None:
        self._feed = deque(
            (n if n.read else n.model_copy(update={"read": True}) for n in self._feed),
            maxlen=self.feed_limit,
        )
        self._unread_count = 0

    def clear_all_notifications(self) -> None:
        self._feed.clear()
        self._unread_count = 0

    def broadcast_notification(self, partial: BroadcastRequest | dict[str, Any]) -> NotificationData | None:
        try:
            request = partial if isinstance(partial, BroadcastRequest) else BroadcastRequest.model_validate(partial)
            notification = NotificationData(
                id=_make_id("custom"),
                type=request.type,
                title=request.title,
                message=request.message,
                data=request.data,
            )
        except Exception as e:
            logger.error(f"broadcast event=failed reason='{e}'")
            self._toast("Broadcast Failed", "Failed to send notification to all users", variant="destructive")
            return None

        self.add_notification(notification)
        logger.info(f"broadcast event=sent id={notification.id} type={notification.type}")
        self._toast("Notification Sent", f"{notification.type.upper()} notification broadcasted")
        return notification
