"""
MODULE OVERVIEW:
Typed data structures shared by the realtime center, the HTTP server and the
terminal dashboard, powered by Pydantic v2.

WHAT IS HAPPENING HERE:
`NotificationData` is the single shape of a user-facing event no matter where
it came from: a maintenance change, a payment change, or a manual broadcast.
`UserPresence` is one row of the online roster rebuilt on every presence sync.
"""
from typing import Any, Literal
from datetime import datetime, timezone
from pydantic import BaseModel, Field

NotificationType = Literal["maintenance_request", "payment_update", "message", "emergency", "system"]
PresenceStatus = Literal["online", "away", "busy"]
ChangeEventType = Literal["INSERT", "UPDATE", "DELETE"]

IMPORTANT_TYPES: frozenset[str] = frozenset({"emergency", "maintenance_request"})


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class NotificationData(BaseModel):
    id: str
    type: NotificationType
    title: str
    message: str
    timestamp: str = Field(default_factory=utc_now_iso)
    read: bool = False
    data: dict[str, Any] | None = None

    @property
    def is_important(self) -> bool:
        return self.type in IMPORTANT_TYPES


class UserPresence(BaseModel):
    user_id: str
    online_at: str
    status: PresenceStatus = "online"
    current_page: str | None = None


# The body of a manual broadcast: everything except id, timestamp and read,
# which the center fills in.
class BroadcastRequest(BaseModel):
    type: NotificationType
    title: str
    message: str
    data: dict[str, Any] | None = None


class TrackPresenceRequest(BaseModel):
    status: PresenceStatus = "online"
    current_page: str | None = None


class FeedSnapshot(BaseModel):
    notifications: list[NotificationData]
    unread_count: int


class CenterStats(BaseModel):
    feed_length: int
    unread_count: int
    online_users: int
    total_received: int
    active_channels: int
    server_time: datetime
