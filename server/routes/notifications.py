"""
MODULE OVERVIEW:
HTTP view of the notification feed.

WHAT IS HAPPENING HERE:
Thin routes over the single `NotificationCenter` stored on `app.state`. The
feed itself is mutated only through the center's methods, so the HTTP layer
gets the same 50-item cap, unread accounting and toast rules as realtime
events do.
"""
from fastapi import APIRouter, Depends, HTTPException, Request

from realtime.notifications import NotificationCenter
from shared.models import BroadcastRequest, FeedSnapshot, NotificationData

router = APIRouter()

def get_center(request: Request) -> NotificationCenter:
    return request.app.state.center

@router.get("/notifications", response_model=FeedSnapshot)
async def list_notifications(center: NotificationCenter = Depends(get_center)):
    return center.snapshot()

@router.post("/notifications/read-all", response_model=FeedSnapshot)
async def mark_all_read(center: NotificationCenter = Depends(get_center)):
    center.mark_all_as_read()
    return center.snapshot()

@router.post("/notifications/broadcast", response_model=NotificationData, status_code=201)
async def broadcast(body: BroadcastRequest, center: NotificationCenter = Depends(get_center)):
    notification = center.broadcast_notification(body)
    if notification is None:
        raise HTTPException(status_code=500, detail="Failed to send notification to all users")
    return notification

@router.post("/notifications/{notification_id}/read", response_model=FeedSnapshot)
async def mark_read(notification_id: str, center: NotificationCenter = Depends(get_center)):
    if not any(n.id == notification_id for n in center.notifications):
        raise HTTPException(status_code=404, detail=f"Notification {notification_id} not found")
    center.mark_as_read(notification_id)
    return center.snapshot()

@router.delete("/notifications", response_model=FeedSnapshot)
async def clear_notifications(center: NotificationCenter = Depends(get_center)):
    center.clear_all_notifications()
    return center.snapshot()
