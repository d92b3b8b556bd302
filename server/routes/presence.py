from fastapi import APIRouter, Depends

from realtime.notifications import NotificationCenter
from server.routes.notifications import get_center
from shared.models import TrackPresenceRequest, UserPresence

router = APIRouter()

@router.get("/presence", response_model=list[UserPresence])
async def online_users(center: NotificationCenter = Depends(get_center)):
    return center.online_users

@router.post("/presence", response_model=list[UserPresence])
async def track_presence(body: TrackPresenceRequest, center: NotificationCenter = Depends(get_center)):
    if body.current_page is not None:
        center.current_page = body.current_page
    await center.track_presence(body.status)
    return center.online_users
