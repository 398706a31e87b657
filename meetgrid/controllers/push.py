import logging
from typing import Any, Dict

from fastapi import APIRouter
from pydantic import BaseModel, field_validator

from meetgrid.dependencies import Notifier, Push, Store
from meetgrid.errors import NotFoundError, ServiceUnavailableError

logger = logging.getLogger("meetgrid.push")
router = APIRouter(prefix="/push")


class SubscriptionKeys(BaseModel):
    p256dh: str
    auth: str


class PushSubscription(BaseModel):
    endpoint: str
    keys: SubscriptionKeys

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        if not v.startswith("https://"):
            raise ValueError("endpoint must be an https URL")
        return v


class SubscribeRequest(BaseModel):
    event_id: str
    subscription: PushSubscription
    participant_id: str | None = None


@router.get("/public-key")
async def public_key(push: Push) -> Dict[str, str]:
    if not push.vapid_public_key:
        raise ServiceUnavailableError(detail="Push notifications are not configured")
    return {"public_key": push.vapid_public_key}


@router.post("/subscribe")
async def subscribe(req: SubscribeRequest, store: Store, notifier: Notifier) -> Dict[str, Any]:
    if notifier is None:
        raise ServiceUnavailableError(detail="Push notifications are not available")
    if await store.fetch_event(req.event_id) is None:
        raise NotFoundError(detail="Event not found", event_id=req.event_id)
    subscription = req.subscription.model_dump()
    if req.participant_id:
        subscription["participant_id"] = req.participant_id
    await notifier.subscribe(req.event_id, subscription)
    logger.info("push.subscribe event_id=%s endpoint=%s...", req.event_id, req.subscription.endpoint[:32])
    return {"ok": True}


class UnsubscribeRequest(BaseModel):
    event_id: str
    endpoint: str


@router.post("/unsubscribe")
async def unsubscribe(req: UnsubscribeRequest, notifier: Notifier) -> Dict[str, Any]:
    if notifier is None:
        raise ServiceUnavailableError(detail="Push notifications are not available")
    removed = await notifier.unsubscribe(req.event_id, req.endpoint)
    logger.info("push.unsubscribe event_id=%s removed=%s", req.event_id, removed)
    return {"ok": True, "removed": removed}
