from fastapi import APIRouter
from typing import Dict

from meetgrid import db, state
from meetgrid.store import PostgresStore

router = APIRouter()


@router.get("/health")
async def health() -> Dict[str, str]:
    redis_status = "disconnected"
    if state.redis_client:
        try:
            await state.redis_client.ping()
            redis_status = "healthy"
        except Exception:
            redis_status = "unhealthy"

    if state.store is None:
        store_status = "disconnected"
    elif isinstance(state.store, PostgresStore):
        store_status = "healthy" if await db.ping() else "unhealthy"
    else:
        store_status = "memory"

    return {"status": "ok", "redis": redis_status, "store": store_status}
