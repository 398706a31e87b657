import logging

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
)
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from meetgrid import __version__
from meetgrid.config import get_settings
from meetgrid.controllers.health import router as health_router
from meetgrid.controllers.meetings import router as meetings_router
from meetgrid.controllers.push import router as push_router
from meetgrid.controllers.ws_events import router as ws_events_router
from meetgrid.errors import register_exception_handlers
from meetgrid.lifespan import lifespan
from meetgrid.middleware import HTTPLogMiddleware

settings = get_settings()

app = FastAPI(title="MeetGrid API", version=__version__, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors.origins,
    allow_origin_regex=settings.cors.origins_regex or None,
    allow_credentials=settings.cors.allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.debug.request:
    logging.getLogger("meetgrid.http").setLevel(logging.DEBUG)
    app.add_middleware(HTTPLogMiddleware)

logging.getLogger("meetgrid.ws.events").setLevel(logging.INFO if settings.debug.websocket else logging.WARNING)

register_exception_handlers(app)

app.include_router(health_router)
app.include_router(meetings_router)
app.include_router(push_router)
app.include_router(ws_events_router)

Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)
