from datetime import datetime, timezone

import socketio
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from support_relay.config import settings
from support_relay.database import Base, SessionLocal, engine
from support_relay.logging_config import get_logger, setup_logging
from support_relay.realtime.socket_handlers import register_socket_handlers
from support_relay.routers import chat, users
from support_relay.routers.deps import request_validation_handler
from support_relay.services.bot_engine import get_bot_engine
from support_relay.services.broadcast import Broadcaster, SubscriberRegistry

setup_logging(settings.log_level)
logger = get_logger("main")

app = FastAPI(
    title="Support Relay",
    description="Customer support chat relay with a rule-based bot and live admin observers",
    version="0.1.0",
)

cors_origins = settings.cors_origins()

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(RequestValidationError, request_validation_handler)

# Every route is served both bare and under /api
for router_module in (users, chat):
    app.include_router(router_module.router)
    app.include_router(router_module.router, prefix="/api")

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins="*" if cors_origins == ["*"] else cors_origins,
)
registry = SubscriberRegistry(sio)
broadcaster = Broadcaster(sio)

app.state.registry = registry
app.state.broadcaster = broadcaster

register_socket_handlers(sio, registry, broadcaster, get_bot_engine, session_factory=SessionLocal)


@app.on_event("startup")
async def prepare_services() -> None:
    Base.metadata.create_all(bind=engine)
    get_bot_engine()
    logger.info("Database ready", extra={"context": {"database_url": engine.url.render_as_string()}})


@app.get("/", response_class=PlainTextResponse)
async def root():
    return "Support relay server is running"


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "sockets": registry.snapshot(),
    }


# Serve with: uvicorn support_relay.main:asgi_app
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app)
