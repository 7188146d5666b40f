import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, Response

from .config import Settings, get_settings
from .control import GripControlClient
from .errors import GatewayError, MissingParameterError
from .gateway import StreamGateway
from .logging import clear_context, configure_logging, get_logger, set_request_id
from .proxy import EmbeddedProxy
from .publisher import EventPublisher
from .registry import ChannelRegistry
from .schemas import PublishRequest, PublishResponse, StreamRequest, TopicList
from .utilities import TEXT_MEDIA_TYPE

logger = get_logger("grip_gateway.main")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.service_name, settings.log_level)

    registry = ChannelRegistry()
    control = None
    if settings.grip_control_url:
        control = GripControlClient(settings.grip_control_url, timeout=settings.control_timeout)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Gateway starting", proxy_mode=settings.proxy_mode, grip_control_url=settings.grip_control_url)
        yield
        if control is not None:
            await control.close()
        logger.info("Gateway stopped")

    app = FastAPI(
        title="GRIP stream gateway",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.env == "local" else None,
        redoc_url=None,
    )
    app.state.settings = settings
    app.state.registry = registry
    app.state.gateway = StreamGateway(keep_alive_interval=settings.keep_alive_interval)
    app.state.publisher = EventPublisher(registry, control)
    app.state.proxy = EmbeddedProxy(registry, queue_size=settings.subscriber_queue_size)
    app.state.started_at = datetime.now(timezone.utc)

    _setup_middleware(app)
    _setup_error_handlers(app)
    _setup_routes(app)
    return app


# -------------- Middleware --------------

def _setup_middleware(app: FastAPI):

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = set_request_id(request.headers.get("X-Request-ID"))
        start = time.time()
        try:
            response = await call_next(request)
        finally:
            clear_context()
        # for held streams this measures time to first byte, not stream lifetime
        logger.info(
            "HTTP request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.time() - start) * 1000, 2),
            request_id=request_id,
        )
        response.headers["X-Request-ID"] = request_id
        return response


# -------------- Error handlers --------------

def _setup_error_handlers(app: FastAPI):

    @app.exception_handler(MissingParameterError)
    async def missing_parameter_handler(request: Request, exc: MissingParameterError):
        logger.info("Rejected request", code=exc.code, parameter=exc.parameter, path=request.url.path)
        return Response(content=f"{exc.message}\n", status_code=400, headers={"Content-Type": TEXT_MEDIA_TYPE})

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        logger.warning("Gateway error", code=exc.code, message=exc.message, details=exc.details)
        return JSONResponse(status_code=exc.status_code, content=exc.to_response().model_dump())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception", error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}},
        )


# -------------- Routes --------------

def _setup_routes(app: FastAPI):

    @app.get("/stream")
    async def stream(request: Request, topic: Optional[str] = Query(None)):
        opened = app.state.gateway.handle(StreamRequest(topic=topic))
        if app.state.settings.proxy_mode == "embedded":
            return await app.state.proxy.hold(opened, request.is_disconnected)
        # an external GRIP proxy reads the headers and keeps the client connection open
        return Response(content=opened.body, headers={"Content-Type": opened.media_type, **opened.headers})

    @app.post("/publish", response_model=PublishResponse)
    async def publish(req: PublishRequest):
        result = await app.state.publisher.publish(req.topic, req.event, req.data)
        return PublishResponse(
            topic=req.topic,
            event=req.event,
            seq=result.event.seq,
            delivered=result.delivered,
            failed=len(result.failed),
            relayed=result.relayed,
        )

    @app.get("/topics", response_model=TopicList)
    async def list_topics():
        return {"topics": await app.state.registry.topics()}

    @app.get("/health")
    async def health():
        now = datetime.now(timezone.utc)
        uptime_sec = int((now - app.state.started_at).total_seconds())
        return {
            "status": "ok",
            "uptime_sec": uptime_sec,
            "proxy_mode": app.state.settings.proxy_mode,
            "topics": await app.state.registry.topic_count(),
            "subscribers": await app.state.registry.subscriber_count(),
        }

    @app.get("/stats")
    async def stats():
        topics = await app.state.registry.topics()
        return {
            "publisher": app.state.publisher.stats(),
            "topics": {t["name"]: {"messages": t["messages"], "subscribers": t["subscribers"]} for t in topics},
        }


def run():
    """Console entry point: serve the gateway with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


app = create_app()

if __name__ == "__main__":
    run()
