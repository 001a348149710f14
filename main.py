import hmac
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Header, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config.settings import Settings, get_settings, validate_startup
from errors.exceptions import (
    CookieDecodeError,
    forbidden,
    resource_not_found,
    validation_error,
)
from errors.handlers import register_exception_handlers
from health.service import HealthCheckService
from middleware.request_id import RequestIDMiddleware
from middleware.session import SessionMiddleware
from session.models import DEFAULT_FLASH_KEY, Session
from session.redis_store import RedisStore
from session.registry import get_registry
from telemetry.service import get_telemetry_service, initialize_telemetry

logger = logging.getLogger(__name__)

SERVICE_NAME = "Session Store API"
SERVICE_VERSION = "1.0.0"


class SessionValuesRequest(BaseModel):
    values: dict[str, Any]


class FlashRequest(BaseModel):
    message: Any
    key: str = DEFAULT_FLASH_KEY


class DeleteSessionsRequest(BaseModel):
    ids: list[str] = Field(default_factory=list)


def create_app(settings: Optional[Settings] = None, store: Optional[RedisStore] = None) -> FastAPI:
    """
    Build the session store API.

    Args:
        settings: Application settings, loaded from the environment when omitted
        store: Session store, built from the settings when omitted

    Run with ``uvicorn main:create_app --factory``.
    """
    if settings is None:
        settings = get_settings()
        validate_startup()
    if store is None:
        store = RedisStore.from_settings(settings)

    initialize_telemetry(settings)
    health_check_service = HealthCheckService(session_store=store, check_timeout=5.0)
    cookie_name = settings.session_cookie_name

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Connect the session store on startup, fail fast if Redis is down."""
        logger.info(f"Starting {SERVICE_NAME}...")
        await store.connect()
        yield
        logger.info(f"Shutting down {SERVICE_NAME}...")
        await store.disconnect()

    app = FastAPI(title=SERVICE_NAME, version=SERVICE_VERSION, lifespan=lifespan)
    app.state.session_store = store
    app.state.settings = settings

    register_exception_handlers(app)

    # Middleware added last wraps the others; sessions are saved innermost
    app.add_middleware(SessionMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Accept", "Content-Type", "X-Request-ID", "X-Admin-Token"],
        expose_headers=["X-Request-ID"],
        max_age=600,
    )

    async def load_session(request: Request) -> Session:
        try:
            return await store.get(request, cookie_name)
        except CookieDecodeError as exc:
            # A forged or stale cookie gets a fresh session
            return exc.session

    def require_admin(token: Optional[str]) -> None:
        expected = settings.session_admin_token
        if not expected or not token or not hmac.compare_digest(token, expected):
            raise forbidden("Administrative access denied")

    def audit(action: str, resource_id: Optional[str], details: Optional[dict] = None) -> None:
        telemetry = get_telemetry_service()
        if telemetry is not None:
            telemetry.log_audit_event(
                event_type="session_admin",
                resource_type="session",
                resource_id=resource_id,
                action=action,
                details=details,
            )

    # Session endpoints

    @app.get("/api/session")
    async def read_session(request: Request):
        """Return the values of the caller's session."""
        session = await load_session(request)
        return {"is_new": session.is_new, "values": session.values}

    @app.put("/api/session/values")
    async def update_session_values(body: SessionValuesRequest, request: Request):
        """Merge values into the caller's session; saved by SessionMiddleware."""
        session = await load_session(request)
        session.values.update(body.values)
        return {"is_new": session.is_new, "values": session.values}

    @app.post("/api/session/flash")
    async def add_flash(body: FlashRequest, request: Request):
        session = await load_session(request)
        session.add_flash(body.message, body.key)
        return {"status": "queued"}

    @app.get("/api/session/flashes")
    async def consume_flashes(request: Request, key: str = DEFAULT_FLASH_KEY):
        session = await load_session(request)
        return {"flashes": session.flashes(key)}

    @app.post("/api/session/logout")
    async def logout(request: Request, response: Response):
        """Delete the caller's session and expire its cookie."""
        session = await load_session(request)
        await store.delete(request, response, session)
        get_registry(request).discard(session.name)
        return {"status": "logged_out"}

    # Administrative endpoints

    @app.get("/api/admin/sessions")
    async def list_sessions(x_admin_token: Optional[str] = Header(default=None)):
        require_admin(x_admin_token)
        sessions = await store.get_all()
        audit("list", None, {"count": len(sessions)})
        return {
            "count": len(sessions),
            "sessions": [{"id": s.id, "values": s.values} for s in sessions],
        }

    @app.put("/api/admin/sessions/{session_id}")
    async def replace_session_values(
        session_id: str,
        body: SessionValuesRequest,
        x_admin_token: Optional[str] = Header(default=None),
    ):
        """Replace the values of a stored session without touching its cookie."""
        require_admin(x_admin_token)
        found, _ = await store.engine.load(session_id)
        if not found:
            raise resource_not_found(
                f"Session {session_id} not found",
                details={"session_id": session_id},
            )
        session = Session(
            name=cookie_name,
            id=session_id,
            values=dict(body.values),
            options=store.options.copy(),
            is_new=False,
            store=store,
        )
        await store.update(session)
        audit("update", session_id)
        return {"id": session_id, "values": session.values}

    @app.delete("/api/admin/sessions")
    async def delete_sessions(
        body: DeleteSessionsRequest,
        x_admin_token: Optional[str] = Header(default=None),
    ):
        require_admin(x_admin_token)
        if not body.ids:
            raise validation_error("At least one session id is required", details={"field": "ids"})
        await store.delete_by_id(*body.ids)
        audit("delete", None, {"ids": body.ids})
        return {"deleted": len(body.ids)}

    # Health endpoints

    @app.get("/health")
    async def health_basic():
        """Return 200 OK when the service is accepting requests."""
        result = await health_check_service.check_health()
        return {
            "status": result["status"],
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "timestamp": result["timestamp"],
        }

    @app.get("/health/ready")
    async def health_ready():
        """
        Readiness check against Redis.

        Returns:
            JSONResponse: 200 when Redis answers PING, 503 with the failure
            reason otherwise
        """
        health_status = await health_check_service.check_readiness()
        response_data = {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            **health_status.to_dict(),
        }

        if health_status.status == "unhealthy":
            response_data["failure_reasons"] = [
                {"dependency": dep.name, "error": dep.error}
                for dep in health_status.dependencies
                if not dep.healthy
            ]
            return JSONResponse(status_code=503, content=response_data)

        return response_data

    @app.get("/health/live")
    async def health_live():
        """Return 200 OK while the process is running, whatever Redis does."""
        result = await health_check_service.check_liveness()
        return {
            "status": result["status"],
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "timestamp": result["timestamp"],
        }

    return app


if __name__ == "__main__":
    import os
    import uvicorn
    port = int(os.environ.get("PORT", 8080))
    uvicorn.run(create_app(), host="0.0.0.0", port=port, log_level="info")
