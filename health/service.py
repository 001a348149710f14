"""
Health check service for the session store.

This module provides the HealthCheckService class that probes the Redis
session store with PING under a timeout and reports response times.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Any

logger = logging.getLogger(__name__)

# Dependency the service cannot run without
SESSION_STORE_DEPENDENCY = "session_store"


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat() + "Z"


@dataclass
class DependencyHealth:
    """
    Health status of a single dependency.

    Attributes:
        name: The name of the dependency (e.g., "session_store")
        healthy: Whether the dependency is healthy and responding
        response_time_ms: The time taken to check the dependency in milliseconds
        error: Optional error message if the dependency check failed
    """
    name: str
    healthy: bool
    response_time_ms: float
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {
            "name": self.name,
            "healthy": self.healthy,
            "response_time_ms": round(self.response_time_ms, 2),
        }
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass
class HealthStatus:
    """
    Overall health status of the service.

    Attributes:
        status: Overall status - "healthy" or "unhealthy"
        timestamp: When the health check was performed
        dependencies: List of individual dependency health statuses
    """
    status: str  # "healthy", "unhealthy"
    timestamp: datetime
    dependencies: list[DependencyHealth] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "status": self.status,
            "timestamp": self.timestamp.isoformat() + "Z",
            "dependencies": [dep.to_dict() for dep in self.dependencies],
        }


class HealthCheckService:
    """
    Probes the session store for the health endpoints.

    Attributes:
        session_store: RedisStore or RedisPersistenceEngine; anything with a
            non-raising ``health_check()``, directly or on its ``engine``
        check_timeout: Seconds allowed for the PING round trip (default: 5.0)
    """

    def __init__(
        self,
        session_store: Optional[Any] = None,
        check_timeout: float = 5.0
    ):
        self.session_store = session_store
        self.check_timeout = check_timeout

    async def check_readiness(self) -> HealthStatus:
        """
        Ping the session store and report whether the service can take traffic.

        The session store is the only dependency and it is critical: when it
        is down the service is "unhealthy".
        """
        dependencies: list[DependencyHealth] = []
        if self.session_store is not None:
            dependencies.append(await self._check_session_store())

        healthy = all(dep.healthy for dep in dependencies)
        return HealthStatus(
            status="healthy" if healthy else "unhealthy",
            timestamp=datetime.now(timezone.utc).replace(tzinfo=None),
            dependencies=dependencies
        )

    async def check_liveness(self) -> dict[str, Any]:
        """Report that the process is running, whatever Redis does."""
        return {"status": "alive", "timestamp": _utc_timestamp()}

    async def check_health(self) -> dict[str, Any]:
        """Report that the service is accepting requests."""
        return {"status": "ok", "timestamp": _utc_timestamp()}

    async def _check_session_store(self) -> DependencyHealth:
        start_time = time.perf_counter()
        error: Optional[str] = None

        try:
            if not await asyncio.wait_for(self._ping_session_store(), timeout=self.check_timeout):
                error = "Session store health check returned False"
        except asyncio.TimeoutError:
            error = f"Session store health check timed out after {self.check_timeout} seconds"
        except Exception as e:
            error = f"Session store health check failed: {e}"

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        if error is None:
            logger.debug(f"Session store health check passed in {elapsed_ms:.2f}ms")
        else:
            logger.warning(f"{error} ({elapsed_ms:.2f}ms)")

        return DependencyHealth(
            name=SESSION_STORE_DEPENDENCY,
            healthy=error is None,
            response_time_ms=elapsed_ms,
            error=error
        )

    async def _ping_session_store(self) -> bool:
        target = getattr(self.session_store, "engine", self.session_store)
        if hasattr(target, "health_check"):
            return await target.health_check()
        return False
