"""
Health check module for the session store.

This module provides health check services reporting whether the Redis
session store answers PING, with response time metrics.
"""

from health.service import (
    HealthCheckService,
    HealthStatus,
    DependencyHealth,
)

__all__ = [
    "HealthCheckService",
    "HealthStatus",
    "DependencyHealth",
]
