"""Infrastructure endpoints outside the /api/v1/ surface."""

import logging

from django.core.cache import cache
from django.db import DatabaseError, connection
from django.http import JsonResponse

from core.circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Liveness probe for the web container and the load balancer.

    Returns:
        JsonResponse with status and component health:
        - status: "healthy", "degraded" or "unhealthy"
        - database: "connected" or "disconnected"
        - cache: "connected" or "disconnected"
        - circuits: state of each outbound circuit breaker

    HTTP Status Codes:
        200: Database reachable (cache or provider trouble only degrades)
        503: Database unreachable

    Example Response:
        {
            "status": "healthy",
            "database": "connected",
            "cache": "connected",
            "circuits": {"paymongo-api": "closed"}
        }
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "cache": "unknown",
        "circuits": {},
    }
    is_healthy = True

    # Check database connectivity
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except DatabaseError as e:
        logger.error(f"Health check database error: {e}")
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"
        is_healthy = False

    # Cache failure is not critical (IGNORE_EXCEPTIONS makes reads return None)
    cache.set("health_check", "ok", timeout=1)
    if cache.get("health_check") == "ok":
        health_status["cache"] = "connected"
    else:
        health_status["cache"] = "disconnected"
        if is_healthy:
            health_status["status"] = "degraded"

    for circuit in CircuitBreaker.registered():
        state = circuit.state
        health_status["circuits"][circuit.name] = state
        if state != "closed" and is_healthy:
            health_status["status"] = "degraded"

    status_code = 200 if is_healthy else 503

    return JsonResponse(health_status, status=status_code)
