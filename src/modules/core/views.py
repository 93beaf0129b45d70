import time
from typing import Any, Callable, Dict

import structlog
from django.core.cache import cache
from django.db import connections
from django.http import HttpRequest, JsonResponse
from django.utils import timezone

from modules.core.models import EventStatus, OutboxEvent

logger = structlog.get_logger(__name__)


def _check_database() -> None:
    conn = connections["default"]
    conn.ensure_connection()
    with conn.cursor() as cursor:
        cursor.execute("SELECT 1")
        cursor.fetchone()


def _check_cache() -> None:
    cache.set("_health_check", "ok", 10)
    if cache.get("_health_check") != "ok":
        raise ConnectionError("Cache read failed")


def _probe(name: str, check: Callable[[], None]) -> Dict[str, Any]:
    start = time.monotonic()
    try:
        check()
    except Exception:
        logger.error("health_check.failure", service=name)
        return {"status": "down"}
    return {
        "status": "up",
        "response_time_ms": round((time.monotonic() - start) * 1000, 2),
    }


def health_check(request: HttpRequest) -> JsonResponse:
    """Public liveness probe: database, cache and notification backlog."""
    services = {
        "database": _probe("database", _check_database),
        "cache": _probe("cache", _check_cache),
    }
    overall_healthy = all(s["status"] == "up" for s in services.values())

    if services["database"]["status"] == "up":
        services["notifications"] = {
            "status": "up",
            "pending": OutboxEvent.objects.filter(status=EventStatus.PENDING).count(),
        }

    logger.info(
        "health_check.completed",
        status="healthy" if overall_healthy else "unhealthy",
    )

    return JsonResponse(
        {
            "status": "healthy" if overall_healthy else "unhealthy",
            "timestamp": timezone.now().isoformat(),
            "services": services,
        },
        status=200 if overall_healthy else 503,
    )
