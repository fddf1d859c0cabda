from __future__ import annotations

import logging

from django.db import DatabaseError, connection
from django.http import HttpRequest, JsonResponse

logger = logging.getLogger("condotrack.request")


def _error_response(message: str, code: str, status: int) -> JsonResponse:
    return JsonResponse(
        {"success": False, "data": {}, "error": {"message": message, "code": code}},
        status=status,
    )


def handle_403(request: HttpRequest, exception=None) -> JsonResponse:
    return _error_response("Forbidden.", "forbidden", 403)


def handle_404(request: HttpRequest, exception=None) -> JsonResponse:
    return _error_response("Not found.", "not_found", 404)


def handle_500(request: HttpRequest) -> JsonResponse:
    logger.error(
        "server_error",
        extra={"status_code": 500, "error_code": "server_error", "path": request.path},
    )
    return _error_response("Internal server error.", "server_error", 500)


def healthz(request: HttpRequest) -> JsonResponse:
    return JsonResponse({"status": "ok"})


def readyz(request: HttpRequest) -> JsonResponse:
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
    except DatabaseError:
        logger.exception("readiness_check_failed")
        return JsonResponse({"status": "unavailable", "db": False}, status=503)
    return JsonResponse({"status": "ok", "db": True})
