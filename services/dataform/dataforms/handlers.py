"""Render engine errors as structured API responses."""
from __future__ import annotations

import logging
from typing import Any, Dict

from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from .exceptions import DataFormError, ValidationError

logger = logging.getLogger(__name__)


def exception_handler(exc: Exception, context: Dict[str, Any]) -> Response | None:
    if isinstance(exc, DataFormError):
        body: Dict[str, Any] = {"message": exc.message}
        if isinstance(exc, ValidationError) and exc.errors:
            body["errors"] = exc.errors
        logger.info("Request rejected: %s", exc.message)
        return Response(body, status=exc.status_code)

    response = drf_exception_handler(exc, context)
    if response is None:
        return None
    if isinstance(response.data, dict) and "detail" in response.data:
        response.data = {"message": str(response.data["detail"])}
    else:
        response.data = {"message": "Invalid request.", "errors": response.data}
    return response
