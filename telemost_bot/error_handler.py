# Telemost Bot
# Copyright (C) 2026 StrateCode
# Licensed under the GNU Affero General Public License v3 (AGPLv3)

"""
Error handling utilities for the HTTP surface.

Maps failures to an ErrorKind, an HTTP status and a fixed, generic message.
Details (provider bodies, exception text) are logged, never returned.
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional

from aiohttp import web

from telemost_bot.assets import AssetNotFoundError, AssetPathError
from telemost_bot.config import ConfigurationError
from telemost_bot.oauth_manager import (
    InvalidStateError,
    OAuthError,
    StateExpiredError,
    TokenExpiredError,
    TokenNotFoundError,
)
from telemost_bot.telemost_client import TelemostAPIError


logger = logging.getLogger(__name__)


NOT_CONFIGURED_MESSAGE = "This plugin is not configured."


class ErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    BAD_REQUEST = "bad_request"
    INVALID_STATE = "invalid_state"
    NOT_CONFIGURED = "not_configured"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    MEETING_FAILED = "meeting_failed"
    INTERNAL = "internal_error"


ERROR_STATUS = {
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.INVALID_STATE: 400,
    ErrorKind.NOT_CONFIGURED: 403,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.MEETING_FAILED: 500,
    ErrorKind.INTERNAL: 500,
}

ERROR_MESSAGES = {
    ErrorKind.UNAUTHORIZED: "Not authorized",
    ErrorKind.BAD_REQUEST: "Invalid request",
    ErrorKind.INVALID_STATE: "Invalid or expired OAuth state",
    ErrorKind.NOT_CONFIGURED: NOT_CONFIGURED_MESSAGE,
    ErrorKind.FORBIDDEN: "Forbidden",
    ErrorKind.NOT_FOUND: "Not found",
    ErrorKind.MEETING_FAILED: "Failed to create meeting",
    ErrorKind.INTERNAL: "Internal server error",
}


class ErrorHandler:
    """
    Centralized error handler for HTTP routes.

    Converts exceptions into JSON error responses of the form
    {"success": false, "error": <kind>, "message": <generic message>}.
    """

    def classify(self, error: Exception) -> ErrorKind:
        """Pick the ErrorKind for an exception raised by a route."""
        if isinstance(error, (InvalidStateError, StateExpiredError)):
            return ErrorKind.INVALID_STATE
        if isinstance(error, (TokenNotFoundError, TokenExpiredError)):
            return ErrorKind.UNAUTHORIZED
        if isinstance(error, TelemostAPIError):
            return ErrorKind.MEETING_FAILED
        if isinstance(error, ConfigurationError):
            return ErrorKind.NOT_CONFIGURED
        if isinstance(error, AssetPathError):
            return ErrorKind.FORBIDDEN
        if isinstance(error, AssetNotFoundError):
            return ErrorKind.NOT_FOUND
        return ErrorKind.INTERNAL

    def response(self, kind: ErrorKind, message: Optional[str] = None) -> web.Response:
        body: Dict[str, Any] = {
            'success': False,
            'error': kind.value,
            'message': message or ERROR_MESSAGES[kind],
        }
        return web.json_response(body, status=ERROR_STATUS[kind])

    def handle_exception(
        self,
        error: Exception,
        context: Optional[Dict[str, Any]] = None
    ) -> web.Response:
        """
        Log an exception and build its HTTP response.

        Args:
            error: Exception raised while serving the request
            context: Optional context for the log record
        """
        kind = self.classify(error)
        extra = {
            'error_kind': kind.value,
            'error_type': type(error).__name__,
            'error_message': str(error),
            **(context or {})
        }

        if isinstance(error, TelemostAPIError):
            extra['status_code'] = error.status_code
        if isinstance(error, OAuthError):
            extra['error_code'] = error.error_code

        if ERROR_STATUS[kind] >= 500:
            logger.error("Request failed", extra=extra, exc_info=error)
        else:
            logger.warning("Request rejected", extra=extra)

        return self.response(kind)
