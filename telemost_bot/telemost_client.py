# Telemost Bot
# Copyright (C) 2026 StrateCode
# Licensed under the GNU Affero General Public License v3 (AGPLv3)

"""
Yandex Telemost API client.

Creates conferences on behalf of a user. Calls are made once with a hard
timeout; failures are classified and surfaced to the caller immediately,
there is no retry.
"""

import time
from typing import Dict, List, Optional

import httpx
from pydantic import ValidationError

from telemost_bot.config import PluginConfiguration
from telemost_bot.logging_config import get_logger, log_api_call
from telemost_bot.models import (
    Cohost,
    LiveStreamSettings,
    Meeting,
    MeetingRequest,
    ProviderErrorBody,
)


logger = get_logger(__name__)


TELEMOST_API_BASE_URL = "https://cloud-api.yandex.net/v1/telemost-api"
CONFERENCES_ENDPOINT = "/conferences"
DEFAULT_TIMEOUT_SECONDS = 30.0
# Longest slice of an unstructured error body carried into the message
MAX_ERROR_BODY_CHARS = 500


class TelemostAPIError(Exception):
    """Base exception for Telemost API errors."""
    def __init__(self, message: str, status_code: Optional[int] = None, response_body: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message)


class ProviderError(TelemostAPIError):
    """Telemost answered with a non-success status."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        error_code: str = ""
    ):
        super().__init__(message, status_code, response_body)
        self.error_code = error_code


class TransportError(TelemostAPIError):
    """The request never got a response (connect, read or timeout failure)."""


class MalformedResponseError(TelemostAPIError):
    """A success response whose body is not a meeting."""


def build_meeting_request(
    config: PluginConfiguration,
    title: str = "",
    description: str = "",
    cohosts: Optional[List[str]] = None
) -> MeetingRequest:
    """
    Build a meeting request from configuration defaults.

    The waiting room level always comes from the configuration. A live
    stream block is added only when live streaming is enabled, and it
    carries the call's title and description.
    """
    request = MeetingRequest(waiting_room_level=config.default_waiting_room_level)

    if config.enable_live_stream:
        request.live_stream = LiveStreamSettings(
            access_level=config.default_live_stream_access_level,
            title=title,
            description=description
        )

    if cohosts:
        request.cohosts = [Cohost(email=email) for email in cohosts]

    return request


class TelemostClient:
    """
    Async HTTP client for the Telemost conferences API.

    One instance is bound to one OAuth token.
    """

    def __init__(
        self,
        oauth_token: str,
        base_url: str = TELEMOST_API_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize Telemost client.

        Args:
            oauth_token: User (or plugin-wide) Telemost OAuth token
            base_url: Telemost API base URL
            timeout: Total request timeout in seconds
            transport: Optional httpx transport (for testing)
        """
        self.oauth_token = oauth_token
        self.base_url = base_url.rstrip("/")
        self.timeout = httpx.Timeout(timeout)
        self.transport = transport

    def _get_auth_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"OAuth {self.oauth_token}",
            "Content-Type": "application/json",
        }

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=self._get_auth_headers(),
            transport=self.transport
        )

    async def create_meeting(self, request: MeetingRequest) -> Meeting:
        """
        Create a conference.

        Args:
            request: Meeting settings

        Returns:
            The created Meeting

        Raises:
            ProviderError: If Telemost answers with anything but 201
            MalformedResponseError: If the 201 body is not a meeting
            TransportError: If no response was received
        """
        start_time = time.monotonic()

        try:
            async with self._build_client() as client:
                response = await client.post(CONFERENCES_ENDPOINT, json=request.to_payload())
        except httpx.RequestError as e:
            duration_ms = (time.monotonic() - start_time) * 1000
            log_api_call(
                logger, "Telemost", "POST", CONFERENCES_ENDPOINT, duration_ms,
                success=False, error=type(e).__name__
            )
            raise TransportError(f"Failed to reach Telemost API: {type(e).__name__}") from e

        duration_ms = (time.monotonic() - start_time) * 1000
        success = response.status_code == 201
        log_api_call(
            logger, "Telemost", "POST", CONFERENCES_ENDPOINT, duration_ms,
            status_code=response.status_code, success=success
        )

        if not success:
            raise self._provider_error(response)

        try:
            meeting = Meeting.model_validate_json(response.content)
        except ValidationError as e:
            raise MalformedResponseError(
                "Failed to decode Telemost meeting response",
                status_code=response.status_code,
                response_body=response.text
            ) from e

        logger.info("Telemost meeting created", extra={"meeting_id": meeting.id})
        return meeting

    @staticmethod
    def _provider_error(response: httpx.Response) -> ProviderError:
        try:
            body = ProviderErrorBody.model_validate_json(response.content)
        except ValidationError:
            body = None

        if body is None or not (body.error or body.message):
            return ProviderError(
                f"Telemost API error (status {response.status_code}): {response.text[:MAX_ERROR_BODY_CHARS]}",
                status_code=response.status_code,
                response_body=response.text
            )

        return ProviderError(
            f"Telemost API error: {body.error} - {body.message}",
            status_code=response.status_code,
            response_body=response.text,
            error_code=body.error
        )

    async def create_meeting_with_defaults(
        self,
        config: PluginConfiguration,
        title: str = "",
        description: str = "",
        cohosts: Optional[List[str]] = None
    ) -> Meeting:
        """Create a conference using the configured defaults."""
        request = build_meeting_request(config, title, description, cohosts)
        return await self.create_meeting(request)
