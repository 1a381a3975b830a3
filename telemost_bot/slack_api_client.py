# Telemost Bot
# Copyright (C) 2026 StrateCode
# Licensed under the GNU Affero General Public License v3 (AGPLv3)

"""
Slack API client with retry logic and error handling.

Wraps the Slack SDK's async web client and adds exponential backoff for
rate limits and transient server errors. The bot uses it to post the
"connected" notice into the channel where a user started authorization.
"""

import asyncio
import logging
import random
from typing import Any, Callable, Dict, List, Optional

from slack_sdk.web.async_client import AsyncWebClient
from slack_sdk.errors import SlackApiError


logger = logging.getLogger(__name__)


class SlackAPIRetryError(Exception):
    """Exception raised when Slack API call fails after all retries."""

    def __init__(self, message: str, original_error: Optional[Exception] = None, attempts: int = 0):
        self.message = message
        self.original_error = original_error
        self.attempts = attempts
        super().__init__(message)


class SlackAPIClient:
    """
    Slack API client with retry logic and error handling.

    - Exponential backoff with jitter for retryable errors
    - Honors Retry-After on rate limits (429)
    - Retries server errors (500, 502, 503, 504)
    """

    RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
    RETRYABLE_ERRORS = {'internal_error', 'service_unavailable', 'fatal_error'}

    def __init__(
        self,
        bot_token: str,
        max_retries: int = 3,
        retry_backoff_base: float = 2.0,
        client: Optional[AsyncWebClient] = None
    ):
        """
        Initialize Slack API client.

        Args:
            bot_token: Slack bot token (xoxb-...)
            max_retries: Retries after the first attempt
            retry_backoff_base: Base of the exponential backoff in seconds
            client: Optional pre-built AsyncWebClient (for testing)
        """
        self.client = client if client is not None else AsyncWebClient(token=bot_token)
        self.max_retries = max_retries
        self.retry_backoff_base = retry_backoff_base

        logger.info(
            "Initialized Slack API client",
            extra={
                "max_retries": self.max_retries,
                "backoff_base": self.retry_backoff_base
            }
        )

    def _is_retryable_error(self, error: SlackApiError) -> bool:
        if error.response.status_code in self.RETRYABLE_STATUS_CODES:
            return True

        return error.response.get('error') in self.RETRYABLE_ERRORS

    def _calculate_backoff(self, attempt: int, retry_after: Optional[int] = None) -> float:
        """
        Calculate backoff time with exponential backoff and jitter.

        Args:
            attempt: Current attempt number (0-indexed)
            retry_after: Optional retry-after value from rate limit response

        Returns:
            Backoff time in seconds
        """
        if retry_after is not None:
            base_wait = float(retry_after)
        else:
            base_wait = self.retry_backoff_base ** attempt

        # Up to 10% jitter
        jitter = base_wait * 0.1 * random.random()

        return base_wait + jitter

    @staticmethod
    def _retry_after(error: SlackApiError) -> Optional[int]:
        value = error.response.headers.get('Retry-After')
        if value is None:
            return None
        try:
            return int(value)
        except (ValueError, TypeError):
            return None

    async def _retry_api_call(
        self,
        api_method: Callable,
        method_name: str,
        **kwargs
    ) -> Any:
        """
        Execute Slack API call with retry logic.

        Raises:
            SlackAPIRetryError: If call fails after all retries or with a
                non-retryable error
        """
        last_error = None

        for attempt in range(self.max_retries + 1):
            try:
                return await api_method(**kwargs)

            except SlackApiError as e:
                last_error = e

                if not self._is_retryable_error(e):
                    logger.error(
                        f"Non-retryable Slack API error: {method_name}",
                        extra={
                            "method": method_name,
                            "error": e.response.get('error'),
                            "status_code": e.response.status_code
                        }
                    )
                    raise SlackAPIRetryError(
                        f"Slack API error: {e.response.get('error')}",
                        original_error=e,
                        attempts=attempt + 1
                    ) from e

                if attempt >= self.max_retries:
                    break

                backoff = self._calculate_backoff(attempt, self._retry_after(e))

                logger.warning(
                    f"Retryable Slack API error, retrying in {backoff:.2f}s",
                    extra={
                        "method": method_name,
                        "attempt": attempt + 1,
                        "backoff": backoff,
                        "error": e.response.get('error'),
                        "status_code": e.response.status_code
                    }
                )

                await asyncio.sleep(backoff)

        logger.error(
            f"Max retries exceeded for Slack API: {method_name}",
            extra={"method": method_name, "attempts": self.max_retries + 1}
        )
        raise SlackAPIRetryError(
            f"Slack API call failed after {self.max_retries + 1} attempts",
            original_error=last_error,
            attempts=self.max_retries + 1
        )

    async def post_message(
        self,
        channel: str,
        text: str,
        blocks: Optional[List[Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """
        Post a message to a Slack channel with retry logic.

        Args:
            channel: Channel ID or user ID
            text: Message text (fallback text when blocks are given)
            blocks: Optional Block Kit blocks

        Returns:
            API response

        Raises:
            SlackAPIRetryError: If message posting fails after retries
        """
        return await self._retry_api_call(
            self.client.chat_postMessage,
            "chat.postMessage",
            channel=channel,
            text=text,
            blocks=blocks
        )
