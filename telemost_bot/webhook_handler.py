# Telemost Bot
# Copyright (C) 2026 StrateCode
# Licensed under the GNU Affero General Public License v3 (AGPLv3)

"""
Inbound Slack request handling.

Verifies Slack request signatures and turns slash command form posts into
CommandArgs.
"""

import hashlib
import hmac
import time
from typing import Callable, Mapping, Optional

from pydantic import ValidationError

from telemost_bot.models import CommandArgs
from telemost_bot.logging_config import get_logger


logger = get_logger(__name__)


class InvalidCommandPayload(ValueError):
    """Slash command form is missing required fields."""


class SignatureValidator:
    """
    Validates Slack request signatures using the signing secret.

    Implements Slack's v0 scheme: HMAC-SHA256 over "v0:<timestamp>:<body>",
    with requests older than five minutes rejected to prevent replay.
    """

    MAX_REQUEST_AGE_SECONDS = 300

    def __init__(self, signing_secret: str, clock: Optional[Callable[[], float]] = None):
        """
        Initialize signature validator.

        Args:
            signing_secret: Slack app signing secret
            clock: Optional callable returning the current Unix time
        """
        self.signing_secret = signing_secret.encode('utf-8')
        self.clock = clock or time.time
        logger.info("Signature validator initialized")

    def compute_signature(self, timestamp: str, body: bytes) -> str:
        sig_basestring = f"v0:{timestamp}:".encode('utf-8') + body
        return 'v0=' + hmac.new(
            self.signing_secret,
            sig_basestring,
            hashlib.sha256
        ).hexdigest()

    def validate_signature(
        self,
        timestamp: Optional[str],
        body: bytes,
        signature: Optional[str]
    ) -> bool:
        """
        Validate a request signature.

        Args:
            timestamp: X-Slack-Request-Timestamp header value
            body: Raw request body bytes
            signature: X-Slack-Signature header value

        Returns:
            True if signature is valid, False otherwise
        """
        if not timestamp or not signature:
            logger.warning("Request is missing signature headers")
            return False

        if not self._validate_timestamp(timestamp):
            return False

        expected_signature = self.compute_signature(timestamp, body)
        is_valid = hmac.compare_digest(expected_signature, signature)

        if not is_valid:
            logger.warning("Request signature mismatch", extra={
                'provided_signature': signature[:20] + '...',
                'timestamp': timestamp
            })

        return is_valid

    def _validate_timestamp(self, timestamp: str) -> bool:
        try:
            request_time = int(timestamp)
        except (ValueError, TypeError) as e:
            logger.warning("Invalid timestamp format", extra={
                'timestamp': timestamp,
                'error': str(e)
            })
            return False

        age = abs(int(self.clock()) - request_time)
        if age > self.MAX_REQUEST_AGE_SECONDS:
            logger.warning("Request timestamp too old", extra={
                'age_seconds': age,
                'max_age': self.MAX_REQUEST_AGE_SECONDS
            })
            return False

        return True


def parse_slash_command(form: Mapping[str, str]) -> CommandArgs:
    """
    Build CommandArgs from a Slack slash command form.

    Raises:
        InvalidCommandPayload: If user_id or channel_id is missing
    """
    try:
        return CommandArgs(
            command=form.get('command') or "/telemost",
            text=form.get('text', ""),
            user_id=form.get('user_id', ""),
            channel_id=form.get('channel_id', ""),
            team_id=form.get('team_id'),
            response_url=form.get('response_url')
        )
    except ValidationError as e:
        raise InvalidCommandPayload("Invalid slash command payload") from e
