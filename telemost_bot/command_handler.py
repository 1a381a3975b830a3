# Telemost Bot
# Copyright (C) 2026 StrateCode
# Licensed under the GNU Affero General Public License v3 (AGPLv3)

"""
Command handler for the /telemost slash command.

Parses the command text and routes it to the start, connect, disconnect
and help handlers. Every branch returns a CommandResponse; failures are
logged and rendered as ephemeral messages, never raised to the caller.
"""

from typing import Callable, List, Optional

from telemost_bot.config import ConfigurationStore
from telemost_bot.logging_config import get_logger, log_error_with_context
from telemost_bot.message_formatter import DEFAULT_MEETING_TITLE, MessageFormatter
from telemost_bot.models import CommandArgs, CommandResponse
from telemost_bot.oauth_manager import (
    OAuthError,
    OAuthSessionManager,
    TokenExpiredError,
    TokenNotFoundError,
)
from telemost_bot.telemost_client import TelemostAPIError, TelemostClient


logger = get_logger(__name__)


class CommandHandler:
    """
    Handles /telemost subcommands.

    The subcommand is the first whitespace-separated token of the command
    text. A leading copy of the trigger word ("telemost start") is
    tolerated so the handler accepts the full command line as well.
    """

    def __init__(
        self,
        oauth_manager: OAuthSessionManager,
        config_store: ConfigurationStore,
        message_formatter: Optional[MessageFormatter] = None,
        client_factory: Callable[[str], TelemostClient] = TelemostClient
    ):
        """
        Initialize command handler.

        Args:
            oauth_manager: Session manager owning user tokens
            config_store: Source of the current plugin configuration
            message_formatter: Formatter for responses
            client_factory: Builds a TelemostClient from an OAuth token
        """
        self.oauth_manager = oauth_manager
        self.config_store = config_store
        self.formatter = message_formatter or MessageFormatter()
        self.client_factory = client_factory

    @staticmethod
    def _split(cmd: CommandArgs) -> List[str]:
        tokens = cmd.fields()
        trigger = cmd.command.lstrip("/").lower()
        if tokens and tokens[0].lstrip("/").lower() == trigger:
            tokens = tokens[1:]
        return tokens

    async def handle_command(self, cmd: CommandArgs) -> CommandResponse:
        """
        Route a command to its handler.

        Args:
            cmd: Parsed slash command

        Returns:
            The response to show; never raises
        """
        logger.info(
            "Processing slash command",
            extra={
                "command": cmd.command,
                "text": cmd.text,
                "user_id": cmd.user_id,
                "channel_id": cmd.channel_id
            }
        )

        try:
            tokens = self._split(cmd)
            if not tokens:
                return await self.handle_help_command(cmd)

            subcommand = tokens[0]
            args = tokens[1:]

            handlers = {
                "start": self.handle_start_command,
                "connect": self.handle_connect_command,
                "disconnect": self.handle_disconnect_command,
            }
            handler = handlers.get(subcommand.lower())

            if handler is not None:
                return await handler(cmd, args)
            if subcommand.lower() == "help":
                return await self.handle_help_command(cmd)

            return self.formatter.format_unknown_command(subcommand)

        except Exception as e:
            log_error_with_context(
                logger, "Error processing command", e,
                command=cmd.command,
                text=cmd.text,
                user_id=cmd.user_id
            )
            return self.formatter.format_error("unknown")

    async def handle_start_command(self, cmd: CommandArgs, args: List[str]) -> CommandResponse:
        """
        Handle /telemost start [title].

        Requires a valid user token; the meeting is created with the
        configured defaults and announced in the channel.
        """
        try:
            token = await self.oauth_manager.get_valid_token(cmd.user_id)
        except (TokenNotFoundError, TokenExpiredError):
            logger.info("Start requested without a valid token", extra={"user_id": cmd.user_id})
            return self.formatter.format_not_authenticated()
        except OAuthError as e:
            logger.warning("Token lookup failed", extra={
                "user_id": cmd.user_id,
                "error_code": e.error_code
            })
            return self.formatter.format_auth_error()

        config = self.config_store.get()
        if not config.is_valid():
            return self.formatter.format_not_configured()

        title = " ".join(args) or DEFAULT_MEETING_TITLE
        client = self.client_factory(token.access_token)

        try:
            meeting = await client.create_meeting_with_defaults(config, title=title)
        except TelemostAPIError as e:
            log_error_with_context(
                logger, "Failed to create Telemost meeting", e,
                operation="start", user_id=cmd.user_id, status_code=e.status_code
            )
            return self.formatter.format_meeting_failed(e.message)

        logger.info("Meeting created from command", extra={
            "user_id": cmd.user_id,
            "channel_id": cmd.channel_id,
            "meeting_id": meeting.id
        })

        return self.formatter.format_meeting_created(meeting, title)

    async def handle_connect_command(self, cmd: CommandArgs, args: List[str]) -> CommandResponse:
        """Handle /telemost connect."""
        if await self.oauth_manager.is_authenticated(cmd.user_id):
            return self.formatter.format_already_connected()

        if not self.config_store.get().is_valid():
            return self.formatter.format_not_configured()

        try:
            url = await self.oauth_manager.start_authorization(cmd.user_id, cmd.channel_id)
        except OAuthError:
            return self.formatter.format_auth_error()

        return self.formatter.format_connect_link(url)

    async def handle_disconnect_command(self, cmd: CommandArgs, args: List[str]) -> CommandResponse:
        """Handle /telemost disconnect."""
        try:
            await self.oauth_manager.disconnect(cmd.user_id)
        except TokenNotFoundError:
            return self.formatter.format_not_connected()
        except OAuthError:
            return self.formatter.format_disconnect_failed()

        return self.formatter.format_disconnected()

    async def handle_help_command(self, cmd: CommandArgs) -> CommandResponse:
        return self.formatter.format_help()
