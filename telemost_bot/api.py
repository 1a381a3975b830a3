# Telemost Bot
# Copyright (C) 2026 StrateCode
# Licensed under the GNU Affero General Public License v3 (AGPLv3)

"""
HTTP server for the Telemost bot.

Serves the OAuth flow, meeting creation, static assets and the Slack slash
command webhook with aiohttp.
"""

from typing import Optional

from aiohttp import web
from pydantic import ValidationError

from telemost_bot.assets import AssetError, AssetStore, content_type, CACHE_CONTROL
from telemost_bot.command_handler import CommandHandler
from telemost_bot.config import ConfigurationStore
from telemost_bot.error_handler import ErrorHandler, ErrorKind
from telemost_bot.logging_config import get_logger
from telemost_bot.models import CreateMeetingRequest, OAuthCompleteRequest
from telemost_bot.oauth_manager import (
    CALLBACK_PATH,
    COMPLETE_PATH,
    InvalidTokenError,
    OAuthError,
    OAuthSessionManager,
    TokenExpiredError,
    TokenNotFoundError,
)
from telemost_bot.telemost_client import TelemostAPIError
from telemost_bot.webhook_handler import (
    InvalidCommandPayload,
    SignatureValidator,
    parse_slash_command,
)


logger = get_logger(__name__)


UNCHECKED_CONFIG_PATHS = {'/health', '/slack/commands'}


class TelemostAPI:
    """
    HTTP API server for the Telemost bot.

    Provides endpoints:
    - GET  /oauth/start - Redirect the caller to Yandex OAuth
    - GET  /oauth/callback - Token extraction page
    - POST /oauth/complete - Store the token posted by the callback page
    - POST /api/v1/meetings - Create a meeting for the caller
    - GET  /assets/{name} - Static assets
    - POST /slack/commands - Slack slash command webhook
    - GET  /health - Liveness check

    Every route except /health and /slack/commands answers 403 while the
    plugin configuration is invalid.
    """

    def __init__(
        self,
        oauth_manager: OAuthSessionManager,
        command_handler: CommandHandler,
        config_store: ConfigurationStore,
        asset_store: AssetStore,
        signature_validator: Optional[SignatureValidator] = None,
        identity_header: str = "X-User-Id",
        client_factory=None,
        error_handler: Optional[ErrorHandler] = None
    ):
        """
        Initialize the API.

        Args:
            oauth_manager: OAuth session manager
            command_handler: Slash command handler
            config_store: Current plugin configuration
            asset_store: Static asset reader
            signature_validator: Slack signature check (disabled when None)
            identity_header: Header carrying the authenticated user ID
            client_factory: Builds a TelemostClient from a token (defaults to
                the command handler's factory)
            error_handler: Error to response mapper
        """
        self.oauth_manager = oauth_manager
        self.command_handler = command_handler
        self.config_store = config_store
        self.asset_store = asset_store
        self.signature_validator = signature_validator
        self.identity_header = identity_header
        self.client_factory = client_factory or command_handler.client_factory
        self.error_handler = error_handler or ErrorHandler()

        self.app = web.Application(middlewares=[self.configuration_middleware])
        self._setup_routes()

        logger.info("Telemost API initialized", extra={
            'identity_header': identity_header,
            'signature_verification': signature_validator is not None
        })

    def _setup_routes(self) -> None:
        """Configure API routes."""
        self.app.router.add_get('/oauth/start', self.handle_oauth_start)
        self.app.router.add_get(CALLBACK_PATH, self.handle_oauth_callback)
        self.app.router.add_post(COMPLETE_PATH, self.handle_oauth_complete)
        self.app.router.add_post('/api/v1/meetings', self.handle_create_meeting)
        # Catch-all so names with separators reach validation and get a 403
        self.app.router.add_get('/assets/{name:.*}', self.handle_asset)
        self.app.router.add_post('/slack/commands', self.handle_slash_command)
        self.app.router.add_get('/health', self.health_check)

    @web.middleware
    async def configuration_middleware(self, request: web.Request, handler) -> web.StreamResponse:
        if request.path not in UNCHECKED_CONFIG_PATHS and not self.config_store.get().is_valid():
            logger.warning("Request rejected: plugin not configured", extra={'path': request.path})
            return self.error_handler.response(ErrorKind.NOT_CONFIGURED)
        return await handler(request)

    def _user_id(self, request: web.Request) -> str:
        return request.headers.get(self.identity_header, "").strip()

    async def handle_oauth_start(self, request: web.Request) -> web.StreamResponse:
        """
        Begin OAuth for the caller.

        Endpoint: GET /oauth/start?channel_id=<id>
        """
        user_id = self._user_id(request)
        if not user_id:
            return self.error_handler.response(ErrorKind.UNAUTHORIZED)

        channel_id = request.query.get('channel_id', "")
        if not channel_id:
            return self.error_handler.response(ErrorKind.BAD_REQUEST, "channel_id is required")

        try:
            url = await self.oauth_manager.start_authorization(user_id, channel_id)
        except OAuthError as e:
            return self.error_handler.handle_exception(e, {'operation': 'oauth_start', 'user_id': user_id})

        raise web.HTTPTemporaryRedirect(location=url)

    async def handle_oauth_callback(self, request: web.Request) -> web.Response:
        """Endpoint: GET /oauth/callback"""
        html = self.oauth_manager.render_callback_page()
        return web.Response(text=html, content_type='text/html')

    async def handle_oauth_complete(self, request: web.Request) -> web.Response:
        """
        Store the token posted by the callback page.

        Endpoint: POST /oauth/complete
        """
        try:
            body = OAuthCompleteRequest.model_validate_json(await request.read())
        except ValidationError as e:
            logger.warning("Invalid OAuth completion request", extra={'error_type': type(e).__name__})
            return self.error_handler.response(ErrorKind.BAD_REQUEST)

        try:
            await self.oauth_manager.complete_authorization(body.access_token, body.state)
        except OAuthError as e:
            return self.error_handler.handle_exception(e, {'operation': 'oauth_complete'})

        return web.json_response({
            'status': 'success',
            'message': 'OAuth setup completed successfully'
        })

    async def handle_create_meeting(self, request: web.Request) -> web.Response:
        """
        Create a meeting for the caller.

        Endpoint: POST /api/v1/meetings

        The caller's own token is used when present, otherwise the
        configured plugin-wide token.
        """
        user_id = self._user_id(request)
        if not user_id:
            return self.error_handler.response(ErrorKind.UNAUTHORIZED)

        try:
            body = CreateMeetingRequest.model_validate_json(await request.read())
        except ValidationError as e:
            logger.warning("Invalid meeting request", extra={'user_id': user_id, 'error_count': e.error_count()})
            return self.error_handler.response(ErrorKind.BAD_REQUEST)

        config = self.config_store.get()

        try:
            token = (await self.oauth_manager.get_valid_token(user_id)).access_token
        except (TokenNotFoundError, TokenExpiredError, InvalidTokenError):
            token = config.oauth_token
        except OAuthError as e:
            return self.error_handler.handle_exception(e, {'operation': 'create_meeting', 'user_id': user_id})

        if not token:
            return self.error_handler.response(ErrorKind.UNAUTHORIZED, "Telemost is not connected")

        client = self.client_factory(token)
        try:
            meeting = await client.create_meeting_with_defaults(
                config,
                title=body.title,
                description=body.description,
                cohosts=body.cohosts
            )
        except TelemostAPIError as e:
            return self.error_handler.handle_exception(e, {'operation': 'create_meeting', 'user_id': user_id})

        return web.json_response(meeting.model_dump(mode='json', exclude_none=True))

    async def handle_asset(self, request: web.Request) -> web.Response:
        """Endpoint: GET /assets/{name}"""
        name = request.match_info.get('name', "")

        try:
            data = self.asset_store.read(name)
        except AssetError as e:
            return self.error_handler.handle_exception(e, {'operation': 'asset', 'asset': name})

        return web.Response(
            body=data,
            content_type=content_type(name),
            headers={'Cache-Control': CACHE_CONTROL}
        )

    async def handle_slash_command(self, request: web.Request) -> web.Response:
        """
        Handle the Slack slash command webhook.

        Endpoint: POST /slack/commands
        """
        body = await request.read()

        if self.signature_validator is not None:
            is_valid = self.signature_validator.validate_signature(
                timestamp=request.headers.get('X-Slack-Request-Timestamp'),
                body=body,
                signature=request.headers.get('X-Slack-Signature')
            )
            if not is_valid:
                return self.error_handler.response(ErrorKind.UNAUTHORIZED, "Invalid signature")

        form = await request.post()
        try:
            cmd = parse_slash_command(form)
        except InvalidCommandPayload:
            return self.error_handler.response(ErrorKind.BAD_REQUEST)

        response = await self.command_handler.handle_command(cmd)
        return web.json_response(response.to_slack())

    async def health_check(self, request: web.Request) -> web.Response:
        """Endpoint: GET /health"""
        return web.json_response({
            'status': 'healthy',
            'service': 'telemost-bot',
            'configured': self.config_store.get().is_valid()
        })
