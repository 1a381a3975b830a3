# Telemost Bot
# Copyright (C) 2026 StrateCode
# Licensed under the GNU Affero General Public License v3 (AGPLv3)

"""
OAuth session manager for Telemost user authorization.

Yandex OAuth is used with the implicit grant: the provider redirects back
with the access token in the URL fragment, which browsers never send to a
server. The flow therefore takes one extra hop:

1. start_authorization() stores a random state and returns the provider URL
2. the provider redirects to /oauth/callback, which serves
   render_callback_page()
3. the page script reads the fragment and POSTs it to /oauth/complete
4. complete_authorization() checks the state and stores the user token

Tokens are not refreshed. They are kept for a fixed lifetime and removed
lazily the first time they are read after expiry. When an encryption key is
configured the access token is stored AES-256 encrypted.
"""

import asyncio
import base64
import json
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional
from urllib.parse import urlencode

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from pydantic import ValidationError

from telemost_bot.config import ConfigurationStore
from telemost_bot.kv_store import KeyNotFoundError, KVStore, KVStoreError
from telemost_bot.models import OAuthState, UserToken
from telemost_bot.logging_config import get_logger, log_error_with_context


logger = get_logger(__name__)


OAUTH_STATE_KEY_PREFIX = "oauth_state_"
USER_TOKEN_KEY_PREFIX = "user_token_"

AUTHORIZE_URL = "https://oauth.yandex.ru/authorize"
CALLBACK_PATH = "/oauth/callback"
COMPLETE_PATH = "/oauth/complete"

STATE_TTL = timedelta(minutes=10)
# Yandex does not hand back a usable lifetime in the fragment; fixed policy.
TOKEN_LIFETIME = timedelta(hours=24)

CONNECTED_MESSAGE = (
    ":white_check_mark: *Connected to Telemost*\n\n"
    "Your Telemost authentication has been connected. "
    "Use `/telemost start` to create a meeting."
)


class OAuthError(Exception):
    """Base class for OAuth session errors."""

    error_code = "oauth_error"

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code


class InvalidStateError(OAuthError):
    """State token was never issued, already used, or unreadable."""
    error_code = "invalid_state"


class StateExpiredError(OAuthError):
    """State token is older than STATE_TTL."""
    error_code = "state_expired"


class TokenNotFoundError(OAuthError):
    """User has no stored token."""
    error_code = "token_not_found"


class TokenExpiredError(OAuthError):
    """Stored token has passed its expiry; it has been deleted."""
    error_code = "token_expired"


class InvalidTokenError(OAuthError):
    """Stored token could not be decoded or has no access token."""
    error_code = "invalid_token"


class OAuthInternalError(OAuthError):
    """Randomness or storage failure."""
    error_code = "internal_error"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _state_hint(state: str) -> str:
    return state[:8] + "..."


class TokenEncryption:
    """
    AES-256-CBC encryption for stored access tokens.

    Each value gets a fresh random IV, prepended to the ciphertext and
    base64 encoded together with it.
    """

    def __init__(self, encryption_key: str):
        """
        Args:
            encryption_key: Secret of at least 32 characters; the first 32
                bytes are the AES key

        Raises:
            ValueError: If the key is too short
        """
        if len(encryption_key) < 32:
            raise ValueError("Encryption key must be at least 32 characters")

        self.key = encryption_key[:32].encode('utf-8')

    def encrypt(self, plaintext: str) -> str:
        iv = secrets.token_bytes(16)
        encryptor = Cipher(algorithms.AES(self.key), modes.CBC(iv)).encryptor()

        padder = padding.PKCS7(128).padder()
        padded_data = padder.update(plaintext.encode('utf-8')) + padder.finalize()

        ciphertext = encryptor.update(padded_data) + encryptor.finalize()
        return base64.b64encode(iv + ciphertext).decode('ascii')

    def decrypt(self, encrypted: str) -> str:
        """
        Raises:
            ValueError: If the value is not a token encrypted with this key
        """
        try:
            encrypted_bytes = base64.b64decode(encrypted, validate=True)
            iv, ciphertext = encrypted_bytes[:16], encrypted_bytes[16:]

            decryptor = Cipher(algorithms.AES(self.key), modes.CBC(iv)).decryptor()
            padded_plaintext = decryptor.update(ciphertext) + decryptor.finalize()

            unpadder = padding.PKCS7(128).unpadder()
            plaintext = unpadder.update(padded_plaintext) + unpadder.finalize()

            return plaintext.decode('utf-8')
        except ValueError as e:
            logger.error("Token decryption failed", extra={'error_type': type(e).__name__})
            raise ValueError("Failed to decrypt token") from e


class OAuthSessionManager:
    """
    Owns the OAuth state and user token lifecycles.

    Handles:
    - authorization URL generation with a stored, expiring state
    - the fragment-extraction callback page
    - completion: state validation and token storage
    - token lookup with lazy expiry, and disconnect
    """

    def __init__(
        self,
        kv_store: KVStore,
        config_store: ConfigurationStore,
        notifier: Optional[Any] = None,
        clock: Optional[Callable[[], datetime]] = None,
        encryption: Optional[TokenEncryption] = None
    ):
        """
        Initialize OAuth session manager.

        Args:
            kv_store: Store for OAuth state and user tokens
            config_store: Source of the client ID and site URL
            notifier: Optional object with an async post_message(channel, text)
                used for the "connected" notice
            clock: Optional callable returning the current aware datetime
            encryption: Optional cipher for stored access tokens
        """
        self.kv_store = kv_store
        self.config_store = config_store
        self.notifier = notifier
        self.clock = clock or _utcnow
        self.encryption = encryption
        self._pending_notices: set = set()

        logger.info("OAuth session manager initialized", extra={
            'has_notifier': notifier is not None,
            'token_encryption': encryption is not None
        })

    async def start_authorization(self, user_id: str, channel_id: str) -> str:
        """
        Begin authorization for a user.

        Args:
            user_id: User being authorized
            channel_id: Channel that receives the connection notice

        Returns:
            Yandex authorization URL carrying the new state

        Raises:
            OAuthInternalError: If the state cannot be generated or stored
        """
        try:
            state = base64.urlsafe_b64encode(secrets.token_bytes(32)).decode('ascii')
        except Exception as e:
            log_error_with_context(
                logger, "Failed to generate OAuth state", e,
                operation="start_authorization", user_id=user_id
            )
            raise OAuthInternalError("Failed to generate OAuth state") from e

        oauth_state = OAuthState(
            user_id=user_id,
            channel_id=channel_id,
            expires_at=self.clock() + STATE_TTL
        )

        key = OAUTH_STATE_KEY_PREFIX + state
        try:
            await self.kv_store.set(key, oauth_state.model_dump_json().encode('utf-8'))
        except KVStoreError as e:
            log_error_with_context(
                logger, "Failed to store OAuth state", e,
                operation="start_authorization", user_id=user_id
            )
            raise OAuthInternalError("Failed to store OAuth state") from e

        config = self.config_store.get()
        params = {
            'response_type': 'token',
            'client_id': config.client_id,
            'redirect_uri': config.site_url.rstrip('/') + CALLBACK_PATH,
            'state': state,
        }

        logger.info("OAuth authorization started", extra={
            'user_id': user_id,
            'channel_id': channel_id,
            'state_hint': _state_hint(state)
        })

        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    def render_callback_page(self, site_url: Optional[str] = None) -> str:
        """
        Build the page served at the OAuth redirect URI.

        The page runs in the user's browser, pulls access_token and state
        out of the URL fragment and POSTs them to the completion endpoint.

        Args:
            site_url: Public base URL of the service (defaults to the
                configured site URL)

        Returns:
            HTML document
        """
        if site_url is None:
            site_url = self.config_store.get().site_url
        complete_url = site_url.rstrip('/') + COMPLETE_PATH

        # JSON string literal, with "</" broken up so it cannot end the script
        complete_url_literal = json.dumps(complete_url).replace('</', '<\\/')

        return _CALLBACK_PAGE_TEMPLATE.replace('__COMPLETE_URL__', complete_url_literal)

    async def complete_authorization(self, access_token: str, state: str) -> UserToken:
        """
        Finish authorization by exchanging a valid state for a stored token.

        Args:
            access_token: Token taken from the callback fragment
            state: State taken from the callback fragment

        Returns:
            The stored UserToken

        Raises:
            InvalidStateError: If the state is unknown or unreadable
            StateExpiredError: If the state is past its expiry
            OAuthInternalError: If the token cannot be stored
        """
        if not state:
            raise InvalidStateError("Invalid or expired OAuth state")

        state_key = OAUTH_STATE_KEY_PREFIX + state
        try:
            raw_state = await self.kv_store.get(state_key)
        except KeyNotFoundError:
            logger.warning("Unknown OAuth state", extra={'state_hint': _state_hint(state)})
            raise InvalidStateError("Invalid or expired OAuth state") from None
        except KVStoreError as e:
            log_error_with_context(
                logger, "Failed to retrieve OAuth state", e,
                operation="complete_authorization", state_hint=_state_hint(state)
            )
            raise InvalidStateError("Invalid or expired OAuth state") from e

        try:
            oauth_state = OAuthState.model_validate_json(raw_state)
        except ValidationError as e:
            log_error_with_context(
                logger, "Failed to decode OAuth state", e,
                operation="complete_authorization", state_hint=_state_hint(state)
            )
            raise InvalidStateError("Invalid OAuth state") from e

        now = self.clock()
        if oauth_state.is_expired(now):
            logger.warning("OAuth state expired", extra={'user_id': oauth_state.user_id})
            raise StateExpiredError("OAuth state expired")

        user_token = UserToken(
            access_token=access_token,
            expires_at=now + TOKEN_LIFETIME,
            user_id=oauth_state.user_id
        )

        stored_token = user_token
        if self.encryption is not None:
            stored_token = user_token.model_copy(update={
                'access_token': self.encryption.encrypt(access_token)
            })

        token_key = USER_TOKEN_KEY_PREFIX + oauth_state.user_id
        try:
            await self.kv_store.set(token_key, stored_token.model_dump_json().encode('utf-8'))
        except KVStoreError as e:
            log_error_with_context(
                logger, "Failed to store user token", e,
                operation="complete_authorization", user_id=oauth_state.user_id
            )
            raise OAuthInternalError("Failed to store user token") from e

        try:
            await self.kv_store.delete(state_key)
        except KVStoreError as e:
            logger.warning("Failed to delete OAuth state", extra={
                'user_id': oauth_state.user_id,
                'error': str(e)
            })

        if self.notifier is not None:
            # Posted in the background so a slow Slack API cannot hold the response
            task = asyncio.create_task(self._notify_connected(oauth_state))
            self._pending_notices.add(task)
            task.add_done_callback(self._pending_notices.discard)

        logger.info("OAuth authorization completed", extra={
            'user_id': oauth_state.user_id,
            'expires_at': user_token.expires_at.isoformat()
        })

        return user_token

    async def wait_for_notices(self, timeout: Optional[float] = None) -> None:
        """Wait up to timeout seconds for connection notices still in flight."""
        if self._pending_notices:
            await asyncio.wait(set(self._pending_notices), timeout=timeout)

    async def _notify_connected(self, oauth_state: OAuthState) -> None:
        try:
            await self.notifier.post_message(
                channel=oauth_state.channel_id,
                text=CONNECTED_MESSAGE
            )
        except Exception as e:
            logger.error("Failed to post connection notice", extra={
                'user_id': oauth_state.user_id,
                'channel_id': oauth_state.channel_id,
                'error': str(e)
            })

    async def get_valid_token(self, user_id: str) -> UserToken:
        """
        Fetch a user's token, deleting it if it has expired.

        Raises:
            TokenNotFoundError: If the user has no token
            TokenExpiredError: If the token had expired (it is now deleted)
            InvalidTokenError: If the stored token is unreadable
            OAuthInternalError: If the store fails
        """
        key = USER_TOKEN_KEY_PREFIX + user_id
        try:
            raw_token = await self.kv_store.get(key)
        except KeyNotFoundError:
            raise TokenNotFoundError("Telemost token not found") from None
        except KVStoreError as e:
            log_error_with_context(
                logger, "Failed to retrieve user token", e,
                operation="get_valid_token", user_id=user_id
            )
            raise OAuthInternalError("Failed to retrieve user token") from e

        try:
            user_token = UserToken.model_validate_json(raw_token)
        except ValidationError as e:
            log_error_with_context(
                logger, "Failed to decode user token", e,
                operation="get_valid_token", user_id=user_id
            )
            raise InvalidTokenError("Stored Telemost token is invalid") from e

        if self.encryption is not None and user_token.access_token:
            try:
                user_token = user_token.model_copy(update={
                    'access_token': self.encryption.decrypt(user_token.access_token)
                })
            except ValueError as e:
                raise InvalidTokenError("Stored Telemost token cannot be decrypted") from e

        if user_token.is_expired(self.clock()):
            try:
                await self.kv_store.delete(key)
            except KVStoreError as e:
                logger.warning("Failed to delete expired token", extra={
                    'user_id': user_id,
                    'error': str(e)
                })
            logger.info("User token expired", extra={'user_id': user_id})
            raise TokenExpiredError("Telemost token expired")

        if not user_token.access_token:
            raise InvalidTokenError("Stored Telemost token is empty")

        return user_token

    async def is_authenticated(self, user_id: str) -> bool:
        """Whether the user currently holds a usable token."""
        try:
            await self.get_valid_token(user_id)
        except OAuthError:
            return False
        return True

    async def disconnect(self, user_id: str) -> None:
        """
        Remove a user's token.

        Raises:
            TokenNotFoundError: If the user has no token
            OAuthInternalError: If the store fails
        """
        key = USER_TOKEN_KEY_PREFIX + user_id
        try:
            await self.kv_store.delete(key)
        except KeyNotFoundError:
            raise TokenNotFoundError("Telemost token not found") from None
        except KVStoreError as e:
            log_error_with_context(
                logger, "Failed to delete user token", e,
                operation="disconnect", user_id=user_id
            )
            raise OAuthInternalError("Failed to delete user token") from e

        logger.info("User disconnected from Telemost", extra={'user_id': user_id})


_CALLBACK_PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>Telemost OAuth</title>
</head>
<body>
    <h1 id="title">Connecting to Telemost...</h1>
    <p id="details"></p>
    <script>
        const completeUrl = __COMPLETE_URL__;

        function show(title, details) {
            document.getElementById('title').textContent = title;
            document.getElementById('details').textContent = details || '';
        }

        const fragment = window.location.hash.substring(1);
        const params = new URLSearchParams(fragment);

        const accessToken = params.get('access_token');
        const error = params.get('error');
        const state = params.get('state');

        // Drop the token from the address bar and history
        history.replaceState(null, '', window.location.pathname);

        if (error) {
            show('OAuth Error', 'Error: ' + error + '. ' + (params.get('error_description') || ''));
        } else if (accessToken && state) {
            fetch(completeUrl, {
                method: 'POST',
                headers: {
                    'Content-Type': 'application/json',
                },
                body: JSON.stringify({
                    access_token: accessToken,
                    state: state
                })
            }).then(response => {
                if (response.ok) {
                    show('Success!', 'Telemost has been connected. You can close this window and return to Slack.');
                } else {
                    show('Error', 'Failed to complete OAuth setup.');
                }
            }).catch(err => {
                show('Error', 'Failed to complete OAuth setup: ' + err.message);
            });
        } else {
            show('Error', 'Missing access token or state.');
        }
    </script>
</body>
</html>
"""
