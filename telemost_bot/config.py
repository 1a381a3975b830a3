# Telemost Bot
# Copyright (C) 2026 StrateCode
# Licensed under the GNU Affero General Public License v3 (AGPLv3)

"""
Configuration management for the Telemost bot.

Two layers live here:

- ServiceConfig: process settings (Slack credentials, storage, bind
  address, logging) read once at startup.
- PluginConfiguration: the Telemost settings that may change while the
  process runs. Instances are frozen; a change always produces a new
  snapshot which ConfigurationStore swaps in under a read/write lock, so
  concurrent readers never see a half-updated configuration.
"""

import os
import threading
from contextlib import contextmanager
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Callable, Iterator, Optional


DEFAULT_ASSETS_DIR = str(Path(__file__).parent / "assets")

WAITING_ROOM_LEVELS = {"PUBLIC", "ORGANIZATION", "ADMINS"}
LIVE_STREAM_ACCESS_LEVELS = {"PUBLIC", "ORGANIZATION"}

_TRUE_VALUES = {"1", "true", "yes", "on"}


class ConfigurationError(ValueError):
    """Raised when the Telemost configuration is incomplete or invalid."""


@dataclass
class ServiceConfig:
    """Process-level configuration for the bot service."""

    # Slack API credentials (required)
    slack_bot_token: str
    slack_signing_secret: str

    # Key-value storage (optional, in-memory when empty)
    redis_url: str = ""
    kv_namespace: str = "telemost:"

    # Token encryption (required with Redis)
    encryption_key: str = ""

    # HTTP server
    host: str = "0.0.0.0"
    port: int = 8080
    identity_header: str = "X-User-Id"
    assets_dir: str = DEFAULT_ASSETS_DIR

    # Logging configuration (optional)
    log_level: str = "INFO"
    log_format: str = "json"

    # Retry configuration for Slack notifications (optional)
    max_retries: int = 3
    retry_backoff_base: float = 2.0

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        """Load configuration from environment variables."""
        return cls(
            slack_bot_token=os.environ["SLACK_BOT_TOKEN"],
            slack_signing_secret=os.environ["SLACK_SIGNING_SECRET"],
            redis_url=os.environ.get("REDIS_URL", ""),
            kv_namespace=os.environ.get("KV_NAMESPACE", "telemost:"),
            encryption_key=os.environ.get("ENCRYPTION_KEY", ""),
            host=os.environ.get("HOST", "0.0.0.0"),
            port=int(os.environ.get("PORT", "8080")),
            identity_header=os.environ.get("IDENTITY_HEADER", "X-User-Id"),
            assets_dir=os.environ.get("ASSETS_DIR", DEFAULT_ASSETS_DIR),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            log_format=os.environ.get("LOG_FORMAT", "json"),
            max_retries=int(os.environ.get("MAX_RETRIES", "3")),
            retry_backoff_base=float(os.environ.get("RETRY_BACKOFF_BASE", "2.0")),
        )

    def validate(self) -> None:
        """Validate configuration values."""
        if not self.slack_bot_token.startswith("xoxb-"):
            raise ValueError("SLACK_BOT_TOKEN must start with 'xoxb-'")

        if not self.slack_signing_secret:
            raise ValueError("SLACK_SIGNING_SECRET must not be empty")

        if self.redis_url and not self.encryption_key:
            raise ValueError("ENCRYPTION_KEY is required when REDIS_URL is set")

        if self.encryption_key and len(self.encryption_key) < 32:
            raise ValueError("ENCRYPTION_KEY must be at least 32 characters")

        if self.port < 1 or self.port > 65535:
            raise ValueError("PORT must be between 1 and 65535")

        if not self.identity_header:
            raise ValueError("IDENTITY_HEADER must not be empty")

        if self.max_retries < 0 or self.max_retries > 10:
            raise ValueError("MAX_RETRIES must be between 0 and 10")


@dataclass(frozen=True)
class PluginConfiguration:
    """
    Telemost settings as an immutable snapshot.

    Use clone() to derive a modified copy; never mutate a published
    instance.
    """

    oauth_token: str = ""
    client_id: str = ""
    site_url: str = ""
    default_waiting_room_level: str = ""
    enable_live_stream: bool = False
    default_live_stream_access_level: str = ""

    @classmethod
    def from_env(cls) -> "PluginConfiguration":
        """Load the Telemost settings from environment variables."""
        return cls(
            oauth_token=os.environ.get("TELEMOST_OAUTH_TOKEN", ""),
            client_id=os.environ.get("YANDEX_CLIENT_ID", ""),
            site_url=os.environ.get("SITE_URL", "").rstrip("/"),
            default_waiting_room_level=os.environ.get("DEFAULT_WAITING_ROOM_LEVEL", ""),
            enable_live_stream=os.environ.get("ENABLE_LIVE_STREAM", "false").lower() in _TRUE_VALUES,
            default_live_stream_access_level=os.environ.get("DEFAULT_LIVE_STREAM_ACCESS_LEVEL", ""),
        )

    def clone(self, **changes) -> "PluginConfiguration":
        """Return a new snapshot with the given fields replaced."""
        return replace(self, **changes)

    def validate(self) -> None:
        """
        Check that all required fields are set.

        Raises:
            ConfigurationError: If a required field is missing or a level
                is not one Telemost accepts
        """
        if not self.client_id:
            raise ConfigurationError("must have a Yandex Client ID")
        if not self.site_url:
            raise ConfigurationError("must have a Site URL")
        if self.default_waiting_room_level and self.default_waiting_room_level not in WAITING_ROOM_LEVELS:
            raise ConfigurationError(
                f"unknown waiting room level: {self.default_waiting_room_level}"
            )
        if (self.default_live_stream_access_level
                and self.default_live_stream_access_level not in LIVE_STREAM_ACCESS_LEVELS):
            raise ConfigurationError(
                f"unknown live stream access level: {self.default_live_stream_access_level}"
            )

    def is_valid(self) -> bool:
        try:
            self.validate()
        except ConfigurationError:
            return False
        return True

    def describe(self) -> dict:
        """Field values safe to log (the OAuth token is reduced to a flag)."""
        described = {f.name: getattr(self, f.name) for f in fields(self)}
        described["oauth_token"] = bool(self.oauth_token)
        return described


class ReadWriteLock:
    """Many concurrent readers or a single writer."""

    def __init__(self):
        self._condition = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._condition:
            while self._writing:
                self._condition.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._condition:
                self._readers -= 1
                if self._readers == 0:
                    self._condition.notify_all()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._condition:
            while self._writing or self._readers:
                self._condition.wait()
            self._writing = True
        try:
            yield
        finally:
            with self._condition:
                self._writing = False
                self._condition.notify_all()


class ConfigurationStore:
    """
    Holds the active PluginConfiguration.

    get() hands out the current snapshot under the shared lock; set()
    publishes a replacement under the exclusive lock. The snapshot a
    caller received stays valid even if a newer one is published later.
    """

    def __init__(self, configuration: Optional[PluginConfiguration] = None):
        self._lock = ReadWriteLock()
        self._configuration = configuration

    def get(self) -> PluginConfiguration:
        with self._lock.read_locked():
            if self._configuration is None:
                return PluginConfiguration()
            return self._configuration

    def set(self, configuration: PluginConfiguration) -> None:
        """
        Replace the active configuration.

        Raises:
            ValueError: If called with the instance that is already active,
                which means someone modified it instead of cloning it
        """
        with self._lock.write_locked():
            if configuration is not None and configuration is self._configuration:
                raise ValueError("set() called with the existing configuration")
            self._configuration = configuration

    def on_configuration_change(
        self,
        loader: Callable[[], PluginConfiguration] = PluginConfiguration.from_env
    ) -> PluginConfiguration:
        """Load a fresh snapshot and make it the active configuration."""
        configuration = loader()
        self.set(configuration)
        return configuration
