# Telemost Bot
# Copyright (C) 2026 StrateCode
# Licensed under the GNU Affero General Public License v3 (AGPLv3)

"""
Main entry point for the Telemost bot service.

Loads configuration, wires the components together and starts the aiohttp
server. Sending SIGHUP reloads the Telemost settings from the environment
(after re-reading .env).
"""

import asyncio
import os
import signal

from aiohttp import web
from dotenv import load_dotenv

from telemost_bot.api import TelemostAPI
from telemost_bot.assets import AssetStore
from telemost_bot.command_handler import CommandHandler
from telemost_bot.config import ConfigurationStore, PluginConfiguration, ServiceConfig
from telemost_bot.kv_store import InMemoryKVStore, KVStore, RedisKVStore
from telemost_bot.logging_config import setup_logging, get_logger
from telemost_bot.message_formatter import MessageFormatter
from telemost_bot.oauth_manager import OAuthSessionManager, TokenEncryption
from telemost_bot.slack_api_client import SlackAPIClient
from telemost_bot.webhook_handler import SignatureValidator


logger = get_logger(__name__)

NOTICE_SHUTDOWN_TIMEOUT_SECONDS = 5.0


def _load_env(override: bool = False) -> None:
    env_path = os.path.join(os.getcwd(), ".env")
    if os.path.exists(env_path):
        load_dotenv(env_path, override=override)


def build_kv_store(config: ServiceConfig) -> KVStore:
    if config.redis_url:
        return RedisKVStore(config.redis_url, namespace=config.kv_namespace)
    logger.warning("REDIS_URL not set, using in-memory storage")
    return InMemoryKVStore()


def create_app(
    config: ServiceConfig,
    config_store: ConfigurationStore,
    kv_store: KVStore
) -> TelemostAPI:
    """Wire all components into a TelemostAPI."""
    notifier = SlackAPIClient(
        bot_token=config.slack_bot_token,
        max_retries=config.max_retries,
        retry_backoff_base=config.retry_backoff_base
    )
    encryption = None
    if config.encryption_key:
        encryption = TokenEncryption(config.encryption_key)
    else:
        logger.warning("ENCRYPTION_KEY not set, user tokens are stored unencrypted")

    oauth_manager = OAuthSessionManager(kv_store, config_store, notifier=notifier, encryption=encryption)
    command_handler = CommandHandler(oauth_manager, config_store, MessageFormatter())

    api = TelemostAPI(
        oauth_manager=oauth_manager,
        command_handler=command_handler,
        config_store=config_store,
        asset_store=AssetStore(config.assets_dir),
        signature_validator=SignatureValidator(config.slack_signing_secret),
        identity_header=config.identity_header
    )

    async def close_store(app: web.Application) -> None:
        await oauth_manager.wait_for_notices(timeout=NOTICE_SHUTDOWN_TIMEOUT_SECONDS)
        await kv_store.close()

    api.app.on_cleanup.append(close_store)
    return api


def reload_configuration(config_store: ConfigurationStore) -> None:
    _load_env(override=True)
    configuration = config_store.on_configuration_change(PluginConfiguration.from_env)
    logger.info("Configuration reloaded", extra=configuration.describe())
    if not configuration.is_valid():
        logger.warning("Telemost configuration is invalid; requests will be rejected")


def main() -> None:
    """Main application entry point."""
    _load_env()

    try:
        config = ServiceConfig.from_env()
        config.validate()
    except KeyError as e:
        logger.error(f"Missing required environment variable: {e}")
        raise
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        raise

    setup_logging(log_level=config.log_level, log_format=config.log_format)

    plugin_config = PluginConfiguration.from_env()
    config_store = ConfigurationStore(plugin_config)
    if not plugin_config.is_valid():
        logger.warning("Telemost configuration is invalid; requests will be rejected")

    api = create_app(config, config_store, build_kv_store(config))

    async def install_reload_handler(app: web.Application) -> None:
        loop = asyncio.get_running_loop()
        loop.add_signal_handler(signal.SIGHUP, reload_configuration, config_store)

    if hasattr(signal, "SIGHUP"):
        api.app.on_startup.append(install_reload_handler)

    logger.info("Starting Telemost bot service", extra={
        'host': config.host,
        'port': config.port,
        'storage': 'redis' if config.redis_url else 'memory',
        **plugin_config.describe()
    })

    web.run_app(api.app, host=config.host, port=config.port, print=None)


if __name__ == "__main__":
    main()
