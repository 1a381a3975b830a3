# Telemost Bot
# Copyright (C) 2026 StrateCode
# Licensed under the GNU Affero General Public License v3 (AGPLv3)

"""
Unit tests for service wiring and configuration reload.
"""

from telemost_bot.config import ConfigurationStore, PluginConfiguration, ServiceConfig
from telemost_bot.kv_store import InMemoryKVStore, RedisKVStore
from telemost_bot.main import build_kv_store, create_app, reload_configuration
from telemost_bot.oauth_manager import TokenEncryption


def test_in_memory_store_without_redis_url():
    config = ServiceConfig(slack_bot_token="xoxb-test", slack_signing_secret="secret")

    assert isinstance(build_kv_store(config), InMemoryKVStore)


def test_redis_store_with_redis_url():
    config = ServiceConfig(
        slack_bot_token="xoxb-test",
        slack_signing_secret="secret",
        redis_url="redis://localhost:6379/0",
        kv_namespace="t:"
    )

    store = build_kv_store(config)

    assert isinstance(store, RedisKVStore)
    assert store.namespace == "t:"


def test_create_app_wires_routes():
    config = ServiceConfig(slack_bot_token="xoxb-test", slack_signing_secret="secret", identity_header="X-Auth-User")

    api = create_app(config, ConfigurationStore(PluginConfiguration()), InMemoryKVStore())

    paths = {resource.canonical for resource in api.app.router.resources()}
    assert {'/oauth/start', '/oauth/callback', '/oauth/complete', '/api/v1/meetings',
            '/slack/commands', '/health'} <= paths
    assert api.identity_header == "X-Auth-User"
    assert api.signature_validator is not None
    assert api.oauth_manager.notifier is not None
    assert api.oauth_manager.encryption is None


def test_create_app_encrypts_tokens_with_key():
    config = ServiceConfig(slack_bot_token="xoxb-test", slack_signing_secret="secret", encryption_key="k" * 32)

    api = create_app(config, ConfigurationStore(PluginConfiguration()), InMemoryKVStore())

    assert isinstance(api.oauth_manager.encryption, TokenEncryption)


def test_reload_swaps_configuration(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("YANDEX_CLIENT_ID", "client-456")
    monkeypatch.setenv("SITE_URL", "https://new.example.com")
    store = ConfigurationStore(PluginConfiguration())
    before = store.get()

    reload_configuration(store)

    after = store.get()
    assert after is not before
    assert after.client_id == "client-456"
    assert after.is_valid()
