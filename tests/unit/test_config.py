# Telemost Bot
# Copyright (C) 2026 StrateCode
# Licensed under the GNU Affero General Public License v3 (AGPLv3)

"""
Unit tests for configuration loading and the configuration register.
"""

import dataclasses
import threading

import pytest

from telemost_bot.config import (
    ConfigurationError,
    ConfigurationStore,
    PluginConfiguration,
    ServiceConfig,
)


class TestServiceConfig:

    def test_from_env_defaults(self, monkeypatch):
        monkeypatch.setenv("SLACK_BOT_TOKEN", "xoxb-test")
        monkeypatch.setenv("SLACK_SIGNING_SECRET", "secret")
        for name in ("REDIS_URL", "ENCRYPTION_KEY", "PORT", "IDENTITY_HEADER", "LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

        config = ServiceConfig.from_env()

        assert config.slack_bot_token == "xoxb-test"
        assert config.slack_signing_secret == "secret"
        assert config.encryption_key == ""
        assert config.redis_url == ""
        assert config.port == 8080
        assert config.identity_header == "X-User-Id"
        assert config.log_level == "INFO"
        config.validate()

    @pytest.mark.parametrize("name", ["SLACK_BOT_TOKEN", "SLACK_SIGNING_SECRET"])
    def test_missing_slack_credentials(self, monkeypatch, name):
        monkeypatch.setenv("SLACK_BOT_TOKEN", "xoxb-test")
        monkeypatch.setenv("SLACK_SIGNING_SECRET", "secret")
        monkeypatch.delenv(name)

        with pytest.raises(KeyError):
            ServiceConfig.from_env()

    @pytest.mark.parametrize("changes, message", [
        ({"slack_bot_token": "xoxp-user"}, "xoxb-"),
        ({"slack_signing_secret": ""}, "SLACK_SIGNING_SECRET"),
        ({"redis_url": "redis://localhost:6379/0"}, "ENCRYPTION_KEY is required"),
        ({"encryption_key": "too-short"}, "at least 32"),
        ({"port": 0}, "PORT"),
        ({"identity_header": ""}, "IDENTITY_HEADER"),
        ({"max_retries": 11}, "MAX_RETRIES"),
    ])
    def test_validate_rejects(self, changes, message):
        config = dataclasses.replace(ServiceConfig(slack_bot_token="xoxb-test", slack_signing_secret="secret"), **changes)

        with pytest.raises(ValueError, match=message):
            config.validate()

    def test_redis_with_encryption_key_is_valid(self):
        ServiceConfig(
            slack_bot_token="xoxb-test",
            slack_signing_secret="secret",
            redis_url="redis://localhost:6379/0",
            encryption_key="k" * 32
        ).validate()


class TestPluginConfiguration:

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("TELEMOST_OAUTH_TOKEN", "y0_plugin")
        monkeypatch.setenv("YANDEX_CLIENT_ID", "client-123")
        monkeypatch.setenv("SITE_URL", "https://bot.example.com/")
        monkeypatch.setenv("DEFAULT_WAITING_ROOM_LEVEL", "ADMINS")
        monkeypatch.setenv("ENABLE_LIVE_STREAM", "true")
        monkeypatch.setenv("DEFAULT_LIVE_STREAM_ACCESS_LEVEL", "PUBLIC")

        config = PluginConfiguration.from_env()

        assert config == PluginConfiguration(
            oauth_token="y0_plugin",
            client_id="client-123",
            site_url="https://bot.example.com",
            default_waiting_room_level="ADMINS",
            enable_live_stream=True,
            default_live_stream_access_level="PUBLIC"
        )
        assert config.is_valid()

    def test_requires_client_id(self):
        with pytest.raises(ConfigurationError, match="Client ID"):
            PluginConfiguration(site_url="https://bot.example.com").validate()

    def test_requires_site_url(self):
        with pytest.raises(ConfigurationError, match="Site URL"):
            PluginConfiguration(client_id="client-123").validate()

    def test_rejects_unknown_levels(self):
        base = PluginConfiguration(client_id="c", site_url="https://s")

        assert not base.clone(default_waiting_room_level="EVERYONE").is_valid()
        assert not base.clone(default_live_stream_access_level="ADMINS").is_valid()
        assert base.clone(default_waiting_room_level="ADMINS").is_valid()

    def test_snapshot_is_immutable(self):
        config = PluginConfiguration(client_id="c")

        with pytest.raises(dataclasses.FrozenInstanceError):
            config.client_id = "other"

    def test_clone_returns_new_instance(self):
        config = PluginConfiguration(client_id="c")

        changed = config.clone(site_url="https://s")

        assert changed is not config
        assert config.site_url == ""
        assert changed.client_id == "c"

    def test_describe_hides_token(self):
        described = PluginConfiguration(oauth_token="y0_secret").describe()

        assert described["oauth_token"] is True
        assert "y0_secret" not in str(described)


class TestConfigurationStore:

    def test_empty_store_returns_blank_configuration(self):
        assert ConfigurationStore().get() == PluginConfiguration()

    def test_set_swaps_snapshot(self):
        first = PluginConfiguration(client_id="a")
        store = ConfigurationStore(first)
        snapshot = store.get()

        store.set(first.clone(client_id="b"))

        assert store.get().client_id == "b"
        assert snapshot.client_id == "a"

    def test_set_rejects_same_instance(self):
        config = PluginConfiguration(client_id="a")
        store = ConfigurationStore(config)

        with pytest.raises(ValueError):
            store.set(config)

    def test_on_configuration_change_uses_loader(self):
        store = ConfigurationStore(PluginConfiguration())
        loaded = PluginConfiguration(client_id="fresh", site_url="https://s")

        result = store.on_configuration_change(lambda: loaded)

        assert result is loaded
        assert store.get() is loaded

    def test_concurrent_readers_see_whole_snapshots(self):
        snapshots = [PluginConfiguration(client_id=str(i), site_url=str(i)) for i in range(50)]
        store = ConfigurationStore(PluginConfiguration(client_id="start", site_url="start"))
        torn = []

        def reader():
            for _ in range(500):
                config = store.get()
                if config.client_id != config.site_url:
                    torn.append(config)

        def writer():
            for snapshot in snapshots:
                store.set(snapshot)

        threads = [threading.Thread(target=reader) for _ in range(4)]
        threads.append(threading.Thread(target=writer))
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert torn == []
        assert store.get() is snapshots[-1]
