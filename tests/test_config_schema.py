"""Tests for jobsync.config_schema -- YAML config models and fallbacks."""

import pytest
from pydantic import ValidationError

from jobsync.config_schema import (
    RemoteConfig,
    UnifiedConfig,
    build_config,
    to_fallbacks,
)


class TestBuildConfig:
    def test_empty_is_zero_config(self):
        unified = build_config({})
        assert unified == UnifiedConfig()
        assert unified.remote.url is None
        assert unified.sync.auto_sync is True
        assert unified.logging.level == "INFO"

    def test_sections(self):
        unified = build_config(
            {
                "remote": {"url": "https://sync.example.com", "api_key": "k", "request_timeout": 10},
                "storage": {"state_file": "/data/state.json"},
                "sync": {"auto_sync": False},
                "logging": {"level": "DEBUG", "debug": True},
            }
        )
        assert unified.remote.request_timeout == 10
        assert unified.storage.state_file == "/data/state.json"
        assert unified.sync.auto_sync is False
        assert unified.logging.debug is True

    @pytest.mark.parametrize("timeout", [0, 301])
    def test_timeout_bounds(self, timeout):
        with pytest.raises(ValidationError):
            RemoteConfig(request_timeout=timeout)

    def test_frozen(self):
        with pytest.raises(ValidationError):
            UnifiedConfig().sync.auto_sync = False


class TestToFallbacks:
    def test_unset_values_omitted(self):
        fallbacks = to_fallbacks(UnifiedConfig())
        assert "api_url" not in fallbacks
        assert "api_key" not in fallbacks
        assert "state_file" not in fallbacks
        assert fallbacks["auto_sync"] is True
        assert fallbacks["request_timeout"] == 30.0

    def test_values_mapped(self):
        fallbacks = to_fallbacks(
            build_config(
                {
                    "remote": {"url": "https://x.example.com", "insecure": True},
                    "storage": {"state_file": "s.json"},
                    "logging": {"debug": True},
                }
            )
        )
        assert fallbacks["api_url"] == "https://x.example.com"
        assert fallbacks["insecure"] is True
        assert fallbacks["state_file"] == "s.json"
        assert fallbacks["debug"] is True
