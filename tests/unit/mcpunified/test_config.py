# -*- coding: utf-8 -*-
"""Location: ./tests/unit/mcpunified/test_config.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Unit tests for gateway settings.
"""

# Third-Party
from pydantic import ValidationError
import pytest

# First-Party
from mcpunified.config import get_settings, Settings


def test_defaults():
    s = Settings(_env_file=None)
    assert s.listener_ports() == {"primary": 7777, "fallback": 7778}
    assert s.collision_policy == "first_wins"
    assert s.health_check_interval == 30.0
    assert s.unhealthy_threshold == 3
    assert s.shutdown_timeout == 5.0
    assert s.auth_required is False


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("PRIMARY_PORT", "9000")
    monkeypatch.setenv("FALLBACK_PORT", "9001")
    monkeypatch.setenv("TOOL_COLLISION_POLICY", "namespaced")
    monkeypatch.setenv("API_KEYS", "k1, k2")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    s = Settings(_env_file=None)
    assert s.listener_ports() == {"primary": 9000, "fallback": 9001}
    assert s.collision_policy == "namespaced"
    assert s.api_keys == ["k1", "k2"]
    assert s.log_level == "DEBUG"


def test_api_keys_json_list(monkeypatch):
    monkeypatch.setenv("API_KEYS", '["a", "b"]')
    assert Settings(_env_file=None).api_keys == ["a", "b"]


def test_accepted_api_keys_merges_master_key():
    s = Settings(_env_file=None, master_api_key="m", api_keys="x,y")
    assert s.accepted_api_keys() == {"m", "x", "y"}
    assert Settings(_env_file=None).accepted_api_keys() == set()


def test_fallback_can_be_disabled():
    s = Settings(_env_file=None, enable_fallback=False)
    assert s.listener_ports() == {"primary": 7777}


@pytest.mark.parametrize(
    "kwargs",
    [
        {"primary_port": 0},
        {"fallback_port": 70000},
        {"primary_port": 8000, "fallback_port": 8000},
        {"enable_primary": False, "enable_fallback": False},
        {"unhealthy_threshold": 0},
    ],
)
def test_invalid_listener_settings_rejected(kwargs):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **kwargs)


def test_same_port_allowed_when_fallback_disabled():
    s = Settings(_env_file=None, primary_port=8000, fallback_port=8000, enable_fallback=False)
    assert s.listener_ports() == {"primary": 8000}


def test_get_settings_is_cached():
    assert get_settings() is get_settings()
