from __future__ import annotations

import importlib

import avatar_studio.config as config


def _reload_with(monkeypatch, **env):  # noqa: ANN001, ANN003
    for key, value in env.items():
        if value is None:
            monkeypatch.delenv(key, raising=False)
        else:
            monkeypatch.setenv(key, value)
    config.get_settings.cache_clear()
    return importlib.reload(config)


def test_settings_reads_api_credentials(monkeypatch):
    try:
        reloaded = _reload_with(
            monkeypatch,
            ANTHROPIC_API_KEY="sk-ant-test",
            REPLICATE_API_TOKEN="r8_test",
        )
        assert reloaded.settings.anthropic_api_key == "sk-ant-test"
        assert reloaded.settings.replicate_api_token == "r8_test"
    finally:
        monkeypatch.undo()
        importlib.reload(config)


def test_settings_defaults_and_bad_timeouts(monkeypatch):
    try:
        reloaded = _reload_with(
            monkeypatch,
            ANTHROPIC_MODEL=None,
            DESCRIPTION_TIMEOUT_SECONDS="not-a-number",
            IMAGE_TIMEOUT_SECONDS="45",
        )
        assert reloaded.settings.anthropic_model == "claude-3-7-sonnet-latest"
        assert reloaded.settings.replicate_model == "black-forest-labs/flux-schnell"
        assert reloaded.settings.description_timeout == 30.0
        assert reloaded.settings.image_timeout == 45.0
    finally:
        monkeypatch.undo()
        importlib.reload(config)


def test_get_settings_is_cached():
    assert config.get_settings() is config.get_settings()
