"""Tests for configuration loading."""

import pytest
import yaml
from pydantic import ValidationError

from kiro.assistant.config import Config


def test_defaults():
    config = Config()

    assert config.llm.provider == "groq"
    assert config.llm.resolved_base_url == "https://api.groq.com/openai/v1"
    assert config.budget.daily_token_limit == 1_500_000
    assert config.budget.max_tokens_per_request == 600
    assert config.cache.ttl_seconds == 6 * 60 * 60
    assert config.coordinator.debounce_ms == 800
    assert config.coordinator.dedup_window_ms == 2000


def test_load_yaml(tmp_path):
    path = tmp_path / "kiro.yaml"
    path.write_text(yaml.safe_dump({
        'llm': {'provider': 'openrouter', 'model': 'meta-llama/llama-3.3-70b-instruct'},
        'coordinator': {'debounce_ms': 300},
        'expression': {'use_vision': False},
    }))

    config = Config.load(path)

    assert config.llm.resolved_base_url == "https://openrouter.ai/api/v1"
    assert config.coordinator.debounce_ms == 300
    assert config.coordinator.dedup_window_ms == 2000
    assert config.expression.use_vision is False


def test_load_empty_file(tmp_path):
    path = tmp_path / "kiro.yaml"
    path.write_text("")

    assert Config.load(path) == Config()


def test_load_without_file_uses_defaults(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))

    assert Config.load() == Config()


def test_save_round_trip_never_writes_api_key(tmp_path):
    config = Config(llm={'api_key': 'secret', 'temperature': 0.2})
    path = tmp_path / "nested" / "config.yaml"

    config.save(path)

    text = path.read_text()
    assert "secret" not in text
    loaded = Config.load(path)
    assert loaded.llm.temperature == 0.2
    assert loaded.llm.api_key is None


@pytest.mark.parametrize("budget", [
    {'warning_threshold': 1.5},
    {'critical_threshold': -0.1},
    {'warning_threshold': 0.9, 'critical_threshold': 0.8},
])
def test_invalid_thresholds(budget):
    with pytest.raises(ValidationError):
        Config(budget=budget)


def test_unknown_provider():
    with pytest.raises(ValidationError):
        Config(llm={'provider': 'nowhere'})


class TestApiKey:

    def test_config_value_wins(self, monkeypatch):
        monkeypatch.setenv("KIRO_API_KEY", "env")

        assert Config(llm={'api_key': 'file'}).api_key() == "file"

    def test_generic_env_var(self, monkeypatch):
        monkeypatch.setenv("KIRO_API_KEY", "generic")
        monkeypatch.setenv("GROQ_API_KEY", "groq")

        assert Config().api_key() == "generic"

    def test_provider_env_var(self, monkeypatch):
        monkeypatch.delenv("KIRO_API_KEY", raising=False)
        monkeypatch.setenv("OPENROUTER_API_KEY", "router")

        assert Config(llm={'provider': 'openrouter'}).api_key() == "router"

    def test_missing(self, monkeypatch):
        for var in ("KIRO_API_KEY", "GROQ_API_KEY"):
            monkeypatch.delenv(var, raising=False)

        assert Config().api_key() is None
