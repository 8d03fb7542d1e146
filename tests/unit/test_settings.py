import pytest

from aiplayer.domain.llm.errors import ConfigurationError
from aiplayer.infrastructure.config.settings import LLMSettings, Settings


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for key in ("AIPLAYER_LLM__PROVIDER", "AIPLAYER_LLM__API_KEY", "AIPLAYER_PLANNING__MAX_ACTIVE_GOALS"):
        monkeypatch.delenv(key, raising=False)


def test_defaults():
    settings = Settings()

    assert settings.llm.provider == "openai"
    assert settings.llm.enable_cache
    assert settings.planning.interval_ticks == 100
    assert settings.planning.max_active_goals == 5
    assert settings.memory.max_episodic_memories == 1000
    assert settings.coordination.max_team_size == 5


def test_nested_environment_overrides(monkeypatch):
    monkeypatch.setenv("AIPLAYER_LLM__PROVIDER", "Ollama")
    monkeypatch.setenv("AIPLAYER_PLANNING__MAX_ACTIVE_GOALS", "3")

    settings = Settings()

    assert settings.llm.provider == "ollama"
    assert settings.llm.is_local
    assert settings.planning.max_active_goals == 3


def test_dotenv_file_is_read(tmp_path):
    (tmp_path / ".env").write_text("AIPLAYER_LLM__PROVIDER=claude\nAIPLAYER_LLM__API_KEY=from-file\n")

    settings = Settings()

    assert settings.llm.provider == "claude"
    assert settings.llm.api_key == "from-file"


def test_remote_provider_requires_key():
    with pytest.raises(ConfigurationError):
        Settings(llm=LLMSettings(provider="openai")).validate_for_runtime()

    Settings(llm=LLMSettings(provider="openai", api_key="sk")).validate_for_runtime()
    Settings(llm=LLMSettings(provider="local")).validate_for_runtime()


def test_empty_provider_is_rejected():
    with pytest.raises(ConfigurationError):
        Settings(llm=LLMSettings(provider="  ")).validate_for_runtime()
