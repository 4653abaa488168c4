import json

import pytest

from src.statewise.config import constants
from src.statewise.config.mcp_config import load_mcp_connections
from src.statewise.config.profile import AgentProfile
from src.statewise.errors import ConfigurationError
from src.statewise.llm.rate_limiting import is_rate_limit_error, with_rate_limit_handling


@pytest.fixture
def profiles_dir(tmp_path, monkeypatch):
    monkeypatch.setitem(constants.profile_settings, "profiles_dir", str(tmp_path))
    return tmp_path


def test_profile_loads_prompt_and_model(profiles_dir):
    (profiles_dir / "travel.json").write_text(
        json.dumps(
            {
                "system_prompt": ["You help {{user}} plan trips.", "Destination: {destination}"],
                "state_model": {"destination": "Travel destination"},
                "conversation_history": True,
                "single_prompt": False,
            }
        ),
        encoding="utf-8",
    )

    profile = AgentProfile("travel", user_name="Sam")

    assert profile.display_name == "Travel"
    assert profile.get_system_prompt() == "You help Sam plan trips.\nDestination: {destination}"
    assert profile.state_model == {"destination": "Travel destination"}
    assert profile.track_history is True
    assert profile.single_prompt is False
    assert AgentProfile.get_available_profiles() == ["travel"]


def test_profile_defaults(profiles_dir):
    (profiles_dir / "plain_chat.json").write_text("{}", encoding="utf-8")

    profile = AgentProfile("plain_chat")

    assert profile.display_name == "Plain Chat"
    assert profile.state_model is None
    assert profile.get_system_prompt() == constants.orchestration_settings["default_system_prompt"]


def test_missing_and_broken_profiles(profiles_dir):
    with pytest.raises(FileNotFoundError):
        AgentProfile("nope")

    (profiles_dir / "broken.json").write_text("{", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        AgentProfile("broken")


def test_mcp_connections(tmp_path, monkeypatch):
    monkeypatch.setenv("MATH_TOKEN", "secret")
    config_file = tmp_path / "mcp.json"
    config_file.write_text(
        json.dumps(
            {
                "math": {
                    "command": "python",
                    "args": ["server.py"],
                    "transport": "stdio",
                    "env": {"TOKEN": "${MATH_TOKEN}"},
                }
            }
        ),
        encoding="utf-8",
    )

    connections = load_mcp_connections(str(config_file))

    assert connections["math"]["env"] == {"TOKEN": "secret"}

    monkeypatch.setitem(constants.mcp_settings, "config_file", "")
    assert load_mcp_connections() == {}

    with pytest.raises(ConfigurationError, match="not found"):
        load_mcp_connections(str(tmp_path / "missing.json"))


def test_rate_limit_detection():
    assert is_rate_limit_error(Exception("Error 429: Too Many Requests"))
    assert is_rate_limit_error(Exception("Rate limit reached"))
    assert not is_rate_limit_error(Exception("invalid api key"))


async def test_async_retry_on_rate_limit():
    attempts = []

    @with_rate_limit_handling(max_retries=2, base_delay=0, max_delay=0)
    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise Exception("429 rate limit")
        return "ok"

    assert await flaky() == "ok"
    assert len(attempts) == 3


async def test_non_rate_limit_errors_are_not_retried():
    attempts = []

    @with_rate_limit_handling(max_retries=3, base_delay=0, max_delay=0)
    async def broken():
        attempts.append(1)
        raise ValueError("bad request")

    with pytest.raises(ValueError):
        await broken()
    assert len(attempts) == 1
