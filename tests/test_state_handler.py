import pytest

from src.statewise.config import constants
from src.statewise.errors import ConfigurationError, MalformedModelOutput
from src.statewise.orchestrator import StateHandler
from src.statewise.state.store import InMemoryStateStore

from conftest import FakeTool, ScriptedLLM

ACCOUNT_MODEL = {"customer_name": "Customer name", "plan": "Subscription plan"}
FORECAST_MODEL = {
    "city": "City the user asks about",
    "forecast": "Forecast data for the city",
    "headline": "One-line summary of the forecast",
}


def _forecast_analysis(flagged, tools_to_invoke=None):
    return {
        "state": {"city": "Oslo"},
        "tools_to_invoke": tools_to_invoke
        if tools_to_invoke is not None
        else [{"tool_name": "Forecast", "state_field": "forecast", "input_params": {"city": "Oslo"}}],
        "fields_needing_post_analysis": flagged,
    }


class TestSystemRole:
    async def test_system_message_without_extractable_info(self):
        store = InMemoryStateStore({"customer_name": "Ann", "plan": "basic"})
        llm = ScriptedLLM([{"customer_name": "Ann", "plan": "basic"}])
        handler = StateHandler(llm=llm, store=store, state_model=ACCOUNT_MODEL)

        result = await handler.run("Nightly sync finished", role="system")

        assert result == {
            "state": {"customer_name": "Ann", "plan": "basic", "system_last_message": "Nightly sync finished"},
            "prevState": {"customer_name": "Ann", "plan": "basic"},
            "stateChangedProps": ["system_last_message"],
            "role": "system",
            "message": "System state updated successfully. Changed fields: system_last_message",
        }
        assert llm.call_count == 1
        assert len(store.writes) == 1

    async def test_system_message_updates_fields(self):
        store = InMemoryStateStore({"customer_name": "Ann", "plan": "basic"})
        llm = ScriptedLLM(['```json\n{"plan": "pro"}\n```'])
        handler = StateHandler(llm=llm, store=store, state_model=ACCOUNT_MODEL)

        result = await handler.run("Ann upgraded to pro", role="system")

        assert result["state"]["plan"] == "pro"
        assert result["state"]["customer_name"] == "Ann"
        assert result["stateChangedProps"] == ["plan", "system_last_message"]

    async def test_repeated_system_message_changes_nothing(self):
        store = InMemoryStateStore(
            {"customer_name": "Ann", "plan": "basic", "system_last_message": "ping"}
        )
        llm = ScriptedLLM([{}])
        handler = StateHandler(llm=llm, store=store, state_model=ACCOUNT_MODEL)

        result = await handler.run("ping", role="system")

        assert result["stateChangedProps"] == []
        assert result["message"] == "No state changes detected"
        assert store.writes == []

    async def test_malformed_system_update_is_fatal(self, store):
        handler = StateHandler(llm=ScriptedLLM(["no json here"]), store=store, state_model=ACCOUNT_MODEL)
        with pytest.raises(MalformedModelOutput, match="system state"):
            await handler.run("hello", role="system")


class TestUserRole:
    async def test_post_analysis_fills_dependent_fields(self, store):
        forecast = FakeTool("Forecast", result='["rain", "rain", "sun"]')
        llm = ScriptedLLM(
            [
                _forecast_analysis(["headline", "not_a_field"]),
                {"city": "Bergen", "headline": "Mostly rain this week"},
            ]
        )
        handler = StateHandler(llm=llm, tools=[forecast], store=store, state_model=FORECAST_MODEL)

        result = await handler.run("What's the forecast for Oslo?")

        assert result["state"] == {
            "city": "Oslo",
            "forecast": ["rain", "rain", "sun"],
            "headline": "Mostly rain this week",
        }
        assert result["stateChangedProps"] == ["city", "forecast", "headline"]
        assert result["toolsInvoked"][0]["tool_name"] == "Forecast"
        assert result["role"] == "user"
        assert result["message"] == "State updated successfully. Changed fields: city, forecast, headline"
        assert "response" not in result

        assert llm.call_count == 2
        focus_prompt = llm.system_text(1)
        assert "- headline" in focus_prompt
        assert "not_a_field" not in focus_prompt
        assert "fields_needing_post_analysis" in llm.system_text(0)

    async def test_no_flagged_fields_skips_post_analysis(self, store):
        llm = ScriptedLLM([_forecast_analysis([])])
        handler = StateHandler(
            llm=llm, tools=[FakeTool("Forecast", result="sunny")], store=store, state_model=FORECAST_MODEL
        )

        result = await handler.run("Forecast for Oslo?")

        assert llm.call_count == 1
        assert result["state"]["forecast"] == "sunny"

    async def test_no_tool_results_skips_post_analysis(self, store):
        llm = ScriptedLLM([_forecast_analysis(["headline"], tools_to_invoke=[{"tool_name": "Missing"}])])
        handler = StateHandler(
            llm=llm, tools=[FakeTool("Forecast")], store=store, state_model=FORECAST_MODEL
        )

        result = await handler.run("Forecast for Oslo?")

        assert llm.call_count == 1
        assert result["toolsInvoked"] == []

    async def test_post_analysis_can_be_disabled(self, store, monkeypatch):
        monkeypatch.setitem(constants.orchestration_settings, "handler_post_analysis", False)
        llm = ScriptedLLM([_forecast_analysis(["headline"])])
        handler = StateHandler(
            llm=llm, tools=[FakeTool("Forecast", result="sunny")], store=store, state_model=FORECAST_MODEL
        )

        await handler.run("Forecast for Oslo?")

        assert llm.call_count == 1

    async def test_malformed_post_analysis_keeps_dispatched_state(self, store):
        llm = ScriptedLLM([_forecast_analysis(["headline"]), "```\nnot json\n```"])
        handler = StateHandler(
            llm=llm, tools=[FakeTool("Forecast", result="sunny")], store=store, state_model=FORECAST_MODEL
        )

        result = await handler.run("Forecast for Oslo?")

        assert result["state"] == {"city": "Oslo", "forecast": "sunny", "headline": None}
        assert store.state == result["state"]

    async def test_failed_tool_still_allows_post_analysis(self, store):
        llm = ScriptedLLM([_forecast_analysis(["headline"]), {"headline": "Forecast unavailable"}])
        handler = StateHandler(
            llm=llm,
            tools=[FakeTool("Forecast", error=RuntimeError("quota exceeded"))],
            store=store,
            state_model=FORECAST_MODEL,
        )

        result = await handler.run("Forecast for Oslo?")

        assert result["toolsInvoked"][0]["error"] == "quota exceeded"
        assert result["state"]["headline"] == "Forecast unavailable"
        assert '"quota exceeded"' in llm.system_text(1)

    async def test_user_message_keeps_last_system_message(self):
        store = InMemoryStateStore({"customer_name": "Ann", "plan": "basic", "system_last_message": "sync"})
        llm = ScriptedLLM([{"state": {"plan": "basic"}, "tools_to_invoke": []}])
        handler = StateHandler(llm=llm, store=store, state_model=ACCOUNT_MODEL)

        result = await handler.run("Just checking in")

        assert result["state"]["system_last_message"] == "sync"
        assert result["stateChangedProps"] == []
        assert result["toolsInvoked"] == []
        assert result["message"] == "No state changes detected"

    async def test_first_run_reports_only_real_changes(self, store):
        llm = ScriptedLLM([{"state": {}, "tools_to_invoke": []}])
        handler = StateHandler(llm=llm, store=store, state_model=ACCOUNT_MODEL)

        result = await handler.run("hi")

        assert result["stateChangedProps"] == []
        assert store.writes == []


class TestHandlerValidation:
    async def test_state_model_is_required(self, store):
        handler = StateHandler(llm=ScriptedLLM(), store=store)
        with pytest.raises(ConfigurationError, match="state_model is required"):
            await handler.run("hi")

    async def test_store_is_required(self):
        handler = StateHandler(llm=ScriptedLLM(), state_model=ACCOUNT_MODEL)
        with pytest.raises(ConfigurationError, match="State store is required"):
            await handler.run("hi")

    async def test_unknown_role(self, store):
        handler = StateHandler(llm=ScriptedLLM(), store=store, state_model=ACCOUNT_MODEL)
        with pytest.raises(ConfigurationError, match="Unsupported role"):
            await handler.run("hi", role="assistant")
