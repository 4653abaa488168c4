from langchain_core.tools import tool

from src.statewise.state.schema import flatten_state_model
from src.statewise.tools.catalog import parse_tool_result, resolve_tool
from src.statewise.tools.dispatcher import dispatch_tools, normalize_tool_requests
from src.statewise.tools.targeting import declared_target_field, default_target_field

from conftest import FakeTool

MODEL = {
    "location": "City",
    "weather_info": "Weather at the location",
    "task_steps": "Planned steps",
}
FIELDS = flatten_state_model(MODEL)


def _state():
    return {"location": "Paris", "weather_info": None, "task_steps": None}


def test_resolve_tool_exact_then_case_insensitive():
    exact = FakeTool("weather api")
    other = FakeTool("Weather API")
    assert resolve_tool("Weather API", [exact, other]) is other
    assert resolve_tool("WEATHER API", [other]) is other
    assert resolve_tool("unknown", [other]) is None
    assert resolve_tool(None, [other]) is None


def test_parse_tool_result_is_best_effort():
    assert parse_tool_result('{"temp": 72}') == {"temp": 72}
    assert parse_tool_result("sunny") == "sunny"
    assert parse_tool_result({"already": "structured"}) == {"already": "structured"}


def test_target_policies():
    assert default_target_field({"tool_name": "x", "state_field": "weather_info"}) == "weather_info"
    assert default_target_field({"tool_name": "Plan Steps"}) == "task_steps"
    assert default_target_field({"tool_name": "planner", "reason": "Build the STEPS"}) == "task_steps"
    assert default_target_field({"tool_name": "planner"}) is None
    assert declared_target_field({"tool_name": "Plan Steps"}) is None


def test_normalize_tool_requests_drops_malformed_entries():
    raw = [{"tool_name": "a"}, {"reason": "no name"}, "junk", {"tool_name": 3}]
    assert normalize_tool_requests(raw) == [{"tool_name": "a"}]
    assert normalize_tool_requests(None) == []


async def test_result_is_parsed_and_written_to_the_declared_field():
    weather = FakeTool("Weather API", result='{"temp": 72}')
    state, changed = _state(), []

    outcome = await dispatch_tools(
        [{"tool_name": "weather api", "state_field": "weather_info", "input_params": {"city": "Paris"}}],
        [weather],
        FIELDS,
        state,
        changed,
    )

    assert weather.calls == [{"city": "Paris"}]
    assert state["weather_info"] == {"temp": 72}
    assert changed == ["weather_info"]
    assert outcome.invoked_tool_names == ["weather api"]
    assert outcome.tool_results == [
        {"tool_name": "weather api", "state_field": "weather_info", "result": '{"temp": 72}'}
    ]


async def test_failing_tool_does_not_stop_the_batch():
    broken = FakeTool("Broken", error=RuntimeError("service down"))
    weather = FakeTool("Weather API", result="sunny")
    state, changed = _state(), []

    outcome = await dispatch_tools(
        [
            {"tool_name": "Broken", "state_field": "location"},
            {"tool_name": "Weather API", "state_field": "weather_info"},
        ],
        [broken, weather],
        FIELDS,
        state,
        changed,
    )

    assert state == {"location": "Paris", "weather_info": "sunny", "task_steps": None}
    assert changed == ["weather_info"]
    assert outcome.invoked_tool_names == ["Weather API"]
    assert outcome.tool_results[0] == {
        "tool_name": "Broken",
        "state_field": "location",
        "error": "service down",
    }


async def test_unknown_tools_are_skipped_without_a_record():
    outcome = await dispatch_tools(
        [{"tool_name": "Nope"}], [FakeTool("Weather API")], FIELDS, _state(), []
    )
    assert outcome.tool_results == []
    assert outcome.invoked_tool_names == []


async def test_unchanged_value_is_not_marked():
    state, changed = _state(), []
    await dispatch_tools(
        [{"tool_name": "Locator", "state_field": "location"}],
        [FakeTool("Locator", result="Paris")],
        FIELDS,
        state,
        changed,
    )
    assert changed == []


async def test_steps_heuristic_and_unknown_targets():
    state, changed = _state(), []
    outcome = await dispatch_tools(
        [
            {"tool_name": "Plan Steps", "input_params": {}},
            {"tool_name": "Geo", "state_field": "not_in_model"},
        ],
        [FakeTool("Plan Steps", result='["book", "pack"]'), FakeTool("Geo", result="x")],
        FIELDS,
        state,
        changed,
    )
    assert state["task_steps"] == ["book", "pack"]
    assert "not_in_model" not in state
    assert changed == ["task_steps"]
    assert outcome.invoked_tool_names == ["Plan Steps", "Geo"]


async def test_custom_policy_replaces_the_heuristic():
    state, changed = _state(), []
    await dispatch_tools(
        [{"tool_name": "Plan Steps"}],
        [FakeTool("Plan Steps", result="[1]")],
        FIELDS,
        state,
        changed,
        target_policy=declared_target_field,
    )
    assert state["task_steps"] is None
    assert changed == []


async def test_dispatch_works_with_langchain_tools():
    @tool
    def lookup_weather(city: str) -> str:
        """Look up the weather for a city."""
        return '{"temp": 20, "city": "%s"}' % city

    state, changed = _state(), []
    await dispatch_tools(
        [{"tool_name": "lookup_weather", "state_field": "weather_info", "input_params": {"city": "Oslo"}}],
        [lookup_weather],
        FIELDS,
        state,
        changed,
    )
    assert state["weather_info"] == {"temp": 20, "city": "Oslo"}
