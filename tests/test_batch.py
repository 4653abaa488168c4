import pytest

from src.statewise.errors import ConfigurationError, InteractionError, MalformedModelOutput
from src.statewise.orchestrator import StateHandler, StatefulAgent, _Orchestrator

from conftest import ScriptedLLM


def _agent(outputs, store, model):
    return StatefulAgent(llm=ScriptedLLM(outputs), store=store, state_model=model, single_prompt=True)


async def test_batch_runs_items_in_order(store, travel_model):
    agent = _agent(
        [
            {"state": {"destination": "Oslo"}, "response": "Oslo!"},
            {"state": {"destination": "Rome"}, "response": "Rome!"},
        ],
        store,
        travel_model,
    )

    results = await agent.run_batch(["Oslo", {"message": "Rome"}])

    assert [r["response"] for r in results] == ["Oslo!", "Rome!"]
    assert results[1]["prevState"] == {"destination": "Oslo"}
    assert store.state == {"destination": "Rome"}


async def test_failure_aborts_with_item_index(store, travel_model):
    agent = _agent(
        [{"state": {"destination": "Oslo"}, "response": "Oslo!"}, "not json"],
        store,
        travel_model,
    )

    with pytest.raises(MalformedModelOutput) as exc_info:
        await agent.run_batch(["Oslo", "Rome", "Lima"])

    assert exc_info.value.item_index == 1
    assert str(exc_info.value).endswith("[item 1]")


async def test_continue_on_fail_records_errors(store, travel_model):
    agent = _agent(
        [
            "not json",
            {"state": {"destination": "Lima"}, "response": "Lima!"},
        ],
        store,
        travel_model,
    )

    results = await agent.run_batch(["Oslo", "", "Lima"], continue_on_fail=True)

    assert results[0]["item_index"] == 0
    assert results[0]["error"].startswith("Malformed model output")
    assert results[1] == {"error": "User Message is required", "item_index": 1}
    assert results[2]["response"] == "Lima!"


async def test_unexpected_errors_are_wrapped(store, travel_model):
    agent = _agent([RuntimeError("provider exploded")], store, travel_model)

    with pytest.raises(InteractionError) as exc_info:
        await agent.run_batch(["Oslo"])

    assert exc_info.value.item_index == 0
    assert isinstance(exc_info.value.__cause__, RuntimeError)

    agent = _agent([RuntimeError("provider exploded")], store, travel_model)
    results = await agent.run_batch(["Oslo"], continue_on_fail=True)
    assert results == [{"error": "provider exploded", "item_index": 0}]


async def test_handler_batch_accepts_roles(store):
    model = {"plan": "Subscription plan"}
    handler = StateHandler(
        llm=ScriptedLLM([{"plan": "pro"}, {"state": {}, "tools_to_invoke": []}]),
        store=store,
        state_model=model,
    )

    results = await handler.run_batch(
        [{"message": "Upgraded to pro", "role": "system"}, "What plan am I on?"]
    )

    assert [r["role"] for r in results] == ["system", "user"]
    assert results[1]["state"] == {"plan": "pro", "system_last_message": "Upgraded to pro"}
    assert results[1]["prevState"] == {"plan": "pro", "system_last_message": "Upgraded to pro"}


async def test_batch_validation_error_keeps_its_type(store, travel_model):
    agent = StatefulAgent(store=store, state_model=travel_model)

    with pytest.raises(ConfigurationError) as exc_info:
        await agent.run_batch(["Oslo"])

    assert exc_info.value.item_index == 0


def test_shared_base_cannot_run_on_its_own(store, travel_model):
    with pytest.raises(TypeError):
        _Orchestrator(llm=ScriptedLLM(), store=store, state_model=travel_model)
