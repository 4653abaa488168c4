import json
from typing import Any, List, Optional

import pytest

from src.statewise.graph.singletons import reset_singletons
from src.statewise.state.store import InMemoryStateStore


class ScriptedLLM:
    """Model double returning queued outputs and recording every prompt."""

    def __init__(self, outputs: Optional[List[Any]] = None, ai_messages: Optional[List[Any]] = None):
        self.outputs = list(outputs or [])
        self.ai_messages = list(ai_messages or [])
        self.prompts: List[list] = []
        self.bound_tools: List[Any] = []

    async def generate(self, messages):
        self.prompts.append(messages)
        if not self.outputs:
            raise AssertionError("Unexpected model call")
        output = self.outputs.pop(0)
        if isinstance(output, Exception):
            raise output
        return output if isinstance(output, str) else json.dumps(output)

    async def get_llm_response(self, messages, tools=None):
        self.prompts.append(list(messages))
        self.bound_tools.append(tools)
        if not self.ai_messages:
            raise AssertionError("Unexpected model call")
        return self.ai_messages.pop(0)

    @property
    def call_count(self) -> int:
        return len(self.prompts)

    def system_text(self, call: int) -> str:
        return self.prompts[call][0].content


class FakeTool:
    """Tool double with a fixed result or error."""

    def __init__(self, name: str, result: Any = None, error: Optional[Exception] = None, description: str = ""):
        self.name = name
        self.description = description
        self.result = result
        self.error = error
        self.calls: List[dict] = []

    async def ainvoke(self, params):
        self.calls.append(params)
        if self.error is not None:
            raise self.error
        return self.result


class SyncStoreBackend:
    """Store backend exposing only ``invoke`` and returning a fixed payload."""

    def __init__(self, payload: Any):
        self.payload = payload
        self.payloads: List[dict] = []

    def invoke(self, payload):
        self.payloads.append(payload)
        return self.payload


@pytest.fixture(autouse=True)
def fresh_singletons():
    reset_singletons()
    yield
    reset_singletons()


@pytest.fixture
def store():
    return InMemoryStateStore()


@pytest.fixture
def travel_model():
    return {"destination": "Travel destination"}


@pytest.fixture
def weather_model():
    return {"location": "City the user is in", "weather_info": "Current weather at the location"}
