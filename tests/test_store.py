import json

import pytest

from src.statewise.errors import StoreUnavailable
from src.statewise.state.store import (
    InMemoryStateStore,
    JsonFileStateStore,
    StateStoreClient,
)

from conftest import SyncStoreBackend


@pytest.mark.parametrize(
    "payload, expected",
    [
        ({"a": 1}, {"a": 1}),
        ([{"a": 1}], {"a": 1}),
        ('{"a": 1}', {"a": 1}),
        ('[{"a": 1}]', {"a": 1}),
        (b'{"a": 1}', {"a": 1}),
        (None, {}),
        ("", {}),
        ("null", {}),
        ([], {}),
        ("[]", {}),
    ],
)
async def test_get_accepts_every_supported_shape(payload, expected):
    backend = SyncStoreBackend(payload)
    assert await StateStoreClient(backend).get() == expected
    assert backend.payloads == [{"operation": "get", "content": ""}]


@pytest.mark.parametrize("payload", ["not json", 42, ["a"]])
async def test_unusable_payload_raises(payload):
    with pytest.raises(StoreUnavailable):
        await StateStoreClient(SyncStoreBackend(payload)).get()


async def test_backend_failure_raises_store_unavailable():
    class Broken:
        async def ainvoke(self, payload):
            raise ConnectionError("db offline")

    with pytest.raises(StoreUnavailable, match="db offline"):
        await StateStoreClient(Broken()).get()


async def test_set_sends_serialized_state():
    backend = SyncStoreBackend("ok")
    await StateStoreClient(backend).set({"destination": "Tokyo"})
    assert backend.payloads == [
        {"operation": "set", "content": json.dumps({"destination": "Tokyo"})}
    ]


async def test_in_memory_store_round_trip():
    store = InMemoryStateStore({"a": 1})
    client = StateStoreClient(store)
    assert await client.get() == {"a": 1}
    await client.set({"a": 2})
    assert store.state == {"a": 2}
    assert len(store.writes) == 1


async def test_json_file_store_persists_per_session(tmp_path):
    backup_format = str(tmp_path / "backup" / "{session_id}_{timestamp}.json")
    store = JsonFileStateStore("s1", state_dir=str(tmp_path))
    client = StateStoreClient(store)

    assert await client.get() == {}
    await client.set({"destination": "Tokyo"})
    assert (tmp_path / "s1.json").exists()
    assert await client.get() == {"destination": "Tokyo"}

    # other sessions are isolated
    assert await StateStoreClient(JsonFileStateStore("s2", state_dir=str(tmp_path))).get() == {}

    backup = store.backup_state(backup_format)
    assert json.loads(open(backup, encoding="utf-8").read()) == {"destination": "Tokyo"}


def test_json_file_store_reset(tmp_path, monkeypatch):
    from src.statewise.config import constants

    monkeypatch.setitem(
        constants.store_settings,
        "backup_format",
        str(tmp_path / "backup" / "{session_id}_{timestamp}.json"),
    )
    store = JsonFileStateStore("s1", state_dir=str(tmp_path))
    store.save_state('{"a": 1}')

    backup = store.reset_state()

    assert backup
    assert store.load_state() is None
