import json

import pytest

from visionary.preferences import (
    CREDENTIAL_KEY,
    PROMPT_KEY,
    InMemoryPreferenceStore,
    JsonFilePreferenceStore,
    SessionPreferenceStore,
)


def test_in_memory_store_get_set_delete():
    store = InMemoryPreferenceStore()
    assert store.get(PROMPT_KEY) is None

    store.set(PROMPT_KEY, "Keep my nose")
    assert store.get(PROMPT_KEY) == "Keep my nose"

    store.delete(PROMPT_KEY)
    store.delete(PROMPT_KEY)
    assert store.get(PROMPT_KEY) is None


def test_json_store_survives_reload(tmp_path):
    path = tmp_path / "prefs" / "preferences.json"
    store = JsonFilePreferenceStore(str(path))
    store.set(PROMPT_KEY, "Softer jawline")

    reloaded = JsonFilePreferenceStore(str(path))

    assert reloaded.get(PROMPT_KEY) == "Softer jawline"
    assert json.loads(path.read_text()) == {PROMPT_KEY: "Softer jawline"}


def test_json_store_delete_is_persisted(tmp_path):
    path = tmp_path / "preferences.json"
    store = JsonFilePreferenceStore(str(path))
    store.set(PROMPT_KEY, "Softer jawline")
    store.delete(PROMPT_KEY)

    assert JsonFilePreferenceStore(str(path)).get(PROMPT_KEY) is None
    assert json.loads(path.read_text()) == {}


def test_json_store_refuses_api_key(tmp_path):
    path = tmp_path / "preferences.json"
    store = JsonFilePreferenceStore(str(path))

    with pytest.raises(ValueError):
        store.set(CREDENTIAL_KEY, "abc123")

    assert not path.exists()


def test_json_store_drops_api_key_already_on_disk(tmp_path):
    path = tmp_path / "preferences.json"
    path.write_text(json.dumps({CREDENTIAL_KEY: "abc123", PROMPT_KEY: "Softer jawline"}))

    store = JsonFilePreferenceStore(str(path))
    assert store.get(CREDENTIAL_KEY) is None
    assert store.get(PROMPT_KEY) == "Softer jawline"

    store.set(PROMPT_KEY, "Only the eyes")
    assert json.loads(path.read_text()) == {PROMPT_KEY: "Only the eyes"}


def test_json_store_ignores_corrupt_file(tmp_path):
    path = tmp_path / "preferences.json"
    path.write_text("{not json")

    store = JsonFilePreferenceStore(str(path))

    assert store.get(PROMPT_KEY) is None
    store.set(PROMPT_KEY, "fresh")
    assert json.loads(path.read_text()) == {PROMPT_KEY: "fresh"}


def test_json_store_ignores_non_object(tmp_path):
    path = tmp_path / "preferences.json"
    path.write_text('["a", "b"]')

    assert JsonFilePreferenceStore(str(path)).get(PROMPT_KEY) is None


def test_session_store_keeps_api_key_private(tmp_path):
    path = tmp_path / "preferences.json"
    shared = JsonFilePreferenceStore(str(path))
    mine, theirs = SessionPreferenceStore(shared), SessionPreferenceStore(shared)

    mine.set(CREDENTIAL_KEY, "abc123")
    mine.set(PROMPT_KEY, "Softer jawline")

    assert mine.get(CREDENTIAL_KEY) == "abc123"
    assert theirs.get(CREDENTIAL_KEY) is None
    assert theirs.get(PROMPT_KEY) == "Softer jawline"
    assert "abc123" not in path.read_text()

    mine.delete(CREDENTIAL_KEY)
    assert mine.get(CREDENTIAL_KEY) is None
