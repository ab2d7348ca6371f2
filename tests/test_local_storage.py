from app.services.local_storage import (
    JsonFileStorage,
    MemoryStorage,
    NamespacedStorage,
    build_local_storage,
)

from conftest import BrokenStorage


def test_json_file_storage_survives_new_instance(tmp_path) -> None:
    path = tmp_path / "state" / "leads.json"
    JsonFileStorage(path).set_item("flor_last_lead_submit", "123")

    reopened = JsonFileStorage(path)
    assert reopened.get_item("flor_last_lead_submit") == "123"

    reopened.remove_item("flor_last_lead_submit")
    assert reopened.get_item("flor_last_lead_submit") is None
    assert list(path.parent.glob("*.tmp")) == []


def test_namespaced_storage_prefixes_keys() -> None:
    backend = MemoryStorage()
    storage = NamespacedStorage(backend, namespace="form_b_")
    storage.set("offline_leads", "[]")
    assert backend.get_item("form_b_offline_leads") == "[]"
    assert storage.get("offline_leads") == "[]"


def test_namespaced_storage_swallows_backend_errors(capsys) -> None:
    storage = NamespacedStorage(BrokenStorage())

    assert storage.get("x") is None
    assert storage.set("x", "1") is False
    assert storage.remove("x") is False
    assert "WARN" in capsys.readouterr().out


def test_corrupted_file_is_reported_as_missing(tmp_path) -> None:
    path = tmp_path / "leads.json"
    path.write_text("{nope", encoding="utf-8")
    storage = NamespacedStorage(JsonFileStorage(path))
    assert storage.get("offline_leads") is None


def test_build_local_storage_picks_backend(tmp_path) -> None:
    in_memory = build_local_storage("", "flor_")
    in_memory.set("a", "1")
    assert in_memory.get("a") == "1"

    on_disk = build_local_storage(str(tmp_path / "leads.json"), "flor_")
    on_disk.set("a", "2")
    assert (tmp_path / "leads.json").exists()
