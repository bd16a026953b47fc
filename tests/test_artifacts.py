"""Tests for local artifact storage."""
import pytest

from ai_sandbox.core.artifacts import ArtifactStore


def _store(tmp_path):
    return ArtifactStore(tmp_path / "images", tmp_path / "survival")


def test_paths_without_area_id(tmp_path):
    store = _store(tmp_path)
    assert store.path_for() == tmp_path / "images" / "generated.png"
    assert store.public_path() == "/images/generated.png"


def test_paths_with_area_id(tmp_path):
    store = _store(tmp_path)
    assert store.path_for("42") == tmp_path / "survival" / "area_42.png"
    assert store.public_path("42") == "/survival/area_42.png"


def test_save_creates_missing_directories(tmp_path):
    store = _store(tmp_path)
    path = store.save(b"first", "7")

    assert path.exists()
    assert path.read_bytes() == b"first"
    assert not (tmp_path / "images").exists()


def test_save_twice_keeps_one_file_with_latest_bytes(tmp_path):
    store = _store(tmp_path)
    first = store.save(b"first")
    second = store.save(b"second")

    assert first == second
    assert second.read_bytes() == b"second"
    assert list((tmp_path / "images").iterdir()) == [second]


def test_save_shorter_payload_leaves_no_trailing_bytes(tmp_path):
    store = _store(tmp_path)
    store.save(b"a much longer first payload")
    path = store.save(b"short")
    assert path.read_bytes() == b"short"


def test_ensure_dirs(tmp_path):
    store = _store(tmp_path)
    store.ensure_dirs()
    assert (tmp_path / "images").is_dir()
    assert (tmp_path / "survival").is_dir()


def test_save_refuses_path_outside_survival_dir(tmp_path):
    store = _store(tmp_path)
    with pytest.raises(ValueError, match="area_id"):
        store.save(b"data", "../escaped")

    assert list(tmp_path.rglob("*escaped*")) == []
