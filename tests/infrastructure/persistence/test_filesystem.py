"""Tests for FilesystemSessionStore - persistent session checkpoints."""

import json

import pytest

from phaseflow.domain.exceptions import SessionNotFoundError
from phaseflow.domain.session import SessionStatus
from phaseflow.infrastructure.persistence.filesystem import FilesystemSessionStore


@pytest.fixture
def fs_store(tmp_path):  # noqa: ANN001
    """Create a FilesystemSessionStore with temporary directory."""
    return FilesystemSessionStore(tmp_path / "store")


class TestFilesystemSessionStoreInit:
    """Tests for FilesystemSessionStore initialization."""

    def test_init_creates_directories(self, tmp_path) -> None:  # noqa: ANN001
        """Initialization creates base and sessions directories."""
        _store = FilesystemSessionStore(tmp_path / "store")

        assert (tmp_path / "store").is_dir()
        assert (tmp_path / "store" / "sessions").is_dir()

    def test_init_loads_existing_index(self, tmp_path, paused_session) -> None:  # noqa: ANN001
        """A second store over the same directory sees earlier sessions."""
        FilesystemSessionStore(tmp_path / "store").save(paused_session)

        reopened = FilesystemSessionStore(tmp_path / "store")

        assert reopened.list_sessions() == [paused_session.session_id]


class TestFilesystemSessionStoreSave:
    """Tests for saving checkpoints."""

    def test_save_uses_prefix_directory(self, fs_store, tmp_path, paused_session) -> None:  # noqa: ANN001
        """Session files live under a two-character prefix directory."""
        session_id = paused_session.session_id
        fs_store.save(paused_session)

        path = tmp_path / "store" / "sessions" / session_id[:2] / f"{session_id}.json"
        assert path.exists()
        assert json.loads(path.read_text())["status"] == "paused"

    def test_save_updates_index(self, fs_store, tmp_path, paused_session) -> None:  # noqa: ANN001
        """index.json records definition, status and path."""
        fs_store.save(paused_session)

        index = json.loads((tmp_path / "store" / "index.json").read_text())
        entry = index["sessions"][paused_session.session_id]
        assert entry["definition_id"] == "bugfix"
        assert entry["status"] == "paused"
        assert entry["path"].startswith("sessions/")

    def test_save_overwrites_checkpoint(self, fs_store, paused_session) -> None:
        """Saving again replaces the previous checkpoint."""
        fs_store.save(paused_session)
        paused_session.transition(SessionStatus.ABORTED)
        fs_store.save(paused_session)

        assert fs_store.load(paused_session.session_id).status is SessionStatus.ABORTED
        assert fs_store.list_sessions(SessionStatus.PAUSED) == []

    def test_no_temp_files_left(self, fs_store, tmp_path, paused_session) -> None:  # noqa: ANN001
        """Atomic writes clean up their temp files."""
        fs_store.save(paused_session)

        assert list((tmp_path / "store").rglob("*.tmp")) == []

    def test_unserializable_output_rejected(self, fs_store, paused_session) -> None:
        """Task outputs must be JSON-serializable."""
        paused_session.artifacts.write("review", "bad", {"obj": object()})

        with pytest.raises(TypeError):
            fs_store.save(paused_session)


class TestFilesystemSessionStoreLoad:
    """Tests for loading and deleting checkpoints."""

    def test_load_round_trip(self, fs_store, paused_session) -> None:
        """A loaded session matches what was saved."""
        fs_store.save(paused_session)

        loaded = fs_store.load(paused_session.session_id)

        assert loaded.current_phase_index == 2
        assert loaded.artifacts.get("testing.run-tests").revision == 2
        assert loaded.revision_feedback == paused_session.revision_feedback

    def test_load_missing(self, fs_store) -> None:
        """Unknown ids raise SessionNotFoundError."""
        with pytest.raises(SessionNotFoundError):
            fs_store.load("nonexistent")

    def test_delete_removes_file_and_entry(self, fs_store, tmp_path, paused_session) -> None:  # noqa: ANN001
        """delete() removes both the file and the index entry."""
        fs_store.save(paused_session)
        fs_store.delete(paused_session.session_id)

        assert fs_store.list_sessions() == []
        assert list((tmp_path / "store" / "sessions").rglob("*.json")) == []
        with pytest.raises(SessionNotFoundError):
            fs_store.load(paused_session.session_id)
