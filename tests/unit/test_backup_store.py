"""Unit tests for AudioBackupStore."""

import asyncio
import json
from pathlib import Path

import pytest

from barscribe.audio.wav import encode_wav
from barscribe.storage.backup_store import AudioBackupStore


@pytest.mark.unit
class TestAudioBackupStore:
    """Test cases for AudioBackupStore."""

    def test_initialization_creates_backups_dir(self, temp_data_dir):
        """Backups directory is created under the data directory."""
        store = AudioBackupStore(temp_data_dir)

        assert store.backups_dir == Path(temp_data_dir) / "backups"
        assert store.backups_dir.is_dir()

    def test_save_writes_audio_and_metadata(self, backup_store):
        """A saved record has both the WAV and its JSON sidecar."""
        audio = encode_wav([0.1, 0.2], 16000)
        record = asyncio.run(backup_store.save(audio, "interview-1", "q1"))

        assert record is not None
        assert record.session_id == "interview-1"
        assert record.parameter_id == "q1"
        assert record.mime_type == "audio/wav"
        assert record.audio_bytes == audio

        session_dir = backup_store.backups_dir / "interview-1"
        assert (session_dir / f"{record.timestamp}.wav").read_bytes() == audio
        metadata = json.loads((session_dir / f"{record.timestamp}.json").read_text())
        assert metadata["parameter_id"] == "q1"
        assert metadata["size_bytes"] == len(audio)

    def test_get_by_session_returns_only_that_session(self, backup_store):
        """Records are grouped per session."""
        async def scenario():
            await backup_store.save(b"a", "s1", "q1")
            await backup_store.save(b"b", "s1", "q2")
            await backup_store.save(b"c", "s2", "q1")
            return await backup_store.get_by_session("s1"), await backup_store.get_by_session("missing")

        records, missing = asyncio.run(scenario())

        assert sorted(r.audio_bytes for r in records) == [b"a", b"b"]
        assert missing == []

    def test_get_by_question_orders_by_timestamp(self, backup_store):
        """Records come back oldest first whatever the insertion order."""
        for timestamp in (5000, 1000, 3000, 2000):
            backup_store._next_timestamp = lambda ts=timestamp: ts
            backup_store.save_sync(str(timestamp).encode(), "s1", "q1")
        backup_store.save_sync(b"other", "s1", "q2")

        records = asyncio.run(backup_store.get_by_question("s1", "q1"))

        assert [r.timestamp for r in records] == [1000, 2000, 3000, 5000]
        assert [r.audio_bytes for r in records] == [b"1000", b"2000", b"3000", b"5000"]

    def test_timestamps_unique_within_same_millisecond(self, backup_store, monkeypatch):
        """Saves in the same millisecond still get distinct keys."""
        monkeypatch.setattr("barscribe.storage.backup_store.time.time", lambda: 1700000000.0)

        async def scenario():
            return await asyncio.gather(*(backup_store.save(b"x", "s1", "q1") for _ in range(5)))

        records = asyncio.run(scenario())
        timestamps = [r.timestamp for r in records]

        assert len(set(timestamps)) == 5
        assert len(asyncio.run(backup_store.get_by_question("s1", "q1"))) == 5

    def test_existing_file_is_not_overwritten(self, backup_store, monkeypatch):
        """A leftover file with the same key is skipped, not clobbered."""
        monkeypatch.setattr("barscribe.storage.backup_store.time.time", lambda: 1700000000.0)
        session_dir = backup_store.backups_dir / "s1"
        session_dir.mkdir(parents=True)
        (session_dir / "1700000000000.wav").write_bytes(b"old")

        record = backup_store.save_sync(b"new", "s1", "q1")

        assert record.timestamp == 1700000000001
        assert (session_dir / "1700000000000.wav").read_bytes() == b"old"

    def test_session_ids_cannot_escape_backups_dir(self, backup_store):
        """Path-like session ids stay inside the backups directory."""
        for session_id in ("..", ".", "../evil", "a/b", ""):
            record = backup_store.save_sync(b"x", session_id, "q1")
            assert record is not None
            assert backup_store.get_by_session_sync(session_id)[0].session_id == session_id

        children = [p.parent for p in backup_store.backups_dir.glob("*/*.wav")]
        assert all(parent.parent == backup_store.backups_dir for parent in children)

    def test_save_failure_is_logged_not_raised(self, backup_store, monkeypatch):
        """A failed write returns None."""
        def broken(*args, **kwargs):
            raise OSError("disk full")
        monkeypatch.setattr(backup_store, "save_sync", broken)

        assert asyncio.run(backup_store.save(b"x", "s1", "q1")) is None

    def test_stats_and_clear_all(self, backup_store):
        """Stats count records and sizes; clear_all removes everything."""
        async def scenario():
            await backup_store.save(b"12345", "s1", "q1")
            await backup_store.save(b"123", "s2", "q1")
            before = await backup_store.stats()
            await backup_store.clear_all()
            after = await backup_store.stats()
            return before, after, await backup_store.get_by_session("s1")

        before, after, remaining = asyncio.run(scenario())

        assert before == {"count": 2, "total_size_bytes": 8}
        assert after == {"count": 0, "total_size_bytes": 0}
        assert remaining == []
        assert backup_store.backups_dir.is_dir()

    def test_corrupt_sidecar_does_not_hide_good_records(self, backup_store):
        """A half-written sidecar is skipped; the rest of the session stays readable."""
        good = backup_store.save_sync(b"good audio", "s1", "q1")
        session_dir = backup_store.backups_dir / "s1"
        (session_dir / "1.wav").write_bytes(b"orphan")
        (session_dir / "1.json").write_text("")
        (session_dir / "2.wav").write_bytes(b"orphan")
        (session_dir / "2.json").write_text('{"timestamp": 2}')

        records = asyncio.run(backup_store.get_by_question("s1", "q1"))

        assert [r.timestamp for r in records] == [good.timestamp]
        assert records[0].audio_bytes == b"good audio"
        assert backup_store.stats_sync() == {"count": 1, "total_size_bytes": len(b"good audio")}

    def test_sidecar_written_atomically(self, backup_store):
        """No temporary sidecar is left next to a saved record."""
        record = backup_store.save_sync(b"x", "s1", "q1")
        session_dir = backup_store.backups_dir / "s1"

        assert sorted(p.name for p in session_dir.iterdir()) == [
            f"{record.timestamp}.json", f"{record.timestamp}.wav"]
