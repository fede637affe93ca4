"""Durable local backup of every recorded audio segment."""

import asyncio
import functools
import json
import logging
import os
import shutil
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from ..exceptions import BackupStoreError
from ..models.backup import BackupRecord
from ..models.session import WAV_MIME_TYPE

logger = logging.getLogger(__name__)


class AudioBackupStore:
    """Stores recordings on disk, keyed by timestamp and grouped by session.

    Layout::

        <data_dir>/backups/<session>/<timestamp>.wav
        <data_dir>/backups/<session>/<timestamp>.json

    The JSON sidecar is written after the audio, so a record only exists once
    both files are complete.
    """

    def __init__(self, data_dir: str = "./data"):
        """Initialize backup store.

        Args:
            data_dir: Base directory for storing all data
        """
        self.data_dir = Path(data_dir)
        self.backups_dir = self.data_dir / "backups"
        self.backups_dir.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._last_timestamp = 0

        logger.info(f"AudioBackupStore initialized with backups dir: {self.backups_dir}")

    # ------------------------------------------------------------------
    # Async API
    # ------------------------------------------------------------------
    async def save(self, audio_bytes: bytes, session_id: str, parameter_id: str,
                   mime_type: str = WAV_MIME_TYPE) -> Optional[BackupRecord]:
        """Persist one recording. Never raises; failures are logged.

        Returns:
            The stored record, or None if the write failed
        """
        try:
            record = await self._run(self.save_sync, audio_bytes, session_id, parameter_id, mime_type)
        except Exception as e:
            logger.error(f"Failed to save audio backup for session {session_id}, "
                         f"param {parameter_id}: {e}", exc_info=True)
            return None
        logger.info(f"[Backup] Saved audio for session {session_id}, param {parameter_id} "
                    f"({len(audio_bytes)} bytes)")
        return record

    async def get_by_session(self, session_id: str) -> List[BackupRecord]:
        """All records of a session, in no particular order."""
        return await self._run(self.get_by_session_sync, session_id)

    async def get_by_question(self, session_id: str, parameter_id: str) -> List[BackupRecord]:
        """Records of one question, oldest first."""
        records = await self.get_by_session(session_id)
        return sorted(
            (r for r in records if r.parameter_id == parameter_id),
            key=lambda r: r.timestamp,
        )

    async def clear_all(self) -> None:
        """Irreversibly delete every backup."""
        await self._run(self.clear_all_sync)
        logger.info("[Backup] All audio backups cleared.")

    async def stats(self) -> Dict[str, int]:
        """Record count and total audio size."""
        return await self._run(self.stats_sync)

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args))

    # ------------------------------------------------------------------
    # Blocking implementation
    # ------------------------------------------------------------------
    def save_sync(self, audio_bytes: bytes, session_id: str, parameter_id: str,
                  mime_type: str = WAV_MIME_TYPE) -> BackupRecord:
        session_path = self._session_path(session_id)
        session_path.mkdir(parents=True, exist_ok=True)

        while True:
            timestamp = self._next_timestamp()
            audio_path = session_path / f"{timestamp}.wav"
            try:
                with open(audio_path, "xb") as f:
                    f.write(audio_bytes)
                break
            except FileExistsError:
                # Left behind by an earlier process within the same millisecond
                continue

        metadata = {
            "timestamp": timestamp,
            "session_id": session_id,
            "parameter_id": parameter_id,
            "mime_type": mime_type,
            "size_bytes": len(audio_bytes),
        }
        # Readers only ever see a complete sidecar
        info_path = session_path / f"{timestamp}.json"
        tmp_path = info_path.with_name(info_path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(metadata, f, indent=2)
        os.replace(tmp_path, info_path)

        return BackupRecord(
            timestamp=timestamp,
            session_id=session_id,
            parameter_id=parameter_id,
            audio_bytes=audio_bytes,
            mime_type=mime_type,
        )

    def get_by_session_sync(self, session_id: str) -> List[BackupRecord]:
        session_path = self._session_path(session_id)
        if not session_path.is_dir():
            return []
        records = []
        for info_file in session_path.glob("*.json"):
            try:
                records.append(self._load_record(info_file))
            except BackupStoreError as e:
                logger.warning(f"Skipping backup record: {e}")
        return records

    def clear_all_sync(self) -> None:
        with self._lock:
            if self.backups_dir.exists():
                shutil.rmtree(self.backups_dir)
            self.backups_dir.mkdir(parents=True, exist_ok=True)

    def stats_sync(self) -> Dict[str, int]:
        count = 0
        total_size = 0
        for info_file in self.backups_dir.glob("*/*.json"):
            try:
                self._read_metadata(info_file)
                size = info_file.with_suffix(".wav").stat().st_size
            except (BackupStoreError, OSError) as e:
                logger.warning(f"Skipping backup record in stats: {e}")
                continue
            count += 1
            total_size += size
        return {"count": count, "total_size_bytes": total_size}

    def _read_metadata(self, info_file: Path) -> Dict[str, Any]:
        try:
            with open(info_file, "r", encoding="utf-8") as f:
                metadata = json.load(f)
        except (OSError, ValueError) as e:
            raise BackupStoreError(f"Unreadable backup record {info_file}: {e}") from e
        if not isinstance(metadata, dict) or not {"timestamp", "session_id", "parameter_id"} <= metadata.keys():
            raise BackupStoreError(f"Incomplete backup record {info_file}")
        return metadata

    def _load_record(self, info_file: Path) -> BackupRecord:
        metadata = self._read_metadata(info_file)
        try:
            audio_bytes = info_file.with_suffix(".wav").read_bytes()
            timestamp = int(metadata["timestamp"])
        except (OSError, TypeError, ValueError) as e:
            raise BackupStoreError(f"Unreadable backup record {info_file}: {e}") from e

        return BackupRecord(
            timestamp=timestamp,
            session_id=metadata["session_id"],
            parameter_id=metadata["parameter_id"],
            audio_bytes=audio_bytes,
            mime_type=metadata.get("mime_type", WAV_MIME_TYPE),
        )

    def _session_path(self, session_id: str) -> Path:
        name = quote(session_id, safe="").replace(".", "%2E")
        return self.backups_dir / (name or "%00")

    def _next_timestamp(self) -> int:
        """Strictly increasing millisecond key."""
        with self._lock:
            timestamp = max(int(time.time() * 1000), self._last_timestamp + 1)
            self._last_timestamp = timestamp
            return timestamp
