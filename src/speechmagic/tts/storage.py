"""
Ephemeral Artifact Storage.

Generated MP3 files live flat in one directory:

    {base_dir}/
        speech_2024-05-02T10-14-03-512000Z_hello_world_a1b2c3d4.mp3
        ...

Files are best-effort: they are deleted together with their ledger
record, removed by the cleanup command once older than the configured
age, or lost with the host. Nothing here is durable storage.

Guarantees:
    - Writes are atomic (temp file, then rename); readers never see a
      partially written artifact
    - An existing artifact is never overwritten (StorageError instead)
    - Download names are validated before any filesystem access
    - delete() never raises; failures are logged and reported as False

Usage:
    store = FileStore("./temp")
    path = store.write(audio_bytes, "speech_..._a1b2c3d4")
    chunks, size = store.open_stream("speech_..._a1b2c3d4.mp3")
    store.delete("speech_..._a1b2c3d4.mp3")
"""
from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Any, BinaryIO, Dict, Iterator, Tuple

from speechmagic.core.config import Defaults
from speechmagic.core.logging import get_logger, info, verbose, warn
from speechmagic.services.errors import NotFoundError, StorageError
from speechmagic.services.validators import validate_download_filename
from speechmagic.utils.timeit import timeit

_LOG = get_logger("speechmagic.storage")

_TMP_SUFFIX = ".tmp"


def _iter_file(fh: BinaryIO, chunk_size: int) -> Iterator[bytes]:
    try:
        while True:
            chunk = fh.read(chunk_size)
            if not chunk:
                break
            yield chunk
    finally:
        fh.close()


class FileStore:
    """
    Flat directory of generated audio artifacts.

    Args:
        base_dir: Storage directory, created on first write.
        extension: Artifact suffix including the dot.
        chunk_size: Read size used when streaming downloads.
    """

    def __init__(
        self,
        base_dir: str = Defaults.STORAGE_BASE_DIR,
        extension: str = Defaults.STORAGE_EXTENSION,
        chunk_size: int = Defaults.STORAGE_CHUNK_SIZE,
    ):
        self._base_dir = Path(base_dir)
        self._extension = extension
        self._chunk_size = chunk_size

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    @property
    def extension(self) -> str:
        return self._extension

    def artifact_name(self, filename: str) -> str:
        """Filename with the artifact extension appended once."""
        return filename if filename.endswith(self._extension) else f"{filename}{self._extension}"

    def _path_for(self, name: str) -> Path:
        path = self._base_dir / name
        # validate_download_filename already rejects separators; this guards direct callers
        if path.resolve().parent != self._base_dir.resolve():
            raise StorageError("Artifact path escapes storage directory", {"filename": name})
        return path

    # =========================================================================
    # Write
    # =========================================================================

    def write(self, data: bytes, filename: str) -> Path:
        """
        Atomically persist `data` as `<filename><extension>`.

        Args:
            data: Encoded audio.
            filename: Name with or without the extension.

        Returns:
            Path of the written artifact.

        Raises:
            StorageError: Directory not writable, disk full, or the
                artifact already exists.
        """
        name = self.artifact_name(filename)
        path = self._path_for(name)
        tmp = path.with_name(name + _TMP_SUFFIX)

        try:
            self._base_dir.mkdir(parents=True, exist_ok=True)
            if path.exists():
                raise StorageError("Artifact already exists", {"filename": name})
            with timeit("storage_write") as t:
                tmp.write_bytes(data)
                tmp.replace(path)
        except StorageError:
            raise
        except OSError as e:
            warn(_LOG, "storage_write_error", filename=name, error=str(e))
            try:
                tmp.unlink(missing_ok=True)
            except OSError as cleanup_error:
                verbose(_LOG, "storage_tmp_cleanup_failed", filename=name, error=str(cleanup_error))
            raise StorageError(details={"filename": name, "error": str(e)}) from e

        verbose(_LOG, "artifact_written", filename=name, bytes=len(data), seconds=round(t.seconds, 4))
        return path

    # =========================================================================
    # Read
    # =========================================================================

    def open_stream(self, filename: str) -> Tuple[Iterator[bytes], int]:
        """
        Open an artifact for streaming.

        The name is validated first, so a rejected name never reaches
        the filesystem.

        Returns:
            (chunk iterator, size in bytes). The iterator closes the file
            when exhausted.

        Raises:
            InvalidFilenameError: Traversal tokens or wrong extension.
            NotFoundError: Artifact does not exist.
        """
        validate_download_filename(filename, self._extension)
        path = self._path_for(filename)
        try:
            fh = path.open("rb")
        except (FileNotFoundError, IsADirectoryError):
            raise NotFoundError("Audio file not found", {"filename": filename})
        size = os.fstat(fh.fileno()).st_size
        return _iter_file(fh, self._chunk_size), size

    def exists(self, filename: str) -> bool:
        return (self._base_dir / self.artifact_name(filename)).is_file()

    # =========================================================================
    # Delete / cleanup
    # =========================================================================

    def delete(self, filename: str) -> bool:
        """
        Best-effort removal of one artifact.

        Returns:
            True if a file was removed, False if it was missing or could
            not be removed (the failure is logged).
        """
        name = self.artifact_name(filename)
        try:
            path = self._path_for(name)
            path.unlink()
        except FileNotFoundError:
            verbose(_LOG, "artifact_already_gone", filename=name)
            return False
        except (OSError, StorageError) as e:
            warn(_LOG, "artifact_delete_failed", filename=name, error=str(e))
            return False
        verbose(_LOG, "artifact_deleted", filename=name)
        return True

    def _artifacts(self) -> Iterator[Path]:
        if not self._base_dir.exists():
            return iter(())
        return (p for p in self._base_dir.iterdir() if p.is_file() and p.name.endswith(self._extension))

    def cleanup_expired(self, max_age_seconds: int) -> Dict[str, int]:
        """
        Remove artifacts older than `max_age_seconds` (by mtime).

        Ledger rows pointing at removed files stay; their downloads
        answer 404 from then on.

        Returns:
            Dict with files_removed, bytes_freed and errors.
        """
        cutoff = time.time() - max_age_seconds
        files_removed = 0
        bytes_freed = 0
        errors = 0

        for path in list(self._artifacts()):
            try:
                st = path.stat()
                if st.st_mtime < cutoff:
                    path.unlink()
                    files_removed += 1
                    bytes_freed += st.st_size
            except OSError as e:
                errors += 1
                verbose(_LOG, "cleanup_file_error", file=path.name, error=str(e))

        if files_removed:
            info(_LOG, "storage_cleanup", files_removed=files_removed, bytes_freed=bytes_freed, errors=errors)
        return {"files_removed": files_removed, "bytes_freed": bytes_freed, "errors": errors}

    def get_storage_info(self) -> Dict[str, Any]:
        """
        Current usage, for health checks.

        Returns:
            Dict with base_dir, writable, file_count, total_bytes, oldest_file_age.
        """
        file_count = 0
        total_bytes = 0
        oldest_mtime = time.time()

        for path in self._artifacts():
            try:
                st = path.stat()
            except OSError:
                continue
            file_count += 1
            total_bytes += st.st_size
            oldest_mtime = min(oldest_mtime, st.st_mtime)

        probe_dir = self._base_dir if self._base_dir.exists() else self._base_dir.parent
        return {
            "base_dir": str(self._base_dir),
            "writable": os.access(probe_dir if str(probe_dir) else ".", os.W_OK),
            "file_count": file_count,
            "total_bytes": total_bytes,
            "oldest_file_age": int(time.time() - oldest_mtime) if file_count else 0,
        }
