"""Filesystem-backed object store for single-host deployments."""

from __future__ import annotations

from collections.abc import Callable
import logging
import os
from pathlib import Path
import tempfile

from app.domain.errors import RecordNotFoundError, StoreUnavailableError
from app.domain.paths import next_free_key, with_collision_suffix

logger = logging.getLogger("storage")

_MAX_CLAIM_ATTEMPTS = 1000


class LocalObjectStore:
    """Keys map to relative paths under ``base_path``.

    New names are only ever claimed with an exclusive create (``open("xb")``
    or ``os.link``), so a name taken by a concurrent writer is never replaced.
    """

    def __init__(self, base_path: str | Path) -> None:
        self.base_path = Path(base_path).resolve()
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreUnavailableError(f"cannot create store directory {self.base_path}: {exc}") from exc
        logger.info("local object store initialized at %s", self.base_path)

    def _resolve(self, key: str) -> Path:
        clean = Path(key.lstrip("/"))
        full_path = (self.base_path / clean).resolve()
        try:
            full_path.relative_to(self.base_path)
        except ValueError:
            raise ValueError(f"storage key escapes the store root: {key}") from None
        return full_path

    def _exists(self, key: str) -> bool:
        return self._resolve(key).is_file()

    def _claim(self, key: str, create: Callable[[Path], None]) -> str:
        """Create ``key`` or the next free suffixed name; return the key used."""
        candidate = next_free_key(key, self._exists)
        for attempt in range(1, _MAX_CLAIM_ATTEMPTS + 1):
            path = self._resolve(candidate)
            path.parent.mkdir(parents=True, exist_ok=True)
            try:
                create(path)
                return candidate
            except FileExistsError:
                candidate = next_free_key(with_collision_suffix(key, attempt), self._exists)
        raise StoreUnavailableError(f"no free key left for {key}")

    def write(self, *, key: str, payload: bytes) -> str:
        def create(path: Path) -> None:
            with path.open("xb") as handle:
                handle.write(payload)

        try:
            return self._claim(key, create)
        except OSError as exc:
            raise StoreUnavailableError(f"write failed for {key}: {exc}") from exc

    def rewrite(self, *, key: str, payload: bytes) -> None:
        path = self._resolve(key)
        if not path.is_file():
            raise RecordNotFoundError(key)
        try:
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".rewrite-")
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
            os.replace(tmp_name, path)
        except OSError as exc:
            raise StoreUnavailableError(f"rewrite failed for {key}: {exc}") from exc

    def list_by_prefix(self, *, prefix: str) -> list[str]:
        folder, _, _ = prefix.rpartition("/")
        search_dir = self._resolve(folder) if folder else self.base_path
        if not search_dir.is_dir():
            return []
        keys: list[str] = []
        try:
            for path in search_dir.rglob("*"):
                if not path.is_file() or path.name.startswith(".rewrite-"):
                    continue
                key = path.relative_to(self.base_path).as_posix()
                if key.startswith(prefix):
                    keys.append(key)
        except OSError as exc:
            raise StoreUnavailableError(f"listing failed for {prefix}: {exc}") from exc
        return sorted(keys)

    def read(self, *, key: str) -> bytes:
        path = self._resolve(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise RecordNotFoundError(key) from None
        except OSError as exc:
            raise StoreUnavailableError(f"read failed for {key}: {exc}") from exc

    def move(self, *, from_key: str, to_key: str) -> str:
        source = self._resolve(from_key)
        if not source.is_file():
            raise RecordNotFoundError(from_key)
        if from_key == to_key:
            return from_key
        try:
            # link fails with FileExistsError instead of replacing the target.
            actual_key = self._claim(to_key, lambda target: os.link(source, target))
        except FileNotFoundError:
            raise RecordNotFoundError(from_key) from None
        except OSError as exc:
            raise StoreUnavailableError(f"move failed for {from_key}: {exc}") from exc
        try:
            source.unlink()
        except FileNotFoundError:
            # A concurrent mover got there first; only one of us keeps the record.
            self._resolve(actual_key).unlink(missing_ok=True)
            raise RecordNotFoundError(from_key) from None
        except OSError as exc:
            self._resolve(actual_key).unlink(missing_ok=True)
            raise StoreUnavailableError(f"move failed for {from_key}: {exc}") from exc
        return actual_key

    def copy(self, *, from_key: str, to_key: str) -> str:
        payload = self.read(key=from_key)

        def create(path: Path) -> None:
            with path.open("xb") as handle:
                handle.write(payload)

        try:
            return self._claim(to_key, create)
        except OSError as exc:
            raise StoreUnavailableError(f"copy failed for {from_key}: {exc}") from exc

    def delete(self, *, key: str) -> None:
        try:
            self._resolve(key).unlink(missing_ok=True)
        except OSError as exc:
            raise StoreUnavailableError(f"delete failed for {key}: {exc}") from exc
