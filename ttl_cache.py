"""File-per-key TTL cache with optional GPG encryption.

Each key is stored as ``<key>.json`` (or ``<key>.json.gpg`` when encrypted)
holding a ``{"timestamp": ..., "data": ...}`` envelope. The cache is generic
over the stored value: callers pass ``encode``/``decode`` callables that map
their value type to JSON-compatible data and back.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Generic, Protocol, TypeVar

T = TypeVar("T")

LOGGER = logging.getLogger(__name__)

PLAIN_SUFFIX = ".json"
ENCRYPTED_SUFFIX = ".json.gpg"


class CacheError(RuntimeError):
    """Base class for cache failures that callers must see."""


class CacheWriteError(CacheError):
    pass


class CacheDecryptionError(CacheError):
    """An encrypted entry exists on disk but could not be decrypted."""


class CommandRunner(Protocol):
    def run(self, args: list[str]) -> bytes: ...

    def run_with_input(self, args: list[str], data: bytes) -> bytes: ...


class SubprocessRunner:
    """Runs external commands, raising ``subprocess.CalledProcessError`` on failure."""

    def run(self, args: list[str]) -> bytes:
        completed = subprocess.run(args, check=True, capture_output=True)
        return completed.stdout

    def run_with_input(self, args: list[str], data: bytes) -> bytes:
        completed = subprocess.run(args, input=data, check=True, capture_output=True)
        return completed.stdout


@dataclass(frozen=True, slots=True)
class CacheStats:
    file_count: int
    total_bytes: int


def user_cache_dir() -> Path:
    base = os.getenv("XDG_CACHE_HOME")
    return Path(base) if base else Path.home() / ".cache"


def _identity(value: Any) -> Any:
    return value


class TTLCache(Generic[T]):
    """Key/value store persisted as one JSON envelope file per key."""

    def __init__(
        self,
        directory: Path | str,
        *,
        encode: Callable[[T], Any] = _identity,
        decode: Callable[[Any], T] = _identity,
        gpg_recipient: str | None = None,
        runner: CommandRunner | None = None,
    ) -> None:
        self.directory = Path(directory)
        self._encode = encode
        self._decode = decode
        self.gpg_recipient = gpg_recipient
        self.runner: CommandRunner = runner or SubprocessRunner()

    @classmethod
    def for_app(cls, app_name: str, **kwargs: Any) -> TTLCache[T]:
        """Create a cache rooted at ``<user cache dir>/<app_name>``."""
        return cls(user_cache_dir() / app_name, **kwargs)

    @property
    def encrypted(self) -> bool:
        return bool(self.gpg_recipient)

    def with_encryption(self, recipient: str) -> TTLCache[T]:
        self.gpg_recipient = recipient
        return self

    def path_for(self, key: str) -> Path:
        suffix = ENCRYPTED_SUFFIX if self.encrypted else PLAIN_SUFFIX
        return self.directory / f"{key}{suffix}"

    def get(self, key: str, ttl: timedelta) -> T | None:
        """Return the cached value, or None on miss, corruption or expiry.

        Raises:
            CacheDecryptionError: the encrypted entry exists but gpg could not
                decrypt it.
        """
        path = self.path_for(key)
        raw = self._read(path)
        if raw is None:
            return None

        try:
            envelope = json.loads(raw)
            timestamp = _parse_timestamp(envelope["timestamp"])
            payload = envelope["data"]
        except (ValueError, KeyError, TypeError):
            LOGGER.debug("Cache entry %s is corrupt, treating as miss", path)
            return None

        if datetime.now(UTC) - timestamp > ttl:
            LOGGER.debug("Cache entry %s expired", path)
            return None

        try:
            return self._decode(payload)
        except (ValueError, KeyError, TypeError, AttributeError):
            LOGGER.debug("Cache entry %s did not decode, treating as miss", path)
            return None

    def set(self, key: str, value: T) -> None:
        """Write ``value`` under ``key``, replacing any previous entry."""
        envelope = {"timestamp": datetime.now(UTC).isoformat(), "data": self._encode(value)}
        try:
            body = json.dumps(envelope).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise CacheWriteError(f"Cache value for key={key} is not serializable: {exc}") from exc

        path = self.path_for(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CacheWriteError(f"Failed to create cache dir {self.directory}: {exc}") from exc

        if self.encrypted:
            args = ["gpg", "--encrypt", "--recipient", str(self.gpg_recipient), "--output", str(path), "--yes"]
            try:
                self.runner.run_with_input(args, body)
            except subprocess.CalledProcessError as exc:
                stderr = (exc.stderr or b"").decode("utf-8", errors="replace").strip()
                raise CacheWriteError(f"gpg encryption failed: {stderr}") from exc
            except OSError as exc:
                raise CacheWriteError(f"gpg encryption failed: {exc}") from exc
            return

        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
            with os.fdopen(fd, "wb") as fh:
                fh.write(body)
            os.replace(tmp_name, path)
        except OSError as exc:
            raise CacheWriteError(f"Failed to write cache entry {path}: {exc}") from exc

    def clear(self) -> None:
        """Delete the whole cache directory. Missing directory is not an error."""
        try:
            shutil.rmtree(self.directory)
        except FileNotFoundError:
            pass

    def stats(self) -> CacheStats:
        if not self.directory.is_dir():
            return CacheStats(file_count=0, total_bytes=0)

        count = 0
        size = 0
        for entry in self.directory.iterdir():
            try:
                if not entry.is_file():
                    continue
                size += entry.stat().st_size
            except OSError:
                continue
            count += 1
        return CacheStats(file_count=count, total_bytes=size)

    def _read(self, path: Path) -> bytes | None:
        if not self.encrypted:
            try:
                return path.read_bytes()
            except FileNotFoundError:
                return None
            except OSError as exc:
                LOGGER.warning("Cache read failed for %s: %s", path, exc)
                return None

        if not path.exists():
            return None
        try:
            return self.runner.run(["gpg", "--decrypt", "--quiet", str(path)])
        except (subprocess.CalledProcessError, OSError) as exc:
            if not path.exists():
                return None
            raise CacheDecryptionError(f"gpg decryption failed for {path}: {exc}") from exc


def _parse_timestamp(raw: Any) -> datetime:
    if not isinstance(raw, str):
        raise ValueError("timestamp must be a string")
    parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)
