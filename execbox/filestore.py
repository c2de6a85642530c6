"""Stores for files kept between runs, addressed by generated ids."""

from __future__ import annotations

import abc
import base64
import os
import secrets
import threading
import time
from typing import BinaryIO, Callable, Optional

from execbox.files import FileInput

_RAND_ID_LENGTH = 5
_ID_ATTEMPTS = 50


class UniqueIDError(Exception):
    """Raised when no unused id could be generated."""

    def __init__(self) -> None:
        super().__init__(f"unique id does not exists after tried {_ID_ATTEMPTS} times")


class FileStore(abc.ABC):
    """A place to keep files under generated ids."""

    @abc.abstractmethod
    def add(self, name: str, path: str) -> str:
        """Register the file at ``path`` under ``name`` and return its id."""

    @abc.abstractmethod
    def remove(self, file_id: str) -> bool:
        """Delete a file by id; return whether it existed."""

    @abc.abstractmethod
    def get(self, file_id: str) -> Optional[tuple[str, FileInput]]:
        """Return (name, file) for an id, or None if it does not exist."""

    @abc.abstractmethod
    def list(self) -> dict[str, str]:
        """Return all ids mapped to their original names."""

    @abc.abstractmethod
    def new(self) -> BinaryIO:
        """Create a new empty file in the store, open for read and write."""


def generate_id() -> str:
    """Return a random base32 id."""
    return base64.b32encode(secrets.token_bytes(_RAND_ID_LENGTH)).decode("ascii")


def generate_unique_id(is_exists: Callable[[str], bool]) -> str:
    """Return a random id for which ``is_exists`` is false."""
    for _ in range(_ID_ATTEMPTS):
        candidate = generate_id()
        if not is_exists(candidate):
            return candidate
    raise UniqueIDError()


class LocalFileStore(FileStore):
    """A file store backed by one local directory."""

    def __init__(self, directory: str) -> None:
        self._dir = os.path.normpath(directory)
        self._names: dict[str, str] = {}
        self._lock = threading.Lock()

    def add(self, name: str, path: str) -> str:
        with self._lock:
            path = os.path.normpath(path)
            if os.path.dirname(path) != self._dir:
                raise ValueError(f"add: {path} does not have prefix {self._dir}")
            file_id = os.path.basename(path)
            self._names[file_id] = name
            return file_id

    def get(self, file_id: str) -> Optional[tuple[str, FileInput]]:
        with self._lock:
            path = os.path.join(self._dir, file_id)
            if not os.path.exists(path):
                return None
            return self._names.get(file_id, file_id), FileInput(path)

    def remove(self, file_id: str) -> bool:
        with self._lock:
            self._names.pop(file_id, None)
            path = os.path.join(self._dir, file_id)
            if not os.path.exists(path):
                return False
            try:
                os.remove(path)
            except OSError:
                pass
            return True

    def list(self) -> dict[str, str]:
        with self._lock:
            try:
                entries = os.listdir(self._dir)
            except OSError:
                return {}
            return {entry: self._names.get(entry, "") for entry in entries}

    def new(self) -> BinaryIO:
        file_id = generate_unique_id(self._exists)
        path = os.path.join(self._dir, file_id)
        return open(path, "w+b", opener=lambda p, flags: os.open(p, flags, 0o644))

    def _exists(self, file_id: str) -> bool:
        try:
            os.stat(os.path.join(self._dir, file_id))
        except FileNotFoundError:
            return False
        return True


class TimeoutFileStore(FileStore):
    """Wraps a store and removes files not accessed within ``timeout`` seconds."""

    def __init__(self, store: FileStore, timeout: float, check_interval: float) -> None:
        self._store = store
        self._timeout = timeout
        self._interval = check_interval
        self._lock = threading.Lock()
        self._touched: dict[str, float] = {}
        self._stop = threading.Event()
        self.check_timeout()
        self._thread = threading.Thread(target=self._loop, daemon=True)
        self._thread.start()

    def _loop(self) -> None:
        while not self._stop.wait(self._interval):
            self.check_timeout()

    def check_timeout(self) -> None:
        """Remove every tracked file whose last access is older than the timeout."""
        with self._lock:
            now = time.monotonic()
            expired = sorted(
                (stamp, file_id)
                for file_id, stamp in self._touched.items()
                if stamp + self._timeout < now
            )
            for _, file_id in expired:
                self._store.remove(file_id)
                del self._touched[file_id]

    def close(self) -> None:
        """Stop the background expiry thread."""
        self._stop.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join()

    def __enter__(self) -> "TimeoutFileStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def add(self, name: str, path: str) -> str:
        file_id = self._store.add(name, path)
        with self._lock:
            self._touched[file_id] = time.monotonic()
        return file_id

    def remove(self, file_id: str) -> bool:
        success = self._store.remove(file_id)
        with self._lock:
            self._touched.pop(file_id, None)
        return success

    def get(self, file_id: str) -> Optional[tuple[str, FileInput]]:
        found = self._store.get(file_id)
        with self._lock:
            if file_id in self._touched:
                self._touched[file_id] = time.monotonic()
        return found

    def list(self) -> dict[str, str]:
        return self._store.list()

    def new(self) -> BinaryIO:
        return self._store.new()