"""OS pipes, stored buffers and helpers that move data between files."""

from __future__ import annotations

import os
import shutil
import stat
import threading
from dataclasses import dataclass
from typing import BinaryIO, Callable

_CHUNK = 64 * 1024
_MEMFD_NAME = "input"
_memfd_disabled = threading.Event()

NewStoreFile = Callable[[], BinaryIO]


@dataclass
class PipeCollector:
    """A stored buffer that is filled from a pipe until ``done`` is set."""

    done: threading.Event
    buffer: BinaryIO
    limit: int
    name: str


@dataclass
class PipeBuffer:
    """The write end of a pipe whose data lands in a stored buffer."""

    w: BinaryIO
    buffer: BinaryIO
    done: threading.Event
    limit: int


def _copy_n(src, dst, limit: int) -> int:
    """Copy at most ``limit`` bytes from ``src`` to ``dst``; return the count."""
    copied = 0
    while copied < limit:
        chunk = src.read(min(_CHUNK, limit - copied))
        if not chunk:
            break
        dst.write(chunk)
        copied += len(chunk)
    return copied


def _drain(src) -> None:
    try:
        while src.read(_CHUNK):
            pass
    except OSError:
        pass


def _os_pipe() -> tuple[BinaryIO, BinaryIO]:
    r, w = os.pipe()
    return os.fdopen(r, "rb", buffering=0), os.fdopen(w, "wb", buffering=0)


def new_pipe(writer, limit: int) -> tuple[threading.Event, BinaryIO]:
    """Create a pipe whose first ``limit`` bytes go to ``writer``.

    Returns an event set once copying stops and the pipe's write end.
    The rest of the data is read and discarded so the writer never blocks.
    """
    reader, write_end = _os_pipe()
    done = threading.Event()

    def pump() -> None:
        try:
            _copy_n(reader, writer, limit)
        except OSError:
            pass
        finally:
            done.set()
        _drain(reader)
        reader.close()

    threading.Thread(target=pump, daemon=True).start()
    return done, write_end


def new_pipe_buffer(limit: int, new_store_file: NewStoreFile) -> PipeBuffer:
    """Create a pipe collected into a new store file, keeping up to limit+1 bytes."""
    buffer = new_store_file()
    try:
        done, w = new_pipe(buffer, limit + 1)
    except BaseException:
        buffer.close()
        raise
    return PipeBuffer(w=w, buffer=buffer, done=done, limit=limit)


def _pipe_from_reader(reader) -> BinaryIO:
    read_end, write_end = _os_pipe()

    def feed() -> None:
        try:
            shutil.copyfileobj(reader, write_end)
        except OSError:
            pass
        finally:
            write_end.close()

    threading.Thread(target=feed, daemon=True).start()
    return read_end


def reader_to_file(reader) -> BinaryIO:
    """Return a readable file holding everything ``reader`` yields."""
    if not _memfd_disabled.is_set() and hasattr(os, "memfd_create"):
        try:
            fd = os.memfd_create(_MEMFD_NAME)
        except OSError:
            _memfd_disabled.set()
        else:
            f = os.fdopen(fd, "w+b")
            try:
                shutil.copyfileobj(reader, f)
                f.seek(0)
            except BaseException:
                f.close()
                raise
            return f
    return _pipe_from_reader(reader)


def copy_dir(src: str, dst: str) -> None:
    """Copy every regular file directly inside ``src`` into ``dst``."""
    os.makedirs(dst, exist_ok=True)
    for name in sorted(os.listdir(src)):
        path = os.path.join(src, name)
        if not stat.S_ISREG(os.stat(path).st_mode):
            raise ValueError(f"{name} is not a regular file")
        shutil.copyfile(path, os.path.join(dst, name))