"""File sources and sinks handed to executed commands."""

from __future__ import annotations

from dataclasses import dataclass
from typing import BinaryIO, Union


@dataclass
class FileReader:
    """Input read from a stream, either fully before exec or piped in."""

    reader: BinaryIO
    stream: bool = False


@dataclass
class FileInput:
    """A host file opened read-only."""

    path: str


@dataclass
class FileCollector:
    """Output collected under a name, up to a size limit."""

    name: str
    limit: int
    pipe: bool = False


@dataclass
class FileWriter:
    """Output piped out to a writer, up to a size limit."""

    writer: BinaryIO
    limit: int


@dataclass
class FileOpened:
    """An already opened file; it is closed after use."""

    file: BinaryIO


File = Union[FileReader, FileInput, FileCollector, FileWriter, FileOpened]


class _NoCloseReader:
    """Reader wrapper whose close leaves the underlying stream open."""

    def __init__(self, reader: BinaryIO) -> None:
        self._reader = reader
        self.closed = False

    def read(self, size: int = -1) -> bytes:
        return self._reader.read(size)

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "_NoCloseReader":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def file_to_reader(file: File):
    """Return a readable, closable object for an input file."""
    if isinstance(file, FileOpened):
        return file.file
    if isinstance(file, FileReader):
        return _NoCloseReader(file.reader)
    if isinstance(file, FileInput):
        return open(file.path, "rb")
    raise TypeError(f"file cannot open as reader {file!r}")