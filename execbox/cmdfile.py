"""Files named in worker requests and how they become execution files."""

from __future__ import annotations

import abc
import io
from dataclasses import dataclass

from execbox.files import File, FileCollector, FileInput, FileReader
from execbox.filestore import FileStore


class CmdFile(abc.ABC):
    """A file used by a command in a request."""

    @abc.abstractmethod
    def env_file(self, store: FileStore) -> File:
        """Return the execution file for this entry."""


@dataclass
class LocalFile(CmdFile):
    """A file on the local file system."""

    src: str

    def env_file(self, store: FileStore) -> File:
        return FileInput(self.src)

    def __str__(self) -> str:
        return f"local:{self.src}"


@dataclass
class MemoryFile(CmdFile):
    """A file held in memory."""

    content: bytes

    def env_file(self, store: FileStore) -> File:
        return FileReader(io.BytesIO(self.content), stream=False)

    def __str__(self) -> str:
        return f"memory:(len:{len(self.content)})"


@dataclass
class CachedFile(CmdFile):
    """A file kept in the file store under an id."""

    file_id: str

    def env_file(self, store: FileStore) -> File:
        found = store.get(self.file_id)
        if found is None:
            raise FileNotFoundError(f"file not exists with id {self.file_id}")
        return found[1]

    def __str__(self) -> str:
        return f"cached:(fileId:{self.file_id})"


@dataclass
class Collector(CmdFile):
    """An output to collect under a name, up to ``max_size`` bytes."""

    name: str
    max_size: int
    pipe: bool = False

    def env_file(self, store: FileStore) -> File:
        return FileCollector(self.name, self.max_size, self.pipe)

    def __str__(self) -> str:
        pipe = "true" if self.pipe else "false"
        return f"collector:(name:{self.name},max:{self.max_size},pipe:{pipe})"