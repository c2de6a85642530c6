"""Commands, results and the environment interfaces they run against."""

from __future__ import annotations

import abc
import enum
import threading
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Callable, Optional

from execbox.status import RunnerStatus, Status

DEFAULT_EXTRA_MEMORY_LIMIT = 16 << 10


class FileErrorType(enum.IntEnum):
    """Kind of failure while moving files in or out of an environment."""

    COPY_IN_OPEN_FILE = 0
    COPY_IN_CREATE_FILE = 1
    COPY_IN_COPY_CONTENT = 2
    COPY_OUT_OPEN = 3
    COPY_OUT_NOT_REGULAR_FILE = 4
    COPY_OUT_SIZE_EXCEEDED = 5
    COPY_OUT_CREATE_FILE = 6
    COPY_OUT_COPY_CONTENT = 7
    COLLECT_SIZE_EXCEEDED = 8

    def __str__(self) -> str:
        return _FILE_ERROR_NAMES[self.value]

    def to_json(self) -> str:
        """Return the type as a JSON string literal."""
        return f'"{self}"'


_FILE_ERROR_NAMES = (
    "CopyInOpenFile",
    "CopyInCreateFile",
    "CopyInCopyContent",
    "CopyOutOpen",
    "CopyOutNotRegularFile",
    "CopyOutSizeExceeded",
    "CopyOutCreateFile",
    "CopyOutCopyContent",
    "CollectSizeExceeded",
)


@dataclass
class FileError:
    """A file error recorded for one named file."""

    name: str
    type: FileErrorType
    message: str = ""

    def to_dict(self) -> dict[str, str]:
        """Return the JSON form; the message is left out when empty."""
        data = {"name": self.name, "type": str(self.type)}
        if self.message:
            data["message"] = self.message
        return data


@dataclass(frozen=True)
class CmdCopyOutFile:
    """A file to copy out after execution; optional ones may be missing."""

    name: str
    optional: bool = False


@dataclass
class Limit:
    """Resource limits for a process (time in seconds, sizes in bytes)."""

    time: float = 0.0
    memory: int = 0
    proc: int = 0
    stack: int = 0
    output: int = 0
    rate: int = 0
    open_file: int = 0
    cpu_set: str = ""
    strict_memory: bool = False


@dataclass
class Usage:
    """Peak resource usage of a process."""

    time: float = 0.0
    memory: int = 0


@dataclass
class ExecveParam:
    """Parameters to start a process inside an environment."""

    args: list[str] = field(default_factory=list)
    env: list[str] = field(default_factory=list)
    files: list[int] = field(default_factory=list)
    exec_file: int = 0
    tty: bool = False
    limit: Limit = field(default_factory=Limit)


@dataclass
class RunnerResult:
    """Outcome of a finished sandboxed process."""

    status: RunnerStatus = RunnerStatus.INVALID
    exit_status: int = 0
    error: str = ""
    time: float = 0.0
    memory: int = 0
    set_up_time: float = 0.0
    running_time: float = 0.0


class Process(abc.ABC):
    """A running process group."""

    @abc.abstractmethod
    def done(self) -> threading.Event:
        """Return an event that is set once the process has exited."""

    @abc.abstractmethod
    def result(self) -> RunnerResult:
        """Wait until the process is done and return its result."""

    @abc.abstractmethod
    def usage(self) -> Usage:
        """Return the resource usage so far."""


class Environment(abc.ABC):
    """An execution environment with its own work directory."""

    @abc.abstractmethod
    def execve(self, cancel: threading.Event, param: ExecveParam) -> Process:
        """Start a process; setting ``cancel`` stops it."""

    @abc.abstractmethod
    def work_dir(self) -> str:
        """Return the path of the work directory."""

    @abc.abstractmethod
    def open(self, path: str, flags: int, mode: int) -> BinaryIO:
        """Open a file relative to the work directory with os.O_* flags."""


Waiter = Callable[[threading.Event, Process], bool]


@dataclass
class Cmd:
    """A program to run in an environment, with its files and limits."""

    environment: Optional[Environment] = None
    copy_in: dict[str, Any] = field(default_factory=dict)
    args: list[str] = field(default_factory=list)
    env: list[str] = field(default_factory=list)
    files: list[Any] = field(default_factory=list)
    tty: bool = False
    time_limit: float = 0.0
    memory_limit: int = 0
    stack_limit: int = 0
    extra_memory_limit: int = 0
    output_limit: int = 0
    proc_limit: int = 0
    open_file_limit: int = 0
    cpu_rate_limit: int = 0
    strict_memory_limit: bool = False
    cpu_set_limit: str = ""
    waiter: Optional[Waiter] = None
    copy_out: list[CmdCopyOutFile] = field(default_factory=list)
    copy_out_max: int = 0
    copy_out_dir: str = ""


@dataclass
class Result:
    """Result of running a single Cmd."""

    status: Status = Status.INVALID
    exit_status: int = 0
    error: str = ""
    time: float = 0.0
    run_time: float = 0.0
    memory: int = 0
    files: dict[str, BinaryIO] = field(default_factory=dict)
    file_error: list[FileError] = field(default_factory=list)