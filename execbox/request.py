"""Requests a worker accepts and the responses it produces."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import BinaryIO, Optional

from execbox.cmdfile import CmdFile
from execbox.model import CmdCopyOutFile, FileError
from execbox.prepare import Pipe
from execbox.status import Status


@dataclass
class WorkerCmd:
    """A command with its files and limits as given in a request (times in seconds)."""

    args: list[str] = field(default_factory=list)
    env: list[str] = field(default_factory=list)
    files: list[Optional[CmdFile]] = field(default_factory=list)
    tty: bool = False
    cpu_limit: float = 0.0
    clock_limit: float = 0.0
    memory_limit: int = 0
    stack_limit: int = 0
    output_limit: int = 0
    proc_limit: int = 0
    open_file_limit: int = 0
    cpu_rate_limit: int = 0
    cpu_set_limit: str = ""
    strict_memory_limit: bool = False
    copy_in: dict[str, Optional[CmdFile]] = field(default_factory=dict)
    copy_out: list[CmdCopyOutFile] = field(default_factory=list)
    copy_out_cached: list[CmdCopyOutFile] = field(default_factory=list)
    copy_out_max: int = 0
    copy_out_dir: str = ""


@dataclass
class Request:
    """One worker request: commands and the pipes between them."""

    request_id: str = ""
    cmd: list[WorkerCmd] = field(default_factory=list)
    pipe_mapping: list[Pipe] = field(default_factory=list)


@dataclass
class WorkerResult:
    """Result of one command in a request."""

    status: Status = Status.INVALID
    exit_status: int = 0
    error: str = ""
    time: float = 0.0
    run_time: float = 0.0
    memory: int = 0
    files: dict[str, BinaryIO] = field(default_factory=dict)
    file_ids: dict[str, str] = field(default_factory=dict)
    file_error: list[FileError] = field(default_factory=list)

    def __str__(self) -> str:
        files = {
            name: os.path.basename(str(getattr(f, "name", "")))
            for name, f in self.files.items()
        }
        return (
            f"{{Status:{self.status} ExitStatus:{self.exit_status} Error:{self.error} "
            f"Time:{self.time}s RunTime:{self.run_time}s Memory:{self.memory} "
            f"Files:{files} FileIDs:{self.file_ids} FileError:{self.file_error}}}"
        )


@dataclass
class Response:
    """Response to one request: per-command results or an error."""

    request_id: str = ""
    results: list[WorkerResult] = field(default_factory=list)
    error: Optional[Exception] = None