"""Run statuses reported for executed commands."""

from __future__ import annotations

import enum


class Status(enum.IntEnum):
    """Final status of a command run."""

    INVALID = 0
    ACCEPTED = 1
    WRONG_ANSWER = 2
    PARTIALLY_CORRECT = 3
    MEMORY_LIMIT_EXCEEDED = 4
    TIME_LIMIT_EXCEEDED = 5
    OUTPUT_LIMIT_EXCEEDED = 6
    FILE_ERROR = 7
    NONZERO_EXIT_STATUS = 8
    SIGNALLED = 9
    DANGEROUS_SYSCALL = 10
    JUDGEMENT_FAILED = 11
    INVALID_INTERACTION = 12
    INTERNAL_ERROR = 13
    CGROUP_ERROR = 14
    CONTAINER_ERROR = 15

    def __str__(self) -> str:
        return _LABELS[self.value]


_LABELS = (
    "Invalid",
    "Accepted",
    "Wrong Answer",
    "Partially Correct",
    "Memory Limit Exceeded",
    "Time Limit Exceeded",
    "Output Limit Exceeded",
    "File Error",
    "Nonzero Exit Status",
    "Signalled",
    "Dangerous Syscall",
    "Judgement Failed",
    "Invalid Interaction",
    "Internal Error",
    "CGroup Error",
    "Container Error",
)

_BY_JSON = {f'"{label}"': Status(value) for value, label in enumerate(_LABELS)}


def string_to_status(text: str) -> Status:
    """Convert a JSON string literal such as '"Accepted"' to a Status."""
    try:
        return _BY_JSON[text]
    except KeyError:
        raise ValueError(f"invalid string converting: {text}") from None


class RunnerStatus(enum.Enum):
    """Low-level outcome of a sandboxed process."""

    INVALID = enum.auto()
    NORMAL = enum.auto()
    TIME_LIMIT_EXCEEDED = enum.auto()
    MEMORY_LIMIT_EXCEEDED = enum.auto()
    OUTPUT_LIMIT_EXCEEDED = enum.auto()
    DISALLOWED_SYSCALL = enum.auto()
    SIGNALLED = enum.auto()
    NONZERO_EXIT_STATUS = enum.auto()
    RUNNER_ERROR = enum.auto()


_CONVERSION = {
    RunnerStatus.NORMAL: Status.ACCEPTED,
    RunnerStatus.SIGNALLED: Status.SIGNALLED,
    RunnerStatus.NONZERO_EXIT_STATUS: Status.NONZERO_EXIT_STATUS,
    RunnerStatus.MEMORY_LIMIT_EXCEEDED: Status.MEMORY_LIMIT_EXCEEDED,
    RunnerStatus.TIME_LIMIT_EXCEEDED: Status.TIME_LIMIT_EXCEEDED,
    RunnerStatus.OUTPUT_LIMIT_EXCEEDED: Status.OUTPUT_LIMIT_EXCEEDED,
    RunnerStatus.DISALLOWED_SYSCALL: Status.DANGEROUS_SYSCALL,
}


def convert_status(status: RunnerStatus) -> Status:
    """Map a runner status to the run status; anything unknown is an internal error."""
    return _CONVERSION.get(status, Status.INTERNAL_ERROR)