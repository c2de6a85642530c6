"""Sandbox profile text for sandbox_init style sandboxes."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

_SYSCTL_NAMES = (
    "hw.activecpu",
    "hw.busfrequency_compat",
    "hw.byteorder",
    "hw.cachelinesize_compat",
    "hw.cpufrequency_compat",
    "hw.cputype",
    "hw.logicalcpu_max",
    "hw.machine",
    "hw.ncpu",
    "hw.pagesize_compat",
    "hw.physicalcpu_max",
    "hw.tbfrequency_compat",
    "hw.vectorunit",
    "kern.hostname",
    "kern.maxfilesperproc",
    "kern.osrelease",
    "kern.ostype",
    "kern.osvariant_status",
    "kern.osversion",
    "kern.usrstack64",
    "kern.version",
    "sysctl.proc_cputype",
    "kern.proc.pid.CURRENT_PID",
)

# (comment, rule) pairs emitted before the sysctl section
_BASE_RULES = (
    ("allow posix ipc", "(allow ipc-posix*)"),
    ("allow execve ", "(allow process-exec)"),
    ("allow fork", "(allow process-fork)"),
    ("allow signal to self", "(allow signal (target self))"),
)


def _header() -> str:
    blocks = ["(version 1)", "(deny default)"]
    blocks += [f"; {comment}\n{rule}" for comment, rule in _BASE_RULES]
    sysctls = "\n".join(f'  (sysctl-name "{name}")' for name in _SYSCTL_NAMES)
    blocks.append(f"; sysctls permitted.\n(allow sysctl-read\n{sysctls}\n)")
    blocks.append("; allow read from dir")
    return "\n\n".join(blocks)


def _rules(action: str, dirs: list[str]) -> list[str]:
    return [f'\n(allow {action} (subpath "{d}"))' for d in dirs]


def _real_paths(paths: list[str]) -> list[str]:
    return [os.path.realpath(p, strict=True) for p in paths]


@dataclass
class Profile:
    """Directories the sandboxed program may read and write, and network access."""

    writable_dir: list[str] = field(default_factory=list)
    readable_dir: list[str] = field(default_factory=list)
    network: bool = False

    def build(self) -> str:
        """Render the profile with symlinks resolved; missing paths raise OSError."""
        reads = _real_paths(self.readable_dir)
        writes = _real_paths(self.writable_dir)
        parts = [_header()]
        parts += _rules("file-read*", reads)
        parts.append('\n\n; deny users\n(deny file-read* (subpath "/Users"))')
        parts.append("\n\n; allow write to dir")
        parts += _rules("file-write*", writes)
        if self.network:
            parts.append("\n(allow network-outbound)")
        parts.append("\n")
        return "".join(parts)


DEFAULT_PROFILE = Profile(readable_dir=["/usr/lib"])