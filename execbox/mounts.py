"""Mount configuration for containers: YAML loading and mount point builders."""

from __future__ import annotations

import os
import posixpath
from dataclasses import dataclass, field
from typing import Any, Optional

import yaml


@dataclass
class Mount:
    """One configured mount point; ``type`` is ``bind`` or ``tmpfs``."""

    type: str = ""
    source: str = ""
    target: str = ""
    readonly: bool = False
    data: str = ""


@dataclass
class Link:
    """A symbolic link created after the mounts."""

    link_path: str = ""
    target: str = ""


@dataclass
class MountConfig:
    """Mount points and container identity read from a YAML file."""

    mount: list[Mount] = field(default_factory=list)
    sym_links: list[Link] = field(default_factory=list)
    mask_paths: list[str] = field(default_factory=list)
    work_dir: str = ""
    host_name: str = ""
    domain_name: str = ""
    uid: int = 0
    gid: int = 0
    proc: bool = False

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "MountConfig":
        """Build the configuration from parsed YAML data."""
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError("mount configuration must be a mapping")
        mounts = [
            Mount(
                type=str(m.get("type") or ""),
                source=str(m.get("source") or ""),
                target=str(m.get("target") or ""),
                readonly=bool(m.get("readonly", False)),
                data=str(m.get("data") or ""),
            )
            for m in data.get("mount") or []
        ]
        links = [
            Link(link_path=str(l.get("linkPath") or ""), target=str(l.get("target") or ""))
            for l in data.get("symLink") or []
        ]
        return cls(
            mount=mounts,
            sym_links=links,
            mask_paths=[str(p) for p in data.get("maskPath") or []],
            work_dir=str(data.get("workDir") or ""),
            host_name=str(data.get("hostName") or ""),
            domain_name=str(data.get("domainName") or ""),
            uid=int(data.get("uid") or 0),
            gid=int(data.get("gid") or 0),
            proc=bool(data.get("proc", False)),
        )


@dataclass(frozen=True)
class MountPoint:
    """A concrete mount: source, target relative to the root, file system type."""

    source: str
    target: str
    fs_type: str
    readonly: bool = False
    data: str = ""


class MountBuilder:
    """Collects mount points in order; every ``with_`` method returns the builder."""

    def __init__(self, mounts: Optional[list[MountPoint]] = None) -> None:
        self.mounts: list[MountPoint] = list(mounts or [])

    def with_bind(self, source: str, target: str, readonly: bool) -> "MountBuilder":
        """Add a bind mount of ``source`` at ``target``."""
        self.mounts.append(MountPoint(source, target, "bind", readonly))
        return self

    def with_tmpfs(self, target: str, data: str) -> "MountBuilder":
        """Add a tmpfs at ``target`` with mount options ``data``."""
        self.mounts.append(MountPoint("tmpfs", target, "tmpfs", False, data))
        return self

    def with_proc(self) -> "MountBuilder":
        """Add a read-only proc file system at ``proc``."""
        self.mounts.append(MountPoint("proc", "proc", "proc", True))
        return self

    def filter_not_exist(self) -> "MountBuilder":
        """Return a builder without the bind mounts whose source does not exist."""
        return MountBuilder(
            m for m in self.mounts if m.fs_type != "bind" or os.path.exists(m.source)
        )

    def __str__(self) -> str:
        parts = []
        for m in self.mounts:
            mode = "ro" if m.readonly else "rw"
            if m.fs_type == "bind":
                parts.append(f"bind[{m.source}:{m.target}:{mode}]")
            elif m.fs_type == "tmpfs":
                parts.append(f"tmpfs[{m.target}]")
            else:
                parts.append(f"{m.fs_type}[{mode}]")
        return "Mounts: " + ", ".join(parts)


def read_mount_config(path: str) -> MountConfig:
    """Read a mount configuration file; a missing file raises FileNotFoundError."""
    with open(path, "rb") as f:
        data = yaml.safe_load(f)
    return MountConfig.from_dict(data)


def parse_mount_config(config: MountConfig, cwd: Optional[str] = None) -> MountBuilder:
    """Turn a configuration into mount points, resolving relative sources against ``cwd``."""
    cwd = cwd if cwd is not None else os.getcwd()
    builder = MountBuilder()
    for mt in config.mount:
        target = mt.target
        if posixpath.isabs(target):
            target = posixpath.normpath(target[1:])
        source = mt.source
        if not posixpath.isabs(source):
            source = posixpath.join(cwd, source)
        if mt.type == "bind":
            builder.with_bind(source, target, mt.readonly)
        elif mt.type == "tmpfs":
            builder.with_tmpfs(target, mt.data)
        else:
            raise ValueError(f"invalid_mount_type: {mt.type}")
    if config.proc:
        builder.with_proc()
    return builder


def default_mounts(tmpfs_param: str) -> MountBuilder:
    """Return the default container mounts for compilers and runtimes."""
    return (
        MountBuilder()
        .with_bind("/bin", "bin", True)
        .with_bind("/lib", "lib", True)
        .with_bind("/lib64", "lib64", True)
        .with_bind("/usr", "usr", True)
        .with_bind("/etc/ld.so.cache", "etc/ld.so.cache", True)
        # some runtimes need /proc/self/exe to locate their libraries
        .with_proc()
        .with_bind("/etc/alternatives", "etc/alternatives", True)
        .with_bind("/etc/fpc.cfg", "etc/fpc.cfg", True)
        .with_bind("/etc/mono", "etc/mono", True)
        .with_bind("/dev/null", "dev/null", False)
        .with_bind("/var/lib/ghc", "var/lib/ghc", True)
        .with_bind("/dev/urandom", "dev/urandom", False)
        .with_bind("/dev/random", "dev/random", False)
        .with_bind("/dev/zero", "dev/zero", False)
        .with_bind("/dev/full", "dev/full", False)
        .with_tmpfs("w", tmpfs_param)
        .with_tmpfs("tmp", tmpfs_param)
    )


DEFAULT_SYMLINKS = (
    Link(link_path="/dev/fd", target="/proc/self/fd"),
    Link(link_path="/dev/stdin", target="/proc/self/fd/0"),
    Link(link_path="/dev/stdout", target="/proc/self/fd/1"),
    Link(link_path="/dev/stderr", target="/proc/self/fd/2"),
)

DEFAULT_MASK_PATHS = (
    "/proc/acpi",
    "/proc/asound",
    "/proc/kcore",
    "/proc/keys",
    "/proc/latency_stats",
    "/proc/timer_list",
    "/proc/timer_stats",
    "/proc/sched_debug",
    "/proc/scsi",
    "/usr/lib/wsl/drivers",
    "/usr/lib/wsl/lib",
)