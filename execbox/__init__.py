"""Run programs under resource limits and collect their results."""

__version__ = "0.1.0"

__all__ = [
    "cmdfile",
    "files",
    "filestore",
    "model",
    "mounts",
    "pipes",
    "pool",
    "prepare",
    "profile",
    "request",
    "runner",
    "status",
    "transfer",
    "waiter",
    "wincmd",
    "worker",
]