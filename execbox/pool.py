"""A reusable pool of execution environments built on demand."""

from __future__ import annotations

import abc
import threading

from execbox.model import Environment


class PooledEnvironment(Environment):
    """An environment that can be cleaned for reuse and destroyed."""

    @abc.abstractmethod
    def reset(self) -> None:
        """Clean the environment so it can be used again."""

    @abc.abstractmethod
    def destroy(self) -> None:
        """Release everything the environment holds."""


class EnvBuilder(abc.ABC):
    """Creates new environments."""

    @abc.abstractmethod
    def build(self) -> PooledEnvironment:
        """Create a new environment."""


class EnvironmentPool:
    """Hands out pooled environments, building new ones when none are free."""

    def __init__(self, builder: EnvBuilder) -> None:
        self._builder = builder
        self._free: list[PooledEnvironment] = []
        self._lock = threading.Lock()

    def get(self) -> PooledEnvironment:
        """Return the most recently returned environment, or build a new one."""
        with self._lock:
            if self._free:
                return self._free.pop()
            return self._builder.build()

    def put(self, env: Environment) -> None:
        """Reset an environment and keep it for reuse."""
        if not isinstance(env, PooledEnvironment):
            raise TypeError("invalid environment put")
        env.reset()
        with self._lock:
            self._free.append(env)