"""
Handler registry: job name -> callable.

    HandlerRegistry
      ├── .register(job_name, handler)   ─ add a handler
      ├── .get(job_name)                 ─ lookup (raises UnknownJobError)
      ├── .has(job_name)                 ─ existence check
      └── .list_handlers()               ─ all registered names

Handlers take a :class:`~tickspine.execution.context.JobContext` and may be
plain functions or ``async def`` coroutines.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from tickspine.core.errors import UnknownJobError
from tickspine.execution.context import JobHandler


class HandlerRegistry:
    """Registry mapping job names to handlers.

    Example:
        >>> registry = HandlerRegistry()
        >>> registry.register("collect-candles", collect_candles)
        >>> handler = registry.get("collect-candles")
    """

    def __init__(self) -> None:
        self._handlers: dict[str, JobHandler] = {}
        self._metadata: dict[str, dict[str, Any]] = {}

    def register(
        self,
        job_name: str,
        handler: JobHandler,
        description: str = "",
        replace: bool = False,
    ) -> None:
        """Register *handler* for *job_name*.

        Raises:
            ValueError: *job_name* already has a handler and *replace* is False.
        """
        if job_name in self._handlers and not replace:
            raise ValueError(f"Handler already registered for job '{job_name}'")
        self._handlers[job_name] = handler
        self._metadata[job_name] = {
            "description": description or (getattr(handler, "__doc__", "") or "").strip().split("\n")[0],
        }

    def handler(self, job_name: str, description: str = "") -> Callable[[JobHandler], JobHandler]:
        """Decorator form of :meth:`register`."""

        def decorator(func: JobHandler) -> JobHandler:
            self.register(job_name, func, description=description)
            return func

        return decorator

    def get(self, job_name: str) -> JobHandler:
        if job_name not in self._handlers:
            raise UnknownJobError(job_name, list(self._handlers))
        return self._handlers[job_name]

    def has(self, job_name: str) -> bool:
        return job_name in self._handlers

    def list_handlers(self) -> list[str]:
        return sorted(self._handlers)

    def list_with_metadata(self) -> list[dict[str, Any]]:
        return [{"job_name": name, **self._metadata[name]} for name in self.list_handlers()]

    def unregister(self, job_name: str) -> bool:
        if job_name in self._handlers:
            del self._handlers[job_name]
            self._metadata.pop(job_name, None)
            return True
        return False
