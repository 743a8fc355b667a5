"""Named queue lookup."""

from __future__ import annotations

from collections.abc import Iterator

from tickspine.core.errors import QueueNotFoundError
from tickspine.queue.protocol import JobQueue


class QueueRegistry:
    """Maps queue names to :class:`JobQueue` instances.

    Example:
        >>> queues = QueueRegistry([InMemoryJobQueue("data-collection")])
        >>> queues.get("data-collection").name
        'data-collection'
    """

    def __init__(self, queues: list[JobQueue] | None = None) -> None:
        self._queues: dict[str, JobQueue] = {}
        for queue in queues or []:
            self.add(queue)

    def add(self, queue: JobQueue) -> None:
        if queue.name in self._queues:
            raise ValueError(f"Queue '{queue.name}' already registered")
        self._queues[queue.name] = queue

    def get(self, name: str) -> JobQueue:
        """Return the queue named *name*.

        Raises:
            QueueNotFoundError: if no such queue is configured.
        """
        try:
            return self._queues[name]
        except KeyError:
            raise QueueNotFoundError(name, list(self._queues)) from None

    def has(self, name: str) -> bool:
        return name in self._queues

    def names(self) -> list[str]:
        return list(self._queues)

    def __iter__(self) -> Iterator[JobQueue]:
        return iter(list(self._queues.values()))

    def __len__(self) -> int:
        return len(self._queues)
