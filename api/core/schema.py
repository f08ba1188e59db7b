"""
Per-resource schema initialization.

Each resource owns an idempotent `ensure_schema()` coroutine (DDL with
`IF NOT EXISTS`). The registry decides, from the request path, which of them
must run before the request goes on:

- baseline initializers run for every `/api/` request;
- prefix initializers run when the path is under that prefix.

An initializer that succeeded once is "confirmed" and skipped for the rest of
the process lifetime.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable

from .config import SCHEMA_POLICY_CONTINUE, SCHEMA_POLICY_FAIL_FAST

logger = logging.getLogger(__name__)

API_PREFIX = "/api/"


@dataclass(frozen=True)
class SchemaInitializer:
    name: str
    ensure: Callable[[], Awaitable[None]]


def path_has_prefix(path: str, prefix: str) -> bool:
    """
    Segment-aware prefix match: `/api/jobs` matches `/api/jobs` and
    `/api/jobs/1` but not `/api/jobs-archive`.
    """
    prefix = prefix.rstrip("/")
    return path == prefix or path.startswith(prefix + "/")


class SchemaRegistry:
    def __init__(
        self,
        *,
        baseline: Iterable[SchemaInitializer] = (),
        by_prefix: dict[str, Iterable[SchemaInitializer]] | None = None,
        policy: str = SCHEMA_POLICY_CONTINUE,
    ) -> None:
        self._baseline = tuple(baseline)
        self._by_prefix = {prefix.rstrip("/"): tuple(items) for prefix, items in (by_prefix or {}).items()}
        self._policy = policy
        self._confirmed: set[str] = set()
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def policy(self) -> str:
        return self._policy

    @property
    def confirmed(self) -> frozenset[str]:
        return frozenset(self._confirmed)

    def initializers_for(self, path: str) -> list[SchemaInitializer]:
        if not path.startswith(API_PREFIX):
            return []

        selected: list[SchemaInitializer] = []
        seen: set[str] = set()
        matched: tuple[SchemaInitializer, ...] = ()
        for prefix, items in self._by_prefix.items():
            if path_has_prefix(path, prefix):
                matched = items
                break

        for initializer in (*self._baseline, *matched):
            if initializer.name in seen:
                continue
            seen.add(initializer.name)
            selected.append(initializer)
        return selected

    async def _run(self, initializer: SchemaInitializer) -> None:
        if initializer.name in self._confirmed:
            return None

        lock = self._locks.setdefault(initializer.name, asyncio.Lock())
        async with lock:
            if initializer.name in self._confirmed:
                return None
            await initializer.ensure()
            self._confirmed.add(initializer.name)
            logger.info("Schema ready for %s", initializer.name, extra={"initializer": initializer.name})

    async def ensure_for(self, path: str) -> None:
        """
        Run the initializers `path` needs, in order.

        With the `continue` policy a failure is logged and the request goes on
        (the handler surfaces its own DB error if the table is really missing).
        With `fail_fast` the first failure is raised.
        """
        for initializer in self.initializers_for(path):
            try:
                await self._run(initializer)
            except Exception as exc:
                if self._policy == SCHEMA_POLICY_FAIL_FAST:
                    raise
                logger.error(
                    "Failed to initialize tables for %s: %s",
                    initializer.name,
                    exc,
                    extra={"initializer": initializer.name},
                )
