"""
In-process pool store.

Same compare-and-swap contract as the Supabase repository. Used for local
runs (POOL_STORE=memory), the lifecycle simulation script and the tests.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Dict, Optional

from domain.pool import Pool
from repositories.pool_repository import VersionConflict


class InMemoryPoolRepository:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pools: Dict[str, Pool] = {}

    def create(self, pool: Pool) -> Pool:
        with self._lock:
            if pool.pool_id in self._pools:
                raise RuntimeError(f"Failed to create pool: {pool.pool_id} already exists")
            stored = replace(pool, version=1)
            self._pools[pool.pool_id] = stored
            return stored

    def get(self, pool_id: str) -> Optional[Pool]:
        with self._lock:
            return self._pools.get(pool_id)

    def save(self, pool: Pool) -> Pool:
        with self._lock:
            current = self._pools.get(pool.pool_id)
            if current is None or current.version != pool.version:
                raise VersionConflict(pool.pool_id, pool.version)
            stored = replace(pool, version=pool.version + 1)
            self._pools[pool.pool_id] = stored
            return stored


__all__ = ["InMemoryPoolRepository"]
