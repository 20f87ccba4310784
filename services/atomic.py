"""
Atomic read-modify-write of a pool document.

Every read-then-write of payout-critical fields goes through
`update_pool_atomically`: load the pool, apply a pure mutation, and
compare-and-swap it back. On a version conflict the whole cycle is retried
against the fresh document, so the mutation re-validates its preconditions
every time. Mutations must not perform I/O.
"""

from __future__ import annotations

import logging
from typing import Callable, Tuple, TypeVar

from domain.errors import ConcurrentModification, NotFound
from domain.pool import Pool
from repositories.pool_repository import PoolRepository, VersionConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 5


def load_pool(repository: PoolRepository, pool_id: str) -> Pool:
    pool = repository.get(pool_id)
    if pool is None:
        raise NotFound("Pool not found")
    return pool


def update_pool_atomically(
    repository: PoolRepository,
    pool_id: str,
    mutation: Callable[[Pool], Tuple[Pool, T]],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> Tuple[Pool, T]:
    """
    Apply `mutation` to the latest stored pool and commit it atomically.

    `mutation` receives the current Pool and returns (new_pool, result). Any
    PoolError it raises aborts the update with nothing written. Returning the
    same Pool object skips the write.

    Raises:
        NotFound: if the pool does not exist
        ConcurrentModification: if every attempt lost the version race
    """

    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    for attempt in range(1, max_attempts + 1):
        pool = load_pool(repository, pool_id)
        updated, result = mutation(pool)
        if updated is pool:
            return pool, result

        try:
            return repository.save(updated), result
        except VersionConflict:
            logger.warning(
                f"Pool {pool_id} changed during update, retrying (attempt {attempt}/{max_attempts})",
                extra={"pool_id": pool_id, "attempt": attempt},
            )

    raise ConcurrentModification("The pool is being updated by someone else. Please try again.")


__all__ = ["DEFAULT_MAX_ATTEMPTS", "load_pool", "update_pool_atomically"]
