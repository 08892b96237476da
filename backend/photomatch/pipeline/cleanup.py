"""Cleanup coordinator — deletes a temporary asset with retries.

Attempts are sequential with exponential backoff (base, 2*base, ...).
Raises CleanupFailure only after the last attempt; callers log it and
carry on.
"""

from __future__ import annotations

import asyncio

import structlog

from photomatch.errors import CleanupFailure
from photomatch.pipeline.staging import ObjectStorage

log = structlog.get_logger("photomatch.cleanup")


class CleanupCoordinator:
    def __init__(
        self,
        storage: ObjectStorage,
        *,
        max_attempts: int = 3,
        base_delay: float = 1.0,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.storage = storage
        self.max_attempts = max_attempts
        self.base_delay = base_delay

    def backoff(self, attempt: int) -> float:
        """Delay after the given zero-based failed attempt."""
        return self.base_delay * (2**attempt)

    async def delete(self, cid: str) -> int:
        """Delete ``cid``, returning the number of attempts it took."""
        last_error: Exception | None = None
        for attempt in range(self.max_attempts):
            try:
                await self.storage.delete(cid)
            except Exception as exc:
                last_error = exc
                log.warning(
                    "cleanup_attempt_failed",
                    cid=cid,
                    attempt=attempt + 1,
                    max_attempts=self.max_attempts,
                    error=str(exc)[:200],
                )
                if attempt < self.max_attempts - 1:
                    await asyncio.sleep(self.backoff(attempt))
                continue
            log.info("cleanup_complete", cid=cid, attempt=attempt + 1)
            return attempt + 1

        raise CleanupFailure(cid, self.max_attempts) from last_error
