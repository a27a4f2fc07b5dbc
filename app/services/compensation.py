"""Best-effort cleanup that runs after the primary operation succeeded.

Domain operations return a list of actions; the caller runs them one by one and
a failing action is logged and skipped.
"""
import logging
from dataclasses import dataclass
from typing import Iterable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeleteObject:
    key: str

    async def apply(self, storage):
        await storage.delete(self.key)


@dataclass(frozen=True)
class DeletePrefix:
    prefix: str

    async def apply(self, storage):
        await storage.delete_prefix(self.prefix)


async def run_compensations(storage, actions: Iterable) -> int:
    """Run every action, return how many failed."""
    failures = 0
    for action in actions:
        try:
            await action.apply(storage)
        except Exception:
            failures += 1
            logger.warning("Cleanup %r failed", action, exc_info=True)
    return failures
