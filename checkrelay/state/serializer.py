"""
Per-build admission of reconciliation passes.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable

from checkrelay.core.logging import get_logger
from checkrelay.models.jobs import BuildInfo

logger = get_logger(__name__)

DEFAULT_CEILING = 2


@dataclass
class _ActiveBuild:
    count: int
    build: BuildInfo


class EventSerializer:
    """
    Runs at most one reconciliation pass per build at a time.

    Events arriving while a pass is active are counted up to ``ceiling``
    (the active pass included) and drained by a single follow-up pass.
    Events beyond the ceiling are dropped.
    """

    def __init__(self, run_pass: Callable[[BuildInfo], Awaitable[None]], ceiling: int = DEFAULT_CEILING):
        if ceiling < 1:
            raise ValueError("ceiling must be at least 1")
        self._run_pass = run_pass
        self._ceiling = ceiling
        self._active: dict[str, _ActiveBuild] = {}

    def pending(self, key: str) -> int:
        """Requests counted for a build, 0 when idle."""
        entry = self._active.get(key)
        return entry.count if entry else 0

    async def submit(self, build: BuildInfo) -> bool:
        """
        Admit an event for a build.

        The first event runs passes inline until the build is idle again.
        Overlapping events return immediately.

        Returns:
            False if the event was dropped
        """
        key = build.key
        entry = self._active.get(key)

        if entry is not None:
            if entry.count >= self._ceiling:
                logger.info(f"Pass already queued for build {key}, dropping event")
                return False
            entry.count += 1
            entry.build = build
            logger.info(f"Pass in progress for build {key}, queued follow-up ({entry.count} pending)")
            return True

        entry = _ActiveBuild(count=1, build=build)
        self._active[key] = entry
        try:
            while True:
                await self._run_once(entry.build)
                entry.count -= 1
                if entry.count <= 0:
                    break
                # Coalesced events are all served by one more pass
                logger.info(f"Running follow-up pass for build {key}")
                entry.count = 1
        finally:
            del self._active[key]
        return True

    async def _run_once(self, build: BuildInfo) -> None:
        try:
            await self._run_pass(build)
        except Exception as e:
            logger.error(f"Error processing build {build.key}: {e}")
