"""
Warm-up gating and adaptive test duration.

``GraceWindowFilter`` keeps connection set-up and TCP slow-start out of the
estimate: samples recorded before the grace interval only count for
bookkeeping, and the first sample after it re-bases the session.

``AdaptiveDeadlineController`` accumulates a time bonus proportional to the
measured speed, so fast links reach the deadline sooner while slow links
run the full duration.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .constants import BONUS_MS_PER_MBPS, BONUS_STEP_CAP_MS, BONUS_TOTAL_CAP_MS

if TYPE_CHECKING:
    from .session import TestSession

logger = logging.getLogger(__name__)


class GraceWindowFilter:
    """Decides whether a sample completing at a given time counts."""

    def __init__(self, grace_time_ms: float) -> None:
        self.grace_time_ms = grace_time_ms

    def admit(self, session: TestSession, timestamp_ms: float) -> bool:
        """
        Return True once the session is past its warm-up.

        The call that first observes ``timestamp_ms`` beyond the grace
        interval re-bases the session (if any bytes accumulated) and still
        returns False: that sample belongs to the warm-up.
        """
        if session.grace_elapsed:
            return True

        if timestamp_ms - session.start_time_ms > self.grace_time_ms:
            if session.cumulative_bytes > 0:
                logger.debug(
                    "%s grace window over after %.0f ms; discarding %d warm-up bytes",
                    session.mode.value,
                    timestamp_ms - session.start_time_ms,
                    session.cumulative_bytes,
                )
                session.rebase(timestamp_ms)
            session.grace_elapsed = True
        return False


class AdaptiveDeadlineController:
    """Speed-proportional bonus that shortens the test on fast links."""

    def __init__(
        self,
        max_duration_ms: float,
        auto_shorten: bool = True,
        ms_per_mbps: float = BONUS_MS_PER_MBPS,
        step_cap_ms: float = BONUS_STEP_CAP_MS,
        total_cap_ms: float = BONUS_TOTAL_CAP_MS,
    ) -> None:
        self.max_duration_ms = max_duration_ms
        self.auto_shorten = auto_shorten
        self.ms_per_mbps = ms_per_mbps
        self.step_cap_ms = step_cap_ms
        self.total_cap_ms = min(total_cap_ms, max_duration_ms / 2)
        self.bonus_time_ms = 0.0

    def update(self, speed_mbps: float) -> float:
        """Grow the bonus for one speed sample.  Returns the increment."""
        if not self.auto_shorten or speed_mbps <= 0:
            return 0.0

        step = min(speed_mbps * self.ms_per_mbps, self.step_cap_ms)
        step = min(step, self.total_cap_ms - self.bonus_time_ms)
        step = max(step, 0.0)
        self.bonus_time_ms += step
        return step

    def reset(self) -> None:
        self.bonus_time_ms = 0.0

    def expired(self, elapsed_ms: float) -> bool:
        return elapsed_ms + self.bonus_time_ms >= self.max_duration_ms

    def progress(self, elapsed_ms: float) -> float:
        if self.max_duration_ms <= 0:
            return 1.0
        return max(0.0, min((elapsed_ms + self.bonus_time_ms) / self.max_duration_ms, 1.0))
