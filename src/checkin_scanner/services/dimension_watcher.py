from __future__ import annotations

import logging
from typing import Callable, Optional

from checkin_scanner.models import CameraDimensions
from checkin_scanner.services.scheduling import ScheduledTask, Scheduler
from checkin_scanner.services.surface import ScanSurface, Unsubscribe

logger = logging.getLogger(__name__)

RESTART_THRESHOLD = 0.1
RESTART_DEBOUNCE_MS = 800
ORIENTATION_SETTLE_MS = 200


def relative_change(previous: CameraDimensions, current: CameraDimensions) -> tuple[float, float]:
    width_diff = abs(current.width - previous.width) / previous.width if previous.width else float("inf")
    height_diff = abs(current.height - previous.height) / previous.height if previous.height else float("inf")
    return width_diff, height_diff


def is_significant_change(
    previous: CameraDimensions,
    current: CameraDimensions,
    threshold: float = RESTART_THRESHOLD,
) -> bool:
    width_diff, height_diff = relative_change(previous, current)
    return width_diff > threshold or height_diff > threshold


class DimensionWatcher:
    """Watch the preview surface and ask for a camera restart after layout shifts.

    Samples are compared against the last stable sample. A change above the
    threshold on either axis arms a debounce timer; later significant samples
    re-arm it, and a sample back near the stable size disarms it. When the
    timer fires the new size becomes the stable sample and
    ``on_restart_needed`` runs.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        threshold: float = RESTART_THRESHOLD,
        debounce_ms: int = RESTART_DEBOUNCE_MS,
        settle_ms: int = ORIENTATION_SETTLE_MS,
    ) -> None:
        self._scheduler = scheduler
        self._threshold = threshold
        self._debounce_ms = debounce_ms
        self._settle_ms = settle_ms

        self._surface: Optional[ScanSurface] = None
        self._on_restart_needed: Optional[Callable[[], None]] = None
        self._unsubscribers: list[Unsubscribe] = []
        self._stable: Optional[CameraDimensions] = None
        self._candidate: Optional[CameraDimensions] = None
        self._restart_task: Optional[ScheduledTask] = None
        self._settle_task: Optional[ScheduledTask] = None

    @property
    def is_observing(self) -> bool:
        return self._surface is not None

    @property
    def stable_sample(self) -> Optional[CameraDimensions]:
        return self._stable

    @property
    def restart_scheduled(self) -> bool:
        return self._restart_task is not None and self._restart_task.active

    def observe(self, surface: ScanSurface, on_restart_needed: Callable[[], None]) -> None:
        if self._surface is not None:
            self.unobserve()

        self._surface = surface
        self._on_restart_needed = on_restart_needed
        self._unsubscribers = [
            surface.add_resize_listener(self.sample),
            surface.add_orientation_listener(self._handle_orientation_change),
        ]
        self.sample()

    def unobserve(self) -> None:
        unsubscribers, self._unsubscribers = self._unsubscribers, []
        self._cancel(self._restart_task)
        self._cancel(self._settle_task)
        self._restart_task = None
        self._settle_task = None
        self._surface = None
        self._on_restart_needed = None
        self._stable = None
        self._candidate = None

        for unsubscribe in unsubscribers:
            unsubscribe()

    def sample(self) -> None:
        if self._surface is None:
            return

        rect = self._surface.bounding_rect()
        if rect.is_empty:
            return
        current = CameraDimensions(width=rect.width, height=rect.height)

        if self._stable is None:
            self._stable = current
            return

        if not is_significant_change(self._stable, current, self._threshold):
            if self.restart_scheduled:
                logger.debug("Surface settled back to %.0fx%.0f; restart cancelled", current.width, current.height)
            self._cancel(self._restart_task)
            self._restart_task = None
            self._candidate = None
            return

        self._candidate = current
        self._cancel(self._restart_task)
        self._restart_task = self._scheduler.call_later(self._debounce_ms, self._fire_restart)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _handle_orientation_change(self) -> None:
        self.sample()
        self._cancel(self._settle_task)
        self._settle_task = self._scheduler.call_later(self._settle_ms, self.sample)

    def _fire_restart(self) -> None:
        self._restart_task = None
        if self._candidate is None or self._on_restart_needed is None:
            return

        previous = self._stable
        self._stable = self._candidate
        self._candidate = None
        logger.info(
            "Surface changed from %.0fx%.0f to %.0fx%.0f; requesting camera restart",
            previous.width if previous else 0,
            previous.height if previous else 0,
            self._stable.width,
            self._stable.height,
        )
        self._on_restart_needed()

    @staticmethod
    def _cancel(task: Optional[ScheduledTask]) -> None:
        if task is not None:
            task.cancel()
