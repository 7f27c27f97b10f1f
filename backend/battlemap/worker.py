from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from typing import Iterable, Optional

from .models import Bounds, Point, RoomBoundary, WallSegment
from .rooms import RoomDetector

log = logging.getLogger("battlemap.worker")


class LatestRoomDetection:
    """Run room detection off the event loop, last request wins.

    Starting a new request signals the previous one to stop; a superseded
    request resolves to None instead of a stale boundary.
    """

    def __init__(self, detector: Optional[RoomDetector] = None) -> None:
        self.detector = detector or RoomDetector()
        self._counter = itertools.count(1)
        self._latest = 0
        self._cancel: Optional[threading.Event] = None

    async def detect(
        self,
        start: Point,
        walls: Iterable[WallSegment],
        bounds: Bounds,
        resolution: Optional[float] = None,
    ) -> Optional[RoomBoundary]:
        if self._cancel is not None:
            self._cancel.set()
        request = next(self._counter)
        cancel = threading.Event()
        self._latest = request
        self._cancel = cancel

        # Materialize walls so the worker thread never touches caller state.
        wall_list = list(walls)
        result = await asyncio.to_thread(
            self.detector.detect, start, wall_list, bounds, resolution, cancel
        )
        if request != self._latest:
            log.debug("Dropping superseded room detection #%d", request)
            return None
        self._cancel = None
        return result

    def cancel(self) -> None:
        """Abandon the in-flight request, if any."""
        if self._cancel is not None:
            self._cancel.set()
            self._cancel = None
        self._latest = next(self._counter)
