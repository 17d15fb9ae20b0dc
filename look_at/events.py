"""Typed input events and the click -> goal dispatch loop."""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable

import cv2

from .deprojection import project
from .dispatcher import ActuatorGoalDispatcher
from .errors import GoalSubmissionError, InvalidIntrinsicsError, NotReadyError
from .intrinsics import IntrinsicsStore
from .models import DEFAULT_DEPTH, ActuatorGoal, PixelSelection

logger = logging.getLogger("look_at.events")


@dataclass(frozen=True)
class MouseClick:
    """Raw mouse event from the viewer window."""

    event: int  # cv2.EVENT_* code
    u: int
    v: int
    stamp: float

    @property
    def is_primary_press(self) -> bool:
        return self.event == cv2.EVENT_LBUTTONDOWN


@dataclass(frozen=True)
class Shutdown:
    """Stop processing events."""

    reason: str = ""


Event = MouseClick | Shutdown


class LookAtPipeline:
    """Turns primary clicks into point-head goals.

    Every click is independent: a failure drops that click only.
    """

    def __init__(
        self,
        store: IntrinsicsStore,
        dispatcher: ActuatorGoalDispatcher,
        camera_frame: str,
        depth: float = DEFAULT_DEPTH,
        now: Callable[[], float] = time.time,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.camera_frame = camera_frame
        self.depth = depth
        self._now = now

    def handle_click(self, click: MouseClick) -> ActuatorGoal | None:
        """Process one mouse event. Returns the submitted goal, or None if dropped."""
        if not click.is_primary_press:
            return None

        selection = PixelSelection(u=click.u, v=click.v, stamp=click.stamp)
        logger.info(
            f"Pixel selected ({selection.u}, {selection.v}), looking in that direction"
        )
        try:
            intrinsics = self.store.get()
            target = project((selection.u, selection.v), intrinsics, self.depth)
        except NotReadyError as e:
            logger.warning(f"Click dropped: {e}")
            return None
        except InvalidIntrinsicsError as e:
            logger.error(f"Click dropped: {e}")
            return None

        goal = ActuatorGoal.look_at(target, self.camera_frame, stamp=self._now())
        try:
            self.dispatcher.send_goal(goal)
        except GoalSubmissionError as e:
            logger.error(f"Goal for pixel ({selection.u}, {selection.v}) dropped: {e}")
            return None
        return goal

    def run(self, events: Iterable[Event]) -> int:
        """Consume events until Shutdown or the source is exhausted.

        Returns:
            Number of goals submitted
        """
        submitted = 0
        for event in events:
            if isinstance(event, Shutdown):
                logger.info(f"Shutting down event loop {event.reason}".rstrip())
                break
            try:
                if self.handle_click(event) is not None:
                    submitted += 1
            except Exception:
                logger.exception(f"Unexpected error handling {event}")
        return submitted
