# backend/quickroll/client/presentation.py
"""
Presentation-mode watcher run next to each participant's code entry view.

A participant who leaves true full-screen (tab hidden, split screen, floating
window, explicit exit) gets a short grace period to come back. If they don't,
a single violation is reported and the monitor stays in FORCED_ABSENT for the
rest of the session.
"""
import logging
import threading
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional, Tuple

from quickroll.services.session_registry import PresentationViolation, ViolationKind

logger = logging.getLogger(__name__)

GRACE_SECONDS = 5
MIN_AREA_RATIO = 0.9
MAX_ASPECT_DELTA = 0.1

Size = Tuple[float, float]


def is_true_full_bleed(window: Optional[Size], screen: Optional[Size]) -> bool:
    """Window covers at least 90% of the screen with an aspect ratio within 0.1."""
    if not window or not screen:
        return False
    width, height = window
    screen_width, screen_height = screen
    if min(width, height, screen_width, screen_height) <= 0:
        return False

    area_ratio = (width * height) / (screen_width * screen_height)
    aspect_delta = abs(width / height - screen_width / screen_height)
    return area_ratio >= MIN_AREA_RATIO and aspect_delta <= MAX_ASPECT_DELTA


class MonitorState(Enum):
    NORMAL = 'normal'
    SUSPECTED_EXIT = 'suspected_exit'
    FORCED_ABSENT = 'forced_absent'


class UnavailableDisplay:
    """No full-screen API: geometry can be read but mode changes are never signalled."""

    supports_fullscreen = False

    def __init__(self, window_size: Callable[[], Size], screen_size: Callable[[], Size]):
        self._window_size = window_size
        self._screen_size = screen_size

    def window_size(self) -> Size:
        return self._window_size()

    def screen_size(self) -> Size:
        return self._screen_size()

    def request_fullscreen(self) -> bool:
        return False


class AvailableDisplay(UnavailableDisplay):
    supports_fullscreen = True

    def __init__(self, window_size: Callable[[], Size], screen_size: Callable[[], Size],
                 request_fullscreen: Callable[[], None] = None):
        super().__init__(window_size, screen_size)
        self._request_fullscreen = request_fullscreen

    def request_fullscreen(self) -> bool:
        if self._request_fullscreen is None:
            return False
        self._request_fullscreen()
        return True


class PresentationMonitor:
    """
    NORMAL -> SUSPECTED_EXIT -> NORMAL | FORCED_ABSENT.

    Every suspicion episode gets a new generation number; a timer only fires
    the violation if its generation is still current when it runs, so a
    recovery that wins the lock first always cancels the pending violation.
    """

    def __init__(self, display: UnavailableDisplay,
                 on_violation: Callable[[ViolationKind], None],
                 grace_seconds: float = GRACE_SECONDS,
                 timer_factory=threading.Timer, identity: str = None):
        self.display = display
        self.on_violation = on_violation
        self.grace_seconds = grace_seconds
        self.timer_factory = timer_factory

        self.state = MonitorState.NORMAL
        self.active = False
        self.identity = identity
        self.violation: Optional[PresentationViolation] = None
        self._timer = None
        self._generation = 0
        self._lock = threading.Lock()

    def activate(self) -> None:
        """
        Start watching; called when the participant's session goes Active.

        A FORCED_ABSENT mark only lasts for the session it was earned in, so
        the first activation after a deactivate starts from NORMAL. Repeated
        calls while active keep the current state.
        """
        with self._lock:
            if not self.active:
                self._cancel_timer()
                self.state = MonitorState.NORMAL
                self.violation = None
            self.active = True
        self.display.request_fullscreen()
        self.check_geometry()

    def deactivate(self) -> None:
        with self._lock:
            self.active = False
            self._cancel_timer()
            if self.state == MonitorState.SUSPECTED_EXIT:
                self.state = MonitorState.NORMAL
                self.violation = None

    def check_geometry(self) -> MonitorState:
        """Re-evaluate the window against the screen (resize, orientation change)."""
        if is_true_full_bleed(self.display.window_size(), self.display.screen_size()):
            return self.recover()
        return self.suspect(ViolationKind.SPLIT_OR_FLOATING_WINDOW)

    def on_mode_exit(self) -> MonitorState:
        return self.suspect(ViolationKind.MODE_EXITED)

    def on_mode_enter(self) -> MonitorState:
        return self.check_geometry()

    def on_visibility_change(self, hidden: bool) -> MonitorState:
        if hidden:
            return self.suspect(ViolationKind.PAGE_HIDDEN)
        return self.check_geometry()

    def suspect(self, kind: ViolationKind) -> MonitorState:
        with self._lock:
            if not self.active or self.state != MonitorState.NORMAL:
                return self.state
            self.state = MonitorState.SUSPECTED_EXIT
            detected_at = datetime.utcnow()
            self.violation = PresentationViolation(
                identity=self.identity,
                kind=kind,
                detected_at=detected_at,
                grace_deadline=detected_at + timedelta(seconds=self.grace_seconds)
            )
            self._generation += 1
            self._timer = self.timer_factory(self.grace_seconds, self._expire, args=(self._generation,))
            self._timer.daemon = True
            self._timer.start()
            logger.info('Presentation mode lost (%s); %ss to recover', kind.value, self.grace_seconds)
            return self.state

    def recover(self) -> MonitorState:
        with self._lock:
            if self.state != MonitorState.SUSPECTED_EXIT:
                return self.state
            self._cancel_timer()
            self.state = MonitorState.NORMAL
            self.violation = None
            logger.info('Presentation mode restored')
            return self.state

    def confirm_exit(self) -> MonitorState:
        """The participant chose to leave instead of returning to full-screen."""
        with self._lock:
            if self.state != MonitorState.SUSPECTED_EXIT:
                return self.state
            generation = self._generation
        self._expire(generation)
        return self.state

    def _cancel_timer(self) -> None:
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _expire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self.state != MonitorState.SUSPECTED_EXIT:
                return
            self.state = MonitorState.FORCED_ABSENT
            self._timer = None
            kind = self.violation.kind if self.violation else ViolationKind.MODE_EXITED

        logger.warning('Presentation mode violation: %s', kind.value)
        self.on_violation(kind)
