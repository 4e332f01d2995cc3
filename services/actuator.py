"""
Actuator: synthesizes OS pointer and keyboard events.

ActuatorInterface is the seam the ActionArbiter drives. PyAutoGuiActuator is
the production implementation. Every call carries the synthetic-event marker;
since OS event hooks cannot carry user data portably, button events are also
written to a SyntheticEventLedger that the safety monitor consults to tell our
own clicks apart from physical ones.
"""

import logging
import sys
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Optional, Sequence, Tuple

import config

logger = logging.getLogger(__name__)

BUTTON_LEFT = "left"
BUTTON_RIGHT = "right"

# Modifier for copy/paste/undo shortcuts.
PRIMARY_MODIFIER = "command" if sys.platform == "darwin" else "ctrl"


class ActuatorInterface(ABC):
    """Abstract OS-event sink. Positive dy moves the pointer down; positive scroll dy scrolls up."""

    @abstractmethod
    def move_relative(self, dx: float, dy: float, marker: int) -> None:
        pass

    @abstractmethod
    def scroll(self, dx: float, dy: float, marker: int) -> None:
        pass

    @abstractmethod
    def click(self, button: str, down: bool, marker: int) -> None:
        """Press (down=True) or release (down=False) a pointer button."""
        pass

    @abstractmethod
    def key(self, code: str, modifiers: Sequence[str], marker: int) -> None:
        """Tap a key, holding the given modifiers."""
        pass

    @abstractmethod
    def drag(self, position: Tuple[float, float], button: str, marker: int) -> None:
        """Emit a drag of the held button to an absolute screen position."""
        pass


class SyntheticEventLedger:
    """
    Thread-safe record of recently emitted button events.

    The actuator writes from the pipeline thread; the safety monitor reads from
    the OS hook thread.
    """

    def __init__(self, window_sec: Optional[float] = None, maxlen: int = 64):
        self.window_sec = config.SYNTHETIC_MATCH_WINDOW_SEC if window_sec is None else window_sec
        self._events: deque = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def record(self, button: str, down: bool, marker: int, timestamp: Optional[float] = None) -> None:
        ts = time.monotonic() if timestamp is None else timestamp
        with self._lock:
            self._events.append((button, bool(down), marker, ts))

    def consume_match(self, button: str, down: bool, timestamp: Optional[float] = None) -> bool:
        """
        Return True (and drop the entry) if a marked event for this button and
        direction was recorded within the match window.
        """
        now = time.monotonic() if timestamp is None else timestamp
        with self._lock:
            for entry in self._events:
                b, d, _marker, ts = entry
                if b == button and d == bool(down) and abs(now - ts) <= self.window_sec:
                    self._events.remove(entry)
                    return True
        return False

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class PyAutoGuiActuator(ActuatorInterface):
    """pyautogui-backed actuator. Importing pyautogui needs a display, so it is loaded here."""

    def __init__(self, ledger: Optional[SyntheticEventLedger] = None):
        import pyautogui

        self._gui = pyautogui
        # No built-in pause or corner fail-safe; the arbiter paces events.
        pyautogui.FAILSAFE = False
        pyautogui.PAUSE = 0
        self.ledger = ledger if ledger is not None else SyntheticEventLedger()
        logger.info("pyautogui actuator ready (primary modifier: %s)", PRIMARY_MODIFIER)

    def move_relative(self, dx: float, dy: float, marker: int) -> None:
        self._gui.moveRel(int(round(dx)), int(round(dy)))

    def scroll(self, dx: float, dy: float, marker: int) -> None:
        if dy:
            self._gui.scroll(int(round(dy)))
        if dx:
            self._gui.hscroll(int(round(dx)))

    def click(self, button: str, down: bool, marker: int) -> None:
        self.ledger.record(button, down, marker)
        if down:
            self._gui.mouseDown(button=button)
        else:
            self._gui.mouseUp(button=button)

    def key(self, code: str, modifiers: Sequence[str], marker: int) -> None:
        if modifiers:
            self._gui.hotkey(*modifiers, code)
        else:
            self._gui.press(code)

    def drag(self, position: Tuple[float, float], button: str, marker: int) -> None:
        """
        Move with the button held. dragTo without mouseDownUp posts a real
        mouse-dragged event on macOS, where a plain move would not drag while
        a synthetic button is down.
        """
        x, y = position
        self._gui.dragTo(int(round(x)), int(round(y)), button=button, mouseDownUp=False)
