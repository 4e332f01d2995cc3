"""
Safety monitor: physical-click kill switch for held drags.

Watches real mouse input through a pynput listener. While the arbiter holds a
drag, a physical left or right button press triggers the release callback, so
a face-driven drag can always be broken with the mouse. Clicks the actuator
emitted itself are filtered out using the SyntheticEventLedger (and pynput's
injected flag where the platform reports it).

Pointer motion seen while the drag is held is forwarded to the arbiter as drag
events.
"""

import logging
import threading
from typing import Callable, Optional, Tuple

from services.actuator import BUTTON_LEFT, BUTTON_RIGHT, SyntheticEventLedger

logger = logging.getLogger(__name__)


class SafetyMonitor:
    """
    Usage:
        monitor = SafetyMonitor(
            is_drag_held=lambda: arbiter.drag_held,
            on_physical_click=controller.force_release,
            on_pointer_motion=controller.forward_pointer_motion,
            ledger=actuator.ledger,
        )
        monitor.start()
    """

    def __init__(
        self,
        is_drag_held: Callable[[], bool],
        on_physical_click: Callable[[str], None],
        on_pointer_motion: Optional[Callable[[Tuple[float, float]], None]] = None,
        ledger: Optional[SyntheticEventLedger] = None,
    ):
        self._is_drag_held = is_drag_held
        self._on_physical_click = on_physical_click
        self._on_pointer_motion = on_pointer_motion
        self.ledger = ledger if ledger is not None else SyntheticEventLedger()
        self._listener = None
        self._last_forwarded: Optional[Tuple[float, float]] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._listener is not None

    def start(self) -> bool:
        """Start the OS listener. Returns False (and logs) if pynput cannot hook input."""
        with self._lock:
            if self._listener is not None:
                return True
            try:
                from pynput import mouse
            except Exception as e:
                logger.error("Safety monitor unavailable (pynput): %s", e)
                return False

            def on_click(x, y, button, pressed, *args):
                injected = bool(args[0]) if args else False
                self.handle_click(_button_name(button, mouse), pressed, injected=injected)

            def on_move(x, y, *args):
                injected = bool(args[0]) if args else False
                if not injected:
                    self.handle_move(x, y)

            try:
                listener = mouse.Listener(on_click=on_click, on_move=on_move)
                listener.daemon = True
                listener.start()
            except Exception as e:
                logger.error("Safety monitor failed to start: %s", e)
                return False
            self._listener = listener
        logger.info("Safety monitor started")
        return True

    def stop(self) -> None:
        with self._lock:
            listener, self._listener = self._listener, None
        if listener is not None:
            listener.stop()
            logger.info("Safety monitor stopped")

    def handle_click(self, button: Optional[str], pressed: bool, injected: bool = False) -> bool:
        """
        Process one observed button event.

        Returns:
            True when the event was treated as a physical click during a drag
            and the release callback was invoked.
        """
        if button not in (BUTTON_LEFT, BUTTON_RIGHT):
            return False
        if injected or self.ledger.consume_match(button, pressed):
            return False
        if not pressed or not self._is_drag_held():
            return False
        logger.warning("Physical %s click during drag; releasing", button)
        self._last_forwarded = None
        self._on_physical_click(button)
        return True

    def handle_move(self, x: float, y: float) -> bool:
        """Forward pointer motion while a drag is held. Returns True when forwarded."""
        if self._on_pointer_motion is None or not self._is_drag_held():
            self._last_forwarded = None
            return False
        position = (x, y)
        # Our own drag re-emits the same position; skip it.
        if position == self._last_forwarded:
            return False
        self._last_forwarded = position
        self._on_pointer_motion(position)
        return True


def _button_name(button, mouse_module) -> Optional[str]:
    if button == mouse_module.Button.left:
        return BUTTON_LEFT
    if button == mouse_module.Button.right:
        return BUTTON_RIGHT
    return None
