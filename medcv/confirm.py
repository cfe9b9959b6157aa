"""
Typed-word confirmation gate guarding irreversible deletes.

    idle ──open()──▶ awaiting ──submit()──▶ in_flight ──▶ idle
                        │                                  (error kept on failure)
                        └──cancel()──▶ idle
"""

from typing import Callable, Optional

from medcv.config import CONFIRM_WORD

IDLE = "idle"
AWAITING = "awaiting"
IN_FLIGHT = "in_flight"


class ConfirmationGate:
    """State machine behind the "type confirm to delete" dialog."""

    def __init__(self):
        self.state = IDLE
        self.target_name: Optional[str] = None
        self.typed = ""
        self.error = None
        self._action: Optional[Callable] = None

    def open(self, target_name: str, action: Callable):
        """Start a delete for ``target_name``; ``action`` runs once on submit."""
        if self.state != IDLE:
            raise RuntimeError(f"Confirmation already {self.state}.")
        self.state = AWAITING
        self.target_name = target_name
        self.typed = ""
        self.error = None
        self._action = action
        return self

    def type_text(self, text: str) -> None:
        if self.state == AWAITING:
            self.typed = text

    @property
    def can_submit(self) -> bool:
        return self.state == AWAITING and self.typed.lower() == CONFIRM_WORD

    def submit(self):
        """Run the guarded action if the typed word matches; otherwise do nothing.

        Returns the action's result, or None when the gate did not fire.
        """
        if not self.can_submit:
            return None
        self.state = IN_FLIGHT
        action, self._action = self._action, None
        try:
            result = action()
        except Exception as e:
            self.error = e
            raise
        else:
            self.error = getattr(result, "error", None)
            return result
        finally:
            self.state = IDLE
            self.typed = ""
            self.target_name = None

    def cancel(self) -> bool:
        if self.state != AWAITING:
            return False
        self.state = IDLE
        self.typed = ""
        self.target_name = None
        self._action = None
        return True
