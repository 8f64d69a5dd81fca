"""Keyboard shortcuts for the review player.

``KeyEventSource`` stands in for the window: front-ends translate their input
into ``KeyEvent`` objects and dispatch them. The binder keeps exactly one
listener on the source while enabled.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from flashdeck.modules.reviews.models import ReviewOutcome, grade_for


class InputTarget(str, Enum):
    """What had focus when the key was pressed."""

    DOCUMENT = "document"
    INPUT = "input"
    TEXTAREA = "textarea"
    SELECT = "select"


EDITABLE_TARGETS = frozenset({InputTarget.INPUT, InputTarget.TEXTAREA, InputTarget.SELECT})

KEY_OUTCOMES: dict[str, ReviewOutcome] = {
    "Digit1": ReviewOutcome.AGAIN,
    "Digit2": ReviewOutcome.FAIL,
    "Digit3": ReviewOutcome.HARD,
    "Digit4": ReviewOutcome.GOOD,
    "Digit5": ReviewOutcome.EASY,
}
REVEAL_KEYS = frozenset({"Space"})
NEXT_KEYS = frozenset({"Enter", "ArrowRight"})
HANDLED_KEYS = REVEAL_KEYS | NEXT_KEYS | frozenset(KEY_OUTCOMES)

_CHAR_CODES = {
    " ": "Space",
    "\r": "Enter",
    "\n": "Enter",
    "l": "ArrowRight",
    **{str(n): f"Digit{n}" for n in range(10)},
}


def key_code_for_char(ch: str) -> Optional[str]:
    """Map a terminal character to the key code the binder understands."""
    return _CHAR_CODES.get(ch)


@dataclass
class KeyEvent:
    code: str
    target: InputTarget = InputTarget.DOCUMENT
    ctrl: bool = False
    meta: bool = False
    alt: bool = False
    shift: bool = False
    default_prevented: bool = False

    def prevent_default(self) -> None:
        self.default_prevented = True

    @property
    def has_modifier(self) -> bool:
        return self.ctrl or self.meta or self.alt or self.shift


KeyListener = Callable[[KeyEvent], None]


class KeyEventSource:
    def __init__(self) -> None:
        self._listeners: list[KeyListener] = []

    def add_listener(self, listener: KeyListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: KeyListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def dispatch(self, event: KeyEvent) -> KeyEvent:
        for listener in list(self._listeners):
            listener(event)
        return event


class KeyboardShortcutBinder:
    def __init__(
        self,
        source: KeyEventSource,
        *,
        on_reveal: Callable[[], object],
        on_select_outcome: Callable[[ReviewOutcome, int], object],
        on_go_next: Callable[[], object],
        can_go_next: Callable[[], bool],
        enabled: bool = False,
    ) -> None:
        self.source = source
        self.on_reveal = on_reveal
        self.on_select_outcome = on_select_outcome
        self.on_go_next = on_go_next
        self.can_go_next = can_go_next
        self._enabled = False
        self.enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        value = bool(value)
        if value == self._enabled:
            return
        self._enabled = value
        if value:
            self.source.add_listener(self.handle_key)
        else:
            self.source.remove_listener(self.handle_key)

    def close(self) -> None:
        self.enabled = False

    def handle_key(self, event: KeyEvent) -> None:
        if event.target in EDITABLE_TARGETS or event.has_modifier:
            return

        if event.code in HANDLED_KEYS:
            # Also for next keys whose guard fails below
            event.prevent_default()

        if event.code in REVEAL_KEYS:
            self.on_reveal()
        elif event.code in KEY_OUTCOMES:
            outcome = KEY_OUTCOMES[event.code]
            self.on_select_outcome(outcome, grade_for(outcome))
        elif event.code in NEXT_KEYS:
            if self.can_go_next():
                self.on_go_next()
