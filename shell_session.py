"""Session state and the input-mode state machine.

The session owns everything that changes while the shell runs: the line
being typed, the input mode, the audit log of submitted lines, and the
output shown to the operator. The output is either a plain list of lines
or, after ``ptable``, a paged table browsed with the arrow keys.
"""

import enum
from typing import List, Optional, Sequence, Union

# Page-down is refused once more than total_rows - SCROLL_MARGIN rows sit in
# history. Fixed constant, unrelated to the terminal height.
SCROLL_MARGIN = 45


class Mode(enum.Enum):
    NORMAL = "normal"
    EDITING = "editing"


class Key(enum.Enum):
    """Non-character keys the session understands."""
    ENTER = "enter"
    BACKSPACE = "backspace"
    ESC = "esc"
    UP = "up"
    DOWN = "down"


# A key event is either one of the named keys or a single typed character.
KeyEvent = Union[Key, str]


class Scrollback:
    """A header plus data rows, viewed from a movable offset.

    Rows before the offset are the scrollback store (``history``); the
    header and the rows from the offset on are the visible window.
    """

    def __init__(self, header: str, rows: Sequence[str]):
        self.header = header
        self.rows = list(rows)
        self.offset = 0

    @property
    def total_rows(self) -> int:
        return len(self.rows)

    def visible(self) -> List[str]:
        return [self.header] + self.rows[self.offset:]

    def history(self) -> List[str]:
        return self.rows[:self.offset]

    def page_down(self) -> bool:
        if self.offset >= len(self.rows):
            return False
        if self.offset > self.total_rows - SCROLL_MARGIN:
            return False
        self.offset += 1
        return True

    def page_up(self) -> bool:
        if self.offset == 0:
            return False
        self.offset -= 1
        return True


class SessionState:
    """Mutable state of one interactive session."""

    def __init__(self):
        self.input = ""
        self.mode = Mode.NORMAL
        self.running = True
        self.messages: List[str] = []
        self.scroll_enabled = False
        self.total_rows = 0
        self._lines: List[str] = []
        self._scrollback: Optional[Scrollback] = None

    @property
    def output(self) -> List[str]:
        if self.scroll_enabled and self._scrollback is not None:
            return self._scrollback.visible()
        return list(self._lines)

    @property
    def history(self) -> List[str]:
        # left in place when paging ends; only read while scroll_enabled
        if self._scrollback is None:
            return []
        return self._scrollback.history()

    def clear_output(self):
        self._lines = []
        self.scroll_enabled = False

    def set_output(self, lines: Sequence[str]):
        self._lines = list(lines)
        self.scroll_enabled = False

    def start_paging(self, header: str, rows: Sequence[str]):
        self._scrollback = Scrollback(header, rows)
        self._lines = []
        self.total_rows = self._scrollback.total_rows
        self.scroll_enabled = True

    def page_down(self) -> bool:
        if not self.scroll_enabled or self._scrollback is None:
            return False
        return self._scrollback.page_down()

    def page_up(self) -> bool:
        if not self.scroll_enabled or self._scrollback is None:
            return False
        return self._scrollback.page_up()


def _is_text(key: KeyEvent) -> bool:
    return isinstance(key, str) and len(key) == 1 and key.isprintable()


def handle_key(state: SessionState, key: KeyEvent, dispatcher) -> None:
    """Apply one key event to ``state``.

    ``dispatcher`` must provide ``dispatch(state, line)``; it is only
    called when a line is submitted in Editing mode.
    """
    if not state.running:
        return

    if state.mode is Mode.NORMAL:
        if key in ("e", "E"):
            state.mode = Mode.EDITING
        elif key in ("q", "Q"):
            state.running = False
        return

    if key is Key.ENTER:
        line = state.input
        state.input = ""
        state.messages.append(line)
        dispatcher.dispatch(state, line)
    elif key is Key.BACKSPACE:
        state.input = state.input[:-1]
    elif key is Key.ESC:
        state.mode = Mode.NORMAL
    elif key is Key.UP:
        state.page_up()
    elif key is Key.DOWN:
        state.page_down()
    elif _is_text(key):
        state.input += key
