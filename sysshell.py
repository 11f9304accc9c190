#!/usr/bin/env python3
# SysShell v1.0.0

import argparse
import curses
import json
import logging
import os
import sys
import unicodedata
from pathlib import Path
from typing import Optional

from shell_commands import Dispatcher
from shell_session import Key, Mode, SessionState, handle_key
from system_facade import SystemFacade

VERSION = "1.0.0"

logger = logging.getLogger("sysshell")

# -----------------------------------------------------------------------------
# Layout knobs
# -----------------------------------------------------------------------------
MARGIN = 2
MIN_WIDTH = 40
MIN_HEIGHT = 10

# -----------------------------------------------------------------------------
# Theming
# -----------------------------------------------------------------------------

THEME_DIR = os.environ.get("SYSSHELL_THEME_DIR", "/etc/sysshell/themes")

# color pair ids
PAIR_BASE = 1
PAIR_ACCENT = 2
PAIR_INPUT = 3
PAIR_EDITING = 4
PAIR_OUTPUT = 5

class ThemeManager:
    DEFAULT = "default"
    KEYS = ("fg", "bg", "accent", "input", "editing", "output")

    def __init__(self, theme_dir=None):
        self.current = self.DEFAULT
        self.theme_dir = Path(theme_dir or THEME_DIR)

    @staticmethod
    def _hex_norm(h: str) -> str:
        h = h.lstrip("#").strip()
        if len(h) == 3:
            h = "".join(c*2 for c in h)
        return h.lower()

    @staticmethod
    def _hex_to_rgb(hex_color: str):
        h = ThemeManager._hex_norm(hex_color)
        return int(h[0:2],16), int(h[2:4],16), int(h[4:6],16)

    @staticmethod
    def _nearest_xterm256(hex_color: str) -> int:
        r,g,b = ThemeManager._hex_to_rgb(hex_color)
        levels = [0,95,135,175,215,255]
        def quant(v): return min(range(6), key=lambda i: abs(levels[i]-v))
        ri, gi, bi = quant(r), quant(g), quant(b)
        cube_idx = 16 + 36*ri + 6*gi + bi
        cube_rgb = (levels[ri], levels[gi], levels[bi])
        gray_index = 232 + max(0, min(23, int(round(((r+g+b)//3 - 8)/10))))
        gray_val = 8 + (gray_index-232)*10
        def dist(a,b,c, x,y,z): return (a-x)**2 + (b-y)**2 + (c-z)**2
        return cube_idx if dist(r,g,b,*cube_rgb) <= dist(r,g,b,gray_val,gray_val,gray_val) else gray_index

    def available(self):
        names = [self.DEFAULT]
        try:
            for p in sorted(self.theme_dir.glob("*.json")):
                names.append(p.stem)
        except OSError:
            pass
        return names

    def load(self, name) -> Optional[dict]:
        """Colors of a JSON theme as {key: "#rrggbb"}, or None if unusable"""
        path = self.theme_dir / f"{name}.json"
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text())
        except (OSError, ValueError) as e:
            logger.warning("theme %s unreadable: %s", path, e)
            return None
        if not isinstance(data, dict):
            return None
        data = {str(k).lower(): v for k, v in data.items()}
        return {k: v for k, v in data.items() if k in self.KEYS and isinstance(v, str) and v.startswith("#")}

    def _default_pairs(self):
        curses.init_pair(PAIR_BASE, -1, -1)
        curses.init_pair(PAIR_ACCENT, -1, -1)
        curses.init_pair(PAIR_INPUT, curses.COLOR_YELLOW, -1)
        curses.init_pair(PAIR_EDITING, curses.COLOR_GREEN, -1)
        curses.init_pair(PAIR_OUTPUT, curses.COLOR_GREEN, -1)

    def apply(self, stdscr, name=None):
        if name:
            self.current = name
        if not curses.has_colors():
            return self.current
        curses.start_color()
        curses.use_default_colors()
        t = None if self.current == self.DEFAULT else self.load(self.current)
        if self.current != self.DEFAULT and t is None:
            logger.warning("theme %r not found in %s, using default", self.current, self.theme_dir)
        if not t or getattr(curses, "COLORS", 0) < 256:
            self._default_pairs()
        else:
            def col(key, fallback):
                return self._nearest_xterm256(t[key]) if key in t else fallback
            fg = col("fg", -1); bg = col("bg", -1)
            curses.init_pair(PAIR_BASE, fg, bg)
            curses.init_pair(PAIR_ACCENT, col("accent", fg), bg)
            curses.init_pair(PAIR_INPUT, col("input", curses.COLOR_YELLOW), bg)
            curses.init_pair(PAIR_EDITING, col("editing", curses.COLOR_GREEN), bg)
            curses.init_pair(PAIR_OUTPUT, col("output", curses.COLOR_GREEN), bg)
        if stdscr is not None:
            stdscr.bkgd(" ", curses.color_pair(PAIR_BASE))
        return self.current

THEME = ThemeManager()

# -----------------------------------------------------------------------------
# Keys
# -----------------------------------------------------------------------------

# control characters get_wch() returns as str; curses KEY_* codes only arrive as int
_ENTER_CHARS = (10, 13)
_BACKSPACE_CHARS = (8, 127)
_ENTER = _ENTER_CHARS + (curses.KEY_ENTER,)
_BACKSPACE = _BACKSPACE_CHARS + (curses.KEY_BACKSPACE,)

def translate_key(ch):
    """Map a curses get_wch() result onto a session key event (None if ignored)"""
    if isinstance(ch, str):
        if len(ch) != 1: return None
        code = ord(ch)
        if code in _ENTER_CHARS: return Key.ENTER
        if code in _BACKSPACE_CHARS: return Key.BACKSPACE
        if code == 27: return Key.ESC
        return ch if ch.isprintable() else None
    if ch in _ENTER: return Key.ENTER
    if ch in _BACKSPACE: return Key.BACKSPACE
    if ch == 27: return Key.ESC
    if ch == curses.KEY_UP: return Key.UP
    if ch == curses.KEY_DOWN: return Key.DOWN
    return None

# -----------------------------------------------------------------------------
# Rendering
# -----------------------------------------------------------------------------

def hint_spans(mode):
    """(text, bold) pieces of the one-line key hint"""
    if mode is Mode.NORMAL:
        return [("Press ", False), ("q", True), (" to exit, ", False), ("e", True), (" to start editing.", False)]
    return [("Press ", False), ("Esc", True), (" to stop editing, ", False), ("Enter", True), (" to record the message", False)]

def char_width(ch):
    if unicodedata.combining(ch): return 0
    return 2 if unicodedata.east_asian_width(ch) in ("W", "F") else 1

def display_width(text):
    return sum(char_width(ch) for ch in text)

def tail_to_width(text, width):
    """Longest suffix of text that fits in width terminal cells"""
    used = 0
    for i in range(len(text) - 1, -1, -1):
        used += char_width(text[i])
        if used > width:
            return text[i + 1:]
    return text

def visible_lines(lines, height, width):
    """The lines that fit an output box of the given inner size"""
    return [ln[:max(0, width)] for ln in lines[:max(0, height)]]

def _addstr(win, y, x, text, attr=0):
    try:
        win.addstr(y, x, text, attr)
    except curses.error:
        pass

def border_title(win, title, attr=0):
    win.attron(attr)
    win.border(0)
    win.attroff(attr)
    _addstr(win, 0, 2, title, attr | curses.A_BOLD)

def render(stdscr, state: SessionState):
    stdscr.erase()
    h, w = stdscr.getmaxyx()
    if h < MIN_HEIGHT or w < MIN_WIDTH:
        _addstr(stdscr, 0, 0, f"Please resize to at least {MIN_WIDTH}x{MIN_HEIGHT}.", curses.A_BOLD)
        stdscr.refresh()
        return

    inner_w = w - 2*MARGIN
    y = MARGIN; x = MARGIN
    blink = curses.A_BLINK if state.mode is Mode.NORMAL else 0
    for text, bold in hint_spans(state.mode):
        _addstr(stdscr, y, x, text, curses.color_pair(PAIR_BASE) | blink | (curses.A_BOLD if bold else 0))
        x += len(text)

    pair = PAIR_INPUT if state.mode is Mode.NORMAL else PAIR_EDITING
    input_box = stdscr.derwin(3, inner_w, MARGIN + 1, MARGIN)
    border_title(input_box, "Input", curses.color_pair(PAIR_ACCENT))
    shown = tail_to_width(state.input, inner_w - 3)
    _addstr(input_box, 1, 1, shown, curses.color_pair(pair))

    out_h = h - (MARGIN + 4) - MARGIN
    output_box = stdscr.derwin(out_h, inner_w, MARGIN + 4, MARGIN)
    border_title(output_box, "Output", curses.color_pair(PAIR_ACCENT))
    for i, line in enumerate(visible_lines(state.output, out_h - 2, inner_w - 2)):
        _addstr(output_box, 1 + i, 1, line, curses.color_pair(PAIR_OUTPUT))

    if state.mode is Mode.EDITING:
        try:
            curses.curs_set(1)
        except curses.error:
            pass
        cursor_x = MARGIN + 1 + display_width(shown)
        try:
            stdscr.move(MARGIN + 2, cursor_x)
        except curses.error:
            pass
    else:
        try:
            curses.curs_set(0)
        except curses.error:
            pass
    stdscr.refresh()

# -----------------------------------------------------------------------------
# Session loop
# -----------------------------------------------------------------------------

def run(stdscr, theme_name=None, facade=None):
    stdscr.keypad(True)
    THEME.apply(stdscr, theme_name)

    state = SessionState()
    dispatcher = Dispatcher(facade if facade is not None else SystemFacade())
    logger.info("session started (theme %s)", THEME.current)

    while state.running:
        render(stdscr, state)
        try:
            ch = stdscr.get_wch()
        except curses.error:
            continue
        if ch == curses.KEY_RESIZE:
            continue
        key = translate_key(ch)
        if key is None:
            continue
        handle_key(state, key, dispatcher)

    logger.info("session ended after %d commands", len(state.messages))
    return state

# -----------------------------------------------------------------------------
# CLI
# -----------------------------------------------------------------------------

def setup_logging(log_file=None, level="INFO"):
    root = logging.getLogger()
    if not log_file:
        # curses owns the terminal; never let records reach stderr
        root.addHandler(logging.NullHandler())
        return None
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root.addHandler(handler)
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    return handler

def show_help():
    print(f"""
SysShell {VERSION} - Interactive System Control Shell

Usage:
  sysshell [options]

Options:
  -t, --theme <name>   Theme to load from {THEME_DIR} (default: default)
  --log-file <path>    Write a log file (default: $SYSSHELL_LOG_FILE, else none)
  --log-level <level>  Log level for the log file (default INFO)
  -h                   Show this help
  -v                   Show version

Themes:
  {", ".join(THEME.available())}

Controls:
  e                    Start editing (type a command, Enter to run it)
  Esc                  Stop editing
  Up / Down            Scroll the process table after 'ptable'
  q                    Quit
  Type 'help' while editing for the list of commands.
""".strip())

def build_parser():
    parser = argparse.ArgumentParser(add_help=False, description=f"SysShell {VERSION}")
    parser.add_argument("-t", "--theme", default=ThemeManager.DEFAULT, help="Theme name from the theme directory")
    parser.add_argument("--log-file", default=os.environ.get("SYSSHELL_LOG_FILE"), help="Log file path")
    parser.add_argument("--log-level", default="INFO", help="Log level (default INFO)")
    parser.add_argument("-h", action="store_true", help="Show help")
    parser.add_argument("-v", action="store_true", help="Show version")
    return parser

def main(argv=None):
    args = build_parser().parse_args(argv)

    if args.h: show_help(); sys.exit(0)
    if args.v: print(f"SysShell {VERSION}"); sys.exit(0)

    setup_logging(args.log_file, args.log_level)
    # must be set before curses initialises to make Esc responsive
    os.environ.setdefault("ESCDELAY", "25")
    curses.wrapper(lambda stdscr: run(stdscr, args.theme))

if __name__ == "__main__":
    main()
