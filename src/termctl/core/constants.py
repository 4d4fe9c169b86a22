"""Shared constants for terminal control."""

# ANSI escape sequences
ESC = "\x1b"
CSI = f"{ESC}["
BEL = "\x07"

# Cursor position report: request and reply (ESC [ row ; col R)
CURSOR_POSITION_REQUEST = f"{CSI}6n"

# Readiness event bits (bit-ORable)
READABLE = 1
WRITABLE = 2
PRIORITY = 4
ALL_EVENTS = READABLE | WRITABLE | PRIORITY

# Raw mode defaults
DEFAULT_MIN_BYTES = 1
DEFAULT_TIMEOUT_TENTHS = 0

# VMIN and VTIME each occupy one control-character slot
CC_SLOT_MAX = 255

# Fallback console dimensions when nothing better is known
DEFAULT_ROWS = 24
DEFAULT_COLUMNS = 80

# Console device paths used by TerminalController.open()
POSIX_CONSOLE_PATH = "/dev/tty"
WINDOWS_CONSOLE_INPUT = "CONIN$"
WINDOWS_CONSOLE_OUTPUT = "CONOUT$"

# Erase modes: 0 = cursor to end, 1 = start to cursor, 2 = whole, 3 = whole + scrollback
ERASE_LINE_MODES = (0, 1, 2)
ERASE_SCREEN_MODES = (0, 1, 2, 3)
