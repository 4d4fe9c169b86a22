"""Tests for cursor control and console size queries."""

import io

import pytest

from conftest import posix_only
from termctl.core.size import ConsoleSize
from termctl.errors import DeviceUnavailable, InvalidArgument, PlatformUnsupported
from termctl.io.stream import DeviceStream
from termctl.platform.base import ScreenInfo
from termctl.screen.cursor import AnsiScreen, NullScreen, Win32Screen, screen_for
from termctl.screen.size import ConsoleSizeProbe, console_size, default_size


class TestAnsiScreen:
    """Control sequences written to text and byte streams."""

    @pytest.mark.parametrize("call,expected", [
        (lambda s: s.move_up(3), "\x1b[3A"),
        (lambda s: s.move_down(2), "\x1b[2B"),
        (lambda s: s.move_right(4), "\x1b[4C"),
        (lambda s: s.move_left(), "\x1b[1D"),
        (lambda s: s.move_up(-2), "\x1b[2B"),
        (lambda s: s.move_up(0), ""),
        (lambda s: s.goto(0, 0), "\x1b[1;1H"),
        (lambda s: s.goto(4, 9), "\x1b[5;10H"),
        (lambda s: s.goto_column(7), "\x1b[8G"),
        (lambda s: s.erase_line(), "\x1b[0K"),
        (lambda s: s.erase_line(2), "\x1b[2K"),
        (lambda s: s.erase_screen(1), "\x1b[1J"),
        (lambda s: s.erase_screen(3), "\x1b[3J"),
        (lambda s: s.scroll_forward(2), "\x1b[2S"),
        (lambda s: s.scroll_backward(), "\x1b[1T"),
        (lambda s: s.scroll_forward(0), ""),
        (lambda s: s.clear_screen(), "\x1b[2J\x1b[1;1H"),
    ])
    def test_sequences(self, call, expected: str) -> None:
        out = io.StringIO()
        call(AnsiScreen(out))
        assert out.getvalue() == expected

    def test_byte_stream_gets_ascii(self) -> None:
        out = io.BytesIO()
        AnsiScreen(out).goto(1, 2)
        assert out.getvalue() == b"\x1b[2;3H"

    @pytest.mark.parametrize("call", [
        lambda s: s.erase_line(3),
        lambda s: s.erase_screen(4),
        lambda s: s.erase_line(True),
        lambda s: s.goto(-1, 0),
        lambda s: s.goto_column(-5),
        lambda s: s.move_up(1.5),
        lambda s: s.scroll_forward("2"),
    ])
    def test_rejects_bad_arguments(self, call) -> None:
        out = io.StringIO()
        with pytest.raises(InvalidArgument):
            call(AnsiScreen(out))
        assert out.getvalue() == ""


class TestNullScreen:
    """Every operation fails where there is no cursor control."""

    @pytest.mark.parametrize("call", [
        lambda s: s.move_up(),
        lambda s: s.goto(0, 0),
        lambda s: s.goto_column(1),
        lambda s: s.erase_line(),
        lambda s: s.erase_screen(2),
        lambda s: s.scroll_backward(),
        lambda s: s.clear_screen(),
    ])
    def test_unsupported(self, call) -> None:
        with pytest.raises(PlatformUnsupported):
            call(NullScreen(io.StringIO()))


class FakeConsole:
    """Records native console calls against fixed geometry."""

    name = "windows"

    def __init__(self, info: ScreenInfo) -> None:
        self.info = info
        self.calls = []

    def screen_info(self, fd):
        return self.info

    def set_cursor(self, fd, row, column):
        self.calls.append(("cursor", row, column))

    def fill_blank(self, fd, row, column, count, attributes):
        self.calls.append(("fill", row, column, count, attributes))


class TestWin32Screen:
    """Native console operations computed from the buffer geometry."""

    @pytest.fixture
    def console(self) -> FakeConsole:
        return FakeConsole(ScreenInfo(
            cursor_row=105, cursor_column=10, width=80, height=300,
            window_top=100, window_height=25, attributes=7,
        ))

    def test_goto_is_window_relative(self, console: FakeConsole) -> None:
        Win32Screen(None, console, 3).goto(2, 5)
        assert console.calls == [("cursor", 102, 5)]

    def test_moves_clamp_to_buffer(self, console: FakeConsole) -> None:
        screen = Win32Screen(None, console, 3)
        screen.move_up(200)
        screen.move_right(500)
        assert console.calls == [("cursor", 0, 10), ("cursor", 105, 79)]

    def test_goto_column(self, console: FakeConsole) -> None:
        Win32Screen(None, console, 3).goto_column(0)
        assert console.calls == [("cursor", 105, 0)]

    @pytest.mark.parametrize("mode,expected", [
        (0, ("fill", 105, 10, 70, 7)),
        (1, ("fill", 105, 0, 11, 7)),
        (2, ("fill", 105, 0, 80, 7)),
    ])
    def test_erase_line(self, console: FakeConsole, mode: int, expected: tuple) -> None:
        Win32Screen(None, console, 3).erase_line(mode)
        assert console.calls == [expected]

    @pytest.mark.parametrize("mode,expected", [
        (0, ("fill", 105, 10, 20 * 80 - 10, 7)),
        (1, ("fill", 100, 0, 5 * 80 + 11, 7)),
        (2, ("fill", 100, 0, 25 * 80, 7)),
        (3, ("fill", 0, 0, 300 * 80, 7)),
    ])
    def test_erase_screen(self, console: FakeConsole, mode: int, expected: tuple) -> None:
        Win32Screen(None, console, 3).erase_screen(mode)
        assert console.calls == [expected]

    def test_scrolling_unsupported(self, console: FakeConsole) -> None:
        with pytest.raises(PlatformUnsupported):
            Win32Screen(None, console, 3).scroll_forward()


class TestScreenFor:
    """Choosing an implementation for a stream."""

    def test_memory_stream_gets_sequences(self) -> None:
        assert isinstance(screen_for(io.StringIO()), AnsiScreen)

    @posix_only
    def test_dumb_terminal_gets_null_screen(self, pty_pair, monkeypatch) -> None:
        from termctl.platform.posix import PosixBackend

        _, slave = pty_pair
        monkeypatch.setenv("TERM", "dumb")
        assert isinstance(screen_for(DeviceStream(slave), PosixBackend()), NullScreen)
        monkeypatch.setenv("TERM", "xterm-256color")
        assert isinstance(screen_for(DeviceStream(slave), PosixBackend()), AnsiScreen)


class TestDefaultSize:
    """LINES/COLUMNS with a fixed fallback."""

    def test_fallback(self) -> None:
        assert default_size({}) == ConsoleSize(24, 80)

    def test_environment(self) -> None:
        assert default_size({"LINES": "50", "COLUMNS": "132"}) == ConsoleSize(50, 132)
        assert default_size({"LINES": "50"}) == ConsoleSize(50, 80)

    @pytest.mark.parametrize("lines", ["abc", "0", "-3", ""])
    def test_ignores_unusable_values(self, lines: str) -> None:
        assert default_size({"LINES": lines, "COLUMNS": "90"}) == ConsoleSize(24, 90)


class TestConsoleSizeProbe:
    """Window size of the console behind a stream."""

    @posix_only
    def test_set_then_query(self, pty_pair) -> None:
        from termctl.platform.posix import PosixBackend

        _, slave = pty_pair
        probe = ConsoleSizeProbe(slave, PosixBackend())
        probe.set_size(40, 120, 800, 600)
        assert probe.size() == ConsoleSize(40, 120, 800, 600)
        assert probe.size().as_tuple() == (40, 120)
        assert probe.size_or_default() == ConsoleSize(40, 120, 800, 600)

    @posix_only
    @pytest.mark.parametrize("values", [(-1, 80), (24, 70000), (24.0, 80), (True, 80)])
    def test_set_size_rejects_bad_values(self, pty_pair, values) -> None:
        from termctl.platform.posix import PosixBackend

        _, slave = pty_pair
        with pytest.raises(InvalidArgument):
            ConsoleSizeProbe(slave, PosixBackend()).set_size(*values)

    @posix_only
    def test_non_terminal(self, pipe_pair, monkeypatch) -> None:
        from termctl.platform.posix import PosixBackend

        read_end, _ = pipe_pair
        monkeypatch.setenv("LINES", "33")
        monkeypatch.setenv("COLUMNS", "99")
        probe = ConsoleSizeProbe(read_end, PosixBackend())
        with pytest.raises(DeviceUnavailable):
            probe.size()
        assert probe.size_or_default() == ConsoleSize(33, 99)

    @posix_only
    def test_zero_size_falls_back(self, pty_pair, monkeypatch) -> None:
        from termctl.platform.posix import PosixBackend

        _, slave = pty_pair
        monkeypatch.delenv("LINES", raising=False)
        monkeypatch.delenv("COLUMNS", raising=False)
        probe = ConsoleSizeProbe(slave, PosixBackend())
        probe.set_size(0, 0)
        assert probe.size_or_default() == ConsoleSize(24, 80)

    def test_console_size_of_memory_stream(self, monkeypatch) -> None:
        monkeypatch.delenv("LINES", raising=False)
        monkeypatch.delenv("COLUMNS", raising=False)
        assert console_size(io.StringIO()) == ConsoleSize(24, 80)
