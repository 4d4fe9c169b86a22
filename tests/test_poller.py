"""Tests for ReadinessPoller over pipes, sockets and in-memory streams."""

import io
import math
import os
import select
import signal
import socket
import threading
import time

import pytest

from conftest import posix_only
from termctl.errors import InvalidArgument, Interrupted, PlatformUnsupported, StreamClosed
from termctl.io import poller as poller_module
from termctl.io.poller import (
    TIMED_OUT,
    Readiness,
    ReadinessPoller,
    WaitStatus,
    nread,
    ready,
    wait,
    wait_priority,
    wait_readable,
    wait_writable,
)
from termctl.io.stream import DeviceStream

pytestmark = posix_only


class TestWaitResult:
    """Truthiness and status helpers."""

    def test_only_ready_is_truthy(self) -> None:
        assert not TIMED_OUT
        assert TIMED_OUT.timed_out
        assert not poller_module.UNSUPPORTED
        assert poller_module.UNSUPPORTED.unsupported
        assert poller_module.WaitResult(WaitStatus.READY, Readiness.READABLE)


class TestArguments:
    """Event masks and timeouts are validated before anything blocks."""

    @pytest.mark.parametrize("events", [0, 8, -1, True, "1", 1.0, None])
    def test_bad_event_mask(self, pipe_pair, events) -> None:
        read_end, _ = pipe_pair
        with pytest.raises(InvalidArgument):
            wait(read_end, events, 0)

    @pytest.mark.parametrize("timeout", [-1, -0.001, math.nan, "1", True])
    def test_bad_timeout(self, pipe_pair, timeout) -> None:
        read_end, _ = pipe_pair
        with pytest.raises(InvalidArgument):
            wait(read_end, Readiness.READABLE, timeout)

    def test_invalid_argument_is_value_error(self, pipe_pair) -> None:
        read_end, _ = pipe_pair
        with pytest.raises(ValueError):
            wait(read_end, 9)

    def test_infinite_timeout_means_no_limit(self, pipe_pair) -> None:
        read_end, write_end = pipe_pair
        os.write(write_end, b"x")
        assert wait(read_end, Readiness.READABLE, math.inf)


class TestTimeouts:
    """Zero polls once; positive values bound the wait."""

    def test_zero_timeout_returns_immediately(self, pipe_pair) -> None:
        read_end, _ = pipe_pair
        start = time.monotonic()
        result = wait_readable(read_end, 0)
        assert result.status is WaitStatus.TIMED_OUT
        assert time.monotonic() - start < 0.5

    def test_positive_timeout_waits_at_least_that_long(self, pipe_pair) -> None:
        read_end, _ = pipe_pair
        start = time.monotonic()
        result = wait_readable(read_end, 0.1)
        elapsed = time.monotonic() - start
        assert result.timed_out
        assert 0.09 <= elapsed < 2.0

    def test_ready_data_beats_timeout(self, pipe_pair) -> None:
        read_end, write_end = pipe_pair
        os.write(write_end, b"data")
        result = wait_readable(read_end, 5)
        assert result
        assert result.events == Readiness.READABLE


class TestEvents:
    """Readiness is reported per requested event."""

    def test_socket_is_writable_not_readable(self) -> None:
        left, right = socket.socketpair()
        with left, right:
            assert wait_writable(left, 0)
            assert not wait_readable(left, 0)
            result = wait(left, Readiness.READABLE | Readiness.WRITABLE, 0)
            assert result.events == Readiness.WRITABLE

    def test_combined_mask_reports_subset(self) -> None:
        left, right = socket.socketpair()
        with left, right:
            right.sendall(b"ping")
            result = wait(left, Readiness.READABLE | Readiness.WRITABLE, 1)
            assert result.events == Readiness.READABLE | Readiness.WRITABLE

    def test_priority_without_urgent_data(self, pipe_pair) -> None:
        read_end, _ = pipe_pair
        assert wait_priority(read_end, 0).timed_out

    def test_hangup_counts_as_readable(self) -> None:
        read_end, write_end = os.pipe()
        try:
            os.close(write_end)
            result = wait_readable(read_end, 1)
            assert result
            assert os.read(read_end, 1) == b""
        finally:
            os.close(read_end)

    def test_closed_descriptor_raises_stream_closed(self) -> None:
        read_end, write_end = os.pipe()
        os.close(write_end)
        os.close(read_end)
        with pytest.raises(StreamClosed):
            wait(read_end, Readiness.READABLE, 0)


class TestBufferedData:
    """Bytes held by the stream itself count as readable."""

    def test_buffered_bytes_skip_the_kernel(self, pipe_pair, monkeypatch) -> None:
        read_end, _ = pipe_pair
        stream = DeviceStream(read_end)
        stream.unread(b"xy")

        def refuse(*args, **kwargs):
            raise AssertionError("kernel was polled")

        monkeypatch.setattr(select, "poll", refuse, raising=False)
        monkeypatch.setattr(select, "select", refuse)
        result = ReadinessPoller(stream).wait(Readiness.READABLE, None)
        assert result.events == Readiness.READABLE

    def test_nread_adds_buffer_and_kernel(self, pipe_pair) -> None:
        read_end, write_end = pipe_pair
        stream = DeviceStream(read_end)
        os.write(write_end, b"hello")
        assert nread(stream) == 5
        assert stream.read(2) == b"he"
        stream.unread(b"e")
        assert nread(stream) == 4
        assert nread(stream) == 4
        assert ready(stream)

    def test_nread_is_zero_when_empty(self, pipe_pair) -> None:
        read_end, _ = pipe_pair
        assert nread(read_end) == 0
        assert not ready(read_end)

    def test_buffer_only_satisfies_readable(self, pipe_pair) -> None:
        read_end, _ = pipe_pair
        stream = DeviceStream(read_end)
        stream.unread(b"z")
        assert wait(stream, Readiness.PRIORITY, 0).timed_out


class TestUnsupportedStreams:
    """Streams without a descriptor, or closed ones."""

    def test_in_memory_stream(self) -> None:
        buffer = io.StringIO("text")
        assert wait_readable(buffer, 0).unsupported
        assert nread(buffer) == 0
        with pytest.raises(PlatformUnsupported):
            wait(buffer, Readiness.READABLE, 0)

    def test_closed_file_object(self) -> None:
        read_end, write_end = os.pipe()
        os.close(write_end)
        handle = os.fdopen(read_end, "rb")
        handle.close()
        assert wait_readable(handle, 0).unsupported
        with pytest.raises(StreamClosed):
            wait(handle, Readiness.READABLE, 0)

    def test_closed_device_stream(self, pipe_pair) -> None:
        read_end, write_end = pipe_pair
        stream = DeviceStream(read_end)
        stream.close()
        os.write(write_end, b"x")
        assert wait_readable(stream, 0).unsupported
        assert nread(stream) == 0
        with pytest.raises(StreamClosed):
            wait(stream, Readiness.READABLE, 0)

    @pytest.mark.parametrize("timeout", [None, 5.0])
    def test_close_wakes_blocked_wait(self, pipe_pair, timeout) -> None:
        read_end, _ = pipe_pair
        stream = DeviceStream(os.dup(read_end), owned=True)
        outcome = {}

        def blocked_wait() -> None:
            try:
                ReadinessPoller(stream, interruptible=False).wait(Readiness.READABLE, timeout)
            except StreamClosed as exc:
                outcome["error"] = exc
                outcome["at"] = time.monotonic()

        worker = threading.Thread(target=blocked_wait, daemon=True)
        worker.start()
        time.sleep(0.1)
        closed_at = time.monotonic()
        stream.close()
        worker.join(2.0)

        assert not worker.is_alive()
        assert isinstance(outcome["error"], StreamClosed)
        assert outcome["at"] - closed_at < 1.0

    def test_stream_closed_is_os_error(self) -> None:
        assert issubclass(StreamClosed, OSError)


class TestSignals:
    """Signal delivery during a wait."""

    @pytest.fixture
    def alarm(self):
        previous = signal.signal(signal.SIGALRM, lambda signum, frame: None)
        yield lambda delay: signal.setitimer(signal.ITIMER_REAL, delay)
        signal.setitimer(signal.ITIMER_REAL, 0)
        signal.signal(signal.SIGALRM, previous)

    def test_interruptible_wait_raises(self, pipe_pair, alarm) -> None:
        read_end, _ = pipe_pair
        alarm(0.05)
        with pytest.raises(Interrupted) as info:
            ReadinessPoller(read_end, interruptible=True).wait_readable(5)
        assert isinstance(info.value, InterruptedError)

    def test_default_wait_resumes_after_signal(self, pipe_pair, alarm) -> None:
        read_end, _ = pipe_pair
        alarm(0.05)
        start = time.monotonic()
        result = ReadinessPoller(read_end, interruptible=False).wait_readable(0.3)
        assert result.timed_out
        assert time.monotonic() - start >= 0.29

    def test_wakeup_fd_is_restored(self, pipe_pair) -> None:
        read_end, _ = pipe_pair
        before = signal.set_wakeup_fd(-1)
        signal.set_wakeup_fd(before)
        ReadinessPoller(read_end, interruptible=True).wait_readable(0)
        assert signal.set_wakeup_fd(before) == before
