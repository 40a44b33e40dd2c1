"""Container log de-framing and startup readiness monitoring.

The engine multiplexes stdout and stderr of a non-TTY container into frames
of an 8-byte header (stream type, three padding bytes, big-endian payload
length) followed by the payload. Every consumer of container logs goes
through ``LogDeframer`` so partial frames are reassembled in one place.
"""

import asyncio
import codecs
import logging
import re
import struct
import threading
from collections import deque
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from devvy.core.types import ReadinessConfig
from devvy.virtualization.base import LogStream

logger = logging.getLogger(__name__)

STDIN = 0
STDOUT = 1
STDERR = 2

HEADER_SIZE = 8
_HEADER = struct.Struct(">BxxxL")

_TIMESTAMP_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?Z\s+")
_RELATIVE_TIME = re.compile(r"^(\d+)([dhms])$")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


@dataclass(frozen=True)
class LogFrame:
    """One de-framed payload."""

    stream: int
    payload: bytes


class LogDeframer:
    """Incremental decoder for the engine's multiplexed log framing."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet part of a complete frame."""
        return len(self._buffer)

    def feed(self, chunk: bytes) -> list[LogFrame]:
        """Add bytes and return every frame completed by them.

        Args:
            chunk: Bytes as read from the stream, split at any boundary.

        Returns:
            Completed frames in stream order.

        Raises:
            ValueError: If a header carries an unknown stream type.
        """
        self._buffer.extend(chunk)
        frames = []
        while len(self._buffer) >= HEADER_SIZE:
            stream_type, length = _HEADER.unpack_from(self._buffer)
            if stream_type not in (STDIN, STDOUT, STDERR):
                raise ValueError(f"Invalid log frame header (stream type {stream_type})")
            if len(self._buffer) < HEADER_SIZE + length:
                break
            payload = bytes(self._buffer[HEADER_SIZE : HEADER_SIZE + length])
            del self._buffer[: HEADER_SIZE + length]
            frames.append(LogFrame(stream=stream_type, payload=payload))
        return frames


class LineSplitter:
    """Splits per-stream payloads into text lines.

    Partial lines and partial UTF-8 sequences are kept per stream until the
    rest arrives or ``flush`` is called.
    """

    def __init__(self) -> None:
        self._decoders: dict[int, codecs.IncrementalDecoder] = {}
        self._partial: dict[int, str] = {}

    def feed(self, stream: int, data: bytes) -> list[str]:
        """Add a payload and return the lines it completes."""
        decoder = self._decoders.get(stream)
        if decoder is None:
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
            self._decoders[stream] = decoder

        text = self._partial.pop(stream, "") + decoder.decode(data)
        *lines, rest = text.split("\n")
        if rest:
            self._partial[stream] = rest
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> list[str]:
        """Release trailing partial lines at end of stream."""
        lines = []
        for stream, decoder in self._decoders.items():
            text = self._partial.pop(stream, "") + decoder.decode(b"", final=True)
            if text:
                lines.append(text.rstrip("\r"))
        return lines


def demux_bytes(data: bytes) -> list[LogFrame]:
    """De-frame a complete log buffer.

    A truncated trailing frame is dropped with a warning.
    """
    deframer = LogDeframer()
    frames = deframer.feed(data)
    if deframer.pending:
        logger.warning("Ignoring %d bytes of truncated log output", deframer.pending)
    return frames


def iter_log_lines(stream: LogStream) -> Iterator[tuple[int, str]]:
    """Yield ``(stream_type, line)`` pairs from a log stream.

    Raw TTY streams are reported as stdout.
    """
    deframer = LogDeframer()
    splitter = LineSplitter()
    for chunk in stream.chunks():
        frames = deframer.feed(chunk) if stream.framed else [LogFrame(STDOUT, chunk)]
        for frame in frames:
            for line in splitter.feed(frame.stream, frame.payload):
                yield frame.stream, line
    for line in splitter.flush():
        yield STDOUT, line


def format_log_line(line: str, timestamps: bool = False) -> str:
    """Format a log line for display.

    Args:
        line: Line as sent by the engine.
        timestamps: Keep the engine's timestamp prefix.

    Returns:
        The line, without its timestamp unless requested.
    """
    if timestamps:
        return line
    return _TIMESTAMP_PREFIX.sub("", line, count=1)


def parse_time_value(value: str, now: datetime | None = None) -> datetime:
    """Parse a ``--since``/``--until`` value.

    Args:
        value: Relative duration (``30s``, ``10m``, ``2h``, ``1d``) or an ISO
            date/time.
        now: Reference time for relative values.

    Returns:
        Absolute time, timezone-aware.

    Raises:
        ValueError: If the value cannot be parsed.
    """
    now = now or datetime.now(timezone.utc)
    value = value.strip()

    match = _RELATIVE_TIME.match(value)
    if match:
        amount, unit = match.groups()
        return now - timedelta(seconds=int(amount) * _UNIT_SECONDS[unit])

    iso = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        parsed = datetime.fromisoformat(iso)
    except ValueError as e:
        raise ValueError(
            f"Invalid time value '{value}' (use e.g. 10m, 2h, 1d or 2024-01-31T12:00:00)"
        ) from e
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


@dataclass
class ReadinessSignal:
    """Outcome of one readiness watch.

    Attributes:
        ready: Whether the readiness marker was observed.
        reason: What decided the outcome (offending line, timeout, ...).
        tail: Most recent log lines, oldest first.
    """

    ready: bool
    reason: str
    tail: list[str] = field(default_factory=list)


_END = object()


class ReadinessMonitor:
    """Watches a starting container's logs for a readiness marker.

    The first line containing the marker succeeds, the first line containing
    an error pattern fails, and the deadline fails with a timeout. Whichever
    happens first decides; the log stream is closed in every case.
    """

    def __init__(
        self,
        marker: str,
        error_patterns: Sequence[str],
        timeout: float,
        tail_size: int = 50,
        on_line: Callable[[str], None] | None = None,
    ) -> None:
        """Initialize monitor.

        Args:
            marker: Readiness marker substring.
            error_patterns: Ordered error substrings.
            timeout: Deadline in seconds.
            tail_size: Number of recent lines kept for diagnostics.
            on_line: Called with every observed line.
        """
        self._marker = marker
        self._error_patterns = list(error_patterns)
        self._timeout = timeout
        self._tail_size = tail_size
        self._on_line = on_line

    @classmethod
    def from_config(
        cls,
        config: ReadinessConfig,
        on_line: Callable[[str], None] | None = None,
    ) -> "ReadinessMonitor":
        """Create a monitor from readiness settings."""
        return cls(
            marker=config.marker,
            error_patterns=config.error_patterns,
            timeout=config.timeout,
            tail_size=config.tail_size,
            on_line=on_line,
        )

    @property
    def timeout(self) -> float:
        """Get deadline in seconds."""
        return self._timeout

    def _observe(self, line: str, tail: deque[str]) -> ReadinessSignal | None:
        tail.append(line)
        if self._on_line is not None:
            self._on_line(line)

        if self._marker and self._marker in line:
            return ReadinessSignal(ready=True, reason="Readiness marker observed", tail=list(tail))
        for pattern in self._error_patterns:
            if pattern in line:
                return ReadinessSignal(ready=False, reason=line.strip(), tail=list(tail))
        return None

    async def watch(self, stream: LogStream) -> ReadinessSignal:
        """Watch a log stream until a decision is reached.

        Blocking reads happen on a daemon thread that feeds an asyncio
        queue, so an abandoned read never delays interpreter exit.

        Args:
            stream: Following log stream of the container.

        Returns:
            ReadinessSignal. Never raises for stream or timeout failures.
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[object] = asyncio.Queue()
        tail: deque[str] = deque(maxlen=self._tail_size)

        def deliver(item: object) -> bool:
            try:
                loop.call_soon_threadsafe(queue.put_nowait, item)
            except RuntimeError:
                # Loop already closed, the watch is over
                return False
            return True

        def pump() -> None:
            try:
                for chunk in stream.chunks():
                    if not deliver(chunk):
                        return
            except Exception as e:
                deliver(e)
            deliver(_END)

        async def consume() -> ReadinessSignal:
            deframer = LogDeframer()
            splitter = LineSplitter()
            while True:
                item = await queue.get()
                if item is _END:
                    for line in splitter.flush():
                        signal = self._observe(line, tail)
                        if signal is not None:
                            return signal
                    return ReadinessSignal(
                        ready=False,
                        reason="Log stream ended before the container became ready",
                        tail=list(tail),
                    )
                if isinstance(item, Exception):
                    return ReadinessSignal(
                        ready=False, reason=f"Log stream failed: {item}", tail=list(tail)
                    )

                try:
                    frames = deframer.feed(item) if stream.framed else [LogFrame(STDOUT, item)]
                except ValueError as e:
                    return ReadinessSignal(ready=False, reason=str(e), tail=list(tail))
                for frame in frames:
                    for line in splitter.feed(frame.stream, frame.payload):
                        signal = self._observe(line, tail)
                        if signal is not None:
                            return signal

        reader = threading.Thread(target=pump, name="devvy-log-reader", daemon=True)
        reader.start()
        try:
            return await asyncio.wait_for(consume(), timeout=self._timeout)
        except asyncio.TimeoutError:
            return ReadinessSignal(
                ready=False,
                reason=f"Timed out after {self._timeout:g}s waiting for the container to become ready",
                tail=list(tail),
            )
        finally:
            stream.close()

    def wait(self, stream: LogStream) -> ReadinessSignal:
        """Synchronous wrapper around ``watch``."""
        return asyncio.run(self.watch(stream))
