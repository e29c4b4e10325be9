"""Diagnostic sinks for recipient collection.

The collector reports its progress (window boundaries, number of upstream
builds, which upstream build is being processed) as printf-style messages.
Where those messages end up is the caller's business: the build console,
the structured log, or nowhere at all.

Diagnostics never influence the result. Every message goes through
``safe_send``, so a sink that raises is logged and otherwise ignored.
"""

from __future__ import annotations

from typing import Any, Protocol, TextIO

from upstream_notify.logging_config import get_logger

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class DebugSinkProtocol(Protocol):
    """Receives formatted diagnostic messages."""

    def send(self, fmt: str, *args: Any) -> None:
        """Emit one diagnostic message.

        Args:
            fmt: printf-style format string
            args: Values substituted into ``fmt``
        """
        ...


# ---------------------------------------------------------------------------
# Implementations
# ---------------------------------------------------------------------------


class NullDebugSink:
    """Discards every message. Used when debug mode is off."""

    def send(self, fmt: str, *args: Any) -> None:
        return None


class LoggerDebugSink:
    """Forwards messages to structlog and, optionally, a build console stream.

    Usage:
        sink = LoggerDebugSink(stream=sys.stderr)
        sink.send("Found %d upstream builds in the time window.", 3)
    """

    def __init__(
        self,
        stream: TextIO | None = None,
        prefix: str = "upstream-notify",
    ) -> None:
        """Initialize the sink.

        Args:
            stream: Console to echo messages to (e.g. the build log).
                    Messages are only logged if omitted.
            prefix: Tag written in front of every console line
        """
        self._stream = stream
        self._prefix = prefix

    def send(self, fmt: str, *args: Any) -> None:
        message = fmt % args if args else fmt
        logger.debug("recipient_debug", message=message)
        if self._stream is not None:
            self._stream.write(f"[{self._prefix}] {message}\n")


class ListDebugSink:
    """Collects formatted messages in memory, mostly for tests and the API."""

    def __init__(self) -> None:
        self.messages: list[str] = []

    def send(self, fmt: str, *args: Any) -> None:
        self.messages.append(fmt % args if args else fmt)


def safe_send(sink: DebugSinkProtocol, fmt: str, *args: Any) -> None:
    """Send a message through ``sink``, logging instead of raising on failure."""
    try:
        sink.send(fmt, *args)
    except Exception as exc:
        logger.warning(
            "debug_sink_failed",
            sink=type(sink).__name__,
            format=fmt,
            error=str(exc),
        )
