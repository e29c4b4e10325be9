"""Per-run context handed to the resolution policy."""

from __future__ import annotations

from dataclasses import dataclass, field

from upstream_notify.debug import DebugSinkProtocol, NullDebugSink
from upstream_notify.history.store import BuildHistoryProtocol
from upstream_notify.schemas import Build


@dataclass
class PublisherContext:
    """What the notification step knows about the run it is working for.

    Attributes:
        build: The build being processed (the "current" build)
        history: Where the build's job history and upstream builds live
        debug: Sink for diagnostic messages
        provider_name: Name used to tag diagnostics and logs
    """

    build: Build
    history: BuildHistoryProtocol
    debug: DebugSinkProtocol = field(default_factory=NullDebugSink)
    provider_name: str = "upstreamDevelopersSinceLastSuccess"
