"""Build history sources.

The collector only reads history through BuildHistoryProtocol. These modules
provide the implementations: an in-memory store built from snapshot files,
and a loader that fills such a store from a Jenkins-compatible JSON API.
"""

from upstream_notify.history.store import BuildHistoryProtocol, InMemoryBuildHistory

__all__ = ["BuildHistoryProtocol", "InMemoryBuildHistory"]
