"""Read-only access to a job's build history.

The host keeps builds, their causes and their change sets. All the collector
needs from it is three lookups: a build by reference, the build before a
given one, and the last successful build before a given one.

Design notes:
- Uses a Protocol so the collector does not depend on where history lives
- A lookup that finds nothing returns None. Builds get deleted by log
  rotation all the time, so "no such build" is a normal answer, not an error
- InMemoryBuildHistory follows the host's numbering rules: the previous
  build is the nearest *existing* older build of the same job
"""

from __future__ import annotations

import bisect
import json
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Protocol

import yaml
from pydantic import ValidationError

from upstream_notify.schemas import Build, BuildRef, BuildStatus, HistorySnapshot

# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class BuildHistoryProtocol(Protocol):
    """Protocol for looking up builds.

    Any history backend (snapshot file, Jenkins, a database) should
    implement this interface.
    """

    def get_build(self, ref: BuildRef) -> Build | None:
        """Return the build for ``ref``, or None if it no longer exists."""
        ...

    def previous_build(self, build: Build) -> Build | None:
        """Return the nearest older build of the same job, if any."""
        ...

    def previous_successful_build(self, build: Build) -> Build | None:
        """Return the nearest older SUCCESS build of the same job, if any."""
        ...


# ---------------------------------------------------------------------------
# In-memory Implementation
# ---------------------------------------------------------------------------


class InMemoryBuildHistory:
    """Build history held in a dict, keyed by BuildRef.

    Usage:
        history = InMemoryBuildHistory.from_file("history.yaml")
        build = history.get_build(BuildRef(job="app", number=12))
    """

    def __init__(self, builds: Iterable[Build] = ()) -> None:
        self._builds: dict[BuildRef, Build] = {}
        # job name -> sorted build numbers
        self._numbers: dict[str, list[int]] = {}
        for build in builds:
            self.add(build)

    @classmethod
    def from_snapshot(cls, snapshot: HistorySnapshot) -> "InMemoryBuildHistory":
        return cls(snapshot.builds)

    @classmethod
    def from_file(cls, path: str | Path) -> "InMemoryBuildHistory":
        """Load history from a JSON or YAML snapshot file.

        The file holds either ``{"builds": [...]}`` or a bare list of builds.

        Args:
            path: Path to a .json, .yaml or .yml file

        Returns:
            The populated history

        Raises:
            ValueError: If the file is missing, unparsable or not a valid snapshot
        """
        snapshot_path = Path(path)
        if not snapshot_path.exists():
            raise ValueError(f"History snapshot not found: {path}")

        text = snapshot_path.read_text()
        try:
            if snapshot_path.suffix.lower() == ".json":
                raw = json.loads(text)
            else:
                raw = yaml.safe_load(text)
        except (json.JSONDecodeError, yaml.YAMLError) as exc:
            raise ValueError(f"Cannot parse history snapshot {path}: {exc}") from exc

        return cls.from_snapshot(parse_snapshot(raw, source=str(path)))

    def add(self, build: Build) -> None:
        """Store a build.

        Raises:
            ValueError: If a build with the same reference is already stored
        """
        ref = build.ref
        if ref in self._builds:
            raise ValueError(f"Duplicate build in history: {ref}")
        self._builds[ref] = build
        bisect.insort(self._numbers.setdefault(build.job, []), build.number)

    def get_build(self, ref: BuildRef) -> Build | None:
        return self._builds.get(ref)

    def previous_build(self, build: Build) -> Build | None:
        numbers = self._numbers.get(build.job, [])
        idx = bisect.bisect_left(numbers, build.number)
        if idx == 0:
            return None
        return self._builds[BuildRef(job=build.job, number=numbers[idx - 1])]

    def previous_successful_build(self, build: Build) -> Build | None:
        numbers = self._numbers.get(build.job, [])
        idx = bisect.bisect_left(numbers, build.number)
        for number in reversed(numbers[:idx]):
            candidate = self._builds[BuildRef(job=build.job, number=number)]
            if candidate.status == BuildStatus.SUCCESS:
                return candidate
        return None

    def builds(self) -> Iterator[Build]:
        return iter(self._builds.values())

    def __contains__(self, ref: object) -> bool:
        return ref in self._builds

    def __len__(self) -> int:
        return len(self._builds)


def parse_snapshot(raw: object, source: str = "<snapshot>") -> HistorySnapshot:
    """Validate raw decoded data as a HistorySnapshot.

    Raises:
        ValueError: If the data does not describe a valid snapshot
    """
    if raw is None:
        raw = {}
    if isinstance(raw, list):
        raw = {"builds": raw}
    try:
        return HistorySnapshot.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid history snapshot in {source}: {exc}") from exc
