"""Tests for the in-memory build history and snapshot loading.

Run with: pytest tests/test_history.py -v
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from upstream_notify.history.store import InMemoryBuildHistory, parse_snapshot
from upstream_notify.schemas import Build, BuildRef, BuildStatus, UpstreamCause

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def history() -> InMemoryBuildHistory:
    """Job 'app' with gaps in its numbering (2, 4-6 rotated away)."""
    return InMemoryBuildHistory(
        [
            Build(job="app", number=1, status=BuildStatus.SUCCESS),
            Build(job="app", number=3, status=BuildStatus.SUCCESS),
            Build(job="app", number=7, status=BuildStatus.UNSTABLE),
            Build(job="app", number=8, status=BuildStatus.FAILURE),
            Build(job="other", number=5, status=BuildStatus.SUCCESS),
        ]
    )


YAML_SNAPSHOT = """\
builds:
  - job: app
    number: 1
    status: SUCCESS
  - job: app
    number: 2
    status: FAILURE
    causes:
      - kind: upstream
        upstream_build: {job: lib, number: 4}
        nested_causes:
          - kind: other
            description: Started by timer
  - job: lib
    number: 4
    change_sets:
      - kind: git
        entries:
          - author: {id: alice}
"""


# ---------------------------------------------------------------------------
# Lookup Tests
# ---------------------------------------------------------------------------


class TestLookups:
    """Tests for InMemoryBuildHistory lookups."""

    def test_get_build(self, history: InMemoryBuildHistory) -> None:
        build = history.get_build(BuildRef(job="app", number=7))
        assert build is not None
        assert build.status == BuildStatus.UNSTABLE

    def test_get_missing_build_returns_none(self, history: InMemoryBuildHistory) -> None:
        assert history.get_build(BuildRef(job="app", number=2)) is None

    def test_previous_build_skips_gaps(self, history: InMemoryBuildHistory) -> None:
        build = history.get_build(BuildRef(job="app", number=7))
        previous = history.previous_build(build)
        assert previous is not None
        assert previous.number == 3

    def test_previous_build_of_oldest_is_none(self, history: InMemoryBuildHistory) -> None:
        assert history.previous_build(history.get_build(BuildRef(job="app", number=1))) is None

    def test_previous_build_stays_within_job(self, history: InMemoryBuildHistory) -> None:
        assert history.previous_build(history.get_build(BuildRef(job="other", number=5))) is None

    def test_previous_successful_build(self, history: InMemoryBuildHistory) -> None:
        build = history.get_build(BuildRef(job="app", number=8))
        last_success = history.previous_successful_build(build)
        assert last_success is not None
        assert last_success.number == 3

    def test_previous_successful_build_excludes_itself(self, history: InMemoryBuildHistory) -> None:
        build = history.get_build(BuildRef(job="app", number=3))
        assert history.previous_successful_build(build).number == 1

    def test_previous_successful_build_none(self) -> None:
        history = InMemoryBuildHistory([Build(job="app", number=1, status=BuildStatus.FAILURE)])
        assert history.previous_successful_build(history.get_build(BuildRef(job="app", number=1))) is None

    def test_lookup_for_build_not_in_store(self, history: InMemoryBuildHistory) -> None:
        """A build object unknown to the store still gets its predecessors."""
        outsider = Build(job="app", number=5, status=BuildStatus.FAILURE)
        assert history.previous_build(outsider).number == 3

    def test_duplicate_build_rejected(self, history: InMemoryBuildHistory) -> None:
        with pytest.raises(ValueError, match="Duplicate"):
            history.add(Build(job="app", number=1))

    def test_container_protocol(self, history: InMemoryBuildHistory) -> None:
        assert len(history) == 5
        assert BuildRef(job="other", number=5) in history
        assert len(list(history.builds())) == 5


# ---------------------------------------------------------------------------
# Snapshot Loading Tests
# ---------------------------------------------------------------------------


class TestSnapshotFiles:
    """Tests for InMemoryBuildHistory.from_file."""

    def test_yaml_snapshot(self, tmp_path: Path) -> None:
        path = tmp_path / "history.yaml"
        path.write_text(YAML_SNAPSHOT)

        history = InMemoryBuildHistory.from_file(path)

        build = history.get_build(BuildRef(job="app", number=2))
        assert isinstance(build.causes[0], UpstreamCause)
        assert build.causes[0].upstream_build == BuildRef(job="lib", number=4)
        assert build.change_sets is None
        lib = history.get_build(BuildRef(job="lib", number=4))
        assert lib.change_sets[0].entries[0].author.id == "alice"

    def test_json_bare_list(self, tmp_path: Path) -> None:
        path = tmp_path / "history.json"
        path.write_text(json.dumps([{"job": "app", "number": 1}, {"job": "app", "number": 2}]))

        history = InMemoryBuildHistory.from_file(path)

        assert len(history) == 2

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="not found"):
            InMemoryBuildHistory.from_file(tmp_path / "nope.yaml")

    def test_unparsable_file(self, tmp_path: Path) -> None:
        path = tmp_path / "history.json"
        path.write_text("{not json")
        with pytest.raises(ValueError, match="Cannot parse"):
            InMemoryBuildHistory.from_file(path)

    def test_invalid_snapshot(self, tmp_path: Path) -> None:
        path = tmp_path / "history.yaml"
        path.write_text("builds:\n  - job: app\n    number: -1\n")
        with pytest.raises(ValueError, match="Invalid history snapshot"):
            InMemoryBuildHistory.from_file(path)

    def test_duplicate_builds_in_snapshot(self) -> None:
        with pytest.raises(ValueError, match="Invalid history snapshot"):
            parse_snapshot({"builds": [{"job": "a", "number": 1}, {"job": "a", "number": 1}]})

    def test_empty_document_is_empty_snapshot(self) -> None:
        assert parse_snapshot(None).builds == []
