"""Tests for the Pydantic schemas.

Run with: pytest tests/test_schemas.py -v
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from upstream_notify.schemas import (
    Build,
    BuildRef,
    HistorySnapshot,
    OtherCause,
    RecipientResponse,
    RecipientSets,
    UpstreamCause,
)


class TestBuildRef:
    def test_hashable_and_equal_by_value(self) -> None:
        assert {BuildRef(job="a", number=1), BuildRef(job="a", number=1)} == {
            BuildRef(job="a", number=1)
        }

    def test_frozen(self) -> None:
        ref = BuildRef(job="a", number=1)
        with pytest.raises(ValidationError):
            ref.number = 2

    def test_str(self) -> None:
        assert str(BuildRef(job="folder/app", number=12)) == "folder/app#12"

    def test_rejects_non_positive_number(self) -> None:
        with pytest.raises(ValidationError):
            BuildRef(job="a", number=0)


class TestCauses:
    def test_discriminated_union_from_dicts(self) -> None:
        build = Build.model_validate(
            {
                "job": "app",
                "number": 2,
                "causes": [
                    {"kind": "other", "description": "Started by timer"},
                    {
                        "kind": "upstream",
                        "upstream_build": {"job": "lib", "number": 1},
                        "nested_causes": [{"kind": "upstream", "upstream_build": None}],
                    },
                ],
            }
        )

        assert isinstance(build.causes[0], OtherCause)
        assert isinstance(build.causes[1], UpstreamCause)
        assert isinstance(build.causes[1].nested_causes[0], UpstreamCause)

    def test_unknown_kind_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Build.model_validate({"job": "app", "number": 1, "causes": [{"kind": "timer"}]})

    def test_upstream_causes_filters_other_kinds(self) -> None:
        build = Build(
            job="app",
            number=1,
            causes=[OtherCause(), UpstreamCause(upstream_build=BuildRef(job="lib", number=1))],
        )
        assert len(build.upstream_causes()) == 1


class TestBuild:
    def test_change_sets_default_to_no_capability(self) -> None:
        assert Build(job="app", number=1).change_sets is None

    def test_ref_and_display_name(self) -> None:
        build = Build(job="app", number=3)
        assert build.ref == BuildRef(job="app", number=3)
        assert build.job_display_name == "app"
        assert Build(job="app", number=3, display_name="App").job_display_name == "App"


class TestSnapshotAndResponse:
    def test_duplicate_builds_rejected(self) -> None:
        with pytest.raises(ValidationError):
            HistorySnapshot(builds=[Build(job="a", number=1), Build(job="a", number=1)])

    def test_response_is_sorted(self) -> None:
        recipients = RecipientSets(to={"b@x.com", "a@x.com"}, bcc={"z@x.com"})
        response = RecipientResponse.from_result(
            recipients, [BuildRef(job="b", number=1), BuildRef(job="a", number=2)]
        )

        assert response.to == ["a@x.com", "b@x.com"]
        assert response.cc == []
        assert response.bcc == ["z@x.com"]
        assert [str(r) for r in response.upstream_builds] == ["a#2", "b#1"]

    def test_recipient_sets_is_empty(self) -> None:
        recipients = RecipientSets()
        assert recipients.is_empty()
        recipients.cc.add("a@x.com")
        assert not recipients.is_empty()
