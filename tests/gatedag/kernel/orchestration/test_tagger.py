"""Tests for artifact tag construction."""

import re

import pytest

from gatedag.kernel.domain import TriggerKind
from gatedag.kernel.exceptions import TaggingError
from gatedag.kernel.orchestration import ArtifactTagger, parse_tag

OCI_TAG = re.compile(r"[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}")


class TestArtifactTagger:
    """Test tag building."""

    def test_tag_format(self):
        assert ArtifactTagger(TriggerKind.PUSH).tag("a1b2c3", 7) == "push.7-a1b2c3"
        assert ArtifactTagger(TriggerKind.MANUAL).tag("42", 1) == "manual.1-42"
        assert ArtifactTagger(TriggerKind.PULL_REQUEST).tag("r_9.x", 2) == "pr.2-r_9.x"

    def test_distinct_run_ids_give_distinct_tags(self):
        tagger = ArtifactTagger(TriggerKind.PUSH)
        tags = {tagger.tag(f"run{i}", 1) for i in range(200)}
        assert len(tags) == 200

    def test_distinct_kinds_and_sequences_never_collide(self):
        seen: dict[str, tuple] = {}
        for kind in TriggerKind:
            for sequence in (1, 2, 11):
                for run_id in ("1", "11", "a.b"):
                    tag = ArtifactTagger(kind).tag(run_id, sequence)
                    assert tag not in seen
                    seen[tag] = (kind, sequence, run_id)

    def test_tags_are_valid_image_tags(self):
        tag = ArtifactTagger(TriggerKind.PULL_REQUEST).tag("x" * 64, 999999)
        assert OCI_TAG.fullmatch(tag)

    @pytest.mark.parametrize("run_id", ["", "has-hyphen", "-lead", "spa ce", "x" * 65])
    def test_malformed_run_id(self, run_id):
        with pytest.raises(TaggingError):
            ArtifactTagger().tag(run_id, 1)

    @pytest.mark.parametrize("sequence", [0, -3, True, "1"])
    def test_invalid_build_sequence(self, sequence):
        with pytest.raises(TaggingError, match="build sequence"):
            ArtifactTagger().tag("abc", sequence)


class TestParseTag:
    """Test splitting a tag back into its parts."""

    def test_parse_inverts_tag(self):
        for kind in TriggerKind:
            tag = ArtifactTagger(kind).tag("9f2c.1", 12)
            parsed = parse_tag(tag)
            assert parsed.kind is kind
            assert parsed.sequence == 12
            assert parsed.run_id == "9f2c.1"

    @pytest.mark.parametrize("tag", ["latest", "push.0-abc", "nightly.1-abc", "push.1-a-b"])
    def test_rejects_foreign_tags(self, tag):
        with pytest.raises(TaggingError):
            parse_tag(tag)
