"""Artifact tag construction.

Grammar::

    tag      := prefix "-" run_id
    prefix   := kind "." sequence
    kind     := "manual" | "pr" | "push"
    sequence := [1-9][0-9]*
    run_id   := [A-Za-z0-9][A-Za-z0-9_.]{0,63}

``run_id`` never contains a hyphen, so it is always the text after the last
one. Uniqueness comes from the run id alone: two runs of the same commit get
different tags, and a re-run never reuses an earlier tag. Every tag is a
valid OCI image tag (at most 128 characters of ``[A-Za-z0-9_.-]``).
"""

from __future__ import annotations

import re
from typing import NamedTuple

from gatedag.kernel.domain.run import TriggerKind
from gatedag.kernel.exceptions import TaggingError

RUN_ID_PATTERN = re.compile(r"[A-Za-z0-9][A-Za-z0-9_.]{0,63}")

KIND_PREFIXES: dict[TriggerKind, str] = {
    TriggerKind.MANUAL: "manual",
    TriggerKind.PULL_REQUEST: "pr",
    TriggerKind.PUSH: "push",
}

_TAG_PATTERN = re.compile(
    r"(?P<kind>manual|pr|push)\.(?P<sequence>[1-9][0-9]*)-(?P<run_id>"
    + RUN_ID_PATTERN.pattern
    + r")"
)


class ParsedTag(NamedTuple):
    kind: TriggerKind
    sequence: int
    run_id: str


def validate_run_id(run_id: str) -> str:
    """Return *run_id* unchanged, or raise TaggingError if it is empty or malformed."""
    if not run_id:
        raise TaggingError(run_id, "run id must not be empty")
    if not RUN_ID_PATTERN.fullmatch(run_id):
        raise TaggingError(run_id, f"run id must match {RUN_ID_PATTERN.pattern}")
    return run_id


class ArtifactTagger:
    """Builds the tag of a run's artifact from its trigger kind and run id."""

    def __init__(self, kind: TriggerKind = TriggerKind.PUSH) -> None:
        self.kind = kind

    def tag(self, run_id: str, build_sequence: int) -> str:
        """Return ``<kind>.<build_sequence>-<run_id>``.

        Raises
        ------
        TaggingError
            If *run_id* is empty or malformed, or *build_sequence* < 1.

        Examples
        --------
        >>> ArtifactTagger(TriggerKind.PULL_REQUEST).tag("9f2c1a", 3)
        'pr.3-9f2c1a'
        """
        validate_run_id(run_id)
        if isinstance(build_sequence, bool) or not isinstance(build_sequence, int):
            raise TaggingError(run_id, f"build sequence must be an int, got {build_sequence!r}")
        if build_sequence < 1:
            raise TaggingError(run_id, f"build sequence must be >= 1, got {build_sequence}")
        return f"{KIND_PREFIXES[self.kind]}.{build_sequence}-{run_id}"


def parse_tag(tag: str) -> ParsedTag:
    """Split a tag back into its parts.

    Raises
    ------
    TaggingError
        If *tag* does not follow the tag grammar.
    """
    match = _TAG_PATTERN.fullmatch(tag)
    if match is None:
        raise TaggingError(tag.rpartition("-")[2], f"'{tag}' is not a gatedag tag")
    kind = next(k for k, prefix in KIND_PREFIXES.items() if prefix == match["kind"])
    return ParsedTag(kind=kind, sequence=int(match["sequence"]), run_id=match["run_id"])
