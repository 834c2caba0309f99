"""
Page-level issues recorded instead of aborting a story pass.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Mapping

IssueKind = Literal[
    "extraction_ambiguity",
    "validation_failure",
    "persistent_validation_failure",
    "malformed_input",
    "render_failure",
]
ISSUE_KINDS: tuple[str, ...] = (
    "extraction_ambiguity",
    "validation_failure",
    "persistent_validation_failure",
    "malformed_input",
    "render_failure",
)


class StoryInProgressError(RuntimeError):
    """Raised when a second pass starts for a story id that is already being processed."""


@dataclass(frozen=True)
class PageIssue:
    kind: IssueKind
    message: str
    page_number: int

    def as_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "page_number": self.page_number}

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PageIssue":
        kind = str(data.get("kind", ""))
        if kind not in ISSUE_KINDS:
            raise ValueError(f"Unknown issue kind {kind!r}.")
        return cls(kind=kind, message=str(data.get("message", "")), page_number=int(data["page_number"]))  # type: ignore[arg-type]
