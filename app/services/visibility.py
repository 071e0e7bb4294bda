"""
Per-record masking of outgoing review data.

SQL scoping decides WHICH reviews a reader gets; this module decides which
FIELDS of an individually readable review survive.  It applies an Allow /
AllowWithMask decision to a serialised review dict:

    FULL    "not yet visible": scores nulled, items and appeals emptied,
            submitter / classification metadata stripped
    SCORES  "visible, but not to this role tier": scores nulled,
            items and appeals emptied
    ITEMS   answer detail trimmed: items and appeals emptied
"""

from __future__ import annotations

import enum


class MaskLevel(enum.Enum):
    FULL = "full"
    SCORES = "scores"
    ITEMS = "items"


MASKED_FIELDS: dict[MaskLevel, tuple[str, ...]] = {
    MaskLevel.FULL: (
        "initial_score",
        "final_score",
        "review_items",
        "appeals",
        "submitter_handle",
        "submitter_max_rating",
        "metadata",
        "type_id",
        "committed",
    ),
    MaskLevel.SCORES: ("initial_score", "final_score", "review_items", "appeals"),
    MaskLevel.ITEMS: ("review_items", "appeals"),
}

_NULLED = frozenset({"initial_score", "final_score"})
_EMPTIED = frozenset({"review_items", "appeals"})


def apply_mask(record: dict, decision) -> dict:
    """Return a copy of ``record`` with ``decision.mask`` applied.

    Lists are only emptied when present, so thin records stay thin.
    """
    if not decision.allowed:
        raise ValueError("A denied decision cannot be applied to a record")
    out = dict(record)
    if decision.mask is None:
        return out
    for name in MASKED_FIELDS[decision.mask]:
        if name in _NULLED:
            out[name] = None
        elif name in _EMPTIED:
            if name in out:
                out[name] = []
        else:
            out.pop(name, None)
    return out
