from __future__ import annotations

from typing import Optional

from postlayout_pipeline.models import RecordState

_LABELLED_STATES = {"ready", "created", "generating", "error"}


def classify(raw_status: Optional[str], content: Optional[str]) -> RecordState:
    """Map a sheet row's status label + content to a record state.

    Missing content always means the row still needs generation, whatever the
    sheet says. Rows with content take a recognised status label verbatim and
    default to "ready" otherwise.
    """

    if content is None or not content.strip():
        return "need_generate"

    label = (raw_status or "").strip().lower()
    if label in _LABELLED_STATES:
        return label  # type: ignore[return-value]

    return "ready"
