from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from postlayout_pipeline.models import PipelineRecord


class RecordSource(ABC):
    """Produces the working set of pipeline records.

    Implementations raise SourceUnavailable / SourceMalformed on failure,
    except the fixture source which must always succeed.
    """

    name: str = "source"

    @abstractmethod
    def fetch_records(self) -> List[PipelineRecord]:
        """Fetch and classify all non-blank rows."""
