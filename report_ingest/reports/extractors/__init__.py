"""Report row transformers, one per classified report type."""

from typing import Dict, Optional, Type

from report_ingest.database.models import ReportType

from .base import BaseReportExtractor, ExtractionResult, SheetContext
from .collection import CollectionExtractor
from .outstanding import OutstandingExtractor
from .pjp import PJPExtractor
from .projection import ProjectionExtractor
from .projection_vs_actual import ProjectionVsActualExtractor

EXTRACTORS: Dict[ReportType, Type[BaseReportExtractor]] = {
    ReportType.PJP: PJPExtractor,
    ReportType.COLLECTION: CollectionExtractor,
    ReportType.PROJECTION: ProjectionExtractor,
    ReportType.PROJECTION_VS_ACTUAL: ProjectionVsActualExtractor,
    ReportType.OUTSTANDING: OutstandingExtractor,
}


def get_extractor(report_type: ReportType) -> Optional[BaseReportExtractor]:
    """Transformer instance for a report type; None for UNKNOWN."""
    extractor_cls = EXTRACTORS.get(report_type)
    return extractor_cls() if extractor_cls else None


__all__ = [
    'BaseReportExtractor',
    'ExtractionResult',
    'SheetContext',
    'CollectionExtractor',
    'OutstandingExtractor',
    'PJPExtractor',
    'ProjectionExtractor',
    'ProjectionVsActualExtractor',
    'EXTRACTORS',
    'get_extractor'
]
