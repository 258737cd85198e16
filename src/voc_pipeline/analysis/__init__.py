"""Review corpus analysis."""

from voc_pipeline.analysis.adapter import AnalysisAdapter
from voc_pipeline.analysis.schema import REQUIRED_KEYS, AnalysisContext, AnalysisReport, no_data_report

__all__ = ["AnalysisAdapter", "AnalysisContext", "AnalysisReport", "REQUIRED_KEYS", "no_data_report"]
