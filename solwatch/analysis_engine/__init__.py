"""
Analysis engine: enriched transaction fetch, dust filtering, metadata and
price resolution, balance netting, and summary formatting.
"""

from solwatch.analysis_engine.analyzer import TransactionAnalyzer
from solwatch.analysis_engine.metadata import MetadataResolver
from solwatch.analysis_engine.models import (
    AnalysisOutcome,
    EnrichedTransaction,
    ResolutionOutcome,
    TokenMetadata,
)
from solwatch.analysis_engine.prices import PriceOracle

__all__ = [
    "AnalysisOutcome",
    "EnrichedTransaction",
    "MetadataResolver",
    "PriceOracle",
    "ResolutionOutcome",
    "TokenMetadata",
    "TransactionAnalyzer",
]
