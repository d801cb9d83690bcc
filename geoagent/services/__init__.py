"""
Pipeline services.

Exports:
    SourceCatalog: Source registry and request builder
    FeatureFetcher: Executes catalog requests
    TreatmentRegistry: Treatment id -> transform
    QueryOrchestrator: Runs a structured query through the stages
"""

from .source_catalog import SourceCatalog, SourceRequest, CatalogMatch
from .feature_fetcher import FeatureFetcher
from .treatment_registry import TreatmentRegistry, TreatmentDefinition, TreatmentMatch
from .query_orchestrator import QueryOrchestrator, passthrough_spatial_filter

__all__ = [
    'SourceCatalog',
    'SourceRequest',
    'CatalogMatch',
    'FeatureFetcher',
    'TreatmentRegistry',
    'TreatmentDefinition',
    'TreatmentMatch',
    'QueryOrchestrator',
    'passthrough_spatial_filter',
]
