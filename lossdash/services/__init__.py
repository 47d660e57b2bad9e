"""Services for loading, caching and aggregating incident data."""

from lossdash.services.dashboard import DashboardService, DashboardSnapshot
from lossdash.services.page_fetcher import IncidentPageFetcher
from lossdash.services.progressive_loader import LoadState, ProgressiveLoader
from lossdash.services.record_client import RecordServiceClient
from lossdash.services.reference_data import ReferenceDataLoader, ReferenceKind, ReferenceTables
from lossdash.services.request_cache import MISS, RequestCache

__all__ = [
    "DashboardService",
    "DashboardSnapshot",
    "IncidentPageFetcher",
    "LoadState",
    "MISS",
    "ProgressiveLoader",
    "RecordServiceClient",
    "ReferenceDataLoader",
    "ReferenceKind",
    "ReferenceTables",
    "RequestCache",
]
