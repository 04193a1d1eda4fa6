"""Service layer for the try-on pipeline."""

from .analytics import Analytics, NullAnalytics, PlausibleAnalytics
from .encoder import EncodedPayload, EncodingMode, RequestEncoder
from .entitlements import DailyQuotaEntitlements, Entitlements
from .fanout import FanoutCoordinator
from .generation_client import GenerationClient
from .history import HistoryStore, InMemoryHistoryStore
from .transcoder import ImageTranscoder
from .tryon_api import TryOnApiClient

__all__ = [
    "Analytics",
    "NullAnalytics",
    "PlausibleAnalytics",
    "EncodedPayload",
    "EncodingMode",
    "RequestEncoder",
    "DailyQuotaEntitlements",
    "Entitlements",
    "FanoutCoordinator",
    "GenerationClient",
    "HistoryStore",
    "InMemoryHistoryStore",
    "ImageTranscoder",
    "TryOnApiClient",
]
