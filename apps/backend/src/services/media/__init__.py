"""Init file for media resolution services."""

from .cache import MediaCache, cache_key
from .catalog import CatalogArtResolver
from .mirrors import FreeMirrorResolver
from .paid_api import PaidVideoClient
from .quota import QuotaLedger, UsageTracker
from .resolver import MediaResolutionService


__all__ = [
    "MediaCache",
    "cache_key",
    "CatalogArtResolver",
    "FreeMirrorResolver",
    "PaidVideoClient",
    "QuotaLedger",
    "UsageTracker",
    "MediaResolutionService",
]
