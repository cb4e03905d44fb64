"""Website metadata lookup used to pre-fill the organization step."""

from .models import (
    LookupErrorKind,
    LookupFailure,
    LookupResult,
    MetadataResponse,
    MANUAL_ENTRY_MESSAGE,
)
from .fetcher import (
    HttpMetadataFetcher,
    MetadataFetcher,
    company_name_from_title,
    validate_url,
)
from .debounce import DebouncedLookup

__all__ = [
    "LookupErrorKind",
    "LookupFailure",
    "LookupResult",
    "MetadataResponse",
    "MANUAL_ENTRY_MESSAGE",
    "HttpMetadataFetcher",
    "MetadataFetcher",
    "company_name_from_title",
    "validate_url",
    "DebouncedLookup",
]
