"""Source domain models."""

from .list_source import (
    LIST_SOURCE,
    APIAuth,
    APIAuthType,
    APIConfig,
    ListSource,
    ListSourceSpec,
    ListSourceStatus,
    SourceType,
    SQLAuth,
    SQLConfig,
)
from .registry import AdaptorRegistry

__all__ = [
    "LIST_SOURCE",
    "APIAuth",
    "APIAuthType",
    "APIConfig",
    "AdaptorRegistry",
    "ListSource",
    "ListSourceSpec",
    "ListSourceStatus",
    "SQLAuth",
    "SQLConfig",
    "SourceType",
]
