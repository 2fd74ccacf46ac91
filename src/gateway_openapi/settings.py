"""Aggregation settings.

Each pipeline run receives one ``AggregationSettings`` instance. The model is
frozen, so a run never observes a configuration change half way through.
Values come from keyword arguments, then ``GATEWAY_OPENAPI_*`` environment
variables, then the defaults below.
"""

import re
from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_OPENAPI_PATH = "/swagger/v1/swagger.json"

DEFAULT_FALLBACK_PATHS = (
    "/api/v1/openapi.json",
    "/openapi.json",
    "/docs/openapi.json",
    "/swagger/openapi.json",
)


class NonAnalyzableStrategy(str, Enum):
    """What to do with a path whose winning route has transforms we cannot invert."""

    INCLUDE_WITH_WARNING = "include_with_warning"
    EXCLUDE_WITH_WARNING = "exclude_with_warning"
    SKIP_SERVICE = "skip_service"

    @classmethod
    def _missing_(cls, value):
        # Accept "IncludeWithWarning", "include-with-warning", ...
        if isinstance(value, str):
            key = re.sub(r"[-_\s]", "", value).lower()
            for member in cls:
                if member.value.replace("_", "") == key:
                    return member
        return None


class AggregationSettings(BaseSettings):
    """Immutable configuration snapshot for fetching and aggregation."""

    model_config = SettingsConfigDict(env_prefix="GATEWAY_OPENAPI_", frozen=True, extra="ignore")

    default_openapi_path: str = DEFAULT_OPENAPI_PATH
    fallback_paths: tuple[str, ...] = DEFAULT_FALLBACK_PATHS

    # seconds
    cache_duration: float = Field(default=300.0, gt=0)
    failure_cache_duration: float = Field(default=60.0, gt=0)
    aggregated_spec_cache_duration: float = Field(default=300.0, gt=0)
    fetch_timeout_seconds: float = Field(default=10.0, gt=0)

    max_concurrent_fetches: int = Field(default=10, ge=1)

    non_analyzable_strategy: NonAnalyzableStrategy = NonAnalyzableStrategy.INCLUDE_WITH_WARNING
    log_transform_warnings: bool = True

    docs_base_path: str = "/api-docs"
