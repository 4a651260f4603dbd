"""Configuration management with validation.

Everything is read from the environment once at startup and validated
before any request is sent to the provider.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from .filter import FilterError, SyncFilter, parse_list, tracking_id_for_path
from .tracking import is_valid_tracking_id


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_SITE = "datadoghq.com"
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30
MIN_REQUEST_TIMEOUT_SECONDS = 1
MAX_REQUEST_TIMEOUT_SECONDS = 300

MAX_PROJECT_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max project file

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

# Input validation patterns
VALID_SITE_PATTERN = r"^[a-z0-9]([a-z0-9.-]*[a-z0-9])?$"
VALID_SUBDOMAIN_PATTERN = r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$"


@dataclass(frozen=True)
class Config:
    """Configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing mid-run.
    """

    # Credentials, only needed for commands that talk to the provider
    api_key: str = ""
    app_key: str = ""
    require_credentials: bool = True

    # Provider
    site: str = DEFAULT_SITE
    subdomain: str | None = None
    request_timeout_seconds: int = DEFAULT_REQUEST_TIMEOUT_SECONDS

    # Paths
    parts_dir: Path = field(default_factory=lambda: Path("parts"))
    generated_dir: Path = field(default_factory=lambda: Path("generated"))

    # Scope
    project_filter: tuple[str, ...] | None = None
    tracking_id_filter: tuple[str, ...] | None = None

    # Behavior
    strict_imports: bool = True
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if self.require_credentials:
            if not self.api_key:
                errors.append("DATADOG_API_KEY is required")
            if not self.app_key:
                errors.append("DATADOG_APP_KEY is required")

        if not re.match(VALID_SITE_PATTERN, self.site):
            errors.append(f"DATADOG_SITE must be a host name: {self.site}")

        if self.subdomain is not None and not re.match(VALID_SUBDOMAIN_PATTERN, self.subdomain):
            errors.append(f"DATADOG_SUBDOMAIN must be a DNS label: {self.subdomain}")

        if not (
            MIN_REQUEST_TIMEOUT_SECONDS
            <= self.request_timeout_seconds
            <= MAX_REQUEST_TIMEOUT_SECONDS
        ):
            errors.append(
                f"REQUEST_TIMEOUT must be between {MIN_REQUEST_TIMEOUT_SECONDS} "
                f"and {MAX_REQUEST_TIMEOUT_SECONDS} seconds"
            )

        if not self.parts_dir.is_dir():
            errors.append(f"Parts directory does not exist: {self.parts_dir}")

        if self.log_level not in VALID_LOG_LEVELS:
            errors.append(f"LOG_LEVEL must be one of {list(VALID_LOG_LEVELS)}: {self.log_level}")

        for tracking_id in self.tracking_id_filter or ():
            if not is_valid_tracking_id(tracking_id):
                errors.append(f"TRACKING_ID entries must look like project:kennel_id: {tracking_id}")

        try:
            self.sync_filter()
        except FilterError as e:
            errors.append(str(e))

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @property
    def api_url(self) -> str:
        return f"https://api.{self.site}"

    @property
    def app_url(self) -> str | None:
        """Organization UI host, None when no subdomain is configured."""
        if self.subdomain is None:
            return None
        return f"https://{self.subdomain}.{self.site}"

    def sync_filter(self) -> SyncFilter:
        return SyncFilter(
            project_filter=self.project_filter,
            tracking_id_filter=self.tracking_id_filter,
        )

    @classmethod
    def from_env(cls, require_credentials: bool = True) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            DATADOG_API_KEY: API key (required unless require_credentials is False)
            DATADOG_APP_KEY: Application key (same)
            DATADOG_SITE: Provider site (default: datadoghq.com)
            DATADOG_SUBDOMAIN: Organization subdomain, used for UI links
            REQUEST_TIMEOUT: Per-request timeout in seconds (default: 30)
            PARTS_DIR: Directory holding project files (default: parts)
            GENERATED_DIR: Directory for generated payloads (default: generated)
            PROJECT: Comma separated project ids to limit the run to
            TRACKING_ID: Comma separated tracking ids (or generated/ paths)
            STRICT_IMPORTS: If "false", stale explicit ids become creates (default: true)
            LOG_LEVEL: DEBUG, INFO, WARNING or ERROR (default: INFO)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        def get_list(key: str) -> tuple[str, ...] | None:
            values = parse_list(os.environ.get(key))
            return tuple(values) if values else None

        tracking_ids = get_list("TRACKING_ID")
        if tracking_ids:
            # Allow pasting the generated/ path of an object
            tracking_ids = tuple(sorted({tracking_id_for_path(t) for t in tracking_ids}))

        return cls(
            api_key=os.environ.get("DATADOG_API_KEY", ""),
            app_key=os.environ.get("DATADOG_APP_KEY", ""),
            require_credentials=require_credentials,
            site=os.environ.get("DATADOG_SITE", DEFAULT_SITE),
            subdomain=os.environ.get("DATADOG_SUBDOMAIN") or None,
            request_timeout_seconds=get_int("REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT_SECONDS),
            parts_dir=Path(os.environ.get("PARTS_DIR", "parts")),
            generated_dir=Path(os.environ.get("GENERATED_DIR", "generated")),
            project_filter=get_list("PROJECT"),
            tracking_id_filter=tracking_ids,
            strict_imports=get_bool("STRICT_IMPORTS", True),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )
