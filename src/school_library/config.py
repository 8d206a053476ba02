"""Configuration management for the School Library loan service.

Everything tunable about lending lives here:
1. Server Metadata - name and version reported by the REST and MCP surfaces
2. Storage - where the SQLite database lives (or a full SQLAlchemy URL)
3. Loan Policy - durations, limits, renewals and overdue rules
4. Validation - type-safe configuration with Pydantic v2
"""

from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models.catalog import PersonType, ResourceState


class LibraryConfig(BaseSettings):
    """Loan service configuration.

    Values are read from ``SCHOOL_LIBRARY_*`` environment variables or a
    local ``.env`` file. The loan policy defaults follow the school's
    lending rules: 15-day loans, five concurrent loans per person unless
    the person type says otherwise, and no new loans while anything is
    overdue.
    """

    model_config = SettingsConfigDict(
        # Use SCHOOL_LIBRARY_ prefix for all env vars
        env_prefix="SCHOOL_LIBRARY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Server Metadata ===

    server_name: str = Field(
        default="school-library",
        description="Service name reported by the REST and MCP surfaces",
        pattern=r"^[a-z0-9-]+$",
    )

    server_version: str = Field(
        default="0.1.0",
        description="Service version",
        pattern=r"^\d+\.\d+\.\d+(-[a-zA-Z0-9.]+)?$",
    )

    transport: str = Field(
        default="stdio",
        description="MCP transport mechanism",
        pattern=r"^(stdio|streamable_http)$",
    )

    http_host: str = Field(default="127.0.0.1", description="REST/HTTP bind host")

    http_port: int = Field(
        default=8080,
        description="REST/HTTP bind port",
        ge=1024,
        le=65535,
    )

    # === Database Configuration ===

    database_path: Path = Field(
        default=Path("data/library.db"),
        description="SQLite database file path",
    )

    database_url: str | None = Field(
        default=None,
        description="Full SQLAlchemy URL; overrides database_path when set",
    )

    # === Loan Policy ===

    loan_duration_days: int = Field(
        default=15,
        description="Days between loan date and due date for a new loan",
        ge=1,
        le=365,
    )

    # Per-type loan lengths; None falls back to loan_duration_days
    student_loan_duration_days: int | None = Field(default=None, ge=1, le=365)
    teacher_loan_duration_days: int | None = Field(default=30, ge=1, le=365)

    max_loans_per_person: int = Field(
        default=5,
        description="Concurrent active loans allowed when no person-type limit applies",
        ge=1,
    )

    student_max_loans: int = Field(default=3, ge=1)
    teacher_max_loans: int = Field(default=10, ge=1)

    max_quantity_per_loan: int = Field(
        default=50,
        description="Absolute cap on units taken by a single loan",
        ge=1,
    )

    student_max_quantity: int = Field(default=3, ge=1)
    teacher_max_quantity: int = Field(default=10, ge=1)

    allow_renewals: bool = Field(default=True, description="Whether loans can be renewed")

    max_renewals: int = Field(
        default=2,
        description="Maximum number of renewals per loan",
        ge=0,
    )

    renewal_extension_days: int = Field(
        default=7,
        description="Days added to the due date by a renewal without explicit days",
        ge=1,
        le=365,
    )

    block_borrowing_when_overdue: bool = Field(
        default=True,
        description="Refuse new loans while the person has an overdue loan",
    )

    due_soon_days: int = Field(
        default=3,
        description="Window used to flag loans as due soon",
        ge=0,
    )

    low_stock_threshold: int = Field(
        default=1,
        description="Emit a low-stock notification when availability drops to this",
        ge=0,
    )

    lendable_resource_states: list[ResourceState] = Field(
        default_factory=lambda: [ResourceState.GOOD, ResourceState.DETERIORATED],
        description="Resource states that may be lent out",
    )

    # === Development Configuration ===

    debug: bool = Field(default=False, description="Enable debug logging")

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR)$",
    )

    # === Validation Methods ===

    @field_validator("database_path")
    @classmethod
    def validate_database_path(cls, v: Path) -> Path:
        """Resolve the database path and make sure its directory exists."""
        abs_path = v.absolute()
        abs_path.parent.mkdir(parents=True, exist_ok=True)

        if not abs_path.parent.is_dir():
            raise ValueError(f"Database directory {abs_path.parent} is not accessible")

        return abs_path

    @field_validator("server_name")
    @classmethod
    def validate_server_name(cls, v: str) -> str:
        if len(v) < 3:
            raise ValueError("Server name must be at least 3 characters")
        if len(v) > 50:
            raise ValueError("Server name must not exceed 50 characters")
        return v

    @model_validator(mode="after")
    def validate_quantity_limits(self) -> "LibraryConfig":
        """Per-type quantity limits can never exceed the absolute cap."""
        if self.student_max_quantity > self.max_quantity_per_loan:
            raise ValueError("student_max_quantity cannot exceed max_quantity_per_loan")
        if self.teacher_max_quantity > self.max_quantity_per_loan:
            raise ValueError("teacher_max_quantity cannot exceed max_quantity_per_loan")
        return self

    def loan_duration_for(self, person_type: PersonType | None) -> int:
        """Loan length in days for a person type."""
        if person_type == PersonType.STUDENT and self.student_loan_duration_days is not None:
            return self.student_loan_duration_days
        if person_type == PersonType.TEACHER and self.teacher_loan_duration_days is not None:
            return self.teacher_loan_duration_days
        return self.loan_duration_days

    def max_loans_for(self, person_type: PersonType | None) -> int:
        """Concurrent loan limit for a person type."""
        if person_type == PersonType.STUDENT:
            return self.student_max_loans
        if person_type == PersonType.TEACHER:
            return self.teacher_max_loans
        return self.max_loans_per_person

    def max_quantity_for(self, person_type: PersonType | None) -> int:
        """Units-per-loan limit for a person type."""
        if person_type == PersonType.STUDENT:
            return self.student_max_quantity
        if person_type == PersonType.TEACHER:
            return self.teacher_max_quantity
        return self.max_quantity_per_loan

    def get_database_url(self) -> str:
        """Get SQLAlchemy database URL."""
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.database_path}"


# === Global Configuration Instance ===


class _ConfigStore:
    """Internal storage for configuration singleton."""

    _instance: LibraryConfig | None = None


def get_config() -> LibraryConfig:
    """Get or create the global configuration instance."""
    if _ConfigStore._instance is None:  # type: ignore[reportPrivateUsage]
        _ConfigStore._instance = LibraryConfig()  # type: ignore[reportPrivateUsage]
    return _ConfigStore._instance  # type: ignore[reportPrivateUsage]


def set_config(config: LibraryConfig) -> None:
    """Install an explicit configuration (used by tests and embedding apps)."""
    _ConfigStore._instance = config  # type: ignore[reportPrivateUsage]


def reset_config() -> None:
    """Reset configuration (useful for testing)."""
    _ConfigStore._instance = None  # type: ignore[reportPrivateUsage]
