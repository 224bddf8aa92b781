"""Configuration for the matching engine.

Pydantic-based configuration carrying every weight, threshold and tunable the
matchers and the anomaly detector consume. Instances are frozen: one config is
shared read-only by a whole run.

Environment Variables:
- RAPPROCHEMENT_AUTO_THRESHOLD: Auto-match confidence (default: 0.8)
- RAPPROCHEMENT_SUGGESTED_THRESHOLD: Suggestion confidence (default: 0.6)
- RAPPROCHEMENT_DATE_WEIGHT / _AMOUNT_WEIGHT / _TEXT_WEIGHT: Score weights
- RAPPROCHEMENT_MAX_PAYMENT_WINDOW_DAYS: Days before an unpaid invoice is flagged
"""

from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError, wrap_exception
from .utils.logging import get_logger

logger = get_logger(__name__)

# (max days apart, score), ascending
DEFAULT_DATE_BUCKETS: tuple[tuple[int, float], ...] = ((0, 1.0), (1, 0.9), (3, 0.7))

# (max relative difference in percent, score), ascending
DEFAULT_AMOUNT_BUCKETS: tuple[tuple[float, float], ...] = ((1.0, 0.95), (5.0, 0.7))


class MatchingConfig(BaseSettings):
    """Matching engine configuration.

    All settings can be overridden via environment variables with prefix
    RAPPROCHEMENT_*.

    Example:
        >>> config = MatchingConfig()
        >>> config.auto_threshold
        0.8
        >>> # Raises ConfigurationError: suggested_threshold > auto_threshold
        >>> MatchingConfig.from_mapping({"auto_threshold": 0.5, "suggested_threshold": 0.7})
    """

    model_config = SettingsConfigDict(
        env_prefix="RAPPROCHEMENT_",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Classification
    auto_threshold: float = Field(
        default=0.8, ge=0.0, le=1.0, description="Confidence accepted without review"
    )
    suggested_threshold: float = Field(
        default=0.6, ge=0.0, le=1.0, description="Confidence worth showing to a human"
    )

    # Score weights (must sum to 1.0)
    date_weight: float = Field(default=0.4, ge=0.0, le=1.0)
    amount_weight: float = Field(default=0.5, ge=0.0, le=1.0)
    text_weight: float = Field(default=0.1, ge=0.0, le=1.0)

    # Scoring bands
    date_buckets: tuple[tuple[int, float], ...] = Field(
        default=DEFAULT_DATE_BUCKETS, description="(max days apart, score) pairs"
    )
    amount_buckets: tuple[tuple[float, float], ...] = Field(
        default=DEFAULT_AMOUNT_BUCKETS, description="(max % difference, score) pairs"
    )

    # VAT consistency
    vat_rate_tolerance: Decimal = Field(
        default=Decimal("0.5"),
        ge=0,
        description="Percentage points two VAT rates may differ by",
    )

    # Supplier learning
    learned_pattern_bonus: float = Field(default=0.3, ge=0.0, le=1.0)
    learned_account_bonus: float = Field(default=0.2, ge=0.0, le=1.0)
    history_capacity: int = Field(default=10, ge=1, le=100)

    # Anomaly detection
    amount_tolerance_percent: Decimal = Field(
        default=Decimal("1.0"), ge=0, le=100, description="Gap tolerated on a matched pair"
    )
    amount_tolerance_absolute: Decimal = Field(
        default=Decimal("0.01"), ge=0, description="Gap tolerated on a matched pair, in cents"
    )
    max_payment_window_days: int = Field(default=30, ge=0, le=3650)
    materiality_threshold: Decimal = Field(
        default=Decimal("500"), ge=0, description="Expenses below this may lack an invoice"
    )
    duplicate_text_threshold: float = Field(default=0.9, ge=0.0, le=1.0)
    date_incoherence_days: int = Field(default=3, ge=0)
    outlier_multiplier: float = Field(default=3.0, gt=0.0)
    outlier_window: int = Field(default=20, ge=1)
    outlier_min_samples: int = Field(default=5, ge=1)
    outlier_min_amount: Decimal = Field(default=Decimal("1000"), ge=0)

    @model_validator(mode="after")
    def _check_consistency(self) -> "MatchingConfig":
        if self.suggested_threshold > self.auto_threshold:
            raise ValueError(
                f"suggested_threshold ({self.suggested_threshold}) must not exceed "
                f"auto_threshold ({self.auto_threshold})"
            )

        weight_sum = self.date_weight + self.amount_weight + self.text_weight
        if abs(weight_sum - 1.0) > 0.01:
            raise ValueError(f"Weights must sum to 1.0, got {weight_sum}")

        _check_buckets("date_buckets", self.date_buckets)
        _check_buckets("amount_buckets", self.amount_buckets)

        if self.outlier_min_samples > self.outlier_window:
            raise ValueError("outlier_min_samples cannot exceed outlier_window")
        return self

    @property
    def weights(self) -> tuple[float, float, float]:
        """(date, amount, text) weights."""
        return (self.date_weight, self.amount_weight, self.text_weight)

    @classmethod
    def from_mapping(cls, overrides: Mapping[str, Any]) -> "MatchingConfig":
        """Build a config from caller overrides.

        Raises:
            ConfigurationError: If any value is out of range or inconsistent
        """
        try:
            return cls(**dict(overrides))
        except ValidationError as e:
            first = e.errors()[0] if e.errors() else {}
            setting = ".".join(str(p) for p in first.get("loc", ())) or None
            raise wrap_exception(
                e,
                f"Invalid matching configuration: {first.get('msg', e)}",
                exception_class=ConfigurationError,
                setting=setting,
                errors=e.error_count(),
            ) from e


def _check_buckets(name: str, buckets: tuple[tuple[Any, float], ...]) -> None:
    """Buckets must be non-empty, strictly ascending, with scores in [0, 1] that never rise."""
    if not buckets:
        raise ValueError(f"{name} must not be empty")

    previous_limit = None
    previous_score = 1.0
    for limit, score in buckets:
        if limit < 0:
            raise ValueError(f"{name}: limits must be non-negative, got {limit}")
        if previous_limit is not None and limit <= previous_limit:
            raise ValueError(f"{name}: limits must be strictly ascending")
        if not 0.0 <= score <= previous_score:
            raise ValueError(f"{name}: scores must be within [0, 1] and non-increasing")
        previous_limit, previous_score = limit, score


def resolve_config(config: "MatchingConfig | Mapping[str, Any] | None") -> MatchingConfig:
    """Normalize what callers pass as ``config`` into a MatchingConfig.

    Raises:
        ConfigurationError: If the overrides are invalid
    """
    if config is None:
        return get_matching_config()
    if isinstance(config, MatchingConfig):
        return config
    if isinstance(config, Mapping):
        return MatchingConfig.from_mapping(config)
    raise ConfigurationError(
        "config must be a MatchingConfig, a mapping of overrides, or None",
        expected="MatchingConfig | Mapping | None",
        context={"received": type(config).__name__},
    )


# Global config instance (singleton pattern)
_config: MatchingConfig | None = None


def get_matching_config(force_reload: bool = False) -> MatchingConfig:
    """Get or create the default matching configuration.

    Args:
        force_reload: Force reload from environment

    Returns:
        MatchingConfig instance

    Raises:
        ConfigurationError: If environment overrides are invalid
    """
    global _config

    if _config is None or force_reload:
        try:
            _config = MatchingConfig()
        except ValidationError as e:
            raise wrap_exception(
                e,
                "Invalid matching configuration in environment",
                exception_class=ConfigurationError,
                errors=e.error_count(),
            ) from e
        logger.debug(
            "matching_config_loaded",
            auto_threshold=_config.auto_threshold,
            suggested_threshold=_config.suggested_threshold,
            weights=_config.weights,
        )

    return _config
