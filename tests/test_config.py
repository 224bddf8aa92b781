"""Tests for MatchingConfig validation, overrides and the cached accessor."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from rapprochement.config import (
    DEFAULT_AMOUNT_BUCKETS,
    DEFAULT_DATE_BUCKETS,
    MatchingConfig,
    get_matching_config,
    resolve_config,
)
from rapprochement.exceptions import ConfigurationError

pytestmark = pytest.mark.unit


class TestMatchingConfigDefaults:
    """Tests for default values."""

    def test_defaults(self, matching_config):
        assert matching_config.auto_threshold == 0.8
        assert matching_config.suggested_threshold == 0.6
        assert matching_config.weights == (0.4, 0.5, 0.1)
        assert matching_config.date_buckets == DEFAULT_DATE_BUCKETS
        assert matching_config.amount_buckets == DEFAULT_AMOUNT_BUCKETS
        assert matching_config.max_payment_window_days == 30
        assert matching_config.outlier_multiplier == 3.0
        assert matching_config.history_capacity == 10

    def test_config_is_frozen(self, matching_config):
        with pytest.raises(PydanticValidationError):
            matching_config.auto_threshold = 0.5


class TestMatchingConfigValidation:
    """Tests for rejected configurations."""

    def test_suggested_above_auto_rejected(self):
        with pytest.raises(PydanticValidationError, match="suggested_threshold"):
            MatchingConfig(auto_threshold=0.5, suggested_threshold=0.7)

    @pytest.mark.parametrize("value", [-0.1, 1.5])
    def test_threshold_out_of_range_rejected(self, value):
        with pytest.raises(PydanticValidationError):
            MatchingConfig(auto_threshold=value)

    def test_weights_must_sum_to_one(self):
        with pytest.raises(PydanticValidationError, match="sum to 1.0"):
            MatchingConfig(date_weight=0.5, amount_weight=0.5, text_weight=0.5)

    def test_weights_within_tolerance_accepted(self):
        config = MatchingConfig(date_weight=0.333, amount_weight=0.333, text_weight=0.333)
        assert sum(config.weights) == pytest.approx(0.999)

    @pytest.mark.parametrize(
        "buckets",
        [
            (),
            ((0, 1.0), (0, 0.9)),
            ((3, 0.7), (1, 0.9)),
            ((0, 0.5), (1, 0.9)),
            ((0, 1.5),),
        ],
    )
    def test_bad_date_buckets_rejected(self, buckets):
        with pytest.raises(PydanticValidationError):
            MatchingConfig(date_buckets=buckets)

    def test_outlier_samples_cannot_exceed_window(self):
        with pytest.raises(PydanticValidationError, match="outlier_min_samples"):
            MatchingConfig(outlier_window=3, outlier_min_samples=5)


class TestFromMapping:
    """Tests for caller overrides."""

    def test_valid_overrides(self):
        config = MatchingConfig.from_mapping({"auto_threshold": 0.9, "materiality_threshold": "250"})
        assert config.auto_threshold == 0.9
        assert str(config.materiality_threshold) == "250"

    def test_invalid_overrides_raise_configuration_error(self):
        with pytest.raises(ConfigurationError) as exc_info:
            MatchingConfig.from_mapping({"auto_threshold": 0.5, "suggested_threshold": 0.7})

        assert isinstance(exc_info.value.original_error, PydanticValidationError)
        assert "Invalid matching configuration" in str(exc_info.value)

    def test_out_of_range_reports_setting(self):
        with pytest.raises(ConfigurationError) as exc_info:
            MatchingConfig.from_mapping({"text_weight": 2})
        assert exc_info.value.context["setting"] == "text_weight"


class TestResolveConfig:
    """Tests for config normalization at the entry points."""

    def test_none_gives_default(self):
        assert resolve_config(None) == MatchingConfig()

    def test_instance_passes_through(self, matching_config):
        assert resolve_config(matching_config) is matching_config

    def test_mapping_is_converted(self):
        assert resolve_config({"outlier_multiplier": 5}).outlier_multiplier == 5.0

    def test_other_types_rejected(self):
        with pytest.raises(ConfigurationError, match="MatchingConfig"):
            resolve_config("auto_threshold=0.9")


class TestGetMatchingConfig:
    """Tests for the cached default configuration."""

    def test_cached(self):
        assert get_matching_config() is get_matching_config()

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("RAPPROCHEMENT_AUTO_THRESHOLD", "0.9")
        config = get_matching_config(force_reload=True)
        assert config.auto_threshold == 0.9

    def test_invalid_environment_raises(self, monkeypatch):
        monkeypatch.setenv("RAPPROCHEMENT_SUGGESTED_THRESHOLD", "0.95")
        with pytest.raises(ConfigurationError):
            get_matching_config(force_reload=True)
