"""Tests for settings, LLM configuration and consensus thresholds."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from citeguard.core.config import ConsensusThresholds, LLMConfig, Settings


@pytest.mark.unit
class TestLLMConfig:
    """Test LLMConfig model validation."""

    def test_valid_llm_config(self):
        """Test creating valid LLMConfig."""
        config = LLMConfig(
            provider="openrouter",
            model="anthropic/claude-haiku-4.5",
            temperature=0.0,
            max_tokens=1024,
            timeout=60,
        )

        assert config.model == "anthropic/claude-haiku-4.5"
        assert config.max_tokens == 1024

    def test_temperature_validation_max(self):
        """Test temperature maximum validation (<=2.0)."""
        with pytest.raises(ValidationError) as exc_info:
            LLMConfig(
                provider="openrouter",
                model="test",
                temperature=2.5,
                max_tokens=1000,
                timeout=60,
            )

        assert "temperature" in str(exc_info.value).lower()

    def test_llm_config_immutable(self):
        """Test LLMConfig is frozen."""
        config = LLMConfig(
            provider="openrouter", model="test", temperature=0.0, max_tokens=1000, timeout=60
        )

        with pytest.raises(ValidationError):
            config.model = "other"


@pytest.mark.unit
class TestConsensusThresholds:
    """Test consensus threshold validation."""

    def test_defaults(self):
        """Test default bands: valid >= 7, invalid <= 4."""
        thresholds = ConsensusThresholds()

        assert thresholds.valid_score_min == 7
        assert thresholds.invalid_score_max == 4
        assert thresholds.unanimous_max_stddev == 1.5

    def test_overlapping_bands_rejected(self):
        """Test the invalid band must sit strictly below the valid band."""
        with pytest.raises(ValidationError) as exc_info:
            ConsensusThresholds(valid_score_min=6, invalid_score_max=6)

        assert "invalid_score_max" in str(exc_info.value)


@pytest.mark.unit
class TestSettings:
    """Test settings loading and computed properties."""

    def test_thresholds_from_environment(self, monkeypatch: pytest.MonkeyPatch):
        """Test consensus thresholds come from environment variables."""
        monkeypatch.setenv("CONSENSUS_VALID_SCORE_MIN", "8")
        monkeypatch.setenv("CONSENSUS_INVALID_SCORE_MAX", "3")

        settings = Settings(_env_file=None)

        thresholds = settings.consensus_thresholds
        assert thresholds.valid_score_min == 8
        assert thresholds.invalid_score_max == 3

    def test_tier_llm_configs(self, monkeypatch: pytest.MonkeyPatch):
        """Test the two panels get their own model settings."""
        monkeypatch.setenv("TIER3_LLM_MODEL", "anthropic/claude-opus-4")

        settings = Settings(_env_file=None)

        assert settings.tier2_llm_config.model == "anthropic/claude-haiku-4.5"
        assert settings.tier3_llm_config.model == "anthropic/claude-opus-4"
        assert settings.tier3_llm_config.timeout == settings.TIER3_LLM_TIMEOUT

    def test_is_sqlite(self, monkeypatch: pytest.MonkeyPatch):
        """Test SQLite detection from the database URL."""
        monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///./local.db")
        assert Settings(_env_file=None).is_sqlite is True

        monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://u:p@db/citeguard")
        assert Settings(_env_file=None).is_sqlite is False
