"""Tests for configuration defaults, validation and environment overrides."""

from pathlib import Path

import pytest

from happypaths.config import (
    LexicalIndexConfig,
    MinerConfig,
    SuggestConfig,
    default_local_loop_config,
    default_suggest_config,
)
from happypaths.errors import ConfigurationError


class TestEnvironmentOverrides:
    def test_min_confidence_from_env(self, monkeypatch):
        monkeypatch.setenv("HAPPYPATHS_MIN_SUGGESTION_CONFIDENCE", "0.35")
        assert default_suggest_config().min_confidence == pytest.approx(0.35)

    def test_non_numeric_env_raises(self, monkeypatch):
        monkeypatch.setenv("HAPPYPATHS_MIN_SUGGESTION_CONFIDENCE", "high")
        with pytest.raises(ConfigurationError, match="HAPPYPATHS_MIN_SUGGESTION_CONFIDENCE"):
            default_suggest_config()

    def test_data_dir_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HAPPYPATHS_DATA_DIR", str(tmp_path))
        assert default_local_loop_config().data_dir == tmp_path

    def test_data_dir_default(self, monkeypatch):
        monkeypatch.delenv("HAPPYPATHS_DATA_DIR", raising=False)
        assert default_local_loop_config().data_dir == Path(".happy-paths")


class TestValidation:
    @pytest.mark.parametrize(
        "factory",
        [
            lambda: LexicalIndexConfig(b=1.5),
            lambda: LexicalIndexConfig(max_query_terms=0),
            lambda: MinerConfig(lookahead_results=0),
            lambda: MinerConfig(near_dup_threshold=0.0),
            lambda: SuggestConfig(min_confidence=-0.1),
            lambda: SuggestConfig(max_suggestions=0),
        ],
    )
    def test_invalid_values_raise(self, factory):
        with pytest.raises(ConfigurationError):
            factory()
