"""Tests for render configuration and logging setup.

Tests cover:
- RenderConfig defaults and derived properties
- Parameter validation
- Dictionary conversion
- setup_logging handlers and levels
"""

import logging
import os

import pytest

from voltrace.config import RenderConfig
from voltrace.logging_config import setup_logging


class TestRenderConfig:
    """Tests for RenderConfig."""

    def test_defaults(self):
        """Test default values."""
        config = RenderConfig()
        assert config.resolution == (400, 400)
        assert config.samples_per_pixel == 16
        assert config.max_depth == 50
        assert config.tile_size == 32
        assert config.seed == 0
        assert config.russian_roulette is True
        assert config.rr_min_depth == 3
        assert config.max_tile_retries == 1

    def test_auto_thread_count(self):
        """Test thread_count 0 is kept and resolves to the CPU count."""
        config = RenderConfig(thread_count=0)
        assert config.thread_count == 0
        assert config.workers == (os.cpu_count() or 1)
        assert RenderConfig(thread_count=3).workers == 3

    def test_auto_thread_count_round_trip(self):
        """Test the automatic thread count survives to_dict and from_dict."""
        data = RenderConfig().to_dict()
        assert data["thread_count"] == 0
        assert RenderConfig.from_dict(data) == RenderConfig()

    def test_aspect_ratio(self):
        """Test aspect ratio is width over height."""
        assert RenderConfig(width=320, height=240).aspect_ratio == pytest.approx(4.0 / 3.0)

    @pytest.mark.parametrize("name", ["width", "height", "samples_per_pixel", "max_depth", "tile_size"])
    def test_positive_fields(self, name):
        """Test zero is rejected for fields that must be positive."""
        with pytest.raises(ValueError, match=f"{name} must be a positive integer"):
            RenderConfig(**{name: 0})

    @pytest.mark.parametrize("name", ["thread_count", "rr_min_depth", "max_tile_retries", "seed"])
    def test_non_negative_fields(self, name):
        """Test negative values are rejected for counters and the seed."""
        with pytest.raises(ValueError, match=f"{name} must be a non-negative integer"):
            RenderConfig(**{name: -1})

    def test_rejects_floats(self):
        """Test non-integer sizes are rejected."""
        with pytest.raises(ValueError, match="width"):
            RenderConfig(width=10.5)

    def test_frozen(self):
        """Test configs are immutable."""
        config = RenderConfig()
        with pytest.raises(AttributeError):
            config.width = 10

    def test_dict_round_trip(self):
        """Test to_dict and from_dict agree."""
        config = RenderConfig(width=64, height=32, seed=7, thread_count=2, russian_roulette=False)
        data = config.to_dict()
        assert data["width"] == 64
        assert data["russian_roulette"] is False
        assert RenderConfig.from_dict(data) == config

    def test_unknown_keys(self):
        """Test from_dict names unknown keys."""
        with pytest.raises(ValueError, match="Unknown render config keys: colour, spp"):
            RenderConfig.from_dict({"width": 8, "spp": 4, "colour": 1})


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_console_handler(self):
        """Test the package logger gets one console handler at the level."""
        logger = setup_logging("DEBUG")
        assert logger.name == "voltrace"
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1

    def test_repeated_setup_replaces_handlers(self):
        """Test calling setup twice does not duplicate handlers."""
        setup_logging("INFO")
        logger = setup_logging("WARNING")
        assert len(logger.handlers) == 1
        assert logger.level == logging.WARNING

    def test_log_file(self, tmp_path):
        """Test messages reach the log file."""
        path = tmp_path / "logs" / "render.log"
        logger = setup_logging("INFO", log_file=path)
        logging.getLogger("voltrace.core.scheduler").info("Rendered %d tiles", 4)
        for handler in logger.handlers:
            handler.flush()
        assert "Rendered 4 tiles" in path.read_text()
        setup_logging("WARNING")

    def test_unknown_level(self):
        """Test unknown level names are rejected."""
        with pytest.raises(ValueError, match="Unknown log level"):
            setup_logging("LOUD")
