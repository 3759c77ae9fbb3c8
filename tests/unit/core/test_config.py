"""
Tests for engine configuration
"""
import pytest
import os
from unittest.mock import patch


class TestSettings:
    """Tests for Settings configuration class"""

    def test_default_values(self):
        """Test default configuration values"""
        from fsrs_engine.core.config import Settings

        with patch.dict(os.environ, {}, clear=True):
            settings = Settings()

            assert settings.APP_NAME == "FSRS Engine"
            assert settings.APP_VERSION == "1.0.0"
            assert settings.LOG_DIR == "logs"

    def test_optimizer_defaults(self):
        """Test optimizer input limits"""
        from fsrs_engine.core.config import Settings

        with patch.dict(os.environ, {}, clear=True):
            settings = Settings()

            assert settings.OPTIMIZER_MAX_EVENTS == 50000
            assert settings.OPTIMIZER_LOOKBACK_DAYS == 730

    def test_environment_override(self):
        """Test environment variable overrides"""
        from fsrs_engine.core.config import Settings

        with patch.dict(os.environ, {"DEBUG": "true", "ENVIRONMENT": "production"}):
            settings = Settings()

            assert settings.DEBUG is True
            assert settings.ENVIRONMENT == "production"

    def test_optimizer_override(self):
        """Test optimizer limits from the environment"""
        from fsrs_engine.core.config import Settings

        with patch.dict(os.environ, {"OPTIMIZER_LOOKBACK_DAYS": "365"}):
            settings = Settings()

            assert settings.OPTIMIZER_LOOKBACK_DAYS == 365

    def test_case_sensitive(self):
        """Lower-case variables are ignored"""
        from fsrs_engine.core.config import Settings

        with patch.dict(os.environ, {"app_name": "other"}):
            settings = Settings()

            assert settings.APP_NAME == "FSRS Engine"
