"""EngineConfig defaults, validation and environment overrides."""

import os
from unittest.mock import patch

import pytest

from qimen.astro_calendar import CivilTime
from qimen.config import EngineConfig
from qimen.errors import ConfigurationError


class TestConfig:
    def test_defaults(self):
        config = EngineConfig()
        assert config.attachment_palace == 2
        assert config.decade_head_source == "day"
        assert config.hidden_hour_stem_rule == "hour_decade"
        assert config.civil.utc_offset_hours == 8.0
        assert config.ephe_path is None

    @pytest.mark.parametrize("kwargs", [
        {"attachment_palace": 5},
        {"attachment_palace": 10},
        {"decade_head_source": "month"},
        {"hidden_hour_stem_rule": "guess"},
        {"decade_count": 0},
        {"civil": CivilTime(15)},
    ])
    def test_rejects_invalid(self, kwargs):
        with pytest.raises(ConfigurationError):
            EngineConfig(**kwargs)

    def test_from_env(self):
        with patch.dict(os.environ, {
            "QIMEN_UTC_OFFSET": "9",
            "QIMEN_ATTACHMENT_PALACE": "8",
            "QIMEN_DECADE_HEAD_SOURCE": "hour",
            "QIMEN_HIDDEN_HOUR_STEM_RULE": "decade_head",
            "QIMEN_EPHE_PATH": "/tmp/ephe",
        }):
            config = EngineConfig.from_env()
        assert config.civil.utc_offset_hours == 9.0
        assert config.attachment_palace == 8
        assert config.decade_head_source == "hour"
        assert config.hidden_hour_stem_rule == "decade_head"
        assert config.ephe_path == "/tmp/ephe"

    def test_from_env_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            assert EngineConfig.from_env() == EngineConfig()

    @pytest.mark.parametrize("env", [
        {"QIMEN_ATTACHMENT_PALACE": "abc"},
        {"QIMEN_ATTACHMENT_PALACE": "5"},
        {"QIMEN_UTC_OFFSET": "east"},
    ])
    def test_from_env_invalid(self, env):
        with patch.dict(os.environ, env):
            with pytest.raises(ConfigurationError):
                EngineConfig.from_env()
