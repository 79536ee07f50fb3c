"""
ModelGraph Configuration -- Tests
"""

import logging

import pytest

from modelgraph import config
from modelgraph.kernel.model import Model


class TestEnvBool:
    @pytest.mark.parametrize("raw", ["1", "true", "TRUE", "yes", "on", " on "])
    def test_truthy(self, monkeypatch, raw):
        monkeypatch.setenv("MODELGRAPH_TEST_FLAG", raw)
        assert config._env_bool("MODELGRAPH_TEST_FLAG", False) is True

    @pytest.mark.parametrize("raw", ["0", "false", "no", "off"])
    def test_falsy(self, monkeypatch, raw):
        monkeypatch.setenv("MODELGRAPH_TEST_FLAG", raw)
        assert config._env_bool("MODELGRAPH_TEST_FLAG", True) is False

    def test_unset_or_empty_uses_default(self, monkeypatch):
        monkeypatch.delenv("MODELGRAPH_TEST_FLAG", raising=False)
        assert config._env_bool("MODELGRAPH_TEST_FLAG", True) is True
        monkeypatch.setenv("MODELGRAPH_TEST_FLAG", "")
        assert config._env_bool("MODELGRAPH_TEST_FLAG", False) is False


class TestModelDefaults:
    def test_model_defaults_come_from_settings(self):
        assert Model.enable_auto_id is config.settings.ENABLE_AUTO_ID
        assert Model.autoincrement_value == config.settings.AUTO_ID_START


class TestConfigureLogging:
    @pytest.fixture(autouse=True)
    def restore_level(self):
        logger = logging.getLogger("modelgraph")
        level = logger.level
        yield
        logger.setLevel(level)

    def test_explicit_level(self):
        config.configure_logging("debug")
        assert logging.getLogger("modelgraph").level == logging.DEBUG

    def test_settings_level(self, monkeypatch):
        monkeypatch.setattr(config.settings, "LOG_LEVEL", "warning")
        config.configure_logging()
        assert logging.getLogger("modelgraph").level == logging.WARNING

    def test_empty_level_leaves_logger_alone(self, monkeypatch):
        monkeypatch.setattr(config.settings, "LOG_LEVEL", "")
        logger = logging.getLogger("modelgraph")
        logger.setLevel(logging.ERROR)
        config.configure_logging()
        assert logger.level == logging.ERROR
