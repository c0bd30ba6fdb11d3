"""Tests for the structlog-based logger module."""

import pytest
from structlog.testing import capture_logs

from app.logger import configure_logging, session_logger


class TestSessionLogger:
    """Tests for session logger functionality."""

    @pytest.mark.parametrize("method", ["debug", "info", "warning", "error", "critical"])
    def test_logger_has_level_methods(self, method):
        assert callable(getattr(session_logger, method))

    def test_structured_fields_are_kept(self):
        with capture_logs() as logs:
            session_logger.warning("sim.test_event", worker_id=3, error_type="QueueFull")

        assert logs == [
            {"event": "sim.test_event", "log_level": "warning", "worker_id": 3, "error_type": "QueueFull"}
        ]


class TestConfigureLogging:
    @pytest.mark.parametrize("level", ["DEBUG", "info", "Warning", "ERROR"])
    def test_accepts_level_names(self, level):
        configure_logging(level)

    def test_json_output(self, capsys):
        configure_logging("INFO", json_output=True)
        session_logger.info("sim.json_check", workers=2)

        err = capsys.readouterr().err
        assert '"event": "sim.json_check"' in err
        assert '"workers": 2' in err

    def test_level_filtering(self, capsys):
        configure_logging("ERROR", json_output=True)
        session_logger.info("sim.filtered_out")
        session_logger.error("sim.kept")

        err = capsys.readouterr().err
        assert "sim.filtered_out" not in err
        assert "sim.kept" in err

    def test_unknown_level_rejected(self):
        with pytest.raises(ValueError):
            configure_logging("LOUD")
