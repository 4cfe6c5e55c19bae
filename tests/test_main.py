"""Unit tests for the command-line entry point.

Tests:
- Log level priority (CLI > environment > YAML)
- Manual drain exit codes
- Daemon mode scheduler wiring
- Configuration error and interrupt handling
"""

from unittest.mock import Mock, patch

import pytest

from jobboard.config.environment import EnvironmentConfig
from jobboard.config.exceptions import ConfigurationError
from jobboard.config.models import AppConfig, LoggingConfig
from jobboard.events.models import DrainResult, EventOutcome
from jobboard.main import build_parser, load_runtime_config, main
from jobboard.utils.timestamps import utc_now


def make_configs(log_level="INFO"):
    app_config = AppConfig(logging=LoggingConfig(level="WARNING", format="key-value"))
    env_config = EnvironmentConfig(
        smtp_host="smtp.mailhost.in", smtp_port=587, log_level=log_level, database_url="sqlite:///:memory:"
    )
    return app_config, env_config


def drain_result(*outcomes):
    now = utc_now()
    return DrainResult(started_at=now, finished_at=now, outcomes=list(outcomes))


class TestLoadRuntimeConfig:
    def test_log_level_priority(self, tmp_path):
        app_config, env_config = make_configs(log_level="INFO")

        with patch("jobboard.main.load_config", return_value=(app_config, env_config)):
            _, env = load_runtime_config(tmp_path / "config.yaml", "DEBUG")
            assert env.log_level == "DEBUG"

            env_config.log_level = "ERROR"
            _, env = load_runtime_config(tmp_path / "config.yaml", None)
            assert env.log_level == "ERROR"

            env_config.log_level = None
            _, env = load_runtime_config(tmp_path / "config.yaml", None)
            assert env.log_level == "WARNING"

    def test_parser_defaults(self):
        args = build_parser().parse_args([])

        assert args.config is None
        assert args.manual_run is False
        assert args.log_level is None

    def test_parser_rejects_unknown_level(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--log-level", "LOUD"])


@patch("jobboard.main.close_database")
@patch("jobboard.main.init_database")
@patch("jobboard.main.configure_logging")
@patch("jobboard.main.build_runtime")
@patch("jobboard.main.load_runtime_config")
class TestMain:
    def test_manual_run_success(self, mock_load, mock_build, mock_logging, mock_init, mock_close):
        mock_load.return_value = make_configs()
        runtime = mock_build.return_value
        runtime.relay.drain_pending.return_value = drain_result(EventOutcome(event_id="e1", dispatched=True))

        exit_code = main(["--manual-run", "--config", "config.yaml"])

        assert exit_code == 0
        mock_init.assert_called_once_with("sqlite:///:memory:")
        runtime.relay.recover.assert_called_once()
        runtime.relay.drain_pending.assert_called_once()
        runtime.shutdown.assert_called_once_with(wait=True)
        mock_close.assert_called_once()

    def test_manual_run_with_errors(self, mock_load, mock_build, mock_logging, mock_init, mock_close):
        mock_load.return_value = make_configs()
        mock_build.return_value.relay.drain_pending.return_value = drain_result(
            EventOutcome(event_id="e1", error="RuntimeError: boom")
        )

        assert main(["--manual-run"]) == 1

    def test_log_level_flag_is_passed_through(self, mock_load, mock_build, mock_logging, mock_init, mock_close):
        mock_load.return_value = make_configs(log_level="DEBUG")
        mock_build.return_value.relay.drain_pending.return_value = drain_result()

        main(["--manual-run", "--log-level", "DEBUG"])

        assert mock_load.call_args.args[1] == "DEBUG"
        assert mock_logging.call_args.kwargs["level"] == "DEBUG"
        assert mock_logging.call_args.kwargs["format_type"] == "key-value"

    @patch("signal.signal")
    @patch("jobboard.main.SchedulerService")
    def test_daemon_mode(self, mock_scheduler_cls, mock_signal, mock_load, mock_build, mock_logging, mock_init, mock_close):
        mock_load.return_value = make_configs()
        scheduler = mock_scheduler_cls.return_value
        scheduler.start.side_effect = KeyboardInterrupt()

        exit_code = main([])

        assert exit_code == 0
        assert mock_scheduler_cls.call_args.kwargs["drain_callable"] is mock_build.return_value.relay.drain_pending
        assert mock_scheduler_cls.call_args.kwargs["interval_seconds"] == 60
        scheduler.start.assert_called_once()
        assert mock_signal.call_count == 2

    def test_configuration_error(self, mock_load, mock_build, mock_logging, mock_init, mock_close, capsys):
        mock_load.side_effect = ConfigurationError("Config file not found", suggestions=["Create config.yaml"])

        assert main(["--config", "nonexistent.yaml"]) == 1
        assert "Configuration Error" in capsys.readouterr().err
        mock_build.assert_not_called()

    def test_startup_failure(self, mock_load, mock_build, mock_logging, mock_init, mock_close, capsys):
        mock_load.return_value = make_configs()
        mock_init.side_effect = RuntimeError("disk full")

        assert main(["--manual-run"]) == 1
        assert "Fatal error: disk full" in capsys.readouterr().err

    def test_keyboard_interrupt_during_startup(self, mock_load, mock_build, mock_logging, mock_init, mock_close):
        mock_load.side_effect = KeyboardInterrupt()

        assert main([]) == 0
