"""Main entry point for the job board alerting service."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import signal
import sys
import threading
import time
from pathlib import Path
from typing import Optional, Sequence, Tuple

from jobboard.config.environment import EnvironmentConfig
from jobboard.config.exceptions import ConfigurationError
from jobboard.config.loader import load_config
from jobboard.config.models import AppConfig
from jobboard.logging import get_logger
from jobboard.logging.config import configure_logging
from jobboard.persistence.database import close_database, init_database
from jobboard.runtime import build_runtime
from jobboard.scheduler import SchedulerService

logger = get_logger(__name__, component="cli")


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and settle the effective log level.

    Priority: CLI flag, then LOG_LEVEL, then the YAML logging.level.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level

    return app_config, env_config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Job board alerting service - dispatches job and resume alerts from the outbox"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml, then config/config.yaml)",
    )
    parser.add_argument(
        "--manual-run",
        action="store_true",
        help="Drain pending outbox events once and exit",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Run the alerting service.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)

    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=app_config.environment,
        )

        logger.info(
            "Job board alerting service starting",
            extra={
                "event": "service.starting",
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
                "manual_run": args.manual_run,
            },
        )

        init_database(env_config.database_url)

        runtime = build_runtime(app_config, env_config)
        runtime.relay.recover()

        logger.info(
            "Services initialized",
            extra={
                "event": "services.initialized",
                "poll_interval_seconds": app_config.dispatch.poll_interval_seconds,
                "max_workers": app_config.dispatch.max_workers,
            },
        )

        if args.manual_run:
            logger.info("Executing manual drain", extra={"event": "service.manual_drain.starting"})
            result = runtime.relay.drain_pending()

            logger.info(
                f"Manual drain completed: {result.processed} processed, "
                f"{result.dispatched} dispatched, {result.failed} failed, "
                f"{result.notifications_sent} notification(s) sent",
                extra={
                    "event": "service.manual_drain.completed",
                    "duration_seconds": round(result.duration_seconds, 3),
                    "had_errors": result.had_errors,
                },
            )

            runtime.shutdown(wait=True)
            close_database()
            _log_stopped(start_time)
            return 1 if result.had_errors else 0

        shutdown_event = threading.Event()
        scheduler_service = SchedulerService(
            drain_callable=runtime.relay.drain_pending,
            interval_seconds=app_config.dispatch.poll_interval_seconds,
            shutdown_event=shutdown_event,
        )

        def signal_handler(signum, frame):
            logger.info(
                f"Received signal {signum}, shutting down",
                extra={"event": "service.signal_received", "signal": signum},
            )
            scheduler_service.shutdown(wait=False)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        scheduler_service.start()
        logger.info(
            "Scheduler started. Press Ctrl+C to stop",
            extra={"event": "service.daemon_mode.started"},
        )

        try:
            shutdown_event.wait()
        except KeyboardInterrupt:
            logger.info(
                "Keyboard interrupt received, shutting down",
                extra={"event": "service.keyboard_interrupt"},
            )
            scheduler_service.shutdown(wait=False)

        runtime.shutdown(wait=True)
        close_database()
        _log_stopped(start_time)
        return 0

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error during startup",
            extra={
                "event": "service.startup.failed",
                "error_type": type(e).__name__,
                "error": str(e),
            },
            exc_info=True,
        )
        return 1


def _log_stopped(start_time: float) -> None:
    logger.info(
        "Job board alerting service stopped",
        extra={"event": "service.stopping", "uptime_seconds": round(time.time() - start_time, 2)},
    )


if __name__ == "__main__":
    sys.exit(main())
