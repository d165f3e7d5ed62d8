import logging
import sys
import os
from pathlib import Path
from loguru import logger
import json
from datetime import date
from typing import Optional

from subminder.config.settings import settings
from subminder.utils.context import get_request_id

DEFAULT_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[request_id]}</cyan> | <level>{message}</level> | {extra}"
)

DEFAULT_LOGGING_CONFIG = {
    "logger": {
        "log_dir": None,
        "filename": "subminder.log",
        "level": "info",
        "rotation": "20 MB",
        "retention": "14 days",
        "console_format": DEFAULT_CONSOLE_FORMAT,
        "file_format": DEFAULT_CONSOLE_FORMAT,
        "use_json_logs": False,
    }
}


def _attach_run_request_id(record):
    # Module loggers are bound once at import; the running task's id wins
    request_id = get_request_id()
    if request_id:
        record["extra"]["request_id"] = request_id


class InterceptHandler(logging.Handler):
    """Route standard-library records (celery, sqlalchemy) into loguru."""

    loglevel_mapping = {
        50: "CRITICAL",
        40: "ERROR",
        30: "WARNING",
        20: "INFO",
        10: "DEBUG",
        0: "NOTSET",
    }

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = self.loglevel_mapping[record.levelno]

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        request_id = get_request_id() or "subminder"
        log = logger.bind(request_id=request_id)
        log.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


class CustomizeLogger:
    @classmethod
    def make_logger(
        cls, config_path: Path, environment: str = "logger", level: Optional[str] = None
    ):
        config = cls.load_logging_config(config_path)
        logging_config = config.get(environment, config.get("logger"))

        return cls.customize_logging(
            log_dir=logging_config.get("log_dir"),
            filename=f"{date.today().strftime('%Y-%m-%d')}-{logging_config.get('filename')}",
            level=level or logging_config.get("level", "info"),
            rotation=logging_config.get("rotation"),
            retention=logging_config.get("retention"),
            console_format=logging_config.get("console_format", DEFAULT_CONSOLE_FORMAT),
            file_format=logging_config.get("file_format", DEFAULT_CONSOLE_FORMAT),
            use_json_logs=logging_config.get("use_json_logs", False),
        )

    @classmethod
    def customize_logging(
        cls,
        log_dir,
        filename: str,
        level: str,
        rotation: str,
        retention: str,
        console_format: str,
        file_format: str,
        use_json_logs: bool = False,
    ):
        logger.remove()
        logger.configure(
            extra={"request_id": "subminder"}, patcher=_attach_run_request_id
        )

        # Console logger with colors
        logger.add(
            sys.stdout,
            enqueue=True,
            backtrace=True,
            level=level.upper(),
            format=console_format,
            colorize=True,
        )

        # File sink is optional; workers in containers usually log to stdout only
        if log_dir:
            if use_json_logs and file_format == "json":
                logger.add(
                    str(f"{log_dir}/{filename}"),
                    rotation=rotation,
                    retention=retention,
                    enqueue=True,
                    backtrace=True,
                    level=level.upper(),
                    serialize=True,
                    colorize=False,
                )
            else:
                logger.add(
                    str(f"{log_dir}/{filename}"),
                    rotation=rotation,
                    retention=retention,
                    enqueue=True,
                    backtrace=True,
                    level=level.upper(),
                    format=file_format,
                    colorize=False,
                )

        # Redirect standard logging to loguru
        cls._setup_intercept_handlers()

        return logger

    @staticmethod
    def _setup_intercept_handlers():
        logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

        library_loggers = ["celery", "celery.task", "celery.beat", "sqlalchemy.engine"]
        for log_name in library_loggers:
            _logger = logging.getLogger(log_name)
            _logger.handlers = [InterceptHandler()]
            _logger.propagate = False

    @staticmethod
    def load_logging_config(config_path: Path):
        if not config_path.exists():
            return DEFAULT_LOGGING_CONFIG
        with open(config_path) as config_file:
            return json.load(config_file)


# Initialize logger
config_path = Path(
    os.getenv(
        "LOGGING_CONFIG_PATH",
        Path(__file__).resolve().parents[2] / "logging_config.json",
    )
)
environment = (
    "production"
    if os.getenv("ENVIRONMENT", "development") == "production"
    else "logger"
)
custom_logger = CustomizeLogger.make_logger(
    config_path, environment, level=settings.LOG_LEVEL
)


def get_logger():
    """Get the custom logger instance with request ID binding."""
    request_id = get_request_id() or "subminder"
    return custom_logger.bind(request_id=request_id)
