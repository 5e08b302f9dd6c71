# src/govflow/logging_config.py
"""
Logging setup for govflow services.

Every module logs through ``logging.getLogger(__name__)``; this module only
decides where those records end up.  Settings come from the ``[logging]``
table of the govflow TOML configuration (see :mod:`govflow.config`) or
from a dictionary handed in by the embedding application.

Key concepts:

    **Display filter**: the console handler always exists, but while
    ``console_enabled`` is False it only lets through records logged with
    ``extra={"display": True}`` (see :func:`log_display`).  Operational
    messages such as "Indexed 120 chunks for tenant acme" still reach the
    operator while per-request chatter stays in the log file.

    **File modes**: ``file_mode="per_run"`` writes one timestamped file per
    process start; ``file_mode="single"`` appends to one file rotated by a
    ``RotatingFileHandler``.

Usage:
    from govflow.logging_config import configure_logging, log_display

    configure_logging(app_name="govflow-worker")

    logger = logging.getLogger("govflow.startup")
    log_display(logger, logging.INFO, "Governance pipeline ready for %d tenants", count)
"""

import logging
import os
import sys
import tomllib
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

# ---------------------------------------------------------------------------
# Default logging configuration
# ---------------------------------------------------------------------------

DEFAULT_LOGGING_CONFIG: dict[str, Any] = {
    "console_enabled": False,
    "console_level": "WARNING",
    "console_format": "%(levelname)s - %(message)s",
    "file_enabled": True,
    "file_level": "DEBUG",
    "file_directory": "~/.local/share/govflow/logs",
    "file_mode": "per_run",
    "file_name_pattern": "{app}_{timestamp:%Y%m%d_%H%M%S}.log",
    "file_single_name": "{app}.log",
    "file_format": "%(asctime)s [%(levelname)-8s] %(name)-30s - %(message)s (%(filename)s:%(lineno)d)",
    "rotation_max_bytes": 10 * 1024 * 1024,  # 10 MB
    "rotation_backup_count": 5,
    "display_min_level": "INFO",
    "components": {
        "govflow": "INFO",
        "chromadb": "WARNING",
        "git": "WARNING",
        "urllib3": "WARNING",
        "httpx": "WARNING",
        "httpcore": "WARNING",
        "asyncio": "WARNING",
    },
}


def _level(value: Any, default: int) -> int:
    """Resolve a level name or number, falling back to ``default``."""
    if isinstance(value, int):
        return value
    resolved = logging.getLevelName(str(value).upper())
    return resolved if isinstance(resolved, int) else default


# ---------------------------------------------------------------------------
# DisplayFilter
# ---------------------------------------------------------------------------


class DisplayFilter(logging.Filter):
    """Decides which records reach the console handler.

    With the console globally enabled every record passes and the handler
    level does the filtering.  Otherwise only records carrying
    ``display=True`` pass, and only at or above ``display_min_level``.
    """

    def __init__(
        self,
        console_globally_enabled: bool = False,
        display_min_level: int = logging.INFO,
    ) -> None:
        super().__init__()
        self.console_globally_enabled = console_globally_enabled
        self.display_min_level = display_min_level

    def filter(self, record: logging.LogRecord) -> bool:
        if self.console_globally_enabled:
            return True
        if getattr(record, "display", False):
            return record.levelno >= self.display_min_level
        return False


# ---------------------------------------------------------------------------
# UnifiedLoggingManager
# ---------------------------------------------------------------------------


class UnifiedLoggingManager:
    """
    Singleton owner of the root logger's handlers.

    Logging is configured once per process; later calls are no-ops unless
    ``force_reconfigure`` is passed.
    """

    _instance: Optional["UnifiedLoggingManager"] = None
    _configured: bool = False
    _log_file_path: Path | None = None
    _console_handler: logging.Handler | None = None
    _file_handler: logging.Handler | None = None
    _display_filter: DisplayFilter | None = None

    def __new__(cls) -> "UnifiedLoggingManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @classmethod
    def get_instance(cls) -> "UnifiedLoggingManager":
        """Get the singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def is_configured(cls) -> bool:
        return cls._configured

    @classmethod
    def get_log_file_path(cls) -> Path | None:
        return cls._log_file_path

    def configure(
        self,
        app_name: str = "govflow",
        config: dict[str, Any] | None = None,
        config_file_path: str | Path | None = None,
        force_reconfigure: bool = False,
    ) -> Path | None:
        """
        Install console and file handlers on the root logger.

        Args:
            app_name: Used in the log file name.
            config: ``[logging]`` settings; merged over the defaults.
            config_file_path: TOML file to read the ``[logging]`` table from
                when ``config`` is not given.
            force_reconfigure: Replace handlers even if already configured.

        Returns:
            Path of the active log file, or None when file logging is off.
        """
        if self._configured and not force_reconfigure:
            return self._log_file_path

        log_config = self._load_config(config, config_file_path)

        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()
        root_logger.setLevel(logging.DEBUG)

        console_globally_enabled = bool(log_config.get("console_enabled", False))
        self._display_filter = DisplayFilter(
            console_globally_enabled=console_globally_enabled,
            display_min_level=_level(log_config.get("display_min_level", "INFO"), logging.INFO),
        )
        self._console_handler = self._create_console_handler(log_config)
        if not console_globally_enabled:
            # The filter is the only gate while the console is "off".
            self._console_handler.setLevel(logging.DEBUG)
        self._console_handler.addFilter(self._display_filter)
        root_logger.addHandler(self._console_handler)

        self._file_handler, self._log_file_path = None, None
        if log_config.get("file_enabled", True):
            self._file_handler, self._log_file_path = self._create_file_handler(log_config, app_name)
            if self._file_handler:
                root_logger.addHandler(self._file_handler)

        components = log_config.get("components", DEFAULT_LOGGING_CONFIG["components"])
        for component_name, level_str in components.items():
            logging.getLogger(component_name).setLevel(_level(level_str, logging.INFO))

        UnifiedLoggingManager._configured = True
        UnifiedLoggingManager._log_file_path = self._log_file_path

        if self._log_file_path:
            logging.getLogger("govflow.logging_config").debug(
                f"Logging configured. Log file: {self._log_file_path}"
            )
        return self._log_file_path

    def _load_config(
        self, config: dict[str, Any] | None, config_file_path: str | Path | None
    ) -> dict[str, Any]:
        """Merge explicit settings, or the TOML ``[logging]`` table, over the defaults."""
        if config is not None:
            return {**DEFAULT_LOGGING_CONFIG, **config}

        path_str = config_file_path or os.environ.get("GOVFLOW_CONFIG")
        if path_str:
            path = Path(path_str).expanduser()
            if path.is_file():
                with open(path, "rb") as f:
                    raw = tomllib.load(f)
                section = raw.get("govflow", raw).get("logging", {})
                if section:
                    return {**DEFAULT_LOGGING_CONFIG, **section}

        return DEFAULT_LOGGING_CONFIG.copy()

    def _create_console_handler(self, config: dict[str, Any]) -> logging.Handler:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(_level(config.get("console_level", "WARNING"), logging.WARNING))
        handler.setFormatter(
            logging.Formatter(config.get("console_format", DEFAULT_LOGGING_CONFIG["console_format"]))
        )
        return handler

    def _create_file_handler(
        self, config: dict[str, Any], app_name: str
    ) -> tuple[logging.Handler | None, Path | None]:
        """Create the per-run or rotating file handler; (None, None) if the file can't be opened."""
        log_dir = Path(os.path.expanduser(config.get("file_directory", DEFAULT_LOGGING_CONFIG["file_directory"])))
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            sys.stderr.write(f"Warning: Cannot create log directory {log_dir}: {e}\n")
            return None, None

        try:
            if config.get("file_mode", "per_run") == "single":
                try:
                    filename = config.get("file_single_name", "{app}.log").format(app=app_name)
                except (KeyError, ValueError):
                    filename = f"{app_name}.log"
                log_file_path = log_dir / filename
                handler: logging.Handler = RotatingFileHandler(
                    log_file_path,
                    maxBytes=config.get("rotation_max_bytes", 10 * 1024 * 1024),
                    backupCount=config.get("rotation_backup_count", 5),
                    encoding="utf-8",
                )
            else:
                timestamp = datetime.now()
                pattern = config.get("file_name_pattern", DEFAULT_LOGGING_CONFIG["file_name_pattern"])
                try:
                    filename = pattern.format(app=app_name, timestamp=timestamp)
                except (KeyError, ValueError):
                    filename = f"{app_name}_{timestamp.strftime('%Y%m%d_%H%M%S')}.log"
                log_file_path = log_dir / filename
                handler = logging.FileHandler(log_file_path, encoding="utf-8")
        except OSError as e:
            sys.stderr.write(f"Warning: Cannot create log file in {log_dir}: {e}\n")
            return None, None

        handler.setLevel(_level(config.get("file_level", "DEBUG"), logging.DEBUG))
        handler.setFormatter(logging.Formatter(config.get("file_format", DEFAULT_LOGGING_CONFIG["file_format"])))
        return handler, log_file_path

    def set_console_level(self, level: str | int) -> None:
        """Change the console handler's level at runtime."""
        if self._console_handler is not None:
            self._console_handler.setLevel(_level(level, logging.WARNING))

    def set_component_level(self, component: str, level: str | int) -> None:
        logging.getLogger(component).setLevel(_level(level, logging.INFO))


# ---------------------------------------------------------------------------
# Public module-level functions
# ---------------------------------------------------------------------------


def configure_logging(
    app_name: str = "govflow",
    config: dict[str, Any] | None = None,
    config_file_path: str | Path | None = None,
    force_reconfigure: bool = False,
) -> Path | None:
    """
    Configure logging for the process.

    Call early during startup, e.g. from :meth:`govflow.api.GovFlow.init`.

    Example:
        configure_logging(
            app_name="govflow",
            config={"console_enabled": True, "file_enabled": False},
        )
    """
    return UnifiedLoggingManager.get_instance().configure(
        app_name=app_name,
        config=config,
        config_file_path=config_file_path,
        force_reconfigure=force_reconfigure,
    )


def log_display(
    logger: logging.Logger,
    level: int,
    msg: str,
    *args: Any,
    **kwargs: Any,
) -> None:
    """Log a message that also reaches the console in quiet mode.

    Sets ``extra={"display": True}`` (merged with any caller ``extra``).
    ``display_min_level`` still applies.
    """
    extra = kwargs.pop("extra", None) or {}
    extra["display"] = True
    kwargs["extra"] = extra
    logger.log(level, msg, *args, **kwargs)


def get_log_file_path() -> Path | None:
    return UnifiedLoggingManager.get_log_file_path()


def set_console_level(level: str | int) -> None:
    UnifiedLoggingManager.get_instance().set_console_level(level)


def set_component_level(component: str, level: str | int) -> None:
    UnifiedLoggingManager.get_instance().set_component_level(component, level)
