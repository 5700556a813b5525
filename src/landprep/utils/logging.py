# src/landprep/utils/logging.py
"""
Logging setup for landprep.

loguru is the only logger. Console records are rendered through a rich
Console (plain stderr when not attached to a terminal), file records go to a
rotating file whose path comes from ``global.logging.file``. Per-module
levels from ``global.logging.modules`` apply to both sinks.
"""

import sys
from pathlib import Path
from typing import Dict, Optional

from loguru import logger
from rich.markup import escape
from rich.traceback import Traceback

from landprep.config import AppConfig, ConsoleLoggingConfig, LoggingConfig
from landprep.utils.console import console

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"
)

LEVEL_STYLES = {
    "DEBUG": "dim",
    "INFO": "bold blue",
    "SUCCESS": "bold green",
    "WARNING": "bold orange1",
    "ERROR": "bold red",
    "CRITICAL": "bold white on red",
}


def plain_format(console_cfg: ConsoleLoggingConfig, detailed: bool) -> str:
    """loguru format string for a console without colours."""
    fields = []
    if console_cfg.show_time or detailed:
        fields.append("{time:HH:mm:ss}")
    if console_cfg.show_level or detailed:
        fields.append("{level: <8}")
    if detailed:
        location = "{name}:{function}:{line}" if console_cfg.show_path else "{name}:{function}"
        return " | ".join(fields) + f" | {location} - {{message}}"
    fields.append("{message}")
    return " | ".join(fields)


def rich_line(record: Dict, console_cfg: ConsoleLoggingConfig, detailed: bool) -> str:
    """Markup line for one record."""
    level = record["level"].name
    style = LEVEL_STYLES.get(level, "bold")
    fields = []
    if console_cfg.show_time or detailed:
        fields.append(f"[green]{record['time']:%H:%M:%S}[/green]")
    if console_cfg.show_level or detailed:
        fields.append(f"[{style}]{level: <8}[/{style}]")

    message = escape(record["message"])
    if detailed:
        location = f"{record['name']}:{record['function']}"
        if console_cfg.show_path:
            location += f":{record['line']}"
        message = f"[cyan]{location}[/cyan] - {message}"
    fields.append(message)
    return " | ".join(fields)


class LandprepLogger:
    """Configures the loguru sinks once per process."""

    def __init__(self):
        self.console = console
        self.level = "INFO"
        self.environment = "development"
        self.log_file: Optional[Path] = None
        self._configured = False

    def setup(
        self,
        app_config: Optional[AppConfig] = None,
        verbose: bool = False,
        log_file: Optional[Path] = None,
        environment: str = "development",
    ):
        """
        Install console and file sinks. Later calls are ignored.

        Args:
            app_config: Loaded configuration; built-in defaults when None
            verbose: Force DEBUG level and detailed console lines
            log_file: Log file overriding the configured path
            environment: Fills the {environment} placeholder of the log path
        """
        if self._configured:
            return

        settings = app_config.global_.logging if app_config else LoggingConfig()
        self.environment = environment
        self.level = "DEBUG" if verbose else (app_config.global_.log_level if app_config else "INFO")
        if log_file:
            self.log_file = Path(log_file)
        else:
            self.log_file = settings.file_path(environment)

        # the sinks pass everything from DEBUG up; the filter applies the real thresholds
        levels = {"": self.level, **settings.modules}

        logger.remove()
        self._add_console_sink(settings.console, verbose, levels)
        if self.log_file:
            self._add_file_sink(settings, levels)

        self._configured = True
        logger.debug(
            f"Logging configured (level={self.level}, env={environment}, file={self.log_file})"
        )

    def _add_console_sink(
        self, console_cfg: ConsoleLoggingConfig, verbose: bool, levels: Dict[str, str]
    ):
        detailed = verbose or console_cfg.format == "detailed"

        if not self.console.is_terminal:
            logger.add(
                sys.stderr,
                format=plain_format(console_cfg, detailed),
                level="DEBUG",
                filter=levels,
                colorize=False,
                diagnose=verbose,
            )
            return

        def rich_sink(message):
            self.console.print(
                rich_line(message.record, console_cfg, detailed), highlight=False
            )
            exception = message.record["exception"]
            if exception is not None:
                self.console.print(
                    Traceback.from_exception(exception.type, exception.value, exception.traceback)
                )

        logger.add(rich_sink, format="{message}", level="DEBUG", filter=levels, diagnose=verbose)

    def _add_file_sink(self, settings: LoggingConfig, levels: Dict[str, str]):
        self.log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(self.log_file),
            format=FILE_FORMAT,
            level="DEBUG",
            filter=levels,
            rotation=settings.file.rotation,
            retention=settings.file.retention,
            compression=settings.file.compression,
            enqueue=True,
        )

    def get_log_file_path(self) -> Optional[Path]:
        return self.log_file

    def show_log_info(self):
        """Print the active logging setup."""
        self.console.print("[bold]Logging[/bold]")
        self.console.print(f"  Environment: {self.environment}")
        self.console.print(f"  Level:       {self.level}")
        self.console.print(f"  Log file:    {self.log_file or 'disabled'}")
        if self.log_file and self.log_file.exists():
            size_mb = self.log_file.stat().st_size / (1024 * 1024)
            self.console.print(f"  File size:   {size_mb:.2f} MB")


landprep_logger = LandprepLogger()


def setup_logging(
    app_config: Optional[AppConfig] = None,
    verbose: bool = False,
    log_file: Optional[Path] = None,
    environment: str = "development",
):
    """Configure logging for the process; see :meth:`LandprepLogger.setup`."""
    landprep_logger.setup(
        app_config=app_config, verbose=verbose, log_file=log_file, environment=environment
    )
