"""
CLI module for landprep.
"""

from landprep.cli.main import cli, info, logs, show_logs, tail_logs

__all__ = ["cli", "info", "logs", "show_logs", "tail_logs"]
