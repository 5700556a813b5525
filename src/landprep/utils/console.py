"""
Shared rich console for status output.

Live progress bars and the loguru console sink must print through the same
Console, otherwise log lines break the progress display.
"""

from rich.console import Console

console = Console(stderr=True)
