"""
landprep utilities module.
"""

from landprep.utils.logging import landprep_logger, setup_logging

__all__ = [
    "landprep_logger",
    "setup_logging",
]
