"""
landprep - data preparation for a land-development model.

Downloads land-use, hydrography, transport and elevation datasets, harmonizes
them to a common CRS and clips them to a regional and a local study boundary.
"""

from landprep._version import __version__

__all__ = ["__version__"]
