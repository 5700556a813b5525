"""
Core processing steps: fetch, read, classify, harmonize, clip, merge tiles, export.
"""

from landprep.core.exceptions import (
    FormatError,
    GeometryError,
    LandprepError,
    LayerNotFoundError,
    RetrievalError,
    WriteError,
)

__all__ = [
    "LandprepError",
    "RetrievalError",
    "FormatError",
    "LayerNotFoundError",
    "GeometryError",
    "WriteError",
]
