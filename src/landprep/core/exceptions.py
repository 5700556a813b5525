# src/landprep/core/exceptions.py
"""Error kinds raised by the processing steps."""


class LandprepError(Exception):
    """Base exception for processing errors"""

    pass


class RetrievalError(LandprepError):
    """A remote resource could not be downloaded"""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to retrieve {url}: {reason}")


class FormatError(LandprepError):
    """A container could not be read as a geospatial source"""

    pass


class LayerNotFoundError(FormatError):
    """A named sub-layer does not exist in the container"""

    def __init__(self, path, layer: str, available=None):
        self.path = path
        self.layer = layer
        self.available = list(available or [])
        super().__init__(
            f"Layer '{layer}' not found in {path}. Available: {self.available}"
        )


class GeometryError(LandprepError):
    """Union, repair or intersection could not produce a valid geometry"""

    pass


class WriteError(LandprepError):
    """An output could not be written"""

    pass
