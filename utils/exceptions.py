"""Custom exception hierarchy."""


class ShoeImageError(Exception):
    """Base for every project exception."""


class TransientNetworkError(ShoeImageError):
    """Download failed in a way worth retrying (connection, timeout, non-2xx)."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class StructuralRejection(ShoeImageError):
    """Image border is not a near-white product backdrop."""


class SemanticRejection(ShoeImageError):
    """Vision model judged the image unusable for the requested model."""


class SemanticUnavailableError(ShoeImageError):
    """Vision model call failed or timed out."""


class ProcessingError(ShoeImageError):
    """Normalization or cache write failed for an approved image."""


class SourceError(ShoeImageError):
    """An image source could not produce candidates."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source


class ImageNotFoundError(ShoeImageError):
    """Every source and candidate was exhausted without a usable image."""


class ConfigurationError(ShoeImageError):
    """Invalid or missing configuration."""
