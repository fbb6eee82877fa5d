class SlugError(ValueError):
    """Raised when a title does not produce a usable slug."""


class SlugResolutionError(RuntimeError):
    """Raised when no free slug was found within the attempt limit."""
