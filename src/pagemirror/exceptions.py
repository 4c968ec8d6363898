"""Custom exceptions for pagemirror."""


class MirrorError(Exception):
    """Base exception for all pagemirror errors."""


class ConfigError(MirrorError):
    """Raised when configuration or the seed URL is invalid."""


class SetupError(MirrorError):
    """Raised when the output directories cannot be created or written."""


class RendererUnavailableError(MirrorError):
    """Raised when the rendering engine cannot be started."""


class RenderError(MirrorError):
    """Raised when navigation to a single page fails.

    Page-level and recoverable: the crawler marks the page skipped and moves on.
    """
