"""
Exception classes for highlight clip extractor.

Every error carries a context dictionary (period, file, tool, cause) so the
caller can decide whether to skip one period and carry on or abort the run.
Each class also derives from the matching builtin, so code that catches
``ValueError`` or ``OSError`` keeps working.
"""

from typing import Any, Dict, Optional


class ClipExtractorError(Exception):
    """Base class for all highlight clip extractor errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        """
        Initialize the error.

        Args:
            message: Human-readable error description
            context: Extra information such as file_path, period or cause
        """
        self.message = message
        self.context = dict(context or {})
        super().__init__(self.format_error())

    def format_error(self) -> str:
        """Format the message together with its context."""
        return format_error_message(self.message, self.context)

    def with_context(self, **extra: Any) -> "ClipExtractorError":
        """Return a copy of this error with additional context."""
        context = dict(self.context)
        context.update(extra)
        return type(self)(self.message, context)


class FormatError(ClipExtractorError, ValueError):
    """Raised for a malformed device timecode string."""


class MetadataReadError(ClipExtractorError, OSError):
    """Raised when a chapter metadata source cannot be read."""


class ValidationError(ClipExtractorError, ValueError):
    """
    Raised for inputs the core refuses to process.

    Examples:
        - Negative before/after padding
        - Chapter without a period name
        - Chapter referencing a period that is not part of the run
    """


class EncodingError(ClipExtractorError, RuntimeError):
    """Raised when ffmpeg or ffprobe fails."""


class DependencyError(ClipExtractorError, RuntimeError):
    """Raised when ffmpeg or ffprobe cannot be found."""


_KNOWN_KEYS = [
    ("file_path", "File"),
    ("period", "Period"),
    ("dependency", "Tool"),
    ("operation", "Operation"),
    ("cause", "Cause"),
]


def format_error_message(message: str, context: Dict[str, Any]) -> str:
    """
    Format an error message with contextual information.

    Args:
        message: The main error message
        context: Dictionary of contextual information

    Returns:
        Multi-line string starting with ``Error: <message>``

    Example:
        >>> format_error_message("No timecode found", {"period": "1st Period"})
        'Error: No timecode found\\n  Period: 1st Period'
    """
    lines = [f"Error: {message}"]

    for key, label in _KNOWN_KEYS:
        if key in context:
            lines.append(f"  {label}: {context[key]}")

    known = {key for key, _ in _KNOWN_KEYS}
    for key, value in context.items():
        if key not in known:
            lines.append(f"  {key.replace('_', ' ').title()}: {value}")

    return "\n".join(lines)
