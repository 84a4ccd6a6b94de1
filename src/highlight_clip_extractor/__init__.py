"""
Highlight Clip Extractor

A command-line tool that reads highlight markers embedded in multi-period
recordings, places them on the real clock using the camera timecode, merges
overlapping highlights and extracts them as clips with ffmpeg.
"""

# Version information
__version__ = "1.0.0"

# Package metadata
__title__ = "highlight-clip-extractor"
__description__ = "Extract highlight clips from chapter markers in multi-period recordings"
__license__ = "MIT"

# Import main components
from .errors import (
    ClipExtractorError,
    FormatError,
    MetadataReadError,
    ValidationError,
    EncodingError,
    DependencyError,
)
from .models import Chapter, Period, ClipGroup, ClipMarker
from .utils import TimecodeParser
from .parser import ChapterParser
from .timeline import (
    PeriodChapters,
    map_to_clock_time,
    map_chapters_to_clock_time,
    merge_and_sort_chapters,
)
from .overlap import detect_overlapping_chapters, overlap_summary
from .chapter_writer import ChapterWriter
from .processor import VideoProcessor
from .analyzer import Analyzer, AnalysisResult

# Public API
__all__ = [
    # Version info
    "__version__",
    "__title__",
    "__description__",
    "__license__",

    # Errors
    "ClipExtractorError",
    "FormatError",
    "MetadataReadError",
    "ValidationError",
    "EncodingError",
    "DependencyError",

    # Models
    "Chapter",
    "Period",
    "ClipGroup",
    "ClipMarker",

    # Core
    "TimecodeParser",
    "ChapterParser",
    "PeriodChapters",
    "map_to_clock_time",
    "map_chapters_to_clock_time",
    "merge_and_sort_chapters",
    "detect_overlapping_chapters",
    "overlap_summary",

    # Driver
    "ChapterWriter",
    "VideoProcessor",
    "Analyzer",
    "AnalysisResult",
]
