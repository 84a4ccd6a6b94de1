"""Output file naming and display helpers."""

import re
from datetime import datetime, timedelta

from .models import Chapter, ClipGroup


INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*]')


def format_clock_time(dt: datetime) -> str:
    """
    Format a clock time for use in filenames.

    Examples:
        >>> format_clock_time(datetime(2024, 1, 1, 12, 15, 45, 871000))
        '12-15-45-871'
    """
    return f"{dt.hour:02d}-{dt.minute:02d}-{dt.second:02d}-{dt.microsecond // 1000:03d}"


def format_video_time(td: timedelta) -> str:
    """
    Format a video offset as MM:SS (minutes are not wrapped at 60).

    Examples:
        >>> format_video_time(timedelta(minutes=75, seconds=3))
        '75:03'
    """
    total = int(td.total_seconds())
    return f"{total // 60:02d}:{total % 60:02d}"


def sanitize_filename(name: str) -> str:
    """Replace spaces with underscores and drop characters invalid in filenames."""
    return INVALID_FILENAME_CHARS.sub("", name.replace(" ", "_"))


def clip_filename(chapter: Chapter, extension: str = ".mp4") -> str:
    """
    Build the filename for a single-chapter clip.

    The global order prefix keeps clips from all periods in chronological
    order when sorted by name.

    Examples:
        041_12-15-45-871_3rd_Period_Ch05.mp4
    """
    return (f"{chapter.global_order:03d}_{format_clock_time(chapter.clock_time)}_"
            f"{sanitize_filename(chapter.period)}_Ch{chapter.number:02d}{extension}")


def group_filename(group: ClipGroup, extension: str = ".mp4") -> str:
    """
    Build the filename for a clip group.

    Merged groups carry the chapter range, e.g.
    ``041_12-15-45-871_3rd_Period_Ch05-06.mp4``.
    """
    if not group.is_merged:
        return clip_filename(group.primary_chapter, extension)

    first = group.primary_chapter
    last = group.last_chapter
    return (f"{first.global_order:03d}_{format_clock_time(first.clock_time)}_"
            f"{sanitize_filename(first.period)}_Ch{first.number:02d}-{last.number:02d}{extension}")


def chapter_label(chapter: Chapter) -> str:
    """One-line description of a chapter for listings."""
    clock = chapter.clock_time.strftime("%H:%M:%S") if chapter.clock_time else "--:--:--"
    return (f"{chapter.global_order:03d}. [{chapter.period}] {clock} "
            f"Ch{chapter.number:02d} @ {format_video_time(chapter.video_time)}")
