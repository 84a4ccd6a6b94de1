"""Clock-time mapping and cross-period chapter merging."""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Iterable, List, Mapping, Optional, Union

from .errors import ValidationError
from .models import Chapter
from .utils import TimecodeParser


@dataclass
class PeriodChapters:
    """Chapters owned by one period."""
    period_name: str
    chapters: List[Chapter] = field(default_factory=list)


def map_to_clock_time(chapters: Iterable[Chapter], anchor: datetime) -> List[Chapter]:
    """
    Stamp chapters with the clock time they correspond to.

    Args:
        chapters: Chapters of one period
        anchor: Clock time of the period's first frame

    Returns:
        New Chapter objects with ``clock_time = anchor + video_time``
    """
    return [replace(ch, clock_time=anchor + ch.video_time) for ch in chapters]


def map_chapters_to_clock_time(chapters: Iterable[Chapter], timecode: str,
                               day: Optional[date] = None) -> List[Chapter]:
    """
    Map chapters to clock time using a device timecode.

    Raises:
        FormatError: If the timecode is malformed
    """
    anchor = TimecodeParser.to_time_of_day(timecode, day=day)
    return map_to_clock_time(chapters, anchor)


def merge_and_sort_chapters(
        period_chapters: Union[Iterable[PeriodChapters], Mapping[str, List[Chapter]]]
) -> List[Chapter]:
    """
    Merge chapters from several periods into one chronological list.

    The sort is stable, so chapters with equal clock times keep the order in
    which they were supplied. ``global_order`` is assigned 1..N afterwards.

    Args:
        period_chapters: PeriodChapters collections, or a mapping of
            period name to chapters

    Returns:
        New Chapter objects with ``period`` and ``global_order`` set

    Raises:
        ValidationError: If a period name is empty or a chapter has no clock time
    """
    if isinstance(period_chapters, Mapping):
        period_chapters = [PeriodChapters(name, list(chs))
                           for name, chs in period_chapters.items()]

    merged = []
    for entry in period_chapters:
        if not entry.period_name:
            raise ValidationError("Period name must not be empty")
        for ch in entry.chapters:
            if ch.clock_time is None:
                raise ValidationError(
                    "Chapter has no clock time; map it before merging",
                    context={"period": entry.period_name, "chapter": ch.number}
                )
            merged.append(replace(ch, period=entry.period_name))

    merged.sort(key=lambda ch: ch.clock_time)

    return [replace(ch, global_order=i) for i, ch in enumerate(merged, 1)]
