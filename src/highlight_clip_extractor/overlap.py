"""
Overlap detection between padded highlight windows.

Each chapter is extracted as ``[video_time - before, video_time + after]``
(start clamped at 0). When the windows of neighbouring chapters in the same
period would overlap they are merged into one ClipGroup, so the footage is
not repeated across clips. Periods are separate media files and are never
merged with each other.
"""

from typing import Dict, Iterable, List, Optional, Sequence

from .errors import ValidationError
from .models import Chapter, ClipGroup


def detect_overlapping_chapters(chapters: Iterable[Chapter],
                                before_padding: float,
                                after_padding: float,
                                known_periods: Optional[Iterable[str]] = None) -> List[ClipGroup]:
    """
    Group chapters whose padded windows overlap.

    Args:
        chapters: Chapters with ``period`` and ``global_order`` set
        before_padding: Seconds to include before each marker
        after_padding: Seconds to include after each marker
        known_periods: Period names allowed in this run (optional)

    Returns:
        ClipGroups ordered by their primary chapter's global order

    Raises:
        ValidationError: For negative paddings, a chapter without a period,
            or a chapter whose period is not in ``known_periods``
    """
    if before_padding < 0 or after_padding < 0:
        raise ValidationError(
            "Padding must not be negative",
            context={"before_padding": before_padding, "after_padding": after_padding}
        )

    allowed = set(known_periods) if known_periods is not None else None

    by_period: Dict[str, List[Chapter]] = {}
    for ch in chapters:
        if not ch.period:
            raise ValidationError(
                "Chapter has no period",
                context={"chapter": ch.number, "global_order": ch.global_order}
            )
        if allowed is not None and ch.period not in allowed:
            raise ValidationError(
                "Chapter references an unknown period",
                context={"period": ch.period, "chapter": ch.number}
            )
        by_period.setdefault(ch.period, []).append(ch)

    groups: List[ClipGroup] = []
    for period, period_chapters in by_period.items():
        ordered = sorted(period_chapters, key=lambda ch: ch.start_ms)
        groups.extend(build_overlap_groups(ordered, before_padding, after_padding, period))

    groups.sort(key=lambda g: g.primary_chapter.global_order)
    return groups


def build_overlap_groups(sorted_chapters: Sequence[Chapter],
                         before_padding: float,
                         after_padding: float,
                         period: str) -> List[ClipGroup]:
    """
    Sweep one period's chapters (sorted by video time) into groups.

    A chapter joins the current group when its own padded start falls
    strictly before the group's end; an exact tie starts a new group. The
    group start is fixed by its first chapter, the end follows the latest
    member.
    """
    groups: List[ClipGroup] = []
    if not sorted_chapters:
        return groups

    first = sorted_chapters[0]
    members = [first]
    start = max(0.0, first.video_seconds - before_padding)
    end = first.video_seconds + after_padding

    for ch in sorted_chapters[1:]:
        ch_start = max(0.0, ch.video_seconds - before_padding)
        if ch_start < end:
            members.append(ch)
            end = ch.video_seconds + after_padding
        else:
            groups.append(_finalize_group(members, start, end, period))
            members = [ch]
            start = ch_start
            end = ch.video_seconds + after_padding

    groups.append(_finalize_group(members, start, end, period))
    return groups


def _finalize_group(members: List[Chapter], start: float, end: float,
                    period: str) -> ClipGroup:
    duration = end - start
    summary = ""
    if len(members) > 1:
        gap = members[-1].video_seconds - members[0].video_seconds
        summary = (f"Merged {len(members)} highlights ({gap:.1f}s apart) "
                   f"into {duration:.1f}s clip")
    return ClipGroup(
        chapters=tuple(members),
        start_time=start,
        end_time=end,
        duration=duration,
        period=period,
        summary=summary
    )


def overlap_summary(groups: Iterable[ClipGroup]) -> str:
    """
    Describe how many highlights were merged.

    Returns:
        Empty string when nothing was merged
    """
    merged = [g for g in groups if g.is_merged]
    if not merged:
        return ""

    total = sum(len(g.chapters) for g in merged)
    return (f"{len(merged)} overlapping highlight groups detected "
            f"({total} highlights merged into {len(merged)} clips)")


def recommended_after_padding(first_seconds: float, second_seconds: float,
                              after_padding: float) -> float:
    """After-padding that would make the first clip cover the second highlight."""
    return second_seconds - first_seconds + after_padding
