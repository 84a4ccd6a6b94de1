"""Data models for highlight clip extractor."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional, Tuple


@dataclass
class Chapter:
    """
    A single highlight marker.

    ``number`` is the 1-based position within the owning period and
    ``global_order`` the 1-based rank across all periods once merged.
    """
    number: int
    start_ms: int
    clock_time: Optional[datetime] = None
    global_order: int = 0
    period: str = ""

    @property
    def video_time(self) -> timedelta:
        """Offset from the start of the period's video."""
        return timedelta(milliseconds=self.start_ms)

    @property
    def video_seconds(self) -> float:
        return self.start_ms / 1000.0

    def __repr__(self) -> str:
        clock = self.clock_time.strftime("%H:%M:%S.%f")[:-3] if self.clock_time else None
        return (f"Chapter(number={self.number}, start_ms={self.start_ms}, "
                f"clock_time={clock}, global_order={self.global_order}, "
                f"period={self.period!r})")


@dataclass
class Period:
    """
    One source recording (e.g. a game period).

    Attributes:
        name: Unique display name
        video_file: Media used for clip extraction
        metadata_file: Chapter metadata sidecar; None reads markers from the video
        timecode_source: File carrying the device timecode; None uses the video.
            Re-encoding can strip the timecode track, so this is often the
            original camera file.
    """
    name: str
    video_file: Path
    metadata_file: Optional[Path] = None
    timecode_source: Optional[Path] = None

    def __post_init__(self):
        self.video_file = Path(self.video_file)
        if self.metadata_file is not None:
            self.metadata_file = Path(self.metadata_file)
        if self.timecode_source is not None:
            self.timecode_source = Path(self.timecode_source)

    @property
    def reads_markers_from_video(self) -> bool:
        return self.metadata_file is None or self.metadata_file == self.video_file

    @property
    def timecode_file(self) -> Path:
        return self.timecode_source or self.video_file


@dataclass(frozen=True)
class ClipMarker:
    """Chapter marker embedded in an extracted clip."""
    offset_ms: int
    title: str


@dataclass(frozen=True)
class ClipGroup:
    """
    One or more chapters extracted as a single clip.

    Chapters whose padded windows overlap end up in the same group so the
    output does not repeat footage. All members come from one period and
    are ordered by video time.
    """
    chapters: Tuple[Chapter, ...]
    start_time: float
    end_time: float
    duration: float
    period: str
    summary: str = ""

    @property
    def primary_chapter(self) -> Chapter:
        """First chapter in the group, used for naming and ordering."""
        return self.chapters[0]

    @property
    def last_chapter(self) -> Chapter:
        return self.chapters[-1]

    @property
    def is_merged(self) -> bool:
        return len(self.chapters) > 1

    def clip_markers(self) -> List[ClipMarker]:
        """
        Build the chapter markers to embed in the extracted clip.

        Each marker sits at the member's offset from the clip start, so a
        merged clip gets one marker per highlight and a single clip one at 0.

        Returns:
            List of ClipMarker in member order
        """
        markers = []
        for i, chapter in enumerate(self.chapters, 1):
            offset = max(0.0, chapter.video_seconds - self.start_time)
            if self.is_merged:
                title = f"Highlight {i} (Ch{chapter.number:02d})"
            else:
                title = f"Ch{chapter.number:02d}"
            markers.append(ClipMarker(offset_ms=int(offset * 1000), title=title))
        return markers

    def __repr__(self) -> str:
        numbers = ",".join(str(c.number) for c in self.chapters)
        return (f"ClipGroup(period={self.period!r}, chapters=[{numbers}], "
                f"start={self.start_time:.3f}, end={self.end_time:.3f}, "
                f"duration={self.duration:.3f})")
