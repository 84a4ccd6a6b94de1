"""Analysis of recorded periods into one chronological chapter list."""

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import List, Optional

from .errors import ClipExtractorError, MetadataReadError
from .models import Chapter, Period
from .naming import format_video_time
from .parser import ChapterParser
from .processor import VideoProcessor
from .timeline import PeriodChapters, map_chapters_to_clock_time, merge_and_sort_chapters
from .utils import format_clock

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    """All periods of a recording and their globally ordered chapters."""
    periods: List[Period] = field(default_factory=list)
    chapters: List[Chapter] = field(default_factory=list)

    def video_file_for(self, period_name: str) -> Optional[Path]:
        for period in self.periods:
            if period.name == period_name:
                return period.video_file
        return None

    def to_dict(self) -> dict:
        return {
            "periods": [
                {
                    "name": p.name,
                    "video_file": str(p.video_file),
                    "metadata_file": str(p.metadata_file) if p.metadata_file else None,
                    "timecode_source": str(p.timecode_source) if p.timecode_source else None,
                }
                for p in self.periods
            ],
            "chapters": [
                {
                    "number": ch.number,
                    "start_ms": ch.start_ms,
                    "video_time": format_video_time(ch.video_time),
                    "clock_time": format_clock(ch.clock_time) if ch.clock_time else None,
                    "clock_datetime": (ch.clock_time.isoformat(timespec="milliseconds")
                                       if ch.clock_time else None),
                    "global_order": ch.global_order,
                    "period": ch.period,
                }
                for ch in self.chapters
            ],
        }

    def save_json(self, path: Path) -> Path:
        """Save the analysis to a JSON file, creating the directory if needed."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2)
        return path

    @classmethod
    def load_json(cls, path: Path, day: Optional[date] = None) -> "AnalysisResult":
        """
        Load an analysis saved with save_json.

        Clock times come from ``clock_datetime``. Files that only carry the
        ``HH:MM:SS.mmm`` clock time are anchored to ``day`` (default: today)
        and roll over to the next day whenever the time goes backwards, so
        a recording that crosses midnight keeps its order.

        Raises:
            MetadataReadError: If the file cannot be read or parsed
        """
        path = Path(path)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise MetadataReadError(
                "Failed to load analysis",
                context={"file_path": str(path), "cause": str(e)}
            ) from e

        day = day or date.today()
        periods = [
            Period(
                name=p["name"],
                video_file=Path(p["video_file"]),
                metadata_file=p.get("metadata_file"),
                timecode_source=p.get("timecode_source"),
            )
            for p in data.get("periods", [])
        ]

        chapters = []
        previous = None
        for c in data.get("chapters", []):
            clock_time = None
            if c.get("clock_datetime"):
                clock_time = datetime.fromisoformat(c["clock_datetime"])
            elif c.get("clock_time"):
                parsed = datetime.strptime(c["clock_time"], "%H:%M:%S.%f")
                clock_time = datetime.combine(day, parsed.time())
                if previous is not None and clock_time < previous:
                    day += timedelta(days=1)
                    clock_time += timedelta(days=1)
            if clock_time is not None:
                previous = clock_time
            chapters.append(Chapter(
                number=c["number"],
                start_ms=c["start_ms"],
                clock_time=clock_time,
                global_order=c.get("global_order", 0),
                period=c.get("period", ""),
            ))

        return cls(periods=periods, chapters=chapters)


class Analyzer:
    """Reads markers and timecodes of each period and merges them."""

    def __init__(self, processor: VideoProcessor, parser: Optional[ChapterParser] = None,
                 day: Optional[date] = None):
        """
        Initialize Analyzer.

        Args:
            processor: Used to read embedded metadata and timecodes
            parser: Chapter marker parser (default: ChapterParser())
            day: Date the clock times are anchored to (default: today)
        """
        self.processor = processor
        self.parser = parser or ChapterParser()
        self.day = day

    def read_chapters(self, period: Period) -> List[Chapter]:
        """
        Read the chapter markers of one period.

        Offsets are rescaled from each chapter's TIMEBASE to milliseconds.
        """
        if period.reads_markers_from_video:
            return self.parser.parse_ffmetadata(self.processor.read_metadata(period.video_file))
        return self.parser.parse_ffmetadata_file(period.metadata_file)

    def read_timecode(self, period: Period) -> str:
        """
        Read the device timecode of one period.

        A separate timecode source is normally the original camera file,
        which keeps the timecode in its data stream.
        """
        if period.timecode_source and period.timecode_source != period.video_file:
            return self.processor.get_timecode(period.timecode_source)
        return self.processor.get_timecode_from_video(period.video_file)

    def analyze_periods(self, periods: List[Period]) -> AnalysisResult:
        """
        Analyze periods into one chronological chapter list.

        Periods without chapters are skipped.

        Args:
            periods: Periods in recording order

        Returns:
            AnalysisResult with globally ordered chapters

        Raises:
            ClipExtractorError: With the failing period in its context
        """
        collected = []

        for period in periods:
            try:
                chapters = self.read_chapters(period)
                if not chapters:
                    logger.info(f"{period.name}: no chapters found, skipping")
                    continue

                timecode = self.read_timecode(period)
                mapped = map_chapters_to_clock_time(chapters, timecode, day=self.day)
            except ClipExtractorError as e:
                raise e.with_context(period=period.name) from e

            logger.info(f"{period.name}: {len(mapped)} chapters, timecode {timecode}")
            collected.append(PeriodChapters(period.name, mapped))

        return AnalysisResult(periods=list(periods), chapters=merge_and_sort_chapters(collected))
