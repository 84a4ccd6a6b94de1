"""Timecode parsing and time formatting utilities."""

import re
from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple

from .errors import FormatError, ValidationError


class TimecodeParser:
    """Parses device timecodes (HH:MM:SS:FF or HH:MM:SS;FF)."""

    TIMECODE_PATTERN = re.compile(r'(\d{2}):(\d{2}):(\d{2})[:;](\d{2})', re.ASCII)

    # Nominal camera frame rate used to turn the frame count into a fraction
    FRAME_RATE = 60.0

    @classmethod
    def _split(cls, timecode: str) -> Tuple[int, int, int, int]:
        match = cls.TIMECODE_PATTERN.search(timecode or "")
        if not match:
            raise FormatError(
                f"Invalid timecode format: {timecode!r}. "
                f"Expected format: HH:MM:SS:FF or HH:MM:SS;FF",
                context={"timecode": timecode}
            )
        hours, minutes, seconds, frames = map(int, match.groups())
        return hours, minutes, seconds, frames

    @classmethod
    def to_seconds(cls, timecode: str) -> float:
        """
        Convert a timecode to total seconds.

        Args:
            timecode: Timecode string, e.g. "11:49:22:30"

        Returns:
            Seconds since midnight, frames contributing ``frames / 60``

        Raises:
            FormatError: If the timecode does not match the expected pattern

        Examples:
            >>> TimecodeParser.to_seconds("00:01:00;30")
            60.5
        """
        hours, minutes, seconds, frames = cls._split(timecode)
        return hours * 3600 + minutes * 60 + seconds + frames / cls.FRAME_RATE

    @classmethod
    def to_time_of_day(cls, timecode: str, day: Optional[date] = None,
                       strict: bool = False) -> datetime:
        """
        Convert a timecode to a local time of day.

        The date part only anchors the value; offsets are computed from the
        time of day. Frame counts are not checked against the frame rate by
        default, so frame 75 carries 1.25s into the seconds field.

        Args:
            timecode: Timecode string
            day: Date to anchor to (default: today)
            strict: Reject frames >= 60 and minutes/seconds >= 60

        Returns:
            Naive datetime in local time

        Raises:
            FormatError: If the timecode does not match the expected pattern
            ValidationError: If strict and a field is out of range

        Examples:
            >>> TimecodeParser.to_time_of_day("11:49:22:30").time()
            datetime.time(11, 49, 22, 500000)
        """
        hours, minutes, seconds, frames = cls._split(timecode)

        if strict and (minutes >= 60 or seconds >= 60 or frames >= cls.FRAME_RATE):
            raise ValidationError(
                f"Timecode field out of range: {timecode!r}",
                context={"timecode": timecode, "frame_rate": cls.FRAME_RATE}
            )

        milliseconds = int(frames / cls.FRAME_RATE * 1000)
        midnight = datetime.combine(day or date.today(), time.min)
        return midnight + timedelta(
            hours=hours,
            minutes=minutes,
            seconds=seconds,
            milliseconds=milliseconds
        )


def format_seconds(seconds: float) -> str:
    """
    Format seconds for ffmpeg ``-ss``/``-t`` arguments.

    Examples:
        >>> format_seconds(62)
        '62.000'
    """
    return f"{seconds:.3f}"


def format_clock(dt: datetime) -> str:
    """Format a time of day as HH:MM:SS.mmm."""
    return f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d}.{dt.microsecond // 1000:03d}"
