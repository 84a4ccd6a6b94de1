"""Chapter marker parser for ffmpeg metadata text."""

import re
from pathlib import Path
from typing import List, Optional, Tuple

from .errors import MetadataReadError
from .models import Chapter


class ChapterParser:
    """
    Parser for ffmpeg metadata (``-f ffmetadata``) output.

    ``parse_text`` only uses ``START=<ms>`` lines; each one opens a chapter.
    Chapters are numbered in the order they appear in the text, even when the
    offsets are not ascending. ``parse_ffmetadata`` additionally honours the
    ``TIMEBASE=`` of each ``[CHAPTER]`` block and rescales to milliseconds.
    """

    START_PATTERN = re.compile(r'^START=(\d+)', re.ASCII)
    TIMEBASE_PATTERN = re.compile(r'^TIMEBASE=(\d+)/(\d+)', re.ASCII)
    CHAPTER_HEADER = "[CHAPTER]"

    # ffmpeg's implied timebase when a block has no TIMEBASE line
    DEFAULT_TIMEBASE = (1, 1000)

    def parse_text(self, text: str) -> List[Chapter]:
        """
        Parse chapter start offsets out of metadata text.

        Args:
            text: Metadata text with offsets in milliseconds

        Returns:
            List of Chapter objects numbered 1..N in encounter order
        """
        chapters = []

        for line in text.splitlines():
            match = self.START_PATTERN.match(line.strip())
            if match:
                chapters.append(Chapter(
                    number=len(chapters) + 1,
                    start_ms=int(match.group(1))
                ))

        return chapters

    def parse_ffmetadata(self, text: str) -> List[Chapter]:
        """
        Parse ffmetadata text whose chapters may use any timebase.

        A ``TIMEBASE=n/d`` line applies to its own ``[CHAPTER]`` block, before
        or after the ``START=`` line. Offsets are converted with
        ``START * n * 1000 // d``.

        Returns:
            List of Chapter objects numbered 1..N in encounter order
        """
        # (timebase, raw starts) per block; the first entry holds lines
        # before any [CHAPTER] header
        blocks: List[Tuple[Optional[Tuple[int, int]], List[int]]] = [(None, [])]

        for line in text.splitlines():
            line = line.strip()
            if line == self.CHAPTER_HEADER:
                blocks.append((None, []))
                continue

            timebase = self.TIMEBASE_PATTERN.match(line)
            if timebase:
                num, den = int(timebase.group(1)), int(timebase.group(2))
                if den == 0:
                    raise MetadataReadError(
                        "Invalid chapter timebase",
                        context={"timebase": line}
                    )
                blocks[-1] = ((num, den), blocks[-1][1])
                continue

            start = self.START_PATTERN.match(line)
            if start:
                blocks[-1][1].append(int(start.group(1)))

        chapters = []
        for timebase, starts in blocks:
            num, den = timebase or self.DEFAULT_TIMEBASE
            for value in starts:
                chapters.append(Chapter(
                    number=len(chapters) + 1,
                    start_ms=value * num * 1000 // den
                ))

        return chapters

    def parse_file(self, filepath: Path) -> List[Chapter]:
        """
        Parse a metadata file with millisecond offsets.

        Args:
            filepath: Path to metadata file

        Returns:
            List of Chapter objects

        Raises:
            MetadataReadError: If the file is missing or unreadable
        """
        return self.parse_text(self.read_file(filepath))

    def parse_ffmetadata_file(self, filepath: Path) -> List[Chapter]:
        """Parse an ffmetadata file, honouring chapter timebases."""
        return self.parse_ffmetadata(self.read_file(filepath))

    def read_file(self, filepath: Path) -> str:
        """
        Read a metadata file as text.

        Raises:
            MetadataReadError: If the file is missing or unreadable
        """
        filepath = Path(filepath)

        if not filepath.exists():
            raise MetadataReadError(
                "Metadata file not found",
                context={"file_path": str(filepath)}
            )

        if not filepath.is_file():
            raise MetadataReadError(
                "Metadata path is not a file",
                context={"file_path": str(filepath)}
            )

        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise MetadataReadError(
                "Failed to read metadata file",
                context={"file_path": str(filepath), "cause": str(e)}
            ) from e
