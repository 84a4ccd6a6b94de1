"""ffmpeg metadata writer for extracted and combined clips."""

from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .models import ClipMarker


class ChapterWriter:
    """Generates ``;FFMETADATA1`` documents carrying chapter markers."""

    HEADER = ";FFMETADATA1"

    def render(self,
               markers: Sequence[ClipMarker],
               duration_seconds: float,
               title: Optional[str] = None) -> str:
        """
        Render markers as an ffmpeg metadata document.

        Each chapter ends where the next one starts; the last one ends at
        the clip duration.

        Args:
            markers: Markers in playback order
            duration_seconds: Total clip duration
            title: Optional global title tag

        Returns:
            Metadata text for ``-i meta.txt -map_chapters 1``
        """
        lines = [self.HEADER]
        if title:
            lines.append(f"title={title}")
        lines.append("")

        duration_ms = int(duration_seconds * 1000)
        for i, marker in enumerate(markers):
            if i + 1 < len(markers):
                end_ms = markers[i + 1].offset_ms
            else:
                end_ms = duration_ms

            lines.extend([
                "[CHAPTER]",
                "TIMEBASE=1/1000",
                f"START={marker.offset_ms}",
                f"END={end_ms}",
            ])
            if marker.title:
                lines.append(f"title={marker.title}")
            lines.append("")

        return "\n".join(lines)

    def write(self,
              markers: Sequence[ClipMarker],
              duration_seconds: float,
              output_path: Path,
              title: Optional[str] = None) -> Path:
        """
        Write markers to a metadata file.

        Args:
            markers: Markers to write
            duration_seconds: Total clip duration
            output_path: Path to output file
            title: Optional global title tag

        Returns:
            The output path
        """
        output_path = Path(output_path)
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(self.render(markers, duration_seconds, title))
        return output_path

    def combine(self,
                clips: Sequence[Tuple[float, Sequence[ClipMarker], str]]) -> List[ClipMarker]:
        """
        Merge the markers of several clips played back to back.

        Args:
            clips: ``(duration_seconds, markers, fallback_title)`` per clip.
                A clip without markers gets one at its start named
                ``fallback_title`` so its boundary stays visible.

        Returns:
            Markers shifted by the duration of all previous clips
        """
        combined = []
        offset = 0.0

        for duration, markers, fallback_title in clips:
            offset_ms = int(offset * 1000)
            if markers:
                for marker in markers:
                    combined.append(ClipMarker(
                        offset_ms=marker.offset_ms + offset_ms,
                        title=marker.title
                    ))
            else:
                combined.append(ClipMarker(offset_ms=offset_ms, title=fallback_title))
            offset += duration

        return combined
