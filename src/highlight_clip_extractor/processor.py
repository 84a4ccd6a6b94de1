"""Video probing and clip extraction using ffmpeg."""

import json
import logging
import os
import platform
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .chapter_writer import ChapterWriter
from .errors import DependencyError, EncodingError
from .models import ClipGroup, ClipMarker
from .naming import group_filename
from .utils import format_seconds

logger = logging.getLogger(__name__)


ENCODER_CONFIGS = {
    'videotoolbox': {
        'name': 'VideoToolbox (macOS)',
        'encoder': 'h264_videotoolbox',
        'params': ['-profile:v', 'high', '-b:v', '12M']
    },
    'nvenc': {
        'name': 'NVIDIA NVENC',
        'encoder': 'h264_nvenc',
        'params': ['-preset', 'p4', '-profile:v', 'high', '-rc', 'constqp', '-qp', '18']
    },
    'qsv': {
        'name': 'Intel Quick Sync',
        'encoder': 'h264_qsv',
        'params': ['-preset', 'medium', '-profile:v', 'high']
    },
    'amf': {
        'name': 'AMD AMF',
        'encoder': 'h264_amf',
        'params': ['-quality', 'balanced', '-profile:v', 'high']
    }
}

# Detection order per platform for --gpu auto
PLATFORM_ENCODERS = {
    'Darwin': ['videotoolbox'],
    'Windows': ['nvenc', 'amf', 'qsv'],
    'Linux': ['nvenc', 'qsv'],
}

AUDIO_PARAMS = ['-c:a', 'aac', '-ar', '48000', '-b:a', '192k']

# Camera footage can have long GOPs; seek this far before the clip on input
# and do the rest accurately on output.
ROUGH_SEEK_MARGIN = 60.0


class VideoProcessor:
    """Handles probing and clip extraction using ffmpeg/ffprobe."""

    def __init__(self, verbose: bool = False, dry_run: bool = False,
                 stream_copy: bool = False, gpu: Optional[str] = None):
        """
        Initialize VideoProcessor.

        Args:
            verbose: Show detailed ffmpeg output
            dry_run: Log commands instead of executing them
            stream_copy: Cut without re-encoding (fast, keyframe accurate only)
            gpu: GPU encoder ('auto', 'videotoolbox', 'nvenc', 'qsv', 'amf')
        """
        self.verbose = verbose
        self.dry_run = dry_run
        self.stream_copy = stream_copy
        self.gpu = gpu
        self.chapter_writer = ChapterWriter()
        self._check_ffmpeg()

        self.gpu_encoder = None
        if gpu:
            self._configure_gpu_encoder()

    def _check_ffmpeg(self):
        """Check if ffmpeg is available."""
        if self.dry_run:
            return

        try:
            result = subprocess.run(
                ['ffmpeg', '-version'],
                capture_output=True,
                check=True,
                text=True
            )
            if self.verbose:
                logger.debug(f"Using {result.stdout.splitlines()[0] if result.stdout else 'ffmpeg'}")
        except subprocess.CalledProcessError as e:
            raise DependencyError(
                "ffmpeg returned an error. Please check your installation.",
                context={"dependency": "ffmpeg", "cause": e.stderr}
            )
        except FileNotFoundError:
            raise DependencyError(
                "ffmpeg not found. Please install ffmpeg and ensure it's in your PATH.",
                context={"dependency": "ffmpeg"}
            )

    def _configure_gpu_encoder(self):
        """Configure GPU encoder based on platform and availability."""
        if self.gpu == 'auto':
            self.gpu_encoder = self._detect_gpu_encoder()
            if self.gpu_encoder:
                logger.info(f"Auto-detected GPU encoder: {self.gpu_encoder['name']}")
            else:
                logger.warning("No GPU encoder detected, falling back to CPU encoding")
        elif self.gpu in ENCODER_CONFIGS:
            encoder_config = ENCODER_CONFIGS[self.gpu]
            if self._test_encoder(encoder_config['encoder']):
                self.gpu_encoder = encoder_config
                logger.info(f"Using GPU encoder: {encoder_config['name']}")
            else:
                logger.warning(f"{encoder_config['name']} not available, falling back to CPU encoding")
        else:
            logger.warning(f"Unknown GPU encoder: {self.gpu}")

    def _detect_gpu_encoder(self) -> Optional[Dict[str, Any]]:
        """Return the first working encoder for this platform."""
        for key in PLATFORM_ENCODERS.get(platform.system(), PLATFORM_ENCODERS['Linux']):
            encoder = ENCODER_CONFIGS[key]
            if self._test_encoder(encoder['encoder']):
                return encoder
        return None

    def _test_encoder(self, encoder: str) -> bool:
        """Test if a specific encoder is available."""
        if self.dry_run:
            return True

        cmd = [
            'ffmpeg',
            '-f', 'lavfi',
            '-i', 'color=c=black:s=320x240:d=1',
            '-c:v', encoder,
            '-f', 'null',
            '-'
        ]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError:
            return False
        return result.returncode == 0

    # -- probing ---------------------------------------------------------

    def _probe(self, cmd: List[str], video_file: Path, operation: str) -> str:
        """Run a read-only ffmpeg/ffprobe command and return its stdout."""
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except FileNotFoundError:
            raise DependencyError(
                f"{cmd[0]} not found",
                context={"dependency": cmd[0], "operation": operation}
            )

        if result.returncode != 0:
            raise EncodingError(
                f"{cmd[0]} failed",
                context={
                    "file_path": str(video_file),
                    "dependency": cmd[0],
                    "operation": operation,
                    "cause": (result.stderr or "").strip() or "Unknown error"
                }
            )
        return result.stdout or ""

    def read_metadata(self, video_file: Path) -> str:
        """
        Dump a video's metadata (including chapters) in ffmetadata format.

        Args:
            video_file: Video to read

        Returns:
            Metadata text with one ``START=`` line per chapter

        Raises:
            EncodingError: If ffmpeg fails
        """
        return self._probe([
            'ffmpeg',
            '-v', 'error',
            '-i', str(video_file),
            '-f', 'ffmetadata',
            '-',
        ], video_file, "metadata extraction")

    def _stream_tag(self, video_file: Path, entries: str,
                    select: Optional[str] = None) -> str:
        cmd = ['ffprobe', '-v', 'error']
        if select:
            cmd.extend(['-select_streams', select])
        cmd.extend(['-show_entries', entries, '-of', 'csv=p=0', str(video_file)])
        return self._probe(cmd, video_file, "timecode probe").strip()

    def get_timecode(self, video_file: Path) -> str:
        """
        Read the timecode from the data stream of an original camera file.

        Raises:
            EncodingError: If ffprobe fails or the file carries no timecode
        """
        timecode = self._stream_tag(video_file, 'stream_tags=timecode', 'd:0')
        if not timecode:
            raise EncodingError(
                "No timecode found",
                context={"file_path": str(video_file), "dependency": "ffprobe"}
            )
        return timecode

    def get_timecode_from_video(self, video_file: Path) -> str:
        """
        Read the timecode from video stream tags, then format tags, then the
        data stream. Converted files usually keep it in one of the first two.
        """
        for entries, select in (('stream_tags=timecode', 'v:0'),
                                ('format_tags=timecode', None)):
            try:
                timecode = self._stream_tag(video_file, entries, select)
            except EncodingError as e:
                logger.debug(f"Timecode probe ({entries}) failed: {e.context.get('cause')}")
                continue
            if timecode:
                return timecode.splitlines()[0]

        return self.get_timecode(video_file)

    def get_duration(self, video_file: Path) -> float:
        """Return the duration of a video file in seconds."""
        output = self._probe([
            'ffprobe',
            '-v', 'error',
            '-show_entries', 'format=duration',
            '-of', 'csv=p=0',
            str(video_file)
        ], video_file, "duration probe")

        try:
            return float(output.strip())
        except ValueError:
            raise EncodingError(
                "Failed to parse duration",
                context={"file_path": str(video_file), "cause": output.strip()}
            )

    def get_chapters(self, video_file: Path) -> List[ClipMarker]:
        """Return the chapter markers stored in a video file."""
        output = self._probe([
            'ffprobe',
            '-v', 'error',
            '-show_chapters',
            '-print_format', 'json',
            str(video_file)
        ], video_file, "chapter probe")

        try:
            data = json.loads(output or "{}")
        except json.JSONDecodeError as e:
            raise EncodingError(
                "Failed to parse chapter list",
                context={"file_path": str(video_file), "cause": str(e)}
            )

        markers = []
        for chapter in data.get('chapters', []):
            start = float(chapter.get('start_time', 0))
            title = chapter.get('tags', {}).get('title', "")
            markers.append(ClipMarker(offset_ms=int(start * 1000), title=title))
        return markers

    # -- extraction ------------------------------------------------------

    def extract_clip(self,
                     input_file: Path,
                     output_file: Path,
                     start: float,
                     duration: float,
                     markers: Optional[Sequence[ClipMarker]] = None) -> Path:
        """
        Extract a clip and embed chapter markers.

        Args:
            input_file: Source video
            output_file: Clip to write
            start: Clip start in seconds from the start of the source
            duration: Clip length in seconds
            markers: Chapter markers relative to the clip start

        Returns:
            The output path

        Raises:
            EncodingError: If ffmpeg fails (after the CPU fallback)
        """
        markers = list(markers or [])
        meta_file = self._write_temp_metadata(markers, duration)

        try:
            if self.stream_copy:
                cmd = self._build_stream_copy_command(
                    input_file, output_file, start, duration, meta_file
                )
                self._run_command(cmd, f"Extracting {output_file.name} (stream copy)")
                return output_file

            if self.gpu_encoder:
                cmd = self._build_encode_command(
                    input_file, output_file, start, duration, meta_file, self.gpu_encoder
                )
                try:
                    self._run_command(cmd, f"Extracting {output_file.name} ({self.gpu_encoder['name']})")
                    return output_file
                except EncodingError as e:
                    logger.warning(f"{self.gpu_encoder['name']} failed, retrying on CPU")
                    logger.debug(e.context.get('cause', ''))

            cmd = self._build_encode_command(input_file, output_file, start, duration, meta_file)
            self._run_command(cmd, f"Extracting {output_file.name}")
            return output_file
        finally:
            if meta_file and meta_file.exists():
                meta_file.unlink()

    def extract_group(self, group: ClipGroup, input_file: Path, output_dir: Path) -> Path:
        """
        Extract one ClipGroup into ``output_dir``.

        Returns:
            Path of the written clip
        """
        extension = '.mov' if self.stream_copy else '.mp4'
        output_file = Path(output_dir) / group_filename(group, extension)
        return self.extract_clip(
            Path(input_file), output_file, group.start_time, group.duration,
            group.clip_markers()
        )

    def _write_temp_metadata(self, markers: Sequence[ClipMarker],
                             duration: float, title: Optional[str] = None) -> Optional[Path]:
        if not markers:
            return None
        fd, path = tempfile.mkstemp(suffix='.txt', prefix='clip_meta_')
        os.close(fd)
        return self.chapter_writer.write(markers, duration, Path(path), title)

    @staticmethod
    def _seek_points(start: float):
        rough = max(0.0, start - ROUGH_SEEK_MARGIN)
        return rough, start - rough

    def _build_encode_command(self, input_file: Path, output_file: Path,
                              start: float, duration: float,
                              meta_file: Optional[Path],
                              encoder: Optional[Dict[str, Any]] = None) -> List[str]:
        """Build a re-encoding command with two-pass seeking."""
        rough, fine = self._seek_points(start)

        cmd = ['ffmpeg', '-ss', format_seconds(rough), '-i', str(input_file)]
        if meta_file:
            cmd.extend(['-i', str(meta_file)])
        cmd.extend(['-ss', format_seconds(fine), '-t', format_seconds(duration)])
        cmd.extend(['-map', '0:v:0', '-map', '0:a:0?'])
        if meta_file:
            cmd.extend(['-map_metadata', '1', '-map_chapters', '1'])

        if encoder:
            cmd.extend(['-c:v', encoder['encoder']])
            cmd.extend(encoder['params'])
        else:
            cmd.extend([
                '-c:v', 'libx264',
                '-preset', 'medium',
                '-profile:v', 'high',
                '-crf', '18',
            ])
        cmd.extend(['-pix_fmt', 'yuv420p'])
        cmd.extend(AUDIO_PARAMS)
        cmd.extend(['-movflags', '+faststart', str(output_file), '-y'])

        if not self.verbose:
            cmd.extend(['-loglevel', 'error'])

        return cmd

    def _build_stream_copy_command(self, input_file: Path, output_file: Path,
                                   start: float, duration: float,
                                   meta_file: Optional[Path]) -> List[str]:
        """Build a stream copy command (no re-encoding)."""
        cmd = ['ffmpeg', '-ss', format_seconds(start), '-i', str(input_file)]
        if meta_file:
            cmd.extend(['-i', str(meta_file)])
        cmd.extend(['-t', format_seconds(duration), '-map', '0:v:0', '-map', '0:a:0?'])
        if meta_file:
            cmd.extend(['-map_metadata', '1', '-map_chapters', '1'])
        cmd.extend(['-c', 'copy', '-avoid_negative_ts', 'make_zero', str(output_file), '-y'])

        if not self.verbose:
            cmd.extend(['-loglevel', 'error'])

        return cmd

    def concat_clips(self,
                     clip_files: Sequence[Path],
                     output_file: Path,
                     reencode: bool = False,
                     crf: str = "23") -> Path:
        """
        Concatenate clips into one file, keeping their chapter markers.

        Chapters of each clip are shifted by the duration of the clips
        before it. If a duration cannot be probed the clips are joined
        without chapters.

        Args:
            clip_files: Clips in playback order
            output_file: Combined output path
            reencode: Re-encode instead of stream copy
            crf: x264 quality for re-encoding

        Returns:
            The output path

        Raises:
            ValueError: If no clips are given
            EncodingError: If ffmpeg fails
        """
        if not clip_files:
            raise ValueError("No clip files provided for concatenation")

        output_file = Path(output_file)
        markers, total_duration = ([], 0.0) if self.dry_run else self._collect_markers(clip_files)

        concat_file = output_file.parent / 'concat_list.txt'
        meta_file = None

        try:
            # Dry runs do not create the output directory
            if not self.dry_run:
                with open(concat_file, 'w', encoding='utf-8') as f:
                    for clip in clip_files:
                        escaped = str(Path(clip).absolute()).replace("\\", "/").replace("'", "'\\''")
                        f.write(f"file '{escaped}'\n")

            if markers:
                meta_file = output_file.parent / 'concat_chapters.txt'
                self.chapter_writer.write(markers, total_duration, meta_file, title="Combined Clips")

            cmd = [
                'ffmpeg',
                '-err_detect', 'ignore_err',
                '-f', 'concat',
                '-safe', '0',
                '-i', str(concat_file),
            ]
            if meta_file:
                cmd.extend(['-i', str(meta_file)])
            cmd.extend(['-map', '0:v:0', '-map', '0:a:0?'])
            if meta_file:
                cmd.extend(['-map_metadata', '1', '-map_chapters', '1'])

            if reencode:
                if self.gpu_encoder:
                    cmd.extend(['-c:v', self.gpu_encoder['encoder']])
                    cmd.extend(self.gpu_encoder['params'])
                else:
                    cmd.extend(['-c:v', 'libx264', '-preset', 'medium', '-crf', crf])
                cmd.extend(['-pix_fmt', 'yuv420p'])
                cmd.extend(AUDIO_PARAMS)
            else:
                cmd.extend(['-c', 'copy'])

            cmd.extend(['-movflags', '+faststart', str(output_file), '-y'])
            if not self.verbose:
                cmd.extend(['-loglevel', 'error'])

            self._run_command(cmd, f"Combining {len(clip_files)} clips")
        finally:
            for temp in (concat_file, meta_file):
                if temp and temp.exists():
                    temp.unlink()

        return output_file

    def _collect_markers(self, clip_files: Sequence[Path]) -> Tuple[List[ClipMarker], float]:
        clips = []
        for clip in clip_files:
            clip = Path(clip)
            try:
                duration = self.get_duration(clip)
            except EncodingError as e:
                logger.warning(f"Could not read duration of {clip.name}, combining without chapters")
                logger.debug(e.context.get('cause', ''))
                return [], 0.0
            try:
                markers = self.get_chapters(clip)
            except EncodingError:
                markers = []
            clips.append((duration, markers, clip.stem))
        return self.chapter_writer.combine(clips), sum(c[0] for c in clips)

    def _run_command(self, cmd: List[str], description: str = "") -> None:
        """
        Run a command, respecting dry_run mode.

        Args:
            cmd: Command and arguments
            description: Description of what the command does

        Raises:
            EncodingError: If the command fails
        """
        if self.dry_run:
            logger.info(f"[DRY RUN] {description}")
            logger.info(f"[DRY RUN] Command: {' '.join(cmd)}")
            return

        if description and self.verbose:
            logger.debug(description)
            logger.debug(f"Command: {' '.join(cmd)}")

        try:
            result = subprocess.run(cmd, capture_output=not self.verbose, text=True)
        except FileNotFoundError:
            raise DependencyError(
                f"{cmd[0]} not found",
                context={"dependency": cmd[0], "operation": description}
            )

        if result.returncode != 0:
            raise EncodingError(
                f"{cmd[0]} failed",
                context={
                    "dependency": cmd[0],
                    "operation": description,
                    "cause": (result.stderr or "").strip() or f"exit status {result.returncode}"
                }
            )
