"""Tests for video processor."""

import json
import pytest
from pathlib import Path
import tempfile
import subprocess
from datetime import datetime
from unittest.mock import Mock, patch

from highlight_clip_extractor.errors import DependencyError, EncodingError
from highlight_clip_extractor.models import Chapter, ClipGroup, ClipMarker
from highlight_clip_extractor.processor import ENCODER_CONFIGS, VideoProcessor


def ok(stdout=""):
    return Mock(returncode=0, stdout=stdout, stderr="")


def failed(stderr="error"):
    return Mock(returncode=1, stdout="", stderr=stderr)


def value_after(args, flag, occurrence=0):
    """Return the argument following the n-th occurrence of flag."""
    positions = [i for i, a in enumerate(args) if a == flag]
    return args[positions[occurrence] + 1]


class TestVideoProcessor:
    """Test VideoProcessor setup and probing."""

    @pytest.fixture
    def mock_subprocess_run(self):
        """Mock subprocess.run for testing."""
        with patch('subprocess.run') as mock_run:
            # Default: ffmpeg exists
            mock_run.return_value = ok("ffmpeg version 6.1")
            yield mock_run

    @pytest.fixture
    def processor(self, mock_subprocess_run):
        """Create a VideoProcessor instance."""
        processor = VideoProcessor(verbose=False, dry_run=False)
        mock_subprocess_run.reset_mock()
        return processor

    def test_check_ffmpeg_success(self, mock_subprocess_run):
        """Test successful ffmpeg check."""
        VideoProcessor()

        args = mock_subprocess_run.call_args[0][0]
        assert args == ['ffmpeg', '-version']

    def test_check_ffmpeg_not_found(self):
        """Test ffmpeg not found error."""
        with patch('subprocess.run') as mock_run:
            mock_run.side_effect = FileNotFoundError()

            with pytest.raises(DependencyError) as exc_info:
                VideoProcessor()
            assert "ffmpeg not found" in str(exc_info.value)

    def test_check_ffmpeg_error(self):
        """Test ffmpeg command error."""
        with patch('subprocess.run') as mock_run:
            mock_run.side_effect = subprocess.CalledProcessError(1, 'ffmpeg')

            with pytest.raises(RuntimeError) as exc_info:
                VideoProcessor()
            assert "ffmpeg returned an error" in str(exc_info.value)

    def test_dry_run_skips_check(self, mock_subprocess_run):
        """Test dry run does not touch ffmpeg."""
        VideoProcessor(dry_run=True, gpu='nvenc')

        assert mock_subprocess_run.call_count == 0

    def test_gpu_encoder_available(self, mock_subprocess_run):
        """Test a working GPU encoder is selected."""
        processor = VideoProcessor(gpu='nvenc')

        assert processor.gpu_encoder == ENCODER_CONFIGS['nvenc']
        test_args = mock_subprocess_run.call_args[0][0]
        assert 'h264_nvenc' in test_args

    def test_gpu_encoder_unavailable(self, mock_subprocess_run):
        """Test a failing encoder test falls back to CPU."""
        mock_subprocess_run.side_effect = [ok("ffmpeg version 6.1"), failed()]

        processor = VideoProcessor(gpu='qsv')

        assert processor.gpu_encoder is None

    def test_unknown_gpu_encoder(self, mock_subprocess_run):
        """Test an unknown encoder name is ignored."""
        processor = VideoProcessor(gpu='voodoo')

        assert processor.gpu_encoder is None

    def test_gpu_auto_detection(self, mock_subprocess_run):
        """Test auto detection picks the first working platform encoder."""
        with patch('platform.system', return_value='Linux'):
            mock_subprocess_run.side_effect = [ok("ffmpeg version 6.1"), failed(), ok()]

            processor = VideoProcessor(gpu='auto')

        assert processor.gpu_encoder == ENCODER_CONFIGS['qsv']

    def test_read_metadata(self, processor, mock_subprocess_run):
        """Test metadata is dumped in ffmetadata format."""
        mock_subprocess_run.return_value = ok(";FFMETADATA1\nSTART=1000\n")

        text = processor.read_metadata(Path("p1.mp4"))

        assert "START=1000" in text
        args = mock_subprocess_run.call_args[0][0]
        assert args[0] == 'ffmpeg'
        assert value_after(args, '-f') == 'ffmetadata'
        assert value_after(args, '-i') == 'p1.mp4'

    def test_read_metadata_failure(self, processor, mock_subprocess_run):
        """Test a failing probe raises EncodingError with the file."""
        mock_subprocess_run.return_value = failed("p1.mp4: No such file or directory")

        with pytest.raises(EncodingError) as exc_info:
            processor.read_metadata(Path("p1.mp4"))

        assert exc_info.value.context["file_path"] == "p1.mp4"
        assert "No such file" in exc_info.value.context["cause"]

    def test_probe_tool_missing(self, processor, mock_subprocess_run):
        """Test a missing ffprobe raises DependencyError."""
        mock_subprocess_run.side_effect = FileNotFoundError()

        with pytest.raises(DependencyError):
            processor.get_duration(Path("p1.mp4"))

    def test_get_timecode(self, processor, mock_subprocess_run):
        """Test reading the data stream timecode."""
        mock_subprocess_run.return_value = ok("11:49:22:30\n")

        assert processor.get_timecode(Path("GX010001.MP4")) == "11:49:22:30"
        args = mock_subprocess_run.call_args[0][0]
        assert value_after(args, '-select_streams') == 'd:0'

    def test_get_timecode_missing(self, processor, mock_subprocess_run):
        """Test an empty probe result raises EncodingError."""
        mock_subprocess_run.return_value = ok("\n")

        with pytest.raises(EncodingError) as exc_info:
            processor.get_timecode(Path("p1.mp4"))
        assert "No timecode found" in str(exc_info.value)

    def test_timecode_from_video_stream(self, processor, mock_subprocess_run):
        """Test the video stream tag is tried first."""
        mock_subprocess_run.return_value = ok("19:05:10:12\n")

        assert processor.get_timecode_from_video(Path("p1.mp4")) == "19:05:10:12"
        assert mock_subprocess_run.call_count == 1
        args = mock_subprocess_run.call_args[0][0]
        assert value_after(args, '-select_streams') == 'v:0'

    def test_timecode_from_format_tags(self, processor, mock_subprocess_run):
        """Test fallback to format tags."""
        mock_subprocess_run.side_effect = [ok(""), ok("19:05:10:12\n")]

        assert processor.get_timecode_from_video(Path("p1.mp4")) == "19:05:10:12"
        args = mock_subprocess_run.call_args[0][0]
        assert 'format_tags=timecode' in args

    def test_timecode_from_data_stream(self, processor, mock_subprocess_run):
        """Test fallback to the data stream after failed probes."""
        mock_subprocess_run.side_effect = [failed(), ok(""), ok("08:00:00:00\n")]

        assert processor.get_timecode_from_video(Path("p1.mp4")) == "08:00:00:00"
        assert mock_subprocess_run.call_count == 3

    def test_timecode_not_found_anywhere(self, processor, mock_subprocess_run):
        """Test all sources empty raises EncodingError."""
        mock_subprocess_run.return_value = ok("")

        with pytest.raises(EncodingError):
            processor.get_timecode_from_video(Path("p1.mp4"))

    def test_get_duration(self, processor, mock_subprocess_run):
        """Test parsing the probed duration."""
        mock_subprocess_run.return_value = ok("1234.567\n")

        assert processor.get_duration(Path("p1.mp4")) == pytest.approx(1234.567)

    def test_get_duration_unparsable(self, processor, mock_subprocess_run):
        """Test an unparsable duration raises EncodingError."""
        mock_subprocess_run.return_value = ok("N/A\n")

        with pytest.raises(EncodingError):
            processor.get_duration(Path("p1.mp4"))

    def test_get_chapters(self, processor, mock_subprocess_run):
        """Test reading chapter markers of a clip."""
        mock_subprocess_run.return_value = ok(json.dumps({"chapters": [
            {"start_time": "8.000000", "tags": {"title": "Highlight 1 (Ch02)"}},
            {"start_time": "13.000000"},
        ]}))

        markers = processor.get_chapters(Path("clip.mp4"))

        assert markers == [ClipMarker(8000, "Highlight 1 (Ch02)"), ClipMarker(13000, "")]


class TestClipExtraction:
    """Test clip extraction commands."""

    @pytest.fixture
    def mock_subprocess_run(self):
        """Mock subprocess.run for testing."""
        with patch('subprocess.run') as mock_run:
            mock_run.return_value = ok("ffmpeg version 6.1")
            yield mock_run

    @pytest.fixture
    def processor(self, mock_subprocess_run):
        processor = VideoProcessor()
        mock_subprocess_run.reset_mock()
        return processor

    @pytest.fixture
    def group(self):
        """A merged group of two highlights."""
        chapters = tuple(
            Chapter(number=n, start_ms=ms, clock_time=datetime(2024, 1, 1, 19, 1, n),
                    global_order=n, period="1st Period")
            for n, ms in ((2, 70000), (3, 75000))
        )
        return ClipGroup(chapters=chapters, start_time=62.0, end_time=77.0,
                         duration=15.0, period="1st Period")

    def test_extract_clip_two_pass_seek(self, processor, mock_subprocess_run):
        """Test rough input seek followed by an accurate output seek."""
        processor.extract_clip(Path("in.mp4"), Path("out.mp4"), 100.0, 10.0)

        args = mock_subprocess_run.call_args[0][0]
        assert args[0] == 'ffmpeg'
        assert value_after(args, '-ss', 0) == '40.000'
        assert value_after(args, '-ss', 1) == '60.000'
        assert value_after(args, '-t') == '10.000'
        assert value_after(args, '-c:v') == 'libx264'
        assert 'out.mp4' in args

    def test_extract_clip_near_start(self, processor, mock_subprocess_run):
        """Test the rough seek never goes below zero."""
        processor.extract_clip(Path("in.mp4"), Path("out.mp4"), 2.0, 10.0)

        args = mock_subprocess_run.call_args[0][0]
        assert value_after(args, '-ss', 0) == '0.000'
        assert value_after(args, '-ss', 1) == '2.000'

    def test_extract_clip_embeds_markers(self, processor, mock_subprocess_run):
        """Test markers are written to a temporary metadata file."""
        seen = {}

        def run(cmd, **kwargs):
            meta = Path(value_after(cmd, '-i', 1))
            seen['path'] = meta
            seen['content'] = meta.read_text(encoding='utf-8')
            return ok()

        mock_subprocess_run.side_effect = run

        processor.extract_clip(Path("in.mp4"), Path("out.mp4"), 62.0, 15.0,
                               [ClipMarker(8000, "Highlight 1 (Ch02)"),
                                ClipMarker(13000, "Highlight 2 (Ch03)")])

        args = mock_subprocess_run.call_args[0][0]
        assert value_after(args, '-map_chapters') == '1'
        assert "START=13000\nEND=15000" in seen['content']
        assert not seen['path'].exists()

    def test_extract_clip_without_markers(self, processor, mock_subprocess_run):
        """Test no metadata input without markers."""
        processor.extract_clip(Path("in.mp4"), Path("out.mp4"), 62.0, 15.0)

        args = mock_subprocess_run.call_args[0][0]
        assert args.count('-i') == 1
        assert '-map_chapters' not in args

    def test_extract_clip_stream_copy(self, mock_subprocess_run):
        """Test stream copy cuts without re-encoding."""
        processor = VideoProcessor(stream_copy=True)

        processor.extract_clip(Path("in.mp4"), Path("out.mov"), 100.0, 10.0)

        args = mock_subprocess_run.call_args[0][0]
        assert value_after(args, '-c') == 'copy'
        assert value_after(args, '-ss') == '100.000'
        assert '-c:v' not in args

    def test_gpu_failure_falls_back_to_cpu(self, processor, mock_subprocess_run):
        """Test a failing GPU encode is retried with libx264."""
        processor.gpu_encoder = ENCODER_CONFIGS['nvenc']
        mock_subprocess_run.side_effect = [failed("No NVENC capable devices found"), ok()]

        processor.extract_clip(Path("in.mp4"), Path("out.mp4"), 100.0, 10.0)

        calls = mock_subprocess_run.call_args_list
        assert len(calls) == 2
        assert value_after(calls[0][0][0], '-c:v') == 'h264_nvenc'
        assert value_after(calls[1][0][0], '-c:v') == 'libx264'

    def test_cpu_failure_raises(self, processor, mock_subprocess_run):
        """Test a failing CPU encode raises EncodingError."""
        mock_subprocess_run.return_value = failed("Invalid data found")

        with pytest.raises(EncodingError) as exc_info:
            processor.extract_clip(Path("in.mp4"), Path("out.mp4"), 100.0, 10.0)
        assert exc_info.value.context["cause"] == "Invalid data found"

    def test_extract_group(self, processor, mock_subprocess_run, group):
        """Test a group is extracted under its generated name."""
        with tempfile.TemporaryDirectory() as temp_dir:
            output = processor.extract_group(group, Path("p1.mp4"), Path(temp_dir))

        assert output.name == "002_19-01-02-000_1st_Period_Ch02-03.mp4"
        args = mock_subprocess_run.call_args[0][0]
        assert value_after(args, '-t') == '15.000'

    def test_extract_group_stream_copy_uses_mov(self, mock_subprocess_run, group):
        """Test stream copy clips use the .mov container."""
        processor = VideoProcessor(stream_copy=True)

        output = processor.extract_group(group, Path("p1.mp4"), Path("clips"))

        assert output.suffix == '.mov'

    def test_dry_run_mode(self, mock_subprocess_run):
        """Test dry run mode doesn't execute commands."""
        processor = VideoProcessor(dry_run=True)

        processor.extract_clip(Path("in.mp4"), Path("out.mp4"), 100.0, 10.0,
                               [ClipMarker(8000, "Ch01")])

        assert mock_subprocess_run.call_count == 0


class TestConcatClips:
    """Test combining clips."""

    @pytest.fixture
    def mock_subprocess_run(self):
        with patch('subprocess.run') as mock_run:
            mock_run.return_value = ok("ffmpeg version 6.1")
            yield mock_run

    @pytest.fixture
    def processor(self, mock_subprocess_run):
        processor = VideoProcessor()
        mock_subprocess_run.reset_mock()
        return processor

    def test_concat_empty_list(self, processor):
        """Test combining with an empty clip list."""
        with pytest.raises(ValueError) as exc_info:
            processor.concat_clips([], Path("combined.mp4"))
        assert "No clip files" in str(exc_info.value)

    def test_concat_keeps_chapters(self, processor, mock_subprocess_run):
        """Test chapters of each clip are shifted into the combined file."""
        seen = {}

        def run(cmd, **kwargs):
            if 'format=duration' in cmd:
                return ok("10.0\n")
            if '-show_chapters' in cmd:
                if cmd[-1].endswith("a.mp4"):
                    return ok(json.dumps({"chapters": [{"start_time": "8.0", "tags": {"title": "Ch01"}}]}))
                return ok(json.dumps({"chapters": []}))
            seen['cmd'] = cmd
            seen['list'] = Path(value_after(cmd, '-i', 0)).read_text(encoding='utf-8')
            seen['meta'] = Path(value_after(cmd, '-i', 1)).read_text(encoding='utf-8')
            return ok()

        mock_subprocess_run.side_effect = run

        with tempfile.TemporaryDirectory() as temp_dir:
            temp_path = Path(temp_dir)
            clips = [temp_path / "a.mp4", temp_path / "b.mp4"]
            for clip in clips:
                clip.touch()
            output_file = temp_path / "combined.mp4"

            result = processor.concat_clips(clips, output_file)

            assert result == output_file
            assert not (temp_path / 'concat_list.txt').exists()
            assert not (temp_path / 'concat_chapters.txt').exists()

        args = seen['cmd']
        assert value_after(args, '-f') == 'concat'
        assert value_after(args, '-c') == 'copy'
        assert seen['list'].count("file '") == 2
        assert "title=Combined Clips" in seen['meta']
        assert "START=8000\nEND=10000\ntitle=Ch01" in seen['meta']
        assert "START=10000\nEND=20000\ntitle=b" in seen['meta']

    def test_concat_without_durations(self, processor, mock_subprocess_run):
        """Test clips are joined without chapters if a duration is unknown."""
        def run(cmd, **kwargs):
            if 'format=duration' in cmd:
                return failed("Invalid data")
            return ok()

        mock_subprocess_run.side_effect = run

        with tempfile.TemporaryDirectory() as temp_dir:
            clip = Path(temp_dir) / "a.mp4"
            clip.touch()
            processor.concat_clips([clip], Path(temp_dir) / "combined.mp4")

        args = mock_subprocess_run.call_args[0][0]
        assert args.count('-i') == 1
        assert '-map_chapters' not in args

    def test_concat_reencode(self, processor, mock_subprocess_run):
        """Test re-encoding uses the given CRF."""
        def run(cmd, **kwargs):
            if 'format=duration' in cmd:
                return ok("5.0\n")
            if '-show_chapters' in cmd:
                return ok("{}")
            return ok()

        mock_subprocess_run.side_effect = run

        with tempfile.TemporaryDirectory() as temp_dir:
            clip = Path(temp_dir) / "a.mp4"
            clip.touch()
            processor.concat_clips([clip], Path(temp_dir) / "combined.mp4",
                                   reencode=True, crf="20")

        args = mock_subprocess_run.call_args[0][0]
        assert value_after(args, '-c:v') == 'libx264'
        assert value_after(args, '-crf') == '20'

    def test_concat_dry_run(self, mock_subprocess_run):
        """Test a dry run writes nothing and runs nothing."""
        processor = VideoProcessor(dry_run=True)

        processor.concat_clips([Path("missing/a.mp4")], Path("missing/combined.mp4"))

        assert mock_subprocess_run.call_count == 0
