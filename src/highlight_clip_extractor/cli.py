"""Command-line interface for highlight clip extractor."""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Set

from . import __version__, __description__
from .analyzer import Analyzer
from .config import Settings
from .errors import ClipExtractorError
from .models import Chapter, ClipGroup, Period
from .naming import chapter_label
from .overlap import detect_overlapping_chapters, overlap_summary, recommended_after_padding
from .processor import ENCODER_CONFIGS, VideoProcessor

logger = logging.getLogger(__name__)


def parse_period(value: str) -> Period:
    """
    Parse a ``NAME=VIDEO[,TIMECODE_SOURCE[,METADATA]]`` period argument.

    Raises:
        argparse.ArgumentTypeError: If the value is malformed
    """
    name, sep, files = value.partition("=")
    name = name.strip()
    parts = [p.strip() for p in files.split(",")] if sep else []
    if not name or not parts or not parts[0] or len(parts) > 3:
        raise argparse.ArgumentTypeError(
            f"Invalid period '{value}'. Expected NAME=VIDEO[,TIMECODE_SOURCE[,METADATA]]"
        )

    return Period(
        name=name,
        video_file=Path(parts[0]),
        timecode_source=Path(parts[1]) if len(parts) > 1 and parts[1] else None,
        metadata_file=Path(parts[2]) if len(parts) > 2 and parts[2] else None,
    )


def parse_selection(value: str) -> Set[int]:
    """
    Parse a selection of global orders such as ``1,3,5-7``.

    Raises:
        argparse.ArgumentTypeError: If the value is malformed
    """
    selected = set()
    try:
        for part in value.split(","):
            part = part.strip()
            if not part:
                continue
            if "-" in part:
                first, last = (int(x) for x in part.split("-", 1))
                if first > last:
                    raise ValueError(part)
                selected.update(range(first, last + 1))
            else:
                selected.add(int(part))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid selection '{value}'. Expected e.g. 1,3,5-7")
    return selected


class HighlightExtractor:
    """Main application class for highlight extraction."""

    def __init__(self, args: argparse.Namespace):
        """
        Initialize HighlightExtractor.

        Args:
            args: Parsed command-line arguments
        """
        self.args = args
        self.settings = Settings.load(Path(args.config) if args.config else None)
        self._apply_settings()

        self.processor = VideoProcessor(
            verbose=args.verbose,
            dry_run=args.dry_run,
            stream_copy=args.stream_copy,
            gpu=args.gpu
        )
        self.analyzer = Analyzer(self.processor)
        self.periods: List[Period] = list(args.period or [])
        self.output_dir = Path(args.output or self.settings.output_dir or "clips")

    def _apply_settings(self):
        """Fill options left unset on the command line from settings."""
        if self.args.before is None:
            self.args.before = self.settings.seconds_before
        if self.args.after is None:
            self.args.after = self.settings.seconds_after
        if not self.args.stream_copy:
            self.args.stream_copy = self.settings.stream_copy
        if self.args.gpu is None:
            self.args.gpu = self.settings.gpu

    def run(self) -> int:
        """
        Execute the main processing workflow.

        Returns:
            Exit code (0 for success, non-zero for failure)
        """
        try:
            if not self.periods:
                logger.error("No periods given. Use -p 'NAME=VIDEO' at least once.")
                return 1

            Settings(seconds_before=self.args.before,
                     seconds_after=self.args.after).validate()

            for period in self.periods:
                if not period.video_file.exists():
                    logger.error(f"Video file not found for {period.name}: {period.video_file}")
                    return 1

            if not self.args.quiet:
                logger.info(f"Analyzing {len(self.periods)} periods...")

            result = self.analyzer.analyze_periods(self.periods)

            if self.args.save_analysis:
                path = result.save_json(Path(self.args.save_analysis))
                if not self.args.quiet:
                    logger.info(f"Analysis saved to: {path}")

            if self.args.save_config:
                self.settings.seconds_before = self.args.before
                self.settings.seconds_after = self.args.after
                path = self.settings.save(Path(self.args.config) if self.args.config else None)
                logger.info(f"Settings saved to: {path}")

            if not result.chapters:
                logger.warning("No chapters found in any period.")
                return 1

            if self.args.list:
                for chapter in result.chapters:
                    print(chapter_label(chapter))
                return 0

            chapters = self._select_chapters(result.chapters)
            if not chapters:
                logger.warning("No chapters selected.")
                return 1

            groups = detect_overlapping_chapters(
                chapters,
                self.args.before,
                self.args.after,
                known_periods=[p.name for p in self.periods]
            )

            if not self.args.quiet:
                logger.info(f"{len(chapters)} highlights -> {len(groups)} clips")
                summary = overlap_summary(groups)
                if summary:
                    logger.info(summary)
                if self.args.verbose:
                    self._log_groups(groups)

            if not self.args.dry_run:
                self.output_dir.mkdir(parents=True, exist_ok=True)

            clip_files = self._extract_groups(groups, result.video_file_for)

            if self.args.combine and clip_files:
                if not self.args.quiet:
                    logger.info(f"Combining {len(clip_files)} clips...")
                combined = self.processor.concat_clips(
                    clip_files, Path(self.args.combine), reencode=self.args.reencode_combined
                )
                if not self.args.quiet:
                    logger.info(f"Combined output saved to: {combined}")

            if len(clip_files) < len(groups):
                logger.warning(f"Extracted {len(clip_files)} of {len(groups)} clips")
                return 1

            if not self.args.quiet:
                logger.info(f"Success! Extracted {len(clip_files)} clips to: {self.output_dir}")
            return 0

        except KeyboardInterrupt:
            logger.info("\nOperation cancelled by user.")
            return 130
        except ClipExtractorError as e:
            logger.error(str(e))
            if self.args.verbose:
                logger.exception("Detailed error information:")
            return 1

    def _select_chapters(self, chapters: List[Chapter]) -> List[Chapter]:
        if not self.args.select:
            return list(chapters)
        return [ch for ch in chapters if ch.global_order in self.args.select]

    def _log_groups(self, groups: List[ClipGroup]):
        for group in groups:
            logger.debug(f"  {group}")
            if group.is_merged:
                logger.debug(f"    {group.summary}")
                first, second = group.chapters[0], group.chapters[1]
                after = recommended_after_padding(
                    first.video_seconds, second.video_seconds, self.args.after
                )
                logger.debug(f"    Ch{first.number:02d} alone would need --after {after:.1f}"
                             f" to reach Ch{second.number:02d}")

    def _extract_groups(self, groups: List[ClipGroup], video_file_for) -> List[Path]:
        """Extract groups one at a time; a failed clip does not stop the run."""
        clip_files = []

        for i, group in enumerate(groups, 1):
            first = group.primary_chapter
            if not self.args.quiet:
                if group.is_merged:
                    logger.info(f"Extracting {i}/{len(groups)}: {group.period} "
                                f"Ch{first.number}-{group.last_chapter.number} "
                                f"(merged, {group.duration:.1f}s)")
                else:
                    logger.info(f"Extracting {i}/{len(groups)}: {group.period} Ch{first.number}")

            video_file = video_file_for(group.period)
            if video_file is None:
                logger.error(f"No video file for period {group.period}")
                continue

            try:
                clip_files.append(
                    self.processor.extract_group(group, video_file, self.output_dir)
                )
            except ClipExtractorError as e:
                logger.error(str(e))

        return clip_files


def create_parser() -> argparse.ArgumentParser:
    """Create command line argument parser."""
    parser = argparse.ArgumentParser(
        prog='highlight-clip-extractor',
        description=__description__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s -p "1st Period=p1.mp4" -p "2nd Period=p2.mp4" -o clips
  %(prog)s -p "1st Period=p1.mov,GX010001.MP4" --list
  %(prog)s -p "1st Period=p1.mov,GX010001.MP4,p1_meta.txt" --before 10 --after 3
  %(prog)s -p "1st Period=p1.mp4" --select 1,4-6 --combine game.mp4
  %(prog)s -p "1st Period=p1.mp4" --stream-copy --dry-run

Period format:
  NAME=VIDEO[,TIMECODE_SOURCE[,METADATA]]
  TIMECODE_SOURCE is the original camera file when VIDEO was re-encoded.
  METADATA is an ffmetadata text file; by default markers are read from VIDEO.

Highlights whose padded windows overlap are merged into a single clip.
        """
    )

    parser.add_argument('-p', '--period',
                        action='append',
                        type=parse_period,
                        metavar='NAME=VIDEO[,TC[,META]]',
                        help='Period to analyze (repeat for each period, in order)')
    parser.add_argument('-o', '--output',
                        help='Output directory for clips (default: ./clips)')

    parser.add_argument('-b', '--before',
                        type=float,
                        help='Seconds to include before each highlight (default: 8)')
    parser.add_argument('-a', '--after',
                        type=float,
                        help='Seconds to include after each highlight (default: 2)')
    parser.add_argument('--select',
                        type=parse_selection,
                        help='Global chapter numbers to extract, e.g. 1,3,5-7')

    parser.add_argument('--list',
                        action='store_true',
                        help='List chapters in chronological order and exit')
    parser.add_argument('--save-analysis',
                        metavar='FILE',
                        help='Save analyzed chapters to a JSON file')

    parser.add_argument('--combine',
                        metavar='FILE',
                        help='Also concatenate the extracted clips into FILE')
    parser.add_argument('--reencode-combined',
                        action='store_true',
                        help='Re-encode the combined file instead of stream copy')

    output_group = parser.add_mutually_exclusive_group()
    output_group.add_argument('-q', '--quiet',
                              action='store_true',
                              help='Suppress progress messages')
    output_group.add_argument('-v', '--verbose',
                              action='store_true',
                              help='Show detailed output')

    parser.add_argument('--dry-run',
                        action='store_true',
                        help='Show what would be done without executing')
    parser.add_argument('--stream-copy',
                        action='store_true',
                        help='Cut without re-encoding (fast, MOV output for editing)')
    parser.add_argument('--gpu',
                        choices=['auto'] + sorted(ENCODER_CONFIGS),
                        help='Use GPU acceleration for encoding (auto-detect or specify)')

    parser.add_argument('--config',
                        metavar='FILE',
                        help='Settings file (default: ~/.config/highlight-clip-extractor/config.json)')
    parser.add_argument('--save-config',
                        action='store_true',
                        help='Store --before/--after as new defaults')

    parser.add_argument('--version',
                        action='version',
                        version=f'%(prog)s {__version__}')

    return parser


def setup_logging(quiet: bool, verbose: bool):
    """Configure logging based on verbosity settings."""
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        if verbose else '%(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(args.quiet, args.verbose)

    try:
        app = HighlightExtractor(args)
    except ClipExtractorError as e:
        logger.error(str(e))
        sys.exit(1)
    sys.exit(app.run())


if __name__ == "__main__":
    main()
