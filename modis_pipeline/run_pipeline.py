"""
Main Orchestration Script for the MODIS Tile Pipeline

This script drives the downloader across a day-of-year range:
1. Build one request per day and tile
2. Fetch it (plus the counterpart platform when enabled)
3. Record every outcome: resolved filename or failure
4. Report a final summary

Usage:
    # Default product/tile from config
    python -m modis_pipeline.run_pipeline

    # Custom product, year and day range
    python -m modis_pipeline.run_pipeline --product MOD09A1 --year 2003 --start 1 --end 8

    # Several tiles, with the Aqua counterpart
    python -m modis_pipeline.run_pipeline --tile h10v05 --tile h11v05 --counterpart

    # Show what would be fetched
    python -m modis_pipeline.run_pipeline --dry-run

    # Use the simulated archive for testing
    python -m modis_pipeline.run_pipeline --simulated --start 1 --end 3

Each fetch is attempted once. A failed day is logged, counted and skipped;
the batch always runs to the end of the range.
"""

import sys
import argparse
import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from datetime import date
from typing import Dict, Iterator, List, Optional, Tuple

from .config import (
    ArchiveConfig,
    LoggingConfig,
    PipelineConfig,
    ProductConfig,
    StorageConfig,
    DEFAULT_CONFIG,
    TRANSPORTS,
)
from .downloader import ArchiveSource, DownloadRequest, FetchResult, ModisDownloader
from .utils import counterpart_product, parse_modis_filename, parse_tile, resolve

# =============================================================================
# LOGGING SETUP
# =============================================================================

def setup_logging(config: PipelineConfig, log_level: str = None) -> logging.Logger:
    """Configure console (and optional file) logging for the pipeline."""
    log_level = log_level or config.logging.level
    logger = logging.getLogger('modis_pipeline')
    logger.setLevel(getattr(logging, log_level.upper()))

    # Clear existing handlers
    logger.handlers.clear()

    # Console handler - summary
    ch = logging.StreamHandler()
    ch.setLevel(getattr(logging, log_level.upper()))
    ch.setFormatter(logging.Formatter(config.logging.console_format))
    logger.addHandler(ch)

    # File handler - detailed log
    if config.logging.log_file:
        log_file = Path(config.logging.log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file)
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(config.logging.file_format))
        logger.addHandler(fh)
        logger.setLevel(logging.DEBUG)

    return logger


# =============================================================================
# BATCH RESULT
# =============================================================================

@dataclass
class BatchResult:
    """
    Accumulated outcomes of a batch run.

    filenames only grows; failures counts every failed fetch. Each fetch
    contributes exactly one outcome.
    """
    filenames: List[str] = field(default_factory=list)
    failures: int = 0
    outcomes: List[FetchResult] = field(default_factory=list)

    def record(self, result: FetchResult):
        self.outcomes.append(result)
        if result.ok:
            self.filenames.append(result.filename)
        else:
            self.failures += 1

    @property
    def attempted(self) -> int:
        return len(self.outcomes)

    @property
    def successful(self) -> int:
        return len(self.filenames)

    def failures_by_reason(self) -> Dict[str, int]:
        return dict(Counter(r.reason.value for r in self.outcomes if not r.ok))

    def acquisitions(self) -> Dict[str, date]:
        """Acquisition date of each downloaded file, read from its name."""
        dates = {}
        for name in self.filenames:
            try:
                dates[name] = parse_modis_filename(name).acquisition_date
            except ValueError:
                continue
        return dates

    def summary(self) -> Dict:
        return {
            'attempted': self.attempted,
            'successful': self.successful,
            'failed': self.failures,
            'failed_by_reason': self.failures_by_reason(),
            'filenames': list(self.filenames),
        }


# =============================================================================
# MAIN PIPELINE CLASS
# =============================================================================

class ModisPipeline:
    """
    Batch driver.

    Walks the closed day range in ascending order and fetches every tile for
    every day, recording successes and failures.
    """

    def __init__(self, config: PipelineConfig = None,
                 use_simulated: bool = False,
                 log_level: str = None,
                 source: Optional[ArchiveSource] = None):
        """
        Initialize the pipeline.

        Args:
            config: Pipeline configuration
            use_simulated: Use the offline archive for testing
            log_level: Logging verbosity (config.logging.level if None)
            source: Archive source override
        """
        self.config = config or DEFAULT_CONFIG

        self.logger = setup_logging(self.config, log_level)
        self.logger.debug(self.config.summary())

        self.downloader = ModisDownloader(self.config, source=source,
                                          use_simulated=use_simulated)

        product = self.config.product
        self.counterpart = product.counterpart
        if self.counterpart and counterpart_product(product.product) is None:
            self.logger.warning(
                f"{product.product} has no counterpart platform; fetching primary only"
            )
            self.counterpart = False

    def iter_requests(self, start_day: int, end_day: int) -> Iterator[DownloadRequest]:
        """Requests for every day in [start_day, end_day] and every tile."""
        product = self.config.product
        for day in range(start_day, end_day + 1):
            for h, v in product.tiles:
                yield DownloadRequest(
                    product=product.product,
                    year=product.year,
                    day_of_year=day,
                    h=h,
                    v=v,
                    with_counterpart=self.counterpart,
                )

    def plan(self, start_day: int = None, end_day: int = None) -> List[Tuple[str, str]]:
        """(partial_filename, remote_dir) of every fetch a run would make."""
        start_day, end_day = self._day_range(start_day, end_day)
        archive = self.config.archive
        planned = []
        for request in self.iter_requests(start_day, end_day):
            targets = [request]
            if request.with_counterpart:
                targets.append(request.counterpart())
            for r in targets:
                planned.append(resolve(r.product, r.year, r.day_of_year, r.h, r.v,
                                       archive.collection_version, archive.root))
        return planned

    def run(self, start_day: int = None, end_day: int = None) -> BatchResult:
        """
        Run the batch.

        Args:
            start_day: Override first day-of-year
            end_day: Override last day-of-year (inclusive)

        Returns:
            BatchResult
        """
        start_day, end_day = self._day_range(start_day, end_day)
        product = self.config.product

        self.logger.info(
            f"Fetching {product.product} {product.year} days "
            f"{start_day:03d}-{end_day:03d} for {len(product.tiles)} tile(s)"
            + (" with counterpart" if self.counterpart else "")
        )

        result = BatchResult()
        for request in self.iter_requests(start_day, end_day):
            for outcome in self.downloader.fetch_with_counterpart(request):
                result.record(outcome)

        self._print_summary(result)
        return result

    def _day_range(self, start_day: Optional[int], end_day: Optional[int]) -> Tuple[int, int]:
        product = self.config.product
        start_day = product.start_day if start_day is None else start_day
        end_day = product.end_day if end_day is None else end_day
        return start_day, end_day

    def _print_summary(self, result: BatchResult):
        """Print and log the batch summary."""
        self.logger.info(
            f"Batch complete: {result.successful}/{result.attempted} downloaded, "
            f"{result.failures} failed {result.failures_by_reason()}"
        )

        print("\n" + "="*60)
        print("MODIS TILE DOWNLOAD COMPLETE")
        print("="*60)
        print(f"Fetches attempted: {result.attempted}")
        print(f"Fetches successful: {result.successful}")
        print(f"Fetches failed: {result.failures}")
        for reason, count in sorted(result.failures_by_reason().items()):
            print(f"  - {reason}: {count}")

        if result.attempted > 0:
            success_rate = result.successful / result.attempted * 100
            print(f"Success rate: {success_rate:.1f}%")

        if result.filenames:
            print(f"\nFiles in {self.config.storage.output_dir}:")
            acquired = result.acquisitions()
            for name in result.filenames:
                if name in acquired:
                    print(f"  {name}  (acquired {acquired[name].isoformat()})")
                else:
                    print(f"  {name}")

        print("="*60)


# =============================================================================
# CLI INTERFACE
# =============================================================================

def parse_args(argv: List[str] = None):
    """Parse command line arguments."""
    defaults = ProductConfig()
    archive_defaults = ArchiveConfig()

    parser = argparse.ArgumentParser(
        description='Download MODIS product tiles from the archive',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Eight days of Terra surface reflectance for one tile
  modis-pipeline --product MOD09A1 --year 2003 --start 1 --end 8 --tile h10v05

  # Also fetch the Aqua product for the same days
  modis-pipeline --product MOD09A1 --counterpart

  # Over HTTPS instead of FTP
  modis-pipeline --transport https

  # Quick test with simulated archive
  modis-pipeline --simulated --start 1 --end 3
"""
    )

    parser.add_argument('--product', type=str, default=defaults.product,
                        help=f'Product code (default: {defaults.product})')
    parser.add_argument('--year', type=int, default=defaults.year,
                        help=f'Year (default: {defaults.year})')
    parser.add_argument('--start', type=int, default=defaults.start_day,
                        help=f'First day-of-year (default: {defaults.start_day})')
    parser.add_argument('--end', type=int, default=defaults.end_day,
                        help=f'Last day-of-year, inclusive (default: {defaults.end_day})')
    parser.add_argument('--tile', type=parse_tile, action='append',
                        help='Grid tile hXXvYY, repeatable (default: h10v05)')
    parser.add_argument('--counterpart', action='store_true',
                        help='Also fetch the other platform (MOD <-> MYD)')
    parser.add_argument('--host', type=str, default=archive_defaults.host,
                        help=f'Archive host (default: {archive_defaults.host})')
    parser.add_argument('--collection', type=int,
                        default=archive_defaults.collection_version,
                        help=f'Collection version (default: {archive_defaults.collection_version})')
    parser.add_argument('--transport', type=str, default=archive_defaults.transport,
                        choices=[t for t in TRANSPORTS if t != 'simulated'],
                        help='Archive protocol (default: ftp)')
    parser.add_argument('--timeout', type=int, default=archive_defaults.request_timeout,
                        help=f'Network timeout in seconds (default: {archive_defaults.request_timeout})')
    parser.add_argument('--output-dir', type=Path, default=Path('.'),
                        help='Directory for downloaded files (default: current directory)')
    parser.add_argument('--log-level', type=str, default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging verbosity')
    parser.add_argument('--log-file', type=Path,
                        help='Also write a detailed log to this file')
    parser.add_argument('--simulated', action='store_true',
                        help='Use simulated archive for testing')
    parser.add_argument('--dry-run', action='store_true',
                        help='Show what would be fetched without connecting')

    return parser.parse_args(argv)


def build_config(args) -> PipelineConfig:
    """Build a PipelineConfig from parsed arguments."""
    product_kwargs = {}
    if args.tile:
        product_kwargs['tiles'] = args.tile

    return PipelineConfig(
        product=ProductConfig(
            product=args.product,
            year=args.year,
            start_day=args.start,
            end_day=args.end,
            counterpart=args.counterpart,
            **product_kwargs,
        ),
        archive=ArchiveConfig(
            host=args.host,
            transport='simulated' if args.simulated else args.transport,
            collection_version=args.collection,
            request_timeout=args.timeout,
        ),
        storage=StorageConfig(output_dir=args.output_dir),
        logging=LoggingConfig(level=args.log_level, log_file=args.log_file),
    )


def main(argv: List[str] = None):
    """Main entry point."""
    args = parse_args(argv)
    config = build_config(args)

    if args.dry_run:
        pipeline = ModisPipeline(config, use_simulated=True, log_level='WARNING')
        print("DRY RUN - would fetch:")
        for partial, remote_dir in pipeline.plan():
            print(f"  {remote_dir}{partial}*")
        return

    pipeline = ModisPipeline(config)
    print(config.summary())

    result = pipeline.run()

    # Return exit code based on success
    if result.failures == 0 or result.successful > 0:
        sys.exit(0)  # Complete or partial success
    else:
        sys.exit(1)  # Complete failure


if __name__ == "__main__":
    main()
