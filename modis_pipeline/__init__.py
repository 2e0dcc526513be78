"""
MODIS Tile Download Pipeline

Downloads MODIS product tiles (e.g. MOD09A1 surface reflectance) from the
archive for a product, year, day-of-year range and grid tile, resolving the
predictable filename head into the real archive filename by listing the
day directory.

Modules:
- config: Configuration management
- utils: Filename/path resolution, prefix matching, filename parsing
- downloader: Archive sources (FTP, HTTPS, simulated) and the transfer driver
- run_pipeline: Batch driver and command-line interface

Quick Start:
    from modis_pipeline import ModisPipeline, PipelineConfig, ProductConfig

    config = PipelineConfig(product=ProductConfig(product='MOD09A1', year=2003,
                                                  start_day=1, end_day=8))
    result = ModisPipeline(config).run()
    print(result.filenames, result.failures)
"""

from .config import (
    PipelineConfig,
    ProductConfig,
    ArchiveConfig,
    StorageConfig,
    LoggingConfig,
    DEFAULT_CONFIG,
)
from .downloader import (
    DownloadRequest,
    FetchResult,
    FailureReason,
    ModisDownloader,
    FTPArchiveSource,
    HTTPArchiveSource,
    SimulatedArchiveSource,
)
from .run_pipeline import ModisPipeline, BatchResult
from .utils import resolve, counterpart_product, find_first_match, parse_modis_filename

__version__ = '1.0.0'

__all__ = [
    'PipelineConfig',
    'ProductConfig',
    'ArchiveConfig',
    'StorageConfig',
    'LoggingConfig',
    'DEFAULT_CONFIG',
    'DownloadRequest',
    'FetchResult',
    'FailureReason',
    'ModisDownloader',
    'FTPArchiveSource',
    'HTTPArchiveSource',
    'SimulatedArchiveSource',
    'ModisPipeline',
    'BatchResult',
    'resolve',
    'counterpart_product',
    'find_first_match',
    'parse_modis_filename',
]
