"""
Configuration module for the MODIS tile download pipeline.

This module centralizes all configuration parameters for:
- Product selection (product code, year, day-of-year range, grid tiles)
- Archive access (host, transport, collection version, timeout)
- Local storage of downloaded tiles
- Logging

Every value that a one-off download script would hard-code lives here so a
run can be reproduced from the config summary alone.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

# =============================================================================
# PRODUCT CONFIGURATION
# =============================================================================

@dataclass
class ProductConfig:
    """
    What to download.

    MODIS products are identified by a short code whose first three
    characters name the platform:
    - MOD: Terra
    - MYD: Aqua

    Tiles are (h, v) cells of the MODIS sinusoidal grid
    (h: 0-35, v: 0-17).
    """
    product: str = "MOD09A1"
    year: int = 2003

    # Closed day-of-year range [start_day, end_day]
    start_day: int = 1
    end_day: int = 8

    tiles: List[Tuple[int, int]] = field(default_factory=lambda: [(10, 5)])

    # Also fetch the same product from the other platform (MOD <-> MYD)
    counterpart: bool = False

    def __post_init__(self):
        self.product = self.product.upper()


# =============================================================================
# ARCHIVE CONFIGURATION
# =============================================================================

@dataclass
class ArchiveConfig:
    """
    Remote archive settings.

    Directory layout on the archive:
        allData/<collection_version>/<PRODUCT>/<YYYY>/<DDD>/

    Transports:
    - 'ftp': anonymous FTP on port 21 (default)
    - 'https': anonymous HTTPS directory index of the same tree
    - 'simulated': offline listings for testing
    """
    host: str = "ladsweb.nascom.nasa.gov"
    port: int = 21
    transport: str = "ftp"

    collection_version: int = 5
    root: str = "allData"

    # HTTPS mirror of the allData tree
    https_base_url: str = "https://ladsweb.modaps.eosdis.nasa.gov/archive"

    # Timeout for control/data connections (seconds)
    request_timeout: int = 60


# =============================================================================
# STORAGE CONFIGURATION
# =============================================================================

@dataclass
class StorageConfig:
    """Where downloaded tiles go. Files keep their archive names, no subdirectories."""
    output_dir: Path = field(default_factory=lambda: Path("."))

    def ensure_directories(self):
        """Create the output directory if needed."""
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def get_tile_path(self, filename: str) -> Path:
        return self.output_dir / filename


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

@dataclass
class LoggingConfig:
    level: str = "INFO"

    # Optional detailed log file (DEBUG level)
    log_file: Optional[Path] = None

    console_format: str = "%(asctime)s - %(levelname)s - %(message)s"
    file_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# =============================================================================
# MASTER CONFIGURATION CLASS
# =============================================================================

TRANSPORTS = ("ftp", "https", "simulated")


@dataclass
class PipelineConfig:
    """
    Master configuration combining all settings.

    Usage:
        config = PipelineConfig(product=ProductConfig(product='MYD13A2', year=2010))
        config.storage.ensure_directories()
    """
    product: ProductConfig = field(default_factory=ProductConfig)
    archive: ArchiveConfig = field(default_factory=ArchiveConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self):
        """Perform sanity checks on configuration."""
        if self.archive.transport not in TRANSPORTS:
            raise ValueError(
                f"Unknown transport {self.archive.transport!r} (expected one of {TRANSPORTS})"
            )
        if not self.archive.host:
            raise ValueError("Archive host must not be empty")
        if self.archive.request_timeout <= 0:
            raise ValueError("Request timeout must be positive")
        if not self.product.tiles:
            raise ValueError("No tiles specified")

    def summary(self) -> str:
        """Return a human-readable summary of the configuration."""
        tiles = ", ".join(f"h{h:02d}v{v:02d}" for h, v in self.product.tiles)
        return f"""
================================================================
           MODIS Tile Pipeline Configuration Summary
================================================================
Product:
  Code:        {self.product.product}
  Year:        {self.product.year}
  Days:        {self.product.start_day:03d} to {self.product.end_day:03d}
  Tiles:       {tiles}
  Counterpart: {'yes' if self.product.counterpart else 'no'}
----------------------------------------------------------------
Archive:
  Transport:   {self.archive.transport}
  Host:        {self.archive.host}
  Collection:  {self.archive.collection_version}
  Timeout:     {self.archive.request_timeout}s
----------------------------------------------------------------
Storage:
  Directory:   {self.storage.output_dir}
================================================================
"""


# =============================================================================
# DEFAULT CONFIGURATION INSTANCE
# =============================================================================

DEFAULT_CONFIG = PipelineConfig()


if __name__ == "__main__":
    print(PipelineConfig().summary())
