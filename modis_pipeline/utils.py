"""
Utility Functions for the MODIS Tile Pipeline

This module provides:
- Partial filename and remote directory resolution
- Platform counterpart lookup (Terra <-> Aqua)
- Prefix matching against directory listings
- Archive filename parsing
- Day-of-year and tile helpers
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Tuple

# Platform prefixes that are swapped for the counterpart satellite
PLATFORM_COUNTERPARTS = {
    'MOD': 'MYD',  # Terra -> Aqua
    'MYD': 'MOD',  # Aqua -> Terra
}

DEFAULT_COLLECTION_VERSION = 5
DEFAULT_ARCHIVE_ROOT = "allData"


# =============================================================================
# FILENAME / PATH RESOLUTION
# =============================================================================

def build_partial_filename(product: str, year: int, day_of_year: int,
                           h: int, v: int) -> str:
    """
    Build the predictable head of an archive filename.

    Example:
        ('mod09a1', 2003, 1, 10, 5) -> 'MOD09A1.A2003001.h10v05'

    The real filename continues with collection, production timestamp and
    extension, which are only known after listing the directory.
    """
    return f"{product.upper()}.A{year:04d}{day_of_year:03d}.h{h:02d}v{v:02d}"


def build_remote_dir(product: str, year: int, day_of_year: int,
                     collection_version: int = DEFAULT_COLLECTION_VERSION,
                     root: str = DEFAULT_ARCHIVE_ROOT) -> str:
    """Archive directory holding one product/day, e.g. 'allData/5/MOD09A1/2003/001/'."""
    return f"{root}/{collection_version}/{product.upper()}/{year:04d}/{day_of_year:03d}/"


def resolve(product: str, year: int, day_of_year: int, h: int, v: int,
            collection_version: int = DEFAULT_COLLECTION_VERSION,
            root: str = DEFAULT_ARCHIVE_ROOT) -> Tuple[str, str]:
    """
    Resolve request parameters into (partial_filename, remote_dir).

    Formatting never fails: out-of-range values produce strings that
    simply won't match anything on the archive.
    """
    return (
        build_partial_filename(product, year, day_of_year, h, v),
        build_remote_dir(product, year, day_of_year, collection_version, root),
    )


def counterpart_product(product: str) -> Optional[str]:
    """
    Swap the platform prefix of a product code.

    'MOD09A1' -> 'MYD09A1', 'MYD13A2' -> 'MOD13A2'.
    Returns None for products without a counterpart (e.g. combined 'MCD').
    """
    product = product.upper()
    swapped = PLATFORM_COUNTERPARTS.get(product[:3])
    if swapped is None:
        return None
    return swapped + product[3:]


def find_first_match(names: Iterable[str], partial: str) -> Optional[str]:
    """
    Return the first name whose head equals the partial filename.

    Listing order decides ties; reprocessed duplicates are not ranked.
    """
    n = len(partial)
    for name in names:
        if name[:n] == partial:
            return name
    return None


# =============================================================================
# ARCHIVE FILENAME PARSING
# =============================================================================

# MOD09A1.A2003001.h10v05.005.2008011201623.hdf
MODIS_FILENAME_RE = re.compile(
    r'^(?P<product>[A-Z0-9]+)\.A(?P<year>\d{4})(?P<doy>\d{3})'
    r'\.h(?P<h>\d{2})v(?P<v>\d{2})'
    r'\.(?P<collection>\d{3})\.(?P<production>\d{13})'
    r'\.(?P<ext>[A-Za-z0-9.]+)$'
)


@dataclass(frozen=True)
class ModisFilename:
    """Fields of a full archive filename."""
    product: str
    year: int
    day_of_year: int
    h: int
    v: int
    collection: str
    production: datetime
    extension: str

    @property
    def acquisition_date(self) -> date:
        return day_of_year_to_date(self.year, self.day_of_year)

    @property
    def tile(self) -> str:
        return format_tile(self.h, self.v)


def parse_modis_filename(filename: str) -> ModisFilename:
    """
    Parse an archive filename.

    Args:
        filename: Name like 'MOD09A1.A2003001.h10v05.005.2008011201623.hdf'

    Returns:
        ModisFilename

    Raises:
        ValueError: if the name does not follow the archive convention
    """
    m = MODIS_FILENAME_RE.match(filename)
    if m is None:
        raise ValueError(f"Not a MODIS tile filename: {filename!r}")

    # Production timestamp is YYYYDDDHHMMSS
    production = datetime.strptime(m.group('production'), "%Y%j%H%M%S")

    return ModisFilename(
        product=m.group('product'),
        year=int(m.group('year')),
        day_of_year=int(m.group('doy')),
        h=int(m.group('h')),
        v=int(m.group('v')),
        collection=m.group('collection'),
        production=production,
        extension=m.group('ext'),
    )


# =============================================================================
# DATE / TILE HELPERS
# =============================================================================

def day_of_year_to_date(year: int, day_of_year: int) -> date:
    """Convert (year, day-of-year) to a calendar date. Day 1 is January 1st."""
    return date(year, 1, 1) + timedelta(days=day_of_year - 1)


def format_tile(h: int, v: int) -> str:
    return f"h{h:02d}v{v:02d}"


TILE_RE = re.compile(r'^h(\d{1,2})v(\d{1,2})$', re.IGNORECASE)


def parse_tile(tile: str) -> Tuple[int, int]:
    """
    Parse a tile identifier.

    'h10v05' -> (10, 5)

    Raises:
        ValueError: if the identifier is not of the form hXXvYY
    """
    m = TILE_RE.match(tile.strip())
    if m is None:
        raise ValueError(f"Invalid tile {tile!r}. Expected format: hXXvYY")
    return int(m.group(1)), int(m.group(2))
