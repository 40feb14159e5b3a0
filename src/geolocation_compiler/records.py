"""
Gazetteer rows and compiled city records.

A GazetteerRow is one parsed line of a GeoNames dump (cities500.txt,
allCountries.txt, ...). A CityRecord is a retained place after quantization
and index resolution, ready for the binary encoder.
"""

import csv
import math
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional, Sequence, Tuple

# GeoNames main table column positions
COL_ID = 0
COL_NAME = 1
COL_LAT = 4
COL_LON = 5
COL_FEATURE_CLASS = 6
COL_FEATURE_CODE = 7
COL_COUNTRY = 8
COL_ADMIN1 = 10
COL_ADMIN2 = 11
COL_POPULATION = 14
COL_TIMEZONE = 17

MIN_COLUMNS = COL_TIMEZONE + 1

# Largest population the (digit, exponent) code can express
MAX_POPULATION_EXPONENT = 7


@dataclass(frozen=True)
class GazetteerRow:
    """One line of a gazetteer dump."""

    geoname_id: int
    name: str
    lat: float
    lon: float
    feature_class: str
    feature_code: str
    country_code: str
    region_code: str
    subregion_code: str
    population: int
    timezone: str

    @property
    def region_key(self) -> str:
        return f"{self.country_code}.{self.region_code}"

    @property
    def subregion_key(self) -> str:
        return f"{self.country_code}.{self.region_code}.{self.subregion_code}"


def is_country_code(code: str) -> bool:
    """Check for a two-letter ASCII country code."""
    return len(code) == 2 and code.isascii() and code.isalpha() and code.isupper()


def parse_row(fields: Sequence[str]) -> Optional[GazetteerRow]:
    """
    Parse the columns of one gazetteer line.

    Returns None for structurally malformed rows: too few columns,
    unparsable id/coordinates/population, non-finite coordinates, or an
    invalid country code.
    """
    if len(fields) < MIN_COLUMNS:
        return None

    country_code = fields[COL_COUNTRY].strip()
    if not is_country_code(country_code):
        return None

    try:
        geoname_id = int(fields[COL_ID])
        lat = float(fields[COL_LAT])
        lon = float(fields[COL_LON])
        population = int(fields[COL_POPULATION]) if fields[COL_POPULATION] else 0
    except ValueError:
        return None
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return None

    return GazetteerRow(
        geoname_id=geoname_id,
        name=fields[COL_NAME],
        lat=lat,
        lon=lon,
        feature_class=fields[COL_FEATURE_CLASS],
        feature_code=fields[COL_FEATURE_CODE],
        country_code=country_code,
        region_code=fields[COL_ADMIN1],
        subregion_code=fields[COL_ADMIN2],
        population=max(0, population),
        timezone=fields[COL_TIMEZONE],
    )


def _decoded_lines(f: BinaryIO) -> Iterator[str]:
    """Decode a binary file line by line, dropping lines that are not valid UTF-8."""
    for raw in f:
        try:
            yield raw.decode("utf-8")
        except UnicodeDecodeError:
            continue


def read_gazetteer(path: Path) -> Iterator[GazetteerRow]:
    """Stream the well-formed rows of a gazetteer file, skipping the rest."""
    with open(path, "rb") as f:
        reader = csv.reader(_decoded_lines(f), delimiter="\t", quoting=csv.QUOTE_NONE)
        for fields in reader:
            row = parse_row(fields)
            if row is not None:
                yield row


def encode_population(population: int) -> Tuple[int, int]:
    """
    Reduce a population to one decimal digit and a power of ten.

    1200 -> (1, 3), 1500 -> (2, 3), 0 -> (0, 0). Values beyond 9e7 clamp
    to (9, 7) because the exponent is a signed nibble.
    """
    if population <= 0:
        return 0, 0

    exponent = len(str(population)) - 1
    digit = (population + 5 * 10 ** exponent // 10) // 10 ** exponent
    if digit == 10:
        digit = 1
        exponent += 1

    if exponent > MAX_POPULATION_EXPONENT:
        return 9, MAX_POPULATION_EXPONENT
    return digit, exponent


def decode_population(digit: int, exponent: int) -> int:
    """Inverse of encode_population, up to the precision of one digit."""
    if exponent < 0:
        return digit // 10 ** -exponent
    return digit * 10 ** exponent


@dataclass
class CityRecord:
    """A retained place, one per distinct quantized coordinate."""

    qlat: int
    qlon: int
    name: str
    geoname_id: int
    population: int
    country_index: int
    region_index: int
    subregion_index: int
    timezone_index: int
    feature_index: int
    alternate_names: List[str]

    @property
    def population_code(self) -> Tuple[int, int]:
        return encode_population(self.population)
