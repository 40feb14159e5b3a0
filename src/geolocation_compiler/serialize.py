"""
Database serialization module.

This module encodes compiled city records and their vocabularies into the
geolocation database, plus the auxiliary alternate-name blob and the
per-language lookup files.

Binary Format:
- Header line:  "Geolocation<version>\\t<cityCount>\\n"
- Comment line: "# <text>\\n"
- City section, one record per city sorted by packed coordinate:
  - 2 bytes: qlat >> 4
  - 1 byte:  (qlat & 0xF) << 4 | (qlon & 0xF)
  - 2 bytes: qlon >> 4
  - 4 bytes: country << 24 | popDigit << 20 | popExponent << 16 | region
  - 2 bytes: subregion
  - 1 byte:  timezone (low 8 bits)
  - 1 byte:  feature code
  - name, commas stripped, terminated by "\\n"
- Country, region, subregion, timezone and feature-code sections, one
  text line per entry in index order

All integers are big-endian so byte order equals numeric order. Timezone
indices above 255 keep their ninth bit in bit 15 of the subregion field
(version 1) or bit 7 of the feature-code byte (version 2).

Every section is closed by a 5-byte sentinel FF FE FD <id> 0A; the bytes
FF and FE never occur in UTF-8 text. The file ends with FF FE FD 00 0A.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Sequence, Tuple
import os
import struct
import tempfile

from .indices import FormatVersion, MAX_FEATURE_CODES, MAX_SUBREGIONS
from .names import LanguageNameTable, strip_commas
from .records import CityRecord


MAGIC = b"Geolocation"

SECTION_CITIES = 1
SECTION_COUNTRIES = 2
SECTION_REGIONS = 3
SECTION_SUBREGIONS = 4
SECTION_TIMEZONES = 5
SECTION_FEATURE_CODES = 6
SECTION_LANGUAGE_FEATURES = 7

SENTINEL_PREFIX = b"\xff\xfe\xfd"
TERMINATOR = SENTINEL_PREFIX + b"\x00\n"

CITY_PREFIX = struct.Struct(">HBHIHBB")

TIMEZONE_OVERFLOW = 256
LEGACY_TIMEZONE_BIT = 0x8000
CURRENT_TIMEZONE_BIT = 0x80


def sentinel(section_id: int) -> bytes:
    """Return the 5-byte marker closing a section."""
    return SENTINEL_PREFIX + bytes([section_id]) + b"\n"


def _line(text: str) -> str:
    return text.replace("\r", " ").replace("\n", " ")


def _field(text: str) -> str:
    return _line(text).replace("\t", " ")


def pack_coordinates(qlat: int, qlon: int) -> bytes:
    """Pack a 20-bit latitude and longitude into the 5-byte sort key."""
    return struct.pack(">HBH", qlat >> 4, ((qlat & 0xF) << 4) | (qlon & 0xF), qlon >> 4)


def unpack_coordinates(data: bytes) -> Tuple[int, int]:
    """Inverse of pack_coordinates."""
    lat_hi, low, lon_hi = struct.unpack(">HBH", data[:5])
    return (lat_hi << 4) | (low >> 4), (lon_hi << 4) | (low & 0xF)


def pack_city(record: CityRecord, version: FormatVersion) -> bytes:
    """
    Encode one city record.

    Args:
        record: The record to encode
        version: Layout version deciding where the timezone overflow bit goes

    Returns:
        Fixed 12-byte prefix followed by the name and a newline
    """
    if not 0 <= record.country_index <= 0xFF:
        raise ValueError(f"country index {record.country_index} out of range")
    if not 0 <= record.region_index <= 0xFFF:
        raise ValueError(f"region index {record.region_index} out of range")
    if not 0 <= record.subregion_index <= MAX_SUBREGIONS[version]:
        raise ValueError(f"subregion index {record.subregion_index} out of range")
    if not 0 <= record.feature_index < MAX_FEATURE_CODES:
        raise ValueError(f"feature index {record.feature_index} out of range")
    if not 0 <= record.timezone_index < 2 * TIMEZONE_OVERFLOW:
        raise ValueError(f"timezone index {record.timezone_index} out of range")

    digit, exponent = record.population_code
    packed = (
        (record.country_index << 24)
        | (digit << 20)
        | ((exponent & 0xF) << 16)
        | record.region_index
    )

    subregion = record.subregion_index
    feature = record.feature_index
    timezone = record.timezone_index
    if timezone >= TIMEZONE_OVERFLOW:
        timezone -= TIMEZONE_OVERFLOW
        if version == FormatVersion.LEGACY:
            subregion |= LEGACY_TIMEZONE_BIT
        else:
            feature |= CURRENT_TIMEZONE_BIT

    prefix = CITY_PREFIX.pack(
        record.qlat >> 4,
        ((record.qlat & 0xF) << 4) | (record.qlon & 0xF),
        record.qlon >> 4,
        packed,
        subregion,
        timezone,
        feature,
    )
    name = _line(strip_commas(record.name))
    return prefix + name.encode("utf-8") + b"\n"


@dataclass
class UnpackedCity:
    """A city record as read back from the database."""

    qlat: int
    qlon: int
    country_index: int
    population_digit: int
    population_exponent: int
    region_index: int
    subregion_index: int
    timezone_index: int
    feature_index: int
    name: str


def unpack_city(prefix: bytes, name: bytes, version: FormatVersion) -> UnpackedCity:
    """Decode the 12-byte prefix and the name of one city record."""
    lat_hi, low, lon_hi, packed, subregion, timezone, feature = CITY_PREFIX.unpack(prefix)

    if version == FormatVersion.LEGACY:
        if subregion & LEGACY_TIMEZONE_BIT:
            timezone += TIMEZONE_OVERFLOW
            subregion &= ~LEGACY_TIMEZONE_BIT
    elif feature & CURRENT_TIMEZONE_BIT:
        timezone += TIMEZONE_OVERFLOW
        feature &= ~CURRENT_TIMEZONE_BIT

    exponent = (packed >> 16) & 0xF
    if exponent >= 8:
        exponent -= 16

    return UnpackedCity(
        qlat=(lat_hi << 4) | (low >> 4),
        qlon=(lon_hi << 4) | (low & 0xF),
        country_index=packed >> 24,
        population_digit=(packed >> 20) & 0xF,
        population_exponent=exponent,
        region_index=packed & 0xFFF,
        subregion_index=subregion,
        timezone_index=timezone,
        feature_index=feature,
        name=name.decode("utf-8"),
    )


@dataclass
class DatabaseContents:
    """Everything the primary database holds, in emission order."""

    version: FormatVersion
    cities: List[CityRecord]
    countries: List[Tuple[str, str]]
    regions: List[str]
    subregions: List[str]
    timezones: List[str]
    feature_codes: List[Tuple[str, str]]
    comment: str = ""


def serialize_database(contents: DatabaseContents) -> bytes:
    """
    Serialize the primary database.

    Cities must already be sorted by pack_coordinates().
    """
    version = FormatVersion(contents.version)
    buffer = bytearray()

    buffer.extend(MAGIC + f"{int(version)}\t{len(contents.cities)}\n".encode("ascii"))
    buffer.extend(f"# {_line(contents.comment)}\n".encode("utf-8"))

    for record in contents.cities:
        buffer.extend(pack_city(record, version))
    buffer.extend(sentinel(SECTION_CITIES))

    for code, name in contents.countries:
        buffer.extend(f"{code}\t{_field(name)}\n".encode("utf-8"))
    buffer.extend(sentinel(SECTION_COUNTRIES))

    for name in contents.regions:
        buffer.extend(f"{_line(name)}\n".encode("utf-8"))
    buffer.extend(sentinel(SECTION_REGIONS))

    for name in contents.subregions:
        buffer.extend(f"{_line(name)}\n".encode("utf-8"))
    buffer.extend(sentinel(SECTION_SUBREGIONS))

    for name in contents.timezones:
        buffer.extend(f"{_line(name)}\n".encode("utf-8"))
    buffer.extend(sentinel(SECTION_TIMEZONES))

    for code, name in contents.feature_codes:
        buffer.extend(f"{code}\t{_field(name)}\n".encode("utf-8"))
    buffer.extend(sentinel(SECTION_FEATURE_CODES))

    buffer.extend(TERMINATOR)
    return bytes(buffer)


def serialize_alternate_names(cities: Sequence[CityRecord]) -> bytes:
    """
    Serialize the alternate-name blob.

    One NUL-terminated, newline-separated record per city, in the same order
    as the city section, so record i belongs to city i.
    """
    buffer = bytearray()
    for record in cities:
        names = ",".join(_line(strip_commas(n)) for n in record.alternate_names)
        buffer.extend(names.encode("utf-8") + b"\x00\n")
    return bytes(buffer)


def serialize_language_table(table: LanguageNameTable) -> bytes:
    """
    Serialize one per-language lookup file.

    "key\\ttranslation" lines sorted by key, a sentinel, then
    "code\\tfeature name" lines.
    """
    buffer = bytearray()
    for key in sorted(table.names):
        buffer.extend(f"{_field(key)}\t{_field(table.names[key])}\n".encode("utf-8"))
    buffer.extend(sentinel(SECTION_LANGUAGE_FEATURES))
    for code, name in table.feature_names.items():
        buffer.extend(f"{code}\t{_field(name)}\n".encode("utf-8"))
    return bytes(buffer)


def write_atomic(path: Path, data: bytes) -> None:
    """
    Write data to path via a temporary file in the same directory.

    The final file is only replaced once the data is fully on disk, so a
    failed run never leaves a truncated database behind.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


@dataclass
class ParsedDatabase:
    """Result of reading a database back."""

    version: FormatVersion
    city_count: int
    comment: str
    cities: List[UnpackedCity] = field(default_factory=list)
    countries: List[Tuple[str, str]] = field(default_factory=list)
    regions: List[str] = field(default_factory=list)
    subregions: List[str] = field(default_factory=list)
    timezones: List[str] = field(default_factory=list)
    feature_codes: List[Tuple[str, str]] = field(default_factory=list)


class DatabaseReader:
    """Parses a serialized database, checking every section marker."""

    def __init__(self, data: bytes):
        self._data = data
        self._pos = 0

    def _read_line(self) -> bytes:
        end = self._data.find(b"\n", self._pos)
        if end < 0:
            raise ValueError("Unexpected end of data")
        line = self._data[self._pos:end]
        self._pos = end + 1
        return line

    def _read_bytes(self, n: int) -> bytes:
        if self._pos + n > len(self._data):
            raise ValueError("Unexpected end of data")
        chunk = self._data[self._pos:self._pos + n]
        self._pos += n
        return chunk

    def _expect(self, marker: bytes) -> None:
        if self._read_bytes(len(marker)) != marker:
            raise ValueError(f"Missing section marker at offset {self._pos - len(marker)}")

    def _read_section(self, section_id: int) -> List[str]:
        marker = sentinel(section_id)[:-1]
        lines = []
        while True:
            line = self._read_line()
            if line == marker:
                return lines
            lines.append(line.decode("utf-8"))

    def read(self) -> ParsedDatabase:
        header = self._read_line()
        if not header.startswith(MAGIC):
            raise ValueError("Not a geolocation database")
        version_text, count_text = header[len(MAGIC):].decode("ascii").split("\t")
        version = FormatVersion(int(version_text))
        comment = self._read_line().decode("utf-8")
        if comment.startswith("# "):
            comment = comment[2:]

        db = ParsedDatabase(version, int(count_text), comment)
        for _ in range(db.city_count):
            prefix = self._read_bytes(CITY_PREFIX.size)
            db.cities.append(unpack_city(prefix, self._read_line(), version))
        self._expect(sentinel(SECTION_CITIES))

        db.countries = [tuple(line.split("\t", 1)) for line in self._read_section(SECTION_COUNTRIES)]
        db.regions = self._read_section(SECTION_REGIONS)
        db.subregions = self._read_section(SECTION_SUBREGIONS)
        db.timezones = self._read_section(SECTION_TIMEZONES)
        db.feature_codes = [
            tuple(line.split("\t", 1)) for line in self._read_section(SECTION_FEATURE_CODES)
        ]
        self._expect(TERMINATOR)
        return db


def read_database(data: bytes) -> ParsedDatabase:
    """Parse a serialized database."""
    return DatabaseReader(data).read()


def read_language_table(data: bytes) -> Tuple[Dict[str, str], Dict[str, str]]:
    """Parse a per-language file into (names, feature names)."""
    text_names, _, text_features = data.partition(sentinel(SECTION_LANGUAGE_FEATURES))
    names = dict(line.split("\t", 1) for line in text_names.decode("utf-8").split("\n") if line)
    features = dict(line.split("\t", 1) for line in text_features.decode("utf-8").split("\n") if line)
    return names, features
