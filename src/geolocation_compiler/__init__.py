"""
geolocation-compiler: GeoNames gazetteer to reverse-geocoding database compiler.

This package filters, deduplicates and indexes gazetteer rows and encodes
them into a compact binary database of cities sorted by quantized
coordinate, with alternate-name and per-language lookup files alongside.
"""

__version__ = "0.1.0"

from .quantize import quantize, dequantize, clamp_coords
from .records import GazetteerRow, CityRecord, parse_row, read_gazetteer
from .filters import FilterConfig, Dataset, should_retain
from .dedup import CoordinateDeduplicator
from .indices import FormatVersion, IndexAllocator, IndexTable, FeatureCodeRegistry
from .names import NameFlags, NameResolver, NamedEntity, LanguageNameTable
from .serialize import serialize_database, read_database
from .compiler import CompilerConfig, GazetteerCompiler, compile_database
from .config import load_config
from .errors import (
    CompilerError,
    ConfigError,
    MissingTableError,
    CapacityError,
    InternalIndexError,
)

__all__ = [
    "quantize",
    "dequantize",
    "clamp_coords",
    "GazetteerRow",
    "CityRecord",
    "parse_row",
    "read_gazetteer",
    "FilterConfig",
    "Dataset",
    "should_retain",
    "CoordinateDeduplicator",
    "FormatVersion",
    "IndexAllocator",
    "IndexTable",
    "FeatureCodeRegistry",
    "NameFlags",
    "NameResolver",
    "NamedEntity",
    "LanguageNameTable",
    "serialize_database",
    "read_database",
    "CompilerConfig",
    "GazetteerCompiler",
    "compile_database",
    "load_config",
    "CompilerError",
    "ConfigError",
    "MissingTableError",
    "CapacityError",
    "InternalIndexError",
]
