"""
Compact index allocation for countries, regions, subregions, timezones and
feature codes.

Every entity a city record references is stored as a small integer whose
width is fixed by the binary layout:

    country      8 bits   (0..255)
    region      12 bits   (1..4095, 0 = none)
    subregion   15 bits   (legacy, 1..32767) / 16 bits (current, 1..65535)
    timezone     9 bits   (0..511)
    feature      6 bits   (0..63)

Indices are handed out in first-used order during the pre-scan pass. The
legacy format silently escalates to the current one when its feature-code
vocabulary or its subregion field is too small; the final feature-code
indices are only computed once the version is known.
"""

from __future__ import annotations

import logging
from enum import IntEnum
from typing import Dict, Iterator, List, Optional, Tuple

from .errors import CapacityError, InternalIndexError
from .records import GazetteerRow
from .tables import ReferenceTables

logger = logging.getLogger(__name__)


class FormatVersion(IntEnum):
    """Database layout versions."""

    LEGACY = 1
    CURRENT = 2


MAX_COUNTRIES = 256
MAX_REGIONS = 4095
MAX_TIMEZONES = 512
MAX_FEATURE_CODES = 64
MAX_SUBREGIONS = {
    FormatVersion.LEGACY: 32767,
    FormatVersion.CURRENT: 65535,
}

OTHER_FEATURE = "Other"

LEGACY_FEATURE_CODES: Tuple[str, ...] = (
    OTHER_FEATURE,
    "PPL",
    "PPLA",
    "PPLA2",
    "PPLA3",
    "PPLA4",
    "PPLC",
    "PPLCD",
    "PPLF",
    "PPLG",
    "PPLL",
    "PPLR",
    "PPLS",
    "PPLX",
    "STLMT",
    "ADMD",
)

CURRENT_FEATURE_CODES: Tuple[str, ...] = LEGACY_FEATURE_CODES + (
    "PPLA5",
    "PPLCH",
    "PPLH",
)

# Abandoned and destroyed places always share the "Other" slot
COLLAPSED_FEATURE_CODES = frozenset({"PPLQ", "PPLW"})

BASE_FEATURE_CODES = {
    FormatVersion.LEGACY: LEGACY_FEATURE_CODES,
    FormatVersion.CURRENT: CURRENT_FEATURE_CODES,
}


class IndexTable:
    """
    Insertion-ordered registry mapping keys to compact indices.

    With reserve_zero, index 0 means "none" and real entries start at 1.
    """

    def __init__(self, kind: str, limit: int, reserve_zero: bool = False):
        """
        Args:
            kind: Entity name used in error messages ("countries", ...)
            limit: Maximum number of entries (excluding a reserved zero)
            reserve_zero: Whether index 0 is reserved
        """
        self.kind = kind
        self.limit = limit
        self.offset = 1 if reserve_zero else 0
        self._keys: List[str] = []
        self._index: Dict[str, int] = {}

    def add(self, key: str) -> int:
        """Return the index of key, allocating one on first use."""
        index = self._index.get(key)
        if index is not None:
            return index

        if len(self._keys) >= self.limit:
            raise CapacityError(self.kind, self.limit)

        index = len(self._keys) + self.offset
        self._keys.append(key)
        self._index[key] = index
        return index

    def get(self, key: str) -> Optional[int]:
        return self._index.get(key)

    def index_of(self, key: str) -> int:
        """Return the index of an allocated key."""
        try:
            return self._index[key]
        except KeyError:
            raise InternalIndexError(f"No index allocated for {self.kind} {key!r}") from None

    def __contains__(self, key: str) -> bool:
        return key in self._index

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[str]:
        return iter(self._keys)

    def keys(self) -> List[str]:
        return list(self._keys)


class FeatureCodeRegistry:
    """
    A fixed base vocabulary followed by append-only extra codes.

    Codes are stored as positions in a list; the list doubles as the name
    table written to the feature-code section.
    """

    def __init__(self, version: FormatVersion):
        self.version = version
        self._codes: List[str] = list(BASE_FEATURE_CODES[version])
        self._index: Dict[str, int] = {code: i for i, code in enumerate(self._codes)}

    @staticmethod
    def is_collapsed(code: str) -> bool:
        return not code or code in COLLAPSED_FEATURE_CODES

    @classmethod
    def supports(cls, version: FormatVersion, code: str) -> bool:
        """Whether code has a slot in the base vocabulary of version."""
        return cls.is_collapsed(code) or code in BASE_FEATURE_CODES[version]

    def add(self, code: str) -> int:
        """Return the index of code, appending it if it is not yet known."""
        if self.is_collapsed(code):
            return self._index[OTHER_FEATURE]

        index = self._index.get(code)
        if index is not None:
            return index

        if len(self._codes) >= MAX_FEATURE_CODES:
            raise CapacityError("feature codes", MAX_FEATURE_CODES)

        index = len(self._codes)
        self._codes.append(code)
        self._index[code] = index
        return index

    def index_of(self, code: str) -> int:
        if self.is_collapsed(code):
            return self._index[OTHER_FEATURE]
        try:
            return self._index[code]
        except KeyError:
            raise InternalIndexError(f"No index allocated for feature code {code!r}") from None

    @property
    def codes(self) -> List[str]:
        return list(self._codes)

    def __len__(self) -> int:
        return len(self._codes)


class IndexAllocator:
    """
    Pre-scan accumulator of every entity the retained rows use.

    Call observe() for each retained row, then finalize() once to settle the
    format version and the feature-code indices.
    """

    def __init__(self, tables: ReferenceTables, version: FormatVersion = FormatVersion.CURRENT):
        self.tables = tables
        self.target_version = FormatVersion(version)
        self.version = self.target_version

        self.countries = IndexTable("countries", MAX_COUNTRIES)
        self.regions = IndexTable("regions", MAX_REGIONS, reserve_zero=True)
        self.subregions = IndexTable(
            "subregions", MAX_SUBREGIONS[FormatVersion.CURRENT], reserve_zero=True
        )
        self.timezones = IndexTable("timezones", MAX_TIMEZONES)

        self._seen_feature_codes: List[str] = []
        self._seen_feature_set = set()
        self.feature_codes: Optional[FeatureCodeRegistry] = None

    def _escalate(self, reason: str) -> None:
        if self.version == FormatVersion.LEGACY:
            logger.warning(
                "Upgrading database format from version %d to %d: %s",
                FormatVersion.LEGACY, FormatVersion.CURRENT, reason,
            )
            self.version = FormatVersion.CURRENT

    def observe(self, row: GazetteerRow) -> None:
        """Mark every entity referenced by a retained row as used."""
        self.countries.add(row.country_code)

        if row.region_key in self.tables.regions:
            self.regions.add(row.region_key)
            if row.subregion_key in self.tables.subregions:
                self.subregions.add(row.subregion_key)
                if (
                    self.version == FormatVersion.LEGACY
                    and len(self.subregions) > MAX_SUBREGIONS[FormatVersion.LEGACY]
                ):
                    self._escalate(
                        f"more than {MAX_SUBREGIONS[FormatVersion.LEGACY]} subregions"
                    )

        self.timezones.add(row.timezone)

        code = row.feature_code
        if code not in self._seen_feature_set:
            self._seen_feature_set.add(code)
            self._seen_feature_codes.append(code)
            if self.version == FormatVersion.LEGACY and not FeatureCodeRegistry.supports(
                FormatVersion.LEGACY, code
            ):
                self._escalate(f"feature code {code!r} is not in the legacy vocabulary")

    def finalize(self) -> FeatureCodeRegistry:
        """
        Build the feature-code registry for the settled format version.

        Raises:
            CapacityError: If more than 64 feature codes are in use
        """
        registry = FeatureCodeRegistry(self.version)
        for code in self._seen_feature_codes:
            registry.add(code)
        self.feature_codes = registry
        return registry

    # Lookups used by the encoding pass

    def region_index(self, row: GazetteerRow) -> int:
        if row.region_key not in self.tables.regions:
            return 0
        return self.regions.index_of(row.region_key)

    def subregion_index(self, row: GazetteerRow) -> int:
        if row.region_key not in self.tables.regions or row.subregion_key not in self.tables.subregions:
            return 0
        return self.subregions.index_of(row.subregion_key)

    def feature_index(self, code: str) -> int:
        if self.feature_codes is None:
            raise InternalIndexError("Feature codes requested before finalize()")
        return self.feature_codes.index_of(code)
