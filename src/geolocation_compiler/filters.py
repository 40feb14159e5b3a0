"""
Per-dataset record filtering.

Each input dataset carries its own FilterConfig. Population thresholds and
feature-code keep-lists can be overridden per country ("US") or per region
("US.CA"); keep-lists additionally fall back to a wildcard "*" entry.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import AbstractSet, Dict, FrozenSet, Mapping, Optional

from .records import GazetteerRow

ANY_COUNTRY = "*"


@dataclass
class FilterConfig:
    """Retention rules for the rows of one dataset."""

    min_population: int = 0
    """Default minimum population."""

    population_overrides: Dict[str, int] = field(default_factory=dict)
    """Minimum population per "CC" or "CC.ADM1"."""

    always_keep: Dict[str, FrozenSet[str]] = field(default_factory=dict)
    """Feature codes kept regardless of population, per "CC.ADM1", "CC" or "*"."""

    keep_above: Dict[str, FrozenSet[str]] = field(default_factory=dict)
    """Feature codes kept at or above the minimum population, same keys."""

    def __post_init__(self):
        if self.min_population < 0:
            raise ValueError("min_population must be non-negative")
        for key, value in self.population_overrides.items():
            if value < 0:
                raise ValueError(f"population override for {key} must be non-negative")
        self.always_keep = {k: frozenset(v) for k, v in self.always_keep.items()}
        self.keep_above = {k: frozenset(v) for k, v in self.keep_above.items()}

    def minimum_population(self, country: str, region_key: str) -> int:
        if region_key in self.population_overrides:
            return self.population_overrides[region_key]
        if country in self.population_overrides:
            return self.population_overrides[country]
        return self.min_population

    @staticmethod
    def _lookup(
        table: Mapping[str, FrozenSet[str]], country: str, region_key: str
    ) -> AbstractSet[str]:
        for key in (region_key, country, ANY_COUNTRY):
            if key in table:
                return table[key]
        return frozenset()

    def always_keep_codes(self, country: str, region_key: str) -> AbstractSet[str]:
        return self._lookup(self.always_keep, country, region_key)

    def keep_above_codes(self, country: str, region_key: str) -> AbstractSet[str]:
        return self._lookup(self.keep_above, country, region_key)


@dataclass(frozen=True)
class Dataset:
    """A gazetteer file together with the filter that applies to its rows."""

    path: Path
    filter: FilterConfig


def should_retain(row: GazetteerRow, config: FilterConfig) -> bool:
    """
    Decide whether a row survives its dataset's filter.

    A row is kept if its feature code is always kept, or if its population
    reaches the effective minimum and its code is in the keep-above set.
    """
    country = row.country_code
    region_key = row.region_key
    code = row.feature_code

    if code in config.always_keep_codes(country, region_key):
        return True

    return (
        row.population >= config.minimum_population(country, region_key)
        and code in config.keep_above_codes(country, region_key)
    )


def retained_rows(rows, config: FilterConfig, countries: Optional[Mapping[str, object]] = None):
    """
    Yield the rows of one dataset that pass its filter.

    Rows whose country is absent from the country table are dropped when
    a country table is given.
    """
    for row in rows:
        if countries is not None and row.country_code not in countries:
            continue
        if should_retain(row, config):
            yield row
