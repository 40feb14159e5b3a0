"""
Reference table loading.

Country, region (admin1) and subregion (admin2) tables are mandatory: a run
cannot resolve names without them and aborts with MissingTableError. Feature
name tables are optional and only enrich the output, so a missing one is
logged and skipped.
"""

import csv
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

from .errors import MissingTableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CountryInfo:
    """A row of countryInfo.txt."""

    code: str
    name: str
    geoname_id: Optional[int]
    languages: Tuple[str, ...] = ()

    @property
    def default_language(self) -> Optional[str]:
        """Base code of the first listed language ("pt-BR,es" -> "pt")."""
        if not self.languages:
            return None
        return self.languages[0].split("-")[0].lower() or None


@dataclass(frozen=True)
class AdminDivision:
    """A row of admin1CodesASCII.txt or admin2Codes.txt."""

    key: str
    name: str
    ascii_name: str
    geoname_id: Optional[int]


@dataclass
class ReferenceTables:
    """All vocabularies a compiler run resolves against."""

    countries: Dict[str, CountryInfo]
    regions: Dict[str, AdminDivision]
    subregions: Dict[str, AdminDivision]
    feature_names: Dict[str, Dict[str, str]] = field(default_factory=dict)
    """Language -> feature code -> display name."""


def _parse_id(value: str) -> Optional[int]:
    try:
        return int(value)
    except ValueError:
        return None


def _read_tsv(path: Path, kind: str) -> Iterator[List[str]]:
    """Yield tab-separated rows, skipping blank and '#' comment lines."""
    try:
        f = open(path, "r", encoding="utf-8", newline="")
    except OSError as e:
        raise MissingTableError(kind, path) from e

    with f:
        reader = csv.reader(f, delimiter="\t", quoting=csv.QUOTE_NONE)
        try:
            for fields in reader:
                if not fields or fields[0].startswith("#"):
                    continue
                yield fields
        except UnicodeDecodeError as e:
            raise MissingTableError(kind, path) from e


def load_countries(path: Path) -> Dict[str, CountryInfo]:
    """Load countryInfo.txt keyed by ISO alpha-2 code."""
    countries: Dict[str, CountryInfo] = {}
    for fields in _read_tsv(path, "country"):
        if len(fields) < 5:
            continue
        code = fields[0].strip()
        languages: Tuple[str, ...] = ()
        if len(fields) > 15 and fields[15]:
            languages = tuple(lang.strip() for lang in fields[15].split(",") if lang.strip())
        geoname_id = _parse_id(fields[16]) if len(fields) > 16 else None
        countries[code] = CountryInfo(code, fields[4], geoname_id, languages)

    logger.debug("Loaded %d countries from %s", len(countries), path)
    return countries


def load_divisions(path: Path, kind: str) -> Dict[str, AdminDivision]:
    """
    Load an administrative division table keyed by its composite code.

    Args:
        path: admin1CodesASCII.txt or admin2Codes.txt
        kind: "region" or "subregion", used in error messages

    Returns:
        Mapping of "CC.ADM1" (or "CC.ADM1.ADM2") to AdminDivision
    """
    divisions: Dict[str, AdminDivision] = {}
    for fields in _read_tsv(path, kind):
        if len(fields) < 2:
            continue
        ascii_name = fields[2] if len(fields) > 2 else fields[1]
        geoname_id = _parse_id(fields[3]) if len(fields) > 3 else None
        divisions[fields[0]] = AdminDivision(fields[0], fields[1], ascii_name, geoname_id)

    logger.debug("Loaded %d %ss from %s", len(divisions), kind, path)
    return divisions


def load_feature_names(paths: Mapping[str, Path]) -> Dict[str, Dict[str, str]]:
    """
    Load optional featureCodes_<lang>.txt tables.

    Keys are "<class>.<code>"; the returned mapping is keyed by the bare code.
    Populated-place (class P) entries win over same-coded entries of other
    classes. Missing files are skipped with a warning.
    """
    result: Dict[str, Dict[str, str]] = {}
    for language, path in paths.items():
        if not Path(path).is_file():
            logger.warning("Feature name table %s not found, continuing without it", path)
            continue

        names: Dict[str, str] = {}
        for fields in _read_tsv(Path(path), "feature name"):
            if len(fields) < 2 or "." not in fields[0]:
                continue
            feature_class, code = fields[0].split(".", 1)
            if code not in names or feature_class == "P":
                names[code] = fields[1]
        result[language] = names

    return result


def load_reference_tables(
    countries_path: Path,
    regions_path: Path,
    subregions_path: Path,
    feature_name_paths: Optional[Mapping[str, Path]] = None,
) -> ReferenceTables:
    """Load every reference table a run needs."""
    return ReferenceTables(
        countries=load_countries(countries_path),
        regions=load_divisions(regions_path, "region"),
        subregions=load_divisions(subregions_path, "subregion"),
        feature_names=load_feature_names(feature_name_paths or {}),
    )
