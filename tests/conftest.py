"""Shared fixtures: small GeoNames-shaped reference tables and gazetteers."""

from pathlib import Path
from typing import Iterable, List, Sequence

import pytest

from geolocation_compiler.compiler import CompilerConfig
from geolocation_compiler.filters import Dataset, FilterConfig
from geolocation_compiler.indices import FormatVersion


COUNTRY_ROWS = [
    # ISO, ISO3, numeric, fips, name, capital, area, population, continent,
    # tld, currency, currency name, phone, postal format, postal regex,
    # languages, geonameid, neighbours, equivalent fips
    ["US", "USA", "840", "US", "United States", "Washington", "9629091", "327167434", "NA",
     ".us", "USD", "Dollar", "1", "#####-####", "", "en-US,es-US,haw,fr", "6252001", "CA,MX,CU", ""],
    ["DE", "DEU", "276", "GM", "Germany", "Berlin", "357021", "82927922", "EU",
     ".de", "EUR", "Euro", "49", "#####", "", "de", "2921044", "CH,PL,NL", ""],
    ["BR", "BRA", "076", "BR", "Brazil", "Brasilia", "8511965", "209469333", "SA",
     ".br", "BRL", "Real", "55", "#####-###", "", "pt-BR,es,en,fr", "3469034", "SR,PE", ""],
]

REGION_ROWS = [
    ["US.IL", "Illinois", "Illinois", "4896861"],
    ["US.MO", "Missouri", "Missouri", "4398678"],
    ["US.MA", "Massachusetts", "Massachusetts", "6254926"],
    ["DE.16", "Berlin", "Berlin", "2950157"],
    ["BR.27", "São Paulo", "Sao Paulo", "3448433"],
]

SUBREGION_ROWS = [
    ["US.IL.167", "Sangamon County", "Sangamon County", "4249980"],
    ["US.MO.077", "Greene County", "Greene County", "4402023"],
    ["US.MA.013", "Hampden County", "Hampden County", "4938764"],
]

FEATURE_ROWS = [
    ["P.PPL", "populated place", "a city, town, village"],
    ["P.PPLA", "seat of a first-order administrative division", ""],
    ["P.PPLC", "capital of a political entity", ""],
    ["A.ADMD", "administrative division", ""],
]


def gazetteer_line(
    geoname_id: int,
    name: str,
    lat: float,
    lon: float,
    feature_code: str = "PPL",
    country: str = "US",
    admin1: str = "",
    admin2: str = "",
    population: int = 0,
    timezone: str = "America/Chicago",
    feature_class: str = "P",
) -> str:
    """Format one 19-column GeoNames main-table line."""
    fields = [""] * 19
    fields[0] = str(geoname_id)
    fields[1] = name
    fields[2] = name
    fields[4] = str(lat)
    fields[5] = str(lon)
    fields[6] = feature_class
    fields[7] = feature_code
    fields[8] = country
    fields[10] = admin1
    fields[11] = admin2
    fields[14] = str(population)
    fields[17] = timezone
    fields[18] = "2024-01-01"
    return "\t".join(fields)


def alternate_line(
    alternate_id: int,
    geoname_id: int,
    language: str,
    name: str,
    preferred: bool = False,
    short: bool = False,
    colloquial: bool = False,
    historic: bool = False,
) -> str:
    """Format one alternateNamesV2.txt line."""
    flags = ["1" if f else "" for f in (preferred, short, colloquial, historic)]
    return "\t".join([str(alternate_id), str(geoname_id), language, name] + flags + ["", ""])


def _write_rows(path: Path, rows: Iterable[Sequence[str]], header: str = "") -> Path:
    lines = [header] if header else []
    lines.extend("\t".join(row) for row in rows)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


class GeoNamesFiles:
    """Writes GeoNames-shaped input files into a temporary directory."""

    def __init__(self, root: Path):
        self.root = root
        self.countries = _write_rows(
            root / "countryInfo.txt", COUNTRY_ROWS, header="#ISO\tISO3\tISO-Numeric\tfips\tCountry"
        )
        self.regions = _write_rows(root / "admin1CodesASCII.txt", REGION_ROWS)
        self.subregions = _write_rows(root / "admin2Codes.txt", SUBREGION_ROWS)
        self.feature_names = _write_rows(root / "featureCodes_en.txt", FEATURE_ROWS)
        self.alternate_names = root / "alternateNamesV2.txt"
        self.output_dir = root / "out"

    def write_countries(self, rows: List[Sequence[str]]) -> Path:
        return _write_rows(self.countries, rows)

    def write_regions(self, rows: List[Sequence[str]]) -> Path:
        return _write_rows(self.regions, rows)

    def write_subregions(self, rows: List[Sequence[str]]) -> Path:
        return _write_rows(self.subregions, rows)

    def write_gazetteer(self, lines: Iterable[str], name: str = "cities.txt") -> Path:
        path = self.root / name
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    def write_alternates(self, lines: Iterable[str]) -> Path:
        self.alternate_names.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return self.alternate_names

    def config(
        self,
        datasets: List[Dataset],
        version: FormatVersion = FormatVersion.CURRENT,
        with_alternates: bool = True,
    ) -> CompilerConfig:
        return CompilerConfig(
            datasets=datasets,
            countries_path=self.countries,
            regions_path=self.regions,
            subregions_path=self.subregions,
            alternate_names_path=self.alternate_names if with_alternates else None,
            feature_name_paths={"en": self.feature_names},
            version=version,
            output_dir=self.output_dir,
        )


def keep_everything() -> FilterConfig:
    """A filter retaining every populated place."""
    codes = ["PPL", "PPLA", "PPLA2", "PPLA3", "PPLA4", "PPLA5", "PPLC", "PPLX", "PPLH", "PPLQ"]
    return FilterConfig(min_population=0, keep_above={"*": frozenset(codes)})


@pytest.fixture
def geonames(tmp_path) -> GeoNamesFiles:
    """GeoNames-shaped reference tables in a temporary directory."""
    return GeoNamesFiles(tmp_path)
