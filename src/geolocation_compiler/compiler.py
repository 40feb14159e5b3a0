"""
Two-pass gazetteer compiler.

The pre-scan pass filters every dataset and allocates an index for each
entity the retained rows use, settling the format version before any index
is final. The encoding pass filters again, deduplicates on the quantized
grid, resolves names and writes the outputs.

All run state lives on one GazetteerCompiler instance; build a new one for
every run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .alternates import load_alternate_names
from .dedup import CoordinateDeduplicator
from .errors import ConfigError
from .filters import Dataset, retained_rows
from .indices import FormatVersion, IndexAllocator
from .names import EntityKind, LanguageNameTable, NamedEntity, NameResolver
from .records import CityRecord, GazetteerRow, read_gazetteer
from .serialize import (
    DatabaseContents,
    pack_coordinates,
    serialize_alternate_names,
    serialize_database,
    serialize_language_table,
    write_atomic,
)
from .tables import ReferenceTables, load_reference_tables

logger = logging.getLogger(__name__)


@dataclass
class CompilerConfig:
    """Configuration for one compiler run."""

    datasets: List[Dataset]
    """Gazetteer files with their filters, processed in order."""

    countries_path: Path
    regions_path: Path
    subregions_path: Path

    alternate_names_path: Optional[Path] = None
    """Optional alternateNamesV2.txt."""

    feature_name_paths: Dict[str, Path] = field(default_factory=dict)
    """Optional featureCodes_<lang>.txt tables keyed by language."""

    default_language: str = "en"
    """Language of the feature names written to the database."""

    version: FormatVersion = FormatVersion.LEGACY
    """Format version to target; may be escalated during the run."""

    output_dir: Path = Path(".")
    database_name: str = "geolocation.dat"
    alternate_names_name: str = "alternate_names.dat"
    language_file_pattern: str = "names_{language}.txt"
    comment: str = "Compiled from GeoNames gazetteer data"

    def __post_init__(self):
        if not self.datasets:
            raise ConfigError("at least one dataset is required")
        try:
            self.version = FormatVersion(self.version)
        except ValueError:
            raise ConfigError(f"unknown format version {self.version!r}") from None
        if "{language}" not in self.language_file_pattern:
            raise ConfigError("language_file_pattern must contain {language}")
        self.output_dir = Path(self.output_dir)

    @property
    def database_path(self) -> Path:
        return self.output_dir / self.database_name

    @property
    def alternate_names_output(self) -> Path:
        return self.output_dir / self.alternate_names_name

    def language_path(self, language: str) -> Path:
        return self.output_dir / self.language_file_pattern.format(language=language)


@dataclass
class CompileStats:
    """Statistics collected during a run."""

    rows_retained: int = 0
    collisions: int = 0
    cities_written: int = 0
    countries: int = 0
    regions: int = 0
    subregions: int = 0
    timezones: int = 0
    feature_codes: int = 0
    languages_written: int = 0
    version: int = 0
    escalated: bool = False


@dataclass
class CompileResult:
    """Paths written by a run, with its statistics."""

    database_path: Path
    alternate_names_path: Path
    language_paths: Dict[str, Path]
    stats: CompileStats


class GazetteerCompiler:
    """
    Compiles gazetteer datasets into a geolocation database.

    Usage:
        compiler = GazetteerCompiler(config)
        result = compiler.compile()
    """

    def __init__(self, config: CompilerConfig, tables: Optional[ReferenceTables] = None):
        """
        Args:
            config: Run configuration
            tables: Preloaded reference tables (loaded from config if omitted)
        """
        self.config = config
        self.tables = tables
        self.allocator: Optional[IndexAllocator] = None
        self.stats = CompileStats()

    def _retained(self):
        """Yield every retained row of every dataset, in dataset order."""
        for dataset in self.config.datasets:
            logger.info("Reading %s", dataset.path)
            yield from retained_rows(
                read_gazetteer(dataset.path), dataset.filter, self.tables.countries
            )

    def load_tables(self) -> ReferenceTables:
        if self.tables is None:
            self.tables = load_reference_tables(
                self.config.countries_path,
                self.config.regions_path,
                self.config.subregions_path,
                self.config.feature_name_paths,
            )
        return self.tables

    def prescan(self) -> IndexAllocator:
        """
        Allocate indices for every used entity and settle the format version.

        Raises:
            CapacityError: If any index table outgrows its binary field
        """
        self.load_tables()
        allocator = IndexAllocator(self.tables, self.config.version)
        for row in self._retained():
            allocator.observe(row)
        allocator.finalize()

        self.allocator = allocator
        self.stats.version = int(allocator.version)
        self.stats.escalated = allocator.version != allocator.target_version
        self.stats.countries = len(allocator.countries)
        self.stats.regions = len(allocator.regions)
        self.stats.subregions = len(allocator.subregions)
        self.stats.timezones = len(allocator.timezones)
        self.stats.feature_codes = len(allocator.feature_codes)
        logger.info(
            "Pre-scan done: %d countries, %d regions, %d subregions, %d timezones, "
            "%d feature codes, format version %d",
            self.stats.countries, self.stats.regions, self.stats.subregions,
            self.stats.timezones, self.stats.feature_codes, self.stats.version,
        )
        return allocator

    def _city_record(self, cell: Tuple[int, int], row: GazetteerRow) -> CityRecord:
        allocator = self.allocator
        return CityRecord(
            qlat=cell[0],
            qlon=cell[1],
            name=row.name,
            geoname_id=row.geoname_id,
            population=row.population,
            country_index=allocator.countries.index_of(row.country_code),
            region_index=allocator.region_index(row),
            subregion_index=allocator.subregion_index(row),
            timezone_index=allocator.timezones.index_of(row.timezone),
            feature_index=allocator.feature_index(row.feature_code),
            alternate_names=[],
        )

    def collect_cities(self) -> List[Tuple[CityRecord, GazetteerRow]]:
        """Filter and deduplicate every dataset, returning records in emission order."""
        dedup = CoordinateDeduplicator()
        for row in self._retained():
            self.stats.rows_retained += 1
            dedup.add(row)
        self.stats.collisions = dedup.stats.collisions

        pairs = [(self._city_record(cell, row), row) for cell, row in dedup]
        pairs.sort(key=lambda pair: pack_coordinates(pair[0].qlat, pair[0].qlon))
        return pairs

    def _entities(
        self, cities: List[Tuple[CityRecord, GazetteerRow]]
    ) -> List[Tuple[NamedEntity, Optional[CityRecord]]]:
        """Every emitted entity that can carry alternate names."""
        tables = self.tables
        allocator = self.allocator
        entities: List[Tuple[NamedEntity, Optional[CityRecord]]] = []

        for code in allocator.countries:
            country = tables.countries[code]
            if country.geoname_id is not None:
                entities.append((NamedEntity(EntityKind.COUNTRY, country.geoname_id, country.name, code), None))

        for key in allocator.regions:
            region = tables.regions[key]
            if region.geoname_id is not None:
                entities.append(
                    (NamedEntity(EntityKind.REGION, region.geoname_id, region.name, key.split(".")[0]), None)
                )

        for key in allocator.subregions:
            subregion = tables.subregions[key]
            country_code, region_code, _ = key.split(".", 2)
            region = tables.regions.get(f"{country_code}.{region_code}")
            if subregion.geoname_id is not None:
                entities.append((
                    NamedEntity(
                        EntityKind.SUBREGION, subregion.geoname_id, subregion.name, country_code,
                        region_name=region.name if region else "",
                    ),
                    None,
                ))

        for record, row in cities:
            region = tables.regions.get(row.region_key)
            subregion = tables.subregions.get(row.subregion_key)
            entities.append((
                NamedEntity(
                    EntityKind.CITY, row.geoname_id, row.name, row.country_code,
                    region_name=region.name if region else "",
                    subregion_name=subregion.name if subregion else "",
                ),
                record,
            ))

        return entities

    def resolve_names(self, cities: List[Tuple[CityRecord, GazetteerRow]]) -> List[LanguageNameTable]:
        """Attach generic alternates to the cities and build the per-language tables."""
        entities = self._entities(cities)
        alternates = load_alternate_names(
            self.config.alternate_names_path, (entity.geoname_id for entity, _ in entities)
        )

        default_languages = {
            code: info.default_language
            for code, info in self.tables.countries.items()
            if info.default_language
        }
        resolver = NameResolver(default_languages)
        for entity, record in entities:
            resolver.add_entity(entity, alternates.get(entity.geoname_id, ()))
            if record is not None:
                record.alternate_names = resolver.generic_names(entity)

        resolver.apply_country_defaults()

        feature_codes = self.allocator.feature_codes.codes
        feature_names = {
            language: {code: names[code] for code in feature_codes if code in names}
            for language, names in self.tables.feature_names.items()
        }
        return resolver.language_tables(feature_names, self.config.default_language)

    def database_contents(self, cities: List[CityRecord]) -> DatabaseContents:
        tables = self.tables
        allocator = self.allocator
        display = tables.feature_names.get(self.config.default_language, {})
        return DatabaseContents(
            version=allocator.version,
            cities=cities,
            countries=[(code, tables.countries[code].name) for code in allocator.countries],
            regions=[tables.regions[key].name for key in allocator.regions],
            subregions=[tables.subregions[key].name for key in allocator.subregions],
            timezones=allocator.timezones.keys(),
            feature_codes=[(code, display.get(code, "")) for code in allocator.feature_codes.codes],
            comment=self.config.comment,
        )

    def compile(self) -> CompileResult:
        """
        Run both passes and write every output.

        Outputs are only written once all records are encoded, each through
        a temporary file that atomically replaces the previous version.
        """
        self.prescan()

        pairs = self.collect_cities()
        cities = [record for record, _ in pairs]
        language_tables = self.resolve_names(pairs)

        database = serialize_database(self.database_contents(cities))
        alternate_blob = serialize_alternate_names(cities)
        language_files = {
            table.language: serialize_language_table(table) for table in language_tables
        }

        config = self.config
        write_atomic(config.database_path, database)
        write_atomic(config.alternate_names_output, alternate_blob)
        language_paths = {}
        for language, data in language_files.items():
            path = config.language_path(language)
            write_atomic(path, data)
            language_paths[language] = path

        self.stats.cities_written = len(cities)
        self.stats.languages_written = len(language_paths)
        logger.info(
            "Wrote %d cities and %d language tables to %s",
            len(cities), len(language_paths), config.output_dir,
        )
        return CompileResult(
            database_path=config.database_path,
            alternate_names_path=config.alternate_names_output,
            language_paths=language_paths,
            stats=self.stats,
        )


def compile_database(config: CompilerConfig, tables: Optional[ReferenceTables] = None) -> CompileResult:
    """
    Convenience function to run a full compilation.

    Args:
        config: Run configuration
        tables: Preloaded reference tables

    Returns:
        CompileResult describing the written files
    """
    return GazetteerCompiler(config, tables).compile()
