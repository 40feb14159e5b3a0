"""
DuckDB-backed reader for the GeoNames alternate-names table.

alternateNamesV2.txt holds well over ten million rows, of which a run only
needs the ones attached to places, regions and countries it actually emits.
DuckDB scans the file and joins it against the wanted reference ids so only
the relevant rows ever reach Python.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import duckdb

from .names import NameFlags

logger = logging.getLogger(__name__)

# Column layout of alternateNamesV2.txt (the last two are absent in the
# older alternateNames.txt and get null-padded)
ALTERNATE_COLUMNS = {
    "alternate_name_id": "VARCHAR",
    "geoname_id": "VARCHAR",
    "isolanguage": "VARCHAR",
    "alternate_name": "VARCHAR",
    "is_preferred": "VARCHAR",
    "is_short": "VARCHAR",
    "is_colloquial": "VARCHAR",
    "is_historic": "VARCHAR",
    "from_period": "VARCHAR",
    "to_period": "VARCHAR",
}


@dataclass(frozen=True)
class AlternateName:
    """One alternate-name candidate for a reference id."""

    geoname_id: int
    language: str
    name: str
    flags: NameFlags = NameFlags(0)


class AlternateNameSource:
    """
    Alternate-name lookup over a DuckDB in-memory connection.

    The connection runs single-threaded so rows come back in file order,
    which the name resolver relies on for first-seen tie breaking.
    """

    def __init__(self, path: Path):
        """
        Args:
            path: Path to alternateNamesV2.txt (or alternateNames.txt)
        """
        self._path = Path(path)
        self._con = duckdb.connect(":memory:")
        self._con.execute("SET threads TO 1")
        self._con.execute("SET preserve_insertion_order = true")

    def _columns_sql(self) -> str:
        return "{" + ", ".join(f"'{name}': '{kind}'" for name, kind in ALTERNATE_COLUMNS.items()) + "}"

    def fetch(self, geoname_ids: Iterable[int]) -> Dict[int, List[AlternateName]]:
        """
        Fetch the alternate names of the given reference ids.

        Args:
            geoname_ids: Reference ids of the entities a run emits

        Returns:
            Mapping of reference id to its candidates in file order
        """
        ids = sorted(set(geoname_ids))
        if not ids:
            return {}

        self._con.execute("CREATE OR REPLACE TEMP TABLE wanted (geoname_id BIGINT)")
        self._con.execute("INSERT INTO wanted SELECT UNNEST(?::BIGINT[])", [ids])

        path = str(self._path).replace("'", "''")
        rows = self._con.execute(f"""
            WITH alt AS (
                SELECT row_number() OVER () AS seq, *
                FROM read_csv('{path}',
                    delim = '\t',
                    header = false,
                    quote = '',
                    null_padding = true,
                    ignore_errors = true,
                    columns = {self._columns_sql()})
            )
            SELECT w.geoname_id,
                   coalesce(alt.isolanguage, ''),
                   alt.alternate_name,
                   coalesce(alt.is_preferred, '') = '1',
                   coalesce(alt.is_short, '') = '1',
                   coalesce(alt.is_colloquial, '') = '1',
                   coalesce(alt.is_historic, '') = '1'
            FROM alt
            JOIN wanted w ON TRY_CAST(alt.geoname_id AS BIGINT) = w.geoname_id
            WHERE alt.alternate_name IS NOT NULL
            ORDER BY alt.seq
        """).fetchall()

        result: Dict[int, List[AlternateName]] = {}
        for geoname_id, language, name, preferred, short, colloquial, historic in rows:
            flags = NameFlags.from_columns(preferred, short, colloquial, historic)
            result.setdefault(geoname_id, []).append(
                AlternateName(geoname_id, language, name, flags)
            )

        logger.debug("Fetched %d alternate names for %d ids", len(rows), len(result))
        return result

    def close(self) -> None:
        """Close the database connection."""
        if self._con:
            self._con.close()
            self._con = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def load_alternate_names(
    path: Optional[Path], geoname_ids: Iterable[int]
) -> Dict[int, List[AlternateName]]:
    """
    Load alternate names for the given ids, or nothing if the table is absent.

    The alternate-names table is optional: without it the run emits no
    alternate-name lists and no per-language tables.
    """
    if path is None or not Path(path).is_file():
        logger.warning("Alternate names table %s not found, continuing without it", path)
        return {}

    with AlternateNameSource(path) as source:
        return source.fetch(geoname_ids)
