"""
Run configuration files.

A run is described by a JSON document; relative paths are resolved against
the directory holding it:

    {
        "countries": "countryInfo.txt",
        "regions": "admin1CodesASCII.txt",
        "subregions": "admin2Codes.txt",
        "alternate_names": "alternateNamesV2.txt",
        "feature_names": {"en": "featureCodes_en.txt"},
        "version": 1,
        "output_dir": "out",
        "datasets": [
            {
                "path": "cities500.txt",
                "min_population": 500,
                "population_overrides": {"US": 1000, "US.CA": 5000},
                "always_keep": {"*": ["PPLC", "PPLA"]},
                "keep_above": {"*": ["PPL", "PPLA2"], "GB": ["PPL", "PPLX"]}
            }
        ]
    }
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional

from .compiler import CompilerConfig
from .errors import ConfigError
from .filters import Dataset, FilterConfig

_DATASET_KEYS = {"path", "min_population", "population_overrides", "always_keep", "keep_above"}


def _resolve(base: Path, value: Optional[str]) -> Optional[Path]:
    if value is None:
        return None
    path = Path(value)
    return path if path.is_absolute() else base / path


def _require(data: Dict[str, Any], key: str) -> Any:
    if key not in data:
        raise ConfigError(f"missing required setting {key!r}")
    return data[key]


def _code_sets(data: Dict[str, Any]) -> Dict[str, frozenset]:
    result = {}
    for key, codes in data.items():
        if isinstance(codes, str) or not isinstance(codes, list):
            raise ConfigError(f"feature codes for {key!r} must be a list")
        result[key] = frozenset(codes)
    return result


def parse_dataset(data: Dict[str, Any], base: Path) -> Dataset:
    """Build a Dataset from its JSON object."""
    unknown = set(data) - _DATASET_KEYS
    if unknown:
        raise ConfigError(f"unknown dataset settings: {', '.join(sorted(unknown))}")

    try:
        filter_config = FilterConfig(
            min_population=int(data.get("min_population", 0)),
            population_overrides={k: int(v) for k, v in data.get("population_overrides", {}).items()},
            always_keep=_code_sets(data.get("always_keep", {})),
            keep_above=_code_sets(data.get("keep_above", {})),
        )
    except (TypeError, ValueError, AttributeError) as e:
        raise ConfigError(f"invalid dataset filter: {e}") from e

    return Dataset(path=_resolve(base, _require(data, "path")), filter=filter_config)


def parse_config(data: Dict[str, Any], base: Path) -> CompilerConfig:
    """Build a CompilerConfig from a decoded JSON document."""
    if not isinstance(data, dict):
        raise ConfigError("configuration must be a JSON object")

    datasets = _require(data, "datasets")
    if not isinstance(datasets, list):
        raise ConfigError("'datasets' must be a list")

    kwargs: Dict[str, Any] = {}
    for key in ("default_language", "database_name", "alternate_names_name",
                "language_file_pattern", "comment"):
        if key in data:
            kwargs[key] = str(data[key])
    if "version" in data:
        kwargs["version"] = data["version"]

    return CompilerConfig(
        datasets=[parse_dataset(d, base) for d in datasets],
        countries_path=_resolve(base, _require(data, "countries")),
        regions_path=_resolve(base, _require(data, "regions")),
        subregions_path=_resolve(base, _require(data, "subregions")),
        alternate_names_path=_resolve(base, data.get("alternate_names")),
        feature_name_paths={
            lang: _resolve(base, path) for lang, path in data.get("feature_names", {}).items()
        },
        output_dir=_resolve(base, data.get("output_dir", ".")),
        **kwargs,
    )


def load_config(path: Path) -> CompilerConfig:
    """
    Load a run configuration file.

    Raises:
        ConfigError: If the file cannot be read or is invalid
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"cannot read configuration {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid JSON in {path}: {e}") from e

    return parse_config(data, path.parent)
