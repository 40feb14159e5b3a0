"""Tests for the command-line interface."""

import json

from conftest import gazetteer_line
from geolocation_compiler.cli import create_parser, main


def write_run_file(geonames):
    geonames.write_gazetteer([
        gazetteer_line(1, "Springfield", 39.8, -89.64, admin1="IL", admin2="167", population=114394),
        gazetteer_line(2, "Chicago", 41.85, -87.65, admin1="IL", population=2720546),
    ])
    path = geonames.root / "run.json"
    path.write_text(json.dumps({
        "countries": geonames.countries.name,
        "regions": geonames.regions.name,
        "subregions": geonames.subregions.name,
        "feature_names": {"en": geonames.feature_names.name},
        "output_dir": "out",
        "datasets": [{"path": "cities.txt", "keep_above": {"*": ["PPL"]}}],
    }), encoding="utf-8")
    return path


class TestParser:
    """Tests for argument parsing."""

    def test_build_arguments(self):
        """Test the build subcommand accepts its overrides."""
        args = create_parser().parse_args(["build", "run.json", "-o", "out", "--format-version", "2"])
        assert args.command == "build"
        assert str(args.config) == "run.json"
        assert str(args.output_dir) == "out"
        assert args.format_version == 2

    def test_no_command(self, capsys):
        """Test running without a command prints help and fails."""
        assert main([]) == 1


class TestCommands:
    """Tests for the build and stats commands."""

    def test_build_and_stats(self, geonames, capsys):
        """Test building a database and reading its statistics back."""
        run_file = write_run_file(geonames)

        assert main(["build", str(run_file)]) == 0
        database = geonames.output_dir / "geolocation.dat"
        assert database.exists()
        out = capsys.readouterr().out
        assert "Cities written: 2" in out
        assert "Format version: 1" in out

        assert main(["stats", str(database)]) == 0
        out = capsys.readouterr().out
        assert "Cities: 2" in out
        assert "Regions: 1" in out

    def test_format_override(self, geonames, capsys, tmp_path):
        """Test --format-version overrides the run file."""
        run_file = write_run_file(geonames)
        assert main(["build", str(run_file), "--format-version", "2", "-o", str(tmp_path / "v2")]) == 0
        assert "Format version: 2" in capsys.readouterr().out
        assert (tmp_path / "v2" / "geolocation.dat").read_bytes().startswith(b"Geolocation2\t")

    def test_build_error(self, geonames, capsys):
        """Test a missing reference table exits with status 1."""
        run_file = write_run_file(geonames)
        geonames.countries.unlink()
        assert main(["build", str(run_file)]) == 1
        assert "Cannot read country table" in capsys.readouterr().err
