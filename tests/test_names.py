"""Tests for alternate-name resolution and disambiguation."""

import logging

from geolocation_compiler.alternates import AlternateName
from geolocation_compiler.names import (
    EntityKind,
    NameFlags,
    NamedEntity,
    NameResolver,
    has_qualifier,
)


def alt(name, language="", **flags):
    return AlternateName(0, language, name, NameFlags.from_columns(
        flags.get("preferred", False), flags.get("short", False),
        flags.get("colloquial", False), flags.get("historic", False),
    ))


def city(geoname_id, name="Springfield", country="US", region="Illinois", subregion="Sangamon County"):
    return NamedEntity(EntityKind.CITY, geoname_id, name, country, region, subregion)


class TestNameFlags:
    """Tests for the flag set."""

    def test_predicates(self):
        """Test the flag predicates."""
        flags = NameFlags.from_columns(True, False, False, True)
        assert flags.is_preferred
        assert flags.is_historic
        assert not flags.is_short
        assert not flags.is_colloquial

    def test_priority(self):
        """Test short beats preferred beats plain."""
        assert NameFlags.SHORT.priority == 0
        assert (NameFlags.SHORT | NameFlags.PREFERRED).priority == 0
        assert NameFlags.PREFERRED.priority == 1
        assert NameFlags(0).priority == 2


class TestQualifiedKeys:
    """Tests for disambiguation keys."""

    def test_city(self):
        """Test the city key carries region and subregion."""
        assert city(1).qualified_key() == "Springfield,US,Illinois,Sangamon County"

    def test_blank_components(self):
        """Test blank components are kept in the key."""
        assert city(1, region="", subregion="").qualified_key() == "Springfield,US,,"

    def test_subregion(self):
        """Test the subregion key carries the region."""
        entity = NamedEntity(EntityKind.SUBREGION, 2, "Greene County", "US", "Missouri")
        assert entity.qualified_key() == "Greene County,US,Missouri"

    def test_region(self):
        """Test the region key carries the country."""
        entity = NamedEntity(EntityKind.REGION, 3, "Georgia", "US")
        assert entity.qualified_key() == "Georgia,US"

    def test_country(self):
        """Test the country key is its code."""
        entity = NamedEntity(EntityKind.COUNTRY, 4, "Georgia", "GE")
        assert entity.qualified_key() == "GE"

    def test_commas_stripped(self):
        """Test commas are removed from the plain key."""
        assert city(1, name="Spring, field").plain_key == "Spring field"


class TestGenericNames:
    """Tests for language-less alternates."""

    def test_deduplicated_case_insensitively(self):
        """Test generic names are unique ignoring case and exclude the own name."""
        resolver = NameResolver()
        entity = city(1)
        resolver.add_entity(entity, [alt("Springfeld"), alt("SPRINGFELD"), alt("Spring,ville"),
                                     alt("springfield"), alt("Springfield", "de")])
        assert resolver.generic_names(entity) == ["Springfeld", "Springville"]


class TestTranslations:
    """Tests for per-language candidate selection."""

    def test_historic_and_colloquial_excluded(self):
        """Test historic and colloquial names are never translations."""
        resolver = NameResolver()
        entity = city(1)
        resolver.add_entity(entity, [
            alt("Old Springfield", "de", historic=True),
            alt("Springy", "de", colloquial=True, short=True),
        ])
        assert resolver.translation(entity, "de") is None
        assert resolver.language_tables() == []
        assert resolver.flags[(EntityKind.CITY, 1)] & NameFlags.HISTORIC

    def test_better_priority_replaces(self):
        """Test a better priority replaces the kept name."""
        resolver = NameResolver()
        entity = city(1)
        resolver.add_entity(entity, [alt("Plain", "fr"), alt("Preferred", "fr", preferred=True),
                                     alt("Short", "fr", short=True)])
        assert resolver.translation(entity, "fr") == "Short"

    def test_worse_priority_never_overwrites(self):
        """Test an equal or worse priority keeps the first name."""
        resolver = NameResolver()
        entity = city(1)
        resolver.add_entity(entity, [alt("First", "fr", preferred=True), alt("Second", "fr", preferred=True),
                                     alt("Third", "fr")])
        assert resolver.translation(entity, "fr") == "First"

    def test_pseudo_languages_ignored(self):
        """Test link and code columns are not languages."""
        resolver = NameResolver()
        entity = city(1)
        resolver.add_entity(entity, [alt("https://example.org", "link"), alt("SPI", "iata")])
        assert resolver.languages == []


class TestCountryDefaults:
    """Tests for copying base-language names into country variants."""

    def test_copied_when_variant_exists(self):
        """Test base names fill gaps in an existing country variant."""
        resolver = NameResolver({"BR": "pt"})
        sao_paulo = city(1, "São Paulo", "BR", "São Paulo", "")
        rio = city(2, "Rio de Janeiro", "BR", "Rio de Janeiro", "")
        resolver.add_entity(sao_paulo, [alt("São Paulo", "pt")])
        resolver.add_entity(rio, [alt("Rio de Janeiro", "pt"), alt("Rio", "pt-BR")])

        resolver.apply_country_defaults()

        assert resolver.translation(sao_paulo, "pt-BR") == "São Paulo"
        assert resolver.translation(rio, "pt-BR") == "Rio"

    def test_variant_created_from_base(self):
        """Test a country variant is created when only the base language occurs."""
        resolver = NameResolver({"BR": "pt"})
        entity = city(1, "São Paulo", "BR", "São Paulo", "")
        resolver.add_entity(entity, [alt("São Paulo", "pt")])

        resolver.apply_country_defaults()

        assert resolver.languages == ["pt", "pt-BR"]
        assert resolver.translation(entity, "pt-BR") == "São Paulo"

    def test_other_countries_untouched(self):
        """Test names are only copied for the entity's own country."""
        resolver = NameResolver({"BR": "pt"})
        entity = city(1, "Lisboa", "PT", "Lisboa", "")
        resolver.add_entity(entity, [alt("Lisboa", "pt")])
        resolver.apply_country_defaults()
        assert resolver.languages == ["pt"]


class TestDisambiguation:
    """Tests for per-language key construction."""

    def test_identical_translations(self):
        """Test two same-named cities yield one bare and one qualified key."""
        resolver = NameResolver()
        resolver.add_entity(city(1, region="Missouri", subregion="Greene County"), [alt("Springfield", "de")])
        resolver.add_entity(city(2), [alt("Springfield", "de")])

        names = resolver.disambiguate("de")
        assert names == {
            "Springfield": "Springfield",
            "Springfield,US,Illinois,Sangamon County": "Springfield",
        }

    def test_most_frequent_translation_wins(self):
        """Test the bare key takes the most frequent translation."""
        resolver = NameResolver()
        resolver.add_entity(city(1, region="A"), [alt("Rare", "es")])
        resolver.add_entity(city(2, region="B"), [alt("Common", "es")])
        resolver.add_entity(city(3, region="C"), [alt("Common", "es")])

        names = resolver.disambiguate("es")
        assert names["Springfield"] == "Common"
        assert names["Springfield,US,A,Sangamon County"] == "Rare"
        assert names["Springfield,US,C,Sangamon County"] == "Common"
        assert "Springfield,US,B,Sangamon County" not in names

    def test_ties_prefer_shorter_then_lexical(self):
        """Test frequency ties prefer shorter, then lexically smaller."""
        resolver = NameResolver()
        resolver.add_entity(city(1, region="A"), [alt("Bbb", "es")])
        resolver.add_entity(city(2, region="B"), [alt("Aaaa", "es")])
        resolver.add_entity(city(3, region="C"), [alt("Aaa", "es")])
        assert resolver.disambiguate("es")["Springfield"] == "Aaa"

    def test_qualified_translations_skipped_for_bare_key(self):
        """Test bracketed translations lose the bare key."""
        resolver = NameResolver()
        resolver.add_entity(city(1, region="A"), [alt("Springfield (Illinois)", "es")])
        resolver.add_entity(city(2, region="B"), [alt("Springfield (Illinois)", "es")])
        resolver.add_entity(city(3, region="C"), [alt("Springfield", "es")])
        assert resolver.disambiguate("es")["Springfield"] == "Springfield"

    def test_only_qualified_translations(self):
        """Test a bracketed translation is used when nothing else exists."""
        resolver = NameResolver()
        resolver.add_entity(city(1), [alt("Springfield [IL]", "es")])
        assert resolver.disambiguate("es") == {"Springfield": "Springfield [IL]"}

    def test_duplicate_qualified_key_logged(self, caplog):
        """Test a second entity with an identical qualified key is logged and dropped."""
        resolver = NameResolver()
        resolver.add_entity(city(1), [alt("Springfield", "de")])
        resolver.add_entity(city(2), [alt("Springfeld", "de")])
        resolver.add_entity(city(3), [alt("Sprungfeld", "de")])

        with caplog.at_level(logging.DEBUG, logger="geolocation_compiler.names"):
            names = resolver.disambiguate("de")

        assert names == {
            "Springfield": "Springfeld",
            "Springfield,US,Illinois,Sangamon County": "Springfield",
        }
        assert "Sprungfeld" in caplog.text
        assert "already taken" in caplog.text

    def test_has_qualifier(self):
        """Test bracket detection."""
        assert has_qualifier("Paris (Texas)")
        assert has_qualifier("Paris [TX]")
        assert not has_qualifier("Paris")

    def test_language_tables_feature_fallback(self):
        """Test feature names fall back to the default language."""
        resolver = NameResolver()
        resolver.add_entity(city(1), [alt("Springfield", "de"), alt("Springfield", "en")])
        tables = resolver.language_tables(
            {"en": {"PPL": "populated place"}, "de": {"PPL": "Ortschaft"}}, default_language="en"
        )
        by_language = {t.language: t for t in tables}
        assert by_language["de"].feature_names == {"PPL": "Ortschaft"}
        assert by_language["en"].feature_names == {"PPL": "populated place"}

        resolver.add_entity(city(2, region="B"), [alt("Springfield", "nl")])
        tables = {t.language: t for t in resolver.language_tables({"en": {"PPL": "populated place"}})}
        assert tables["nl"].feature_names == {"PPL": "populated place"}
