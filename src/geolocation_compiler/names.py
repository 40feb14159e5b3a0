"""
Alternate-name resolution.

Every emitted entity (city, subregion, region, country) collects alternate
name candidates from the alternate-names table. Candidates without a
language become the city's generic alternate-name list; candidates with a
language compete for the single translation of that entity in that
language. Per-language tables are then keyed by the entity's primary name,
with same-named entities disambiguated by their administrative context.
"""

from __future__ import annotations

import enum
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

# Codes in the language column that are not languages
PSEUDO_LANGUAGES = frozenset({
    "post", "link", "iata", "icao", "faac", "abbr", "wkdt", "unlc", "fr_1793", "tcid",
})

KEY_SEPARATOR = ","


class NameFlags(enum.Flag):
    """Attributes of an alternate-name candidate."""

    PREFERRED = enum.auto()
    SHORT = enum.auto()
    COLLOQUIAL = enum.auto()
    HISTORIC = enum.auto()

    @classmethod
    def from_columns(cls, preferred: bool, short: bool, colloquial: bool, historic: bool) -> "NameFlags":
        flags = cls(0)
        if preferred:
            flags |= cls.PREFERRED
        if short:
            flags |= cls.SHORT
        if colloquial:
            flags |= cls.COLLOQUIAL
        if historic:
            flags |= cls.HISTORIC
        return flags

    @property
    def is_preferred(self) -> bool:
        return bool(self & NameFlags.PREFERRED)

    @property
    def is_short(self) -> bool:
        return bool(self & NameFlags.SHORT)

    @property
    def is_colloquial(self) -> bool:
        return bool(self & NameFlags.COLLOQUIAL)

    @property
    def is_historic(self) -> bool:
        return bool(self & NameFlags.HISTORIC)

    @property
    def priority(self) -> int:
        """0 for short names, 1 for preferred names, 2 otherwise (lower wins)."""
        if self.is_short:
            return 0
        if self.is_preferred:
            return 1
        return 2


class EntityKind(enum.Enum):
    CITY = "city"
    SUBREGION = "subregion"
    REGION = "region"
    COUNTRY = "country"


def strip_commas(text: str) -> str:
    return text.replace(",", "")


def has_qualifier(text: str) -> bool:
    """Whether a translation carries a bracketed qualifier like "Paris (Texas)"."""
    return "(" in text or "[" in text


@dataclass(frozen=True)
class NamedEntity:
    """An emitted entity together with the context used to disambiguate it."""

    kind: EntityKind
    geoname_id: int
    name: str
    country_code: str
    region_name: str = ""
    subregion_name: str = ""

    @property
    def plain_key(self) -> str:
        return strip_commas(self.name)

    def qualified_key(self) -> str:
        """
        Key distinguishing this entity from same-named ones.

        Cities: name,CC,region,subregion. Subregions: name,CC,region.
        Regions: name,CC. Countries: CC.
        """
        if self.kind is EntityKind.COUNTRY:
            return self.country_code
        parts = [self.plain_key, self.country_code]
        if self.kind in (EntityKind.CITY, EntityKind.SUBREGION):
            parts.append(strip_commas(self.region_name))
        if self.kind is EntityKind.CITY:
            parts.append(strip_commas(self.subregion_name))
        return KEY_SEPARATOR.join(parts)


@dataclass
class LanguageNameTable:
    """Everything written to one per-language lookup file."""

    language: str
    names: Dict[str, str] = field(default_factory=dict)
    feature_names: Dict[str, str] = field(default_factory=dict)


EntityId = Tuple[EntityKind, int]


class NameResolver:
    """
    Accumulates alternate-name candidates for one compiler run.

    Usage:
        resolver = NameResolver(default_languages)
        resolver.add_entity(entity, candidates)
        ...
        resolver.apply_country_defaults()
        tables = resolver.language_tables()
    """

    def __init__(self, default_languages: Optional[Mapping[str, str]] = None):
        """
        Args:
            default_languages: Country code -> base language code
        """
        self.default_languages = dict(default_languages or {})
        self._entities: Dict[EntityId, NamedEntity] = {}
        self._generic: Dict[EntityId, List[str]] = {}
        self._translations: Dict[str, Dict[EntityId, Tuple[int, str]]] = {}
        self.flags: Dict[EntityId, NameFlags] = {}
        """Union of candidate flags per entity, for diagnostics."""

    @staticmethod
    def _entity_id(entity: NamedEntity) -> EntityId:
        return entity.kind, entity.geoname_id

    def add_entity(self, entity: NamedEntity, candidates: Iterable) -> None:
        """
        Register an entity and offer its alternate-name candidates.

        Args:
            entity: The emitted entity
            candidates: Objects with language, name and flags attributes,
                in file order
        """
        entity_id = self._entity_id(entity)
        self._entities.setdefault(entity_id, entity)
        generic = self._generic.setdefault(entity_id, [])
        seen_generic = {name.lower() for name in generic}
        seen_generic.add(strip_commas(entity.name).lower())

        for candidate in candidates:
            self.flags[entity_id] = self.flags.get(entity_id, NameFlags(0)) | candidate.flags

            language = candidate.language
            if not language:
                name = strip_commas(candidate.name).strip()
                if name and name.lower() not in seen_generic:
                    seen_generic.add(name.lower())
                    generic.append(name)
                continue

            if language in PSEUDO_LANGUAGES:
                continue
            if candidate.flags.is_colloquial or candidate.flags.is_historic:
                continue

            self._offer(language, entity_id, candidate.flags.priority, candidate.name)

    def _offer(self, language: str, entity_id: EntityId, priority: int, name: str) -> None:
        table = self._translations.setdefault(language, {})
        current = table.get(entity_id)
        if current is None or priority < current[0]:
            table[entity_id] = (priority, name)

    def generic_names(self, entity: NamedEntity) -> List[str]:
        """Case-insensitively unique language-less alternates, commas stripped."""
        return list(self._generic.get(self._entity_id(entity), []))

    def translation(self, entity: NamedEntity, language: str) -> Optional[str]:
        entry = self._translations.get(language, {}).get(self._entity_id(entity))
        return entry[1] if entry else None

    @property
    def languages(self) -> List[str]:
        return sorted(self._translations)

    def apply_country_defaults(self) -> None:
        """
        Copy base-language names into the country-qualified variant.

        For an entity in a country whose default language is L, an L name is
        copied to "L-CC" when the entity has none there yet, creating the
        "L-CC" language if needed.
        """
        for entity_id, entity in self._entities.items():
            base = self.default_languages.get(entity.country_code)
            if not base:
                continue
            variant = f"{base}-{entity.country_code}"
            base_entry = self._translations.get(base, {}).get(entity_id)
            if base_entry is not None:
                self._translations.setdefault(variant, {}).setdefault(entity_id, base_entry)

    def disambiguate(self, language: str) -> Dict[str, str]:
        """
        Build the key -> translation mapping of one language.

        Entities sharing a plain key get one bare entry, holding the most
        frequent unqualified translation (ties: shorter, then lexically
        smaller). The first entity carrying that translation is represented
        by the bare key; every other entity gets its qualified key.
        """
        groups: Dict[str, List[Tuple[NamedEntity, str]]] = {}
        for entity_id, (_, translation) in self._translations.get(language, {}).items():
            entity = self._entities[entity_id]
            groups.setdefault(entity.plain_key, []).append((entity, translation))

        result: Dict[str, str] = {}
        for key, members in groups.items():
            counts = Counter(translation for _, translation in members)
            eligible = [t for t in counts if not has_qualifier(t)] or list(counts)
            best = min(eligible, key=lambda t: (-counts[t], len(t), t))
            result[key] = best

            bare_used = False
            for entity, translation in members:
                if translation == best and not bare_used:
                    bare_used = True
                    continue
                qualified = entity.qualified_key()
                if qualified in result:
                    logger.debug(
                        "Dropping %s translation %r of %s: key %r already taken",
                        language, translation, entity.geoname_id, qualified,
                    )
                    continue
                result[qualified] = translation

        return result

    def language_tables(
        self, feature_names: Optional[Mapping[str, Mapping[str, str]]] = None,
        default_language: str = "en",
    ) -> List[LanguageNameTable]:
        """
        Build the lookup table of every resolved language.

        Args:
            feature_names: Language -> feature code -> display name
            default_language: Feature-name table used when a language has none
        """
        feature_names = feature_names or {}
        fallback = feature_names.get(default_language, {})
        tables = []
        for language in self.languages:
            names = self.disambiguate(language)
            if not names:
                continue
            base = language.split("-")[0]
            features = feature_names.get(language) or feature_names.get(base) or fallback
            tables.append(LanguageNameTable(language, names, dict(features)))
        return tables
