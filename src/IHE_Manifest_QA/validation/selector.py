"""Validator selection by content type and profile."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .catalog import ConceptCode, ProfileRules, RuleCatalog, Template, TemplateKey

__all__ = ["Profile", "ValidationPlan", "ValidatorSelector"]

_DEFAULT_ALIASES = frozenset({"", "default", "none"})


class Profile(str, Enum):
    """Validation profiles. ``DEFAULT`` applies the base document rules only."""

    DEFAULT = "default"
    XDSI_MANIFEST = "IHEXDSIManifest"
    MADO = "IHEMADO"

    @classmethod
    def parse(cls, name: str | None) -> Profile | None:
        """Case-insensitive lookup; ``None`` for names that are not profiles."""
        if name is None or name.strip().casefold() in _DEFAULT_ALIASES:
            return cls.DEFAULT
        wanted = name.strip().casefold()
        for member in cls:
            if member.value.casefold() == wanted:
                return member
        return None


@dataclass(frozen=True, slots=True)
class ValidationPlan:
    """Everything the checks need to know about one validation run."""

    family: str
    profile: Profile
    requested_profile: str | None
    root_template: Template
    identification: TemplateKey
    identification_required: bool
    allowed_titles: tuple[ConceptCode, ...] = ()
    forbidden_titles: tuple[ConceptCode, ...] = ()
    timezone_required: bool = False
    retrieval_required: bool = False
    fallback: bool = False


class ValidatorSelector:
    """Maps ``(content type, profile)`` to a :class:`ValidationPlan`."""

    def __init__(self, catalog: RuleCatalog) -> None:
        self._catalog = catalog

    def select(self, document_type_id: str | None, profile: str | Profile | None = None) -> ValidationPlan | None:
        if not document_type_id:
            return None
        family = self._catalog.family_for(document_type_id.strip().rstrip("\x00"))
        if family is None:
            return None

        requested = profile.value if isinstance(profile, Profile) else profile
        parsed = Profile.parse(requested)
        rules: ProfileRules | None = None
        if parsed is not None:
            name = family.default_profile if parsed is Profile.DEFAULT else parsed.value
            rules = family.profile_rules(name)
        fallback = rules is None
        if rules is None:
            parsed = Profile.DEFAULT
            rules = family.profile_rules(family.default_profile)

        root = self._catalog.resolve(rules.root_template)
        if root is None:
            return None
        return ValidationPlan(
            family=family.name,
            profile=parsed,
            requested_profile=requested,
            root_template=root,
            identification=rules.identification,
            identification_required=rules.identification_required,
            allowed_titles=rules.allowed_titles,
            forbidden_titles=rules.forbidden_titles,
            timezone_required=rules.timezone_required,
            retrieval_required=rules.retrieval_required,
            fallback=fallback,
        )
