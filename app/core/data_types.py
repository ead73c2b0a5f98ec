"""Open registry of document types.

``data_type`` is an open string enumeration. Known types carry defaults
(visibility, chunk window) and aliases; unknown but well-formed names are
accepted with a generic handler. Access control never looks at the type, so
adding one needs no change to the scope code.

Usage:
    from app.core.data_types import register_data_type, DataTypeHandler

    register_data_type(DataTypeHandler(name="worksheet", description="Client worksheets"))
"""

import re
from dataclasses import dataclass, field

from app.core.schemas_data_items import VisibilityLevel

_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]{0,63}$")


@dataclass(frozen=True)
class DataTypeHandler:
    """Per-type defaults used at ingestion time."""

    name: str
    description: str = ""
    default_visibility: VisibilityLevel = VisibilityLevel.COACH_ONLY
    chunk_max_chars: int = 1200
    chunk_overlap: int = 120
    aliases: tuple[str, ...] = field(default_factory=tuple)


_REGISTRY: dict[str, DataTypeHandler] = {}
_ALIASES: dict[str, str] = {}


def is_valid_type_name(name: str) -> bool:
    return bool(_NAME_PATTERN.match(name))


def register_data_type(handler: DataTypeHandler) -> DataTypeHandler:
    """
    Register (or replace) a data type handler.

    Raises:
        ValueError: If the name or an alias is malformed, or an alias is
            already bound to a different type
    """
    for name in (handler.name, *handler.aliases):
        if not is_valid_type_name(name):
            raise ValueError(f"Invalid data type name: {name!r}")
    for alias in handler.aliases:
        bound = _ALIASES.get(alias)
        if bound and bound != handler.name:
            raise ValueError(f"Alias {alias!r} already bound to {bound!r}")

    _REGISTRY[handler.name] = handler
    for alias in handler.aliases:
        _ALIASES[alias] = handler.name
    return handler


def normalize_data_type(name: str) -> str:
    """
    Canonical form of a type name: trimmed, lower-cased, alias resolved.

    Raises:
        ValueError: If the result is not a well-formed type name
    """
    normalized = name.strip().lower()
    normalized = _ALIASES.get(normalized, normalized)
    if not is_valid_type_name(normalized):
        raise ValueError(f"Invalid data type name: {name!r}")
    return normalized


def get_data_type(name: str) -> DataTypeHandler:
    """Handler for a type, falling back to a generic one for unregistered names."""
    normalized = normalize_data_type(name)
    return _REGISTRY.get(normalized) or DataTypeHandler(name=normalized)


def list_data_types() -> list[DataTypeHandler]:
    return sorted(_REGISTRY.values(), key=lambda h: h.name)


# Built-in coaching document types
register_data_type(DataTypeHandler(
    name="transcript",
    description="Coaching session transcripts",
    default_visibility=VisibilityLevel.COACH_ONLY,
    chunk_max_chars=2400,
    chunk_overlap=240,
))
register_data_type(DataTypeHandler(
    name="assessment",
    description="Client assessments (personality, 360 feedback, skills)",
    default_visibility=VisibilityLevel.COACH_ONLY,
))
register_data_type(DataTypeHandler(
    name="coach_assessment",
    description="A coach's own assessments",
    default_visibility=VisibilityLevel.PRIVATE,
))
register_data_type(DataTypeHandler(
    name="coaching_model",
    description="Coaching models, frameworks and evaluation criteria",
    default_visibility=VisibilityLevel.COACH_ONLY,
    chunk_max_chars=1600,
    chunk_overlap=160,
))
register_data_type(DataTypeHandler(
    name="organization_doc",
    description="Client organization documents (OKRs, org charts, operating materials)",
    default_visibility=VisibilityLevel.ORG_VISIBLE,
    aliases=("company_doc",),
))
register_data_type(DataTypeHandler(
    name="goal",
    description="Client development goals and milestones",
    default_visibility=VisibilityLevel.COACH_ONLY,
    chunk_max_chars=800,
    chunk_overlap=80,
))
register_data_type(DataTypeHandler(
    name="note",
    description="Coach session notes and observations",
    default_visibility=VisibilityLevel.PRIVATE,
    chunk_max_chars=800,
    chunk_overlap=80,
))
register_data_type(DataTypeHandler(
    name="blog_post",
    description="Coach-authored articles and newsletters",
    default_visibility=VisibilityLevel.PUBLIC,
))
register_data_type(DataTypeHandler(
    name="questionnaire",
    description="Client intake questionnaires and coaching forms",
    default_visibility=VisibilityLevel.COACH_ONLY,
))
