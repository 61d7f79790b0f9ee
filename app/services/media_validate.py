from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic import ValidationError as PydanticValidationError

from app.services.errors import ValidationError


EPOCH_YEAR = 2000
TITLE_MAX = 100
_YEAR_RE = re.compile(r"^\d{4}$")


@dataclass(frozen=True)
class KindRules:
    kind: str
    id_prefix: str
    categories: tuple[str, ...]
    sections: tuple[str, ...]
    default_category: str | None
    default_section: str
    description_max: int
    has_completed: bool


GALLERY = KindRules(
    kind="gallery",
    id_prefix="gal",
    categories=("events", "movies", "celebrations", "awards", "behind-the-scenes", "other"),
    sections=("home", "gallery", "about", "events"),
    default_category=None,
    default_section="gallery",
    description_max=500,
    has_completed=False,
)

PROJECT = KindRules(
    kind="project",
    id_prefix="prj",
    categories=("movies", "web-series", "short-films", "documentaries", "events", "other"),
    sections=("Banner", "Featured", "Regular"),
    default_category="other",
    default_section="Banner",
    description_max=1000,
    has_completed=True,
)

KINDS: dict[str, KindRules] = {r.kind: r for r in (GALLERY, PROJECT)}

METADATA_FIELDS = ("title", "description", "category", "section", "year", "completed")


def rules_for(kind: str) -> KindRules:
    try:
        return KINDS[kind]
    except KeyError:
        raise ValueError(f"Unknown media kind: {kind}") from None


def _rules(info: ValidationInfo) -> KindRules:
    return info.context["rules"]


class MediaMetadata(BaseModel):
    """Metadata accepted for one media record; enumerations come from the validation context."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    title: str | None = Field(default=None, validate_default=True)
    description: str = ""
    category: str | None = Field(default=None, validate_default=True)
    section: str | None = Field(default=None, validate_default=True)
    year: str | None = Field(default=None, validate_default=True)
    completed: bool | None = Field(default=None, validate_default=True)

    @field_validator("title")
    @classmethod
    def _title(cls, v: str | None) -> str:
        if not v:
            raise ValueError("Title is required")
        if len(v) > TITLE_MAX:
            raise ValueError(f"Title cannot exceed {TITLE_MAX} characters")
        return v

    @field_validator("description")
    @classmethod
    def _description(cls, v: str, info: ValidationInfo) -> str:
        limit = _rules(info).description_max
        if len(v) > limit:
            raise ValueError(f"Description cannot exceed {limit} characters")
        return v

    @field_validator("category")
    @classmethod
    def _category(cls, v: str | None, info: ValidationInfo) -> str:
        rules = _rules(info)
        if not v:
            if rules.default_category is None:
                raise ValueError("Category is required")
            return rules.default_category
        if v not in rules.categories:
            raise ValueError(f"Category must be one of: {', '.join(rules.categories)}")
        return v

    @field_validator("section")
    @classmethod
    def _section(cls, v: str | None, info: ValidationInfo) -> str:
        rules = _rules(info)
        if not v:
            return rules.default_section
        if v not in rules.sections:
            raise ValueError(f"Section must be one of: {', '.join(rules.sections)}")
        return v

    @field_validator("year", mode="before")
    @classmethod
    def _year(cls, v: Any) -> str:
        current = datetime.now(timezone.utc).year
        if v is None or v == "":
            return str(current)
        v = str(v).strip()
        if not _YEAR_RE.match(v):
            raise ValueError("Year must be a 4-digit number")
        if int(v) < EPOCH_YEAR:
            raise ValueError(f"Year must be {EPOCH_YEAR} or later")
        if int(v) > current:
            raise ValueError("Year cannot be in the future")
        return v

    @field_validator("completed")
    @classmethod
    def _completed(cls, v: bool | None, info: ValidationInfo) -> bool | None:
        if not _rules(info).has_completed:
            if v is not None:
                raise ValueError("completed applies to projects only")
            return None
        return bool(v)


def _to_validation_error(e: PydanticValidationError) -> ValidationError:
    details: list[dict[str, Any]] = []
    for err in e.errors():
        ctx_error = (err.get("ctx") or {}).get("error")
        message = str(ctx_error) if ctx_error is not None else err["msg"]
        field = ".".join(str(p) for p in err["loc"]) or "body"
        details.append({"field": field, "message": message})
    return ValidationError(". ".join(d["message"] for d in details), details=details)


def normalize_metadata(kind: str, raw: dict[str, Any]) -> dict[str, Any]:
    """
    Validate and normalize record metadata for ``kind``.

    Strings are trimmed, defaults applied, enumerations enforced.
    Raises ValidationError with one detail per offending field.
    """
    rules = rules_for(kind)
    try:
        obj = MediaMetadata.model_validate(raw, context={"rules": rules})
    except PydanticValidationError as e:
        raise _to_validation_error(e) from None
    return obj.model_dump()


def merge_patch(current: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    # None means "not supplied"; everything else replaces the stored value
    merged = dict(current)
    merged.update({k: v for k, v in patch.items() if v is not None})
    return merged
