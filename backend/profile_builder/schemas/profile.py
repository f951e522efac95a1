"""ProfileDocument schema.

The profile document travels through the pipeline as a plain camelCase
dict so PathMutator can address it by path. These models are the single
place its shape is defined: every collaborator result and every rehydrated
draft is passed through normalize_document() before the pipeline touches it.

Normalisation rules:
- null scalars become "" and numbers become strings
- null or missing lists become []
- unknown keys are dropped
- keys are emitted in camelCase
"""

from collections.abc import Mapping
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _coerce_text(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    return value


def _coerce_list(value: Any) -> Any:
    if value is None:
        return []
    return value


def _coerce_object(value: Any) -> Any:
    if value is None:
        return {}
    return value


def _drop_non_mappings(value: Any) -> Any:
    """Drop list items an external service returned as bare strings or nulls."""
    if isinstance(value, list):
        return [item for item in value if isinstance(item, Mapping)]
    return _coerce_list(value)


Text = Annotated[str, BeforeValidator(_coerce_text)]
TextList = Annotated[list[Text], BeforeValidator(_coerce_list)]
_DropNonMappings = BeforeValidator(_drop_non_mappings)


class _ProfileModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class PersonalInfo(_ProfileModel):
    name: Text = ""
    email: Text = ""
    phone: Text = ""
    location: Text = ""
    headline: Text = ""


class ExperienceEntry(_ProfileModel):
    title: Text = ""
    company: Text = ""
    location: Text = ""
    start_date: Text = ""
    end_date: Text = ""
    bullets: TextList = Field(default_factory=list)


class EducationEntry(_ProfileModel):
    degree: Text = ""
    institution: Text = ""
    location: Text = ""
    start_date: Text = ""
    end_date: Text = ""
    gpa: Text = ""


class SkillEntry(_ProfileModel):
    name: Text = ""
    category: Text = ""
    level: Text = ""
    key: Text = ""


class ProjectEntry(_ProfileModel):
    name: Text = ""
    description: Text = ""
    technologies: TextList = Field(default_factory=list)
    url: Text = ""
    start_date: Text = ""
    end_date: Text = ""


class LinkEntry(_ProfileModel):
    type: Text = ""
    url: Text = ""
    label: Text = ""


class LanguageEntry(_ProfileModel):
    language: Text = ""
    proficiency: Text = ""


class ReferenceEntry(_ProfileModel):
    name: Text = ""
    contact: Text = ""
    relationship: Text = ""


class UserAddition(_ProfileModel):
    question: Text = ""
    answer: Text = ""


class ProfileDocument(_ProfileModel):
    """Canonical structured résumé.

    Every top-level list is always present; an empty document is the
    skeleton returned for an empty upload.
    """

    personal_info: Annotated[PersonalInfo, BeforeValidator(_coerce_object)] = Field(
        default_factory=PersonalInfo
    )
    summary: Text = ""
    experience: Annotated[list[ExperienceEntry], _DropNonMappings] = Field(default_factory=list)
    education: Annotated[list[EducationEntry], _DropNonMappings] = Field(default_factory=list)
    skills: Annotated[list[SkillEntry], _DropNonMappings] = Field(default_factory=list)
    projects: Annotated[list[ProjectEntry], _DropNonMappings] = Field(default_factory=list)
    links: Annotated[list[LinkEntry], _DropNonMappings] = Field(default_factory=list)
    certificates: TextList = Field(default_factory=list)
    languages: Annotated[list[LanguageEntry], _DropNonMappings] = Field(default_factory=list)
    references: Annotated[list[ReferenceEntry], _DropNonMappings] = Field(default_factory=list)
    user_additions: Annotated[list[UserAddition], _DropNonMappings] = Field(default_factory=list)


# camelCase names of the top-level list fields, in document order
TOP_LEVEL_LIST_FIELDS: tuple[str, ...] = (
    "experience",
    "education",
    "skills",
    "projects",
    "links",
    "certificates",
    "languages",
    "references",
    "userAdditions",
)


def empty_document() -> dict[str, Any]:
    """Return the empty skeleton: every field present, every list empty."""
    return ProfileDocument().model_dump(by_alias=True)


def normalize_document(data: Mapping[str, Any] | None) -> dict[str, Any]:
    """Validate a raw profile mapping and return it in canonical form.

    Args:
        data: Profile mapping from a collaborator, a draft, or a request.
            Keys may be camelCase or snake_case.

    Returns:
        A new camelCase dict with every field present.

    Raises:
        pydantic.ValidationError: If a field has an unusable type
            (e.g. an object where text is expected).
    """
    if data is None:
        return empty_document()
    return ProfileDocument.model_validate(dict(data)).model_dump(by_alias=True)


__all__ = [
    "EducationEntry",
    "ExperienceEntry",
    "LanguageEntry",
    "LinkEntry",
    "PersonalInfo",
    "ProfileDocument",
    "ProjectEntry",
    "ReferenceEntry",
    "SkillEntry",
    "TOP_LEVEL_LIST_FIELDS",
    "UserAddition",
    "empty_document",
    "normalize_document",
]
