"""Data models for curriculum reference data."""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field

SUBJECT_DOMAINS = {
    "FR": "francais",
    "MA": "mathematiques",
}


def domain_from_code(code: str) -> str:
    """Derive the subject domain from a code like CE1.MA.N1.2."""
    parts = code.split(".")
    if len(parts) < 2:
        return "unknown"
    subject = parts[1].upper()
    return SUBJECT_DOMAINS.get(subject, subject.lower())


def subdomain_from_code(code: str) -> str:
    """Derive the subdomain from the third code segment."""
    parts = code.split(".")
    if len(parts) >= 3:
        return parts[2].lower()
    return "unknown"


def level_from_code(code: str) -> str:
    """The level is the first code segment (CP, CE1, ...)."""
    return code.split(".", 1)[0]


@dataclass(frozen=True)
class Skill:
    """A curriculum skill (competence). Immutable once the curriculum is loaded."""

    code: str
    level: str
    domain: str
    subdomain: str
    title: str = ""
    description: str = ""
    prerequisite_codes: tuple[str, ...] = field(default_factory=tuple)
    qualitative_leap: str | None = None
    novelty: str | None = None

    @property
    def is_qualitative_leap(self) -> bool:
        """A skill is a major leap if it is flagged with a leap or a novelty note."""
        return bool(self.qualitative_leap or self.novelty)


class SkillRecord(BaseModel):
    """Validated shape of one skill entry in a curriculum file."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    code: str = Field(min_length=1)
    level: str | None = None
    domain: str | None = None
    subdomain: str | None = None
    title: str = ""
    description: str = ""
    prerequisites: list[str] = Field(default_factory=list)
    qualitative_leap: str | None = None
    novelty: str | None = None

    def to_skill(self) -> Skill:
        """Build the immutable Skill, deriving missing hierarchy fields from the code."""
        prerequisites: list[str] = []
        for code in self.prerequisites:
            if code and code not in prerequisites and code != self.code:
                prerequisites.append(code)
        return Skill(
            code=self.code,
            level=self.level or level_from_code(self.code),
            domain=self.domain or domain_from_code(self.code),
            subdomain=self.subdomain or subdomain_from_code(self.code),
            title=self.title,
            description=self.description,
            prerequisite_codes=tuple(prerequisites),
            qualitative_leap=self.qualitative_leap or None,
            novelty=self.novelty or None,
        )


class CurriculumFile(BaseModel):
    """Top-level shape of a curriculum JSON file."""

    model_config = ConfigDict(extra="ignore")

    name: str = "curriculum"
    skills: list[SkillRecord] = Field(default_factory=list)


@dataclass(frozen=True)
class PrerequisiteEdge:
    """A weighted prerequisite relationship (skill requires prerequisite)."""

    skill_code: str
    prerequisite_code: str
    weight: float
    description: str = ""
