"""Data models for Lisa interviews.

Defines dataclasses for structured questions and the PRD completion payload
produced by the AI. Models convert to and from the camelCase JSON shape used
on the wire and in PRD files.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class QuestionOption:
    """One choice in a structured multiple-choice question."""

    label: str
    description: str

    def to_dict(self) -> dict[str, str]:
        return {"label": self.label, "description": self.description}


@dataclass
class StructuredQuestion:
    """A multiple-choice question emitted by the AI inside a question block.

    Attributes:
        header: Short label shown above the question (presentation limit 12 chars)
        question: Full question text
        options: Available choices
        multi_select: Whether more than one option may be selected
    """

    header: str
    question: str
    options: list[QuestionOption]
    multi_select: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "header": self.header,
            "question": self.question,
            "options": [option.to_dict() for option in self.options],
            "multiSelect": self.multi_select,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StructuredQuestion":
        """Build from an already shape-checked question payload."""
        return cls(
            header=data["header"],
            question=data["question"],
            options=[
                QuestionOption(label=opt["label"], description=opt["description"])
                for opt in data["options"]
            ],
            multi_select=data["multiSelect"],
        )


@dataclass
class UserStory:
    """A user story in the generated PRD."""

    title: str
    description: str
    acceptance_criteria: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "acceptanceCriteria": list(self.acceptance_criteria),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserStory":
        criteria = data.get("acceptanceCriteria")
        return cls(
            title=str(data.get("title", "")),
            description=str(data.get("description", "")),
            acceptance_criteria=[str(c) for c in criteria]
            if isinstance(criteria, list)
            else [],
        )


@dataclass
class PRD:
    """Product Requirements Document content."""

    overview: str
    user_stories: list[UserStory] = field(default_factory=list)
    technical_notes: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "overview": self.overview,
            "userStories": [story.to_dict() for story in self.user_stories],
            "technicalNotes": self.technical_notes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PRD":
        """Build leniently: missing fields become empty, non-object stories are skipped."""
        stories = data.get("userStories")
        return cls(
            overview=str(data.get("overview", "")),
            user_stories=[
                UserStory.from_dict(story)
                for story in (stories if isinstance(stories, list) else [])
                if isinstance(story, dict)
            ],
            technical_notes=str(data.get("technicalNotes", "")),
        )


@dataclass
class Completion:
    """Terminal artifact of an interview: the PRD and its filename slug."""

    slug: str
    prd: PRD

    def to_dict(self) -> dict[str, Any]:
        return {"slug": self.slug, "prd": self.prd.to_dict()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Completion":
        prd = data.get("prd")
        return cls(
            slug=str(data.get("slug", "")),
            prd=PRD.from_dict(prd if isinstance(prd, dict) else {}),
        )
