"""PRD output.

Turns an interview Completion into a markdown document and a JSON document
and writes both to the output directory as ``{slug}.md`` and ``{slug}.json``.
"""

import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog

from lisa.models import PRD, Completion, UserStory

logger = structlog.get_logger(__name__)

MAX_SLUG_LENGTH = 100
PRD_SCHEMA_URL = "https://lisa-cli.dev/schemas/prd-v1.json"
PRD_SCHEMA_VERSION = "1.0.0"

_SLUG_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$")


class PRDValidationError(Exception):
    """Raised when a completion cannot be written as a PRD."""

    def __init__(self, errors: list[str]):
        super().__init__(f"Invalid PRD: {'; '.join(errors)}")
        self.errors = errors


@dataclass
class PRDWriteResult:
    """Paths of the written PRD files."""

    markdown_path: Path
    json_path: Path


def validate_slug(slug: Any) -> list[str]:
    """Check a slug is usable as a filename. Returns a list of problems."""
    if not isinstance(slug, str):
        return ["slug must be a string"]
    errors = []
    if not slug:
        errors.append("slug cannot be empty")
    if len(slug) > MAX_SLUG_LENGTH:
        errors.append(f"slug cannot exceed {MAX_SLUG_LENGTH} characters")
    if slug and not _SLUG_PATTERN.match(slug):
        errors.append(
            "slug must contain only lowercase letters, numbers, and hyphens, "
            "and cannot start or end with a hyphen"
        )
    if "--" in slug:
        errors.append("slug cannot contain consecutive hyphens")
    return errors


def normalize_slug(text: str) -> str:
    """Turn arbitrary text into a valid slug (may be empty)."""
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower().strip()).strip("-")
    return slug[:MAX_SLUG_LENGTH].strip("-")


def validate_prd(prd: PRD) -> list[str]:
    """Check PRD content is complete enough to write."""
    errors = []
    if not prd.overview.strip():
        errors.append("overview cannot be empty")
    if not prd.user_stories:
        errors.append("at least one user story is required")
    for index, story in enumerate(prd.user_stories):
        if not story.title.strip():
            errors.append(f"userStories[{index}].title cannot be empty")
        if not story.description.strip():
            errors.append(f"userStories[{index}].description cannot be empty")
    return errors


def _title(slug: str, feature: str | None) -> str:
    return feature or " ".join(word.capitalize() for word in slug.split("-"))


def format_user_story(story: UserStory, index: int) -> str:
    lines = [f"### {index + 1}. {story.title}", "", story.description, ""]
    if story.acceptance_criteria:
        lines += ["**Acceptance Criteria:**", ""]
        lines += [f"- [ ] {criterion}" for criterion in story.acceptance_criteria]
    return "\n".join(lines).rstrip() + "\n"


def generate_markdown(prd: PRD, slug: str, feature: str | None = None) -> str:
    """Render the PRD as markdown."""
    today = datetime.now(timezone.utc).date().isoformat()
    lines = [
        f"# {_title(slug, feature)}",
        "",
        f"> Generated by Lisa CLI on {today}",
        "",
        "## Overview",
        "",
        prd.overview,
        "",
        "## User Stories",
        "",
    ]
    stories = [format_user_story(s, i) for i, s in enumerate(prd.user_stories)]
    lines.append("\n".join(stories))
    lines += ["## Technical Notes", "", prd.technical_notes, ""]
    return "\n".join(lines)


def generate_json(prd: PRD, slug: str, feature: str | None = None) -> dict[str, Any]:
    """Render the PRD as a JSON document with numbered stories and criteria."""
    return {
        "$schema": PRD_SCHEMA_URL,
        "version": PRD_SCHEMA_VERSION,
        "metadata": {
            "slug": slug,
            "title": _title(slug, feature),
            "generatedAt": datetime.now(timezone.utc).isoformat(),
            "generator": "lisa-cli",
        },
        "overview": prd.overview,
        "userStories": [
            {
                "id": story_index + 1,
                "title": story.title,
                "description": story.description,
                "acceptanceCriteria": [
                    {"id": number, "text": criterion, "completed": False}
                    for number, criterion in enumerate(story.acceptance_criteria, 1)
                ],
            }
            for story_index, story in enumerate(prd.user_stories)
        ],
        "technicalNotes": prd.technical_notes,
    }


def write_prd(
    completion: Completion, output_dir: Path, feature: str | None = None
) -> PRDWriteResult:
    """Write ``{slug}.md`` and ``{slug}.json`` into ``output_dir``.

    An invalid slug is normalized before validation.

    Raises:
        PRDValidationError: If the slug or PRD content is invalid
    """
    slug = completion.slug
    if validate_slug(slug):
        slug = normalize_slug(slug)
    errors = validate_slug(slug) + validate_prd(completion.prd)
    if errors:
        raise PRDValidationError(errors)

    output_dir.mkdir(parents=True, exist_ok=True)
    markdown_path = output_dir / f"{slug}.md"
    json_path = output_dir / f"{slug}.json"
    markdown_path.write_text(
        generate_markdown(completion.prd, slug, feature), encoding="utf-8"
    )
    json_path.write_text(
        json.dumps(generate_json(completion.prd, slug, feature), indent=2) + "\n",
        encoding="utf-8",
    )
    logger.info("PRD written", markdown=str(markdown_path), json=str(json_path))
    return PRDWriteResult(markdown_path=markdown_path, json_path=json_path)
