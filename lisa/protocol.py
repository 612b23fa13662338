"""Structured blocks embedded in AI responses.

The AI marks a multiple-choice question and the final PRD with literal
sentinel pairs around one JSON object each. Extraction runs in three
independent steps: locate the markers, decode the enclosed JSON, check its
shape. A block that fails any step is treated as plain text.
"""

import json
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from lisa.models import Completion, StructuredQuestion
from lisa.providers.base import ProviderResponse
from lisa.state import InterviewQA

QUESTION_START = "<<<LISA_QUESTION>>>"
QUESTION_END = "<<<END_LISA_QUESTION>>>"
COMPLETE_START = "<<<LISA_COMPLETE>>>"
COMPLETE_END = "<<<END_LISA_COMPLETE>>>"

MIN_OPTIONS = 2
MAX_OPTIONS = 4


@dataclass(frozen=True)
class Block:
    """A sentinel-delimited span located in response text.

    Attributes:
        start: Index of the opening marker
        end: Index just past the closing marker
        payload: Enclosed text with surrounding whitespace removed
    """

    start: int
    end: int
    payload: str


@dataclass
class ParsedResponse:
    """An AI response split into display text and structured data."""

    text: str
    question: StructuredQuestion | None = None
    completion: Completion | None = None

    @property
    def is_complete(self) -> bool:
        return self.completion is not None


def find_block(text: str, start_marker: str, end_marker: str) -> Block | None:
    """Locate the first start marker and the first end marker after it."""
    start = text.find(start_marker)
    if start == -1:
        return None
    payload_start = start + len(start_marker)
    end = text.find(end_marker, payload_start)
    if end == -1:
        return None
    return Block(
        start=start,
        end=end + len(end_marker),
        payload=text[payload_start:end].strip(),
    )


def decode_payload(block: Block) -> Any | None:
    """Decode a block's JSON payload, or None if it is not valid JSON."""
    try:
        return json.loads(block.payload)
    except json.JSONDecodeError:
        return None


def is_question_payload(data: Any) -> bool:
    """Shape check for a question block payload.

    Header length is a presentation concern and is checked by
    lisa.prompt.validate_question instead.
    """
    if not isinstance(data, dict):
        return False
    if not isinstance(data.get("header"), str) or not isinstance(
        data.get("question"), str
    ):
        return False
    if not isinstance(data.get("multiSelect"), bool):
        return False
    options = data.get("options")
    if not isinstance(options, list) or not MIN_OPTIONS <= len(options) <= MAX_OPTIONS:
        return False
    return all(
        isinstance(option, dict)
        and isinstance(option.get("label"), str)
        and option["label"].strip() != ""
        and isinstance(option.get("description"), str)
        for option in options
    )


def is_completion_payload(data: Any) -> bool:
    """Shape check for a completion block payload."""
    if not isinstance(data, dict) or not isinstance(data.get("slug"), str):
        return False
    prd = data.get("prd")
    return (
        isinstance(prd, dict)
        and isinstance(prd.get("overview"), str)
        and isinstance(prd.get("userStories"), list)
        and isinstance(prd.get("technicalNotes"), str)
    )


def extract_question(text: str) -> tuple[StructuredQuestion, Block] | None:
    block = find_block(text, QUESTION_START, QUESTION_END)
    if block is None:
        return None
    data = decode_payload(block)
    if not is_question_payload(data):
        return None
    return StructuredQuestion.from_dict(data), block


def extract_completion(text: str) -> tuple[Completion, Block] | None:
    block = find_block(text, COMPLETE_START, COMPLETE_END)
    if block is None:
        return None
    data = decode_payload(block)
    if not is_completion_payload(data):
        return None
    return Completion.from_dict(data), block


def _strip_blocks(text: str, blocks: list[Block]) -> str:
    for block in sorted(blocks, key=lambda b: b.start, reverse=True):
        text = text[: block.start] + text[block.end :]
    return text.strip()


def parse_ai_response(response: ProviderResponse | str) -> ParsedResponse:
    """Split a response into display text, question and completion.

    Question and completion are scanned independently; a response may carry
    both. Valid blocks are removed from the returned text, invalid ones stay.
    """
    content = response if isinstance(response, str) else response.content

    question = extract_question(content)
    completion = extract_completion(content)
    blocks = [found[1] for found in (question, completion) if found is not None]

    return ParsedResponse(
        text=_strip_blocks(content, blocks),
        question=question[0] if question else None,
        completion=completion[0] if completion else None,
    )


def find_completion_data(text: str) -> Any | None:
    """Decode the first completion block in ``text`` without shape checking.

    Raises:
        json.JSONDecodeError: If a block exists but its payload is not JSON
    Returns:
        The decoded payload, or None if no block is present
    """
    block = find_block(text, COMPLETE_START, COMPLETE_END)
    if block is None:
        return None
    return json.loads(block.payload)


def generate_system_prompt(
    feature: str,
    first_principles: bool = False,
    codebase_summary: str | None = None,
    context_content: str | None = None,
    history: Sequence[InterviewQA] = (),
) -> str:
    """Build the interview system prompt.

    When resuming, history holds the answers already given so the new
    provider session continues instead of starting over.
    """
    parts = [
        "You are Lisa, an AI assistant that helps developers plan software "
        "features through structured interviews.\n\n"
        "Your goal is to gather enough information to generate a high-quality "
        "Product Requirements Document (PRD) for the following feature:\n\n"
        f"**Feature:** {feature}\n"
    ]

    if first_principles:
        parts.append(
            "\n**First Principles Mode:** Before diving into implementation details, "
            "start by questioning the fundamental assumptions about this feature. Ask:\n"
            "- What problem is this really solving?\n"
            "- Is this the right solution to that problem?\n"
            "- What are the core constraints and trade-offs?\n"
            "- Are there simpler alternatives that achieve the same goal?\n"
        )

    if codebase_summary:
        parts.append(f"\n**Codebase Context:**\n{codebase_summary}\n")

    if context_content:
        parts.append(f"\n**Additional Context:**\n{context_content}\n")

    if history:
        answered = "\n".join(
            f"{index}. Q: {qa.question}\n   A: {qa.answer}"
            for index, qa in enumerate(history, 1)
        )
        parts.append(
            "\n**Interview So Far:**\n"
            "This interview is being resumed. The user already answered:\n"
            f"{answered}\n"
            "Continue from here without asking these questions again.\n"
        )

    parts.append(
        f"""
**Interview Instructions:**
1. Ask focused questions to understand requirements, constraints, and user needs
2. Use structured questions when offering multiple-choice options
3. Keep questions concise but informative
4. Probe deeper when answers are vague or incomplete
5. Consider technical implications and edge cases

**Structured Question Format:**
When you want to present multiple-choice options, output in this EXACT format:

{QUESTION_START}
{{
  "header": "Short Label",
  "question": "Your full question here?",
  "options": [
    {{"label": "Option 1", "description": "Explanation of option 1"}},
    {{"label": "Option 2", "description": "Explanation of option 2"}}
  ],
  "multiSelect": false
}}
{QUESTION_END}

The header should be max 12 characters. Options should have 2-4 choices. Set multiSelect to true only when multiple selections make sense.

**Completion Format:**
When you have gathered enough information, output the PRD in this EXACT format:

{COMPLETE_START}
{{
  "slug": "feature-name-slug",
  "prd": {{
    "overview": "High-level description of the feature",
    "userStories": [
      {{
        "title": "User story title",
        "description": "As a [user], I want [goal] so that [benefit]",
        "acceptanceCriteria": ["Criterion 1", "Criterion 2"]
      }}
    ],
    "technicalNotes": "Technical considerations, architecture notes, etc."
  }}
}}
{COMPLETE_END}

**Important:**
- Only output ONE structured block per response (either question or completion)
- You can include regular text before or after structured blocks
- The slug should be lowercase with hyphens, suitable for filenames
- Gather at least 3-5 rounds of questions before completing
"""
    )

    return "\n".join(parts)
