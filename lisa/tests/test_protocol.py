"""Tests for sentinel block extraction and the system prompt."""

import json

import pytest

from lisa.models import Completion
from lisa.protocol import (
    COMPLETE_END,
    COMPLETE_START,
    QUESTION_END,
    QUESTION_START,
    find_block,
    find_completion_data,
    generate_system_prompt,
    parse_ai_response,
)
from lisa.providers.base import ProviderResponse
from lisa.state import InterviewQA


def make_question(**overrides) -> dict:
    question = {
        "header": "Auth",
        "question": "Which authentication method?",
        "options": [
            {"label": "OAuth", "description": "Sign in with a provider"},
            {"label": "Password", "description": "Email and password"},
        ],
        "multiSelect": False,
    }
    question.update(overrides)
    return question


def make_completion(**overrides) -> dict:
    completion = {
        "slug": "user-auth",
        "prd": {
            "overview": "Let users sign in.",
            "userStories": [
                {
                    "title": "Sign in",
                    "description": "As a user, I want to sign in",
                    "acceptanceCriteria": ["Login form exists"],
                }
            ],
            "technicalNotes": "Use sessions.",
        },
    }
    completion.update(overrides)
    return completion


def question_block(data) -> str:
    payload = data if isinstance(data, str) else json.dumps(data)
    return f"{QUESTION_START}\n{payload}\n{QUESTION_END}"


def completion_block(data) -> str:
    payload = data if isinstance(data, str) else json.dumps(data)
    return f"{COMPLETE_START}\n{payload}\n{COMPLETE_END}"


class TestFindBlock:
    """Tests for find_block()."""

    def test_locates_span_and_strips_payload(self):
        text = f"before {QUESTION_START}  {{}}  {QUESTION_END} after"
        block = find_block(text, QUESTION_START, QUESTION_END)

        assert block.payload == "{}"
        assert text[block.start : block.end] == f"{QUESTION_START}  {{}}  {QUESTION_END}"

    def test_missing_end_marker(self):
        assert find_block(f"{QUESTION_START} {{}}", QUESTION_START, QUESTION_END) is None

    def test_end_before_start_ignored(self):
        text = f"{QUESTION_END} {QUESTION_START} {{}}"
        assert find_block(text, QUESTION_START, QUESTION_END) is None


class TestParseQuestion:
    """Tests for question extraction."""

    def test_valid_question(self):
        """A valid block becomes a question and is removed from the text."""
        response = ProviderResponse(
            content=f"Let's talk auth.\n\n{question_block(make_question())}\n\nThanks!",
            is_complete=True,
        )

        parsed = parse_ai_response(response)

        assert parsed.question.header == "Auth"
        assert parsed.question.question == "Which authentication method?"
        assert [o.label for o in parsed.question.options] == ["OAuth", "Password"]
        assert parsed.question.multi_select is False
        assert parsed.text.startswith("Let's talk auth.")
        assert parsed.text.endswith("Thanks!")
        assert QUESTION_START not in parsed.text
        assert parsed.completion is None
        assert parsed.is_complete is False

    def test_long_header_still_extracted(self):
        """Header length is not an extraction concern."""
        parsed = parse_ai_response(question_block(make_question(header="Authentication")))
        assert parsed.question.header == "Authentication"

    def test_invalid_json_left_as_text(self):
        text = f"Intro {question_block('{not json')}"
        parsed = parse_ai_response(text)

        assert parsed.question is None
        assert parsed.text == text

    @pytest.mark.parametrize(
        "overrides",
        [
            {"options": [{"label": "Only", "description": ""}]},
            {"options": [{"label": str(i), "description": ""} for i in range(5)]},
            {"options": [{"label": " ", "description": ""}, {"label": "B", "description": ""}]},
            {"options": [{"label": "A"}, {"label": "B", "description": ""}]},
            {"multiSelect": "no"},
            {"header": None},
        ],
    )
    def test_bad_shapes_rejected(self, overrides):
        parsed = parse_ai_response(question_block(make_question(**overrides)))
        assert parsed.question is None

    def test_missing_multi_select_rejected(self):
        data = make_question()
        del data["multiSelect"]
        assert parse_ai_response(question_block(data)).question is None

    def test_json_array_payload_rejected(self):
        assert parse_ai_response(question_block("[1, 2]")).question is None


class TestParseCompletion:
    """Tests for completion extraction."""

    def test_valid_completion(self):
        parsed = parse_ai_response(
            f"Here is your PRD.\n{completion_block(make_completion())}"
        )

        assert parsed.is_complete is True
        assert isinstance(parsed.completion, Completion)
        assert parsed.completion.slug == "user-auth"
        assert parsed.completion.prd.user_stories[0].acceptance_criteria == [
            "Login form exists"
        ]
        assert parsed.text == "Here is your PRD."

    def test_missing_prd_fields_rejected(self):
        data = make_completion(prd={"overview": "x"})
        assert parse_ai_response(completion_block(data)).completion is None

    def test_non_string_slug_rejected(self):
        data = make_completion(slug=42)
        assert parse_ai_response(completion_block(data)).completion is None

    def test_question_and_completion_both_parsed(self):
        """Each block type is scanned independently."""
        text = (
            f"{question_block(make_question())}\nmiddle\n"
            f"{completion_block(make_completion())}"
        )
        parsed = parse_ai_response(text)

        assert parsed.question is not None
        assert parsed.completion is not None
        assert parsed.text == "middle"

    def test_plain_text(self):
        parsed = parse_ai_response("  Just thinking out loud.  ")
        assert parsed.text == "Just thinking out loud."
        assert parsed.question is None
        assert parsed.completion is None


class TestFindCompletionData:
    """Tests for find_completion_data()."""

    def test_returns_raw_payload(self):
        data = find_completion_data(completion_block({"slug": "x"}))
        assert data == {"slug": "x"}

    def test_no_block(self):
        assert find_completion_data("nothing here") is None

    def test_malformed_json_raises(self):
        with pytest.raises(json.JSONDecodeError):
            find_completion_data(completion_block("{broken"))


class TestSystemPrompt:
    """Tests for generate_system_prompt()."""

    def test_basic_prompt(self):
        prompt = generate_system_prompt("Add user authentication")

        assert "**Feature:** Add user authentication" in prompt
        assert QUESTION_START in prompt
        assert QUESTION_END in prompt
        assert COMPLETE_START in prompt
        assert COMPLETE_END in prompt
        assert "First Principles Mode" not in prompt
        assert "Codebase Context" not in prompt
        assert "Additional Context" not in prompt

    def test_optional_sections(self):
        prompt = generate_system_prompt(
            "Add login",
            first_principles=True,
            codebase_summary="A Flask app",
            context_content="### File: README.md",
        )

        assert "**First Principles Mode:**" in prompt
        assert "What problem is this really solving?" in prompt
        assert "**Codebase Context:**\nA Flask app" in prompt
        assert "**Additional Context:**\n### File: README.md" in prompt

    def test_examples_in_prompt_are_valid_blocks(self):
        """The format examples in the prompt parse as real blocks."""
        parsed = parse_ai_response(generate_system_prompt("x"))
        assert parsed.question is not None
        assert parsed.completion is not None
        assert parsed.completion.slug == "feature-name-slug"

    def test_history_section(self):
        history = [
            InterviewQA(question="Which authentication method?", answer="OAuth"),
            InterviewQA(question="Which providers?", answer="GitHub, Google"),
        ]

        prompt = generate_system_prompt("Add login", history=history)

        assert "**Interview So Far:**" in prompt
        assert "1. Q: Which authentication method?\n   A: OAuth" in prompt
        assert "2. Q: Which providers?\n   A: GitHub, Google" in prompt
        assert prompt.index("Interview So Far") < prompt.index("Interview Instructions")
        assert "Interview So Far" not in generate_system_prompt("Add login")
