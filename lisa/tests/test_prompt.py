"""Tests for terminal question presentation."""

import io
from unittest.mock import patch

import pytest
from rich.console import Console

from lisa.errors import ErrorCategory, InterviewError
from lisa.models import QuestionOption, StructuredQuestion
from lisa.prompt import (
    ask_free_text,
    ask_question,
    format_response,
    parse_selection,
    render_ai_text,
    validate_question,
)


def make_question(
    header: str = "Auth", option_count: int = 3, multi_select: bool = False
) -> StructuredQuestion:
    labels = ["OAuth", "Password", "Magic link", "SSO"]
    return StructuredQuestion(
        header=header,
        question="Which authentication method?",
        options=[
            QuestionOption(label=label, description=f"Use {label}")
            for label in labels[:option_count]
        ],
        multi_select=multi_select,
    )


def make_console() -> Console:
    return Console(file=io.StringIO(), width=80)


class TestValidateQuestion:
    """Tests for validate_question()."""

    def test_valid(self):
        assert validate_question(make_question()) == []

    def test_header_too_long(self):
        errors = validate_question(make_question(header="Authentication"))
        assert errors == ["header must be at most 12 characters"]

    def test_header_exactly_twelve(self):
        assert validate_question(make_question(header="A" * 12)) == []

    def test_empty_header(self):
        assert "header is required" in validate_question(make_question(header=""))

    def test_option_count(self):
        assert "options must have 2-4 items" in validate_question(
            make_question(option_count=1)
        )

    def test_blank_label_and_question(self):
        question = make_question()
        question.question = " "
        question.options[0].label = ""

        errors = validate_question(question)

        assert "question is required" in errors
        assert "options[0].label is required" in errors


class TestSelectionHelpers:
    """Tests for parse_selection() and format_response()."""

    def test_single(self):
        assert parse_selection("2", 3) == [1]

    def test_multiple_separators_and_duplicates(self):
        assert parse_selection("1, 3 1", 3) == [0, 2]

    @pytest.mark.parametrize("raw", ["0", "4", "abc", "", " , "])
    def test_invalid(self, raw):
        with pytest.raises(ValueError):
            parse_selection(raw, 3)

    def test_format_response(self):
        assert format_response(["OAuth", "SSO"]) == "OAuth, SSO"
        assert format_response(["OAuth"], "  plus 2FA ") == "OAuth\n\nplus 2FA"
        assert format_response([], "custom") == "custom"
        assert format_response([], "   ") == ""


class TestAskQuestion:
    """Tests for ask_question() with patched input."""

    def test_single_choice(self):
        with patch("lisa.prompt.Prompt.ask", return_value="2"):
            assert ask_question(make_console(), make_question()) == "Password"

    def test_invalid_input_reprompts(self):
        """Out-of-range and multi answers to single-select ask again."""
        console = make_console()
        with patch("lisa.prompt.Prompt.ask", side_effect=["9", "1,2", "3"]) as ask:
            answer = ask_question(console, make_question())

        assert answer == "Magic link"
        assert ask.call_count == 3
        output = console.file.getvalue()
        assert "Choose a number between 1 and 3" in output
        assert "Choose a single option" in output

    def test_multi_select(self):
        with patch("lisa.prompt.Prompt.ask", return_value="1,3"):
            answer = ask_question(make_console(), make_question(multi_select=True))
        assert answer == "OAuth, Magic link"

    def test_other_asks_free_text(self):
        with patch("lisa.prompt.Prompt.ask", side_effect=["o", "Passkeys only"]):
            assert ask_question(make_console(), make_question()) == "Passkeys only"

    def test_undisplayable_question_falls_back(self):
        """A question failing validation is answered as free text."""
        console = make_console()
        with patch("lisa.prompt.Prompt.ask", return_value="Anything") as ask:
            answer = ask_question(console, make_question(header="Authentication"))

        assert answer == "Anything"
        assert ask.call_count == 1
        assert "Which authentication method?" in console.file.getvalue()

    def test_render_lists_options(self):
        console = make_console()
        with patch("lisa.prompt.Prompt.ask", return_value="1"):
            ask_question(console, make_question())

        output = console.file.getvalue()
        assert "1) OAuth" in output
        assert "Use Password" in output
        assert "o) Other" in output

    def test_bracketed_text_is_shown_literally(self):
        """Square brackets in question text are printed, not parsed as styles."""
        question = StructuredQuestion(
            header="[/ops]",
            question="Which role gets access? [/admin]",
            options=[
                QuestionOption(label="As a [user]", description="Plain [bold]access"),
                QuestionOption(label="[red]Admin", description="Full [/] rights"),
            ],
            multi_select=False,
        )
        console = make_console()
        with patch("lisa.prompt.Prompt.ask", return_value="1"):
            answer = ask_question(console, question)

        assert answer == "As a [user]"
        output = console.file.getvalue()
        assert "[/ops]" in output
        assert "Which role gets access? [/admin]" in output
        assert "1) As a [user]" in output
        assert "Plain [bold]access" in output
        assert "2) [red]Admin" in output
        assert "Full [/] rights" in output

    def test_bracketed_fallback_question(self):
        console = make_console()
        question = make_question(header="Authentication")
        question.question = "Pick one [/admin]"
        with patch("lisa.prompt.Prompt.ask", return_value="Anything"):
            ask_question(console, question)
        assert "Pick one [/admin]" in console.file.getvalue()

    @pytest.mark.parametrize("error", [KeyboardInterrupt, EOFError])
    def test_cancel(self, error):
        with patch("lisa.prompt.Prompt.ask", side_effect=error):
            with pytest.raises(InterviewError) as exc_info:
                ask_question(make_console(), make_question())
        assert exc_info.value.category is ErrorCategory.USER_CANCELLED


class TestFreeText:
    """Tests for ask_free_text() and render_ai_text()."""

    def test_blank_answers_reprompt(self):
        with patch("lisa.prompt.Prompt.ask", side_effect=["", "   ", " Yes "]):
            assert ask_free_text(make_console()) == "Yes"

    def test_render_ai_text(self):
        console = make_console()
        render_ai_text(console, "**Hello** there")
        assert "Hello there" in console.file.getvalue()

    def test_render_blank_text_prints_nothing(self):
        console = make_console()
        render_ai_text(console, "  ")
        assert console.file.getvalue() == ""
