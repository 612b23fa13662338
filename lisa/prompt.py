"""Terminal presentation for interview turns.

Renders AI text and structured questions with rich and collects the user's
answer. validate_question() is the presentation-level check: it enforces the
display limits (short header, 2 to 4 options) that block extraction does not.
"""

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt

from lisa.errors import InterviewError
from lisa.models import StructuredQuestion

MAX_HEADER_LENGTH = 12
MIN_OPTIONS = 2
MAX_OPTIONS = 4
OTHER_CHOICE = "o"


def validate_question(question: StructuredQuestion) -> list[str]:
    """Check a question can be displayed.

    Returns:
        List of problems, empty when the question is valid
    """
    errors = []
    if not isinstance(question.header, str) or not question.header:
        errors.append("header is required")
    elif len(question.header) > MAX_HEADER_LENGTH:
        errors.append(f"header must be at most {MAX_HEADER_LENGTH} characters")

    if not isinstance(question.question, str) or not question.question.strip():
        errors.append("question is required")

    if not isinstance(question.options, list):
        errors.append("options must be a list")
    else:
        if not MIN_OPTIONS <= len(question.options) <= MAX_OPTIONS:
            errors.append(f"options must have {MIN_OPTIONS}-{MAX_OPTIONS} items")
        for index, option in enumerate(question.options):
            if not isinstance(option.label, str) or not option.label.strip():
                errors.append(f"options[{index}].label is required")
            if not isinstance(option.description, str):
                errors.append(f"options[{index}].description must be a string")

    if not isinstance(question.multi_select, bool):
        errors.append("multiSelect must be a boolean")
    return errors


def parse_selection(raw: str, option_count: int) -> list[int]:
    """Parse "1", "1,3" or "2 4" into zero-based option indexes.

    Raises:
        ValueError: If any entry is not a valid option number
    """
    indexes = []
    for token in raw.replace(",", " ").split():
        number = int(token)
        if not 1 <= number <= option_count:
            raise ValueError(f"Choose a number between 1 and {option_count}")
        if number - 1 not in indexes:
            indexes.append(number - 1)
    if not indexes:
        raise ValueError("No option selected")
    return indexes


def format_response(selected: list[str], custom: str | None = None) -> str:
    """Combine selected labels and optional free text into one answer."""
    parts = []
    if selected:
        parts.append(", ".join(selected))
    if custom and custom.strip():
        parts.append(custom.strip())
    return "\n\n".join(parts)


def render_ai_text(console: Console, text: str) -> None:
    if text.strip():
        console.print()
        console.print(Markdown(text))


def render_question(console: Console, question: StructuredQuestion) -> None:
    lines = [f"[bold]{escape(question.question)}[/bold]", ""]
    for index, option in enumerate(question.options, start=1):
        lines.append(f"  [cyan]{index})[/cyan] {escape(option.label)}")
        if option.description:
            lines.append(f"     [dim]{escape(option.description)}[/dim]")
    lines.append(f"  [cyan]{OTHER_CHOICE})[/cyan] Other (type your own answer)")
    console.print()
    console.print(
        Panel("\n".join(lines), title=escape(question.header), border_style="cyan")
    )


def ask_question(console: Console, question: StructuredQuestion) -> str:
    """Show a structured question and return the formatted answer.

    Falls back to free text when the question cannot be displayed.

    Raises:
        InterviewError: user_cancelled on Ctrl-C or end of input
    """
    if validate_question(question):
        console.print()
        console.print(
            Panel(escape(str(question.question)), title="Question", border_style="cyan")
        )
        return ask_free_text(console)

    render_question(console, question)
    hint = "numbers separated by commas" if question.multi_select else "a number"
    while True:
        raw = _ask(console, f"Your choice ({hint}, or '{OTHER_CHOICE}')")
        if raw.strip().lower() == OTHER_CHOICE:
            return ask_free_text(console)
        try:
            indexes = parse_selection(raw, len(question.options))
        except ValueError as e:
            console.print(f"[red]{e}[/red]")
            continue
        if not question.multi_select and len(indexes) > 1:
            console.print("[red]Choose a single option[/red]")
            continue
        return format_response([question.options[i].label for i in indexes])


def ask_free_text(console: Console) -> str:
    """Ask for a non-empty free-text answer."""
    while True:
        answer = _ask(console, "Your answer")
        if answer.strip():
            return answer.strip()


def _ask(console: Console, label: str) -> str:
    try:
        return Prompt.ask(f"[bold]{label}[/bold]", console=console)
    except (KeyboardInterrupt, EOFError):
        raise InterviewError.user_cancelled() from None
