"""Reference files supplied with --context.

Loads text files for inclusion in the system prompt, rejecting files that are
missing, too large or not plain text.
"""

from dataclasses import dataclass, field
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_MAX_FILE_SIZE = 1024 * 1024

SUPPORTED_EXTENSIONS = frozenset(
    {
        ".md", ".markdown", ".txt", ".text",
        ".json", ".yaml", ".yml",
        ".ts", ".tsx", ".js", ".jsx",
        ".py", ".rb", ".go", ".rs", ".java",
        ".html", ".css", ".scss", ".less",
        ".xml", ".toml", ".ini", ".conf",
        ".sh", ".bash", ".zsh",
        ".sql", ".graphql", ".gql",
        ".env", ".example",
        ".gitignore", ".dockerignore", ".eslintrc", ".prettierrc",
    }
)  # fmt: skip


@dataclass
class ContextFile:
    """Outcome of loading one reference file."""

    path: str
    absolute_path: Path
    content: str | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.content is not None


@dataclass
class ContextLoadResult:
    """Outcome of loading several reference files."""

    files: list[ContextFile] = field(default_factory=list)

    @property
    def loaded(self) -> list[ContextFile]:
        return [f for f in self.files if f.success]

    @property
    def failed(self) -> list[ContextFile]:
        return [f for f in self.files if not f.success]

    @property
    def all_successful(self) -> bool:
        return not self.failed

    @property
    def content(self) -> str:
        return format_context(self.loaded)


def is_supported_file(path: Path) -> bool:
    """Known text extensions, dotfiles like .gitignore, and extensionless files."""
    name = path.name.lower()
    suffix = path.suffix.lower()
    if name.startswith(".") and not suffix:
        return name in SUPPORTED_EXTENSIONS
    return not suffix or suffix in SUPPORTED_EXTENSIONS


def load_context_file(
    path: str, base_dir: Path, max_file_size: int = DEFAULT_MAX_FILE_SIZE
) -> ContextFile:
    absolute = Path(path) if Path(path).is_absolute() else (base_dir / path).resolve()
    result = ContextFile(path=path, absolute_path=absolute)

    if not absolute.is_file():
        result.error = f"File not found: {path}"
        return result

    size = absolute.stat().st_size
    if size > max_file_size:
        result.error = (
            f"File too large: {path} ({size / (1024 * 1024):.2f}MB exceeds "
            f"{max_file_size / (1024 * 1024):.2f}MB limit)"
        )
        return result

    if not is_supported_file(absolute):
        result.error = (
            f"Unsupported file type: {path} ({absolute.suffix or '(no extension)'}). "
            "Only text files are supported."
        )
        return result

    try:
        result.content = absolute.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        result.error = f"Failed to read file: {path} - {e}"
    return result


def load_context_files(
    paths: list[str], base_dir: Path, max_file_size: int = DEFAULT_MAX_FILE_SIZE
) -> ContextLoadResult:
    """Load every path, collecting failures instead of raising."""
    result = ContextLoadResult(
        files=[load_context_file(path, base_dir, max_file_size) for path in paths]
    )
    for failed in result.failed:
        logger.warning("Context file skipped", path=failed.path, error=failed.error)
    return result


def format_context(files: list[ContextFile]) -> str:
    """Render loaded files as fenced markdown sections."""
    sections = []
    for file in files:
        if not file.success:
            continue
        language = Path(file.path).suffix.lower().lstrip(".") or "text"
        sections.append(f"### File: {file.path}\n```{language}\n{file.content}\n```")
    return "\n\n".join(sections)
