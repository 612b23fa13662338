"""Codebase exploration.

Scans the project directory the interview runs in and summarizes it for the
system prompt: project type, frameworks, layout, tooling and file counts.
Exploration only reads the top levels of the tree and never fails; anything
that cannot be read is skipped.
"""

import json
import re
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

import structlog

logger = structlog.get_logger(__name__)

ProjectType = Literal[
    "node",
    "typescript",
    "python",
    "rust",
    "go",
    "java",
    "ruby",
    "php",
    "dotnet",
    "unknown",
]
FrameworkCategory = Literal[
    "frontend", "backend", "fullstack", "testing", "build", "cli", "other"
]

DEFAULT_MAX_DEPTH = 5
FILE_COUNT_LIMIT = 10
NO_EXTENSION = "(no extension)"

DEFAULT_IGNORE_DIRS = frozenset(
    {
        "node_modules", ".git", "dist", "build", "coverage", ".next", ".nuxt",
        "__pycache__", ".venv", "venv", "target", "vendor", ".idea", ".vscode",
        ".cache", "tmp", "temp", ".mypy_cache", ".pytest_cache", ".ruff_cache",
        ".tox",
    }
)  # fmt: skip

DEFAULT_IGNORE_PATTERNS = (
    re.compile(r"^\.DS_Store$"),
    re.compile(r"^\.env"),
    re.compile(r"\.lock$"),
    re.compile(r"\.log$"),
    re.compile(r"\.min\.(js|css)$"),
    re.compile(r"\.pyc$"),
)

# Marker file -> (project type, weight). Globs start with "*".
PROJECT_MARKERS: dict[str, tuple[ProjectType, int]] = {
    "package.json": ("node", 1),
    "tsconfig.json": ("typescript", 2),
    "pyproject.toml": ("python", 2),
    "setup.py": ("python", 1),
    "requirements.txt": ("python", 1),
    "Cargo.toml": ("rust", 2),
    "go.mod": ("go", 2),
    "pom.xml": ("java", 2),
    "build.gradle": ("java", 2),
    "Gemfile": ("ruby", 2),
    "composer.json": ("php", 2),
    "*.csproj": ("dotnet", 2),
    "*.sln": ("dotnet", 2),
}

PROJECT_TYPE_NAMES: dict[ProjectType, str] = {
    "node": "Node.js",
    "typescript": "TypeScript",
    "python": "Python",
    "rust": "Rust",
    "go": "Go",
    "java": "Java",
    "ruby": "Ruby",
    "php": "PHP",
    "dotnet": ".NET",
    "unknown": "Unknown",
}

SOURCE_DIRS: dict[ProjectType, tuple[str, ...]] = {
    "node": ("src", "lib", "app", "pages", "components"),
    "typescript": ("src", "lib", "app", "pages", "components"),
    "python": ("src", "lib", "app", "packages"),
    "rust": ("src", "lib"),
    "go": ("cmd", "pkg", "internal", "api"),
    "java": ("src/main/java", "src", "app"),
    "ruby": ("lib", "app", "src"),
    "php": ("src", "app", "lib"),
    "dotnet": ("src", "lib", "app"),
    "unknown": ("src", "lib", "app"),
}

TEST_DIRS = ("test", "tests", "__tests__", "spec", "specs", "src/test", "src/__tests__")
DOC_DIRS = ("docs", "doc", "documentation", "wiki")

ENTRY_POINTS = (
    "index.ts", "index.js", "main.ts", "main.js", "app.ts", "app.js",
    "server.ts", "server.js", "main.py", "app.py", "__main__.py", "manage.py",
    "main.go", "main.rs", "lib.rs", "Main.java", "App.java", "Program.cs",
)  # fmt: skip

CONFIG_FILE_PATTERNS = tuple(
    re.compile(pattern)
    for pattern in (
        r"^package\.json$",
        r"^tsconfig.*\.json$",
        r"^\.eslintrc",
        r"^eslint\.config",
        r"^\.prettierrc",
        r"^prettier\.config",
        r"^vite\.config",
        r"^webpack\.config",
        r"^rollup\.config",
        r"^jest\.config",
        r"^vitest\.config",
        r"^playwright\.config",
        r"^\.env\.example$",
        r"^docker-compose",
        r"^Dockerfile$",
        r"^Makefile$",
        r"^pyproject\.toml$",
        r"^setup\.py$",
        r"^setup\.cfg$",
        r"^requirements.*\.txt$",
        r"^tox\.ini$",
        r"^Cargo\.toml$",
        r"^go\.mod$",
        r"^pom\.xml$",
        r"^build\.gradle",
        r"^Gemfile$",
        r"^composer\.json$",
        r"^\.gitignore$",
    )
)

# Dependency name -> (display name, category)
FRAMEWORKS: dict[str, tuple[str, FrameworkCategory]] = {
    # JavaScript
    "react": ("React", "frontend"),
    "react-dom": ("React", "frontend"),
    "vue": ("Vue.js", "frontend"),
    "angular": ("Angular", "frontend"),
    "@angular/core": ("Angular", "frontend"),
    "svelte": ("Svelte", "frontend"),
    "next": ("Next.js", "fullstack"),
    "nuxt": ("Nuxt", "fullstack"),
    "gatsby": ("Gatsby", "fullstack"),
    "express": ("Express", "backend"),
    "fastify": ("Fastify", "backend"),
    "koa": ("Koa", "backend"),
    "hono": ("Hono", "backend"),
    "nestjs": ("NestJS", "backend"),
    "@nestjs/core": ("NestJS", "backend"),
    "jest": ("Jest", "testing"),
    "vitest": ("Vitest", "testing"),
    "mocha": ("Mocha", "testing"),
    "playwright": ("Playwright", "testing"),
    "@playwright/test": ("Playwright", "testing"),
    "cypress": ("Cypress", "testing"),
    "vite": ("Vite", "build"),
    "webpack": ("Webpack", "build"),
    "esbuild": ("esbuild", "build"),
    "rollup": ("Rollup", "build"),
    "tailwindcss": ("Tailwind CSS", "frontend"),
    "prisma": ("Prisma", "backend"),
    "@prisma/client": ("Prisma", "backend"),
    "drizzle-orm": ("Drizzle ORM", "backend"),
    "typeorm": ("TypeORM", "backend"),
    "sequelize": ("Sequelize", "backend"),
    "mongoose": ("Mongoose", "backend"),
    # Python
    "django": ("Django", "fullstack"),
    "flask": ("Flask", "backend"),
    "fastapi": ("FastAPI", "backend"),
    "starlette": ("Starlette", "backend"),
    "sqlalchemy": ("SQLAlchemy", "backend"),
    "celery": ("Celery", "backend"),
    "pydantic": ("Pydantic", "other"),
    "streamlit": ("Streamlit", "frontend"),
    "click": ("Click", "cli"),
    "typer": ("Typer", "cli"),
    "pytest": ("pytest", "testing"),
}

CI_MARKERS = (
    (".github/workflows", "GitHub Actions"),
    (".gitlab-ci.yml", "GitLab CI"),
    (".circleci", "CircleCI"),
    ("Jenkinsfile", "Jenkins"),
    (".travis.yml", "Travis CI"),
    ("azure-pipelines.yml", "Azure Pipelines"),
    ("bitbucket-pipelines.yml", "Bitbucket Pipelines"),
)

# Lock or manifest file -> package manager, most specific first
PACKAGE_MANAGER_MARKERS = (
    ("bun.lockb", "bun"),
    ("pnpm-lock.yaml", "pnpm"),
    ("yarn.lock", "yarn"),
    ("package-lock.json", "npm"),
    ("Cargo.lock", "cargo"),
    ("go.sum", "go"),
    ("uv.lock", "uv"),
    ("poetry.lock", "poetry"),
    ("requirements.txt", "pip"),
    ("Pipfile.lock", "pip"),
    ("pom.xml", "maven"),
    ("build.gradle", "gradle"),
    ("build.gradle.kts", "gradle"),
    ("package.json", "npm"),
)

_REQUIREMENT = re.compile(
    r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)"  # name
    r"\s*(?:\[[^\]]*\])?"  # extras
    r"\s*(?:(?:==|>=|~=)\s*([^,;\s]+))?"  # first version
)


@dataclass
class DetectedFramework:
    """A framework or library recognised among the project's dependencies."""

    name: str
    category: FrameworkCategory
    version: str | None = None


@dataclass
class ProjectStructure:
    """What exploration found at the project root.

    Attributes:
        root_dir: Explored directory
        project_type: Primary language or platform
        frameworks: Recognised frameworks and libraries
        config_files: Tooling and manifest files at the root
        source_directories: Source directories relative to the root
        test_directories: Test directories relative to the root
        doc_directories: Documentation directories relative to the root
        entry_points: Likely entry point files relative to the root
        package_manager: Package manager inferred from lock files, if any
        has_git: Whether the root is a git checkout
        ci_platform: Name of the CI system configured, if any
    """

    root_dir: Path
    project_type: ProjectType = "unknown"
    frameworks: list[DetectedFramework] = field(default_factory=list)
    config_files: list[str] = field(default_factory=list)
    source_directories: list[str] = field(default_factory=list)
    test_directories: list[str] = field(default_factory=list)
    doc_directories: list[str] = field(default_factory=list)
    entry_points: list[str] = field(default_factory=list)
    package_manager: str | None = None
    has_git: bool = False
    ci_platform: str | None = None

    @property
    def has_ci(self) -> bool:
        return self.ci_platform is not None


@dataclass
class FileCount:
    extension: str
    count: int


@dataclass
class ExplorationResult:
    """Structure, file counts and the prompt summary built from them."""

    structure: ProjectStructure
    file_counts: list[FileCount] | None
    summary: str
    explored_at: str


def _list_names(directory: Path) -> list[str]:
    try:
        return sorted(entry.name for entry in directory.iterdir())
    except OSError:
        return []


def _read_text(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None


def detect_project_type(root_dir: Path) -> ProjectType:
    """Pick the project type whose marker files weigh the most."""
    weights: dict[ProjectType, int] = {}
    for name in _list_names(root_dir):
        for marker, (project_type, weight) in PROJECT_MARKERS.items():
            matched = (
                name.endswith(marker[1:]) if marker.startswith("*") else name == marker
            )
            if matched:
                weights[project_type] = weights.get(project_type, 0) + weight

    detected: ProjectType = "unknown"
    best = 0
    for project_type, weight in weights.items():
        if weight > best:
            detected, best = project_type, weight
    return detected


def _package_json_dependencies(root_dir: Path) -> dict[str, str | None]:
    text = _read_text(root_dir / "package.json")
    if text is None:
        return {}
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        logger.debug("Unreadable package.json", path=str(root_dir / "package.json"))
        return {}
    if not isinstance(data, dict):
        return {}

    dependencies: dict[str, str | None] = {}
    for section in ("dependencies", "devDependencies"):
        entries = data.get(section)
        if isinstance(entries, dict):
            for name, version in entries.items():
                if isinstance(version, str):
                    dependencies[name] = version.lstrip("^~")
                else:
                    dependencies[name] = None
    return dependencies


def _requirement_lines(root_dir: Path) -> list[str]:
    lines: list[str] = []
    for name in _list_names(root_dir):
        if re.match(r"^requirements.*\.txt$", name):
            text = _read_text(root_dir / name) or ""
            lines.extend(
                line
                for line in text.splitlines()
                if line.strip() and not line.lstrip().startswith(("#", "-"))
            )

    text = _read_text(root_dir / "pyproject.toml")
    if text is not None:
        try:
            pyproject: dict[str, Any] = tomllib.loads(text)
        except tomllib.TOMLDecodeError:
            logger.debug("Unreadable pyproject.toml", path=str(root_dir))
            pyproject = {}
        project = pyproject.get("project")
        if isinstance(project, dict):
            groups = [project.get("dependencies")]
            optional = project.get("optional-dependencies")
            if isinstance(optional, dict):
                groups.extend(optional.values())
            for group in groups:
                if isinstance(group, list):
                    lines.extend(d for d in group if isinstance(d, str))
    return lines


def _python_dependencies(root_dir: Path) -> dict[str, str | None]:
    dependencies: dict[str, str | None] = {}
    for line in _requirement_lines(root_dir):
        match = _REQUIREMENT.match(line)
        if match:
            name = match.group(1).lower().replace("_", "-")
            dependencies.setdefault(name, match.group(2))
    return dependencies


def detect_frameworks(root_dir: Path) -> list[DetectedFramework]:
    """Recognise frameworks in package.json, requirements files and pyproject.toml.

    Each framework is reported once, with the version of its first
    declaration when one is given.
    """
    dependencies = _package_json_dependencies(root_dir)
    for name, version in _python_dependencies(root_dir).items():
        dependencies.setdefault(name, version)

    frameworks: list[DetectedFramework] = []
    seen: set[str] = set()
    for dependency, version in dependencies.items():
        known = FRAMEWORKS.get(dependency)
        if known is None or known[0] in seen:
            continue
        name, category = known
        seen.add(name)
        frameworks.append(DetectedFramework(name, category, version or None))
    return frameworks


def find_config_files(root_dir: Path) -> list[str]:
    return [
        name
        for name in _list_names(root_dir)
        if any(pattern.search(name) for pattern in CONFIG_FILE_PATTERNS)
    ]


def _existing_dirs(root_dir: Path, candidates: tuple[str, ...]) -> list[str]:
    return [name for name in candidates if (root_dir / name).is_dir()]


def find_source_directories(root_dir: Path, project_type: ProjectType) -> list[str]:
    return _existing_dirs(root_dir, SOURCE_DIRS[project_type])


def find_test_directories(root_dir: Path) -> list[str]:
    return _existing_dirs(root_dir, TEST_DIRS)


def find_doc_directories(root_dir: Path) -> list[str]:
    return _existing_dirs(root_dir, DOC_DIRS)


def find_entry_points(root_dir: Path, source_directories: list[str]) -> list[str]:
    """Find entry point files at the root and directly inside source directories."""
    found = [name for name in ENTRY_POINTS if (root_dir / name).is_file()]
    for directory in source_directories:
        found.extend(
            f"{directory}/{name}"
            for name in ENTRY_POINTS
            if (root_dir / directory / name).is_file()
        )
    return found


def detect_package_manager(root_dir: Path) -> str | None:
    names = set(_list_names(root_dir))
    for marker, manager in PACKAGE_MANAGER_MARKERS:
        if marker in names:
            return manager
    return None


def detect_ci(root_dir: Path) -> str | None:
    """Return the first CI platform whose configuration exists."""
    for marker, platform in CI_MARKERS:
        if (root_dir / marker).exists():
            return platform
    return None


def _ignored(
    name: str,
    ignore_dirs: frozenset[str],
    ignore_patterns: tuple[re.Pattern[str], ...],
) -> bool:
    return name in ignore_dirs or any(p.search(name) for p in ignore_patterns)


def count_files_by_extension(
    root_dir: Path,
    max_depth: int = DEFAULT_MAX_DEPTH,
    ignore_dirs: frozenset[str] = DEFAULT_IGNORE_DIRS,
    ignore_patterns: tuple[re.Pattern[str], ...] = DEFAULT_IGNORE_PATTERNS,
) -> list[FileCount]:
    """Count files per extension, most common first.

    Files directly in root_dir are at depth 0. Directories deeper than
    max_depth are not entered and symlinked directories are not followed.
    Ties are ordered by extension.
    """
    counts: dict[str, int] = {}
    pending = [(root_dir, 0)]
    while pending:
        directory, depth = pending.pop()
        try:
            entries = list(directory.iterdir())
        except OSError:
            continue
        for entry in entries:
            if _ignored(entry.name, ignore_dirs, ignore_patterns):
                continue
            try:
                if entry.is_dir():
                    if depth < max_depth and not entry.is_symlink():
                        pending.append((entry, depth + 1))
                    continue
            except OSError:
                continue
            extension = entry.suffix or NO_EXTENSION
            counts[extension] = counts.get(extension, 0) + 1

    ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [FileCount(extension, count) for extension, count in ordered]


def explore_project(root_dir: Path) -> ProjectStructure:
    """Inspect the top level of a project without counting files."""
    project_type = detect_project_type(root_dir)
    source_directories = find_source_directories(root_dir, project_type)
    return ProjectStructure(
        root_dir=root_dir,
        project_type=project_type,
        frameworks=detect_frameworks(root_dir),
        config_files=find_config_files(root_dir),
        source_directories=source_directories,
        test_directories=find_test_directories(root_dir),
        doc_directories=find_doc_directories(root_dir),
        entry_points=find_entry_points(root_dir, source_directories),
        package_manager=detect_package_manager(root_dir),
        has_git=(root_dir / ".git").exists(),
        ci_platform=detect_ci(root_dir),
    )


def format_structure_summary(structure: ProjectStructure) -> str:
    """Render the structure as markdown for the system prompt."""
    lines = ["## Project Overview\n"]
    lines.append(f"**Type:** {PROJECT_TYPE_NAMES[structure.project_type]} project")
    if structure.package_manager:
        lines.append(f"**Package Manager:** {structure.package_manager}")
    git = "Git repository" if structure.has_git else "No Git detected"
    lines.append(f"**Version Control:** {git}")
    if structure.ci_platform:
        lines.append(f"**CI/CD:** {structure.ci_platform}")

    if structure.frameworks:
        lines.append("\n### Frameworks & Libraries\n")
        for framework in structure.frameworks:
            version = f" ({framework.version})" if framework.version else ""
            lines.append(f"- **{framework.name}**{version} - {framework.category}")

    lines.append("\n### Directory Structure\n")
    if structure.source_directories:
        lines.append(f"**Source:** {', '.join(structure.source_directories)}")
    if structure.test_directories:
        lines.append(f"**Tests:** {', '.join(structure.test_directories)}")
    if structure.doc_directories:
        lines.append(f"**Documentation:** {', '.join(structure.doc_directories)}")
    if structure.entry_points:
        lines.append(f"\n**Entry Points:** {', '.join(structure.entry_points)}")

    if structure.config_files:
        lines.append("\n### Configuration Files\n")
        lines.append(", ".join(structure.config_files))

    return "\n".join(lines)


def format_file_counts_summary(
    file_counts: list[FileCount], limit: int = FILE_COUNT_LIMIT
) -> str:
    if not file_counts:
        return "No files found."

    total = sum(fc.count for fc in file_counts)
    lines = ["### File Distribution\n"]
    for fc in file_counts[:limit]:
        share = fc.count / total * 100
        lines.append(f"- {fc.extension}: {fc.count} files ({share:.1f}%)")
    if len(file_counts) > limit:
        remaining = sum(fc.count for fc in file_counts[limit:])
        lines.append(f"- Other: {remaining} files")
    lines.append(f"\n**Total:** {total} files")
    return "\n".join(lines)


def explore_codebase(
    root_dir: Path,
    max_depth: int = DEFAULT_MAX_DEPTH,
    include_file_counts: bool = True,
) -> ExplorationResult:
    """Explore a project and build its summary for the interview prompt.

    Args:
        root_dir: Project directory
        max_depth: Deepest directory level entered when counting files
        include_file_counts: Add the per-extension file distribution

    Returns:
        ExplorationResult whose summary is ready for the system prompt
    """
    structure = explore_project(root_dir)
    file_counts = (
        count_files_by_extension(root_dir, max_depth=max_depth)
        if include_file_counts
        else None
    )

    summary = format_structure_summary(structure)
    if file_counts is not None:
        summary += "\n\n" + format_file_counts_summary(file_counts)

    logger.debug(
        "Codebase explored",
        root=str(root_dir),
        project_type=structure.project_type,
        frameworks=[f.name for f in structure.frameworks],
    )
    return ExplorationResult(
        structure=structure,
        file_counts=file_counts,
        summary=summary,
        explored_at=datetime.now(timezone.utc).isoformat(),
    )


def get_quick_summary(root_dir: Path) -> str:
    """Structure summary without file counts."""
    return format_structure_summary(explore_project(root_dir))
