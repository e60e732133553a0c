"""Codebase detection.

Looks at manifest files in the working directory to work out the primary
language and which tools are configured. Steps with ``verify = "auto"`` (or
a language name) use this to pick their verify and format commands.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

AUTO_TOKENS = {"auto", "true", "yes", "on"}
DISABLED_TOKENS = {"false", "no", "off", "none"}
LANGUAGE_TOKENS = {"python", "rust", "go", "javascript", "typescript", "ruby"}


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return ""


def is_verify_token(value: Optional[str]) -> bool:
    """Whether a verify value is a keyword rather than a literal command."""
    if value is None:
        return False
    token = value.strip().lower()
    return token in AUTO_TOKENS or token in DISABLED_TOKENS or token in LANGUAGE_TOKENS


@dataclass
class CodebaseContext:
    """Language and tooling detected in a directory."""
    language: Optional[str] = None
    framework: Optional[str] = None

    has_ruff: bool = False
    has_pytest: bool = False
    has_mypy: bool = False
    has_eslint: bool = False
    has_prettier: bool = False
    has_rubocop: bool = False
    has_golangci_lint: bool = False

    tools: List[str] = field(default_factory=list)

    @classmethod
    def detect(cls, cwd: Path) -> "CodebaseContext":
        ctx = cls()

        gemfile = _read(cwd / "Gemfile")
        if gemfile:
            ctx.has_rubocop = "rubocop" in gemfile
            if "rails" in gemfile:
                ctx.language, ctx.framework = "ruby", "rails"
            elif "gem " in gemfile:
                ctx.language = "ruby"

        package_json = _read(cwd / "package.json")
        if package_json:
            ctx.has_eslint = (
                "eslint" in package_json
                or (cwd / ".eslintrc").exists()
                or (cwd / "eslint.config.js").exists()
            )
            ctx.has_prettier = "prettier" in package_json or (cwd / ".prettierrc").exists()
            if ctx.language is None:
                is_ts = "typescript" in package_json or (cwd / "tsconfig.json").exists()
                ctx.language = "typescript" if is_ts else "javascript"

        requirements = _read(cwd / "requirements.txt")
        pyproject = _read(cwd / "pyproject.toml")
        if requirements or pyproject or (cwd / "setup.py").exists():
            combined = f"{requirements}\n{pyproject}".lower()
            ctx.has_ruff = "ruff" in combined
            ctx.has_pytest = "pytest" in combined
            ctx.has_mypy = "mypy" in combined
            if ctx.language is None:
                ctx.language = "python"
                if "django" in combined:
                    ctx.framework = "django"
                elif "fastapi" in combined:
                    ctx.framework = "fastapi"

        if (cwd / "Cargo.toml").exists() and ctx.language is None:
            ctx.language = "rust"

        go_mod = _read(cwd / "go.mod")
        if go_mod:
            ctx.has_golangci_lint = (
                (cwd / ".golangci.yml").exists() or (cwd / ".golangci.yaml").exists()
            )
            if ctx.language is None:
                ctx.language = "go"

        ctx.tools = [
            name for name, present in (
                ("ruff", ctx.has_ruff),
                ("pytest", ctx.has_pytest),
                ("mypy", ctx.has_mypy),
                ("eslint", ctx.has_eslint),
                ("prettier", ctx.has_prettier),
                ("rubocop", ctx.has_rubocop),
                ("golangci-lint", ctx.has_golangci_lint),
            ) if present
        ]
        logger.debug(f"Detected codebase: language={ctx.language} tools={ctx.tools}")
        return ctx

    def _language_for(self, token: str) -> Optional[str]:
        token = token.strip().lower()
        if token in DISABLED_TOKENS:
            return None
        if token in AUTO_TOKENS:
            return self.language
        if token in LANGUAGE_TOKENS:
            return token
        return None

    def derive_verify_command(self, token: str) -> Optional[str]:
        """Verify command for a keyword, or None if nothing applies."""
        language = self._language_for(token)
        if language == "rust":
            return "cargo check"
        if language == "go":
            return "go build ./..."
        if language == "python":
            return "ruff check ." if self.has_ruff else "python -m compileall -q ."
        if language == "typescript":
            return "npx tsc --noEmit"
        if language == "javascript":
            return "npx eslint ." if self.has_eslint else None
        if language == "ruby":
            return "bundle exec rubocop" if self.has_rubocop else None
        return None

    def derive_format_command(self, token: str) -> Optional[str]:
        """Formatter to run after edits, or None."""
        language = self._language_for(token)
        if language == "rust":
            return "cargo fmt"
        if language == "go":
            return "gofmt -w ."
        if language == "python":
            return "ruff format ." if self.has_ruff else None
        if language in ("typescript", "javascript"):
            return "npx prettier --write ." if self.has_prettier else None
        if language == "ruby":
            return "bundle exec rubocop -a" if self.has_rubocop else None
        return None
