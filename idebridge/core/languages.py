"""Source language detection by file extension."""

from enum import Enum
from pathlib import PurePosixPath


class Language(str, Enum):
    JAVA = "Java"
    KOTLIN = "Kotlin"
    JAVASCRIPT = "JavaScript"
    TYPESCRIPT = "TypeScript"
    PYTHON = "Python"
    GO = "Go"
    RUST = "Rust"
    UNKNOWN = "Unknown"


_EXTENSIONS: dict[str, Language] = {
    "java": Language.JAVA,
    "kt": Language.KOTLIN,
    "kts": Language.KOTLIN,
    "js": Language.JAVASCRIPT,
    "jsx": Language.JAVASCRIPT,
    "mjs": Language.JAVASCRIPT,
    "cjs": Language.JAVASCRIPT,
    "ts": Language.TYPESCRIPT,
    "tsx": Language.TYPESCRIPT,
    "mts": Language.TYPESCRIPT,
    "cts": Language.TYPESCRIPT,
    "py": Language.PYTHON,
    "pyw": Language.PYTHON,
    "pyi": Language.PYTHON,
    "go": Language.GO,
    "rs": Language.RUST,
}


def detect_language(path: str) -> Language:
    suffix = PurePosixPath(path.replace("\\", "/")).suffix.lower().lstrip(".")
    return _EXTENSIONS.get(suffix, Language.UNKNOWN)

