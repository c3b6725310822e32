"""
Parse file blocks out of Gemini CLI output and apply them to a working tree.

The CLI normally edits files itself. When it cannot, it is instructed to print
each file as a markdown heading followed by a fenced block:

    ### src/app.py
    ```python
    ...
    ```
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

_FILENAME = r"[`']?([^`'\s]+\.[A-Za-z0-9]{1,10})[`']?"

BLOCK_PATTERNS = [
    # ### path/to/file.ext
    re.compile(r"^###\s+" + _FILENAME + r"\s*\n\s*```([\w+-]*)\n(.*?)```", re.MULTILINE | re.DOTALL),
    # Here is the updated content for `path/to/file.ext`:
    re.compile(
        r"(?:Here is the updated content for|Updated content for|Create|Update|Modify)\s+"
        + _FILENAME
        + r":?\s*\n\s*```([\w+-]*)\n(.*?)```",
        re.IGNORECASE | re.DOTALL,
    ),
]

EXTENSION_LANGUAGES = {
    "js": "javascript",
    "ts": "typescript",
    "py": "python",
    "md": "markdown",
    "yml": "yaml",
}

_INVALID_FILENAME = re.compile(r'[<>:"|?*]|^\d+\.$|^-')


@dataclass
class FileBlock:
    path: str
    content: str
    language: str


def is_valid_filename(filename: str) -> bool:
    if not filename or "." not in filename:
        return False
    if len(filename) < 3 or len(filename) > 200:
        return False
    return not _INVALID_FILENAME.search(filename)


def language_for(filename: str) -> str:
    ext = filename.rsplit(".", 1)[-1].lower()
    return EXTENSION_LANGUAGES.get(ext, ext)


def extract_file_blocks(output: str) -> list[FileBlock]:
    """Return file blocks in order of appearance; a later block for the same path wins."""
    found: dict[str, tuple[int, FileBlock]] = {}

    for pattern in BLOCK_PATTERNS:
        for match in pattern.finditer(output or ""):
            filename, language, content = match.group(1), match.group(2), match.group(3)
            filename = filename.lstrip("/")
            if not is_valid_filename(filename) or not content.strip():
                continue
            block = FileBlock(
                path=filename,
                content=content.rstrip() + "\n",
                language=language or language_for(filename),
            )
            previous = found.get(filename)
            if previous is None or match.start() >= previous[0]:
                found[filename] = (match.start(), block)

    return [block for _, block in sorted(found.values(), key=lambda item: item[0])]


def apply_file_blocks(root: str | Path, blocks: list[FileBlock]) -> list[str]:
    """
    Write blocks under `root`. Paths that escape the root or point into .git
    or .gemini are skipped. Returns the relative paths written.
    """
    root = Path(root).resolve()
    written = []

    for block in blocks:
        target = (root / block.path).resolve()
        if root not in target.parents:
            logger.warning(f"Skipping file block outside the working tree: {block.path}")
            continue
        top = target.relative_to(root).parts[0]
        if top in (".git", ".gemini"):
            logger.warning(f"Skipping file block in protected directory: {block.path}")
            continue

        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(block.content, encoding="utf-8")
        written.append(target.relative_to(root).as_posix())

    return written
