"""File helpers used by the workspace: decoding, atomic saves, trash, language ids."""

from __future__ import annotations

import codecs
import locale
import os
import shutil
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

__all__ = [
    "TextFormat",
    "detect_newline",
    "read_text",
    "read_text_with_format",
    "write_text",
    "move_to_trash",
    "detect_language",
    "default_trash_dir",
]

_BOM_MAP: dict[bytes, str] = {
    codecs.BOM_UTF8: "utf-8-sig",
    codecs.BOM_UTF16_LE: "utf-16-le",
    codecs.BOM_UTF16_BE: "utf-16-be",
}
_DEFAULT_TRASH_DIR = Path.home() / ".contextbridge" / "trash"
_LANGUAGE_BY_EXTENSION: dict[str, str] = {
    "py": "python",
    "pyi": "python",
    "js": "javascript",
    "mjs": "javascript",
    "cjs": "javascript",
    "jsx": "javascriptreact",
    "ts": "typescript",
    "tsx": "typescriptreact",
    "json": "json",
    "md": "markdown",
    "markdown": "markdown",
    "yaml": "yaml",
    "yml": "yaml",
    "toml": "toml",
    "html": "html",
    "htm": "html",
    "css": "css",
    "scss": "scss",
    "go": "go",
    "rs": "rust",
    "java": "java",
    "kt": "kotlin",
    "c": "c",
    "h": "c",
    "cpp": "cpp",
    "cc": "cpp",
    "hpp": "cpp",
    "cs": "csharp",
    "rb": "ruby",
    "php": "php",
    "sh": "shellscript",
    "bash": "shellscript",
    "sql": "sql",
    "xml": "xml",
    "txt": "plaintext",
}


@dataclass(slots=True, frozen=True)
class TextFormat:
    """On-disk encoding and line-ending style of a text file."""

    encoding: str = "utf-8"
    newline: str = "\n"
    bom: bool = False


def read_text(path: Path | str, *, encoding: str | None = None, normalize_newlines: bool = True) -> str:
    """Read ``path`` as text, detecting BOMs and normalising newlines to ``\\n``."""

    text, _ = read_text_with_format(path, encoding=encoding, normalize_newlines=normalize_newlines)
    return text


def read_text_with_format(
    path: Path | str,
    *,
    encoding: str | None = None,
    normalize_newlines: bool = True,
) -> tuple[str, TextFormat]:
    """Read ``path`` and report the encoding and newline style it was stored with."""

    raw = Path(path).read_bytes()
    chosen = encoding or _detect_encoding(raw)
    text = raw.decode(chosen)
    bom = text.startswith("\ufeff")
    if bom:
        text = text[1:]
    newline = detect_newline(text)
    if normalize_newlines:
        text = _normalize_newlines(text)
    return text, TextFormat(encoding=chosen, newline=newline, bom=bom and not chosen.endswith("-sig"))


def write_text(
    path: Path | str,
    content: str,
    *,
    encoding: str = "utf-8",
    newline: str = "\n",
    bom: bool = False,
) -> Path:
    """Write ``content`` through a temp file in the same directory, then replace.

    ``newline`` is applied to every line break in ``content``; ``bom`` prepends a
    byte order mark for codecs that do not write one themselves.
    """

    payload = _apply_newline_policy(content, newline)
    if bom:
        payload = "\ufeff" + payload
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    descriptor, tmp_name = tempfile.mkstemp(
        dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(descriptor, "w", encoding=encoding, newline="") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, target)
    finally:
        if os.path.exists(tmp_name):  # pragma: no cover - only left behind on failure
            os.unlink(tmp_name)
    return target


def detect_newline(text: str) -> str:
    """Return the first line break style used in ``text`` (``\\n`` when there is none)."""

    index = next((i for i, char in enumerate(text) if char in "\r\n"), -1)
    if index < 0 or text[index] == "\n":
        return "\n"
    if text.startswith("\r\n", index):
        return "\r\n"
    return "\r"


def default_trash_dir() -> Path:
    override = os.environ.get("CONTEXTBRIDGE_TRASH_DIR")
    return Path(override).expanduser() if override else _DEFAULT_TRASH_DIR


def move_to_trash(path: Path | str, *, trash_dir: Path | str | None = None) -> Path:
    """Move ``path`` into the trash directory under a timestamped name."""

    source = Path(path)
    if not source.exists():
        raise FileNotFoundError(f"No such file: {source}")
    bin_dir = Path(trash_dir) if trash_dir is not None else default_trash_dir()
    bin_dir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
    target = bin_dir / f"{stamp}-{source.name}"
    shutil.move(str(source), str(target))
    return target


def detect_language(path: Path | str | None) -> str:
    """Map a file extension to an editor language id (``plaintext`` fallback)."""

    if not path:
        return "plaintext"
    suffix = Path(path).suffix.lower().lstrip(".")
    return _LANGUAGE_BY_EXTENSION.get(suffix, "plaintext")


def _detect_encoding(raw: bytes) -> str:
    for bom, encoding in _BOM_MAP.items():
        if raw.startswith(bom):
            return encoding

    preferred = locale.getpreferredencoding(False) or "utf-8"
    for candidate in dict.fromkeys(("utf-8", preferred, "latin-1")):
        try:
            raw.decode(candidate)
        except UnicodeDecodeError:
            continue
        return candidate
    return "utf-8"


def _normalize_newlines(text: str) -> str:
    if "\r" not in text:
        return text
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _apply_newline_policy(text: str, newline: str) -> str:
    normalized = _normalize_newlines(text)
    if newline == "\n":
        return normalized
    if newline in ("\r\n", "\r"):
        return normalized.replace("\n", newline)
    raise ValueError(f"Unsupported newline policy: {newline!r}")
