"""Tests for file helpers, diagnostics and logging setup."""

from __future__ import annotations

import codecs
import logging
from pathlib import Path

import pytest

from contextbridge.editor.diagnostics import Diagnostic, DiagnosticsCollection, DiagnosticSeverity
from contextbridge.editor.document_model import TextPosition
from contextbridge.utils import file_io
from contextbridge.utils import logging as logging_utils


def test_read_text_strips_bom_and_normalises_newlines(tmp_path: Path) -> None:
    target = tmp_path / "crlf.txt"
    target.write_bytes(codecs.BOM_UTF8 + b"a\r\nb\rc\n")

    assert file_io.read_text(target) == "a\nb\nc\n"


def test_write_text_replaces_atomically(tmp_path: Path) -> None:
    target = tmp_path / "deep" / "out.txt"

    file_io.write_text(target, "one\n")
    file_io.write_text(target, "two\n")

    assert target.read_text(encoding="utf-8") == "two\n"
    assert [path.name for path in target.parent.iterdir()] == ["out.txt"]


@pytest.mark.parametrize(
    ("raw", "encoding", "newline"),
    [
        (b"a\r\nb\r\n", "utf-8", "\r\n"),
        (b"a\rb\r", "utf-8", "\r"),
        (b"no breaks", "utf-8", "\n"),
        (codecs.BOM_UTF8 + b"a\nb\r\n", "utf-8-sig", "\n"),
    ],
)
def test_read_text_with_format_reports_source_style(tmp_path: Path, raw: bytes, encoding: str, newline: str) -> None:
    target = tmp_path / "styled.txt"
    target.write_bytes(raw)

    text, text_format = file_io.read_text_with_format(target)

    assert "\r" not in text
    assert text_format.encoding == encoding
    assert text_format.newline == newline


def test_write_text_applies_newline_policy(tmp_path: Path) -> None:
    target = tmp_path / "policy.txt"

    file_io.write_text(target, "a\nb\r\nc\n", newline="\r\n")
    assert target.read_bytes() == b"a\r\nb\r\nc\r\n"

    with pytest.raises(ValueError):
        file_io.write_text(target, "x", newline="\t")


def test_utf16_bom_survives_a_rewrite(tmp_path: Path) -> None:
    target = tmp_path / "wide.txt"
    target.write_bytes(codecs.BOM_UTF16_LE + "hi\n".encode("utf-16-le"))

    text, text_format = file_io.read_text_with_format(target)
    file_io.write_text(
        target,
        text.upper(),
        encoding=text_format.encoding,
        newline=text_format.newline,
        bom=text_format.bom,
    )

    assert text == "hi\n"
    assert target.read_bytes() == codecs.BOM_UTF16_LE + "HI\n".encode("utf-16-le")


def test_move_to_trash_uses_environment_default(tmp_path: Path) -> None:
    victim = tmp_path / "old.log"
    victim.write_text("x", encoding="utf-8")

    moved = file_io.move_to_trash(victim)

    assert moved.parent == tmp_path / "trash"
    assert moved.read_text(encoding="utf-8") == "x"
    with pytest.raises(FileNotFoundError):
        file_io.move_to_trash(victim)


@pytest.mark.parametrize(
    ("path", "language"),
    [("a.py", "python"), ("b.TSX", "typescriptreact"), ("Makefile", "plaintext"), (None, "plaintext")],
)
def test_detect_language(path, language) -> None:
    assert file_io.detect_language(path) == language


@pytest.mark.parametrize(
    ("value", "severity"),
    [(1, DiagnosticSeverity.ERROR), (3, DiagnosticSeverity.INFO), ("Warning", DiagnosticSeverity.WARNING), ("information", DiagnosticSeverity.INFO), (None, DiagnosticSeverity.HINT), (9, DiagnosticSeverity.HINT)],
)
def test_severity_coercion(value, severity) -> None:
    assert DiagnosticSeverity.coerce(value) is severity


def test_diagnostic_accepts_numeric_severity() -> None:
    diagnostic = Diagnostic("unused", severity=2, start=TextPosition(3, 1), end=TextPosition(3, 7), code="F401")

    assert diagnostic.to_dict() == {
        "message": "unused",
        "severity": "warning",
        "range": {"start": {"line": 3, "character": 1}, "end": {"line": 3, "character": 7}},
        "source": None,
        "code": "F401",
    }


def test_diagnostics_collection_publish_and_clear(tmp_path: Path) -> None:
    collection = DiagnosticsCollection()
    collection.publish(tmp_path / "b.py", [Diagnostic("b")])
    collection.publish(tmp_path / "a.py", [Diagnostic("a", start=TextPosition(1, 0))])
    collection.publish(tmp_path / "b.py", [Diagnostic("b2")])

    assert [path.name for path, _ in collection.items()] == ["b.py", "a.py"]
    assert collection.get(tmp_path / "b.py")[0].message == "b2"

    collection.publish(tmp_path / "a.py", [])
    assert len(collection) == 1
    collection.clear()
    assert len(collection) == 0


def test_setup_logging_writes_to_log_dir(tmp_path: Path) -> None:
    root = logging.getLogger()
    saved = (root.handlers[:], root.level)
    try:
        path = logging_utils.setup_logging(logging.DEBUG, log_dir=tmp_path / "logs", console=False, force=True)
        logging.getLogger("contextbridge.test").info("hello log")
        for handler in root.handlers:
            handler.flush()

        assert path == tmp_path / "logs" / "contextbridge.log"
        assert logging_utils.get_log_path() == path
        assert "hello log" in path.read_text(encoding="utf-8")
        assert logging.getLogger("httpx").level == logging.WARNING
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = saved[0]
        root.setLevel(saved[1])
