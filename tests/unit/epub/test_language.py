"""Unit tests for source language detection."""

import pytest

from epub_translator.core.epub.container import EpubArchive
from epub_translator.core.epub.language import (
    count_script_characters, detect_source_language, dominant_language,
)


def chapter(text: str) -> bytes:
    return ('<?xml version="1.0" encoding="utf-8"?>'
            '<html xmlns="http://www.w3.org/1999/xhtml"><head><title>T</title></head>'
            f'<body><p>{text}</p></body></html>').encode("utf-8")


class TestCountScriptCharacters:
    """Test per-script character counts."""

    def test_counts(self):
        counts = count_script_characters("わたしはねこです。Cat 猫")

        assert counts == {"ja": 8, "zh": 2, "en": 3}

    def test_digits_and_spaces_not_counted(self):
        assert count_script_characters("1984 ... !") == {"ja": 0, "zh": 0, "en": 0}


class TestDominantLanguage:
    """Test choosing the dominant script."""

    def test_strict_maximum(self):
        assert dominant_language({"ja": 3, "zh": 10, "en": 4}) == "zh"

    @pytest.mark.parametrize("counts", [
        {"ja": 5, "zh": 5, "en": 1},
        {"ja": 0, "zh": 0, "en": 0},
    ])
    def test_undecided(self, counts):
        assert dominant_language(counts) is None


class TestDetectSourceLanguage:
    """Test detection over a whole archive."""

    @pytest.mark.parametrize("text, expected", [
        ("わたしはねこです。なまえはまだない。", "ja"),
        ("我是一只猫。还没有名字。", "zh"),
        ("I am a cat. As yet I have no name.", "en"),
    ])
    def test_single_document(self, text, expected):
        archive = EpubArchive({"OEBPS/ch1.xhtml": chapter(text)})

        assert detect_source_language(archive) == expected

    def test_counts_summed_over_documents(self):
        archive = EpubArchive({
            "ch1.xhtml": chapter("Preface"),
            "ch2.xhtml": chapter("我是一只猫。还没有名字。"),
            "ch3.xhtml": chapter("我住在东京。"),
        })

        assert detect_source_language(archive) == "zh"

    def test_title_and_stylesheets_ignored(self):
        """Only body text counts; the head and non-markup entries do not."""
        archive = EpubArchive({
            "ch1.xhtml": chapter("わたしはねこです。"),
            "style.css": b"body { font-family: serif; writing-mode: vertical-rl; }",
        })

        assert detect_source_language(archive) == "ja"

    def test_unparseable_document_skipped(self):
        archive = EpubArchive({"bad.xhtml": b"", "ch1.xhtml": chapter("Hello there")})

        assert detect_source_language(archive) == "en"

    def test_no_text(self):
        assert detect_source_language(EpubArchive({"ch1.xhtml": chapter("1984")})) is None
