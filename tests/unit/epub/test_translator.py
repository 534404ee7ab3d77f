"""
End-to-end tests for EPUB translation.

Each test writes a small EPUB to a temporary directory, runs the whole
orchestration and inspects the output archive.
"""

import zipfile

import pytest

from epub_translator.config import TranslationConfig
from epub_translator.core.epub.container import EpubArchive
from epub_translator.core.epub.exceptions import ArchiveError
from epub_translator.core.epub.translator import _update_opf_language, translate_epub_file
from epub_translator.core.llm.exceptions import LLMAuthenticationError


def read_entry(path, name) -> bytes:
    with zipfile.ZipFile(path) as zf:
        return zf.read(name)


def demo_config(**kwargs) -> TranslationConfig:
    kwargs.setdefault("source_language", "en")
    kwargs.setdefault("target_language", "zh")
    return TranslationConfig(llm_provider="demo", **kwargs)


class TestTranslateEpubFile:
    """Test translate_epub_file."""

    @pytest.mark.asyncio
    async def test_demo_translation(self, make_epub, tmp_path):
        source = make_epub()
        output = tmp_path / "book_zh.epub"
        progress = []
        logs = []

        summary = await translate_epub_file(
            source, output, demo_config(),
            log_callback=lambda key, msg: logs.append(key),
            progress_callback=progress.append,
        )

        chapter = read_entry(output, "OEBPS/ch1.xhtml").decode("utf-8")
        assert "<p>[English→Chinese] It was a bright cold day in April.</p>" in chapter
        assert "<em>" in chapter
        assert b"<dc:language>zh</dc:language>" in read_entry(output, "OEBPS/content.opf")
        assert read_entry(output, "OEBPS/images/cover.png") == read_entry(source, "OEBPS/images/cover.png")

        assert summary.documents_total == 1
        assert summary.documents_translated == 1
        assert summary.fragments_total == 4
        assert summary.fragments_translated == 4
        assert summary.backend_calls == 1
        assert summary.succeeded
        assert progress[-1] == 100.0
        assert "epub_loaded" in logs
        assert "epub_save_success" in logs

    @pytest.mark.asyncio
    async def test_output_is_a_valid_container(self, make_epub, tmp_path):
        output = tmp_path / "out.epub"

        await translate_epub_file(make_epub(), output, demo_config(),
                                  log_callback=lambda key, msg: None, progress_callback=lambda p: None)

        with zipfile.ZipFile(output) as zf:
            first = zf.infolist()[0]
            assert first.filename == "mimetype"
            assert first.compress_type == zipfile.ZIP_STORED
            assert zf.read("mimetype") == b"application/epub+zip"

    @pytest.mark.asyncio
    async def test_runs_without_callbacks(self, make_epub, tmp_path):
        """Without callbacks progress goes to a tqdm bar."""
        output = tmp_path / "out.epub"

        summary = await translate_epub_file(make_epub(), output, demo_config())

        assert summary.fragments_translated == 4
        assert output.exists()

    @pytest.mark.asyncio
    async def test_same_language_makes_no_backend_calls(self, make_epub, provider_factory, tmp_path):
        source = make_epub()
        output = tmp_path / "out.epub"
        provider = provider_factory()
        config = TranslationConfig(source_language="en", target_language="en", llm_provider="zhipu", api_key=None)

        summary = await translate_epub_file(source, output, config, provider=provider,
                                            log_callback=lambda key, msg: None)

        assert summary.format_only
        assert provider.batch_calls == []
        assert read_entry(output, "OEBPS/ch1.xhtml") == read_entry(source, "OEBPS/ch1.xhtml")
        assert read_entry(output, "OEBPS/content.opf") == read_entry(source, "OEBPS/content.opf")

    @pytest.mark.asyncio
    async def test_horizontal_conversion(self, make_epub, tmp_path):
        source = make_epub()
        output = tmp_path / "out.epub"
        config = TranslationConfig(source_language="ja", target_language="ja",
                                   llm_provider="demo", convert_to_horizontal=True)

        summary = await translate_epub_file(source, output, config, log_callback=lambda key, msg: None)

        css = read_entry(output, "OEBPS/style.css").decode("utf-8")
        opf = read_entry(output, "OEBPS/content.opf").decode("utf-8")
        assert "vertical" not in css
        assert "writing-mode: horizontal-tb;" in css
        assert 'page-progression-direction="ltr"' in opf
        assert summary.layout_changes == 3
        assert read_entry(output, "OEBPS/ch1.xhtml") == read_entry(source, "OEBPS/ch1.xhtml")

    @pytest.mark.asyncio
    async def test_broken_document_copied_unchanged(self, make_epub, tmp_path):
        """One unparseable document does not stop the others."""
        source = make_epub(extra={"OEBPS/bad.xhtml": ""})
        output = tmp_path / "out.epub"

        summary = await translate_epub_file(source, output, demo_config(),
                                            log_callback=lambda key, msg: None)

        assert summary.failed_documents == ["OEBPS/bad.xhtml"]
        assert summary.documents_failed == 1
        assert summary.documents_translated == 1
        assert read_entry(output, "OEBPS/bad.xhtml") == b""
        assert "[English→Chinese]" in read_entry(output, "OEBPS/ch1.xhtml").decode("utf-8")

    @pytest.mark.asyncio
    async def test_authentication_failure_reported(self, make_epub, provider_factory, tmp_path):
        def reject(text, count):
            raise LLMAuthenticationError("invalid API key")

        output = tmp_path / "out.epub"

        summary = await translate_epub_file(make_epub(), output, demo_config(),
                                            provider=provider_factory(batch_handler=reject),
                                            log_callback=lambda key, msg: None)

        assert summary.auth_error == "invalid API key"
        assert not summary.succeeded
        assert output.exists()
        assert b"It was a bright cold day in April." in read_entry(output, "OEBPS/ch1.xhtml")

    @pytest.mark.asyncio
    async def test_not_an_epub(self, tmp_path):
        source = tmp_path / "fake.epub"
        source.write_bytes(b"plain text, not a zip")

        with pytest.raises(ArchiveError):
            await translate_epub_file(source, tmp_path / "out.epub", demo_config(),
                                      log_callback=lambda key, msg: None)

    @pytest.mark.asyncio
    async def test_summary_to_dict(self, make_epub, tmp_path):
        summary = await translate_epub_file(make_epub(), tmp_path / "out.epub", demo_config(),
                                            log_callback=lambda key, msg: None)

        data = summary.to_dict()

        assert data["target_language"] == "zh"
        assert data["fragments_translated"] == 4
        assert data["failed_documents"] == []

    @pytest.mark.asyncio
    async def test_source_language_detected(self, make_epub, tmp_path):
        japanese = ('<?xml version="1.0" encoding="utf-8"?>'
                    '<html xmlns="http://www.w3.org/1999/xhtml"><head><title>一</title></head>'
                    '<body><p>わたしはねこです。</p></body></html>')
        output = tmp_path / "out.epub"
        logs = []

        summary = await translate_epub_file(make_epub(chapter=japanese), output,
                                            demo_config(source_language="auto"),
                                            log_callback=lambda key, msg: logs.append(key))

        assert summary.source_language == "ja"
        assert "<p>[Japanese→Chinese] わたしはねこです。</p>" in read_entry(output, "OEBPS/ch1.xhtml").decode("utf-8")
        assert "language_detected" in logs

    @pytest.mark.asyncio
    async def test_detected_language_equal_to_target_is_format_only(self, make_epub, provider_factory, tmp_path):
        source = make_epub()
        provider = provider_factory()

        summary = await translate_epub_file(source, tmp_path / "out.epub",
                                            demo_config(source_language="auto", target_language="en"),
                                            provider=provider, log_callback=lambda key, msg: None)

        assert summary.source_language == "en"
        assert summary.format_only
        assert provider.batch_calls == []

    @pytest.mark.asyncio
    async def test_vertical_layout_detected(self, make_epub, tmp_path):
        output = tmp_path / "out.epub"

        summary = await translate_epub_file(make_epub(), output, demo_config(detect_vertical=True),
                                            log_callback=lambda key, msg: None)

        assert summary.vertical_detected
        assert summary.layout_changes == 3
        assert "writing-mode: horizontal-tb;" in read_entry(output, "OEBPS/style.css").decode("utf-8")

    @pytest.mark.asyncio
    async def test_vertical_layout_kept_without_detection(self, make_epub, tmp_path):
        output = tmp_path / "out.epub"

        summary = await translate_epub_file(make_epub(), output, demo_config(),
                                            log_callback=lambda key, msg: None)

        assert not summary.vertical_detected
        assert summary.layout_changes == 0
        assert "vertical-rl" in read_entry(output, "OEBPS/style.css").decode("utf-8")


class TestUpdateOpfLanguage:
    """Test the package language update."""

    def test_language_added_when_missing(self):
        opf = (b'<?xml version="1.0" encoding="UTF-8"?>'
               b'<package xmlns="http://www.idpf.org/2007/opf" version="3.0">'
               b'<metadata xmlns:dc="http://purl.org/dc/elements/1.1/"><dc:title>T</dc:title></metadata>'
               b'</package>')
        archive = EpubArchive({"content.opf": opf})

        _update_opf_language(archive, "fr")

        assert b"<dc:language>fr</dc:language>" in archive.read_bytes("content.opf")

    def test_unparseable_opf_left_alone(self):
        archive = EpubArchive({"content.opf": b"<package"})

        _update_opf_language(archive, "fr")

        assert archive.read_bytes("content.opf") == b"<package"
