"""Tests for the command-line entry point."""

import zipfile

import pytest

import translate
from epub_translator import config


@pytest.fixture(autouse=True)
def restore_debug_mode(monkeypatch):
    monkeypatch.setattr(config, "DEBUG_MODE", config.DEBUG_MODE)


class TestMain:
    """Test translate.main."""

    def test_demo_run(self, make_epub, tmp_path):
        source = make_epub()

        exit_code = translate.main(["-i", str(source), "-sl", "en", "-tl", "zh", "--provider", "demo", "--no-color"])

        output = tmp_path / "book_zh.epub"
        assert exit_code == 0
        with zipfile.ZipFile(output) as zf:
            assert "[English→Chinese]" in zf.read("OEBPS/ch1.xhtml").decode("utf-8")

    def test_existing_output_is_not_overwritten(self, make_epub, tmp_path):
        source = make_epub()
        (tmp_path / "book_zh.epub").write_bytes(b"keep me")

        exit_code = translate.main(["-i", str(source), "-tl", "zh", "--provider", "demo", "--no-color"])

        assert exit_code == 0
        assert (tmp_path / "book_zh.epub").read_bytes() == b"keep me"
        assert (tmp_path / "book_zh (1).epub").exists()

    def test_explicit_output(self, make_epub, tmp_path):
        output = tmp_path / "translated.epub"

        exit_code = translate.main(["-i", str(make_epub()), "-o", str(output), "-sl", "en", "-tl", "fr",
                                    "--provider", "demo", "--no-color"])

        assert exit_code == 0
        assert output.exists()

    def test_unreadable_archive(self, tmp_path):
        source = tmp_path / "broken.epub"
        source.write_bytes(b"not a zip")

        assert translate.main(["-i", str(source), "--provider", "demo", "--no-color"]) == 1

    def test_input_must_be_epub(self, tmp_path):
        with pytest.raises(SystemExit):
            translate.main(["-i", str(tmp_path / "book.txt"), "--provider", "demo"])

    def test_missing_credentials(self, make_epub, monkeypatch):
        monkeypatch.setattr(config, "ZHIPU_API_KEY", "")

        with pytest.raises(SystemExit):
            translate.main(["-i", str(make_epub()), "-sl", "en", "-tl", "zh", "--provider", "zhipu"])

    def test_several_inputs(self, make_epub, tmp_path):
        first = make_epub("first.epub")
        second = make_epub("second.epub")

        exit_code = translate.main(["-i", str(first), str(second), "-sl", "en", "-tl", "zh",
                                    "--provider", "demo", "--no-color"])

        assert exit_code == 0
        for name in ("first_zh.epub", "second_zh.epub"):
            with zipfile.ZipFile(tmp_path / name) as zf:
                assert "[English→Chinese]" in zf.read("OEBPS/ch1.xhtml").decode("utf-8")

    def test_broken_input_does_not_stop_the_others(self, make_epub, tmp_path):
        broken = tmp_path / "broken.epub"
        broken.write_bytes(b"not a zip")

        exit_code = translate.main(["-i", str(broken), str(make_epub()), "--provider", "demo", "--no-color"])

        assert exit_code == 1
        assert (tmp_path / "book_zh.epub").exists()
        assert not (tmp_path / "broken_zh.epub").exists()

    def test_output_with_several_inputs_rejected(self, make_epub, tmp_path):
        with pytest.raises(SystemExit):
            translate.main(["-i", str(make_epub("a.epub")), str(make_epub("b.epub")),
                            "-o", str(tmp_path / "out.epub"), "--provider", "demo"])

    def test_auto_source_language(self, make_epub, tmp_path):
        exit_code = translate.main(["-i", str(make_epub()), "-sl", "auto", "-tl", "fr",
                                    "--provider", "demo", "--no-color"])

        assert exit_code == 0
        with zipfile.ZipFile(tmp_path / "book_fr.epub") as zf:
            assert "[English→French]" in zf.read("OEBPS/ch1.xhtml").decode("utf-8")


class TestBuildParser:
    """Test argument parsing."""

    def test_defaults(self):
        args = translate.build_parser().parse_args(["-i", "book.epub"])

        assert args.output is None
        assert args.input == ["book.epub"]
        assert not args.horizontal
        assert not args.detect_vertical
        assert args.batch_min is None

    def test_unknown_language_rejected(self):
        with pytest.raises(SystemExit):
            translate.build_parser().parse_args(["-i", "book.epub", "-tl", "xx"])

    def test_several_inputs_parsed_in_order(self):
        args = translate.build_parser().parse_args(["-i", "a.epub", "b.epub", "--detect_vertical", "-sl", "auto"])

        assert args.input == ["a.epub", "b.epub"]
        assert args.detect_vertical
        assert args.source_lang == "auto"
