"""Tests for configuration, the initial copy and the CLI entry point."""

import argparse
import logging

import pytest

import syncfolders
from syncfolders import IgnoreMatcher, build_config, copy_tree, main, parse_args, validate_roots


@pytest.fixture(autouse=True)
def reset_logger():
    """main() attaches handlers to the shared logger; detach them after each test."""
    yield
    logger = logging.getLogger(syncfolders.LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


class TestParseArgs:
    def test_flags(self):
        args = parse_args(["-i", "in", "-o", "out", "-n", "--ignore", "*.tmp", "--ignore", "build/"])

        assert args.input == "in"
        assert args.output == "out"
        assert args.noinitial is True
        assert args.ignore == ["*.tmp", "build/"]
        assert args.debounce == syncfolders.DEFAULT_DEBOUNCE_SEC

    def test_long_flags(self):
        args = parse_args(["--input", "in", "--output", "out", "--debounce", "0.5"])

        assert args.noinitial is False
        assert args.debounce == 0.5


class TestValidateRoots:
    def test_valid(self, roots):
        src, dst = roots
        assert validate_roots(src, dst) == (src, dst)

    def test_missing_input(self, roots):
        src, dst = roots
        with pytest.raises(ValueError, match="Input folder does not exist"):
            validate_roots(src / "missing", dst)

    def test_missing_output(self, roots):
        src, dst = roots
        with pytest.raises(ValueError, match="Output folder does not exist"):
            validate_roots(src, dst / "missing")

    def test_same_folder(self, roots):
        src, _ = roots
        with pytest.raises(ValueError, match="must be different"):
            validate_roots(src, src)

    def test_output_inside_input(self, roots):
        src, _ = roots
        (src / "mirror").mkdir()
        with pytest.raises(ValueError, match="inside input"):
            validate_roots(src, src / "mirror")

    def test_build_config(self, roots):
        src, dst = roots
        args = argparse.Namespace(
            input=str(src), output=str(dst), noinitial=True, debounce=-1.0, ignore=["*.log"], log_dir=None
        )
        config = build_config(args)

        assert config.source_root == src
        assert config.target_root == dst
        assert config.perform_initial_sync is False
        assert config.debounce_sec == 0.0
        assert config.ignore_patterns == ("*.log",)


class TestCopyTree:
    def test_copies_contents_not_the_root(self, roots, logger):
        src, dst = roots
        (src / "a").mkdir()
        (src / "a" / "b.txt").write_text("hi")
        (src / "top.txt").write_text("top")
        (src / "empty").mkdir()

        copied, failed = copy_tree(src, dst, logger)

        assert (copied, failed) == (2, 0)
        assert (dst / "a" / "b.txt").read_text() == "hi"
        assert (dst / "top.txt").read_text() == "top"
        assert (dst / "empty").is_dir()
        assert not (dst / "src").exists()

    def test_overwrites_existing(self, roots, logger):
        src, dst = roots
        (src / "f.txt").write_text("fresh")
        (dst / "f.txt").write_text("old")
        (dst / "extra.txt").write_text("kept")

        copy_tree(src, dst, logger)

        assert (dst / "f.txt").read_text() == "fresh"
        assert (dst / "extra.txt").read_text() == "kept"

    def test_ignore_rules(self, roots, logger):
        src, dst = roots
        (src / "build").mkdir()
        (src / "build" / "out.bin").write_text("x")
        (src / "keep.txt").write_text("k")
        (src / "skip.tmp").write_text("t")

        copied, _ = copy_tree(src, dst, logger, ignore=IgnoreMatcher(src, ["build/", "*.tmp"]))

        assert copied == 1
        assert (dst / "keep.txt").exists()
        assert not (dst / "build").exists()
        assert not (dst / "skip.tmp").exists()


class TestMain:
    def test_missing_arguments(self, capsys):
        assert main([]) == 1
        assert "No input and output folder set" in capsys.readouterr().err

    def test_missing_output_argument(self, roots, capsys):
        src, _ = roots
        assert main(["-i", str(src)]) == 1
        assert "usage" in capsys.readouterr().err

    def test_invalid_root(self, roots, monkeypatch):
        src, dst = roots
        run = []
        monkeypatch.setattr(syncfolders.WatchSession, "run", lambda self: run.append(self) or True)

        assert main(["-i", str(src / "missing"), "-o", str(dst)]) == 1
        assert run == []

    def test_initial_sync_then_watch(self, roots, monkeypatch):
        src, dst = roots
        (src / "f.txt").write_text("x")
        monkeypatch.setattr(syncfolders.WatchSession, "run", lambda self: True)

        assert main(["-i", str(src), "-o", str(dst)]) == 0
        assert (dst / "f.txt").read_text() == "x"

    def test_noinitial_skips_copy(self, roots, monkeypatch):
        src, dst = roots
        (src / "f.txt").write_text("x")
        monkeypatch.setattr(syncfolders.WatchSession, "run", lambda self: True)

        assert main(["-i", str(src), "-o", str(dst), "-n"]) == 0
        assert not (dst / "f.txt").exists()

    def test_broken_channel_exit_code(self, roots, monkeypatch):
        src, dst = roots
        monkeypatch.setattr(syncfolders.WatchSession, "run", lambda self: False)

        assert main(["-i", str(src), "-o", str(dst), "-n"]) == 1

    def test_log_dir(self, roots, tmp_path, monkeypatch):
        src, dst = roots
        monkeypatch.setattr(syncfolders.WatchSession, "run", lambda self: True)

        assert main(["-i", str(src), "-o", str(dst), "-n", "--log-dir", str(tmp_path / "logs")]) == 0

        assert list((tmp_path / "logs").glob("syncfolders_*.log"))
