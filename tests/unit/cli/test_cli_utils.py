"""Unit tests for CLI utilities."""

import logging

import pytest

from sketchbuild.cli_utils import ErrorFormatter, SketchLoader, setup_logging


class TestSketchLoader:
    """Tests for SketchLoader."""

    def test_load_file(self, tmp_path):
        sketch = tmp_path / "Blink.ino"
        sketch.write_text("void setup() {}\n")

        loaded = SketchLoader.load(sketch)

        assert loaded.name == "Blink"
        assert loaded.source == "void setup() {}\n"

    def test_load_folder_prefers_matching_name(self, tmp_path):
        folder = tmp_path / "Blink"
        folder.mkdir()
        (folder / "Blink.ino").write_text("main")
        (folder / "helpers.ino").write_text("helpers")

        assert SketchLoader.load(folder).source == "main"

    def test_load_folder_with_single_sketch(self, tmp_path):
        folder = tmp_path / "project"
        folder.mkdir()
        (folder / "thing.ino").write_text("only")

        loaded = SketchLoader.load(folder)

        assert loaded.name == "thing"
        assert loaded.source == "only"

    def test_load_folder_ambiguous(self, tmp_path):
        folder = tmp_path / "project"
        folder.mkdir()
        (folder / "a.ino").write_text("a")
        (folder / "b.ino").write_text("b")

        with pytest.raises(ValueError):
            SketchLoader.load(folder)

    def test_load_empty_folder(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            SketchLoader.load(tmp_path)

    def test_load_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            SketchLoader.load(tmp_path / "nope.ino")

    def test_sketch_name_is_sanitized(self, tmp_path):
        assert SketchLoader.sketch_name_for(tmp_path / "my sketch (1).ino") == "my_sketch_1_"
        assert SketchLoader.sketch_name_for(tmp_path / "...ino") == "sketch"


class TestErrorFormatter:
    """Tests for ErrorFormatter."""

    def test_print_error(self, capsys):
        ErrorFormatter.print_error("Compilation failed", "expected ';'")
        captured = capsys.readouterr()

        assert "✗ Compilation failed" in captured.out
        assert "expected ';'" in captured.out

    def test_print_success(self, capsys):
        ErrorFormatter.print_success("Build successful!")
        assert "✓ Build successful!" in capsys.readouterr().out

    def test_keyboard_interrupt_exit_code(self):
        with pytest.raises(SystemExit) as exc_info:
            ErrorFormatter.handle_keyboard_interrupt()
        assert exc_info.value.code == 130

    def test_unexpected_error_exit_code(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            ErrorFormatter.handle_unexpected_error(RuntimeError("boom"))
        assert exc_info.value.code == 1
        assert "RuntimeError: boom" in capsys.readouterr().out


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        for handler in root.handlers[:]:
            if handler not in handlers:
                handler.close()
                root.removeHandler(handler)
        root.setLevel(level)

    def test_verbose_sets_info(self):
        setup_logging(verbose=True)
        assert logging.getLogger().level == logging.INFO

    def test_quiet_sets_warning(self):
        setup_logging(verbose=False)
        assert logging.getLogger().level == logging.WARNING

    def test_log_file(self, tmp_path):
        log_file = tmp_path / "logs" / "sketchbuild.log"
        setup_logging(verbose=False, log_file=log_file)

        logging.info("hello from test")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "hello from test" in log_file.read_text()
