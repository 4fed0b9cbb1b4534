"""
Tests for category_hub/config.py

Tests configuration loading, saving, and logging setup.
"""

import pytest
import json
import sys
import logging
from pathlib import Path
from unittest.mock import patch

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from category_hub import config


pytestmark = pytest.mark.usefixtures("restore_logging")


# ============================================================================
# LOAD CONFIG TESTS
# ============================================================================

class TestLoadConfig:
    """Tests for load_config() function."""

    def test_load_nonexistent_creates_default(self, temp_dir, monkeypatch):
        """Test loading config when file doesn't exist creates default."""
        config_path = temp_dir / "config.json"
        monkeypatch.setattr(config, 'CONFIG_FILE', str(config_path))

        result = config.load_config()

        assert result is not None
        assert "AI_PROVIDER" in result
        assert "CLAUDE_API_KEY" in result
        assert "OPENAI_API_KEY" in result
        assert result["AI_PROVIDER"] == "openai"
        assert config_path.exists()

    def test_load_existing_config(self, temp_config_file, monkeypatch):
        """Test loading existing config file."""
        monkeypatch.setattr(config, 'CONFIG_FILE', str(temp_config_file))

        result = config.load_config()

        assert result["AI_PROVIDER"] == "claude"
        assert result["CLAUDE_API_KEY"] == "test_claude_key_12345"
        assert result["MASTER_SHOP_ID"] == 1

    def test_load_config_with_missing_fields(self, temp_dir, monkeypatch):
        """Test loading config with missing fields adds defaults."""
        config_path = temp_dir / "config.json"
        incomplete_config = {
            "AI_PROVIDER": "claude"
            # Missing other required fields
        }
        with open(config_path, 'w') as f:
            json.dump(incomplete_config, f)

        monkeypatch.setattr(config, 'CONFIG_FILE', str(config_path))

        result = config.load_config()

        # Should have added missing fields
        assert "CLAUDE_API_KEY" in result
        assert "DATA_FILE" in result
        assert result["SUGGESTION_MAX_CANDIDATES"] == 6
        # Should preserve existing value
        assert result["AI_PROVIDER"] == "claude"

    def test_load_corrupted_json(self, temp_dir, monkeypatch, caplog):
        """Test loading corrupted JSON returns defaults."""
        config_path = temp_dir / "corrupted.json"
        config_path.write_text("{ invalid json }")

        monkeypatch.setattr(config, 'CONFIG_FILE', str(config_path))

        with caplog.at_level(logging.ERROR):
            result = config.load_config()

        assert result == config.default_config()
        assert "Failed to parse config.json" in caplog.text

    def test_load_config_io_error(self, temp_dir, monkeypatch, caplog):
        """Test handling of IO errors when loading config."""
        config_path = temp_dir / "config.json"
        config_path.write_text('{"test": "value"}')
        monkeypatch.setattr(config, 'CONFIG_FILE', str(config_path))

        with caplog.at_level(logging.ERROR):
            with patch("builtins.open", side_effect=IOError("Read error")):
                result = config.load_config()

        assert result is not None
        assert "Failed to read/write config.json" in caplog.text

    def test_load_config_unexpected_error(self, temp_dir, monkeypatch, caplog):
        """Test handling of unexpected errors when loading config."""
        config_path = temp_dir / "config.json"
        config_path.write_text('{"test": "value"}')
        monkeypatch.setattr(config, 'CONFIG_FILE', str(config_path))

        with caplog.at_level(logging.ERROR):
            with patch("json.load", side_effect=ValueError("Unexpected error")):
                result = config.load_config()

        assert result is not None
        assert "Unexpected error loading config" in caplog.text

    def test_load_non_object_config(self, temp_dir, monkeypatch, caplog):
        """Test a config file holding a JSON array falls back to defaults."""
        config_path = temp_dir / "config.json"
        config_path.write_text("[1, 2, 3]")
        monkeypatch.setattr(config, 'CONFIG_FILE', str(config_path))

        with caplog.at_level(logging.ERROR):
            result = config.load_config()

        assert result == config.default_config()
        assert "top level is not an object" in caplog.text

    def test_default_values(self, temp_dir, monkeypatch):
        """Test that default config has correct default values."""
        config_path = temp_dir / "config.json"
        monkeypatch.setattr(config, 'CONFIG_FILE', str(config_path))

        result = config.load_config()

        assert result["OPENAI_MODEL"] == "gpt-4o-mini"
        assert result["CLAUDE_MODEL"] == "claude-sonnet-4-5-20250929"
        assert result["AI_TIMEOUT"] == 120
        assert result["SUGGESTION_MAX_TARGETS"] == 220
        assert result["SUGGESTION_MAX_CANONICAL"] == 120
        assert result["VALIDATION_PER_PAGE"] == 50
        assert result["MASTER_SHOP_ID"] is None

    def test_default_config_is_fresh_copy(self):
        """Test callers cannot mutate the shared defaults."""
        first = config.default_config()
        first["AI_PROVIDER"] = "claude"
        assert config.default_config()["AI_PROVIDER"] == "openai"


# ============================================================================
# SAVE CONFIG TESTS
# ============================================================================

class TestSaveConfig:
    """Tests for save_config() function."""

    def test_save_config_creates_file(self, temp_dir, monkeypatch):
        """Test saving config creates a new file."""
        config_path = temp_dir / "new_config.json"
        monkeypatch.setattr(config, 'CONFIG_FILE', str(config_path))

        test_config = {
            "AI_PROVIDER": "openai",
            "OPENAI_API_KEY": "test_key"
        }

        config.save_config(test_config)

        assert config_path.exists()
        with open(config_path, 'r') as f:
            loaded = json.load(f)
        assert loaded == test_config

    def test_save_config_preserves_formatting(self, temp_dir, monkeypatch):
        """Test that saved config has proper JSON formatting."""
        config_path = temp_dir / "config.json"
        monkeypatch.setattr(config, 'CONFIG_FILE', str(config_path))

        config.save_config({"key1": "value1", "key2": {"nested": "value"}})

        content = config_path.read_text()
        assert '\n' in content
        assert '    ' in content

    def test_save_config_io_error(self, temp_dir, monkeypatch, caplog):
        """Test handling of IO errors when saving config."""
        monkeypatch.setattr(config, 'CONFIG_FILE', str(temp_dir / "config.json"))

        with caplog.at_level(logging.ERROR):
            with patch("builtins.open", side_effect=IOError("Write error")):
                config.save_config({"test": "value"})

        assert "Failed to write config.json" in caplog.text


# ============================================================================
# SETUP LOGGING TESTS
# ============================================================================

class TestSetupLogging:
    """Tests for setup_logging() function."""

    def test_setup_logging_creates_handlers(self, temp_dir):
        """Test that setup_logging creates file and console handlers."""
        config.setup_logging(str(temp_dir / "test.log"))

        root_logger = logging.getLogger()
        file_handlers = [h for h in root_logger.handlers if isinstance(h, logging.FileHandler)]
        console_handlers = [
            h for h in root_logger.handlers
            if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        ]
        assert len(file_handlers) == 1
        assert len(console_handlers) == 1

    def test_setup_logging_console_stream(self, temp_dir, capsys):
        """Test the console handler writes to the requested stream."""
        config.setup_logging(str(temp_dir / "test.log"), level=logging.WARNING, stream=sys.stderr)
        logging.warning("Console warning")

        captured = capsys.readouterr()
        assert "Console warning" in captured.err
        assert captured.out == ""

    def test_setup_logging_file_gets_debug(self, temp_dir):
        """Test the file handler records DEBUG even with a WARNING console."""
        log_path = temp_dir / "test.log"

        config.setup_logging(str(log_path), level=logging.WARNING)
        logging.debug("Debug detail")
        logging.warning("Warning message")

        content = log_path.read_text(encoding="utf-8")
        assert "Debug detail" in content
        assert "Warning message" in content
        assert "|" in content

    def test_setup_logging_removes_old_handlers(self, temp_dir):
        """Test that setup_logging removes old handlers."""
        log_path = temp_dir / "test.log"

        config.setup_logging(str(log_path))
        initial_handler_count = len(logging.getLogger().handlers)

        config.setup_logging(str(log_path))
        final_handler_count = len(logging.getLogger().handlers)

        assert final_handler_count == initial_handler_count

    def test_setup_logging_error_handling(self, temp_dir):
        """Test that setup_logging raises on critical errors."""
        log_path = temp_dir / "nonexistent" / "subdir" / "test.log"

        with pytest.raises(Exception):
            config.setup_logging(str(log_path))

    def test_exception_logged_to_file(self, temp_dir):
        """Test that unhandled exceptions are logged to file."""
        log_path = temp_dir / "test.log"
        config.setup_logging(str(log_path))

        assert sys.excepthook != sys.__excepthook__

        try:
            raise ValueError("Test exception")
        except ValueError:
            with patch("sys.__excepthook__"):
                sys.excepthook(*sys.exc_info())

        assert "Unhandled exception" in log_path.read_text(encoding="utf-8")


# ============================================================================
# LOG AND STATUS TESTS
# ============================================================================

class TestLogAndStatus:
    """Tests for log_and_status() function."""

    def test_log_and_status_info(self, mock_status_fn, caplog):
        """Test logging info message with status update."""
        with caplog.at_level(logging.INFO):
            config.log_and_status(mock_status_fn, "Test info message")

        assert "Test info message" in caplog.text
        assert mock_status_fn.messages == ["Test info message"]

    @pytest.mark.parametrize("level,name", [("warning", "WARNING"), ("error", "ERROR"), ("debug", "DEBUG")])
    def test_log_and_status_levels(self, mock_status_fn, caplog, level, name):
        """Test each supported level."""
        with caplog.at_level(logging.DEBUG):
            config.log_and_status(mock_status_fn, "Leveled message", level=level)

        assert caplog.records[0].levelname == name

    def test_log_and_status_unknown_level(self, mock_status_fn, caplog):
        """Test unknown levels log at INFO."""
        with caplog.at_level(logging.DEBUG):
            config.log_and_status(mock_status_fn, "Odd level", level="verbose")

        assert caplog.records[0].levelname == "INFO"

    def test_log_and_status_with_ui_msg(self, mock_status_fn, caplog):
        """Test logging with separate UI message."""
        with caplog.at_level(logging.INFO):
            config.log_and_status(
                mock_status_fn,
                "Detailed log message",
                ui_msg="Simple UI message"
            )

        assert "Detailed log message" in caplog.text
        assert mock_status_fn.messages[0] == "Simple UI message"

    def test_log_and_status_none_status_fn(self, caplog):
        """Test logging with None status function."""
        with caplog.at_level(logging.INFO):
            config.log_and_status(None, "Test message")

        assert "Test message" in caplog.text

    def test_log_and_status_exception_in_status_fn(self, caplog, capsys):
        """Test handling exception in status function."""
        def failing_status_fn(msg):
            raise ValueError("Status function failed")

        with caplog.at_level(logging.INFO):
            config.log_and_status(failing_status_fn, "Test message")

        assert "status_fn raised while logging message" in caplog.text
        assert "[STATUS] Test message" in capsys.readouterr().out
