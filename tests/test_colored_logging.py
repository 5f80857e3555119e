"""
Tests for the colored console formatter.
"""

import io
import logging
from unittest import TestCase

from scaffold_forge.colored_logging import ColoredFormatter, log_section, log_status, log_success


class TtyStream(io.StringIO):
    def isatty(self):
        return True


def make_record(message, level=logging.INFO, **extra):
    record = logging.LogRecord("scaffold_forge", level, __file__, 1, message, None, None)
    record.__dict__.update(extra)
    return record


class TestColoredFormatter(TestCase):
    """Test cases for ColoredFormatter"""

    def test_plain_when_not_a_tty(self):
        formatter = ColoredFormatter(use_colors=True, stream=io.StringIO())

        assert formatter.format(make_record("✓ Generated 7 artifact(s)")) == "✓ Generated 7 artifact(s)"

    def test_levels_other_than_info_are_prefixed(self):
        formatter = ColoredFormatter(use_colors=False)

        assert formatter.format(make_record("careful", logging.WARNING)) == "WARNING: careful"

    def test_status_selects_color(self):
        formatter = ColoredFormatter(stream=TtyStream())

        result = formatter.format(make_record("   create  app/models/post.py", status="create"))

        assert result == f"{ColoredFormatter.STATUS_COLORS['create']}   create  app/models/post.py{ColoredFormatter.RESET}"

    def test_marker_selects_color(self):
        formatter = ColoredFormatter(stream=TtyStream())

        result = formatter.format(make_record("→ Planning artifacts for 'post'..."))

        assert result.startswith(ColoredFormatter.MARKER_COLORS["→"])

    def test_errors_keep_level_color(self):
        formatter = ColoredFormatter(stream=TtyStream())

        result = formatter.format(make_record("applied nothing", logging.ERROR, status="applied"))

        assert result.startswith(ColoredFormatter.LEVEL_COLORS["ERROR"])

    def test_unknown_plain_info_is_uncolored(self):
        formatter = ColoredFormatter(stream=TtyStream())

        assert formatter.format(make_record("Schema is up to date.")) == "Schema is up to date."


class TestHelpers(TestCase):

    def test_log_helpers(self):
        logger = logging.getLogger("scaffold_forge.test_helpers")

        with self.assertLogs(logger, "INFO") as logs:
            log_success(logger, "done")
            log_status(logger, "applied", "20240101000000")
            log_section(logger, "migrations")

        assert logs.records[0].getMessage() == "✓ done"
        assert logs.records[1].getMessage() == "  applied  20240101000000"
        assert logs.records[1].status == "applied"
        assert logs.records[3].getMessage() == "  MIGRATIONS"
