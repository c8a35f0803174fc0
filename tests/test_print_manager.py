#!/usr/bin/env python3
"""
Pytest tests for output formatting.
"""

import os
import sys

# Add parent directory to path for module imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from provisioning import print_manager  # noqa: E402
from provisioning.print_manager import PrintManager  # noqa: E402


class TestPrintManager:
    """Test cases for PrintManager output."""

    def test_table_aligns_columns(self, capsys) -> None:
        PrintManager.print_table(
            ["name", "ip"],
            [{"name": "hw-0a1b2c", "ip": "10.0.10.50"}, {"name": "hw-1", "ip": ""}],
        )

        lines = capsys.readouterr().out.splitlines()
        assert lines == ["NAME       IP", "hw-0a1b2c  10.0.10.50", "hw-1"]

    def test_action_only_in_debug_mode(self, capsys, monkeypatch) -> None:
        monkeypatch.setattr(print_manager, "DEBUG_MODE", False)
        PrintManager.print_action("hidden")
        monkeypatch.setattr(print_manager, "DEBUG_MODE", True)
        PrintManager.print_action("shown")

        out = capsys.readouterr().out
        assert "hidden" not in out
        assert "[ACTION] shown" in out

    def test_step_format(self, capsys) -> None:
        PrintManager.print_step(2, 5, "Power cycling 10-0-10-5 into network boot")

        assert capsys.readouterr().out == "[2/5] Power cycling 10-0-10-5 into network boot\n"
