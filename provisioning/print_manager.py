#!/usr/bin/env python3
"""Print Manager module for the bare-metal provisioning orchestrator."""

import threading

# Global debug flag
DEBUG_MODE = False

# The hardware watch logs from its own thread
_output_lock = threading.Lock()


def _emit(line):
    with _output_lock:
        print(line, flush=True)


class PrintManager:
    """Manages all output formatting and printing for the application"""

    @staticmethod
    def print_header(message):
        """Print a section header with visual separation"""
        _emit(f"\n{'=' * 60}\n {message.upper()}\n{'=' * 60}")

    @staticmethod
    def print_info(message):
        """Print informational message"""
        _emit(f"    [INFO]  {message}")

    @staticmethod
    def print_success(message):
        """Print success message"""
        _emit(f"    [✓]     {message}")

    @staticmethod
    def print_warning(message):
        """Print warning message"""
        _emit(f"    [⚠️]     {message}")

    @staticmethod
    def print_error(message):
        """Print error message"""
        _emit(f"    [✗]     {message}")

    @staticmethod
    def print_step(step_num, total_steps, message):
        """Print numbered step"""
        _emit(f"[{step_num}/{total_steps}] {message}")

    @staticmethod
    def print_action(message):
        """Print action being performed (only in debug mode)"""
        if DEBUG_MODE:
            _emit(f"    [ACTION] {message}")

    @staticmethod
    def print_table(columns, rows):
        """Print rows as a left-aligned table.

        Args:
            columns: Column keys, also used (upper-cased) as headings
            rows: List of dicts keyed by column
        """
        widths = {column: len(column) for column in columns}
        for row in rows:
            for column in columns:
                widths[column] = max(widths[column], len(str(row.get(column, ""))))

        lines = ["  ".join(column.upper().ljust(widths[column]) for column in columns)]
        for row in rows:
            lines.append("  ".join(str(row.get(column, "")).ljust(widths[column]) for column in columns))
        _emit("\n".join(line.rstrip() for line in lines))


# Create a global print manager instance for convenience
printer = PrintManager()
