"""Tests for spreadsheet cell escaping (unit-level, no DB dependency)."""

import pytest
import sys
import os
from datetime import date

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from watermarket.services.export_service import export_filename, spreadsheet_safe


class TestSpreadsheetSafe:
    @pytest.mark.parametrize("value", ["=1+1", "+Surface", "-2", "@SUM(A1)", "\tTab"])
    def test_formula_text_is_quoted(self, value):
        assert spreadsheet_safe(value) == "'" + value

    @pytest.mark.parametrize("value", ["Westlands", "", "Apr-Jun", -5, 550.0, None])
    def test_other_values_untouched(self, value):
        assert spreadsheet_safe(value) == value


class TestFilename:
    def test_dated(self):
        assert export_filename(date(2026, 4, 1)) == "trades-2026-04-01.xlsx"
