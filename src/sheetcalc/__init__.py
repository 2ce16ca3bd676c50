"""sheetcalc -- token-level spreadsheet formula evaluation."""

__version__ = "0.3.0"
