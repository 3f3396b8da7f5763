"""Actual production tracking: projected vs actual comparison and sheet uploads."""
