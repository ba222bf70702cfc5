"""Competitor profiling and SWOT-style insights."""
