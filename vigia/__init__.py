"""Vigia incident engine: report dedup, content guardrail and footprint queries."""

__version__ = "1.0.0"
