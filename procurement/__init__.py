# CUI // SP-PROPIN
"""Procurement assistant: AI-assisted vendor proposal extraction and comparison."""

__version__ = "0.1.0"
