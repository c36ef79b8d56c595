"""Readiscover: guided re-discovery of research papers from their LaTeX sources."""

__version__ = "1.0.0"
