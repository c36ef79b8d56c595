"""Archive parsing and LaTeX structure recovery."""
