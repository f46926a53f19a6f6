"""Convert CI pipeline definitions into GitHub Actions workflows."""

__version__ = "0.1.0"
