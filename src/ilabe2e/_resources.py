"""Resource path resolution for ilab-e2e.

Handles correct path resolution whether running from:
- Source tree (development)
- pip install (site-packages)
"""

from __future__ import annotations

from pathlib import Path


def _package_dir() -> Path:
    """Return the ilabe2e package directory."""
    return Path(__file__).parent


def get_templates_dir() -> Path:
    """Return path to Jinja2 templates directory."""
    return _package_dir() / "templates"
