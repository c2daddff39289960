"""
Utility functions for file system operations and filename handling.
"""

from __future__ import annotations

import re
from pathlib import Path

# Pattern to match characters that are not safe in download filenames
# Allows: alphanumeric characters, dots, underscores, and hyphens
SANITIZE_PATTERN = re.compile(r"[^a-zA-Z0-9._-]+")

PDF_SIGNATURE = b"%PDF-"


def sanitize_filename(filename: str, fallback: str = "document.pdf") -> str:
    """
    Generate a header-safe filename from user input.

    Example:
        >>> sanitize_filename("My Contract (v2).pdf")
        "My-Contract-v2-.pdf"
        >>> sanitize_filename("../../")
        "document.pdf"
    """
    name = Path(filename.replace("\\", "/")).name
    cleaned = SANITIZE_PATTERN.sub("-", name.strip()).strip("-_.")
    return cleaned or fallback


def prefixed_filename(prefix: str, original_name: str) -> str:
    """Return the download name for a derived file, e.g. ``signed_contract.pdf``."""
    return f"{prefix}_{sanitize_filename(original_name)}"


def looks_like_pdf(data: bytes) -> bool:
    """Check for the PDF header signature at the start of the payload."""
    return data.lstrip()[: len(PDF_SIGNATURE)] == PDF_SIGNATURE


def ensure_directory(path: Path) -> Path:
    """
    Create a directory if it doesn't exist, including parent directories.

    Returns:
        The same path object for chaining
    """
    path.mkdir(parents=True, exist_ok=True)
    return path
