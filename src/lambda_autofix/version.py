"""
Version information for lambda-autofix.
"""

__version__ = "1.0.0"

VERSION_INFO = {
    "version": __version__,
    "name": "lambda-autofix",
    "full_name": "Lambda Error Detection & Auto-Remediation",
}


def get_version() -> str:
    """Return the current version string."""
    return __version__


def get_version_info() -> dict:
    """Return detailed version information."""
    return VERSION_INFO.copy()
