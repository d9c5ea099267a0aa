"""
Reporting and output formatting.
"""

__all__ = [
    "format_run_summary",
    "export_json",
    "export_markdown",
]

from .formatter import format_run_summary
from .exporters import export_json, export_markdown
