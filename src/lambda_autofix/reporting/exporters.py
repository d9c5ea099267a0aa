"""Export remediation cycle results to files.

Functions:
    export_json: Export a RunSummary to JSON format.
    export_markdown: Export a RunSummary to a Markdown report.

Example:
    >>> from lambda_autofix.reporting.exporters import export_json, export_markdown
    >>> export_json(summary, "output/cycle.json")
    >>> export_markdown(summary, "output/cycle.md")
"""
from typing import Any, Dict, Union
import json
import logging
from pathlib import Path

from ..models import RunSummary
from ..utils import validate_output_path

logger = logging.getLogger(__name__)


def _as_dict(summary: Union[RunSummary, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(summary, RunSummary):
        return summary.to_dict()
    return summary


def export_json(summary: Union[RunSummary, Dict[str, Any]], output_path: str | Path) -> None:
    """Export a cycle summary to JSON format.

    Args:
        summary: RunSummary or its ``to_dict()`` form
        output_path: Path of the ``.json`` file to write

    Raises:
        PathValidationError: If output path is invalid or has wrong extension.
        OSError: If file cannot be written.
    """
    path = validate_output_path(
        output_path,
        allow_overwrite=True,
        allowed_extensions={'.json'}
    )

    try:
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(_as_dict(summary), f, indent=2, ensure_ascii=False)
        logger.info(f"Exported JSON to: {path}")
    except OSError as e:
        logger.error(f"Failed to export JSON: {e}")
        raise


def export_markdown(summary: RunSummary, output_path: str | Path) -> None:
    """Export a cycle summary as a Markdown report.

    The report has a totals table, one row per resource and a section per
    attempt with its visited states.

    Raises:
        PathValidationError: If output path is invalid or has wrong extension.
        OSError: If file cannot be written.
    """
    path = validate_output_path(
        output_path,
        allow_overwrite=True,
        allowed_extensions={'.md', '.markdown'}
    )

    lines = []
    lines.append(f"# Remediation Cycle {summary.cycle_id}")
    lines.append("")
    lines.append(f"Started: {summary.started_at.isoformat()}")
    if summary.completed_at:
        lines.append(f"Completed: {summary.completed_at.isoformat()}")
    lines.append("")
    lines.append("| Monitored | With errors | Fixed | Rolled back | Failed | Skipped |")
    lines.append("|---|---|---|---|---|---|")
    lines.append(
        f"| {summary.monitored} | {summary.with_errors} | {summary.fixed} | "
        f"{summary.rolled_back} | {summary.failed} | {summary.skipped} |"
    )
    lines.append("")

    lines.append("## Resources")
    lines.append("")
    lines.append("| Resource | Status | Errors | Category | Outcome | Reason |")
    lines.append("|---|---|---|---|---|---|")
    for report in summary.resources:
        lines.append(
            f"| {report.resource_id} | {report.status.value} | {report.error_count} | "
            f"{report.category.value if report.category else ''} | "
            f"{report.outcome.value if report.outcome else ''} | {report.reason or ''} |"
        )
    lines.append("")

    if summary.attempts:
        lines.append("## Attempts")
        lines.append("")
        for record in summary.attempts:
            lines.append(f"### {record.resource_id} ({record.attempt_id})")
            lines.append(f"- Action: {record.action.describe()}")
            lines.append(f"- Outcome: {record.outcome.value}")
            lines.append(f"- Revisions: {record.prior_revision} -> {record.new_revision}")
            lines.append(f"- States: {' -> '.join(s.value for s in record.states)}")
            if record.reason:
                lines.append(f"- Reason: {record.reason}")
            if record.requires_manual_remediation:
                lines.append("- **Manual remediation required**")
            lines.append("")

    try:
        with open(path, 'w', encoding='utf-8') as f:
            f.write("\n".join(lines))
        logger.info(f"Exported Markdown to: {path}")
    except OSError as e:
        logger.error(f"Failed to export Markdown: {e}")
        raise
