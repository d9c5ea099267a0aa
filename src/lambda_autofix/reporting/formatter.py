"""Human-readable formatting of remediation cycle results.

Functions:
    format_run_summary: Format a RunSummary as console text.

Example:
    >>> from lambda_autofix.reporting.formatter import format_run_summary
    >>> print(format_run_summary(summary))
"""
from typing import List

from ..models import ResourceReport, ResourceStatus, RunSummary


def _describe_report(report: ResourceReport) -> str:
    line = f"- {report.resource_id}: {report.status.value}"
    if report.status != ResourceStatus.ERROR:
        line += f" ({report.error_count} errors / {report.total_invocations} invocations)"
    if report.category is not None:
        line += f", {report.category.value}"
        if report.confidence is not None:
            line += f" [{report.confidence.value} confidence, priority {report.priority}]"
    if report.outcome is not None:
        line += f" -> {report.outcome.value}"
    if report.reason:
        line += f": {report.reason}"
    return line


def format_run_summary(summary: RunSummary, show_guidance: bool = True) -> str:
    """Format a cycle summary as human-readable text.

    Args:
        summary: Result of ``run_cycle``
        show_guidance: Include guidance for resources that were not fixed

    Returns:
        Formatted multi-line string.

    Example:
        >>> print(format_run_summary(summary))
        # Remediation Cycle cycle-20240101120000-ab12cd34
        <BLANKLINE>
        Monitored: 3  With errors: 1  Fixed: 1  Rolled back: 0  Failed: 0  Skipped: 0
        <BLANKLINE>
        Resources:
        - orders-api: attempted (12 errors / 40 invocations), timeout [high confidence, priority 10] -> committed
        ...
    """
    lines: List[str] = []
    lines.append(f"# Remediation Cycle {summary.cycle_id}")
    lines.append("")
    lines.append(
        f"Monitored: {summary.monitored}  With errors: {summary.with_errors}  "
        f"Fixed: {summary.fixed}  Rolled back: {summary.rolled_back}  "
        f"Failed: {summary.failed}  Skipped: {summary.skipped}"
    )
    if summary.deadline_reached:
        lines.append("Run deadline reached; remaining attempts were not started.")
    lines.append("")

    lines.append("Resources:")
    for report in summary.resources:
        lines.append(_describe_report(report))

    if summary.batches:
        lines.append("")
        lines.append("Batches:")
        for index, batch in enumerate(summary.batches, 1):
            lines.append(f"{index}. {', '.join(batch)}")

    attention = summary.requires_attention
    if attention:
        lines.append("")
        lines.append("Manual remediation required:")
        for record in attention:
            lines.append(f"- {record.resource_id} ({record.attempt_id}): {record.reason}")

    if show_guidance:
        guided = [r for r in summary.resources if r.guidance]
        if guided:
            lines.append("")
            lines.append("Guidance:")
            for report in guided:
                lines.append(f"- {report.resource_id}: {report.guidance}")

    return "\n".join(lines)
