"""Rendering of security reports as text, JSON or HTML."""
import html
import json
import logging
import os
from typing import List

from ..domains.models import SecurityReport

logger = logging.getLogger(__name__)

HTML_STYLE = """
    body { font-family: Arial, sans-serif; margin: 20px; }
    .report { border: 1px solid #ddd; margin: 20px 0; padding: 20px; border-radius: 5px; }
    .score { font-size: 24px; font-weight: bold; }
    .good { color: green; }
    .warning { color: orange; }
    .bad { color: red; }
    .issue { margin: 10px 0; padding: 10px; border-left: 4px solid #ccc; }
    .critical { border-left-color: darkred; }
    .high { border-left-color: red; }
    .medium { border-left-color: orange; }
    .low { border-left-color: yellow; }
"""


def score_class(score: int) -> str:
    if score >= 80:
        return "good"
    if score >= 60:
        return "warning"
    return "bad"


def render_text(reports: List[SecurityReport]) -> str:
    lines = ["Security Monitoring Report", "=" * 26, ""]
    for report in reports:
        lines.append(f"Environment: {report.environment}")
        lines.append(f"Score: {report.score}/100")
        lines.append(f"Timestamp: {report.timestamp}")
        lines.append("")

        if report.issues:
            lines.append(f"Issues Found ({len(report.issues)}):")
            for issue in report.issues:
                lines.append(f"  - [{issue.severity.upper()}] {issue.message}")
                lines.append(f"    Suggestion: {issue.suggestion}")
        else:
            lines.append("No issues found")
        lines.append("")

        if report.compliance:
            lines.append("Compliance Status:")
            for standard, result in report.compliance.items():
                lines.append(f"  - {standard}: {result.status}")
            lines.append("")
    return "\n".join(lines)


def render_json(reports: List[SecurityReport]) -> str:
    return json.dumps([r.to_dict() for r in reports], indent=2)


def render_html(reports: List[SecurityReport]) -> str:
    parts = [
        "<!DOCTYPE html>",
        "<html>",
        "<head>",
        "  <title>Security Monitoring Report</title>",
        f"  <style>{HTML_STYLE}  </style>",
        "</head>",
        "<body>",
        "  <h1>Security Monitoring Report</h1>",
    ]
    for report in reports:
        parts.append('  <div class="report">')
        parts.append(f"    <h2>{html.escape(report.environment)} Environment</h2>")
        parts.append(f'    <div class="score {score_class(report.score)}">Score: {report.score}/100</div>')
        parts.append(f"    <p>Timestamp: {html.escape(report.timestamp)}</p>")

        if report.issues:
            parts.append(f"    <h3>Issues Found ({len(report.issues)})</h3>")
            for issue in report.issues:
                severity = html.escape(issue.severity)
                parts.append(f'    <div class="issue {severity}">')
                parts.append(f"      <strong>[{severity.upper()}]</strong> {html.escape(issue.message)}")
                parts.append(f"      <br><em>Suggestion: {html.escape(issue.suggestion)}</em>")
                parts.append("    </div>")
        else:
            parts.append("    <p>No issues found</p>")

        if report.compliance:
            parts.append("    <h3>Compliance Status</h3>")
            parts.append("    <ul>")
            for standard, result in report.compliance.items():
                parts.append(f"      <li>{html.escape(standard)}: {html.escape(result.status)}</li>")
            parts.append("    </ul>")
        parts.append("  </div>")
    parts.extend(["</body>", "</html>", ""])
    return "\n".join(parts)


RENDERERS = {"text": render_text, "json": render_json, "html": render_html}


def render_report(reports: List[SecurityReport], fmt: str = "text") -> str:
    try:
        renderer = RENDERERS[fmt]
    except KeyError:
        raise ValueError(f"Unsupported format: {fmt}. Valid formats: {', '.join(RENDERERS)}")
    return renderer(reports)


def write_report(content: str, path: str) -> str:
    parent = os.path.dirname(os.path.abspath(path))
    os.makedirs(parent, exist_ok=True)
    with open(path, "w") as f:
        f.write(content)
    logger.info(f"Report saved to {path}")
    return path
