"""Static scan of a source tree for hardcoded secrets."""
import csv
import io
import json
import logging
import os
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

from ..domains.models import Finding
from ..domains.scan_patterns import (
    CONFIDENCE_BASE,
    DEFAULT_SUGGESTION,
    EXCLUDE_DIRS,
    FALSE_POSITIVES,
    FILE_EXTENSIONS,
    HIGH_ENTROPY_SHAPE,
    MASKED_TYPES,
    SECRET_PATTERNS,
    SECRET_TYPE_RULES,
    SUGGESTIONS,
    UNKNOWN_TYPE,
    UPPERCASE_SHAPE,
)
from ..domains.templates import get_required_secrets, get_template

logger = logging.getLogger(__name__)

CSV_HEADERS = ["File", "Line", "Column", "Secret Type", "Confidence", "Secret", "Suggestion"]


def is_false_positive(text: str) -> bool:
    lowered = text.lower()
    return any(entry.lower() in lowered for entry in FALSE_POSITIVES)


def identify_secret_type(text: str) -> str:
    lowered = text.lower()
    for secret_type, all_of, any_of in SECRET_TYPE_RULES:
        if all_of and all(word in lowered for word in all_of):
            return secret_type
        if any_of and any(word in lowered for word in any_of):
            return secret_type
    return UNKNOWN_TYPE


def calculate_confidence(text: str, path: str) -> int:
    """
    Heuristic 0-100 score for a match.

    Longer matches and config/env/src paths raise it; test paths lower it.
    ``path`` should be relative to the scan root so the location of the
    checkout does not influence the score.
    """
    lowered_path = path.lower()
    confidence = CONFIDENCE_BASE
    if len(text) > 32:
        confidence += 30
    if len(text) > 64:
        confidence += 20
    if "config" in lowered_path or "env" in lowered_path:
        confidence += 25
    if "src" in lowered_path and "test" not in lowered_path:
        confidence += 15
    if HIGH_ENTROPY_SHAPE.match(text):
        confidence += 20
    if UPPERCASE_SHAPE.match(text):
        confidence += 15
    if "test" in lowered_path:
        confidence -= 20
    return max(0, min(100, confidence))


def mask_secret(text: str) -> str:
    """Keep the first 8 characters of sensitive-looking matches visible."""
    if identify_secret_type(text) in MASKED_TYPES:
        return text[:8] + "*" * max(4, len(text) - 8)
    return text


def generate_suggestion(text: str) -> str:
    template = get_template("production")
    upper = text.upper()
    for name in template.secret_names():
        if name in upper:
            return f"Replace with environment variable: {name}"

    secret_type = identify_secret_type(text)
    if secret_type != UNKNOWN_TYPE:
        for definition in template.secrets:
            if secret_type.lower() in definition.description.lower():
                return f"Replace with environment variable: {definition.name}"
    return SUGGESTIONS.get(secret_type, DEFAULT_SUGGESTION)


def filter_by_environment(findings: List[Finding], environment: str) -> List[Finding]:
    """Drop findings whose text names one of the environment's required secrets."""
    required = [name.lower() for name in get_required_secrets(environment)]
    if not required:
        return findings
    return [f for f in findings if not any(name in f.secret.lower() for name in required)]


class HardcodedSecretScanner:
    """Walks a tree and applies SECRET_PATTERNS to every tracked file."""

    def __init__(
        self,
        root: str = ".",
        extensions: Optional[Iterable[str]] = None,
        exclude_dirs: Optional[Iterable[str]] = None,
    ):
        self.root = Path(root)
        self.extensions = frozenset(extensions) if extensions is not None else FILE_EXTENSIONS
        self.exclude_dirs = frozenset(exclude_dirs) if exclude_dirs is not None else EXCLUDE_DIRS

    def _tracked(self, name: str) -> bool:
        if name.startswith(".env"):
            return True
        return os.path.splitext(name)[1] in self.extensions

    def iter_files(self) -> Iterator[Path]:
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(d for d in dirnames if d not in self.exclude_dirs)
            for filename in sorted(filenames):
                if self._tracked(filename):
                    yield Path(dirpath) / filename

    def scan_content(self, relative_path: str, content: str) -> List[Finding]:
        findings: List[Finding] = []
        seen_offsets = set()
        for _name, pattern in SECRET_PATTERNS:
            for match in pattern.finditer(content):
                start = match.start()
                if start in seen_offsets:
                    continue
                text = match.group(0)
                if is_false_positive(text):
                    continue
                seen_offsets.add(start)

                line = content.count("\n", 0, start) + 1
                column = start - content.rfind("\n", 0, start)
                findings.append(Finding(
                    file=relative_path,
                    line=line,
                    column=column,
                    secret=mask_secret(text),
                    secret_type=identify_secret_type(text),
                    confidence=calculate_confidence(text, relative_path),
                    suggestion=generate_suggestion(text),
                ))
        findings.sort(key=lambda f: (f.line, f.column))
        return findings

    def scan(self) -> List[Finding]:
        findings: List[Finding] = []
        count = 0
        for path in self.iter_files():
            count += 1
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.debug(f"Could not read file {path}: {e}")
                continue
            relative = path.relative_to(self.root).as_posix()
            findings.extend(self.scan_content(relative, content))
        logger.info(f"Scanned {count} files, {len(findings)} potential secrets")
        return findings


def render_text(findings: List[Finding]) -> str:
    if not findings:
        return "No hardcoded secrets found"

    by_file: Dict[str, List[Finding]] = {}
    for finding in findings:
        by_file.setdefault(finding.file, []).append(finding)

    lines = [
        "Hardcoded Secrets Report",
        "========================",
        "",
        f"Found {len(findings)} potential hardcoded secrets:",
        "",
    ]
    for file, file_findings in by_file.items():
        lines.append(file)
        lines.append("-" * len(file))
        for f in file_findings:
            lines.append(f"  Line {f.line}, Column {f.column}")
            lines.append(f"    Type: {f.secret_type}")
            lines.append(f"    Confidence: {f.confidence}%")
            lines.append(f"    Secret: {f.secret}")
            lines.append(f"    Suggestion: {f.suggestion}")
            lines.append("")
    return "\n".join(lines)


def render_json(findings: List[Finding]) -> str:
    return json.dumps([f.to_dict() for f in findings], indent=2)


def render_csv(findings: List[Finding]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for f in findings:
        writer.writerow([f.file, f.line, f.column, f.secret_type, f.confidence, f.secret, f.suggestion])
    return buffer.getvalue()


RENDERERS = {"text": render_text, "json": render_json, "csv": render_csv}


def render_findings(findings: List[Finding], fmt: str = "text") -> str:
    try:
        return RENDERERS[fmt](findings)
    except KeyError:
        raise ValueError(f"Unsupported format: {fmt}. Valid formats: {', '.join(RENDERERS)}")


def failing_findings(findings: List[Finding], min_confidence: int = 0) -> List[Finding]:
    """Findings that fail the run: confidence at or above ``min_confidence``."""
    return [f for f in findings if f.confidence >= min_confidence]
