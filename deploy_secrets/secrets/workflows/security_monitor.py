"""Security posture scoring per environment."""
import logging
import os
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..domains.audit_log import AuditLog, parse_timestamp
from ..domains.errors import RemoteStoreError
from ..domains.masking import is_sensitive_key
from ..domains.models import CheckResult, ComplianceResult, ENVIRONMENTS, Issue, SecurityReport
from ..domains.notifier import DANGER, GOOD, WARNING, Notifier, build_message
from ..domains.stores import CachedSecretStore, SecretStore
from ..domains.templates import get_required_secrets
from .hardcoded_scan import HardcodedSecretScanner, failing_findings

logger = logging.getLogger(__name__)

CHECK_FAILURE_DEDUCTION = 20
COMMON_PATTERNS = (
    "password123", "admin123", "user123", "123456", "qwerty",
    "abc123", "letmein", "welcome", "monkey", "dragon",
    "baseball", "football", "trustno1", "superman", "batman",
)
WEAK_SUBSTRINGS = ("password", "admin", "user")
# Values shorter than this are not searched for in logs and artifacts.
MIN_LEAK_LENGTH = 8
MAX_ARTIFACT_BYTES = 5 * 1024 * 1024

# Suggestion shown when a check itself fails.
CHECK_FAILURE_SUGGESTIONS = {
    "secret_strength": "Check store configuration and permissions",
    "rotation": "Check audit log configuration",
    "access_control": "Check access control configuration",
    "encryption": "Check encryption configuration",
    "audit_logging": "Check audit logging configuration",
    "exposed_secrets": "Check secret scanning configuration",
}


def is_weak_password(value: str) -> bool:
    if not value or len(value) < 8:
        return True
    if value.isascii() and value.isalnum():
        return True
    lowered = value.lower()
    return any(word in lowered for word in WEAK_SUBSTRINGS)


def has_common_pattern(value: str) -> bool:
    lowered = value.lower()
    return any(pattern in lowered for pattern in COMMON_PATTERNS)


def compute_score(deductions: Sequence[int]) -> int:
    return max(0, min(100, 100 - sum(deductions)))


class SecurityMonitor:
    """
    Runs the fixed battery of checks and folds their deductions into a score.

    Checks are looked up in ``self.checks``; each returns a CheckResult. A
    check that raises is reported as an ``error`` issue instead of aborting
    the report.
    """

    def __init__(
        self,
        store: SecretStore,
        audit_log: AuditLog,
        config: Optional[Dict[str, Any]] = None,
        environments: Sequence[str] = ENVIRONMENTS,
        scanner: Optional[HardcodedSecretScanner] = None,
        github=None,
        notifier: Optional[Notifier] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        # Duplicate checks pull every environment; cache pulls for this run.
        self.store = store if isinstance(store, CachedSecretStore) else CachedSecretStore(store)
        self.audit_log = audit_log
        self.config = config or {}
        self.environments = list(environments)
        self.scanner = scanner
        self.github = github
        self.notifier = notifier
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._code_findings = None

        self.checks: "OrderedDict[str, Callable[[str], CheckResult]]" = OrderedDict([
            ("secret_strength", self.check_secret_strength),
            ("rotation", self.check_rotation),
            ("access_control", self.check_access_control),
            ("encryption", self.check_encryption),
            ("audit_logging", self.check_audit_logging),
            ("exposed_secrets", self.check_exposed_secrets),
        ])
        self.compliance_standards: Dict[str, Callable[[str], ComplianceResult]] = {
            "NIST": self.check_nist_compliance,
            "ISO27001": self.check_iso27001_compliance,
            "SOC2": self.check_soc2_compliance,
        }

    def _section(self, name: str) -> Dict[str, Any]:
        return self.config.get(name) or {}

    def monitor_environment(self, environment: str, compliance: bool = False) -> SecurityReport:
        report = SecurityReport(environment=environment, timestamp=self.clock().isoformat())
        deductions: List[int] = []

        for name, check in self.checks.items():
            result = self._run_check(name, check, environment)
            report.checks[name] = result
            report.issues.extend(result.issues)
            deductions.append(result.deduction)

        if compliance:
            for standard, check in self.compliance_standards.items():
                result = check(environment)
                report.compliance[standard] = result
                report.issues.extend(result.issues)
                deductions.append(result.deduction)

        report.score = compute_score(deductions)
        logger.info(f"{environment}: score {report.score}/100, {len(report.issues)} issues")
        return report

    def monitor(self, environments: Sequence[str], compliance: bool = False) -> List[SecurityReport]:
        return [self.monitor_environment(env, compliance=compliance) for env in environments]

    def _run_check(self, name: str, check: Callable[[str], CheckResult], environment: str) -> CheckResult:
        try:
            return check(environment)
        except Exception as e:
            logger.debug(f"Check {name} failed for {environment}", exc_info=True)
            result = CheckResult()
            result.add(
                Issue(
                    type="error",
                    severity="high",
                    message=f"Failed to check {name.replace('_', ' ')}: {e}",
                    suggestion=CHECK_FAILURE_SUGGESTIONS.get(name, "Check configuration"),
                ),
                CHECK_FAILURE_DEDUCTION,
            )
            return result

    def check_secret_strength(self, environment: str) -> CheckResult:
        result = CheckResult(details={"weak_secrets": [], "duplicates": []})
        secrets = self.store.pull(environment)

        for key, value in secrets.items():
            if is_weak_password(value):
                result.add(Issue(
                    type="weak_password",
                    severity="high",
                    message=f"Weak password detected for {key}",
                    suggestion="Use a stronger password with at least 12 characters, including uppercase, "
                               "lowercase, numbers, and special characters",
                ), 10)
                result.details["weak_secrets"].append(key)

            if has_common_pattern(value):
                result.add(Issue(
                    type="common_pattern",
                    severity="medium",
                    message=f"Common pattern detected in {key}",
                    suggestion='Avoid using common patterns like "password123", "admin123", etc.',
                ), 5)

            if self._is_duplicate(key, value, environment):
                result.add(Issue(
                    type="duplicate_secret",
                    severity="medium",
                    message=f"Duplicate secret detected for {key} across environments",
                    suggestion="Use environment-specific secrets to prevent cross-environment access",
                ), 5)
                result.details["duplicates"].append(key)
        return result

    def _is_duplicate(self, key: str, value: str, environment: str) -> bool:
        for other in self.environments:
            if other == environment:
                continue
            try:
                other_secrets = self.store.pull(other)
            except RemoteStoreError as e:
                logger.debug(f"Skipping duplicate check against {other}: {e}")
                continue
            if other_secrets.get(key) == value:
                return True
        return False

    def check_rotation(self, environment: str) -> CheckResult:
        max_age_days = self._section("rotation").get("max_age_days", 90)
        result = CheckResult(details={"last_rotated": {}})
        entries = [e for e in self.audit_log.read(environment) if e.action == "rotate"]
        now = self.clock()

        for secret in get_required_secrets(environment):
            events = [e for e in entries if e.key == secret]
            if not events:
                result.add(Issue(
                    type="never_rotated",
                    severity="high",
                    message=f"{secret} has never been rotated",
                    suggestion="Rotate secrets before deployment",
                ), 20)
                continue

            last_rotation = parse_timestamp(events[-1].timestamp)
            days = int((now - last_rotation).total_seconds() // 86400)
            result.details["last_rotated"][secret] = {"date": last_rotation.isoformat(), "days_ago": days}
            if days > max_age_days:
                result.add(Issue(
                    type="stale_secret",
                    severity="high",
                    message=f"{secret} not rotated in {days} days",
                    suggestion=f"Rotate secrets at least every {max_age_days} days",
                ), 15)

        result.details["status"] = "good" if not result.issues else "needs_attention"
        return result

    def check_access_control(self, environment: str) -> CheckResult:
        result = CheckResult()
        access = self.store.describe_access(environment)
        result.details["store"] = {"team_scope": access.team_scope, "scope": access.scope}

        if not access.team_scope:
            result.add(Issue(
                type="no_team_access",
                severity="high",
                message="No team access configured for this environment",
                suggestion="Configure team-scoped access in the hosting platform",
            ), 20)

        if self.github is not None:
            has_access = self.github.has_secret_access()
            result.details["github"] = {"has_access": has_access}
            if not has_access:
                result.add(Issue(
                    type="no_repo_access",
                    severity="high",
                    message="No repository access configured for this environment",
                    suggestion="Configure repository secret access in GitHub",
                ), 15)

        if access.permissive:
            result.add(Issue(
                type="permissive_access",
                severity="medium",
                message=f"Overly permissive access detected for: {', '.join(access.permissive)}",
                suggestion="Restrict access to only necessary team members",
            ), 10)
        return result

    def check_encryption(self, environment: str) -> CheckResult:
        encryption = self._section("encryption")
        at_rest = encryption.get("at_rest", True)
        algorithms = [a.lower() for a in encryption.get("algorithms", ["aes-256-gcm"])]
        allowed = [a.lower() for a in encryption.get("allowed_algorithms", ["aes-256-gcm"])]
        result = CheckResult(details={"encrypted_at_rest": at_rest, "algorithms": algorithms})

        if not at_rest:
            result.add(Issue(
                type="no_encryption",
                severity="high",
                message="Secrets are not encrypted at rest",
                suggestion="Enable encryption at rest for all environments",
            ), 25)

        if "aes-256-gcm" not in algorithms or any(a not in allowed for a in algorithms):
            result.add(Issue(
                type="weak_algorithm",
                severity="medium",
                message="Weak encryption algorithm detected",
                suggestion="Use AES-256-GCM for all sensitive data",
            ), 10)

        rotation_days = encryption.get("key_rotation_days", 90)
        last_rotated = encryption.get("key_last_rotated")
        rotated_recently = False
        if last_rotated:
            last = parse_timestamp(str(last_rotated))
            rotated_recently = self.clock() - last <= timedelta(days=rotation_days)
        result.details["key_rotation"] = {"last_rotated": last_rotated, "enabled": rotated_recently}
        if not rotated_recently:
            result.add(Issue(
                type="no_key_rotation",
                severity="medium",
                message="Encryption keys are not rotated regularly",
                suggestion=f"Rotate encryption keys every {rotation_days} days",
            ), 15)
        return result

    def check_audit_logging(self, environment: str) -> CheckResult:
        audit = self._section("audit")
        result = CheckResult(details={"enabled": self.audit_log.exists()})

        if not self.audit_log.exists():
            result.add(Issue(
                type="no_audit_logging",
                severity="high",
                message="Audit logging is not enabled",
                suggestion="Enable audit logging for all environments",
            ), 20)
            return result

        now = self.clock()
        entries = self.audit_log.read(environment)
        recent_cutoff = now - timedelta(days=audit.get("recent_days", 30))
        recent = [e for e in entries if parse_timestamp(e.timestamp) >= recent_cutoff]
        result.details["recent_events"] = len(recent)
        if not recent:
            result.add(Issue(
                type="no_audit_events",
                severity="medium",
                message="No recent audit events found",
                suggestion="Verify audit logging is working properly",
            ), 10)

        day_cutoff = now - timedelta(days=1)
        removals = [e for e in entries if e.action == "remove" and parse_timestamp(e.timestamp) >= day_cutoff]
        threshold = audit.get("suspicious_removals", 5)
        if len(removals) >= threshold:
            result.add(Issue(
                type="suspicious_activity",
                severity="high",
                message=f"Suspicious activities detected: {len(removals)} secrets removed in the last 24 hours",
                suggestion="Investigate and address suspicious activities immediately",
            ), 30)
        return result

    def check_exposed_secrets(self, environment: str) -> CheckResult:
        result = CheckResult(details={"code": [], "logs": [], "artifacts": []})

        code_hits = self._scan_code()
        result.details["code"] = code_hits
        if code_hits:
            result.add(Issue(
                type="secrets_in_code",
                severity="critical",
                message=f"Secrets found in code: {', '.join(code_hits)}",
                suggestion="Move all secrets to environment variables",
            ), 40)

        values = self._leakable_values(environment)
        scan = self._section("scan")

        log_hits = self._find_values(values, [Path(p) for p in scan.get("log_paths", [])])
        result.details["logs"] = log_hits
        if log_hits:
            result.add(Issue(
                type="secrets_in_logs",
                severity="high",
                message=f"Secrets found in logs: {', '.join(log_hits)}",
                suggestion="Ensure logs do not contain sensitive information",
            ), 25)

        root = Path(scan.get("root", "."))
        artifact_files = []
        for directory in scan.get("artifact_dirs", []):
            artifact_dir = root / directory
            if artifact_dir.is_dir():
                artifact_files.extend(p for p in artifact_dir.rglob("*") if p.is_file())
        artifact_hits = self._find_values(values, artifact_files)
        result.details["artifacts"] = artifact_hits
        if artifact_hits:
            result.add(Issue(
                type="secrets_in_artifacts",
                severity="high",
                message=f"Secrets found in build artifacts: {', '.join(artifact_hits)}",
                suggestion="Clean build artifacts of sensitive information",
            ), 20)
        return result

    def _scan_code(self) -> List[str]:
        if self.scanner is None:
            return []
        if self._code_findings is None:
            min_confidence = self._section("scan").get("min_confidence", 0)
            findings = failing_findings(self.scanner.scan(), min_confidence)
            self._code_findings = [f"{f.file}:{f.line}" for f in findings]
        return self._code_findings

    def _leakable_values(self, environment: str) -> Dict[str, str]:
        return {
            key: value for key, value in self.store.pull(environment).items()
            if is_sensitive_key(key, environment) and len(value) >= MIN_LEAK_LENGTH
        }

    def _find_values(self, values: Dict[str, str], paths: List[Path]) -> List[str]:
        """Keys whose current value appears verbatim in any of ``paths``."""
        hits: List[str] = []
        if not values:
            return hits
        for path in paths:
            try:
                if os.path.getsize(path) > MAX_ARTIFACT_BYTES:
                    continue
                data = path.read_bytes()
            except OSError as e:
                logger.debug(f"Could not read {path}: {e}")
                continue
            for key, value in values.items():
                if key not in hits and value.encode("utf-8") in data:
                    hits.append(key)
        return hits

    # Compliance standards are placeholders: they are reported as not
    # assessed rather than as a passing verdict.
    def check_nist_compliance(self, environment: str) -> ComplianceResult:
        return ComplianceResult(status="not_assessed")

    def check_iso27001_compliance(self, environment: str) -> ComplianceResult:
        return ComplianceResult(status="not_assessed")

    def check_soc2_compliance(self, environment: str) -> ComplianceResult:
        return ComplianceResult(status="not_assessed")

    def send_alerts(self, reports: List[SecurityReport]) -> bool:
        """Post total issues, average score and affected environments to the webhook."""
        if self.notifier is None or not reports:
            logger.warning("No alert webhook configured")
            return False

        summary = summarize(reports)
        threshold = self._section("alerts").get("threshold", 80)
        if summary["total_issues"] == 0:
            color = GOOD
        elif summary["average_score"] < threshold:
            color = DANGER
        else:
            color = WARNING
        message = build_message(
            "Security Alert",
            color,
            [
                {"title": "Total Issues", "value": summary["total_issues"]},
                {"title": "Average Score", "value": f"{summary['average_score']:.1f}/100"},
                {"title": "Affected Environments", "value": ", ".join(summary["environments"]), "short": False},
            ],
        )
        message.update(summary)
        return self.notifier.send(message)


def summarize(reports: List[SecurityReport]) -> Dict[str, Any]:
    total_issues = sum(len(r.issues) for r in reports)
    average = sum(r.score for r in reports) / len(reports) if reports else 100.0
    return {
        "total_issues": total_issues,
        "average_score": round(average, 1),
        "environments": [r.environment for r in reports if r.issues],
    }
