"""CLI entrypoints for security-monitor and check-alerts."""
import sys
import argparse
import logging
import os

from deploy_secrets.secrets.domains.github_client import GitHubSecretsClient
from deploy_secrets.secrets.domains.models import ENVIRONMENTS
from deploy_secrets.secrets.domains.notifier import Notifier
from deploy_secrets.secrets.workflows.hardcoded_scan import HardcodedSecretScanner
from deploy_secrets.secrets.workflows.reports import RENDERERS, render_report, write_report
from deploy_secrets.secrets.workflows.security_monitor import SecurityMonitor

from .common import EXIT_CODES_EPILOG, common_options, configure_logging, load_runtime, parse_environments, run_command
from .validators import validate_environment

logger = logging.getLogger(__name__)

REPORT_EXTENSIONS = {"text": "txt", "json": "json", "html": "html"}


def build_monitor(args, alerts: bool = False) -> SecurityMonitor:
    config, store, audit_log = load_runtime(args)
    scan_root = (config.get("scan") or {}).get("root", ".")
    return SecurityMonitor(
        store,
        audit_log,
        config,
        scanner=HardcodedSecretScanner(scan_root),
        github=GitHubSecretsClient.from_config(config),
        notifier=Notifier.from_config(config) if alerts else None,
    )


def cmd_monitor(args):
    """Score each environment; exits 1 when any report has issues."""
    environments = [validate_environment(env) for env in parse_environments(args.env, ENVIRONMENTS)]
    monitor = build_monitor(args, alerts=args.alerts)
    reports = monitor.monitor(environments, compliance=args.compliance)

    content = render_report(reports, args.format)
    output = args.output
    if args.save and not output:
        report_dir = monitor.config.get("report_dir", "security-reports")
        output = default_report_path(report_dir, args.format, reports[0].timestamp)
    if output:
        write_report(content, output)
        print(f"Report saved to: {output}")
    else:
        print(content)

    if args.alerts:
        monitor.send_alerts(reports)

    if any(report.issues for report in reports):
        sys.exit(1)


def cmd_check_alerts(args):
    """Monitor production and alert when its score is below the threshold."""
    monitor = build_monitor(args, alerts=True)
    threshold = (monitor.config.get("alerts") or {}).get("threshold", 80)
    report = monitor.monitor_environment("production")
    print(f"Production security score: {report.score}/100 ({len(report.issues)} issues)")

    if report.score < threshold:
        print(f"Score below threshold ({threshold}), sending alert", file=sys.stderr)
        monitor.send_alerts([report])
        sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="security-monitor",
        description="Score the security posture of each environment's secrets",
        parents=[common_options()],
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=EXIT_CODES_EPILOG
    )
    parser.add_argument("--env", default="all", help="Environment, comma-separated list, or 'all' (default)")
    parser.add_argument("--output", help="Write the report to this file instead of stdout")
    parser.add_argument("--save", action="store_true", help="Write the report into the configured report_dir")
    parser.add_argument("--format", choices=list(RENDERERS), default="text", help="Report format (default: text)")
    parser.add_argument("--alerts", action="store_true", help="Post a summary to the alert webhook")
    parser.add_argument("--compliance", action="store_true", help="Include compliance standards (not assessed)")
    return parser


def default_report_path(report_dir: str, fmt: str, timestamp: str) -> str:
    safe = timestamp.replace(":", "-").replace(".", "-").replace("+", "-")
    return os.path.join(report_dir, f"security-report-{safe}.{REPORT_EXTENSIONS[fmt]}")


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    run_command(cmd_monitor, args)


def alerts_main(argv=None):
    parser = argparse.ArgumentParser(
        prog="check-alerts",
        description="Run a production security check and alert when the score is below the threshold",
        parents=[common_options()],
        epilog=EXIT_CODES_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    args = parser.parse_args(argv)
    configure_logging(args.verbose)
    run_command(cmd_check_alerts, args)


if __name__ == "__main__":
    main()
