"""CLI entrypoint for check-hardcoded-secrets."""
import sys
import argparse
import logging

from deploy_secrets.secrets.domains.config_loader import load_config
from deploy_secrets.secrets.workflows.hardcoded_scan import (
    RENDERERS,
    HardcodedSecretScanner,
    failing_findings,
    filter_by_environment,
    render_findings,
)
from deploy_secrets.secrets.workflows.reports import write_report

from .common import EXIT_CODES_EPILOG, common_options, configure_logging, run_command
from .validators import validate_environment

logger = logging.getLogger(__name__)


def cmd_scan(args):
    """Scan the tree; exits 1 when any finding reaches --min-confidence."""
    scan = load_config(args.config).get("scan") or {}
    root = args.root or scan.get("root", ".")
    min_confidence = args.min_confidence if args.min_confidence is not None else scan.get("min_confidence", 0)

    findings = HardcodedSecretScanner(root).scan()
    if args.env:
        findings = filter_by_environment(findings, validate_environment(args.env))

    content = render_findings(findings, args.format)
    if args.output:
        write_report(content, args.output)
        print(f"Results saved to: {args.output}")
    else:
        print(content)

    failing = failing_findings(findings, min_confidence)
    if failing:
        print(
            f"Found {len(failing)} potential hardcoded secrets at or above confidence {min_confidence}",
            file=sys.stderr
        )
        sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="check-hardcoded-secrets",
        description="Scan the source tree for hardcoded secrets",
        parents=[common_options()],
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=EXIT_CODES_EPILOG
    )
    parser.add_argument("--env", help="Ignore findings naming this environment's required secrets")
    parser.add_argument("--root", help="Directory to scan (default: scan.root from config, else '.')")
    parser.add_argument("--output", help="Write results to this file instead of stdout")
    parser.add_argument("--format", choices=list(RENDERERS), default="text", help="Output format (default: text)")
    parser.add_argument(
        "--min-confidence",
        type=int,
        help="Only findings at or above this confidence (0-100) fail the run (default: 0, any finding fails)"
    )
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    run_command(cmd_scan, args)


if __name__ == "__main__":
    main()
