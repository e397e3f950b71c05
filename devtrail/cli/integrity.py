"""
devtrail-integrity: audit, validate and recover session files.

Usage:
    devtrail-integrity analyze session-2026-10-19-abc123
    devtrail-integrity batch ~/.claude/devtrail/sessions
    devtrail-integrity validate session-2026-10-19-abc123
    devtrail-integrity recover session-2026-10-19-abc123
    devtrail-integrity report
"""

from __future__ import annotations

import argparse
import sys

from ..integrity import IntegrityVerifier
from .common import EXIT_OK, add_common_arguments, load_config, print_json, run


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="devtrail-integrity",
        description="Session quality assessment, integrity validation and recovery",
    )
    add_common_arguments(parser)
    parser.add_argument("--session-dir", help="Directory holding session files")
    parser.add_argument("--reports-dir", help="Directory for quality reports")

    commands = parser.add_subparsers(dest="command", required=True)

    analyze = commands.add_parser("analyze", help="Quality assessment of one session")
    analyze.add_argument("session_id")

    batch = commands.add_parser("batch", help="Assess every session in a directory")
    batch.add_argument("directory", nargs="?", help="Directory (default: session dir)")

    validate = commands.add_parser("validate", help="Integrity validation of one session")
    validate.add_argument("session_id")

    recover = commands.add_parser("recover", help="Recover a damaged session")
    recover.add_argument("session_id")
    recover.add_argument("--dry-run", action="store_true", help="Do not write the recovered file")

    commands.add_parser("report", help="Batch-assess and write a quality report")
    return parser


def _verifier(args: argparse.Namespace) -> IntegrityVerifier:
    config = load_config(args)
    return IntegrityVerifier(
        session_dir=args.session_dir,
        reports_dir=args.reports_dir,
        config=config.verifier,
    )


def handle(args: argparse.Namespace) -> int:
    verifier = _verifier(args)

    if args.command == "analyze":
        print_json(verifier.analyze_session(args.session_id))
    elif args.command == "batch":
        print_json(verifier.process_session_batch(args.directory))
    elif args.command == "validate":
        print_json(verifier.validate_session_integrity(args.session_id))
    elif args.command == "recover":
        print_json(verifier.attempt_session_recovery(args.session_id, write=not args.dry_run))
    elif args.command == "report":
        results = verifier.process_session_batch()
        print_json(verifier.generate_quality_report(results))
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return run(handle, args)


__all__ = ["build_parser", "handle", "main"]


if __name__ == "__main__":
    sys.exit(main())
