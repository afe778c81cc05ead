# main.py

import argparse
import logging
import sys

from access_remover.config import ConfigurationError, settings
from access_remover.controller import (run_diagnostics_check, run_preview, run_reset_auth, run_resume,
                                       run_start, run_status, run_stop)

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')


def _confirm(prompt):
    return input(prompt).strip().lower() == 'yes'


def main(argv=None):
    parser = argparse.ArgumentParser(description="Google Drive Email Access Remover")
    subparsers = parser.add_subparsers(dest='command', required=True)

    parser_start = subparsers.add_parser('start', help="Remove the configured target emails from every file they can access.")
    parser_start.add_argument('--yes', action='store_true', help="Skip the confirmation prompt.")

    subparsers.add_parser('status', help="Show the progress of the current run.")
    subparsers.add_parser('stop', help="Stop the current run and discard its saved state.")

    parser_resume = subparsers.add_parser('resume', help="Continue a saved run after an interruption or failure.")
    parser_resume.add_argument('--yes', action='store_true', help="Skip the confirmation prompt.")

    subparsers.add_parser('diagnose', help="Check Drive access, configuration and search without changing anything.")

    parser_preview = subparsers.add_parser('preview', help="Dry run: list files shared with one target email.")
    parser_preview.add_argument('--email', default=None, help="Optional: Email to search for (defaults to the first target).")
    parser_preview.add_argument('--limit', type=int, default=10, help="Number of files to list.")

    subparsers.add_parser('reset-auth', help="Delete the cached OAuth token.")

    args = parser.parse_args(argv)

    try:
        if args.command in ('start', 'resume'):
            if not args.yes:
                print("\n!!! WARNING: YOU ARE ABOUT TO MAKE LIVE CHANGES !!!")
                print(f"Target emails: {', '.join(settings.TARGET_EMAILS) or '(none)'}")
                if not _confirm("Are you sure you want to remove their access? (yes/no): "):
                    logging.warning("Live run cancelled by user.")
                    return 0
            runner = run_start if args.command == 'start' else run_resume
            runner(settings=settings)

        elif args.command == 'status':
            run_status(settings=settings)

        elif args.command == 'stop':
            run_stop(settings=settings)

        elif args.command == 'diagnose':
            results = run_diagnostics_check(settings=settings)
            if not results or not results.get('ready'):
                return 1

        elif args.command == 'preview':
            result = run_preview(email=args.email, settings=settings, page_size=args.limit)
            if not result or not result.get('success'):
                return 1

        elif args.command == 'reset-auth':
            if not run_reset_auth(settings=settings):
                return 1

    except ConfigurationError:
        return 2
    return 0


if __name__ == '__main__':
    sys.exit(main())
