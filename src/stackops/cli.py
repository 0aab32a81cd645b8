#!/usr/bin/env python3
"""
stackops CLI entry point.

Commands:
    refresh                 Stop, pull, restart and health-check the stack
    cron <action>           Install/remove/list the scheduled refresh job
    check [status|detailed] Inspect the installed job
    test-env                Diagnose whether cron can reach Docker
    secrets                 Create/regenerate/show the stack's .env secrets
    init-config             Write stackops.toml with the default settings
"""

from __future__ import annotations

import argparse
import signal
from importlib.metadata import PackageNotFoundError, version as package_version
from pathlib import Path
from typing import Optional

from . import cron, cron_check, logging_utils as out
from .config import Settings, load_settings, write_config_template
from .credentials import print_credentials_report, setup_credentials, show_credentials
from .envcheck import run_environment_check
from .errors import StackOpsError
from .logging_utils import configure_logging
from .platform_profile import PlatformProfile, detect_platform
from .prereqs import check_docker_prerequisites
from .refresh import run_refresh

CRON_INSTALL_ACTIONS = ("daily", "weekly", "monthly", "custom")


def get_cli_version() -> str:
    """Installed distribution version, or the package's own when running from a checkout."""
    try:
        return package_version("stackops")
    except PackageNotFoundError:
        from . import __version__

        return __version__


def parse_arguments(argv: Optional[list] = None) -> argparse.Namespace:
    """
    Parse command-line arguments for stackops.

    Global arguments:
    1. -d, --project-dir <path> - Stack directory (default: walk up from cwd)
    2. --log-level <level> - Console log level (default: from settings)
    3. --version - Print version and exit

    Subcommands: refresh, cron, check, test-env, secrets, init-config.
    """
    parser = argparse.ArgumentParser(
        prog='stackops',
        description='Operations for a Docker Compose n8n stack: refresh, cron scheduling, secrets',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  %(prog)s refresh                    # Stop, pull, restart, verify health
  %(prog)s cron daily                 # Daily at 2 AM
  %(prog)s cron weekly 1              # Weekly on Monday at 3 AM
  %(prog)s cron custom '0 */6 * * *'  # Every 6 hours
  %(prog)s check detailed             # Validate the installed job
  %(prog)s secrets -y                 # Create .env non-interactively
        '''
    )

    parser.add_argument(
        '-d', '--project-dir',
        type=Path,
        default=None,
        metavar='PATH',
        help='Stack directory containing docker-compose.yml (default: search upwards from cwd)'
    )

    parser.add_argument(
        '--log-level',
        default=None,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        type=str.upper,
        help='Console log level (default: settings / STACKOPS_LOG_LEVEL)'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {get_cli_version()}'
    )

    subparsers = parser.add_subparsers(dest='command', metavar='COMMAND')

    subparsers.add_parser('refresh', help='Refresh the running stack')

    cron_parser = subparsers.add_parser('cron', help='Manage the scheduled refresh job')
    cron_actions = cron_parser.add_subparsers(dest='action', metavar='ACTION')
    daily_parser = cron_actions.add_parser('daily', help='Daily refresh (default: 2 AM)')
    daily_parser.add_argument('hour', nargs='?', default=None, help='Hour 0-23')
    weekly_parser = cron_actions.add_parser('weekly', help='Weekly refresh (default: Sunday 3 AM)')
    weekly_parser.add_argument('day', nargs='?', default=0, help='Day 0-6 (0=Sunday)')
    monthly_parser = cron_actions.add_parser('monthly', help='Monthly refresh (default: 1st 4 AM)')
    monthly_parser.add_argument('day', nargs='?', default=1, help='Day of month 1-31')
    custom_parser = cron_actions.add_parser('custom', help='Custom schedule (cron format)')
    custom_parser.add_argument('expression', help="Cron expression, e.g. '0 */6 * * *'")
    cron_actions.add_parser('remove', help='Remove the refresh job')
    cron_actions.add_parser('status', help='List refresh-related crontab lines')
    cron_actions.add_parser('test', help='Test the cron environment')
    cron_parser.set_defaults(cron_parser=cron_parser)

    check_parser = subparsers.add_parser('check', help='Check the installed refresh job')
    check_parser.add_argument(
        'mode',
        nargs='?',
        default=None,
        choices=['status', 'detailed'],
        help='status (default) or detailed'
    )
    check_parser.add_argument('-s', dest='mode_flag', action='store_const', const='status',
                              help='Quick status')
    check_parser.add_argument('-d', dest='mode_flag', action='store_const', const='detailed',
                              help='Detailed analysis')

    subparsers.add_parser('test-env', help='Diagnose the cron environment')

    secrets_parser = subparsers.add_parser('secrets', help='Generate deployment secrets into .env')
    mode = secrets_parser.add_mutually_exclusive_group()
    mode.add_argument('--force', action='store_true', help='Regenerate credentials (backs up existing .env)')
    mode.add_argument('--show', action='store_true', help='Show credential keys without values')
    secrets_parser.add_argument('--domain', default=None, help='Domain name (skips the prompt)')
    secrets_parser.add_argument('-y', '--yes', action='store_true',
                                help='Non-interactive mode (use the default domain)')

    subparsers.add_parser('init-config', help='Write stackops.toml with default settings')

    parser.set_defaults(parser=parser)
    return parser.parse_args(argv)


# --- Command handlers ---

def cmd_refresh(settings: Settings, profile: PlatformProfile) -> int:
    def _terminate(signum, frame):
        raise SystemExit(128 + signum)

    signal.signal(signal.SIGTERM, _terminate)
    return run_refresh(settings, profile)


def _show_cron_jobs() -> None:
    out.info("Current cron jobs:")
    crontab = cron.read_crontab()
    if not crontab.strip():
        print("No crontab configured")
        return
    lines = cron.managed_lines(crontab)
    if lines:
        for line in lines:
            print(line)
    else:
        print("No Docker Compose cron jobs found")


def _schedule_for(args: argparse.Namespace, settings: Settings) -> cron.Schedule:
    if args.action == 'daily':
        return cron.daily(settings.daily_hour if args.hour is None else args.hour)
    if args.action == 'weekly':
        return cron.weekly(args.day, hour=settings.weekly_hour)
    if args.action == 'monthly':
        return cron.monthly(args.day, hour=settings.monthly_hour)
    return cron.custom(args.expression)


def cmd_cron(args: argparse.Namespace, settings: Settings, profile: PlatformProfile) -> int:
    action = args.action
    if action is None:
        args.cron_parser.print_help()
        return 0

    if action in CRON_INSTALL_ACTIONS:
        schedule = _schedule_for(args, settings)

        out.info(f"Setting up Docker Compose cron job on {profile.name}...")
        out.info("Checking prerequisites...")
        check_docker_prerequisites(profile, settings.compose_file, require_socket=False)
        out.success("All prerequisites met")

        out.info(f"Adding cron job: {schedule.description}")
        out.info(f"Schedule: {schedule.expression}")
        cron.install_job(
            schedule,
            cron_path=profile.cron_path,
            command=cron.refresh_command(settings.project_dir),
            job_id=settings.cron_job_id,
            comment=settings.cron_comment,
        )
        out.success("Cron job added successfully")

        print("")
        _show_cron_jobs()
        print("")
        out.success("Cron setup completed!")
        out.info(f"Monitor logs with: tail -f {settings.log_dir}/refresh-$(date +%Y%m%d).log")
        out.info("Test manually with: stackops refresh")
        return 0

    if action == 'remove':
        out.info("Removing existing cron job...")
        if cron.remove_job(settings.cron_job_id, settings.cron_comment):
            out.success("Cron job removed")
        else:
            out.warn("No managed cron job found")
        return 0

    if action == 'status':
        _show_cron_jobs()
        return 0

    return run_environment_check(settings, profile)


def cmd_check(args: argparse.Namespace, settings: Settings, profile: PlatformProfile) -> int:
    out.header(f"Docker Compose Cron Job Check on {profile.name}")
    print("")

    mode = args.mode_flag or args.mode or 'status'
    if mode == 'detailed':
        rc = cron_check.detailed_status(settings, profile)
    else:
        rc = cron_check.quick_status(settings)

    print("")
    out.info("Use 'stackops cron' to install or modify cron jobs")
    out.info("Use 'stackops refresh' to run refresh manually")
    return rc


def cmd_secrets(args: argparse.Namespace, settings: Settings) -> int:
    if args.show:
        lines = show_credentials(settings.env_file)
        out.info("Current credentials in .env file:")
        for line in lines:
            print(f"   {line}")
        out.info("To see actual values, check the .env file directly")
        return 0

    out.info("n8n Security Setup")
    result = setup_credentials(settings, force=args.force, domain=args.domain, assume_yes=args.yes)
    print_credentials_report(result)
    return 0


def cmd_init_config(settings: Settings) -> int:
    written = write_config_template(settings.project_dir)
    if written is None:
        out.warn(f"Settings file already exists in {settings.project_dir}, leaving it unchanged")
    else:
        out.success(f"Wrote default settings to {written}")
    return 0


def main(argv: Optional[list] = None) -> int:
    args = parse_arguments(argv)
    if args.command is None:
        args.parser.print_help()
        return 0

    try:
        settings = load_settings(args.project_dir, log_level=args.log_level)
        if args.command != 'refresh':
            configure_logging(settings.log_level)
        profile = detect_platform()

        if args.command == 'refresh':
            return cmd_refresh(settings, profile)
        if args.command == 'cron':
            return cmd_cron(args, settings, profile)
        if args.command == 'check':
            return cmd_check(args, settings, profile)
        if args.command == 'test-env':
            return run_environment_check(settings, profile)
        if args.command == 'secrets':
            return cmd_secrets(args, settings)
        return cmd_init_config(settings)

    except StackOpsError as e:
        out.error(str(e))
        if e.hint:
            out.error(e.hint)
        return 1
    except KeyboardInterrupt:
        print("")
        out.warn("Operation interrupted by user")
        return 130


if __name__ == '__main__':
    raise SystemExit(main())
