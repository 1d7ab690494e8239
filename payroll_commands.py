#!/usr/bin/env python3
"""
Payroll Management Commands

Operator commands for the payroll engine. Results are printed as JSON.

Usage:
    python payroll_commands.py --help
    python payroll_commands.py init-db
    python payroll_commands.py set-config --salary 27000 --overtime-rate 100 --fuel 33.30
    python payroll_commands.py payroll --year 2025 --month 3
    python payroll_commands.py payroll --year 2025 --month 3 --driver 7
    python payroll_commands.py eligibility --driver 7 --amount 5000
"""

import sys
import json
import argparse
import logging
from contextlib import contextmanager

from app import create_app, db
from services import build_services
from services.exceptions import PayrollError

logger = logging.getLogger(__name__)


@contextmanager
def service_context():
    """Application context plus services wired to its session"""
    app = create_app()
    with app.app_context():
        try:
            yield build_services(db.session, app.config)
        finally:
            db.session.remove()


def print_json(data):
    print(json.dumps(data, indent=2, default=str, ensure_ascii=False))


def cmd_init_db(args):
    """Create tables and seed the default payroll configuration."""
    with service_context() as services:
        config = services.config_service.ensure_default_config()
        print_json({'status': 'initialized', 'config': config.to_dict()})


def cmd_set_config(args):
    """Append a new payroll configuration version."""
    with service_context() as services:
        config = services.config_service.save_config(
            monthly_salary=args.salary,
            overtime_rate=args.overtime_rate,
            fuel_allowance=args.fuel,
            working_hours=args.working_hours,
            changed_by=args.changed_by,
            notes=args.notes
        )
        print_json({'status': 'saved', 'config': config.to_dict()})


def cmd_payroll(args):
    """Calculate payroll for one driver or all active drivers."""
    with service_context() as services:
        if args.driver is not None:
            breakdown = services.payroll_service.calculate_driver_payroll(args.driver, args.year, args.month)
            print_json(breakdown.to_dict())
        else:
            print_json(services.payroll_service.calculate_all_drivers_payroll(args.year, args.month))


def cmd_eligibility(args):
    """Show a driver's advance eligibility."""
    with service_context() as services:
        eligibility = services.eligibility_service.calculate_eligibility(args.driver, args.amount)
        print_json(eligibility.to_dict())


def build_parser():
    parser = argparse.ArgumentParser(
        description="Payroll Management Commands",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    subparsers.add_parser('init-db', help='Create tables and seed default payroll configuration')

    config_parser = subparsers.add_parser('set-config', help='Save a new payroll configuration version')
    config_parser.add_argument('--salary', type=float, required=True, help='Monthly salary (₹)')
    config_parser.add_argument('--overtime-rate', type=float, required=True, help='Overtime rate per hour (₹)')
    config_parser.add_argument('--fuel', type=float, required=True, help='Fuel allowance per working day (₹)')
    config_parser.add_argument('--working-hours', type=float, default=8.0, help='Standard working hours per day')
    config_parser.add_argument('--changed-by', default='cli', help='Who made the change')
    config_parser.add_argument('--notes', help='Reason for the change')

    payroll_parser = subparsers.add_parser('payroll', help='Calculate monthly payroll')
    payroll_parser.add_argument('--year', type=int, required=True)
    payroll_parser.add_argument('--month', type=int, required=True)
    payroll_parser.add_argument('--driver', type=int, help='Single driver ID (default: all active drivers)')

    eligibility_parser = subparsers.add_parser('eligibility', help='Advance eligibility for a driver')
    eligibility_parser.add_argument('--driver', type=int, required=True)
    eligibility_parser.add_argument('--amount', type=float, help='Requested amount to check')

    return parser


COMMANDS = {
    'init-db': cmd_init_db,
    'set-config': cmd_set_config,
    'payroll': cmd_payroll,
    'eligibility': cmd_eligibility,
}


def main(argv=None):
    """Main command line interface."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        COMMANDS[args.command](args)
        return 0
    except PayrollError as e:
        logger.warning(f"Command {args.command} failed: {e.code} {e.message}")
        print_json(e.to_dict())
        return 1
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        return 1


if __name__ == "__main__":
    sys.exit(main())
