#!/usr/bin/env python3
"""
Database Management CLI

This script provides command-line interface for database management operations.
"""

import os
import sys
import argparse
import logging
import json

from alembic import command
from alembic.config import Config as AlembicConfig

from database import init_database

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


def get_database_url():
    """Get database URL from configuration."""
    db_url = os.environ.get('DATABASE_URL')
    if db_url:
        return db_url

    # Default to SQLite database
    db_path = os.path.join(BASE_DIR, 'database.db')
    return f"sqlite:///{db_path}"


def alembic_config(database_url):
    """Alembic configuration pointing at the bundled migrations."""
    cfg = AlembicConfig(os.path.join(BASE_DIR, 'alembic.ini'))
    cfg.set_main_option('script_location', os.path.join(BASE_DIR, 'migrations'))
    cfg.set_main_option('sqlalchemy.url', database_url)
    cfg.attributes['skip_env_url'] = True
    cfg.attributes['configure_logger'] = False
    return cfg


def init_db(args):
    """Create tables directly from the models."""
    init_database(args.database_url, create_tables=True)
    logger.info("Database initialized successfully")
    return 0


def upgrade_db(args):
    """Run migrations up to a revision."""
    command.upgrade(alembic_config(args.database_url), args.revision)
    logger.info(f"Database upgraded to {args.revision}")
    return 0


def downgrade_db(args):
    """Roll migrations back to a revision."""
    command.downgrade(alembic_config(args.database_url), args.revision)
    logger.info(f"Database downgraded to {args.revision}")
    return 0


def drop_db(args):
    """Drop all tables."""
    if not args.yes:
        logger.error("Refusing to drop tables without --yes")
        return 1
    manager = init_database(args.database_url, create_tables=False)
    manager.drop_tables()
    return 0


def health(args):
    """Print database health."""
    manager = init_database(args.database_url, create_tables=False)
    result = manager.health_check()
    print(json.dumps(result, indent=2))
    return 0 if result.get('status') == 'healthy' else 1


def stats(args):
    """Print row counts per table."""
    manager = init_database(args.database_url, create_tables=False)
    print(json.dumps(manager.get_table_stats(), indent=2))
    return 0


def build_parser():
    parser = argparse.ArgumentParser(description='Product bridge database management')
    parser.add_argument('--database-url', default=get_database_url(),
                        help='Database URL (defaults to DATABASE_URL or local SQLite)')
    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('init', help='Create tables from the models').set_defaults(func=init_db)

    upgrade_parser = subparsers.add_parser('upgrade', help='Apply migrations')
    upgrade_parser.add_argument('revision', nargs='?', default='head')
    upgrade_parser.set_defaults(func=upgrade_db)

    downgrade_parser = subparsers.add_parser('downgrade', help='Revert migrations')
    downgrade_parser.add_argument('revision', nargs='?', default='base')
    downgrade_parser.set_defaults(func=downgrade_db)

    drop_parser = subparsers.add_parser('drop', help='Drop all tables')
    drop_parser.add_argument('--yes', action='store_true', help='Confirm dropping all tables')
    drop_parser.set_defaults(func=drop_db)

    subparsers.add_parser('health', help='Check database connectivity').set_defaults(func=health)
    subparsers.add_parser('stats', help='Show table row counts').set_defaults(func=stats)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
