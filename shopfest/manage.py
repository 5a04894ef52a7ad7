"""
Database management commands.

    python -m shopfest.manage init-admin [--email E --password P]
    python -m shopfest.manage seed [--sample]
    python -m shopfest.manage clear
    python -m shopfest.manage clear-all [--yes]
    python -m shopfest.manage status
"""

from __future__ import annotations
import argparse
import asyncio
import sys

from .config import DATABASE_URL
from .infra.sql import make_async_engine
from .logging_config import configure_logging
from .model import accounts, maintenance
from .model.db import Base


def _print_counts(title: str, counts: dict) -> None:
    print(title)
    for table, n in counts.items():
        print(f'   - {table:<12} {n}')


async def _run(args: argparse.Namespace) -> int:
    engine, SessionAsync = make_async_engine(args.database_url)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        async with SessionAsync() as db:
            if args.command == "init-admin":
                user = await accounts.initialize_admin_system(
                    db, args.email, args.password
                )
                if user is None:
                    print('admin system already initialized')
                else:
                    print(f'✅ super admin created: {user.email}')
                    if not args.password:
                        print('   default password in use, change it!')

            elif args.command == "seed":
                await maintenance.seed_catalog(db)
                print(f'✅ seeded event {maintenance.SAMPLE_EVENT_ID} '
                      f'and {len(maintenance.SAMPLE_PRODUCTS)} products')
                if args.sample:
                    n = await maintenance.seed_sample_activity(db)
                    print(f'✅ seeded {n} shops with check-ins and orders')

            elif args.command == "clear":
                counts = await maintenance.clear_business_data(db)
                _print_counts('🧹 business data cleared '
                              '(admin users and roles kept):', counts)

            elif args.command == "clear-all":
                if not args.yes:
                    print('refusing to delete admin accounts without --yes')
                    return 2
                counts = await maintenance.clear_all_data(db)
                _print_counts('🧹 all data cleared:', counts)

            elif args.command == "status":
                _print_counts('row counts:',
                              await maintenance.table_counts(db))
    finally:
        await engine.dispose()
    return 0


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(
        prog="python -m shopfest.manage",
        description="Seed, clear and inspect the ShopFest database",
    )
    ap.add_argument(
        "--database-url", default=DATABASE_URL,
        help="database to operate on (default: $DATABASE_URL)"
    )
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init-admin",
                       help="create default roles and the super admin")
    p.add_argument("--email", default=None)
    p.add_argument("--password", default=None)

    p = sub.add_parser("seed", help="replace business data with sample data")
    p.add_argument("--sample", action="store_true",
                   help="also add shops, check-ins and orders")

    sub.add_parser("clear", help="delete all business data")

    p = sub.add_parser("clear-all", help="also delete admin users and roles")
    p.add_argument("--yes", action="store_true")

    sub.add_parser("status", help="print row counts")

    args = ap.parse_args(argv)
    configure_logging()
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
