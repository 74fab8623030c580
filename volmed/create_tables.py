# volmed/create_tables.py
"""Bootstrap a fresh install: database tables plus the uploads folder layout.

Production schema changes go through Alembic; this is for local setups and
throwaway databases.
"""
import argparse
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.append(str(ROOT_DIR))

ENV_PATH = ROOT_DIR / "volmed" / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH, override=True)

from volmed.db.session import Base
from volmed.models import init_db
from volmed.services.storage import DocumentStore, StorageSettings


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--no-uploads", action="store_true", help="only create database tables")
    args = parser.parse_args(argv)

    init_db()
    print(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")

    if not args.no_uploads:
        store = DocumentStore(StorageSettings.from_env())
        # record folders stay lazy; only the shared roots are created here
        store.staging.path.mkdir(parents=True, exist_ok=True)
        print(f"Uploads root ready: {store.records.patients_root}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
