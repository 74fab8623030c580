# volmed/sweep_staging.py
"""Remove staged uploads left behind by record creations that never finished."""
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

from volmed.services.storage import DocumentStore, StorageSettings


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--max-age",
        type=int,
        default=None,
        help="seconds a staging entry may sit untouched (default: STAGING_MAX_AGE_SECONDS)",
    )
    args = parser.parse_args(argv)

    store = DocumentStore(StorageSettings.from_env())
    removed = store.sweep_staging(args.max_age)
    print(f"Removed {len(removed)} staging entr{'y' if len(removed) == 1 else 'ies'} from {store.staging.path}")
    for name in removed:
        print(f"  {name}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
