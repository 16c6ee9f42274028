"""
CLI helper to grant the admin role to an existing portal account.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tutor_portal.dependencies import get_db_client
from tutor_portal.logging_utils import configure_logging
from tutor_portal.types import AppRole


def main() -> int:
    parser = argparse.ArgumentParser(description="Grant the admin role")
    parser.add_argument("email", help="Email address of the account")
    args = parser.parse_args()

    configure_logging()
    db = get_db_client()
    user = db.get_user_by_email(args.email)
    if not user:
        print(f"No account found for {args.email}", file=sys.stderr)
        return 1
    db.add_role(user.id, AppRole.ADMIN)
    roles = sorted(role.value for role in db.get_roles(user.id))
    print(f"{user.email}: {', '.join(roles)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
