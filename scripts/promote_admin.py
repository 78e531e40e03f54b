#!/usr/bin/env python
"""Grant the admin role to an existing account.

Admin accounts cannot be created through the public API, so the first one is
bootstrapped from the command line::

    python scripts/promote_admin.py --email ops@example.com
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from app.db import session_scope
from app.models import Role
from app.services import identity


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Promote an account to admin.")
    parser.add_argument("--email", required=True)
    parser.add_argument("--role", choices=[item.value for item in Role], default=Role.ADMIN.value)
    args = parser.parse_args(argv)

    with session_scope() as db:
        user = identity.find_by_email(db, args.email)
        if user is None:
            print(f"No account found for {args.email}", file=sys.stderr)
            return 1
        role = identity.assign_role(db, user.id, Role(args.role))

    print(f"{args.email} -> {role.value}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
