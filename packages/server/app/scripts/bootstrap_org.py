"""
Script to found an organization for a user from the command line.

The user is looked up by email and created if missing; on first sign-in the
credential provider's subject is linked to it by email.
"""

import argparse
import asyncio
from typing import Optional

from app.core.database import get_session_context, init_db
from app.core.logging import configure_logging
from app.models.user import User
from app.services import invitations, organizations


async def bootstrap(
    email: str, name: str, slug: Optional[str] = None, create_tables: bool = False
) -> None:
    if create_tables:
        await init_db()
    async with get_session_context() as session:
        user = await invitations.get_user_by_email(session, email)
        if not user:
            user = User(email=invitations.normalize_email(email))
            session.add(user)
            await session.flush()
            print(f"Created user: {user.email}")
        else:
            print(f"User {user.email} already exists.")

        org = await organizations.create_organization(session, user.id, name, slug)
        print(f"Created organization {org.name} ({org.slug}) with {user.email} as owner.")
    print("Done.")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Found an organization owned by a user.")
    parser.add_argument("--email", required=True, help="Email address of the owner")
    parser.add_argument("--name", required=True, help="Organization display name")
    parser.add_argument("--slug", default=None, help="URL slug (derived from name when omitted)")
    parser.add_argument(
        "--create-tables", action="store_true", help="Create tables first (local development only)"
    )
    args = parser.parse_args(argv)

    configure_logging("info", "text")
    asyncio.run(bootstrap(args.email, args.name, args.slug, args.create_tables))


if __name__ == "__main__":
    main()
