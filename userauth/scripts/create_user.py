"""
Create a user (e.g. first admin) through the registration path. Run from project root:
  python -m userauth.scripts.create_user USERNAME EMAIL PASSWORD [role]
Example:
  python -m userauth.scripts.create_user admin admin@example.com your-secure-password admin
"""
import argparse
import logging
import sys

from userauth.api.deps import get_token_service
from userauth.core.database import SessionLocal
from userauth.core.errors import AppError
from userauth.services.directory import UserDirectory
from userauth.services.sessions import SessionService

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create a user account from the command line.")
    parser.add_argument("username", help="Username (3-30 chars)")
    parser.add_argument("email", help="Email address")
    parser.add_argument("password", help="Password (min 6 chars)")
    parser.add_argument("role", nargs="?", default="user", choices=["user", "admin"])
    args = parser.parse_args(argv)

    db = SessionLocal()
    try:
        directory = UserDirectory(db)
        sessions = SessionService(directory, get_token_service())
        user = sessions.register(
            username=args.username.strip(),
            email=args.email,
            password=args.password,
            confirm_password=args.password,
        )
        if args.role != user.role:
            directory.update(user, role=args.role)
        logger.info("Created user '%s' with role '%s'.", user.username, args.role)
        return 0
    except AppError as e:
        print(f"{e.code}: {e.message}", file=sys.stderr)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
