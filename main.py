import sys

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from authz.config import get_settings
from authz.engine import AuthManager
from authz.errors import AuthzError
from authz.migration import RbacMigration

USAGE = (
    "Usage: python main.py init\n"
    "       python main.py drop\n"
    "       python main.py check <user_id> <permission>"
)


def main(argv=None):
    args = list(sys.argv[1:] if argv is None else argv)
    if not args or args[0] not in ("init", "drop", "check"):
        logger.error(USAGE)
        sys.exit(1)

    command = args[0]
    if command == "check" and len(args) != 3:
        logger.error(USAGE)
        sys.exit(1)

    try:
        manager = AuthManager.from_settings(
            get_settings(reset=True), create_tables=False
        )
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    try:
        if command == "init":
            RbacMigration(manager).init_rbac_structure()
            logger.success("RBAC structure created")
        elif command == "drop":
            RbacMigration(manager).rollback_rbac_structure()
            logger.success("RBAC structure dropped")
        else:
            user_id, permission = args[1], args[2]
            if manager.check(user_id, permission):
                logger.success(f"'{user_id}' is allowed '{permission}'")
            else:
                logger.warning(f"'{user_id}' is denied '{permission}'")
                sys.exit(2)
    except SQLAlchemyError as e:
        logger.critical(f"Database error: {e}")
        sys.exit(1)
    except AuthzError as e:
        logger.critical(f"Authorization error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
