# reset_password.py
import sys

from finance_api.core.config import settings
from finance_api.core.errors import NotFound
from finance_api.db.session import Database
from finance_api.services.users import set_password


def reset_password(login: str, new_password: str) -> int:
    database = Database(settings.DATABASE_URL)
    db = database.session()
    try:
        set_password(db, login, new_password)
        print(f"Password reset for {login}")
        return 0
    except NotFound:
        print("User not found:", login)
        return 1
    finally:
        db.close()
        database.dispose()


if __name__ == "__main__":
    if len(sys.argv) < 3:
        print("Usage: python reset_password.py <username_or_email> <new_password>")
        sys.exit(2)
    sys.exit(reset_password(sys.argv[1], sys.argv[2]))
