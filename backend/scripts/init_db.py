"""Initialize the local backend database - creates the tasks/profiles/auth_users tables."""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.config import settings
from app.database import engine, Base
import app.models  # noqa: F401 - registers all models


def init_db():
    if settings.BACKEND.strip().lower() != "local":
        print(f"BACKEND={settings.BACKEND}: schema is managed by the hosted store. Nothing to do.")
        return
    print(f"Creating local backend tables on {settings.DATABASE_URL} ...")
    Base.metadata.create_all(bind=engine)
    print("Database initialized successfully.")


if __name__ == "__main__":
    init_db()
