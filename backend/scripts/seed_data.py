"""Seed the local backend with demo accounts and tasks."""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import date, datetime, timedelta, timezone
from app.database import SessionLocal, engine, Base
import app.models  # noqa: F401

from app.models.auth_user import AuthUser
from app.models.profile import UserProfile
from app.models.task import Task
from app.services.auth_service import hash_password

DEMO_PASSWORD = "password123"


def _account(db, email: str, full_name: str, role: str) -> AuthUser:
    user = AuthUser(email=email, password_hash=hash_password(DEMO_PASSWORD), user_metadata={"full_name": full_name})
    db.add(user)
    db.flush()
    db.add(UserProfile(user_id=user.id, full_name=full_name, role=role))
    return user


def seed():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        if db.query(AuthUser).count() > 0:
            print("Database already seeded. Skipping.")
            return

        # Accounts
        manager = _account(db, "manager@company.com", "관리자 김철수", "manager")
        employee1 = _account(db, "employee1@company.com", "직원 정수연", "employee")
        employee2 = _account(db, "employee2@company.com", "직원 최동현", "employee")

        today = date.today()
        now = datetime.now(timezone.utc)
        tasks = [
            Task(user_id=employee1.id, title="Write report", description="분기 실적 보고서 초안 작성",
                 due_date=today + timedelta(days=3)),
            Task(user_id=employee1.id, title="Review onboarding docs", due_date=today - timedelta(days=1)),
            Task(user_id=employee1.id, title="Clean up backlog", description="오래된 이슈 정리"),
            Task(user_id=employee2.id, title="Prepare client demo", due_date=today + timedelta(days=7)),
            Task(user_id=employee2.id, title="Update expense sheet", due_date=today - timedelta(days=5),
                 is_completed=True, completed_at=now, updated_at=now,
                 feedback="Good job"),
        ]
        db.add_all(tasks)
        db.commit()

        print("Seed data created successfully.")
        print(f"  manager:   {manager.email} / {DEMO_PASSWORD}")
        print(f"  employees: {employee1.email}, {employee2.email} / {DEMO_PASSWORD}")
    except Exception as e:
        db.rollback()
        print(f"Error seeding data: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed()
