"""Seed demo data for local tip pool testing.

Creates a manager, three staff members, a distribution rule, and one day of
closed orders and completed shifts, so that POST /api/v1/tips/tip-pools/calculate
has something to work with. Prints a manager token for trying the API.

Usage:
    cd backend
    python seed_test_data.py [YYYY-MM-DD]
"""

import sys
import os
from datetime import date, datetime, time, timedelta
from decimal import Decimal

# Ensure the backend app is importable
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from sqlalchemy import select

from app.core.security import create_access_token
from app.db.base import Base
from app.db.session import SessionLocal, engine
from app.models import Order, OrderStatus, Shift, ShiftStatus, TipDistributionRule, User


STAFF = [
    # email, first name, role, shift start, hours
    ("alex@demo.local", "Alex", "server", time(11, 0), 6),
    ("blake@demo.local", "Blake", "server", time(16, 0), 5),
    ("casey@demo.local", "Casey", "chef", time(10, 0), 8),
]

TIPS = ["18.50", "42.00", "12.75", "30.00", "9.25"]


def seed(shift_date: date):
    """Insert demo records for one business day."""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        manager = _get_or_create_user(db, "manager@demo.local", "Morgan", "manager")
        staff = [(_get_or_create_user(db, email, name, role), start, hours)
                 for email, name, role, start, hours in STAFF]
        db.flush()

        rule = db.execute(
            select(TipDistributionRule).where(TipDistributionRule.name == "Front of house 70/30")
        ).scalar_one_or_none()
        if rule is None:
            rule = TipDistributionRule(
                name="Front of house 70/30",
                description="Servers split 70% by hours, kitchen splits 30% equally",
                rules={
                    "default": {"method": "hours_weighted", "multiplier": 1},
                    "roles": {
                        "server": {"method": "percentage", "percentage": 70},
                        "chef": {"method": "percentage", "percentage": 30, "individualMethod": "equal"},
                    },
                },
                created_by=manager.id,
            )
            db.add(rule)

        for user, start, hours in staff:
            start_time = datetime.combine(shift_date, start)
            db.add(Shift(
                user_id=user.id,
                start_time=start_time,
                end_time=start_time + timedelta(hours=hours),
                role=user.role,
                hours_worked=Decimal(hours),
                status=ShiftStatus.COMPLETED.value,
            ))

        servers = [user for user, _, _ in staff if user.role == "server"]
        for i, tip in enumerate(TIPS):
            server = servers[i % len(servers)]
            db.add(Order(
                customer_name=f"Table {i + 1}",
                table_number=i + 1,
                status=OrderStatus.CLOSED.value,
                total_amount=Decimal(tip) * 5,
                tip_amount=Decimal(tip),
                payment_method="card",
                server_id=server.id,
                created_by=server.id,
                closed_by=server.id,
                closed_at=datetime.combine(shift_date, time(19, 0)) + timedelta(minutes=20 * i),
            ))

        db.commit()
        print(f"Seeded {shift_date.isoformat()}: rule {rule.id}, {len(staff)} shifts, {len(TIPS)} orders")
        print("Manager token:")
        print(create_access_token(data={
            "sub": str(manager.id), "email": manager.email, "role": manager.role, "name": manager.first_name,
        }))
    except Exception as e:
        db.rollback()
        print(f"Error seeding data: {e}")
        raise
    finally:
        db.close()


def _get_or_create_user(db, email: str, first_name: str, role: str) -> User:
    user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if user is None:
        user = User(email=email, first_name=first_name, last_name="Demo", role=role)
        db.add(user)
    return user


if __name__ == "__main__":
    seed(date.fromisoformat(sys.argv[1]) if len(sys.argv) > 1 else date.today())
