"""
FleetPass - Database Seed Script

Seeds roles and permissions, a super admin, and optional demo staff
accounts for development.

Usage:
    python -m scripts.seed_users
"""

from sqlmodel import Session, select

from fleetpass.config import get_settings
from fleetpass.auth.database import get_engine, init_db
from fleetpass.auth.models import Role, User
from fleetpass.auth.password import hash_password
from fleetpass.auth.permissions import RoleName
from fleetpass.auth.seed import seed_database, seed_super_admin


SUPER_ADMIN_EMAIL = "admin@fleetpass.local"
SUPER_ADMIN_PASSWORD = "Admin123!"

DEMO_USERS = [
    ("manager@fleetpass.local", "Manager123!", "Morgan", "Manager", RoleName.MANAGER),
    ("staff@fleetpass.local", "Staff123!", "Sam", "Staff", RoleName.STAFF),
    ("customer@fleetpass.local", "Customer123!", "Casey", "Customer", RoleName.CUSTOMER),
]


def seed_admin_user(engine, settings):
    """Create the super admin account for development."""
    with Session(engine) as session:
        seed_database(session, settings)

        admin = seed_super_admin(
            session,
            email=settings.SUPERADMIN_EMAIL or SUPER_ADMIN_EMAIL,
            password=settings.SUPERADMIN_PASSWORD or SUPER_ADMIN_PASSWORD,
            rounds=settings.BCRYPT_ROUNDS,
        )

        print("Super admin ready.")
        print(f"  Email: {admin.email}")
        if not settings.SUPERADMIN_PASSWORD:
            print(f"  Password: {SUPER_ADMIN_PASSWORD}")
        print(f"  Role: {RoleName.SUPER_ADMIN.value}")


def seed_demo_users(engine, settings):
    """Create verified demo users for the staff roles."""
    with Session(engine) as session:
        for email, password, first_name, last_name, role_name in DEMO_USERS:
            existing = session.exec(
                select(User).where(User.email == email)
            ).first()

            if existing:
                print(f"User {email} already exists.")
                continue

            role = session.exec(select(Role).where(Role.name == role_name.value)).one()
            user = User(
                email=email,
                password_hash=hash_password(password, rounds=settings.BCRYPT_ROUNDS),
                first_name=first_name,
                last_name=last_name,
                email_verified=True,
                is_active=True,
            )
            user.roles = [role]

            session.add(user)
            print(f"Created user: {email} ({role_name.value}) password: {password}")

        session.commit()


if __name__ == "__main__":
    print("=" * 50)
    print("FleetPass - User Seed Script")
    print("=" * 50)

    settings = get_settings()
    engine = get_engine(settings.DATABASE_URL)
    init_db(engine)

    seed_admin_user(engine, settings)

    print()
    response = input("Create demo users for manager, staff and customer? (y/n): ")
    if response.lower() == "y":
        seed_demo_users(engine, settings)

    print()
    print("Done!")
