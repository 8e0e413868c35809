"""
Seed demo organization "CPP Demo" with default categories and one user per role.
Run:  python seed_demo_data.py

Idempotent: an existing organization with the same name is reused.
"""
from tesoreria.application.categories import EnsureDefaultCategoriesUseCase
from tesoreria.auth import hash_password
from tesoreria.domain.context import Role
from tesoreria.infrastructure.db.models import Organization, User
from tesoreria.infrastructure.db.session import session_scope

ORG_NAME = "CPP Demo"
DEMO_PASSWORD = "password123"

DEMO_USERS = [
    ("presidente@tapin.cl", "María González", Role.PRESIDENTE),
    ("secretaria@tapin.cl", "Ana Martínez", Role.SECRETARIA),
    ("delegado@tapin.cl", "Carlos López", Role.DELEGADO),
]


def seed() -> None:
    with session_scope() as db:
        org = db.query(Organization).filter_by(name=ORG_NAME).first()
        if not org:
            org = Organization(name=ORG_NAME)
            db.add(org)
            db.flush()
            print(f"Organization '{ORG_NAME}' created (id={org.id})")
        else:
            print(f"Organization '{ORG_NAME}' exists (id={org.id})")

        created = EnsureDefaultCategoriesUseCase(db).execute(org.id)
        print(f"  + {created} categories")

        for email, name, role in DEMO_USERS:
            if db.query(User).filter_by(organization_id=org.id, email=email).first():
                continue
            db.add(User(
                organization_id=org.id,
                email=email,
                name=name,
                role=role.value,
                password_hash=hash_password(DEMO_PASSWORD),
                is_active=True,
            ))
            print(f"  + {role.value}: {email}")

        db.commit()
    print("Done.")


if __name__ == "__main__":
    seed()
