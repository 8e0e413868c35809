import secrets

from passlib.context import CryptContext
from sqlalchemy.orm import Session

from tesoreria.infrastructure.db.models import User

# pbkdf2_sha256: primary (no native deps)
# bcrypt: legacy hashes, rehashed on next login
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated=["bcrypt"])


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def generate_temporary_password() -> str:
    return secrets.token_urlsafe(9)


def authenticate(db: Session, email: str, password: str) -> User | None:
    """
    Email is unique per organization, not globally: the first account whose
    password matches wins.
    """
    candidates = (
        db.query(User)
        .filter(User.email == email.strip().lower())
        .order_by(User.id)
        .all()
    )
    for user in candidates:
        if verify_password(password, user.password_hash):
            if pwd_context.needs_update(user.password_hash):
                user.password_hash = hash_password(password)
                db.commit()
            return user
    return None
