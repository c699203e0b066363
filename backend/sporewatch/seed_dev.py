# backend/sporewatch/seed_dev.py
import logging

from sqlalchemy.orm import Session

from .auth.passwords import hash_password
from .config import settings
from .db import SessionLocal, init_db
from .models import PathogenSpecies, User

logger = logging.getLogger(__name__)

# species_name, common_name, disease_type
REFERENCE_SPECIES = [
    ("Puccinia striiformis", "Stripe Rust", "Rust"),
    ("Puccinia graminis", "Stem Rust", "Rust"),
    ("Puccinia triticina", "Leaf Rust", "Rust"),
    ("Fusarium graminearum", "Fusarium Head Blight", "Fusarium"),
    ("Fusarium pseudograminearum", "Crown Rot", "Fusarium"),
    ("Septoria tritici", "Septoria Leaf Blotch", "Leaf Spot"),
    ("Pyrenophora tritici-repentis", "Tan Spot", "Leaf Spot"),
    ("Rhynchosporium secalis", "Scald", "Leaf Spot"),
]


def seed_species(db: Session) -> int:
    """Insert any missing reference species; returns how many were added."""
    added = 0
    for name, common, disease in REFERENCE_SPECIES:
        if not db.query(PathogenSpecies).filter_by(species_name=name).first():
            db.add(PathogenSpecies(species_name=name, common_name=common, disease_type=disease))
            added += 1
    db.commit()
    return added


def seed_admin(db: Session) -> User:
    email = settings.seed_admin_email.lower()
    user = db.query(User).filter_by(email=email).first()
    if not user:
        user = User(
            email=email,
            password_hash=hash_password(settings.seed_admin_password),
            role="admin",
            full_name="System Administrator",
            is_active=True,
        )
        db.add(user)
        db.commit()
    return user


def seed():
    init_db()

    db = SessionLocal()
    try:
        added = seed_species(db)
        admin = seed_admin(db)
        logger.info("Seeded %d species; admin account %s", added, admin.email)
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level=settings.log_level)
    seed()
