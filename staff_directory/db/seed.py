# staff_directory/db/seed.py
# Creates the Administration department and the first SUPER_ADMIN.
# Usage: python -m staff_directory.db.seed
import logging

from sqlalchemy.orm import Session

from staff_directory.core.config import settings
from staff_directory.core.logging import setup_logging
from staff_directory.core.roles import DEFAULT_BRANCH, DEFAULT_REGION, Role, validate_employee_code
from staff_directory.core.security import get_password_hash
from staff_directory.db import models
from staff_directory.db.session import SessionLocal, engine

logger = logging.getLogger(__name__)


def seed(db: Session) -> models.User:
    department = db.query(models.Department).filter(models.Department.code == "ADMIN").first()
    if department is None:
        department = models.Department(name="Administration", code="ADMIN",
                                       description="System administration")
        db.add(department)
        db.flush()
        logger.info("Created department %s", department.name)

    id_card = validate_employee_code(settings.SEED_ADMIN_ID_CARD)
    admin = db.query(models.User).filter(models.User.id_card == id_card).first()
    if admin is not None:
        logger.info("Super admin %s already exists, nothing to do", id_card)
        db.commit()
        return admin

    admin = models.User(
        id_card=id_card,
        email=settings.SEED_ADMIN_EMAIL.lower(),
        password_hash=get_password_hash(settings.SEED_ADMIN_PASSWORD),
        first_name="System",
        last_name="Administrator",
        region=DEFAULT_REGION,
        branch=DEFAULT_BRANCH,
        department=department,
        position="Administrator",
        role=Role.SUPER_ADMIN.value,
        is_admin=True,
        is_verified=True,
    )
    db.add(admin)
    db.flush()
    department.line_manager_id = admin.id
    db.commit()
    logger.info("Created super admin %s <%s>", admin.id_card, admin.email)
    return admin


def main() -> None:
    setup_logging()
    models.Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        seed(db)


if __name__ == "__main__":
    main()
