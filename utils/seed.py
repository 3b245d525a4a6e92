from flask import current_app

from models import db
from models.user import Role
from security.rbac import DEFAULT_ROLES


def seed_roles(names=DEFAULT_ROLES) -> int:
    """Creates any missing role rows. Safe to call on every startup."""
    existing = {r.name for r in Role.query.all()}
    missing = [name for name in names if name not in existing]
    for name in missing:
        db.session.add(Role(name=name))
    db.session.commit()
    if missing:
        current_app.logger.info("Seeded roles: %s", ", ".join(missing))
    return len(missing)
