import logging

from app.models import User

audit_logger = logging.getLogger("app.audit")


def log_admin_action(admin: User, action: str, **details) -> None:
    """Write one line per admin action: who, what and the affected identifiers."""
    rendered = " ".join(f"{key}={value!r}" for key, value in details.items())
    audit_logger.info("admin=%s (%s) action=%s %s", admin.id, admin.email, action, rendered)
