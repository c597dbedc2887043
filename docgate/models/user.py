"""User and AuditLog models.

Users authenticate with email/password and receive session tokens. Access
to documents, folders, tags and categories is granted per user through
time-boxed AccessRules (see access_rule.py); the global role only decides
admin bypass and which administrative actions are allowed.
"""

from sqlalchemy import Column, String, Boolean, Integer, Text, ForeignKey
from sqlalchemy.orm import relationship

from ..core.timeutils import utcnow
from ..database import Base, UTCDateTime

ROLES = ("admin", "contributor", "reader")
DEFAULT_ROLE = "reader"


class User(Base):
    """User account.

    Roles:
        admin       — bypasses access rules, manages users and rules
        contributor — document read/write, subject to access rules
        reader      — document read, subject to access rules
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(Text, nullable=True)
    role = Column(String(20), nullable=False, default=DEFAULT_ROLE)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    access_rules = relationship(
        "AccessRule",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class AuditLog(Base):
    """Immutable record of state-changing operations.

    Written by the service layer, never modified or deleted (except by the
    retention purge).
    Fields:
        action        — register, login, login_failed, role_change, deactivate,
                        rule_create, rule_update, rule_toggle, rule_delete,
                        token_issued
        resource_type — user, access_rule, token
        resource_id   — ID of the affected resource
        details       — JSON string with additional context
    """

    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action = Column(String(50), nullable=False)
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(String(255), nullable=True)
    details = Column(Text, nullable=True)
    ip_address = Column(String(45), nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
