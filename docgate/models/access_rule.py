"""AccessRule model: a time-boxed grant from one user to one target."""

from enum import Enum

from sqlalchemy import Column, String, Boolean, Integer, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship

from ..core.timeutils import utcnow
from ..database import Base, UTCDateTime


class TargetType(str, Enum):
    """What an access rule points at.

    ``target_id`` lives in the namespace of its target type: the same string
    under two different types names two unrelated targets.
    """
    DOCUMENT = "document"
    FOLDER = "folder"
    TAG = "tag"
    CATEGORY = "category"


class AccessRule(Base):
    """Grants ``user_id`` access to ``(target_type, target_id)``.

    The rule grants access iff ``is_active`` and ``start_date <= now <= end_date``.
    Status (upcoming/active/expired/disabled) is derived at read time by
    services.rule_status and is deliberately not a column. Several rules may
    cover the same triple; expired rules stay as history.
    """

    __tablename__ = "access_rules"
    __table_args__ = (
        Index("ix_access_rules_lookup", "user_id", "target_type", "target_id"),
        Index("ix_access_rules_end_date", "end_date"),
        CheckConstraint("end_date > start_date", name="ck_access_rules_date_range"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    target_type = Column(String(20), nullable=False)
    target_id = Column(String(255), nullable=False)
    target_name = Column(String(255), nullable=False)
    start_date = Column(UTCDateTime, nullable=False)
    end_date = Column(UTCDateTime, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="access_rules", lazy="joined")
