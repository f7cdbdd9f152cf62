from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    and_,
    func,
    or_,
)
from sqlalchemy.orm import relationship

from .database import Base

ROLE_USER = "user"
ROLE_ADMIN = "admin"

SHARE_TEXT = "text"
SHARE_FILE = "file"


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(60), nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    password_salt = Column(String, nullable=False)
    role = Column(String, nullable=False, default=ROLE_USER, index=True)
    created_at = Column(DateTime, server_default=func.now())
    shares = relationship("Share", back_populates="owner")

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


class Share(Base):
    __tablename__ = "shares"
    id = Column(Integer, primary_key=True, index=True)
    token = Column(String(32), unique=True, index=True, nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String, nullable=False)  # text, file
    text = Column(Text, nullable=True)
    file_original_name = Column(String, nullable=True)
    file_stored_name = Column(String, nullable=True)
    file_mime_type = Column(String, nullable=True)
    file_size = Column(Integer, nullable=True)
    file_path = Column(String, nullable=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    one_time_view = Column(Boolean, nullable=False, default=False)
    max_views = Column(Integer, nullable=True)
    view_count = Column(Integer, nullable=False, default=0)
    download_count = Column(Integer, nullable=False, default=0)
    password_hash = Column(String, nullable=True)
    password_salt = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    owner = relationship("User", back_populates="shares")
    reports = relationship(
        "ShareReport",
        back_populates="share",
        cascade="all, delete-orphan",
        order_by="ShareReport.created_at",
    )

    @property
    def access_count(self) -> int:
        return (self.view_count or 0) + (self.download_count or 0)

    @property
    def report_count(self) -> int:
        return len(self.reports)

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)

    def is_expired(self, now) -> bool:
        return self.expires_at <= now

    def is_exhausted(self) -> bool:
        if self.one_time_view and self.access_count > 0:
            return True
        return self.max_views is not None and self.access_count >= self.max_views

    @classmethod
    def accessible_clause(cls, now):
        """SQL twin of ``not is_expired(now) and not is_exhausted()``."""
        access_count = cls.view_count + cls.download_count
        return and_(
            cls.expires_at > now,
            or_(cls.one_time_view.is_(False), access_count == 0),
            or_(cls.max_views.is_(None), access_count < cls.max_views),
        )


class ShareReport(Base):
    __tablename__ = "share_reports"
    __table_args__ = (
        UniqueConstraint("share_id", "reported_by_id", name="uq_share_reports_share_reporter"),
    )
    id = Column(Integer, primary_key=True)
    share_id = Column(Integer, ForeignKey("shares.id"), nullable=False, index=True)
    reported_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    reason = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    share = relationship("Share", back_populates="reports")
    reported_by = relationship("User")
