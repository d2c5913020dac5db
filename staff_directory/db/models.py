# staff_directory/db/models.py
from sqlalchemy import (
    Boolean, CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, String, Text, func
)
from sqlalchemy.orm import declarative_base, relationship

from staff_directory.core.roles import DEFAULT_BRANCH, DEFAULT_REGION

Base = declarative_base()


class Department(Base):
    __tablename__ = "departments"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    code = Column(String(20), unique=True, nullable=True)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    # Designated line manager, held by id only; new STAFF in this department report to them.
    line_manager_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    members = relationship("User", back_populates="department")


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    id_card = Column(String(5), unique=True, nullable=False, index=True)
    email = Column(String(100), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)

    region = Column(String(20), nullable=False, default=DEFAULT_REGION)
    branch = Column(String(50), nullable=False, default=DEFAULT_BRANCH)

    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)
    position = Column(String(100), nullable=False)

    role = Column(String(20), nullable=False, default="STAFF", index=True)
    reports_to_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    is_admin = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    # Email verification
    is_verified = Column(Boolean, nullable=False, default=False)
    otp_code = Column(String(6), nullable=True)
    otp_expires_at = Column(DateTime, nullable=True)

    # Login security
    failed_login_count = Column(Integer, nullable=False, default=0)
    is_locked = Column(Boolean, nullable=False, default=False)
    locked_at = Column(DateTime, nullable=True)
    locked_reason = Column(String(255), nullable=True)
    locked_by_id = Column(Integer, nullable=True)
    last_failed_login_at = Column(DateTime, nullable=True)

    # Password reset
    reset_token_hash = Column(String(255), nullable=True)
    reset_token_expires_at = Column(DateTime, nullable=True)

    # Last check-in
    last_checkin_at = Column(DateTime, nullable=True)
    last_checkin_region = Column(String(20), nullable=True)
    last_checkin_branch = Column(String(50), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    version_id = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("role IN ('SUPER_ADMIN', 'LINE_MANAGER', 'STAFF')"),
        CheckConstraint("failed_login_count >= 0"),
        CheckConstraint("reports_to_id IS NULL OR reports_to_id <> id"),
    )
    __mapper_args__ = {"version_id_col": version_id}

    department = relationship("Department", back_populates="members")
    manager = relationship("User", remote_side=[id], back_populates="direct_reports")
    direct_reports = relationship("User", back_populates="manager")
    activities = relationship("DailyActivity", back_populates="owner", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<User id={self.id} id_card={self.id_card!r} role={self.role}>"


class DailyActivity(Base):
    __tablename__ = "daily_activities"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    time_interval = Column(String(13), nullable=False)
    description = Column(String(500), nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    category = Column(String(20), nullable=False, default="work")
    priority = Column(String(10), nullable=False, default="medium")
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("status IN ('pending', 'ongoing', 'completed')"),
        CheckConstraint("category IN ('work', 'meeting', 'training', 'break', 'other')"),
        CheckConstraint("priority IN ('low', 'medium', 'high')"),
    )
    owner = relationship("User", back_populates="activities")
