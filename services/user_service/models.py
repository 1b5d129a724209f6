from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from shared.config.database import Base

USER_ROLES = ("admin", "customer")


class User(Base):
    __tablename__ = "users"
    # No schema here: the table is copied into the legacy schema and, when
    # USE_NEW_SCHEMA is on, into users_schema (see build_metadata).
    __table_args__ = (
        CheckConstraint("role IN ('admin', 'customer')", name="ck_users_role"),
    )

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    email = Column(String(100), unique=True, nullable=False)
    password = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=True)
    address = Column(Text, nullable=True)
    role = Column(String(20), nullable=False, server_default="customer")
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now())
