import enum

from models.base_model import Base, BaseModel, SoftDeleteMixin
from sqlalchemy import Column, String, Boolean, Enum
from sqlalchemy.orm import relationship


class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    USER = "USER"


class User(SoftDeleteMixin, BaseModel, Base):
    __tablename__ = "users"

    # stored exactly as given; lookups are case-sensitive
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(255), nullable=True)
    role = Column(Enum(Role, name="user_role"), nullable=False, default=Role.USER)
    active = Column(Boolean, nullable=False, default=True)
    blocked = Column(Boolean, nullable=False, default=False)

    refresh_tokens = relationship(
        "RefreshToken",
        back_populates="user",
        passive_deletes=True,
    )
