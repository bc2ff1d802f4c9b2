from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import String, DateTime, Boolean, ForeignKey, JSON, Enum, UniqueConstraint
from datetime import datetime
from typing import Optional
import enum
import uuid

from shops_auth.db.session import Base
from shops_auth.security.utils import now_utc


class UserRole(str, enum.Enum):
    CUSTOMER = 'CUSTOMER'
    MERCHANT = 'MERCHANT'
    RIDER = 'RIDER'


class AuthProvider(str, enum.Enum):
    EMAIL = 'EMAIL'
    GOOGLE = 'GOOGLE'


def new_id() -> str: return uuid.uuid4().hex


class User(Base):
    __tablename__ = 'users'
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    password_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[UserRole] = mapped_column(Enum(UserRole, name='user_role'), default=UserRole.CUSTOMER, nullable=False)
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc, onupdate=now_utc, nullable=False)
    refresh_tokens = relationship('RefreshToken', back_populates='user', cascade='all, delete-orphan', passive_deletes=True)
    provider_accounts = relationship('ProviderAccount', back_populates='user', cascade='all, delete-orphan', passive_deletes=True)


class RefreshToken(Base):
    __tablename__ = 'refresh_tokens'
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    user_agent: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    is_revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc, nullable=False)
    user = relationship('User', back_populates='refresh_tokens')


class ProviderAccount(Base):
    __tablename__ = 'provider_accounts'
    __table_args__ = (UniqueConstraint('provider', 'provider_account_id', name='uq_provider_account'),)
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    provider: Mapped[AuthProvider] = mapped_column(Enum(AuthProvider, name='auth_provider'), nullable=False)
    provider_account_id: Mapped[str] = mapped_column(String(255), nullable=False)
    provider_email: Mapped[str] = mapped_column(String(255), nullable=False)
    provider_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    access_token: Mapped[Optional[str]] = mapped_column(String(4096), nullable=True)
    refresh_token: Mapped[Optional[str]] = mapped_column(String(4096), nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc, nullable=False)
    user = relationship('User', back_populates='provider_accounts')


class AuditLog(Base):
    __tablename__ = 'audit_logs'
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    resource: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc, nullable=False)
