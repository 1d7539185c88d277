"""Data-store collaborator.

Narrow, typed access to the host's user table and the connections table.
The user table belongs to the password-auth subsystem, so its field names are
configuration (``UserSchema``) rather than assumptions.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from connectauth.auth.errors import (
    ConfigurationError,
    EmailAlreadyRegisteredError,
    ProviderAlreadyLinkedError,
)
from connectauth.auth.providers import Provider
from connectauth.config import Settings
from connectauth.models import ConnectedAccount, User


@dataclass(frozen=True)
class UserSchema:
    """Field layout of the host user table."""

    id_field: str = "id"
    username_field: str = "username"
    email_field: str = "email"
    # Whether the table has a separate email column next to the username
    has_email_field: bool = True
    password_field: str = "hashed_password"

    @classmethod
    def from_settings(cls, settings: Settings) -> "UserSchema":
        return cls(
            id_field=settings.user_id_field,
            username_field=settings.user_username_field,
            email_field=settings.user_email_field,
            has_email_field=settings.user_has_email_field,
            password_field=settings.user_password_field,
        )


@dataclass(frozen=True)
class ConnectedAccountRecord:
    """A persisted connection, detached from the session."""

    provider: str
    provider_user_id: str
    user_id: str
    provider_username: str
    created_at: datetime


class AccountStore:
    """SQLAlchemy implementation of the store the flows run against."""

    def __init__(
        self,
        session: AsyncSession,
        schema: UserSchema | None = None,
        user_model: type = User,
        connection_model: type = ConnectedAccount,
    ):
        self.session = session
        self.schema = schema or UserSchema()
        self.user_model = user_model
        self.connection_model = connection_model

        required = [self.schema.id_field, self.schema.username_field, self.schema.password_field]
        if self.schema.has_email_field:
            required.append(self.schema.email_field)
        for name in required:
            self._user_column(name)

    def _user_column(self, name: str):
        column = getattr(self.user_model, name, None)
        if column is None:
            raise ConfigurationError(f"user model {self.user_model.__name__} has no field '{name}'")
        return column

    # Users

    def user_id(self, user: Any) -> str:
        return getattr(user, self.schema.id_field)

    def has_password(self, user: Any) -> bool:
        return bool(getattr(user, self.schema.password_field, None))

    async def find_user_by_id(self, user_id: str) -> Any | None:
        return await self.find_user_by_field(self.schema.id_field, user_id)

    async def find_user_by_field(self, field: str, value: Any) -> Any | None:
        result = await self.session.execute(
            select(self.user_model).where(self._user_column(field) == value).limit(1)
        )
        return result.scalars().first()

    async def create_user(self, **fields: Any) -> Any:
        for name in fields:
            self._user_column(name)
        user = self.user_model(**fields)
        self.session.add(user)
        try:
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            raise EmailAlreadyRegisteredError()
        return user

    # Connections

    async def find_connection(self, provider: Provider, provider_user_id: str) -> ConnectedAccount | None:
        result = await self.session.execute(
            select(self.connection_model).where(
                self.connection_model.provider == provider.value,
                self.connection_model.provider_user_id == provider_user_id,
            )
        )
        return result.scalar_one_or_none()

    async def find_user_connection(self, user_id: str, provider: Provider) -> ConnectedAccount | None:
        result = await self.session.execute(
            select(self.connection_model).where(
                self.connection_model.user_id == user_id,
                self.connection_model.provider == provider.value,
            )
        )
        return result.scalar_one_or_none()

    async def list_connections(self, user_id: str) -> list[ConnectedAccount]:
        result = await self.session.execute(
            select(self.connection_model)
            .where(self.connection_model.user_id == user_id)
            .order_by(self.connection_model.created_at, self.connection_model.id)
        )
        return list(result.scalars().all())

    async def count_connections(self, user_id: str) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(self.connection_model).where(
                self.connection_model.user_id == user_id
            )
        )
        return result.scalar_one()

    async def create_connection(
        self,
        provider: Provider,
        provider_user_id: str,
        user_id: str,
        provider_username: str,
    ) -> ConnectedAccount:
        """Persist a connection.

        The unique constraints back up the matcher: a concurrent request that
        slipped past the lookups still fails here.
        """
        connection = self.connection_model(
            provider=provider.value,
            provider_user_id=provider_user_id,
            user_id=user_id,
            provider_username=provider_username,
        )
        self.session.add(connection)
        try:
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            raise ProviderAlreadyLinkedError(provider.value)
        return connection

    async def delete_connection(self, connection: ConnectedAccount) -> None:
        await self.session.delete(connection)
        await self.session.flush()

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()

    @staticmethod
    def to_record(connection: ConnectedAccount) -> ConnectedAccountRecord:
        return ConnectedAccountRecord(
            provider=connection.provider,
            provider_user_id=connection.provider_user_id,
            user_id=connection.user_id,
            provider_username=connection.provider_username,
            created_at=connection.created_at,
        )
