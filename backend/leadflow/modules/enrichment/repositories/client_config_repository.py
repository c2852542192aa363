"""
Client Config Repository
Per-tenant settings lookup.

API keys are never stored in the database. Each client row names an
environment variable prefix per service; the key is read from
<PREFIX>_<KEY_TYPE>, e.g. ACME_FINDYMAIL. A client without a prefix for a
service falls back to the shared LEADWRAITH_* keys.
"""
import logging
import os
from typing import Dict, Mapping, Optional

from sqlalchemy import insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.modules.enrichment.constants import ApiKeyType, FolderType
from leadflow.modules.enrichment.models.client_config import ClientConfig
from leadflow.shared.core.constants import DEFAULT_API_KEY_PREFIX
from leadflow.shared.db.base import utcnow
from leadflow.shared.utils.exceptions import (
    ConfigurationError,
    EntityNotFoundError,
    LeadflowValidationError,
    PersistenceError,
    UnknownValueError,
)

logger = logging.getLogger("client_config_repository")

CLIENT_CONFIG_COLUMNS = tuple(ClientConfig.__table__.c)
CLIENT_CONFIG_FIELDS = frozenset(
    column.name for column in CLIENT_CONFIG_COLUMNS
    if column.name not in ("id", "created_at", "updated_at")
)


class ClientConfigRepository:
    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def create(self, config_data: Dict) -> Dict:
        unknown = set(config_data) - CLIENT_CONFIG_FIELDS
        if unknown:
            raise UnknownValueError("client config field", sorted(unknown)[0], sorted(CLIENT_CONFIG_FIELDS))
        if not config_data.get("client"):
            raise LeadflowValidationError("A client config needs a client")

        stmt = (
            insert(ClientConfig)
            .values(**config_data, created_at=utcnow())
            .returning(*CLIENT_CONFIG_COLUMNS)
        )
        try:
            result = await self.db.execute(stmt)
            config = dict(result.mappings().one())
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError("create client config", str(exc)) from exc

        logger.info(f"Created client config for {config['client']}")
        return config

    async def get_by_client(self, client: str) -> Dict:
        """
        Raises:
            EntityNotFoundError: the client has no config row
        """
        query = select(*CLIENT_CONFIG_COLUMNS).where(ClientConfig.client == client)
        try:
            result = await self.db.execute(query)
            row = result.mappings().first()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError("get client config", str(exc)) from exc

        if row is None:
            raise EntityNotFoundError("ClientConfig", client)
        return dict(row)

    async def get_api_key(self, client: str, key_type: str, environ: Optional[Mapping[str, str]] = None) -> str:
        """
        Resolve a client's API key for a service from the environment.

        Args:
            client: Tenant name
            key_type: findymail, ai or upload
            environ: Mapping to read from (defaults to os.environ)

        Raises:
            ConfigurationError: the environment variable is missing or empty
        """
        try:
            key = ApiKeyType(getattr(key_type, "value", key_type))
        except ValueError:
            raise UnknownValueError("API key type", key_type, [k.value for k in ApiKeyType]) from None

        config = await self.get_by_client(client)
        prefix = config.get(f"{key.value}_api_key") or DEFAULT_API_KEY_PREFIX
        env_key = f"{prefix}_{key.value.upper()}"

        environ = os.environ if environ is None else environ
        api_key = environ.get(env_key)
        if not api_key:
            raise ConfigurationError(f"API key not found: {env_key}")
        return api_key

    async def get_folder_path(self, client: str, folder_type: str) -> Optional[str]:
        """The client's incoming, processed or failed folder (None if unset)."""
        try:
            folder = FolderType(getattr(folder_type, "value", folder_type))
        except ValueError:
            raise UnknownValueError("folder type", folder_type, [f.value for f in FolderType]) from None

        config = await self.get_by_client(client)
        return config.get(f"folder_{folder.value}")
