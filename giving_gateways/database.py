"""
asyncpg access for gateway records and donation logs.

Every pooled connection decodes ``jsonb`` columns (gateway settings,
donation metadata) to Python objects and encodes dicts on the way in.
"""
import json
import logging
from contextlib import asynccontextmanager
from functools import partial
from typing import Optional

import asyncpg

from giving_gateways.config import settings
from giving_gateways.core.exceptions import APIError

logger = logging.getLogger(__name__)

# Donation amounts arrive as Decimal
_encode_json = partial(json.dumps, default=str)


async def init_connection(connection) -> None:
    await connection.set_type_codec(
        'jsonb',
        encoder=_encode_json,
        decoder=json.loads,
        schema='pg_catalog'
    )


class GatewayDatabase:
    """Process-wide pool shared by the gateway and giving repositories"""

    _pool: Optional[asyncpg.Pool] = None

    @classmethod
    async def get_pool(cls) -> asyncpg.Pool:
        if cls._pool is None:
            if not settings.database_url:
                raise APIError(
                    "Gateway database is not configured",
                    500,
                    {"setting": "DATABASE_URL"}
                )
            cls._pool = await asyncpg.create_pool(
                **settings.db_pool_params,
                init=init_connection
            )
            logger.info(
                f"Gateway database pool created "
                f"(min={settings.db_pool_min_size}, max={settings.db_pool_max_size})"
            )
        return cls._pool

    @classmethod
    async def close(cls) -> None:
        if cls._pool is not None:
            await cls._pool.close()
            cls._pool = None
            logger.info("Gateway database pool closed")


@asynccontextmanager
async def get_db_connection(use_transaction: bool = True):
    """
    Borrow a pooled connection.

    Reads pass use_transaction=False; donation and event-log writes run in a
    transaction.
    """
    pool = await GatewayDatabase.get_pool()
    async with pool.acquire() as connection:
        if use_transaction:
            async with connection.transaction():
                yield connection
        else:
            yield connection
