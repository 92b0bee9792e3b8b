import json
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from giving_gateways.database import get_db_connection
from giving_gateways.models.gateway import Gateway

logger = logging.getLogger(__name__)


@runtime_checkable
class GatewayRepositoryProtocol(Protocol):
    """Loads a church's stored gateway records"""

    async def load_all(self, church_id: str) -> Sequence[Any]:
        ...


class GatewayRepository:
    """Gateway records stored in the `gateways` table"""

    async def load_all(self, church_id: str) -> List[Dict[str, Any]]:
        async with get_db_connection(use_transaction=False) as conn:
            rows = await conn.fetch("""
                SELECT id, church_id, provider, public_key, private_key, webhook_key,
                       merchant_id, product_id, settings, environment
                FROM gateways
                WHERE church_id = $1
                ORDER BY id
            """, church_id)

        return [dict(row) for row in rows]

    async def load(self, church_id: str, gateway_id: str) -> Optional[Gateway]:
        async with get_db_connection(use_transaction=False) as conn:
            row = await conn.fetchrow("""
                SELECT id, church_id, provider, public_key, private_key, webhook_key,
                       merchant_id, product_id, settings, environment
                FROM gateways
                WHERE church_id = $1 AND id = $2
            """, church_id, gateway_id)

        if not row:
            return None
        return self.convert_to_model(church_id, dict(row))

    def convert_to_model(self, church_id: str, row: Dict[str, Any]) -> Gateway:
        data = dict(row)
        data.setdefault("church_id", church_id)
        stored_settings = data.get("settings")
        if isinstance(stored_settings, str):
            try:
                data["settings"] = json.loads(stored_settings) if stored_settings else None
            except ValueError:
                logger.warning(f"Unreadable settings on gateway {data.get('id')}, ignoring")
                data["settings"] = None
        return Gateway.model_validate(data)

    def convert_all_to_model(self, church_id: str, rows: Sequence[Dict[str, Any]]) -> List[Gateway]:
        return [self.convert_to_model(church_id, row) for row in rows]
