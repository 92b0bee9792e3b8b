import logging
from typing import Any, Dict

from giving_gateways.database import get_db_connection

logger = logging.getLogger(__name__)


class GivingRepository:
    """Webhook event log and donation persistence used by providers"""

    async def save_event_log(self, church_id: str, record: Dict[str, Any]) -> None:
        async with get_db_connection() as conn:
            await conn.execute("""
                INSERT INTO gateway_event_logs (
                    church_id, provider, provider_id, event_type,
                    status, message, created, resolved
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                ON CONFLICT (provider, provider_id) DO NOTHING
            """,
                church_id,
                record.get("provider"),
                record.get("provider_id"),
                record.get("event_type"),
                record.get("status"),
                record.get("message") or "",
                record.get("created"),
                record.get("resolved", False)
            )

    async def save_donation(self, church_id: str, record: Dict[str, Any]) -> Dict[str, Any]:
        async with get_db_connection() as conn:
            row = await conn.fetchrow("""
                INSERT INTO donations (
                    church_id, provider, gateway_id, transaction_id, customer_id,
                    subscription_id, amount, currency, method, status, metadata,
                    donation_date
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, NOW())
                RETURNING *
            """,
                church_id,
                record.get("provider"),
                record.get("gateway_id"),
                record.get("transaction_id"),
                record.get("customer_id"),
                record.get("subscription_id"),
                record.get("amount"),
                record.get("currency"),
                record.get("method"),
                record.get("status"),
                record.get("metadata") or {}
            )

        logger.info(f"Logged {record.get('provider')} donation {record.get('transaction_id')}")
        return dict(row) if row else record

    async def update_donation_status(self, church_id: str, transaction_id: str, status: str) -> None:
        async with get_db_connection() as conn:
            await conn.execute("""
                UPDATE donations SET status = $3
                WHERE church_id = $1 AND transaction_id = $2
            """, church_id, transaction_id, status)
