"""
Audit log of PayPal API calls.

Each call is recorded in two steps: ``begin`` persists the request before the
call is issued, then ``complete`` or ``fail`` stores the outcome in the same
row. The writes commit on their own, independent of any business transaction,
so the trail survives a rollback of local state.
"""
import json
from typing import Any, Dict, Optional

import structlog

from paypal_checkout.database.models import Log, utcnow
from paypal_checkout.database.repositories import LogRepository, RecordNotFoundError
from paypal_checkout.enums import RequestType

logger = structlog.get_logger(__name__)

# Status stored until the call returns (mirrors an HTTP 500).
IN_FLIGHT_STATUS = 500


def serialize_payload(payload: Any) -> Optional[str]:
    """Store strings as-is and everything else as JSON."""
    if payload is None or isinstance(payload, str):
        return payload
    return json.dumps(payload, default=str)


def parse_payload(raw: Optional[str]) -> Dict[str, Any]:
    """Decode a stored JSON object; anything else yields an empty dict."""
    try:
        data = json.loads(raw) if raw is not None else None
    except (TypeError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


class AuditLog:
    """Append/update log of every PayPal call attempt."""

    def __init__(self, repository: LogRepository):
        self.repository = repository

    async def begin(self, request_type: RequestType, request_payload: Any) -> int:
        """
        Persist a request before it is sent.

        Args:
            request_type: Kind of PayPal call
            request_payload: Request body (serialized to JSON unless a string)

        Returns:
            int: ID of the log row
        """
        dto = Log(
            request_type=RequestType.parse(request_type).value,
            request_data=serialize_payload(request_payload),
            date_request=utcnow(),
            response_data=None,
            response_status=IN_FLIGHT_STATUS,
            date_response=None,
        )
        log_id = await self.repository.create_one(dto)
        logger.info("audit_log_begun", log_id=log_id, request_type=dto.request_type)
        return log_id

    async def complete(self, log_id: int, response_status: int, response_payload: Any) -> None:
        """Store a successful response."""
        await self._finish(log_id, response_status, response_payload)
        logger.info("audit_log_completed", log_id=log_id, response_status=response_status)

    async def fail(
        self, log_id: int, error_payload: Any, response_status: Optional[int] = None
    ) -> None:
        """
        Store a failed response.

        ``response_status`` is None when no HTTP response was received; the
        placeholder status is kept in that case.
        """
        await self._finish(log_id, response_status, error_payload)
        logger.warning("audit_log_failed", log_id=log_id, response_status=response_status)

    async def record_unknown_outcome(self, log_id: int, error_payload: Any) -> None:
        """
        Store the error of a call whose outcome is unknown.

        The response timestamp stays empty, so the row keeps showing up among
        in-flight entries until reconciliation resolves it.
        """
        updated = await self.repository.update_one(
            log_id, {"response_data": serialize_payload(error_payload)}
        )
        if not updated:
            raise RecordNotFoundError(f"Log entry {log_id} not found")
        logger.error("audit_log_outcome_unknown", log_id=log_id)

    async def fail_best_effort(
        self, log_id: int, error_payload: Any, response_status: Optional[int] = None
    ) -> None:
        """
        ``fail`` for use while a provider error is propagating.

        A database error is logged together with the payload instead of
        replacing the provider error the caller has to see.
        """
        try:
            await self.fail(log_id, error_payload, response_status)
        except Exception as e:
            self._log_write_failed(log_id, response_status, error_payload, e)

    async def record_unknown_outcome_best_effort(self, log_id: int, error_payload: Any) -> None:
        """``record_unknown_outcome`` that never masks the transport error."""
        try:
            await self.record_unknown_outcome(log_id, error_payload)
        except Exception as e:
            self._log_write_failed(log_id, None, error_payload, e)

    async def read(self, log_id: int) -> Optional[Log]:
        """Read one log row."""
        return await self.repository.read_one(log_id)

    async def in_flight(self, request_type: Optional[RequestType] = None) -> list[Log]:
        """Rows begun but never completed or failed."""
        return await self.repository.read_in_flight(request_type)

    @staticmethod
    def _log_write_failed(
        log_id: int, response_status: Optional[int], payload: Any, error: Exception
    ) -> None:
        logger.error(
            "audit_log_write_failed",
            log_id=log_id,
            response_status=response_status,
            payload=serialize_payload(payload),
            error=str(error),
            error_type=type(error).__name__,
        )

    async def _finish(self, log_id: int, response_status: Optional[int], payload: Any) -> None:
        updates: dict[str, Any] = {
            "response_data": serialize_payload(payload),
            "date_response": utcnow(),
        }
        if response_status is not None:
            updates["response_status"] = response_status
        updated = await self.repository.update_one(log_id, updates)
        if not updated:
            raise RecordNotFoundError(f"Log entry {log_id} not found")
