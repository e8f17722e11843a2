from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

import httpx
from pydantic import ValidationError

from debt_scheduler.core.settlement.models import DebtCollection, Err, Ok, SettlementResult
from debt_scheduler.utils.exceptions import MalformedSettlementResponse, SettlementTransportException
from debt_scheduler.utils.metrics import SETTLEMENT_CALLS_TOTAL
from debt_scheduler.utils.observability import emit_best_effort, log_duration

logger = logging.getLogger(__name__)


class SettlementClient(Protocol):
    """Ledger operations the workers depend on.

    Every call returns ``Ok(value)`` or ``Err(reason)``; failures are never
    raised, and the reason text is passed through untouched so the caller can
    classify it.
    """

    async def pay_debt(self, epoch: int) -> SettlementResult: ...

    async def initialize_distribution(self) -> SettlementResult: ...

    async def calculate_distribution(self, epoch: int, *, post_to_channel: bool) -> SettlementResult: ...

    async def finalize_distribution(self, epoch: int) -> SettlementResult: ...

    async def current_epoch(self) -> SettlementResult: ...

    async def collect_all_debt(self) -> SettlementResult: ...


class HttpSettlementClient:
    """Settlement client backed by the settlement service's JSON API.

    Requests: ``POST /v1/<operation>`` with ``{"ledger_rpc", "solana_rpc", ...}``.
    Responses: ``{"ok": true, "result": ...}`` or ``{"ok": false, "error": "..."}``.

    One instance is shared by all workers; it keeps no per-call state.
    """

    def __init__(
        self,
        *,
        base_url: str,
        ledger_rpc: str,
        solana_rpc: str,
        timeout_seconds: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._ledger_rpc = ledger_rpc
        self._solana_rpc = solana_rpc
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_seconds,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @classmethod
    def from_settings(cls, settings: Any) -> "HttpSettlementClient":
        return cls(
            base_url=settings.SETTLEMENT_API_URL,
            ledger_rpc=settings.LEDGER_RPC,
            solana_rpc=settings.SOLANA_RPC,
            timeout_seconds=settings.SETTLEMENT_TIMEOUT_SECONDS,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, operation: str, params: dict[str, Any]) -> Any:
        payload = {"ledger_rpc": self._ledger_rpc, "solana_rpc": self._solana_rpc, **params}
        try:
            response = await self._client.post(f"/v1/{operation}", json=payload)
        except httpx.HTTPError as exc:
            raise SettlementTransportException(
                f"{operation}: {exc.__class__.__name__}: {exc}",
                details={"operation": operation},
            ) from exc

        try:
            body = response.json()
        except ValueError:
            raise MalformedSettlementResponse(
                f"{operation}: HTTP {response.status_code}: {response.text[:200]}",
                details={"operation": operation, "status_code": response.status_code},
            ) from None

        if not isinstance(body, dict) or "ok" not in body:
            raise MalformedSettlementResponse(
                f"{operation}: unexpected response body",
                details={"operation": operation, "status_code": response.status_code},
            )
        return body

    async def _call(self, operation: str, **params: Any) -> SettlementResult:
        with log_duration(logger, f"settlement.{operation}", **params):
            try:
                body = await self._post(operation, params)
            except (SettlementTransportException, MalformedSettlementResponse) as exc:
                logger.warning(
                    "settlement.call_failed operation=%s code=%s err=%s details=%s",
                    operation,
                    exc.code,
                    exc.message,
                    exc.details,
                )
                emit_best_effort(SETTLEMENT_CALLS_TOTAL, operation=operation, result="transport_error")
                return Err(exc.message)

        if body.get("ok"):
            emit_best_effort(SETTLEMENT_CALLS_TOTAL, operation=operation, result="ok")
            return Ok(body.get("result"))

        emit_best_effort(SETTLEMENT_CALLS_TOTAL, operation=operation, result="error")
        reason = body.get("error")
        return Err(str(reason) if reason else f"{operation}: settlement service returned no error text")

    async def pay_debt(self, epoch: int) -> SettlementResult:
        result = await self._call("pay_debt", epoch=epoch)
        if isinstance(result, Err):
            return result
        try:
            return Ok(DebtCollection.model_validate(result.value))
        except ValidationError as exc:
            return Err(f"pay_debt: malformed debt collection for epoch {epoch}: {exc}")

    async def initialize_distribution(self) -> SettlementResult:
        result = await self._call("initialize_distribution")
        if isinstance(result, Err):
            return result
        return Ok("" if result.value is None else str(result.value))

    async def calculate_distribution(self, epoch: int, *, post_to_channel: bool) -> SettlementResult:
        result = await self._call("calculate_distribution", epoch=epoch, post_to_channel=post_to_channel)
        if isinstance(result, Err):
            return result
        return Ok(None)

    async def finalize_distribution(self, epoch: int) -> SettlementResult:
        result = await self._call("finalize_distribution", epoch=epoch)
        if isinstance(result, Err):
            return result
        return Ok(None)

    async def current_epoch(self) -> SettlementResult:
        result = await self._call("current_epoch")
        if isinstance(result, Err):
            return result
        try:
            epoch = int(result.value)
        except (TypeError, ValueError):
            return Err(f"current_epoch: expected an integer epoch, got {result.value!r}")
        if epoch < 0:
            return Err(f"current_epoch: negative epoch {epoch}")
        return Ok(epoch)

    async def collect_all_debt(self) -> SettlementResult:
        result = await self._call("collect_all_debt")
        if isinstance(result, Err):
            return result
        return Ok(None)
