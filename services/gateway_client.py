"""Async client for the Hummingbot Gateway routes used by the DLMM rebalancer."""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

METEORA_CLMM = "connectors/meteora/clmm"


class GatewayClient:
    """Thin httpx wrapper; returns decoded JSON and leaves interpretation to callers."""

    def __init__(self, base_url: str = "http://localhost:15888", timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict] = None,
        json: Optional[Dict] = None,
    ) -> Any:
        try:
            response = await self.client.request(method=method, url=f"/{path}", params=params, json=json)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Gateway HTTP error {e.response.status_code} on {path}: {e.response.text}")
            raise
        except httpx.RequestError as e:
            logger.error(f"Gateway request error on {path}: {e}")
            raise

    # ==================== Meteora DLMM ====================

    async def pool_info(self, network: str, pool_address: str) -> Dict[str, Any]:
        return await self._request(
            "GET",
            f"{METEORA_CLMM}/pool-info",
            params={"network": network, "poolAddress": pool_address},
        )

    async def position_info(self, network: str, wallet_address: str, position_address: str) -> Dict[str, Any]:
        return await self._request(
            "GET",
            f"{METEORA_CLMM}/position-info",
            params={"network": network, "walletAddress": wallet_address, "positionAddress": position_address},
        )

    async def positions_owned(self, network: str, wallet_address: str, pool_address: str) -> List[Dict[str, Any]]:
        result = await self._request(
            "GET",
            f"{METEORA_CLMM}/positions-owned",
            params={"network": network, "walletAddress": wallet_address, "poolAddress": pool_address},
        )
        return result if isinstance(result, list) else []

    async def open_position(
        self,
        network: str,
        wallet_address: str,
        pool_address: str,
        lower_price: Decimal,
        upper_price: Decimal,
        base_token_amount: Optional[Decimal] = None,
        quote_token_amount: Optional[Decimal] = None,
        slippage_pct: Optional[Decimal] = None,
        strategy_type: Optional[int] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "network": network,
            "walletAddress": wallet_address,
            "poolAddress": pool_address,
            "lowerPrice": float(lower_price),
            "upperPrice": float(upper_price),
        }
        if base_token_amount is not None:
            payload["baseTokenAmount"] = float(base_token_amount)
        if quote_token_amount is not None:
            payload["quoteTokenAmount"] = float(quote_token_amount)
        if slippage_pct is not None:
            payload["slippagePct"] = float(slippage_pct)
        if strategy_type is not None:
            payload["strategyType"] = int(strategy_type)
        return await self._request("POST", f"{METEORA_CLMM}/open-position", json=payload)

    async def close_position(self, network: str, wallet_address: str, position_address: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"{METEORA_CLMM}/close-position",
            json={"network": network, "walletAddress": wallet_address, "positionAddress": position_address},
        )

    # ==================== Trading / Wallet ====================

    async def execute_swap(
        self,
        chain_network: str,
        wallet_address: str,
        base_token: str,
        quote_token: str,
        amount: Decimal,
        side: str,
        slippage_pct: Optional[Decimal] = None,
        connector: str = "jupiter/router",
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "chainNetwork": chain_network,
            "walletAddress": wallet_address,
            "baseToken": base_token,
            "quoteToken": quote_token,
            "amount": float(amount),
            "side": side,
            "connector": connector,
        }
        if slippage_pct is not None:
            payload["slippagePct"] = float(slippage_pct)
        return await self._request("POST", "trading/swap/execute", json=payload)

    async def balances(self, network: str, wallet_address: str, tokens: List[str]) -> Dict[str, Decimal]:
        result = await self._request(
            "POST",
            "chains/solana/balances",
            json={"network": network, "address": wallet_address, "tokens": tokens},
        )
        raw = (result or {}).get("balances", {}) if isinstance(result, dict) else {}
        return {token: Decimal(str(value)) for token, value in raw.items() if value is not None}
