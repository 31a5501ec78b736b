import logging
from decimal import ROUND_DOWN, Decimal
from typing import Dict, Optional, Protocol, Tuple

import httpx
from pydantic import ValidationError

from .components import (
    BinAmount,
    CloseResult,
    OpenRequest,
    OpenResult,
    PoolMetadata,
    PositionSnapshot,
    PositionValuation,
)
from .errors import CollaboratorError, PositionExistsError, PriceUnavailableError
from .gateway_models import (
    DLMMClosePositionData,
    DLMMOpenPositionData,
    DLMMPoolInfo,
    DLMMPositionInfo,
    DLMMTransactionResponse,
)
from .range_calculator import BinRangeCalculator
from .reserve_ledger import ReserveLedger

_ZERO = Decimal("0")

STRATEGY_TYPES = {"spot": 0, "curve": 1, "bid_ask": 2}


def to_raw(amount: Decimal, decimals: int) -> int:
    if amount is None or amount <= 0:
        return 0
    return int((Decimal(amount) * (Decimal(10) ** int(decimals))).to_integral_value(rounding=ROUND_DOWN))


def from_raw(amount: int, decimals: int) -> Decimal:
    return Decimal(int(amount)) / (Decimal(10) ** int(decimals))


class PoolCollaborator(Protocol):
    async def get_pool(self, pool_address: str) -> PoolMetadata: ...

    async def get_active_bin(self, pool_address: str) -> int: ...

    async def get_position(self, position_id: str) -> Optional[PositionSnapshot]: ...

    async def open_position(self, request: OpenRequest, ledger: ReserveLedger) -> OpenResult: ...

    async def close_position(self, position_id: str) -> CloseResult: ...


class SwapCollaborator(Protocol):
    async def swap(self, asset_in: str, asset_out: str, amount: Decimal, slippage_pct: Decimal) -> Optional[str]: ...

    async def get_balance(self, mint: str) -> Decimal: ...


class PriceCollaborator(Protocol):
    async def get_price(self, mint: str) -> Optional[Decimal]: ...


def pool_from_info(info: DLMMPoolInfo, reserve_mint: str) -> PoolMetadata:
    return PoolMetadata(
        pool_address=info.address,
        token_x=info.token_x,
        token_y=info.token_y,
        decimals_x=info.decimals_x,
        decimals_y=info.decimals_y,
        bin_step=info.bin_step,
        reserve_mint=reserve_mint,
    )


def snapshot_from_info(info: DLMMPositionInfo, pool: PoolMetadata) -> PositionSnapshot:
    bins = tuple(
        BinAmount(
            bin_id=b.bin_id,
            amount_x=to_raw(b.amount_x, pool.decimals_x),
            amount_y=to_raw(b.amount_y, pool.decimals_y),
        )
        for b in info.bins
    )
    return PositionSnapshot(
        position_id=info.address,
        pool_address=info.pool_address or pool.pool_address,
        lower_bin=info.lower_bin_id,
        upper_bin=info.upper_bin_id,
        amount_x=to_raw(info.amount_x, pool.decimals_x),
        amount_y=to_raw(info.amount_y, pool.decimals_y),
        fee_x=to_raw(info.fee_x, pool.decimals_x),
        fee_y=to_raw(info.fee_y, pool.decimals_y),
        bins=bins,
    )


class PriceProvider:
    def __init__(self, feed: PriceCollaborator) -> None:
        self._feed = feed

    async def price(self, mint: str) -> Decimal:
        value = await self._feed.get_price(mint)
        if value is None or value <= 0:
            raise PriceUnavailableError(mint)
        return Decimal(str(value))

    async def pool_prices(self, pool: PoolMetadata) -> Tuple[Decimal, Decimal]:
        price_x = await self.price(pool.token_x)
        price_y = await self.price(pool.token_y)
        return price_x, price_y


class PositionValuator:
    @staticmethod
    def value(
        position: PositionSnapshot,
        pool: PoolMetadata,
        price_x: Decimal,
        price_y: Decimal,
    ) -> PositionValuation:
        amount_x = from_raw(position.amount_x, pool.decimals_x)
        amount_y = from_raw(position.amount_y, pool.decimals_y)
        fee_x = from_raw(position.fee_x, pool.decimals_x)
        fee_y = from_raw(position.fee_y, pool.decimals_y)
        return PositionValuation(
            price_x=price_x,
            price_y=price_y,
            amount_x=amount_x,
            amount_y=amount_y,
            fee_x=fee_x,
            fee_y=fee_y,
            liquidity_usd=amount_x * price_x + amount_y * price_y,
            fee_x_usd=fee_x * price_x,
            fee_y_usd=fee_y * price_y,
        )


class GatewayLPAdapter:
    """Pool and swap collaborators backed by a Hummingbot Gateway instance.

    Converts between the engine's raw-unit dataclasses and the gateway's UI
    amounts, and books every amount withheld from an open into the caller's
    ReserveLedger.
    """

    def __init__(
        self,
        *,
        client,
        pool_address: str,
        network: str,
        wallet_address: str,
        reserve_mint: str,
        price_provider: PriceProvider,
        fee_buffer_lamports: int = 0,
        haircut_bps: int = 0,
        open_slippage_pct: Optional[Decimal] = None,
        swap_connector: str = "jupiter/router",
        chain: str = "solana",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._client = client
        self._pool_address = pool_address
        self._network = network
        self._wallet = wallet_address
        self._reserve_mint = reserve_mint
        self._prices = price_provider
        self._fee_buffer_lamports = max(0, int(fee_buffer_lamports))
        self._haircut_bps = max(0, int(haircut_bps))
        self._open_slippage_pct = open_slippage_pct
        self._swap_connector = swap_connector
        self._chain = chain
        self._logger = logger or logging.getLogger(__name__)
        self._pools: Dict[str, PoolMetadata] = {}

    async def get_pool(self, pool_address: str) -> PoolMetadata:
        cached = self._pools.get(pool_address)
        if cached is not None:
            return cached
        raw = await self._client.pool_info(self._network, pool_address)
        try:
            pool = pool_from_info(DLMMPoolInfo.model_validate(raw), self._reserve_mint)
        except ValidationError as e:
            raise CollaboratorError(f"unexpected pool-info payload for {pool_address}: {e}") from e
        if self._reserve_mint not in (pool.token_x, pool.token_y):
            raise CollaboratorError(f"reserve mint {self._reserve_mint} is not in pool {pool_address}")
        self._pools[pool_address] = pool
        return pool

    async def get_active_bin(self, pool_address: str) -> int:
        raw = await self._client.pool_info(self._network, pool_address)
        try:
            return DLMMPoolInfo.model_validate(raw).active_bin_id
        except ValidationError as e:
            raise CollaboratorError(f"unexpected pool-info payload for {pool_address}: {e}") from e

    async def get_position(self, position_id: str, pool_address: Optional[str] = None) -> Optional[PositionSnapshot]:
        try:
            raw = await self._client.position_info(self._network, self._wallet, position_id)
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise
        if not raw:
            return None
        try:
            info = DLMMPositionInfo.model_validate(raw)
        except ValidationError as e:
            raise CollaboratorError(f"unexpected position-info payload for {position_id}: {e}") from e
        pool = await self.get_pool(pool_address or info.pool_address or self._pool_address)
        return snapshot_from_info(info, pool)

    def _withhold(
        self,
        pool: PoolMetadata,
        request: OpenRequest,
        ledger: ReserveLedger,
    ) -> Tuple[Decimal, Decimal]:
        reserve_amt, other_amt = pool.split_reserve_other(
            request.amount_x or _ZERO,
            request.amount_y or _ZERO,
        )
        reserve_raw = to_raw(reserve_amt, pool.reserve_decimals)
        other_raw = to_raw(other_amt, pool.other_decimals)

        if request.capital is not None:
            cap_raw = to_raw(request.capital, pool.reserve_decimals)
            if reserve_raw > cap_raw:
                ledger.add_reserve("cap", reserve_raw - cap_raw)
                reserve_raw = cap_raw

        if reserve_raw > 0 and self._fee_buffer_lamports > 0:
            buffer = min(reserve_raw, self._fee_buffer_lamports)
            ledger.add_reserve("buffer", buffer)
            reserve_raw -= buffer

        if self._haircut_bps > 0:
            reserve_cut = reserve_raw * self._haircut_bps // 10000
            other_cut = other_raw * self._haircut_bps // 10000
            ledger.add_reserve("haircut", reserve_cut)
            ledger.add_trim(pool.other_token, other_cut)
            reserve_raw -= reserve_cut
            other_raw -= other_cut

        amount_x, amount_y = pool.join_reserve_other(
            from_raw(reserve_raw, pool.reserve_decimals),
            from_raw(other_raw, pool.other_decimals),
        )
        return amount_x, amount_y

    async def open_position(self, request: OpenRequest, ledger: ReserveLedger) -> OpenResult:
        pool = await self.get_pool(request.pool_address)
        if not request.bypass_existing_check:
            existing = await self._client.positions_owned(self._network, self._wallet, request.pool_address)
            if existing:
                raise PositionExistsError(
                    f"wallet already holds {len(existing)} position(s) in pool {request.pool_address}"
                )

        amount_x, amount_y = self._withhold(pool, request, ledger)
        if amount_x <= 0 and amount_y <= 0:
            raise CollaboratorError("nothing left to deposit after reserves")

        lower_price = BinRangeCalculator.bin_to_price(
            request.bin_range.lower,
            bin_step=pool.bin_step,
            decimals_x=pool.decimals_x,
            decimals_y=pool.decimals_y,
        )
        upper_price = BinRangeCalculator.bin_to_price(
            request.bin_range.upper,
            bin_step=pool.bin_step,
            decimals_x=pool.decimals_x,
            decimals_y=pool.decimals_y,
        )
        raw = await self._client.open_position(
            network=self._network,
            wallet_address=self._wallet,
            pool_address=request.pool_address,
            lower_price=lower_price,
            upper_price=upper_price,
            base_token_amount=amount_x if amount_x > 0 else None,
            quote_token_amount=amount_y if amount_y > 0 else None,
            slippage_pct=self._open_slippage_pct,
            strategy_type=STRATEGY_TYPES.get(request.strategy, 0),
        )
        envelope = DLMMTransactionResponse.model_validate(raw or {})
        try:
            data = DLMMOpenPositionData.model_validate(envelope.data or raw or {})
        except ValidationError as e:
            raise CollaboratorError(f"open-position returned no position address: {e}") from e

        added_x = data.base_amount_added or amount_x
        added_y = data.quote_amount_added or amount_y
        price_x, price_y = await self._prices.pool_prices(pool)
        deposit_usd = added_x * price_x + added_y * price_y
        self._logger.info(
            f"opened {data.position_address} bins [{request.bin_range.lower}, {request.bin_range.upper}] "
            f"x={added_x} y={added_y} (${deposit_usd:.2f}) sig={envelope.signature}"
        )
        return OpenResult(position_id=data.position_address, deposit_usd=deposit_usd)

    async def close_position(self, position_id: str) -> CloseResult:
        raw = await self._client.close_position(self._network, self._wallet, position_id)
        envelope = DLMMTransactionResponse.model_validate(raw or {})
        data = DLMMClosePositionData.model_validate(envelope.data or {})
        pool = await self.get_pool(self._pool_address)
        return CloseResult(
            success=envelope.signature is not None,
            fee_x=to_raw(data.base_fee_collected, pool.decimals_x),
            fee_y=to_raw(data.quote_fee_collected, pool.decimals_y),
            amount_x=to_raw(data.base_amount_removed, pool.decimals_x),
            amount_y=to_raw(data.quote_amount_removed, pool.decimals_y),
            signature=envelope.signature,
        )

    async def swap(self, asset_in: str, asset_out: str, amount: Decimal, slippage_pct: Decimal) -> Optional[str]:
        raw = await self._client.execute_swap(
            chain_network=f"{self._chain}-{self._network}",
            wallet_address=self._wallet,
            base_token=asset_in,
            quote_token=asset_out,
            amount=amount,
            side="SELL",
            slippage_pct=slippage_pct,
            connector=self._swap_connector,
        )
        return DLMMTransactionResponse.model_validate(raw or {}).signature

    async def get_balance(self, mint: str) -> Decimal:
        balances = await self._client.balances(self._network, self._wallet, [mint])
        return balances.get(mint, _ZERO)
