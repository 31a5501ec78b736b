"""
Models for Gateway Meteora DLMM responses.

The gateway and the SDK behind it are not consistent about field names
(camelCase vs snake_case, base/quote vs x/y). Every accepted spelling is
listed once here so the rest of the code only sees one shape.
"""
from decimal import Decimal
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class DLMMPoolInfo(BaseModel):
    """Pool state from connectors/meteora/clmm/pool-info."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    address: str = Field(validation_alias=AliasChoices("address", "poolAddress", "pool_address"))
    token_x: str = Field(
        validation_alias=AliasChoices("baseTokenAddress", "tokenXMint", "token_x", "mintX", "baseToken"),
    )
    token_y: str = Field(
        validation_alias=AliasChoices("quoteTokenAddress", "tokenYMint", "token_y", "mintY", "quoteToken"),
    )
    decimals_x: int = Field(
        default=9,
        validation_alias=AliasChoices("baseTokenDecimals", "decimalsX", "decimals_x", "tokenXDecimals"),
    )
    decimals_y: int = Field(
        default=9,
        validation_alias=AliasChoices("quoteTokenDecimals", "decimalsY", "decimals_y", "tokenYDecimals"),
    )
    bin_step: int = Field(validation_alias=AliasChoices("binStep", "bin_step"))
    active_bin_id: int = Field(validation_alias=AliasChoices("activeBinId", "active_bin_id", "activeBin", "activeId"))
    price: Optional[Decimal] = Field(default=None, description="Price of X in Y")


class DLMMBinData(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    bin_id: int = Field(validation_alias=AliasChoices("binId", "bin_id"))
    amount_x: Decimal = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("positionXAmount", "amountX", "amount_x", "xAmount"),
    )
    amount_y: Decimal = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("positionYAmount", "amountY", "amount_y", "yAmount"),
    )


class DLMMPositionInfo(BaseModel):
    """Position state from connectors/meteora/clmm/position-info.

    Amounts are UI units (already divided by token decimals).
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    address: str = Field(validation_alias=AliasChoices("address", "positionAddress", "position_address", "publicKey"))
    pool_address: str = Field(default="", validation_alias=AliasChoices("poolAddress", "pool_address", "lbPair"))
    lower_bin_id: int = Field(validation_alias=AliasChoices("lowerBinId", "lower_bin_id", "lowerBin", "minBinId"))
    upper_bin_id: int = Field(validation_alias=AliasChoices("upperBinId", "upper_bin_id", "upperBin", "maxBinId"))
    amount_x: Decimal = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("baseTokenAmount", "totalXAmount", "amountX", "amount_x"),
    )
    amount_y: Decimal = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("quoteTokenAmount", "totalYAmount", "amountY", "amount_y"),
    )
    fee_x: Decimal = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("baseFeeAmount", "feeX", "fee_x", "feeXExcludeTransferFee"),
    )
    fee_y: Decimal = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("quoteFeeAmount", "feeY", "fee_y", "feeYExcludeTransferFee"),
    )
    bins: List[DLMMBinData] = Field(
        default_factory=list,
        validation_alias=AliasChoices("positionBinData", "bins", "binData"),
    )


class DLMMOpenPositionData(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    position_address: str = Field(validation_alias=AliasChoices("positionAddress", "position_address", "address"))
    position_rent: Decimal = Field(default=Decimal("0"), validation_alias=AliasChoices("positionRent", "position_rent"))
    base_amount_added: Decimal = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("baseTokenAmountAdded", "base_token_amount_added"),
    )
    quote_amount_added: Decimal = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("quoteTokenAmountAdded", "quote_token_amount_added"),
    )
    fee: Decimal = Field(default=Decimal("0"))


class DLMMClosePositionData(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    base_amount_removed: Decimal = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("baseTokenAmountRemoved", "base_token_amount_removed"),
    )
    quote_amount_removed: Decimal = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("quoteTokenAmountRemoved", "quote_token_amount_removed"),
    )
    base_fee_collected: Decimal = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("baseFeeAmountCollected", "base_fee_amount_collected"),
    )
    quote_fee_collected: Decimal = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("quoteFeeAmountCollected", "quote_fee_amount_collected"),
    )
    position_rent_refunded: Decimal = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("positionRentRefunded", "position_rent_refunded"),
    )
    fee: Decimal = Field(default=Decimal("0"))


class DLMMTransactionResponse(BaseModel):
    """Envelope shared by open-position, close-position and swap execute."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    signature: Optional[str] = Field(default=None, validation_alias=AliasChoices("signature", "txHash", "txSignature"))
    status: Optional[int] = None
    data: Optional[dict] = None
