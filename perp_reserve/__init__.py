"""
perp_reserve - Reserve Accounting for a Perpetual Tranche Token

A perpetual claim token backed by a reserve of bond tranches and one rebasing
collateral asset: pro-rata redemption, price- and fee-adjusted rollover, and
signed fee settlement.

Usage:
    from perp_reserve import (
        AssetLedger, BondRegistry, PerpetualTranche, UnitPricingStrategy,
        BasicFeeStrategy, create_collateral_unit, create_perp_unit,
    )

    ledger = AssetLedger("main")
    ledger.register_asset(create_collateral_unit("AMPL", "Ampleforth"))
    ledger.register_asset(create_perp_unit("SPOT", "Spot", "AMPL", "reserve"))
    ledger.register_wallet("reserve")
    ledger.register_wallet("alice")

    registry = BondRegistry()
    bond, tranches = registry.issue_bond("B1", maturity, ("B1-A", "B1-Z"))
    for tranche in tranches:
        ledger.register_asset(tranche)

    perp = PerpetualTranche(
        ledger, "SPOT",
        pricing_strategy=UnitPricingStrategy(),
        fee_strategy=BasicFeeStrategy("SPOT"),
        registry=registry,
    )
    assets, amounts = perp.redeem("alice", Decimal("100"))
"""

# Core types
from .core import (
    AssetView,
    PricingStrategy,
    FeeStrategy,
    DepositBondRegistry,
    Asset,
    Bond,
    FeeQuote,
    Move,
    PendingTransaction,
    Transaction,
    TransactionOrigin,
    OriginType,
    AssetStateChange,
    ExecuteResult,
    Transfer,
    ReserveSynced,
    UpdatedMatureTrancheBalance,
    build_transaction,
    empty_pending_transaction,
    fee_token,
    ReserveError,
    UnacceptableBurnAmt,
    ExpectedSupplyReduction,
    UnacceptableRollover,
    UnauthorizedCall,
    Paused,
    InsufficientReserve,
    InsufficientBalance,
    InsufficientAllowance,
    AssetNotRegistered,
    WalletNotRegistered,
    SYSTEM_WALLET,
    FIXED_POINT_DECIMALS,
    COLLATERAL_PRICE,
    ASSET_TYPE_COLLATERAL,
    ASSET_TYPE_TRANCHE,
    ASSET_TYPE_PERP,
    ASSET_TYPE_FEE_TOKEN,
)

# Ledger
from .ledger import AssetLedger

# Reserve
from .reserve import (
    ReserveLedger,
    PerpTerms,
    create_perp_unit,
    load_reserve,
    to_state_dict,
)

# Fees
from .fees import (
    NativeFee,
    ExternalFee,
    FeeSettlement,
    resolve_settlement_mode,
    calculate_native_rebate,
    compute_fee_settlement,
)

# Redemption
from .redemption import (
    RedemptionAmounts,
    calculate_redemption_amounts,
    compute_redemption_amounts,
    validate_burn,
    compute_redemption,
)

# Rollover
from .rollover import (
    RolloverAmounts,
    NO_ROLLOVER,
    calculate_rollover_amount,
    validate_rollover,
    is_acceptable_for_reserve,
    compute_rollover_amount,
    compute_rollover,
)

# Strategies
from .strategies import (
    UnitPricingStrategy,
    StaticPricingStrategy,
    BasicFeeStrategy,
)

# Guards
from .guards import ReserveGuard

# Engine
from .engine import PerpetualTranche

# Units
from .units import (
    create_collateral_unit,
    compute_rebase,
    compute_rebase_adjustments,
    RebaseAdjustment,
    create_tranche_unit,
    BondRegistry,
)

__version__ = "1.0.0"

__all__ = [
    # Core
    'AssetView', 'PricingStrategy', 'FeeStrategy', 'DepositBondRegistry',
    'Asset', 'Bond', 'FeeQuote', 'Move', 'PendingTransaction', 'Transaction',
    'TransactionOrigin', 'OriginType', 'AssetStateChange', 'ExecuteResult',
    'Transfer', 'ReserveSynced', 'UpdatedMatureTrancheBalance',
    'build_transaction', 'empty_pending_transaction', 'fee_token',
    'ReserveError', 'UnacceptableBurnAmt', 'ExpectedSupplyReduction',
    'UnacceptableRollover', 'UnauthorizedCall', 'Paused', 'InsufficientReserve',
    'InsufficientBalance', 'InsufficientAllowance', 'AssetNotRegistered',
    'WalletNotRegistered',
    'SYSTEM_WALLET', 'FIXED_POINT_DECIMALS', 'COLLATERAL_PRICE',
    'ASSET_TYPE_COLLATERAL', 'ASSET_TYPE_TRANCHE', 'ASSET_TYPE_PERP', 'ASSET_TYPE_FEE_TOKEN',
    # Ledger
    'AssetLedger',
    # Reserve
    'ReserveLedger', 'PerpTerms', 'create_perp_unit', 'load_reserve', 'to_state_dict',
    # Fees
    'NativeFee', 'ExternalFee', 'FeeSettlement', 'resolve_settlement_mode',
    'calculate_native_rebate', 'compute_fee_settlement',
    # Redemption
    'RedemptionAmounts', 'calculate_redemption_amounts', 'compute_redemption_amounts',
    'validate_burn', 'compute_redemption',
    # Rollover
    'RolloverAmounts', 'NO_ROLLOVER', 'calculate_rollover_amount', 'validate_rollover',
    'is_acceptable_for_reserve', 'compute_rollover_amount', 'compute_rollover',
    # Strategies
    'UnitPricingStrategy', 'StaticPricingStrategy', 'BasicFeeStrategy',
    # Guards
    'ReserveGuard',
    # Engine
    'PerpetualTranche',
    # Units
    'create_collateral_unit', 'compute_rebase', 'compute_rebase_adjustments',
    'RebaseAdjustment', 'create_tranche_unit', 'BondRegistry',
]
