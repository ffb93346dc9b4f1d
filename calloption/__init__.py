"""
calloption - European call option settlement on an atomic token ledger

A seller escrows tokens in an option contract, a buyer pays a premium and
deposits the strike value, and at maturity the price oracle decides which
side receives which balance. Every entry point is one atomic ledger
transaction.

Usage:
    from calloption import Ledger, token, OracleClient, EuropeanCallOption

    ledger = Ledger("main", verbose=False)
    ledger.register_unit(token("XLM", "Stellar Lumens"))
    ledger.register_unit(token("USDC", "USD Coin"))
    for wallet in ("seller", "buyer", "admin"):
        ledger.register_wallet(wallet)
    ledger.issue("seller", "XLM", 1000)
    ledger.issue("buyer", "XLM", 1000)
    ledger.issue("buyer", "USDC", 5000)

    feed = OracleClient.deploy(ledger, "oracle")
    feed.initialize("admin", "USDC", 7, 300)

    opt = EuropeanCallOption.deploy(ledger, "option")
    opt.init_option("seller", 10, 86400, 10, "XLM", 100, "USDC", "oracle",
                    signers=["seller"])
    opt.buy_option("buyer", signers=["buyer"])
"""

# Core types
from .core import (
    LedgerView,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    StateChange,
    build_transaction,
    contract_origin,
    Unit,
    token,
    ExecuteResult,
    LedgerError,
    UnitNotRegistered,
    WalletNotRegistered,
    ContractNotDeployed,
    StaleState,
    TransferFailed,
    InsufficientFunds,
    BalanceConstraintViolation,
    ContractError,
    AlreadyInitialized,
    NotInitialized,
    InvalidArgument,
    ArithmeticOverflow,
    AuthorizationFailed,
    DeadlineNotReached,
    NotReady,
    BuyerAlreadyEntered,
    OracleUnavailable,
    SYSTEM_WALLET,
    UNIT_TYPE_TOKEN,
    CONTRACT_TYPE_EUROPEAN_CALL,
    CONTRACT_TYPE_PRICE_ORACLE,
    DEFAULT_SOURCE,
    U32_MAX,
    U64_MAX,
    I128_MIN,
    I128_MAX,
)

# Ledger
from .ledger import Ledger

# Price history
from .price_store import PriceStore, PriceObservation, MAX_PRICE_RECORDS

# Oracle contract
from .oracle import (
    OracleMetadata,
    compute_initialize,
    compute_add_price,
    compute_remove_prices,
)

# Pricing
from .pricing_source import (
    PricingSource,
    StaticPricingSource,
    OraclePricingSource,
)

# Option contract
from .option import (
    OptionInfo,
    OptionStatus,
    Settlement,
    compute_init_option,
    compute_buy_option,
    compute_exercise_option,
    compute_withdraw,
    load_option,
    get_buyer,
    get_init_time,
    get_maturity,
    get_settlement,
    get_option_status,
)

# Entry points
from .client import OracleClient, EuropeanCallOption


__all__ = [
    # Core
    'LedgerView', 'Move', 'Transaction', 'PendingTransaction',
    'TransactionOrigin', 'OriginType', 'StateChange',
    'build_transaction', 'contract_origin',
    'Unit', 'token', 'ExecuteResult',
    'LedgerError', 'UnitNotRegistered', 'WalletNotRegistered',
    'ContractNotDeployed', 'StaleState',
    'TransferFailed', 'InsufficientFunds', 'BalanceConstraintViolation',
    'ContractError', 'AlreadyInitialized', 'NotInitialized', 'InvalidArgument',
    'ArithmeticOverflow', 'AuthorizationFailed', 'DeadlineNotReached',
    'NotReady', 'BuyerAlreadyEntered', 'OracleUnavailable',
    'SYSTEM_WALLET', 'UNIT_TYPE_TOKEN',
    'CONTRACT_TYPE_EUROPEAN_CALL', 'CONTRACT_TYPE_PRICE_ORACLE',
    'DEFAULT_SOURCE', 'U32_MAX', 'U64_MAX', 'I128_MIN', 'I128_MAX',
    # Ledger
    'Ledger',
    # Price history
    'PriceStore', 'PriceObservation', 'MAX_PRICE_RECORDS',
    # Oracle
    'OracleMetadata', 'compute_initialize', 'compute_add_price', 'compute_remove_prices',
    # Pricing
    'PricingSource', 'StaticPricingSource', 'OraclePricingSource',
    # Option
    'OptionInfo', 'OptionStatus', 'Settlement',
    'compute_init_option', 'compute_buy_option', 'compute_exercise_option', 'compute_withdraw',
    'load_option', 'get_buyer', 'get_init_time', 'get_maturity',
    'get_settlement', 'get_option_status',
    # Entry points
    'OracleClient', 'EuropeanCallOption',
]

__version__ = "1.0.0"
