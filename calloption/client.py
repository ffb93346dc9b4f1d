"""
client.py - Entry points bound to a ledger and a deployed contract

Each mutating method computes a PendingTransaction against the ledger's
current state and invokes it with the identities that authorized the call.
The invocation is atomic: a failed precondition, a missing signature or a
failed transfer raises and leaves balances and storage untouched.
"""

from __future__ import annotations
from typing import Iterable, List, Optional

from .core import (
    Transaction,
    CONTRACT_TYPE_EUROPEAN_CALL, CONTRACT_TYPE_PRICE_ORACLE,
)
from .ledger import Ledger
from .pricing_source import PricingSource
from .price_store import PriceObservation
from . import oracle
from . import option
from .option import OptionInfo, OptionStatus, Settlement
from .oracle import OracleMetadata


class OracleClient:
    """
    Price oracle contract deployed on a ledger.

    Example:
        feed = OracleClient.deploy(ledger, "oracle")
        feed.initialize("admin", base="USDC", decimals=7, resolution=300)
        feed.add_price(0, "XLM", 12, signers=["admin"])
        feed.lastprice("XLM").price   # 12
    """

    def __init__(self, ledger: Ledger, oracle_id: str):
        self.ledger = ledger
        self.oracle_id = oracle_id

    @classmethod
    def deploy(cls, ledger: Ledger, oracle_id: str) -> OracleClient:
        ledger.deploy_contract(oracle_id, CONTRACT_TYPE_PRICE_ORACLE)
        return cls(ledger, oracle_id)

    # Mutations

    def initialize(
        self,
        admin: str,
        base: str,
        decimals: int,
        resolution: int,
        signers: Iterable[str] = (),
    ) -> Optional[Transaction]:
        pending = oracle.compute_initialize(self.ledger, self.oracle_id, admin, base, decimals, resolution)
        return self.ledger.invoke(pending, signers)

    def add_price(self, source: int, asset: str, price: int, signers: Iterable[str] = ()) -> Optional[Transaction]:
        pending = oracle.compute_add_price(self.ledger, self.oracle_id, source, asset, price)
        return self.ledger.invoke(pending, signers)

    def remove_prices(
        self,
        sources: Iterable[int] = (),
        assets: Iterable[str] = (),
        start_timestamp: Optional[int] = None,
        end_timestamp: Optional[int] = None,
        signers: Iterable[str] = (),
    ) -> Optional[Transaction]:
        pending = oracle.compute_remove_prices(
            self.ledger, self.oracle_id, sources, assets, start_timestamp, end_timestamp
        )
        return self.ledger.invoke(pending, signers)

    # Reads

    def metadata(self) -> OracleMetadata:
        return oracle.load_metadata(self.ledger, self.oracle_id)

    def has_admin(self) -> bool:
        return oracle.has_admin(self.ledger, self.oracle_id)

    def read_admin(self) -> str:
        return oracle.read_admin(self.ledger, self.oracle_id)

    def base(self) -> str:
        return oracle.base(self.ledger, self.oracle_id)

    def decimals(self) -> int:
        return oracle.decimals(self.ledger, self.oracle_id)

    def resolution(self) -> int:
        return oracle.resolution(self.ledger, self.oracle_id)

    def sources(self) -> List[int]:
        return oracle.sources(self.ledger, self.oracle_id)

    def assets(self) -> List[str]:
        return oracle.assets(self.ledger, self.oracle_id)

    def prices(self, asset: str, start_timestamp: int, end_timestamp: int) -> List[PriceObservation]:
        return oracle.prices(self.ledger, self.oracle_id, asset, start_timestamp, end_timestamp)

    def lastprice(self, asset: str) -> Optional[PriceObservation]:
        return oracle.lastprice(self.ledger, self.oracle_id, asset)

    def lastprices(self, asset: str, records: int) -> List[PriceObservation]:
        return oracle.lastprices(self.ledger, self.oracle_id, asset, records)

    def prices_by_source(
        self, source: int, asset: str, start_timestamp: int, end_timestamp: int
    ) -> List[PriceObservation]:
        return oracle.prices_by_source(self.ledger, self.oracle_id, source, asset, start_timestamp, end_timestamp)

    def lastprices_by_source(self, source: int, asset: str, records: int) -> List[PriceObservation]:
        return oracle.lastprices_by_source(self.ledger, self.oracle_id, source, asset, records)

    def lastprice_by_source(self, source: int, asset: str) -> Optional[PriceObservation]:
        return oracle.lastprice_by_source(self.ledger, self.oracle_id, source, asset)

    def __repr__(self):
        return f"OracleClient({self.oracle_id} on {self.ledger.name})"


class EuropeanCallOption:
    """
    European call option contract deployed on a ledger.

    Args:
        ledger: Ledger hosting the contract
        option_id: Contract id, also the wallet holding escrow and deposit
        pricing: Settlement price source; None reads the option's oracle

    Example:
        opt = EuropeanCallOption.deploy(ledger, "option")
        opt.init_option("seller", 10, 86400, 10, "XLM", 100, "USDC", "oracle",
                        signers=["seller"])
        opt.buy_option("buyer", signers=["buyer"])
        ...
        opt.exercise_option(signers=["buyer", "seller"])
    """

    def __init__(self, ledger: Ledger, option_id: str, pricing: Optional[PricingSource] = None):
        self.ledger = ledger
        self.option_id = option_id
        self.pricing = pricing

    @classmethod
    def deploy(
        cls,
        ledger: Ledger,
        option_id: str,
        pricing: Optional[PricingSource] = None,
    ) -> EuropeanCallOption:
        ledger.deploy_contract(option_id, CONTRACT_TYPE_EUROPEAN_CALL)
        return cls(ledger, option_id, pricing)

    # Entry points

    def init_option(
        self,
        seller: str,
        strike_price: int,
        expiration_date: int,
        premium: int,
        escrow_token: str,
        escrow_amount: int,
        underlying_token: str,
        oracle_contract_id: str,
        signers: Iterable[str] = (),
    ) -> Optional[Transaction]:
        pending = option.compute_init_option(
            self.ledger, self.option_id, seller, strike_price, expiration_date,
            premium, escrow_token, escrow_amount, underlying_token, oracle_contract_id,
        )
        return self.ledger.invoke(pending, signers)

    def buy_option(self, buyer: str, signers: Iterable[str] = ()) -> Optional[Transaction]:
        pending = option.compute_buy_option(self.ledger, self.option_id, buyer)
        return self.ledger.invoke(pending, signers)

    def exercise_option(self, signers: Iterable[str] = ()) -> Optional[Transaction]:
        pending = option.compute_exercise_option(self.ledger, self.option_id, self.pricing)
        return self.ledger.invoke(pending, signers)

    def withdraw(self, signers: Iterable[str] = ()) -> Optional[Transaction]:
        pending = option.compute_withdraw(self.ledger, self.option_id)
        return self.ledger.invoke(pending, signers)

    # Reads

    def info(self) -> OptionInfo:
        return option.load_option(self.ledger, self.option_id)

    def buyer(self) -> Optional[str]:
        return option.get_buyer(self.ledger, self.option_id)

    def init_time(self) -> Optional[int]:
        return option.get_init_time(self.ledger, self.option_id)

    def maturity(self) -> int:
        return option.get_maturity(self.ledger, self.option_id)

    def settlement(self) -> Optional[Settlement]:
        return option.get_settlement(self.ledger, self.option_id)

    def status(self) -> OptionStatus:
        return option.get_option_status(self.ledger, self.option_id)

    def __repr__(self):
        return f"EuropeanCallOption({self.option_id} on {self.ledger.name})"
