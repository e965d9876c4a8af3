"""
Data Model for the MS Staking Economic Calculator

This module holds the configuration, order, pool and output record types
shared by the simulation engine, the broker and CLMM modules and the
Streamlit application. Configuration objects validate themselves on
construction; everything else is a plain immutable record.
"""

import math
import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Union

from pydantic import StrictBool


# Release modes
GOLD_STANDARD = "gold_standard"  # value-pegged: USDC value per day is fixed
COIN_STANDARD = "coin_standard"  # fixed-quantity: token quantity per day is fixed
RELEASE_MODES = (GOLD_STANDARD, COIN_STANDARD)

# Order / simulation modes
PACKAGE_MODE = "package"
DAYS_MODE = "days"
SIMULATION_MODES = (PACKAGE_MODE, DAYS_MODE)

PACKAGE_TIERS = (100, 500, 1000, 3000, 5000, 10000)
DAYS_MODE_TIERS = (30, 60, 90, 180)
BROKER_LEVELS = ("V1", "V2", "V3", "V4", "V5", "V6")
BROKER_LAYERS = 20


def _check_range(errors: List[str], name: str, value: float, low: float = None, high: float = None):
    """Append a message to errors when value falls outside [low, high]"""
    if low is not None and value < low:
        errors.append(f"{name} must be >= {low} (got {value})")
    if high is not None and value > high:
        errors.append(f"{name} must be <= {high} (got {value})")


@dataclass(frozen=True)
class PackageConfig:
    """Release and trading parameters for one package tier"""

    tier: int
    release_multiplier: float  # total release value = principal × multiplier
    staking_period_days: int
    trading_fee_rate: float  # % of gross trading profit
    trading_profit_rate: float  # daily % profit on traded volume
    profit_share_percent: float  # user share of net profit
    # Release choice distribution, normalized to 100 at use time
    release_withdraw_percent: float = 60.0
    release_keep_percent: float = 20.0
    release_convert_percent: float = 20.0
    trading_capital_multiplier: Optional[float] = None  # falls back to the global multiplier

    def validation_errors(self) -> List[str]:
        errors = []
        prefix = f"package {self.tier}"
        _check_range(errors, f"{prefix} release_multiplier", self.release_multiplier, 0.1)
        _check_range(errors, f"{prefix} staking_period_days", self.staking_period_days, 1)
        _check_range(errors, f"{prefix} trading_fee_rate", self.trading_fee_rate, 0, 100)
        _check_range(errors, f"{prefix} trading_profit_rate", self.trading_profit_rate, -100, 100)
        _check_range(errors, f"{prefix} profit_share_percent", self.profit_share_percent, 0, 100)
        _check_range(errors, f"{prefix} release_withdraw_percent", self.release_withdraw_percent, 0, 100)
        _check_range(errors, f"{prefix} release_keep_percent", self.release_keep_percent, 0, 100)
        _check_range(errors, f"{prefix} release_convert_percent", self.release_convert_percent, 0, 100)
        if self.trading_capital_multiplier is not None:
            _check_range(errors, f"{prefix} trading_capital_multiplier", self.trading_capital_multiplier, 1)
        return errors


@dataclass(frozen=True)
class DaysConfig:
    """Release and trading parameters for one days-mode duration tier"""

    days: int
    release_multiplier: float  # total tokens = deposit / price × multiplier
    trading_fee_rate: float
    trading_profit_rate: float
    profit_share_percent: float
    withdraw_fee_percent: float = 20.0  # fee on token withdrawal, % of USDC value

    def validation_errors(self) -> List[str]:
        errors = []
        prefix = f"days tier {self.days}"
        _check_range(errors, f"{prefix} days", self.days, 1)
        _check_range(errors, f"{prefix} release_multiplier", self.release_multiplier, 1)
        _check_range(errors, f"{prefix} trading_fee_rate", self.trading_fee_rate, 0, 100)
        _check_range(errors, f"{prefix} trading_profit_rate", self.trading_profit_rate, -100, 100)
        _check_range(errors, f"{prefix} profit_share_percent", self.profit_share_percent, 0, 100)
        _check_range(errors, f"{prefix} withdraw_fee_percent", self.withdraw_fee_percent, 0, 100)
        return errors


@dataclass(frozen=True)
class BrokerLayerRate:
    """Commission rate applied to layers from_layer..to_layer (inclusive)"""
    from_layer: int
    to_layer: int
    rate_percent: float


@dataclass(frozen=True)
class BrokerLevelAccess:
    """Deepest layer a broker level earns commission from"""
    level: str
    max_layer: int


def default_package_configs() -> List[PackageConfig]:
    """Default per-tier package parameters"""
    multipliers = {100: 1.5, 500: 1.8, 1000: 2.0, 3000: 2.5, 5000: 3.0, 10000: 3.5}
    periods = {100: 30, 500: 45, 1000: 60, 3000: 90, 5000: 120, 10000: 180}
    fee_rates = {100: 8, 500: 6, 1000: 5, 3000: 4, 5000: 2, 10000: 1}
    profit_rates = {100: 3, 500: 4, 1000: 5, 3000: 6, 5000: 7, 10000: 8}
    profit_shares = {100: 60, 500: 65, 1000: 70, 3000: 75, 5000: 80, 10000: 85}
    return [
        PackageConfig(
            tier=tier,
            release_multiplier=multipliers[tier],
            staking_period_days=periods[tier],
            trading_fee_rate=fee_rates[tier],
            trading_profit_rate=profit_rates[tier],
            profit_share_percent=profit_shares[tier],
        )
        for tier in PACKAGE_TIERS
    ]


def default_days_configs() -> List[DaysConfig]:
    """Default days-mode duration tiers"""
    return [
        DaysConfig(days=30, release_multiplier=1.4, trading_fee_rate=10, trading_profit_rate=10, profit_share_percent=60),
        DaysConfig(days=60, release_multiplier=1.6, trading_fee_rate=8, trading_profit_rate=10, profit_share_percent=65),
        DaysConfig(days=90, release_multiplier=1.8, trading_fee_rate=6, trading_profit_rate=10, profit_share_percent=75),
        DaysConfig(days=180, release_multiplier=2.0, trading_fee_rate=3, trading_profit_rate=10, profit_share_percent=80),
    ]


def default_broker_layer_rates() -> List[BrokerLayerRate]:
    return [
        BrokerLayerRate(from_layer=1, to_layer=8, rate_percent=4),
        BrokerLayerRate(from_layer=9, to_layer=20, rate_percent=3),
    ]


def default_broker_level_access() -> List[BrokerLevelAccess]:
    depths = (3, 8, 11, 14, 17, 20)
    return [BrokerLevelAccess(level=level, max_layer=depth) for level, depth in zip(BROKER_LEVELS, depths)]


@dataclass
class SimulationConfig:
    """Configuration parameters for the staking economic simulation"""

    # Release
    release_mode: str = COIN_STANDARD
    simulation_mode: str = DAYS_MODE  # mode stamped onto newly created orders
    package_configs: List[PackageConfig] = field(default_factory=default_package_configs)
    days_configs: List[DaysConfig] = field(default_factory=default_days_configs)

    # Trading capital = principal × multiplier
    trading_capital_multiplier: float = 3.0

    # Core switches
    staking_enabled: StrictBool = True
    release_starts_trading_days: int = 0  # days after staking before trading begins

    # Initial LP pool
    initial_lp_usdc: float = 10_000.0
    initial_lp_tokens: float = 100_000.0

    # Deposit allocation; the remainder goes to the trading reserve
    deposit_lp_ratio: float = 30.0
    deposit_buyback_ratio: float = 20.0

    daily_trading_volume_percent: float = 10.0  # share of trading capital traded daily
    exit_burn_ratio: float = 20.0  # share of withdrawn tokens burned

    # Trading fund flow ratios, applied to traded volume
    lp_pool_usdc_ratio: float = 30.0
    lp_pool_token_ratio: float = 30.0
    buyback_ratio: float = 20.0
    reserve_ratio: float = 50.0

    # Days mode: stop releasing once released value reaches principal × multiplier
    multiplier_cap_enabled: StrictBool = True

    # Broker system
    broker_layer_rates: List[BrokerLayerRate] = field(default_factory=default_broker_layer_rates)
    broker_level_access: List[BrokerLevelAccess] = field(default_factory=default_broker_level_access)
    broker_dividend_rates: List[float] = field(default_factory=lambda: [30, 40, 50, 60, 75, 90])

    def __post_init__(self):
        """Validate all parameters, reporting every violation at once"""
        errors = self.validation_errors()
        if errors:
            raise ValueError("Invalid configuration: " + "; ".join(errors))

    def validation_errors(self) -> List[str]:
        errors = []
        if self.release_mode not in RELEASE_MODES:
            errors.append(f"release_mode must be one of {RELEASE_MODES} (got {self.release_mode!r})")
        if self.simulation_mode not in SIMULATION_MODES:
            errors.append(f"simulation_mode must be one of {SIMULATION_MODES} (got {self.simulation_mode!r})")

        _check_range(errors, "trading_capital_multiplier", self.trading_capital_multiplier, 1)
        _check_range(errors, "release_starts_trading_days", self.release_starts_trading_days, 0)
        if self.initial_lp_usdc <= 0:
            errors.append(f"initial_lp_usdc must be > 0 (got {self.initial_lp_usdc})")
        _check_range(errors, "initial_lp_tokens", self.initial_lp_tokens, 1)
        for name in ('deposit_lp_ratio', 'deposit_buyback_ratio', 'daily_trading_volume_percent',
                     'exit_burn_ratio', 'lp_pool_usdc_ratio', 'lp_pool_token_ratio',
                     'buyback_ratio', 'reserve_ratio'):
            _check_range(errors, name, getattr(self, name), 0, 100)

        for pkg in self.package_configs:
            errors.extend(pkg.validation_errors())
        for days_config in self.days_configs:
            errors.extend(days_config.validation_errors())

        for layer_rate in self.broker_layer_rates:
            if layer_rate.from_layer > layer_rate.to_layer:
                errors.append(f"broker layer range {layer_rate.from_layer}-{layer_rate.to_layer} is inverted")
        if len(self.broker_dividend_rates) != len(BROKER_LEVELS):
            errors.append(f"broker_dividend_rates needs {len(BROKER_LEVELS)} entries "
                          f"(got {len(self.broker_dividend_rates)})")
        return errors

    def get_package(self, tier: int) -> Optional[PackageConfig]:
        """Look up a package tier; None when the tier is not configured"""
        for pkg in self.package_configs:
            if pkg.tier == tier:
                return pkg
        return None

    def get_days_config(self, days: int) -> Optional[DaysConfig]:
        """Look up a days-mode duration tier; None when not configured"""
        for days_config in self.days_configs:
            if days_config.days == days:
                return days_config
        return None

    def trading_capital_multiplier_for(self, pkg: Optional[PackageConfig]) -> float:
        if pkg is not None and pkg.trading_capital_multiplier is not None:
            return pkg.trading_capital_multiplier
        return self.trading_capital_multiplier

    def initial_price(self) -> float:
        """Initial token price implied by the configured LP reserves"""
        return self.initial_lp_usdc / max(self.initial_lp_tokens, 1)

    def deposit_reserve_ratio(self) -> float:
        """Share of each deposit left for the trading reserve"""
        return max(0.0, 100 - self.deposit_lp_ratio - self.deposit_buyback_ratio)


@dataclass(frozen=True)
class PackageOrder:
    """Staking order placed on a package tier"""
    id: str
    package_tier: int
    amount: float
    days_staked: int
    start_day: int = 0
    withdraw_percent: Optional[float] = None  # overrides the package release split
    total_to_release: float = 0.0  # fixed-quantity mode only; 0 means "not fixed yet"


@dataclass(frozen=True)
class DaysOrder:
    """Staking order placed on a days-mode duration tier"""
    id: str
    amount: float
    duration_days: int
    start_day: int = 0
    withdraw_percent: Optional[float] = None  # share of each release withdrawn; None keeps everything
    total_to_release: float = 0.0

    @property
    def days_staked(self) -> int:
        return self.duration_days


Order = Union[PackageOrder, DaysOrder]


def new_order(config: SimulationConfig, amount: float, tier: int, start_day: int = 0,
              withdraw_percent: Optional[float] = None) -> Order:
    """
    Create an order in the configuration's simulation mode

    Args:
        config: Current configuration (selects the order variant)
        amount: Principal in USDC
        tier: Package tier in package mode, duration in days in days mode
        start_day: Simulation day the order is placed on
        withdraw_percent: Optional per-order withdrawal override

    Returns:
        A PackageOrder or DaysOrder with a fresh id
    """
    order_id = str(uuid.uuid4())
    if config.simulation_mode == DAYS_MODE:
        return DaysOrder(id=order_id, amount=amount, duration_days=tier,
                         start_day=start_day, withdraw_percent=withdraw_percent)

    pkg = config.get_package(tier)
    days_staked = pkg.staking_period_days if pkg is not None else 30
    return PackageOrder(id=order_id, package_tier=tier, amount=amount, days_staked=days_staked,
                        start_day=start_day, withdraw_percent=withdraw_percent)


@dataclass(frozen=True)
class Pool:
    """Simulated AMM reserves; price and LP supply are derived from reserves"""

    usdc_balance: float
    token_balance: float
    price: float
    lp_tokens: float
    total_buyback: float = 0.0
    total_burn: float = 0.0

    @classmethod
    def from_reserves(cls, usdc_balance: float, token_balance: float,
                      total_buyback: float = 0.0, total_burn: float = 0.0) -> "Pool":
        """Pool at the given reserves; the token side is floored at one token"""
        token_balance = max(token_balance, 1)
        return cls(
            usdc_balance=usdc_balance,
            token_balance=token_balance,
            price=usdc_balance / token_balance,
            lp_tokens=math.sqrt(max(usdc_balance * token_balance, 0)),
            total_buyback=total_buyback,
            total_burn=total_burn,
        )

    @classmethod
    def from_config(cls, config: SimulationConfig) -> "Pool":
        """Initial pool state for a configuration"""
        return cls.from_reserves(config.initial_lp_usdc, config.initial_lp_tokens)

    @property
    def total_value(self) -> float:
        """Pool TVL in USDC"""
        return self.usdc_balance + self.token_balance * self.price


@dataclass(frozen=True)
class DailySimulation:
    """Aggregated result for one simulated day (pool fields are end-of-day)"""

    day: int
    tokens_released: float
    price: float
    user_profit: float
    platform_profit: float
    broker_profit: float
    trading_fee_consumed: float
    trading_volume: float
    lp_pool_size: float
    pool_usdc_balance: float
    pool_token_balance: float
    pool_total_value: float
    buyback_amount_usdc: float
    burn_amount_tokens: float
    # Exit distribution
    to_secondary_market_tokens: float
    to_trading_fee_tokens: float
    to_trading_capital_usdc: float
    selling_revenue_usdc: float
    withdraw_fee_usdc: float
    # Fund flow from trading volume
    lp_contribution_usdc: float
    lp_contribution_token_value: float
    reserve_amount_usdc: float


@dataclass(frozen=True)
class OrderDailyDetail:
    """One order's ledger entry for one simulated day"""

    day: int
    order_id: str
    principal_release: float  # USDC value of the principal component
    interest_release: float  # USDC value above principal
    daily_release: float  # tokens released this day
    price: float  # opening price used for the day
    cum_released: float
    tokens_in_system: float
    trading_capital: float
    forex_income: float
    withdrawn_tokens: float
    withdraw_fee: float
