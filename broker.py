"""
Broker Commission Module

Table-driven broker income: layer commissions on released tokens, limited
by the depth each broker level can reach, and differential dividends on
the broker share of trading profit.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from models import BROKER_LAYERS, BROKER_LEVELS, Order, SimulationConfig, DailySimulation
from sim import PLATFORM_SHARE_OF_REMAINDER, compute_daily_release


@dataclass(frozen=True)
class LayerEarning:
    layer: int
    rate: float
    earnings: float
    accessible: bool


@dataclass(frozen=True)
class LayerIncome:
    layers: List[LayerEarning]
    total_earnings: float  # tokens earned from accessible layers
    compressed_earnings: float  # tokens from layers beyond the level's depth


@dataclass(frozen=True)
class TradingDividend:
    broker_rate: float
    sub_rate: float
    differential_rate: float
    earnings: float


def get_max_layer(level: str, config: SimulationConfig) -> int:
    """Deepest layer a broker level earns from, 0 for unknown levels"""
    for access in config.broker_level_access:
        if access.level == level:
            return access.max_layer
    return 0


def get_layer_rate(layer: int, config: SimulationConfig) -> float:
    """Commission percent for a layer, 0 when no range covers it"""
    for layer_rate in config.broker_layer_rates:
        if layer_rate.from_layer <= layer <= layer_rate.to_layer:
            return layer_rate.rate_percent
    return 0.0


def get_dividend_rate(level: Optional[str], config: SimulationConfig) -> float:
    if level is None or level not in BROKER_LEVELS:
        return 0.0
    index = BROKER_LEVELS.index(level)
    if index >= len(config.broker_dividend_rates):
        return 0.0
    return config.broker_dividend_rates[index]


def broker_layer_income(released_per_layer: Sequence[float], level: str, config: SimulationConfig) -> LayerIncome:
    """
    Token commission a broker level collects from its downline layers

    Args:
        released_per_layer: Tokens released per day in each layer (layer 1 first)
        level: Broker level, V1..V6
        config: Simulation configuration with the broker tables

    Returns:
        LayerIncome with per-layer rows and totals
    """
    max_layer = get_max_layer(level, config)
    layers = []
    total = 0.0
    compressed = 0.0
    for layer in range(1, BROKER_LAYERS + 1):
        released = released_per_layer[layer - 1] if layer <= len(released_per_layer) else 0.0
        rate = get_layer_rate(layer, config)
        earnings = released * (rate / 100)
        accessible = layer <= max_layer
        if accessible:
            total += earnings
        else:
            compressed += earnings
        layers.append(LayerEarning(layer=layer, rate=rate, earnings=earnings, accessible=accessible))
    return LayerIncome(layers=layers, total_earnings=total, compressed_earnings=compressed)


def broker_dividend_pool(gross_profit: float, trading_fee: float, profit_share_percent: float) -> Dict[str, float]:
    """Split trading profit into user share, platform share and broker dividend pool"""
    net_profit = max(0.0, gross_profit - trading_fee)
    user_share = net_profit * (profit_share_percent / 100)
    remaining = net_profit - user_share
    platform_share = remaining * PLATFORM_SHARE_OF_REMAINDER
    return {
        'net_profit': net_profit,
        'user_share': user_share,
        'platform_share': platform_share,
        'broker_dividend_pool': remaining - platform_share,
    }


def broker_trading_dividend(broker_pool: float, level: str, sub_level: Optional[str],
                            config: SimulationConfig) -> TradingDividend:
    """
    Differential dividend: a broker earns its own rate minus the rate
    already paid to its highest subordinate level
    """
    broker_rate = get_dividend_rate(level, config)
    sub_rate = get_dividend_rate(sub_level, config)
    differential = max(0.0, broker_rate - sub_rate)
    return TradingDividend(
        broker_rate=broker_rate,
        sub_rate=sub_rate,
        differential_rate=differential,
        earnings=broker_pool * (differential / 100),
    )


def daily_broker_dividends(daily: Sequence[DailySimulation], level: str, sub_level: Optional[str],
                           config: SimulationConfig) -> List[float]:
    """Differential dividend income for each simulated day"""
    return [broker_trading_dividend(r.broker_profit, level, sub_level, config).earnings for r in daily]


def released_per_layer(orders: Sequence[Order], config: SimulationConfig, price: float) -> List[float]:
    """Daily release per layer with orders assigned to layers round-robin"""
    layers = [0.0] * BROKER_LAYERS
    for i, order in enumerate(orders):
        layers[i % BROKER_LAYERS] += compute_daily_release(order, config, price)
    return layers
