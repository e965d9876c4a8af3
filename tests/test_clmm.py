import numpy as np
import pytest

from clmm import (
    CLMMParams,
    ConstantDrift,
    RandomWalk,
    SimulatedPath,
    calculate_capital_efficiency,
    calculate_fee_accrual,
    calculate_impermanent_loss,
    calculate_liquidity,
    calculate_token_amounts,
    calculate_v2_position_value,
    run_clmm_simulation,
)


class TestPositionMaths:

    def test_symmetric_deposit_round_trip(self):
        liquidity = calculate_liquidity(1000, 1000, 1.0, 0.5, 2.0)
        token_x, token_y = calculate_token_amounts(liquidity, 1.0, 0.5, 2.0)
        assert token_x == pytest.approx(1000)
        assert token_y == pytest.approx(1000)

    def test_excess_side_is_not_used(self):
        liquidity = calculate_liquidity(5000, 1000, 1.0, 0.5, 2.0)
        token_x, token_y = calculate_token_amounts(liquidity, 1.0, 0.5, 2.0)
        assert token_y == pytest.approx(1000)
        assert token_x < 5000

    def test_out_of_range_holdings(self):
        liquidity = calculate_liquidity(1000, 1000, 1.0, 0.5, 2.0)
        below_x, below_y = calculate_token_amounts(liquidity, 0.25, 0.5, 2.0)
        above_x, above_y = calculate_token_amounts(liquidity, 4.0, 0.5, 2.0)
        assert below_x > 0 and below_y == 0
        assert above_x == 0 and above_y > 0

    def test_impermanent_loss(self):
        assert calculate_impermanent_loss(1000, 950) == pytest.approx((50, 5))
        assert calculate_impermanent_loss(0, 10) == (-10, 0.0)

    def test_capital_efficiency(self):
        assert calculate_capital_efficiency(0.81, 1.21) == pytest.approx(5.5)
        assert calculate_capital_efficiency(2.0, 1.0) == 1.0

    def test_fee_accrual(self):
        assert calculate_fee_accrual(100, 1000, 10_000, 0.003, True) == pytest.approx(3)
        assert calculate_fee_accrual(100, 1000, 10_000, 0.003, False) == 0

    def test_full_range_value(self):
        assert calculate_v2_position_value(1000, 1.0, 4.0) == pytest.approx(2000)
        assert calculate_v2_position_value(1000, 1.0, 0.0) == 1000


class TestTrajectories:

    def test_constant_drift(self):
        prices = ConstantDrift(1.0, 1.0).get_prices(3)
        assert prices == pytest.approx([1.01, 1.0201, 1.030301])

    def test_constant_drift_floor(self):
        assert ConstantDrift(1.0, -100.0).get_prices(2).min() > 0

    def test_random_walk_is_seeded(self):
        first = RandomWalk(0.1, seed=7).get_prices(50)
        second = RandomWalk(0.1, seed=7).get_prices(50)
        assert np.array_equal(first, second)
        assert (first > 0).all()
        returns = first[1:] / first[:-1] - 1
        assert np.abs(returns).max() <= 0.03 + 1e-12

    def test_simulated_path_extends_short_series(self):
        path = SimulatedPath([0.1, 0.09], seed=1)
        assert path.initial_price == pytest.approx(0.1)
        prices = path.get_prices(5)
        assert len(prices) == 5
        assert prices[:2] == pytest.approx([0.1, 0.09])

    def test_simulated_path_truncates(self):
        assert len(SimulatedPath([1.0, 2.0, 3.0]).get_prices(2)) == 2


class TestReplay:

    @pytest.fixture
    def params(self):
        return CLMMParams(deposit_x=1000, deposit_y=1000, initial_price=1.0, price_lower=0.5,
                          price_upper=2.0, total_liquidity=100_000, days=10)

    def test_flat_price(self, params):
        frame = run_clmm_simulation(params, ConstantDrift(1.0, 0.0))
        liquidity = calculate_liquidity(1000, 1000, 1.0, 0.5, 2.0)
        assert len(frame) == 10
        assert list(frame['day']) == list(range(1, 11))
        assert frame['in_range'].all()
        assert frame['impermanent_loss'].abs().max() == pytest.approx(0, abs=1e-6)
        assert frame['fees_earned'].iloc[0] == pytest.approx(liquidity / 100_000 * 10_000 * 0.003)
        assert frame['cumulative_fees'].iloc[-1] == pytest.approx(frame['fees_earned'].sum())

    def test_loss_when_price_moves(self, params):
        frame = run_clmm_simulation(params, ConstantDrift(1.0, -5.0))
        assert (frame['impermanent_loss'] >= -1e-9).all()
        assert frame['impermanent_loss'].iloc[-1] > 0
        assert (frame['net_pnl'] == frame['cumulative_fees'] - frame['impermanent_loss']).all()

    def test_no_fees_out_of_range(self, params):
        frame = run_clmm_simulation(params, ConstantDrift(1.0, -20.0))
        out = frame[~frame['in_range']]
        assert not out.empty
        assert (out['fees_earned'] == 0).all()
        assert (out['token_y'] == 0).all()

    def test_daily_volume_override(self):
        params = CLMMParams(deposit_x=1000, deposit_y=1000, initial_price=1.0, price_lower=0.5,
                            price_upper=2.0, days=3, daily_volumes=[0, 1000])
        frame = run_clmm_simulation(params, ConstantDrift(1.0, 0.0))
        assert frame['fees_earned'].iloc[0] == 0
        assert frame['fees_earned'].iloc[2] == pytest.approx(frame['fees_earned'].iloc[1] * 10)

    @pytest.mark.parametrize("kwargs", [
        dict(price_lower=2.0, price_upper=1.0),
        dict(price_lower=0.0),
        dict(initial_price=0.0),
        dict(days=0),
    ])
    def test_invalid_params(self, kwargs):
        base = dict(deposit_x=1, deposit_y=1, initial_price=1.0, price_lower=0.5, price_upper=2.0)
        base.update(kwargs)
        with pytest.raises(ValueError):
            CLMMParams(**base)
