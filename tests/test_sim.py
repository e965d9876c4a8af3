import itertools

import pytest

from models import (
    COIN_STANDARD,
    GOLD_STANDARD,
    DaysOrder,
    PackageConfig,
    PackageOrder,
    Pool,
    SimulationConfig,
)
from sim import (
    ExitPercentages,
    OrderState,
    advance_order,
    apply_deposit,
    compute_daily_release,
    compute_trading_profit,
    exit_percentages_for,
    order_release_progress,
    price_series,
    release_breakdown,
    replay_deposits,
    run_simulation,
    run_simulation_with_details,
    simulate_day,
    split_exit_distribution,
    step_pool,
    summarize_orders,
    summary_metrics,
)


@pytest.fixture
def config():
    return SimulationConfig()


@pytest.fixture
def pegged_config():
    """Value-pegged config whose 1000 tier releases 0.7% of principal per day"""
    pkg = PackageConfig(tier=1000, release_multiplier=2.1, staking_period_days=300,
                        trading_fee_rate=5, trading_profit_rate=5, profit_share_percent=70)
    return SimulationConfig(release_mode=GOLD_STANDARD, simulation_mode='package', package_configs=[pkg])


@pytest.fixture
def pool():
    return Pool.from_reserves(1_000_000, 10_000_000)


def package_order(order_id='p1', tier=1000, amount=1000.0, days=60, **kwargs):
    return PackageOrder(id=order_id, package_tier=tier, amount=amount, days_staked=days, **kwargs)


def days_order(order_id='d1', amount=1000.0, duration=30, **kwargs):
    return DaysOrder(id=order_id, amount=amount, duration_days=duration, **kwargs)


class TestRelease:

    def test_value_pegged_release_at_price(self, pegged_config):
        order = package_order(days=300)
        assert compute_daily_release(order, pegged_config, 0.1) == pytest.approx(70.0)

    def test_value_pegged_release_is_inverse_to_price(self, pegged_config):
        order = package_order(days=300)
        low = compute_daily_release(order, pegged_config, 0.1)
        high = compute_daily_release(order, pegged_config, 0.2)
        assert high == pytest.approx(low / 2)

    def test_fixed_quantity_uses_preset_total(self, config):
        order = package_order(days=60, total_to_release=6000.0)
        assert compute_daily_release(order, config, 0.1) == pytest.approx(100.0)
        assert compute_daily_release(order, config, 0.5) == pytest.approx(100.0)

    def test_fixed_quantity_prices_total_when_unset(self, config):
        # tier 1000 default multiplier 2.0: 1000 / 0.1 * 2 / 60
        order = package_order(days=60)
        assert compute_daily_release(order, config, 0.1) == pytest.approx(20000 / 60)

    def test_days_order_release(self, config):
        # 30-day tier multiplier 1.4
        assert compute_daily_release(days_order(), config, 0.1) == pytest.approx(14000 / 30)

    def test_unknown_tier_releases_nothing(self, config):
        assert compute_daily_release(package_order(tier=42), config, 0.1) == 0.0
        assert compute_daily_release(days_order(duration=45), config, 0.1) == 0.0

    def test_disabled_staking_releases_nothing(self):
        config = SimulationConfig(staking_enabled=False)
        assert compute_daily_release(package_order(), config, 0.1) == 0.0
        assert compute_daily_release(days_order(), config, 0.1) == 0.0

    def test_non_positive_price_releases_nothing(self, config):
        assert compute_daily_release(package_order(), config, 0.0) == 0.0

    def test_release_breakdown_splits_principal_and_interest(self, pegged_config):
        tokens, principal, interest = release_breakdown(package_order(days=300), pegged_config, 0.1)
        assert tokens == pytest.approx(70.0)
        assert principal == pytest.approx(1000 / 300)
        assert interest == pytest.approx(7.0 - 1000 / 300)

    def test_unsupported_order_type(self, config):
        with pytest.raises(TypeError):
            compute_daily_release(object(), config, 0.1)


class TestExitDistribution:

    def test_default_package_split(self, config):
        dist = split_exit_distribution(1000, 0.1, ExitPercentages(60, 20, 20), config)
        assert dist.withdraw == pytest.approx(600)
        assert dist.keep == pytest.approx(200)
        assert dist.convert == pytest.approx(200)
        assert dist.burn == pytest.approx(120)
        assert dist.secondary_market == pytest.approx(480)
        assert dist.trading_capital_usdc == pytest.approx(200 * 0.1 * 3)

    def test_package_multiplier_overrides_global(self, config):
        dist = split_exit_distribution(1000, 0.1, ExitPercentages(0, 0, 100), config, trading_capital_multiplier=5)
        assert dist.trading_capital_usdc == pytest.approx(500)

    @pytest.mark.parametrize("percentages", [(60, 20, 20), (50, 30, 40), (10, 0, 0), (33, 33, 33), (0, 0, 0)])
    @pytest.mark.parametrize("released", [0.0, 1.0, 1234.5])
    def test_distribution_is_complete(self, config, percentages, released):
        dist = split_exit_distribution(released, 0.25, ExitPercentages(*percentages), config)
        assert dist.withdraw + dist.keep + dist.convert == pytest.approx(released)
        assert dist.burn + dist.secondary_market == pytest.approx(dist.withdraw)

    def test_percentages_are_normalized(self, config):
        dist = split_exit_distribution(100, 1.0, ExitPercentages(120, 40, 40), config)
        assert dist.withdraw == pytest.approx(60)
        assert dist.keep == pytest.approx(20)

    def test_order_override(self, config):
        pkg = config.get_package(1000)
        assert exit_percentages_for(package_order(withdraw_percent=25), pkg) == ExitPercentages(25, 0, 75)
        assert exit_percentages_for(package_order(), pkg) == ExitPercentages(60, 20, 20)


class TestTradingProfit:

    def test_profit_split(self, config):
        trade = compute_trading_profit(10000, 0.05, 5, 60, config)
        assert trade.gross_profit == pytest.approx(500)
        assert trade.fee == pytest.approx(25)
        assert trade.net_profit == pytest.approx(475)
        assert trade.user_profit == pytest.approx(285)
        assert trade.platform_profit == pytest.approx(95)
        assert trade.broker_profit == pytest.approx(95)

    def test_fund_flows_use_capital(self, config):
        trade = compute_trading_profit(10000, 0.05, 5, 60, config)
        assert trade.lp_usdc == pytest.approx(3000)
        assert trade.lp_token == pytest.approx(3000)
        assert trade.buyback == pytest.approx(2000)
        assert trade.reserve == pytest.approx(5000)

    @pytest.mark.parametrize("fee_rate", [0, 50, 100, 150, 1000])
    def test_net_profit_never_negative(self, config, fee_rate):
        trade = compute_trading_profit(10000, 0.05, fee_rate, 60, config)
        assert trade.net_profit >= 0
        assert trade.user_profit >= 0

    def test_loss_floors_at_zero(self, config):
        trade = compute_trading_profit(10000, -0.05, 5, 60, config)
        assert trade.net_profit == 0
        assert trade.broker_profit == 0


class TestPool:

    def test_sell_into_pool(self, pool):
        new_pool = step_pool(pool, 0, 0, 1_000_000, 0)
        assert new_pool.usdc_balance == pytest.approx(900_000)
        assert new_pool.token_balance == pytest.approx(11_000_000)
        assert new_pool.price == pytest.approx(900_000 / 11_000_000)

    def test_draining_sell_is_partially_filled(self):
        pool = Pool.from_reserves(1000, 10_000)
        new_pool = step_pool(pool, 0, 0, 1_000_000, 0)
        assert new_pool.usdc_balance == pytest.approx(1.0)
        assert new_pool.token_balance == pytest.approx(10_000 + 999 / 0.1)
        assert new_pool.price > 0

    def test_ratio_preserving_add_keeps_price(self, pool):
        new_pool = step_pool(pool, 5000, 50_000, 0, 0)
        assert new_pool.price == pytest.approx(pool.price)
        assert new_pool.lp_tokens > pool.lp_tokens

    def test_burn_only_updates_counter(self, pool):
        new_pool = step_pool(pool, 0, 0, 0, 123)
        assert new_pool.total_burn == pytest.approx(123)
        assert new_pool.usdc_balance == pool.usdc_balance
        assert new_pool.token_balance == pool.token_balance

    def test_negative_inputs_are_ignored(self, pool):
        new_pool = step_pool(pool, -10, -10, -10, -10)
        assert new_pool == pool

    def test_token_balance_floor(self):
        pool = Pool(usdc_balance=10, token_balance=0, price=0.1, lp_tokens=0)
        new_pool = step_pool(pool, 0, 0, 0, 0)
        assert new_pool.token_balance == 1
        assert new_pool.price == pytest.approx(10)

    def test_price_stays_positive(self):
        amounts = [0.0, 0.5, 100.0, 1e9]
        for usdc, tokens, sold, burned in itertools.product(amounts, repeat=4):
            pool = Pool.from_reserves(50.0, 1000.0)
            for _ in range(3):
                pool = step_pool(pool, usdc, tokens, sold, burned)
                assert pool.price > 0
                assert pool.token_balance >= 1

    def test_deposit_allocation(self):
        pool = Pool.from_reserves(10_000, 100_000)
        new_pool = apply_deposit(pool, 1000, SimulationConfig())
        # 300 USDC of liquidity at 0.1, then 200 USDC buys 2000 tokens
        assert new_pool.usdc_balance == pytest.approx(10_500)
        assert new_pool.token_balance == pytest.approx(101_000)
        assert new_pool.total_buyback == pytest.approx(200)
        assert new_pool.price == pytest.approx(10_500 / 101_000)

    def test_replayed_deposits_drop_removed_orders(self):
        config = SimulationConfig()
        kept = package_order('p1', amount=1000)
        removed = package_order('p2', amount=5000)
        start = Pool.from_config(config)
        with_both = apply_deposit(apply_deposit(start, 1000, config), 5000, config)

        assert replay_deposits([kept, removed], config) == with_both
        assert replay_deposits([kept], config) == apply_deposit(start, 1000, config)
        assert replay_deposits([], config) == start

    def test_deposit_buyback_leaves_one_token(self):
        pool = Pool.from_reserves(10, 5)
        config = SimulationConfig(deposit_lp_ratio=0, deposit_buyback_ratio=100)
        new_pool = apply_deposit(pool, 1_000_000, config)
        assert new_pool.token_balance == pytest.approx(1)
        assert new_pool.total_buyback == pytest.approx(4 * 2)


class TestSimulation:

    def test_zero_orders_leave_pool_untouched(self, config):
        pool = Pool.from_reserves(10_000, 100_000, total_buyback=50, total_burn=7)
        daily = run_simulation([], config, 30, pool)
        assert len(daily) == 30
        for record in daily:
            assert record.price == pool.price
            assert record.pool_usdc_balance == pool.usdc_balance
            assert record.pool_token_balance == pool.token_balance
            assert record.lp_pool_size == pool.lp_tokens
            assert record.tokens_released == 0
            assert record.user_profit == 0
            assert record.burn_amount_tokens == 0

        result = run_simulation_with_details([], config, 30, pool)
        assert result.final_pool.total_buyback == 50
        assert result.final_pool.total_burn == 7

    def test_first_day_release(self, pegged_config, pool):
        order = package_order(days=300)
        result = run_simulation_with_details([order], pegged_config, 1, pool)
        assert result.daily[0].tokens_released == pytest.approx(70.0)
        assert result.order_details[order.id][0].daily_release == pytest.approx(70.0)

    def test_value_pegged_release_uses_previous_close(self, pegged_config, pool):
        order = package_order(amount=100_000, days=300)
        result = run_simulation_with_details([order], pegged_config, 3, pool)
        first, second, third = result.order_details[order.id]
        daily_usdc = 100_000 * 2.1 / 300
        assert result.daily[0].price < pool.price
        assert first.daily_release == pytest.approx(daily_usdc / pool.price)
        assert second.daily_release == pytest.approx(daily_usdc / result.daily[0].price)
        assert third.daily_release == pytest.approx(daily_usdc / result.daily[1].price)
        assert second.daily_release > first.daily_release
        assert second.price == result.daily[0].price

    def test_floored_pool_is_stable_without_orders(self, config):
        pool = Pool.from_reserves(10, 0)
        daily = run_simulation([], config, 2, pool)
        assert [r.price for r in daily] == [pool.price, pool.price]
        assert all(r.pool_token_balance == 1 for r in daily)

    def test_duplicate_order_ids_are_rejected(self, config, pool):
        with pytest.raises(ValueError, match="p1"):
            run_simulation_with_details([package_order(), package_order(amount=500)], config, 1, pool)

    def test_first_day_trading(self, config, pool):
        # capital 1000 × 3, 10% traded, 5% profit, 5% fee, 70% user share
        result = run_simulation_with_details([package_order()], config, 1, pool)
        record = result.daily[0]
        assert record.trading_volume == pytest.approx(300)
        assert record.trading_fee_consumed == pytest.approx(0.75)
        assert record.user_profit == pytest.approx(14.25 * 0.7)
        assert record.platform_profit == pytest.approx(14.25 * 0.15)
        assert record.broker_profit == pytest.approx(14.25 * 0.15)
        assert record.lp_contribution_usdc == pytest.approx(90)
        assert record.reserve_amount_usdc == pytest.approx(150)
        assert record.buyback_amount_usdc == 0

    def test_selling_revenue_uses_opening_price(self, config, pool):
        result = run_simulation_with_details([package_order()], config, 1, pool)
        record = result.daily[0]
        assert record.selling_revenue_usdc == pytest.approx(record.to_secondary_market_tokens * pool.price)
        assert record.price < pool.price

    def test_sell_pressure_lowers_price(self, config, pool):
        daily = run_simulation([package_order(amount=50_000)], config, 10, pool)
        prices = price_series(daily)
        assert all(later < earlier for earlier, later in zip(prices, prices[1:]))

    def test_fixed_quantity_total_is_frozen(self, config, pool):
        result = run_simulation_with_details([package_order(amount=50_000)], config, 3, pool)
        releases = [d.daily_release for d in result.order_details['p1']]
        assert result.daily[0].price < pool.price
        assert releases[1] == pytest.approx(releases[0])
        assert releases[2] == pytest.approx(releases[0])
        assert result.final_states['p1'].total_to_release == pytest.approx(50_000 / pool.price * 2.0)

    def test_release_stops_after_staking_period(self, config, pool):
        result = run_simulation_with_details([package_order(days=3)], config, 5, pool)
        assert [r.tokens_released > 0 for r in result.daily] == [True, True, True, False, False]
        assert len(result.order_details['p1']) == 5

    def test_start_day_delays_release(self, config, pool):
        result = run_simulation_with_details([package_order(start_day=2)], config, 4, pool)
        releases = [d.daily_release for d in result.order_details['p1']]
        assert releases[0] == 0 and releases[1] == 0
        assert releases[2] > 0

    def test_trading_start_delay(self, pool):
        config = SimulationConfig(release_starts_trading_days=2)
        daily = run_simulation([package_order()], config, 3, pool)
        assert daily[0].user_profit == 0
        assert daily[1].user_profit == 0
        assert daily[2].user_profit > 0

    def test_days_order_keeps_tokens_in_system(self, config, pool):
        result = run_simulation_with_details([days_order()], config, 2, pool)
        first, second = result.order_details['d1']
        assert first.tokens_in_system == pytest.approx(first.daily_release)
        assert second.tokens_in_system == pytest.approx(first.daily_release + second.daily_release)
        assert first.trading_capital == pytest.approx(first.tokens_in_system * first.price)
        assert result.daily[0].to_secondary_market_tokens == 0

    def test_days_order_withdrawal_fee(self, config, pool):
        result = run_simulation_with_details([days_order(withdraw_percent=50)], config, 1, pool)
        detail = result.order_details['d1'][0]
        assert detail.withdrawn_tokens == pytest.approx(detail.daily_release / 2)
        assert detail.withdraw_fee == pytest.approx(detail.withdrawn_tokens * pool.price * 0.2)
        assert result.daily[0].burn_amount_tokens == pytest.approx(detail.withdrawn_tokens * 0.2)

    def test_multiplier_cap_stops_release(self, config):
        order = days_order()
        state = OrderState(cum_released=13_500, tokens_in_system=13_500, total_to_release=14_000)
        capped = advance_order(order, state, config, 0.2, 29)
        assert capped.detail.daily_release == 0

        uncapped = advance_order(order, state, SimulationConfig(multiplier_cap_enabled=False), 0.2, 29)
        assert uncapped.detail.daily_release == pytest.approx(14_000 / 30)

    def test_simulate_day_does_not_mutate_inputs(self, config, pool):
        orders = [package_order(), days_order()]
        states = {o.id: OrderState() for o in orders}
        step = simulate_day(1, orders, states, pool, config)
        assert states == {o.id: OrderState() for o in orders}
        assert step.states['p1'].cum_released > 0
        assert step.record.day == 1

    def test_simulation_is_deterministic(self, config, pool):
        orders = [package_order(), days_order(withdraw_percent=30), package_order('p2', tier=5000, amount=5000, days=120)]
        assert run_simulation(orders, config, 20, pool) == run_simulation(orders, config, 20, pool)

    def test_default_initial_pool(self, config):
        result = run_simulation_with_details([days_order()], config, 1)
        assert result.order_details['d1'][0].price == pytest.approx(config.initial_price())

    def test_unknown_tier_order_is_idle(self, config, pool):
        result = run_simulation_with_details([package_order(tier=42)], config, 2, pool)
        assert all(r.tokens_released == 0 for r in result.daily)
        assert len(result.order_details['p1']) == 2


class TestReports:

    def test_frames(self, config, pool):
        result = run_simulation_with_details([package_order()], config, 5, pool)
        frame = result.to_frame()
        assert len(frame) == 5
        assert list(frame['day']) == [1, 2, 3, 4, 5]
        assert len(result.order_frame('p1')) == 5
        assert result.order_frame('missing').empty

    def test_order_release_progress(self, config):
        progress = order_release_progress([package_order(days=30), days_order(start_day=5)], config, 10, 0.1)
        package_row, days_row = progress
        assert package_row.current_day == 10
        assert package_row.progress_percent == pytest.approx(100 / 3)
        assert package_row.trading_capital == pytest.approx(3000)
        assert not package_row.is_complete
        assert days_row.current_day == 5
        assert days_row.days_remaining == 25

    def test_summarize_orders(self, config, pool):
        orders = [package_order(), days_order(withdraw_percent=40)]
        result = run_simulation_with_details(orders, config, 10, pool)
        frame, totals = summarize_orders(orders, result)
        assert list(frame['order_id']) == ['p1', 'd1']
        assert totals['total_investment'] == pytest.approx(2000)
        assert totals['net_profit'] == pytest.approx(frame['net_profit'].sum())
        assert frame.loc[frame['order_id'] == 'd1', 'withdraw_fee'].iloc[0] > 0

    def test_summary_metrics(self, config, pool):
        result = run_simulation_with_details([package_order(amount=50_000)], config, 10, pool)
        metrics = summary_metrics(result, pool)
        assert metrics['initial_price'] == pytest.approx(0.1)
        assert metrics['final_price'] == pytest.approx(result.daily[-1].price)
        assert metrics['price_change_percent'] < 0
        assert metrics['total_released'] == pytest.approx(sum(r.tokens_released for r in result.daily))

    def test_summary_metrics_requires_days(self, config, pool):
        result = run_simulation_with_details([], config, 0, pool)
        with pytest.raises(ValueError):
            summary_metrics(result, pool)
