"""
Streamlit Web Application for the MS Staking Economic Calculator

This application provides an interactive interface over the staking
simulation engine: edit the configuration, place staking orders, replay
the day-stepped pool simulation, inspect trading profit splits and broker
commissions, and replay the resulting price path against a concentrated
liquidity position. Charts are drawn with Altair.
"""

import json
import logging

import altair as alt
import numpy as np
import pandas as pd
import streamlit as st

from models import (
    BROKER_LEVELS,
    DAYS_MODE,
    DAYS_MODE_TIERS,
    GOLD_STANDARD,
    PACKAGE_TIERS,
    RELEASE_MODES,
    SIMULATION_MODES,
    DaysOrder,
    Pool,
    new_order,
)
from sim import (
    apply_deposit,
    compute_trading_profit,
    order_release_progress,
    replay_deposits,
    run_simulation_with_details,
    summarize_orders,
    summary_metrics,
)
from broker import (
    broker_dividend_pool,
    broker_layer_income,
    broker_trading_dividend,
    get_max_layer,
    released_per_layer,
)
from clmm import (
    FEE_TIERS,
    CLMMParams,
    ConstantDrift,
    RandomWalk,
    SimulatedPath,
    calculate_capital_efficiency,
    run_clmm_simulation,
)
from storage import ConfigValidationError, config_to_dict, store

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)

# Configure Streamlit page
st.set_page_config(
    page_title="MS Staking Economic Calculator",
    page_icon=None,
    layout="wide",
    initial_sidebar_state="expanded"
)

PAGES = ["Configuration", "Staking Orders", "Release & Pool", "Trading", "Broker", "CLMM", "Summary"]


def init_state() -> None:
    """Seed session state with the stored config, an empty order book and the initial pool"""
    if 'orders' not in st.session_state:
        st.session_state.orders = []
        st.session_state.pool = Pool.from_config(store.get_config())
        st.session_state.simulation_days = 30


def run_current_simulation():
    """Run the simulation for the current session state, None when there are no orders"""
    if not st.session_state.orders:
        return None
    return run_simulation_with_details(
        st.session_state.orders,
        store.get_config(),
        st.session_state.simulation_days,
        st.session_state.pool,
    )


def line_chart(df: pd.DataFrame, x: str, columns: list, title: str, y_title: str, height: int = 320) -> alt.Chart:
    """Multi-series line chart of selected DataFrame columns"""
    melted = df[[x] + columns].melt(id_vars=[x], var_name='Series', value_name=y_title)
    return alt.Chart(melted).mark_line(strokeWidth=2).encode(
        x=alt.X(f'{x}:Q', title=x.replace('_', ' ').title()),
        y=alt.Y(f'{y_title}:Q', title=y_title),
        color=alt.Color('Series:N'),
        tooltip=[
            alt.Tooltip(f'{x}:Q'),
            alt.Tooltip('Series:N'),
            alt.Tooltip(f'{y_title}:Q', format=',.4f')
        ]
    ).properties(title=title, height=height).interactive()


def configuration_page() -> None:
    st.header("Configuration")
    config = store.get_config()
    data = config_to_dict(config)

    with st.expander("Release & Trading", expanded=True):
        col1, col2, col3 = st.columns(3)
        with col1:
            data['release_mode'] = st.selectbox(
                "Release Mode", RELEASE_MODES, index=RELEASE_MODES.index(config.release_mode),
                help="gold_standard pegs the daily USDC value; coin_standard fixes the token quantity."
            )
            data['simulation_mode'] = st.selectbox(
                "Order Mode", SIMULATION_MODES, index=SIMULATION_MODES.index(config.simulation_mode)
            )
            data['staking_enabled'] = st.checkbox("Staking release enabled", value=config.staking_enabled)
            data['multiplier_cap_enabled'] = st.checkbox("Cap days-mode release at multiplier",
                                                         value=config.multiplier_cap_enabled)
        with col2:
            data['trading_capital_multiplier'] = st.number_input(
                "Trading Capital Multiplier", min_value=1.0, value=float(config.trading_capital_multiplier), step=0.5
            )
            data['release_starts_trading_days'] = st.number_input(
                "Trading Start Delay (days)", min_value=0, value=int(config.release_starts_trading_days)
            )
            data['daily_trading_volume_percent'] = st.slider(
                "Daily Trading Volume (%)", 0.0, 100.0, float(config.daily_trading_volume_percent)
            )
        with col3:
            data['exit_burn_ratio'] = st.slider("Exit Burn Ratio (%)", 0.0, 100.0, float(config.exit_burn_ratio))
            data['initial_lp_usdc'] = st.number_input("Initial LP USDC", min_value=1.0,
                                                      value=float(config.initial_lp_usdc), step=1000.0)
            data['initial_lp_tokens'] = st.number_input("Initial LP MS", min_value=1.0,
                                                        value=float(config.initial_lp_tokens), step=1000.0)

    with st.expander("Fund Flows", expanded=False):
        col1, col2 = st.columns(2)
        with col1:
            st.markdown("**Deposit allocation**")
            data['deposit_lp_ratio'] = st.slider("Deposit → LP (%)", 0.0, 100.0, float(config.deposit_lp_ratio))
            data['deposit_buyback_ratio'] = st.slider("Deposit → Buyback (%)", 0.0, 100.0,
                                                      float(config.deposit_buyback_ratio))
            st.caption(f"Trading reserve: {max(0.0, 100 - data['deposit_lp_ratio'] - data['deposit_buyback_ratio']):.0f}%")
        with col2:
            st.markdown("**Trading capital flows**")
            data['lp_pool_usdc_ratio'] = st.slider("LP USDC (%)", 0.0, 100.0, float(config.lp_pool_usdc_ratio))
            data['lp_pool_token_ratio'] = st.slider("LP MS (%)", 0.0, 100.0, float(config.lp_pool_token_ratio))
            data['buyback_ratio'] = st.slider("Buyback (%)", 0.0, 100.0, float(config.buyback_ratio))
            data['reserve_ratio'] = st.slider("Forex Reserve (%)", 0.0, 100.0, float(config.reserve_ratio))

    with st.expander("Package Tiers", expanded=False):
        edited = st.data_editor(pd.DataFrame(data['package_configs']), hide_index=True, key="package_editor")
        data['package_configs'] = edited.to_dict('records')

    with st.expander("Days Tiers", expanded=False):
        edited = st.data_editor(pd.DataFrame(data['days_configs']), hide_index=True, key="days_editor")
        data['days_configs'] = edited.to_dict('records')

    col1, col2, col3 = st.columns(3)
    with col1:
        if st.button("Save Configuration", type="primary", use_container_width=True):
            lp_changed = (data['initial_lp_usdc'] != config.initial_lp_usdc
                          or data['initial_lp_tokens'] != config.initial_lp_tokens)
            try:
                saved = store.save_config(data)
            except ConfigValidationError as e:
                st.error("Configuration rejected")
                st.json(e.to_dict())
            else:
                if lp_changed:
                    # A new initial pool invalidates existing orders
                    st.session_state.orders = []
                    st.session_state.pool = Pool.from_config(saved)
                st.success("Configuration saved")
    with col2:
        if st.button("Reset to Defaults", use_container_width=True):
            st.session_state.pool = Pool.from_config(store.reset())
            st.session_state.orders = []
            st.rerun()
    with col3:
        st.download_button(
            "Export JSON",
            data=json.dumps(config_to_dict(config), indent=2),
            file_name="ms_config.json",
            mime="application/json",
            use_container_width=True
        )

    uploaded = st.file_uploader("Import configuration (JSON)", type="json")
    if uploaded is not None:
        try:
            imported = json.load(uploaded)
            if not isinstance(imported, dict):
                raise ConfigValidationError(["expected a JSON object"])
            store.save_config(imported)
            st.success("Configuration imported")
        except (ConfigValidationError, json.JSONDecodeError) as e:
            st.error(f"Import failed: {e}")

    st.caption(f"Store health: {store.health()['status']}")


def orders_page() -> None:
    st.header("Staking Orders")
    config = store.get_config()
    pool = st.session_state.pool

    with st.form("new_order"):
        col1, col2, col3, col4 = st.columns(4)
        with col1:
            amount = st.number_input("Amount (USDC)", min_value=1.0, value=1000.0, step=100.0)
        with col2:
            if config.simulation_mode == DAYS_MODE:
                tier = st.selectbox("Duration (days)", DAYS_MODE_TIERS)
            else:
                tier = st.selectbox("Package Tier", PACKAGE_TIERS, index=2)
        with col3:
            start_day = st.number_input("Start Day", min_value=0, value=0)
        with col4:
            override = st.checkbox("Override withdrawal %")
            withdraw_percent = st.slider("Withdraw (%)", 0, 100, 60)
        if st.form_submit_button("Add Order", type="primary"):
            order = new_order(config, amount, tier, int(start_day),
                              float(withdraw_percent) if override else None)
            st.session_state.orders = st.session_state.orders + [order]
            st.session_state.pool = apply_deposit(pool, amount, config)
            logger.info("Added %s order %s for %.2f USDC", config.simulation_mode, order.id, amount)
            st.rerun()

    orders = st.session_state.orders
    if not orders:
        st.info("No orders yet. Add an order above to start the simulation.")
    else:
        rows = [{
            'id': o.id[-8:],
            'mode': 'days' if isinstance(o, DaysOrder) else 'package',
            'tier': o.duration_days if isinstance(o, DaysOrder) else o.package_tier,
            'amount': o.amount,
            'days': o.days_staked,
            'start_day': o.start_day,
            'withdraw_%': o.withdraw_percent,
        } for o in orders]
        st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)

        col1, col2 = st.columns(2)
        with col1:
            to_remove = st.selectbox("Remove order", [o.id for o in orders], format_func=lambda i: i[-8:])
            if st.button("Remove"):
                remaining = [o for o in orders if o.id != to_remove]
                # Rebuild the pool without the removed deposit
                st.session_state.orders = remaining
                st.session_state.pool = replay_deposits(remaining, config)
                st.rerun()
        with col2:
            if st.button("Clear all orders"):
                st.session_state.orders = []
                st.session_state.pool = Pool.from_config(config)
                st.rerun()

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("MS Price", f"${pool.price:.6f}")
    col2.metric("Pool USDC", f"{pool.usdc_balance:,.0f}")
    col3.metric("Pool MS", f"{pool.token_balance:,.0f}")
    col4.metric("Total Buyback", f"${pool.total_buyback:,.0f}")
    if st.button("Reset Pool"):
        st.session_state.pool = Pool.from_config(config)
        st.rerun()


def release_page() -> None:
    st.header("Release & Pool Simulation")
    st.session_state.simulation_days = st.slider("Simulation Days", 1, 365, st.session_state.simulation_days)

    result = run_current_simulation()
    if result is None:
        st.info("Add staking orders to run the simulation")
        return

    create_charts(result)

    st.subheader("Order Release Progress")
    progress = order_release_progress(
        st.session_state.orders, store.get_config(), st.session_state.simulation_days, result.final_pool.price
    )
    st.dataframe(pd.DataFrame([p.__dict__ for p in progress]), use_container_width=True, hide_index=True)

    st.subheader("Order Ledger")
    order_id = st.selectbox("Order", list(result.order_details), format_func=lambda i: i[-8:])
    st.dataframe(result.order_frame(order_id), use_container_width=True, hide_index=True)


def create_charts(result) -> None:
    """
    Metrics and charts for one simulation run

    Args:
        result: SimulationResult from run_simulation_with_details
    """
    alt.data_transformers.enable('json')
    df = result.to_frame()
    metrics = summary_metrics(result, st.session_state.pool)

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric("Final MS Price", f"${metrics['final_price']:.6f}",
                  f"{metrics['price_change_percent']:+.2f}%")
    with col2:
        st.metric("Total Released", f"{metrics['total_released']:,.0f} MS")
    with col3:
        st.metric("Total Burned", f"{metrics['total_burned']:,.0f} MS")
    with col4:
        st.metric("User Profit", f"${metrics['total_user_profit']:,.2f}")

    st.subheader("MS Price")
    price_chart = alt.Chart(df).mark_line(strokeWidth=2, color='#1f77b4').encode(
        x=alt.X('day:Q', title='Day'),
        y=alt.Y('price:Q', title='USDC / MS', scale=alt.Scale(zero=False)),
        tooltip=[alt.Tooltip('day:Q'), alt.Tooltip('price:Q', format='.6f')]
    ).properties(height=320).interactive()
    st.altair_chart(price_chart, use_container_width=True)

    col1, col2 = st.columns(2)
    with col1:
        st.altair_chart(line_chart(df, 'day', ['pool_usdc_balance', 'lp_contribution_usdc'],
                                   "Pool USDC", "USDC"), use_container_width=True)
    with col2:
        st.altair_chart(line_chart(df, 'day', ['tokens_released', 'to_secondary_market_tokens',
                                               'burn_amount_tokens', 'to_trading_fee_tokens'],
                                   "Release & Exit Distribution", "MS"), use_container_width=True)

    st.subheader("Daily Profit Split")
    profit = df[['day', 'user_profit', 'platform_profit', 'broker_profit']].melt(
        id_vars=['day'], var_name='Party', value_name='USDC'
    )
    profit_chart = alt.Chart(profit).mark_area(opacity=0.7).encode(
        x=alt.X('day:Q', title='Day'),
        y=alt.Y('USDC:Q', stack='zero'),
        color=alt.Color('Party:N', scale=alt.Scale(range=['#2ca02c', '#9467bd', '#ff7f0e'])),
        tooltip=[alt.Tooltip('day:Q'), alt.Tooltip('Party:N'), alt.Tooltip('USDC:Q', format=',.2f')]
    ).properties(height=300).interactive()
    st.altair_chart(profit_chart, use_container_width=True)

    with st.expander("Daily Records", expanded=False):
        st.dataframe(df, use_container_width=True, hide_index=True)
        st.download_button("Download CSV", df.to_csv(index=False), file_name="ms_simulation.csv", mime="text/csv")


def trading_page() -> None:
    st.header("Trading Profit Calculator")
    config = store.get_config()

    col1, col2 = st.columns(2)
    with col1:
        capital = st.number_input("Trading Capital (USDC)", min_value=0.0, value=10_000.0, step=1000.0)
        profit_rate = st.number_input("Profit Rate (%)", min_value=-100.0, max_value=100.0, value=5.0) / 100
    with col2:
        fee_rate = st.number_input("Fee Rate (% of gross profit)", min_value=0.0, value=5.0)
        user_share = st.slider("User Profit Share (%)", 0, 100, 60)

    trade = compute_trading_profit(capital, profit_rate, fee_rate, user_share, config)

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Gross Profit", f"${trade.gross_profit:,.2f}")
    col2.metric("Fee", f"${trade.fee:,.2f}")
    col3.metric("Net Profit", f"${trade.net_profit:,.2f}")
    col4.metric("User Profit", f"${trade.user_profit:,.2f}")

    split = pd.DataFrame({
        'Party': ['User', 'Platform', 'Broker', 'Fee'],
        'USDC': [trade.user_profit, trade.platform_profit, trade.broker_profit, trade.fee],
    })
    flows = pd.DataFrame({
        'Flow': ['LP USDC', 'LP MS', 'Buyback', 'Reserve'],
        'USDC': [trade.lp_usdc, trade.lp_token, trade.buyback, trade.reserve],
    })
    col1, col2 = st.columns(2)
    with col1:
        st.altair_chart(alt.Chart(split).mark_bar().encode(
            x=alt.X('Party:N', sort=None), y='USDC:Q', tooltip=['Party', alt.Tooltip('USDC:Q', format=',.2f')]
        ).properties(title="Profit Split", height=300), use_container_width=True)
    with col2:
        st.altair_chart(alt.Chart(flows).mark_bar(color='#9467bd').encode(
            x=alt.X('Flow:N', sort=None), y='USDC:Q', tooltip=['Flow', alt.Tooltip('USDC:Q', format=',.2f')]
        ).properties(title="Fund Flows (of capital)", height=300), use_container_width=True)


def broker_page() -> None:
    st.header("Broker System")
    config = store.get_config()
    orders = st.session_state.orders
    price = st.session_state.pool.price

    col1, col2 = st.columns(2)
    with col1:
        level = st.selectbox("Broker Level", BROKER_LEVELS, index=2)
    with col2:
        sub_options = ["none"] + list(BROKER_LEVELS[:BROKER_LEVELS.index(level)])
        sub_level = st.selectbox("Highest Subordinate Level", sub_options)
    sub_level = None if sub_level == "none" else sub_level

    if orders:
        per_layer = released_per_layer(orders, config, price)
        result = run_current_simulation()
        broker_pool = float(result.to_frame()['broker_profit'].sum()) if result else 0.0
    else:
        per_layer = [st.number_input("MS released per layer", min_value=0.0, value=500.0)] * 20
        gross = st.number_input("Gross trading profit", min_value=0.0, value=10_000.0)
        fee = st.number_input("Trading fee", min_value=0.0, value=1_000.0)
        share = st.slider("User profit share (%)", 0, 100, 70)
        broker_pool = broker_dividend_pool(gross, fee, share)['broker_dividend_pool']

    income = broker_layer_income(per_layer, level, config)
    dividend = broker_trading_dividend(broker_pool, level, sub_level, config)

    col1, col2, col3 = st.columns(3)
    col1.metric("Layer Income", f"{income.total_earnings:,.2f} MS", f"≈ ${income.total_earnings * price:,.2f}")
    col2.metric("Compressed", f"{income.compressed_earnings:,.2f} MS")
    col3.metric("Trading Dividend", f"${dividend.earnings:,.2f}", f"{dividend.differential_rate:.0f}% differential")

    layers = pd.DataFrame([{
        'Layer': f"L{row.layer}", 'Rate (%)': row.rate,
        'Earned': row.earnings if row.accessible else 0.0,
        'Compressed': 0.0 if row.accessible else row.earnings,
    } for row in income.layers])
    melted = layers.melt(id_vars=['Layer', 'Rate (%)'], var_name='Type', value_name='MS')
    st.altair_chart(alt.Chart(melted).mark_bar().encode(
        x=alt.X('Layer:N', sort=None), y=alt.Y('MS:Q', stack='zero'),
        color=alt.Color('Type:N', scale=alt.Scale(domain=['Earned', 'Compressed'], range=['#2ca02c', '#c7c7c7'])),
        tooltip=['Layer', 'Rate (%)', 'Type', alt.Tooltip('MS:Q', format=',.2f')]
    ).properties(height=300), use_container_width=True)

    st.subheader("Level Comparison")
    comparison = []
    for i, lvl in enumerate(BROKER_LEVELS):
        lvl_income = broker_layer_income(per_layer, lvl, config)
        lvl_dividend = broker_trading_dividend(broker_pool, lvl, BROKER_LEVELS[i - 1] if i > 0 else None, config)
        comparison.append({
            'Level': lvl,
            'Max Layer': get_max_layer(lvl, config),
            'Layer MS': lvl_income.total_earnings,
            'Layer USDC': lvl_income.total_earnings * price,
            'Dividend Rate (%)': lvl_dividend.broker_rate,
            'Differential (%)': lvl_dividend.differential_rate,
            'Dividend USDC': lvl_dividend.earnings,
        })
    st.dataframe(pd.DataFrame(comparison), use_container_width=True, hide_index=True)


def clmm_page() -> None:
    st.header("Concentrated Liquidity (CLMM)")
    result = run_current_simulation()
    current_price = st.session_state.pool.price

    col1, col2, col3 = st.columns(3)
    with col1:
        deposit_x = st.number_input("Deposit MS", min_value=0.0, value=10_000.0)
        deposit_y = st.number_input("Deposit USDC", min_value=0.0, value=1_000.0)
        initial_price = st.number_input("Initial Price", min_value=1e-6, value=float(current_price), format="%.6f")
    with col2:
        range_pct = st.slider("Range width (±%)", 1, 90, 20)
        fee_tier = st.selectbox("Fee Tier", FEE_TIERS, index=1, format_func=lambda f: f"{f:.2%}")
        days = st.number_input("Days", min_value=1, max_value=365, value=30)
    with col3:
        daily_volume = st.number_input("Daily Volume (USDC)", min_value=0.0, value=10_000.0)
        total_liquidity = st.number_input("Pool Liquidity (L)", min_value=1.0, value=1_000_000.0)
        source = st.radio("Price Path", ["Simulation", "Random Walk", "Constant Drift"],
                          index=0 if result is not None else 1)

    if source == "Simulation" and result is not None:
        trajectory = SimulatedPath(result.prices(), initial_price=initial_price, seed=7)
    elif source == "Constant Drift":
        trajectory = ConstantDrift(initial_price, st.number_input("Daily change (%)", value=-0.5))
    else:
        trajectory = RandomWalk(initial_price, seed=st.number_input("Seed", min_value=0, value=42))

    try:
        params = CLMMParams(
            deposit_x=deposit_x, deposit_y=deposit_y, initial_price=initial_price,
            price_lower=initial_price * (1 - range_pct / 100), price_upper=initial_price * (1 + range_pct / 100),
            fee_tier=fee_tier, daily_volume=daily_volume, total_liquidity=total_liquidity, days=int(days),
        )
    except ValueError as e:
        st.error(str(e))
        return

    df = run_clmm_simulation(params, trajectory)
    st.caption(trajectory.get_description())

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Capital Efficiency", f"{calculate_capital_efficiency(params.price_lower, params.price_upper):.1f}x")
    col2.metric("Fees Earned", f"${df['cumulative_fees'].iloc[-1]:,.2f}")
    col3.metric("Impermanent Loss", f"${df['impermanent_loss'].iloc[-1]:,.2f}",
                f"{df['impermanent_loss_pct'].iloc[-1]:.2f}%")
    col4.metric("Days In Range", f"{int(np.sum(df['in_range']))}/{len(df)}")

    st.altair_chart(line_chart(df, 'day', ['position_value', 'hodl_value', 'v2_position_value'],
                               "Position vs HODL vs V2", "USDC"), use_container_width=True)
    st.altair_chart(line_chart(df, 'day', ['cumulative_fees', 'impermanent_loss', 'net_pnl'],
                               "Fees vs Impermanent Loss", "USDC"), use_container_width=True)


def summary_page() -> None:
    st.header("Revenue Summary")
    result = run_current_simulation()
    if result is None:
        st.info("Add staking orders to see the revenue summary")
        return

    frame, totals = summarize_orders(st.session_state.orders, result)
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Total Investment", f"${totals['total_investment']:,.2f}")
    col2.metric("Total Revenue", f"${totals['total_revenue']:,.2f}")
    col3.metric("Net Profit", f"${totals['net_profit']:,.2f}")
    col4.metric("ROI", f"{totals['roi_percent']:.2f}%")

    frame['order_id'] = frame['order_id'].str[-8:]
    st.dataframe(frame, use_container_width=True, hide_index=True)


def main():
    """Main Streamlit application"""

    st.title("MS Staking Economic Calculator")
    init_state()

    st.sidebar.title("Navigation")
    page = st.sidebar.radio("Page", PAGES)
    config = store.get_config()
    st.sidebar.markdown("---")
    st.sidebar.caption(
        f"Release: {'value-pegged' if config.release_mode == GOLD_STANDARD else 'fixed-quantity'} · "
        f"Orders: {len(st.session_state.orders)} · Price: ${st.session_state.pool.price:.6f}"
    )

    if page == "Configuration":
        configuration_page()
    elif page == "Staking Orders":
        orders_page()
    elif page == "Release & Pool":
        release_page()
    elif page == "Trading":
        trading_page()
    elif page == "Broker":
        broker_page()
    elif page == "CLMM":
        clmm_page()
    else:
        summary_page()


if __name__ == "__main__":
    main()
