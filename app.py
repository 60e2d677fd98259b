"""
Coinfolio - Streamlit Application
Crypto market dashboard and portfolio tracker.
"""

import streamlit as st
import logging
from datetime import date, datetime, time, timezone

from config import get_settings
from db_engine import init_db
from services import (
    MarketDataService,
    PortfolioService,
    PriceCache,
    PriceProvider,
    TransactionHandlers,
)
from services.errors import PortfolioError
from services.handlers import serialize_transaction_view

settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

# Coins offered by the add-transaction picker
COIN_PICKER_SIZE = 100

# Configure Streamlit page
st.set_page_config(
    page_title="Coinfolio - Crypto Portfolio Tracker",
    page_icon="🪙",
    layout="wide"
)

# Initialize database
init_db()


# ==================== SESSION STATE ====================
if "market_data" not in st.session_state:
    st.session_state.market_data = MarketDataService(settings)

if "price_provider" not in st.session_state:
    st.session_state.price_provider = PriceProvider(
        st.session_state.market_data,
        PriceCache(ttl_seconds=settings.price_cache_ttl_seconds)
    )

if "handlers" not in st.session_state:
    st.session_state.handlers = TransactionHandlers()

if "force_refresh" not in st.session_state:
    st.session_state.force_refresh = False


# ==================== HELPER FUNCTIONS ====================
def owner_id():
    """Owner handed to us by the identity provider (single-user deployment)."""
    return settings.owner_id


def current_prices(asset_ids):
    """Prices for asset_ids, honoring a pending manual refresh."""
    force = st.session_state.force_refresh
    st.session_state.force_refresh = False
    return st.session_state.price_provider.get_prices(asset_ids, force_refresh=force)


def format_usd(value) -> str:
    if value is None:
        return "N/A"
    return f"${value:,.2f}"


def show_result(body: dict, status: int, success_message: str) -> bool:
    """Render a handler response; True on success."""
    if body.get("success"):
        st.success(success_message)
        return True
    st.error(f"❌ {body.get('message', 'Request failed')} ({status})")
    return False


def as_datetime(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def format_pct(value) -> str:
    return f"{value:+.2f}%" if value is not None else "N/A"


# ==================== MARKET DASHBOARD ====================
def render_market_overview():
    """Render global market stats and the top coins table."""
    st.subheader("🌐 Market Overview")
    market_data = st.session_state.market_data

    stats = market_data.get_global_stats()
    if stats is None:
        st.warning("⚠️ Global market data is unavailable right now.")
    else:
        col1, col2, col3, col4 = st.columns(4)
        with col1:
            st.metric("Total Market Cap", format_usd(stats.total_market_cap_usd))
        with col2:
            st.metric("24h Volume", format_usd(stats.total_volume_usd))
        with col3:
            dominance = stats.btc_dominance
            st.metric("BTC Dominance", f"{dominance:.1f}%" if dominance is not None else "N/A")
        with col4:
            st.metric("Market Cap 24h", format_pct(stats.market_cap_change_percentage_24h_usd))

    st.markdown("### Top Coins")
    coins = market_data.get_top_coins(settings.top_coins_limit)
    if not coins:
        st.info("No market data available.")
        return

    st.dataframe(
        [
            {
                "#": c.market_cap_rank,
                "Coin": c.name,
                "Symbol": c.symbol,
                "Price": c.current_price,
                "24h %": c.price_change_percentage_24h,
                "Market Cap": c.market_cap,
                "Volume": c.total_volume,
            }
            for c in coins
        ],
        use_container_width=True,
        hide_index=True
    )

    render_coin_detail(coins)


def render_trending():
    """Render the coins trending in CoinGecko searches."""
    st.markdown("### 🔥 Trending")
    trending = st.session_state.market_data.get_trending()
    if not trending:
        st.info("Trending data is unavailable right now.")
        return

    cols = st.columns(len(trending))
    for col, coin in zip(cols, trending):
        with col:
            if coin.image:
                st.image(coin.image, width=32)
            st.markdown(f"**{coin.symbol}**")
            st.caption(f"{coin.name} · #{coin.market_cap_rank or '-'}")
            if coin.price_usd is not None:
                st.caption(f"${coin.price_usd:,.6g}")


def render_coin_detail(coins):
    """Render the profile and market stats of one coin picked from the top list."""
    st.markdown("### 🔎 Coin Details")
    names = {f"{c.name} ({c.symbol})": c.id for c in coins}
    choice = st.selectbox("Coin", list(names), key="detail_coin")
    if not choice:
        return

    coin = st.session_state.market_data.get_coin(names[choice])
    if coin is None:
        st.warning(f"⚠️ Details for {choice} are unavailable right now.")
        return

    header, stats = st.columns([1, 3])
    with header:
        if coin.image:
            st.image(coin.image, width=64)
        st.markdown(f"**{coin.name}** ({coin.symbol})")
        if coin.market_cap_rank:
            st.caption(f"Rank #{coin.market_cap_rank}")
        if coin.homepage:
            st.markdown(f"[Website]({coin.homepage})")

    with stats:
        col1, col2, col3, col4 = st.columns(4)
        col1.metric("Price", format_usd(coin.current_price), delta=format_pct(coin.price_change_percentage_24h))
        col2.metric("7d", format_pct(coin.price_change_percentage_7d))
        col3.metric("30d", format_pct(coin.price_change_percentage_30d))
        col4.metric("1y", format_pct(coin.price_change_percentage_1y))

        col1, col2, col3, col4 = st.columns(4)
        col1.metric("Market Cap", format_usd(coin.market_cap))
        col2.metric("24h Volume", format_usd(coin.total_volume))
        col3.metric("24h Low", format_usd(coin.low_24h))
        col4.metric("24h High", format_usd(coin.high_24h))

        supply = f"{coin.circulating_supply:,.0f}" if coin.circulating_supply is not None else "N/A"
        max_supply = f"{coin.max_supply:,.0f}" if coin.max_supply is not None else "∞"
        col1, col2, col3 = st.columns(3)
        col1.metric("Circulating / Max Supply", f"{supply} / {max_supply}")
        col2.metric("All-Time High", format_usd(coin.ath),
                    help=coin.ath_date.date().isoformat() if coin.ath_date else None)
        col3.metric("All-Time Low", format_usd(coin.atl),
                    help=coin.atl_date.date().isoformat() if coin.atl_date else None)

    if coin.description:
        with st.expander("About"):
            st.markdown(coin.description, unsafe_allow_html=True)


# ==================== PORTFOLIO ====================
def render_portfolio_summary():
    """Render portfolio totals, holdings and allocation."""
    st.subheader("📊 Portfolio Summary")

    if st.button("🔄 Refresh Prices"):
        st.session_state.force_refresh = True

    try:
        asset_ids = PortfolioService.active_asset_ids(owner_id())
        prices = current_prices(asset_ids)
        overview = PortfolioService.compute_overview(owner_id(), prices.get)
    except PortfolioError as e:
        st.error(f"❌ {e.message}")
        return

    if not overview.holdings:
        st.info("No transactions yet. Use 'Add Transaction' to record your first buy!")
        return

    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric("Total Value", format_usd(overview.total_value))
    with col2:
        st.metric("Total Invested", format_usd(overview.total_invested))
    with col3:
        st.metric(
            "Total P/L",
            format_usd(overview.total_pnl),
            delta=f"{overview.total_pnl_pct:+.2f}%"
        )

    if overview.missing_prices:
        st.warning(
            f"⚠️ No current price for {', '.join(overview.missing_prices)}; valued at cost."
        )

    active = [h for h in overview.holdings if h.quantity > 0]
    st.markdown("### Holdings")
    st.dataframe(PortfolioService.holdings_frame(active), use_container_width=True, hide_index=True)

    slices = PortfolioService.allocation(owner_id(), prices.get)
    if slices:
        st.markdown("### Allocation")
        st.bar_chart({s.asset_symbol: s.percent for s in slices})


def render_coin_picker():
    """Searchable selectbox over the top coins; None means enter the coin manually."""
    coins = st.session_state.market_data.get_top_coins(COIN_PICKER_SIZE)
    if not coins:
        st.caption("Coin list unavailable; enter the CoinGecko id manually.")
        return None

    term = st.text_input("Search coins", placeholder="Name or symbol", key="picker_search").strip().lower()
    matches = [c for c in coins if term in c.name.lower() or term in c.symbol.lower()] if term else coins
    return st.selectbox(
        "Coin",
        [None] + matches,
        format_func=lambda c: "✏️ Enter manually" if c is None else f"{c.name} ({c.symbol})",
        key="picker_coin"
    )


def render_add_transaction_form():
    """Render form to record a buy or sell."""
    st.subheader("➕ Add Transaction")

    picked = render_coin_picker()
    # Widget keys follow the pick so its values replace the previous defaults
    suffix = picked.id if picked else "manual"

    with st.form("add_transaction_form"):
        col1, col2 = st.columns(2)

        with col1:
            asset_id = st.text_input(
                "Coin ID*", value=picked.id if picked else "",
                placeholder="e.g., bitcoin, ethereum, solana", key=f"add_id_{suffix}"
            )
            asset_symbol = st.text_input(
                "Symbol", value=picked.symbol if picked else "",
                placeholder="e.g., BTC", key=f"add_symbol_{suffix}"
            )
            asset_name = st.text_input(
                "Name", value=picked.name if picked else "",
                placeholder="e.g., Bitcoin", key=f"add_name_{suffix}"
            )

        with col2:
            kind = st.selectbox("Type*", ["buy", "sell"])
            quantity = st.number_input("Amount*", min_value=0.0, step=0.0001, format="%.8f")
            unit_price = st.number_input(
                "Price per Coin ($)*", min_value=0.0, step=0.01,
                value=float(picked.current_price or 0.0) if picked else 0.0,
                key=f"add_price_{suffix}"
            )
            effective_date = st.date_input("Date", value=date.today())

        submitted = st.form_submit_button("Save Transaction", use_container_width=True)

        if submitted:
            body, status = st.session_state.handlers.create(owner_id(), {
                "assetId": asset_id,
                "assetName": asset_name or None,
                "assetSymbol": asset_symbol or None,
                "kind": kind,
                "quantity": quantity,
                "unitPrice": unit_price,
                "date": as_datetime(effective_date),
            })
            if show_result(body, status, f"✅ Recorded {kind} of {quantity:g} {asset_symbol or asset_id}"):
                st.rerun()


def render_transactions():
    """Render the transaction list with edit and delete controls."""
    st.subheader("📜 Transactions")

    try:
        views = PortfolioService.list_transactions(owner_id())
    except PortfolioError as e:
        st.error(f"❌ {e.message}")
        return

    if not views:
        st.info("No transactions recorded.")
        return

    st.dataframe(PortfolioService.transactions_frame(views), use_container_width=True, hide_index=True)

    for tx in map(serialize_transaction_view, views):
        label = (
            f"{tx['date'][:10]} | {tx['kind'].upper()} {tx['quantity']:g} "
            f"{tx['assetSymbol']} @ {format_usd(tx['unitPrice'])}"
        )
        with st.expander(label):
            with st.form(f"edit_tx_{tx['id']}"):
                col1, col2 = st.columns(2)
                with col1:
                    kind = st.selectbox(
                        "Type", ["buy", "sell"],
                        index=0 if tx["kind"] == "buy" else 1,
                        key=f"kind_{tx['id']}"
                    )
                    quantity = st.number_input(
                        "Amount", min_value=0.0, value=float(tx["quantity"]),
                        format="%.8f", key=f"qty_{tx['id']}"
                    )
                with col2:
                    unit_price = st.number_input(
                        "Price per Coin ($)", min_value=0.0, value=float(tx["unitPrice"]),
                        key=f"price_{tx['id']}"
                    )
                    effective_date = st.date_input(
                        "Date", value=datetime.fromisoformat(tx["date"]).date(),
                        key=f"date_{tx['id']}"
                    )

                if st.form_submit_button("Save Changes"):
                    result, status = st.session_state.handlers.edit(owner_id(), {
                        "transactionId": tx["id"],
                        "kind": kind,
                        "quantity": quantity,
                        "unitPrice": unit_price,
                        "date": as_datetime(effective_date),
                    })
                    if show_result(result, status, "✅ Transaction updated"):
                        st.rerun()

            if st.button("🗑️ Delete", key=f"delete_{tx['id']}"):
                result, status = st.session_state.handlers.delete(owner_id(), {"transactionId": tx["id"]})
                if show_result(result, status, "✅ Transaction deleted"):
                    st.rerun()


# ==================== MAIN APP ====================
def main():
    """Main application entry point."""
    st.title("🪙 Coinfolio")
    st.markdown("*Crypto Portfolio Tracker*")

    if settings.is_coingecko_key_configured:
        st.sidebar.success("✅ CoinGecko API key configured")
    else:
        st.sidebar.info("ℹ️ Using the public CoinGecko API (rate limited)")
    st.sidebar.caption(f"Prices cached for {settings.price_cache_ttl_seconds:.0f}s")

    tab1, tab2, tab3, tab4 = st.tabs([
        "🌐 Market", "📊 Portfolio", "➕ Add Transaction", "📜 Transactions"
    ])

    with tab1:
        render_market_overview()
        render_trending()

    with tab2:
        render_portfolio_summary()

    with tab3:
        render_add_transaction_form()

    with tab4:
        render_transactions()

    st.markdown("---")
    st.markdown(
        "<div style='text-align: center; color: gray;'>"
        "⚠️ Market data by CoinGecko. Coinfolio is for informational purposes only.</div>",
        unsafe_allow_html=True
    )


if __name__ == "__main__":
    main()
