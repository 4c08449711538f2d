"""
Streamlit admin console for the storefront backend.

Features:
- Tiered pricing preview for any product (quantity → price, savings, next tier)
- Price-tier table editing
- Catalog copy between accounts with live stats
- Images-per-product limits and upload pre-validation
- Referral balances and withdrawal review
"""
import streamlit as st
import pandas as pd
import sys
from pathlib import Path
from datetime import datetime

# Add src to path for imports
src_path = Path(__file__).parent.parent.parent
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from storefront.config.settings import Settings, configure_logging
from storefront.data.store import FrameStore
from storefront.engine.tiered_pricing import TieredPriceCalculator, first_tier_prices
from storefront.exceptions import StorefrontError
from storefront.media.blob_registry import BlobUrlRegistry
from storefront.media.file_validation import UploadSession, UploadedFile
from storefront.services.catalog_copy import CatalogCopyOperation
from storefront.services.image_limits import ImageLimitService
from storefront.services.referrals import ReferralService
from storefront.services.tiers_service import TiersService


st.set_page_config(
    page_title="Storefront Admin",
    layout="wide",
    initial_sidebar_state="expanded"
)


@st.cache_resource
def get_settings_cached():
    """Get cached settings."""
    settings = Settings.load()
    configure_logging(settings)
    return settings


@st.cache_resource
def get_store():
    """Get cached store instance."""
    return FrameStore(get_settings_cached().data_dir)


try:
    settings = get_settings_cached()
    store = get_store()
except Exception as e:
    st.error(f"System Error: {e}")
    st.stop()


# One upload session (and blob registry) per browser session
def new_upload_session() -> UploadSession:
    return UploadSession(
        BlobUrlRegistry().init(),
        max_file_size_mb=settings.max_upload_size_mb,
        allowed_types=settings.allowed_image_types,
        similarity_threshold=settings.similarity_threshold,
    )


if "upload_session" not in st.session_state:
    st.session_state.upload_session = new_upload_session()


def _money(value) -> str:
    return f"${float(value):,.2f}"


users = store.select('users', order_by='name')
user_labels = {u['id']: f"{u.get('name') or u['id']} ({u.get('email') or '-'})" for u in users}


# ============================================================================
# SIDEBAR: Seller Context
# ============================================================================
with st.sidebar:
    st.header("👤 Seller")

    seller_id = st.selectbox(
        "Account",
        options=list(user_labels),
        format_func=lambda uid: user_labels.get(uid, uid),
        key="seller_select",
        placeholder="No accounts yet",
    )

    if seller_id:
        limit_service = ImageLimitService(store, settings)
        st.caption(f"**Image limit:** {limit_service.get_limit(seller_id)} per product")

    st.divider()
    counts = store.table_counts()
    st.caption(f"Products: {counts.get('products', 0):,} | Tiers: {counts.get('product_price_tiers', 0):,}")


# ============================================================================
# MAIN CONTENT: TABBED INTERFACE
# ============================================================================
st.title("Storefront Admin")
st.caption(f"Data: {settings.data_dir or 'in-memory'} | {datetime.now().strftime('%Y-%m-%d')}")

tab1, tab2, tab3, tab4 = st.tabs(["💲 Tiered Pricing", "📦 Copy Catalog", "🖼️ Images", "💰 Referrals"])


# ============================================================================
# TAB 1: TIERED PRICING PREVIEW
# ============================================================================
with tab1:
    products = store.select('products', eq={'user_id': seller_id}) if seller_id else []

    if not products:
        st.info("No products for this account.")
    else:
        product_labels = {p['id']: p.get('title') or p['id'] for p in products}
        product_id = st.selectbox(
            "Product", options=list(product_labels), format_func=lambda pid: product_labels[pid]
        )
        product = next(p for p in products if p['id'] == product_id)
        tier_rows = store.select('product_price_tiers', eq={'product_id': product_id})
        calculator = TieredPriceCalculator.for_product(product, tier_rows)

        col1, col2 = st.columns([1.2, 1.8], gap="large")

        with col1:
            quantity = st.number_input("Quantity", min_value=1, value=1, step=1)
            result = calculator.calculate(int(quantity))

            m1, m2 = st.columns(2)
            m1.metric("Unit Price", _money(result.unit_price))
            m2.metric("Total", _money(result.total_price))

            if result.display_savings > 0:
                st.markdown(f":green[**You Save: {_money(result.display_savings)}**]")
            if result.units_to_next_tier:
                st.info(
                    f"Buy {result.units_to_next_tier} more to save "
                    f"{_money(result.display_next_tier_savings)}"
                )
            for warning in result.warnings:
                st.warning(warning)

        with col2:
            st.subheader("Price Table")
            if calculator.tiers:
                entry = first_tier_prices(calculator.tiers)
                if entry and entry.has_promotional_pricing:
                    st.caption(f"From {_money(entry.discounted_price)} ({entry.discount_percentage}% off)")
                table = pd.DataFrame(calculator.tier_table())
                st.dataframe(table, use_container_width=True, hide_index=True)
            else:
                st.caption("Tiered pricing is off for this product.")

            with st.expander("➕ Add Tier"):
                c1, c2, c3 = st.columns(3)
                new_min = c1.number_input("From qty", min_value=1, value=1, step=1, key="tier_min")
                new_price = c2.number_input("Unit price", min_value=0.0, value=0.0, step=0.5, key="tier_price")
                new_promo = c3.number_input("Promo price (0 = none)", min_value=0.0, value=0.0, step=0.5,
                                            key="tier_promo")
                if st.button("Save Tier", type="primary"):
                    try:
                        TiersService(store).create_tier(
                            product_id, int(new_min), str(new_price), str(new_promo) if new_promo else None
                        )
                        st.toast("Tier saved")
                        st.rerun()
                    except StorefrontError as e:
                        st.error(f"{e.message}: {e.details}" if e.details else e.message)


# ============================================================================
# TAB 2: COPY CATALOG
# ============================================================================
with tab2:
    st.subheader("📦 Copy Products Between Accounts")

    if len(user_labels) < 2:
        st.info("At least two accounts are needed to copy a catalog.")
    else:
        c1, c2 = st.columns(2)
        source_id = c1.selectbox("From", options=list(user_labels), format_func=user_labels.get, key="copy_src")
        target_id = c2.selectbox("To", options=list(user_labels), format_func=user_labels.get, key="copy_dst")

        source_products = store.select('products', eq={'user_id': source_id})
        selected = st.multiselect(
            "Products",
            options=[p['id'] for p in source_products],
            default=[p['id'] for p in source_products],
            format_func=lambda pid: next((p.get('title') or pid for p in source_products if p['id'] == pid), pid),
        )
        atomic = st.checkbox("All or nothing (roll back on any failure)", value=False)

        if st.button("📋 Copy", type="primary"):
            with st.spinner("Copying..."):
                try:
                    copy_result = CatalogCopyOperation(
                        store, atomic=atomic, sync_categories=settings.sync_categories_after_copy
                    ).run(source_id, target_id, selected)
                except StorefrontError as e:
                    st.error(f"{e.message}: {e.details}" if e.details else e.message)
                else:
                    st.success(copy_result.message)
                    for failure in copy_result.failures:
                        st.warning(str(failure))


# ============================================================================
# TAB 3: IMAGE LIMITS & UPLOAD CHECK
# ============================================================================
with tab3:
    st.subheader("🖼️ Images per Product")

    if not seller_id:
        st.info("Select an account.")
    else:
        limit_service = ImageLimitService(store, settings)
        new_limit = st.number_input(
            "Limit",
            min_value=settings.min_images_per_product,
            max_value=settings.max_images_per_product_ceiling,
            value=limit_service.get_limit(seller_id),
            step=1,
        )
        if st.button("💾 Save Limit"):
            limit_service.set_limit(seller_id, int(new_limit))
            st.toast("Limit updated")
            st.rerun()

        st.divider()
        st.markdown("##### Upload Pre-check")
        uploads = st.file_uploader("Images", accept_multiple_files=True, type=['png', 'jpg', 'jpeg', 'webp'])
        files = [
            UploadedFile(name=u.name, content=u.getvalue(), content_type=u.type or '',
                         blob_url=f"blob:session/{u.file_id}")
            for u in uploads or []
        ]
        # Reruns return the stored outcome for uploads already checked
        check = st.session_state.upload_session.check(files)
        if files:
            st.write(f"Accepted: {len(check.valid_files)} | Duplicates: {len(check.duplicates)}")
            for invalid in check.invalid:
                st.warning(f"{invalid.name}: {invalid.reason}")
            if check.valid_files:
                quota = limit_service.validate(seller_id, len(check.valid_files))
                if not quota.valid:
                    st.error(quota.error)

        if st.button("🗑️ Reset Upload Session"):
            st.session_state.upload_session.registry.dispose()
            st.session_state.upload_session = new_upload_session()
            st.rerun()


# ============================================================================
# TAB 4: REFERRALS & WITHDRAWALS
# ============================================================================
with tab4:
    st.subheader("💰 Referral Payouts")

    if not seller_id:
        st.info("Select an account.")
    else:
        referrals = ReferralService(store, settings)
        stats = referrals.get_stats(seller_id)

        r1, r2, r3, r4 = st.columns(4)
        r1.metric("Referrals", f"{stats.total_referrals} ({stats.active_referrals} active)")
        r2.metric("Commissions", _money(stats.total_commissions))
        r3.metric("Available", _money(stats.available_for_withdrawal))
        r4.metric("Paid", _money(stats.paid_commissions))

        withdrawals = referrals.list_withdrawals(seller_id)
        if not withdrawals:
            st.caption("No withdrawal requests.")
        else:
            st.dataframe(
                pd.DataFrame(withdrawals)[['created_at', 'amount', 'pix_key_type', 'pix_key', 'status']],
                use_container_width=True, hide_index=True,
            )

            for w in [w for w in withdrawals if w['status'] in ('pending', 'approved')]:
                with st.container(border=True):
                    st.write(f"{_money(w['amount'])} → {w['pix_key_type']} {w['pix_key']} ({w['status']})")
                    next_status = 'approved' if w['status'] == 'pending' else 'paid'
                    b1, b2 = st.columns(2)
                    if b1.button(f"Mark {next_status}", key=f"wd_ok_{w['id']}"):
                        referrals.process_withdrawal(w['id'], next_status)
                        st.rerun()
                    if b2.button("Reject", key=f"wd_no_{w['id']}"):
                        referrals.process_withdrawal(w['id'], 'rejected')
                        st.rerun()
