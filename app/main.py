"""
Streamlit Frontend for Bookkeeper

The screens a small-business owner uses to get bank data in, keep it
categorized and pull tax reports out.

DESIGN PRINCIPLES:
1. Nothing is imported without a preview first
2. Every bulk action says how many records it touched
3. Errors are shown in plain language, never as tracebacks
4. Uncertain classifications land in a review queue instead of being guessed

Services are async; each page calls them through run_async().
"""

import asyncio
from datetime import date
from decimal import Decimal, InvalidOperation

import pandas as pd
import streamlit as st
import structlog

from bookkeeper.api import ApiError, AuthenticationError
from bookkeeper.audit import configure_logging
from bookkeeper.config import get_settings, validate_all_settings
from bookkeeper.imports import get_supported_banks
from bookkeeper.models import IRSCategory, ReportType
from bookkeeper.models.categories import PaymentMethod
from bookkeeper.models.check import CheckStatus, CheckType
from bookkeeper.models.classification import AmountDirection, PatternType
from bookkeeper.models.entities import PayeeType
from bookkeeper.models.inventory import AdjustmentType
from bookkeeper.models.query import SortField, TransactionFilter, TransactionSort
from bookkeeper.orchestrator import AppComponents, create_app_components
from bookkeeper.services import ReceiptScanError, ServiceValidationError, parse_pasted_data
from bookkeeper.storage import StorageError


logger = structlog.get_logger(__name__)

st.set_page_config(
    page_title="Bookkeeper",
    page_icon="📒",
    layout="wide",
    initial_sidebar_state="expanded",
)

CATEGORY_LABELS = sorted({member.value for member in IRSCategory})

REPORT_NAMES = {
    ReportType.MONTHLY_SUMMARY: "Monthly Summary",
    ReportType.CATEGORY_BREAKDOWN: "Category Breakdown",
    ReportType.PAYEE_YTD: "Payee Year-to-Date",
    ReportType.VENDOR_PAYMENTS: "Vendor Payments",
    ReportType.FORM_1099: "1099 Summary",
    ReportType.TAX_SUMMARY: "Tax Summary (Schedule C)",
}


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    settings = get_settings()
    configure_logging(settings.app.debug_mode)
    components = create_app_components(settings)
    run_async(components.seed())
    return components


def show_error(error: Exception, action: str) -> None:
    """Map an exception to a message the user can act on."""
    if isinstance(error, AuthenticationError):
        st.session_state.user_id = None
        st.warning("Your session has expired. Please sign in again.")
    elif isinstance(error, (ServiceValidationError, ValueError)):
        st.error(f"{action}: {error}")
    elif isinstance(error, StorageError):
        st.error(f"{action}: the data store did not respond. Try again in a moment.")
    elif isinstance(error, ApiError):
        st.error(f"{action}: {error.message}")
    else:
        logger.error("ui_action_failed", action=action, error=str(error))
        st.error(f"{action} failed: {error}")


def money(value) -> str:
    amount = Decimal(str(value or 0))
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def parse_money(text: str):
    try:
        return Decimal(text.replace("$", "").replace(",", "").strip())
    except (InvalidOperation, AttributeError):
        return None


def transactions_frame(txns) -> pd.DataFrame:
    return pd.DataFrame([
        {
            "Date": t.date,
            "Description": t.description,
            "Amount": float(t.amount),
            "Category": t.category or "",
            "Payee": t.payee or t.vendor_name or "",
            "Company": t.company_name or "",
            "Review": "⚠️" if t.needs_review else "",
            "Split": "✂️" if t.is_split else "",
        }
        for t in txns
    ])


def txn_label(t) -> str:
    return f"{t.date} | {t.description[:40]} | {money(t.amount)}"


def company_picker(components: AppComponents, user_id: str, label: str = "Company", key: str = None):
    """Selectbox over the user's companies. Returns the chosen id or None."""
    companies = run_async(components.companies.list(user_id))
    options = [None] + [c.id for c in companies]
    names = {c.id: c.name for c in companies}
    return st.selectbox(
        label,
        options=options,
        format_func=lambda cid: "All / none" if cid is None else names[cid],
        key=key,
    )


# =============================================================================
# SIGN-IN
# =============================================================================

def render_sign_in() -> None:
    st.title("📒 Bookkeeper")
    st.markdown("Sign in to continue.")
    with st.form("sign_in"):
        user_id = st.text_input("User ID or email")
        if st.form_submit_button("Sign in", type="primary") and user_id.strip():
            st.session_state.user_id = user_id.strip().lower()
            st.rerun()


def main():
    """Main application entry point."""
    if not st.session_state.get("user_id"):
        render_sign_in()
        return

    components = get_components()
    user_id = st.session_state.user_id

    st.sidebar.title("📒 Bookkeeper")
    st.sidebar.caption(f"Signed in as {user_id}")
    if st.sidebar.button("Sign out"):
        st.session_state.user_id = None
        st.rerun()
    st.sidebar.markdown("---")

    pages = {
        "🏠 Dashboard": render_dashboard,
        "💳 Transactions": render_transactions_page,
        "📥 Import CSV": render_csv_page,
        "📄 Import PDF": render_pdf_page,
        "🏷️ Classification": render_classification_page,
        "👥 Payees & Vendors": render_payees_page,
        "🏢 Companies": render_companies_page,
        "💵 Income Sources": render_income_sources_page,
        "📦 Inventory": render_inventory_page,
        "🧾 Receipts": render_receipts_page,
        "✉️ Checks": render_checks_page,
        "📊 Reports": render_reports_page,
        "⚙️ Settings": render_settings_page,
    }
    page = st.sidebar.radio("Navigate to:", list(pages), index=0)
    pages[page](components, user_id)


# =============================================================================
# DASHBOARD
# =============================================================================

def render_dashboard(components: AppComponents, user_id: str):
    st.title("🏠 Dashboard")
    year = st.selectbox("Year", options=list(range(date.today().year, date.today().year - 6, -1)))
    try:
        summary = run_async(components.transactions.get_summary(
            user_id, start=date(year, 1, 1), end=date(year, 12, 31)
        ))
        queue = run_async(components.classification.get_manual_review_queue(user_id))
        low_stock = run_async(components.inventory.get_low_stock_items(user_id))
    except Exception as e:
        show_error(e, "Loading the dashboard")
        return

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Income", money(summary["income"]))
    col2.metric("Expenses", money(summary["expenses"]))
    col3.metric("Net", money(summary["net"]))
    col4.metric("Transactions", summary["count"])

    if queue:
        st.warning(f"{len(queue)} transactions need review. Open the Classification page to resolve them.")
    if low_stock:
        st.warning(f"{len(low_stock)} inventory items are at or below their reorder level.")

    if summary["by_category"]:
        st.subheader("Spending by category")
        frame = pd.DataFrame(
            [{"Category": k, "Amount": float(v)} for k, v in summary["by_category"].items()]
        ).sort_values("Amount", ascending=False)
        st.bar_chart(frame, x="Category", y="Amount")


# =============================================================================
# TRANSACTIONS
# =============================================================================

def render_transactions_page(components: AppComponents, user_id: str):
    st.title("💳 Transactions")

    with st.expander("🔎 Filter and sort", expanded=True):
        col1, col2, col3 = st.columns(3)
        with col1:
            date_from = st.date_input("From", value=None)
            date_to = st.date_input("To", value=None)
        with col2:
            category = st.selectbox("Category", options=[None] + CATEGORY_LABELS,
                                    format_func=lambda c: "All" if c is None else c)
            search = st.text_input("Search")
        with col3:
            sort_field = st.selectbox("Sort by", options=list(SortField), format_func=lambda f: f.value.title())
            descending = st.checkbox("Newest / largest first", value=True)
            review_only = st.checkbox("Needs review only")

    try:
        result = run_async(components.transactions.list(
            user_id,
            filters=TransactionFilter(
                date_from=date_from or None,
                date_to=date_to or None,
                category=category,
                search=search or None,
                needs_review=True if review_only else None,
            ),
            sort=TransactionSort(field=sort_field, descending=descending),
        ))
    except Exception as e:
        show_error(e, "Loading transactions")
        return

    txns = result.results
    st.caption(result.query_description or f"{result.total_count} transactions")
    if not txns:
        st.info("No transactions match. Import a CSV or PDF statement to get started.")
        return
    st.dataframe(transactions_frame(txns), use_container_width=True, hide_index=True)

    by_label = {txn_label(t): t for t in txns}

    st.subheader("✏️ Bulk edit")
    selected = st.multiselect("Transactions", options=list(by_label))
    col1, col2 = st.columns(2)
    with col1:
        new_category = st.selectbox("Set category", options=[None] + CATEGORY_LABELS,
                                    format_func=lambda c: "(unchanged)" if c is None else c)
    with col2:
        new_method = st.selectbox("Set payment method", options=[None] + list(PaymentMethod),
                                  format_func=lambda m: "(unchanged)" if m is None else m.value)
    if st.button("Apply to selected", disabled=not selected):
        update = {}
        if new_category:
            update["category"] = new_category
            update["needs_review"] = False
        if new_method:
            update["payment_method"] = new_method
        try:
            outcome = run_async(components.transactions.bulk_update(
                user_id, [by_label[label].id for label in selected], update
            ))
            st.toast(f"Updated {outcome.updated} of {outcome.requested} transactions")
            for error in outcome.errors:
                st.error(error)
        except Exception as e:
            show_error(e, "Bulk update")

    st.subheader("✂️ Split a transaction")
    target_label = st.selectbox("Transaction to split", options=[None] + list(by_label),
                                format_func=lambda label: "Choose..." if label is None else label)
    if target_label:
        target = by_label[target_label]
        if target.is_split:
            st.info("This transaction is already split.")
            if st.button("Undo split"):
                try:
                    run_async(components.splits.unsplit_transaction(user_id, target.id))
                    st.toast("Split removed")
                    st.rerun()
                except Exception as e:
                    show_error(e, "Unsplit")
        else:
            st.caption(f"Enter parts as 'amount, category' one per line. Total must not exceed {money(target.amount)}.")
            text = st.text_area("Parts", placeholder="-25.00, Office Expenses\n-15.00, Meals")
            if st.button("Split"):
                parts = []
                for line in text.splitlines():
                    amount_text, _, part_category = line.partition(",")
                    amount = parse_money(amount_text)
                    if amount is None:
                        st.error(f"Not an amount: {amount_text}")
                        return
                    parts.append({"amount": amount, "category": part_category.strip() or None})
                try:
                    split = run_async(components.splits.split_transaction(user_id, target.id, parts))
                    st.toast(f"Split into {split.split_count} parts, remainder {money(split.remainder_amount)}")
                    st.rerun()
                except Exception as e:
                    show_error(e, "Split")


# =============================================================================
# IMPORTS
# =============================================================================

def render_csv_page(components: AppComponents, user_id: str):
    st.title("📥 Import CSV")
    banks = {b["key"]: b["name"] for b in get_supported_banks()}
    bank_format = st.selectbox("Bank format", options=["auto"] + list(banks),
                               format_func=lambda b: "Detect automatically" if b == "auto" else banks[b])
    company_id = company_picker(components, user_id, "Assign to company", key="csv_company")
    uploaded = st.file_uploader("Bank CSV export", type=["csv"])

    if uploaded:
        data = uploaded.getvalue()
        try:
            preview = components.import_flow.preview_csv(uploaded.name, data, bank_format)
        except Exception as e:
            show_error(e, "Reading the file")
            return

        mapping = None
        if preview.requires_mapping:
            st.warning("This bank format isn't recognized. Tell us which columns to use.")
            headers = [None] + preview.headers
            col1, col2, col3 = st.columns(3)
            mapping = {
                "date": col1.selectbox("Date column", headers),
                "description": col2.selectbox("Description column", headers),
                "amount": col3.selectbox("Amount column", headers),
            }
            if preview.sample_rows:
                st.dataframe(pd.DataFrame(preview.sample_rows), hide_index=True)
            if not all(mapping.values()):
                return
            preview = components.import_flow.preview_csv(uploaded.name, data, "custom", mapping)

        st.success(f"{preview.detected_bank_name}: {preview.parsed_count} of {preview.total_rows} rows read")
        for error in preview.errors[:10]:
            st.caption(f"Row {error.row}: {error.message}")
        if preview.transactions:
            st.dataframe(pd.DataFrame([
                {"Date": t.date, "Description": t.description, "Amount": float(t.amount), "Type": t.type.value}
                for t in preview.transactions[:50]
            ]), hide_index=True, use_container_width=True)

        col1, col2 = st.columns(2)
        skip_duplicates = col1.checkbox("Skip duplicates", value=True)
        use_ai = col2.checkbox("Use AI for unmatched rows", value=components.ai_enabled,
                               disabled=not components.ai_enabled)
        if st.button("Import", type="primary"):
            with st.spinner("Importing..."):
                try:
                    result = run_async(components.import_flow.import_csv(
                        user_id, uploaded.name, data,
                        bank_format="custom" if mapping else bank_format,
                        custom_mapping=mapping,
                        company_id=company_id,
                        skip_duplicates=skip_duplicates,
                        use_ai=use_ai,
                    ))
                except Exception as e:
                    show_error(e, "Import")
                    return
            st.success(f"Saved {result.saved_count} transactions, skipped {result.duplicate_count} duplicates")
            for warning in result.warnings:
                st.warning(warning)
            for error in result.errors:
                st.error(f"Row {error.row}: {error.message}" if error.row else error.message)

    st.markdown("---")
    st.subheader("Previous imports")
    try:
        imports = run_async(components.csv_imports.list_imports(user_id))
    except Exception as e:
        show_error(e, "Loading imports")
        return
    for record in imports:
        col1, col2 = st.columns([4, 1])
        col1.markdown(
            f"**{record.file_name}** · {record.bank_name or 'Unknown bank'} · "
            f"{record.transaction_count} transactions · {record.created_at:%Y-%m-%d}"
        )
        if col2.button("Delete", key=f"del_import_{record.id}"):
            try:
                outcome = run_async(components.csv_imports.delete_import(
                    user_id, record.id, delete_transactions=True
                ))
                st.toast(f"Deleted import and {outcome.get('transactions_deleted', 0)} transactions")
                st.rerun()
            except Exception as e:
                show_error(e, "Delete import")


def render_pdf_page(components: AppComponents, user_id: str):
    st.title("📄 Import PDF Statement")
    st.markdown("Upload a Chase business checking statement.")
    company_id = company_picker(components, user_id, "Assign to company", key="pdf_company")
    uploaded = st.file_uploader("Statement PDF", type=["pdf"])

    if uploaded and st.button("Process statement", type="primary"):
        with st.spinner("Reading statement..."):
            try:
                result = run_async(components.statement_flow.upload_and_process(
                    user_id, uploaded.name, uploaded.getvalue(),
                    company_id=company_id,
                    use_ai=components.ai_enabled,
                ))
            except Exception as e:
                show_error(e, "Processing the statement")
                return
        info = result.statement.account_info
        st.success(f"Saved {result.saved_count} transactions")
        if info:
            st.caption(
                f"Account {info.account_number or '?'} · "
                f"{info.statement_period_start} to {info.statement_period_end}"
            )
        for warning in result.warnings:
            st.warning(warning)

    st.markdown("---")
    st.subheader("Uploaded statements")
    try:
        uploads = run_async(components.statements.list_uploads(user_id))
    except Exception as e:
        show_error(e, "Loading statements")
        return
    for upload in uploads:
        st.markdown(
            f"**{upload.file_name}** · {upload.status.value} · "
            f"{upload.transaction_count} transactions"
            + (f" · ❌ {upload.error_message}" if upload.error_message else "")
        )


# =============================================================================
# CLASSIFICATION
# =============================================================================

def render_classification_page(components: AppComponents, user_id: str):
    st.title("🏷️ Classification")
    service = components.classification
    queue_tab, rules_tab, global_tab = st.tabs(["Review queue", "My rules", "Global rules"])

    with queue_tab:
        try:
            queue = run_async(service.get_manual_review_queue(user_id))
        except Exception as e:
            show_error(e, "Loading the review queue")
            queue = []
        if not queue:
            st.success("Nothing to review.")
        if queue and st.button("Re-run classifier on queue"):
            try:
                stats = run_async(service.apply_classification(
                    user_id, [t.id for t in queue], use_ai=components.ai_enabled
                ))
                st.toast(f"Classified {stats.total - stats.unclassified} of {stats.total}")
                if stats.ai_error:
                    st.warning(f"AI classification unavailable: {stats.ai_error}")
                st.rerun()
            except Exception as e:
                show_error(e, "Classification")
        for txn in queue[:25]:
            col1, col2, col3 = st.columns([4, 2, 1])
            col1.markdown(f"{txn.date} · {txn.description} · **{money(txn.amount)}**")
            choice = col2.selectbox("Category", options=CATEGORY_LABELS, key=f"cat_{txn.id}",
                                    label_visibility="collapsed")
            if col3.button("Save", key=f"save_{txn.id}"):
                try:
                    run_async(service.resolve_review(user_id, txn.id, choice, create_rule=True))
                    st.toast("Saved, and remembered for next time")
                    st.rerun()
                except Exception as e:
                    show_error(e, "Saving category")

    with rules_tab:
        with st.form("new_rule"):
            col1, col2 = st.columns(2)
            pattern = col1.text_input("Description contains")
            category = col2.selectbox("Category", options=CATEGORY_LABELS)
            pattern_type = col1.selectbox("Match", options=list(PatternType), format_func=lambda p: p.value)
            direction = col2.selectbox("Amounts", options=list(AmountDirection), format_func=lambda d: d.value)
            if st.form_submit_button("Save rule"):
                try:
                    run_async(service.save_rule(
                        user_id, pattern, category, pattern_type=pattern_type, amount_direction=direction
                    ))
                    st.toast(f"Rule saved for '{pattern.upper()}'")
                except Exception as e:
                    show_error(e, "Saving rule")
        if st.button("Learn rules from my categorized transactions"):
            try:
                txns = run_async(components.transactions.load_all(user_id))
                learned = run_async(service.learn_from_transactions(user_id, txns))
                st.toast(f"Learned {len(learned)} rules")
            except Exception as e:
                show_error(e, "Learning rules")
        for rule in run_async(service.list_rules(user_id)):
            col1, col2 = st.columns([5, 1])
            col1.markdown(
                f"`{rule.pattern}` → **{rule.category}** · {rule.source.value} · {rule.match_count} matches"
            )
            if col2.button("Delete", key=f"del_rule_{rule.id}"):
                try:
                    run_async(service.delete_rule(user_id, rule.id))
                    st.rerun()
                except Exception as e:
                    show_error(e, "Deleting rule")

    with global_tab:
        status = run_async(service.get_global_rules_with_status(user_id))
        enabled = st.toggle("Use shared vendor rules", value=status["use_global_rules"])
        if enabled != status["use_global_rules"]:
            run_async(service.toggle_global_rules(user_id, enabled))
            st.rerun()
        st.dataframe(pd.DataFrame([
            {"Pattern": r["pattern"], "Category": r["category"], "Enabled": r["is_enabled"]}
            for r in status["rules"]
        ]), hide_index=True, use_container_width=True)


# =============================================================================
# PAYEES, COMPANIES, INCOME SOURCES
# =============================================================================

def render_payees_page(components: AppComponents, user_id: str):
    st.title("👥 Payees & Vendors")
    with st.form("new_payee"):
        col1, col2, col3 = st.columns(3)
        name = col1.text_input("Name")
        payee_type = col2.selectbox("Type", options=list(PayeeType), format_func=lambda t: t.value.title())
        tax_id = col3.text_input("Tax ID (EIN/SSN)")
        if st.form_submit_button("Add payee"):
            try:
                run_async(components.payees.create(user_id, name, type=payee_type, tax_id=tax_id or None))
                st.toast(f"Added {name}")
            except Exception as e:
                show_error(e, "Adding payee")

    payees = run_async(components.payees.list(user_id))
    if not payees:
        st.info("No payees yet.")
        return
    st.dataframe(pd.DataFrame([
        {"Name": p.name, "Type": p.type.value, "Tax ID": p.tax_id or "", "YTD Paid": float(p.ytd_paid)}
        for p in payees
    ]), hide_index=True, use_container_width=True)

    st.subheader("Assign payee to transactions")
    unassigned = run_async(components.transactions.get_transactions_without_payees(user_id, payment_method=None))
    by_label = {txn_label(t): t for t in unassigned}
    selected = st.multiselect("Transactions without a payee", options=list(by_label))
    names = {p.id: p.name for p in payees}
    payee_id = st.selectbox("Payee", options=list(names), format_func=lambda pid: names[pid])
    if st.button("Assign", disabled=not selected):
        try:
            outcome = run_async(components.transactions.bulk_assign_payee(
                user_id, [by_label[label].id for label in selected], payee_id
            ))
            run_async(components.payees.update_payee_stats(user_id, payee_id))
            st.toast(f"Assigned {outcome.updated} transactions")
            st.rerun()
        except Exception as e:
            show_error(e, "Assigning payee")


def render_companies_page(components: AppComponents, user_id: str):
    st.title("🏢 Companies")
    with st.form("new_company"):
        col1, col2 = st.columns(2)
        name = col1.text_input("Company name")
        tax_id = col2.text_input("EIN")
        if st.form_submit_button("Add company"):
            try:
                run_async(components.companies.create(user_id, name, tax_id=tax_id or None))
                st.toast(f"Added {name}")
            except Exception as e:
                show_error(e, "Adding company")

    for company in run_async(components.companies.list(user_id)):
        col1, col2, col3 = st.columns([4, 1, 1])
        col1.markdown(f"**{company.name}**" + (" ⭐ default" if company.is_default else ""))
        if not company.is_default and col2.button("Make default", key=f"def_{company.id}"):
            run_async(components.companies.set_default(user_id, company.id))
            st.rerun()
        if col3.button("Delete", key=f"del_co_{company.id}"):
            try:
                run_async(components.companies.delete(user_id, company.id))
                st.rerun()
            except Exception as e:
                show_error(e, "Deleting company")


def render_income_sources_page(components: AppComponents, user_id: str):
    st.title("💵 Income Sources")
    with st.form("new_source"):
        col1, col2 = st.columns(2)
        name = col1.text_input("Name")
        description = col2.text_input("Description")
        if st.form_submit_button("Add source"):
            try:
                run_async(components.income_sources.create(user_id, name, description=description or None))
                st.toast(f"Added {name}")
            except Exception as e:
                show_error(e, "Adding income source")

    summary = run_async(components.income_sources.get_income_summary(user_id))
    if summary:
        st.dataframe(pd.DataFrame([
            {"Source": name, "Total": float(row["total"]), "Payments": row["count"]}
            for name, row in summary.items()
        ]), hide_index=True, use_container_width=True)
    else:
        st.info("No income recorded against a source this year.")


# =============================================================================
# INVENTORY
# =============================================================================

def render_inventory_page(components: AppComponents, user_id: str):
    st.title("📦 Inventory")
    inventory = components.inventory
    items_tab, adjust_tab, value_tab = st.tabs(["Items", "Adjust stock", "Valuation"])

    with items_tab:
        with st.form("new_item"):
            col1, col2, col3, col4 = st.columns(4)
            name = col1.text_input("Name")
            sku = col2.text_input("SKU")
            unit_cost = col3.number_input("Unit cost", min_value=0.0, step=0.01)
            reorder = col4.number_input("Reorder level", min_value=0.0, step=1.0)
            if st.form_submit_button("Add item"):
                try:
                    run_async(inventory.create_item(
                        user_id, name, sku=sku or None,
                        unit_cost=Decimal(str(unit_cost)), reorder_level=Decimal(str(reorder)),
                    ))
                    st.toast(f"Added {name}")
                except Exception as e:
                    show_error(e, "Adding item")
        low_only = st.checkbox("Low stock only")
        items = run_async(inventory.list_items(user_id, low_stock_only=low_only))
        st.dataframe(pd.DataFrame([
            {"Name": i.name, "SKU": i.sku or "", "Qty": float(i.quantity),
             "Reorder at": float(i.reorder_level), "Low": "⚠️" if i.is_low_stock else ""}
            for i in items
        ]), hide_index=True, use_container_width=True)

    with adjust_tab:
        items = run_async(inventory.list_items(user_id))
        if not items:
            st.info("Add an item first.")
        else:
            names = {i.id: i.name for i in items}
            with st.form("adjust"):
                item_id = st.selectbox("Item", options=list(names), format_func=lambda iid: names[iid])
                kind = st.selectbox("Reason", options=list(AdjustmentType), format_func=lambda a: a.value.title())
                quantity = st.number_input("Quantity (negative removes stock)", step=1.0)
                notes = st.text_input("Notes")
                if st.form_submit_button("Record"):
                    try:
                        item, _ = run_async(inventory.adjust_stock(
                            user_id, item_id, Decimal(str(quantity)), kind, notes=notes or None
                        ))
                        st.toast(f"{item.name}: {item.quantity} on hand")
                    except Exception as e:
                        show_error(e, "Adjusting stock")

    with value_tab:
        valuation = run_async(inventory.get_valuation(user_id))
        totals = valuation["totals"]
        col1, col2, col3 = st.columns(3)
        col1.metric("Units", f"{totals['total_units']:,}")
        col2.metric("Cost value", money(totals["total_cost"]))
        col3.metric("Retail value", money(totals["total_retail"]))


# =============================================================================
# RECEIPTS
# =============================================================================

def render_receipts_page(components: AppComponents, user_id: str):
    st.title("🧾 Receipts")
    receipts = components.receipts
    list_tab, paste_tab, scan_tab = st.tabs(["All receipts", "Bulk paste", "Scan"])

    with list_tab:
        stats = run_async(receipts.get_stats(user_id))
        col1, col2, col3 = st.columns(3)
        col1.metric("Receipts", stats.total_count)
        col2.metric("Total", money(stats.total_amount))
        col3.metric("Unlinked", stats.unlinked_count)
        rows = run_async(receipts.list(user_id))
        by_label = {f"{r.date} | {r.vendor or '?'} | {money(r.amount)}": r for r in rows}
        selected = st.multiselect("Select receipts", options=list(by_label))
        new_category = st.selectbox("Set category", options=CATEGORY_LABELS, key="receipt_category")
        col1, col2 = st.columns(2)
        if col1.button("Update selected", disabled=not selected):
            try:
                outcome = run_async(receipts.batch_update(
                    user_id, [by_label[label].id for label in selected], {"category": new_category}
                ))
                st.toast(f"Updated {outcome.updated} receipts")
                st.rerun()
            except Exception as e:
                show_error(e, "Updating receipts")
        if col2.button("Delete selected", disabled=not selected):
            outcome = run_async(receipts.batch_delete(user_id, [by_label[label].id for label in selected]))
            st.toast(f"Deleted {outcome.updated} receipts")
            st.rerun()

    with paste_tab:
        st.caption("Paste rows copied from a spreadsheet: amount, date and optional vendor per line.")
        text = st.text_area("Pasted rows", height=200)
        col1, col2 = st.columns(2)
        default_vendor = col1.text_input("Default vendor")
        default_category = col2.selectbox("Default category", options=[""] + CATEGORY_LABELS)
        if text:
            parsed = parse_pasted_data(text, default_category, default_vendor)
            st.caption(f"{parsed.stats.parsed} of {parsed.stats.total} lines read")
            for error in parsed.errors:
                st.caption(f"Line {error.line}: {error.error} ({error.text})")
            if parsed.entries:
                st.dataframe(pd.DataFrame([e.model_dump() for e in parsed.entries]), hide_index=True)
                create_txns = st.checkbox("Also create expense transactions", value=True)
                if st.button("Save receipts", type="primary"):
                    try:
                        outcome = run_async(receipts.bulk_create(
                            user_id, parsed.entries, create_transactions=create_txns
                        ))
                        st.toast(f"Saved {len(outcome['receipts'])} receipts")
                        for error in outcome["errors"]:
                            st.error(f"Entry {error['index'] + 1}: {error['error']}")
                    except Exception as e:
                        show_error(e, "Saving receipts")

    with scan_tab:
        uploaded = st.file_uploader("Receipt photo or PDF", type=["jpg", "jpeg", "png", "pdf"])
        if uploaded and st.button("Scan"):
            with st.spinner("Reading receipt..."):
                try:
                    scanned = run_async(components.receipt_scanner.scan(uploaded.getvalue(), uploaded.name))
                    receipt = run_async(receipts.create(
                        user_id, scanned.amount, scanned.date or date.today(),
                        vendor=scanned.vendor, category=scanned.category_hint,
                    ))
                    st.success(f"Saved {receipt.vendor or 'receipt'} for {money(receipt.amount)}")
                except ReceiptScanError as e:
                    st.error(f"Could not read this receipt: {e}")
                except Exception as e:
                    show_error(e, "Scanning")


def render_checks_page(components: AppComponents, user_id: str):
    st.title("✉️ Checks")
    checks = components.checks
    list_tab, new_tab, payee_tab = st.tabs(["All checks", "New check", "Assign payees"])

    with list_tab:
        stats = run_async(checks.get_stats(user_id))
        col1, col2, col3 = st.columns(3)
        col1.metric("Checks", stats.total_count)
        col2.metric("Written", money(stats.total_expense))
        col3.metric("Deposited", money(stats.total_income))
        rows = run_async(checks.list(user_id))
        by_label = {
            f"#{c.check_number or '?'} | {c.date or '?'} | {c.payee or '?'} | {money(c.amount or 0)} | {c.status.value}": c
            for c in rows
        }
        selected = st.multiselect("Select checks", options=list(by_label))
        new_status = st.selectbox("Set status", options=[s.value for s in CheckStatus])
        col1, col2 = st.columns(2)
        if col1.button("Update selected", disabled=not selected, key="check_update"):
            outcome = run_async(checks.batch_update(
                user_id, [by_label[label].id for label in selected], {"status": new_status}
            ))
            st.toast(f"Updated {outcome.updated} checks")
            st.rerun()
        if col2.button("Delete selected", disabled=not selected, key="check_delete"):
            outcome = run_async(checks.batch_delete(user_id, [by_label[label].id for label in selected]))
            st.toast(f"Deleted {outcome.updated} checks")
            st.rerun()

    with new_tab:
        with st.form("new_check"):
            col1, col2 = st.columns(2)
            check_number = col1.text_input("Check number")
            check_type = col2.selectbox("Type", options=[t.value for t in CheckType], index=1)
            payee = col1.text_input("Payee")
            amount = col2.number_input("Amount", min_value=0.0, step=0.01)
            check_date = col1.date_input("Date", value=date.today())
            bank_name = col2.text_input("Bank")
            memo = st.text_input("Memo")
            create_txn = st.checkbox("Also create a transaction", value=True)
            if st.form_submit_button("Save check", type="primary"):
                try:
                    check = run_async(checks.create(
                        user_id, amount=f"{amount:.2f}", check_date=check_date, payee=payee,
                        check_type=check_type, create_transaction=create_txn,
                        check_number=check_number or None, bank_name=bank_name or None, memo=memo or None,
                    ))
                    st.success(f"Saved check #{check.check_number or 'N/A'}")
                except Exception as e:
                    show_error(e, "Saving check")

    with payee_tab:
        missing = run_async(checks.get_transactions_without_payees(user_id))
        st.caption(f"{len(missing)} check payments have no payee")
        payees = run_async(components.payees.list(user_id))
        if missing and payees:
            by_txn = {f"{t.date} | {t.description} | {money(t.amount)}": t for t in missing}
            chosen = st.multiselect("Transactions", options=list(by_txn))
            by_payee = {p.name: p for p in payees}
            payee_name = st.selectbox("Payee", options=list(by_payee))
            if st.button("Assign payee", disabled=not chosen):
                outcome = run_async(components.transactions.bulk_assign_payee(
                    user_id, [by_txn[label].id for label in chosen], by_payee[payee_name].id
                ))
                st.toast(f"Assigned {outcome.updated} transactions")
                st.rerun()

        unassigned = run_async(checks.list_without_payee(user_id))
        if unassigned and payees:
            st.subheader("Checks without a payee")
            by_check = {f"#{c.check_number or '?'} | {c.date or '?'} | {money(c.amount or 0)}": c for c in unassigned}
            chosen_checks = st.multiselect("Checks", options=list(by_check))
            check_payee = st.selectbox("Payee for checks", options=[p.name for p in payees])
            if st.button("Assign to checks", disabled=not chosen_checks):
                payee_ids = {p.name: p.id for p in payees}
                outcome = run_async(checks.assign_payee(
                    user_id, [by_check[label].id for label in chosen_checks], payee_ids[check_payee]
                ))
                st.toast(f"Assigned {outcome.updated} checks and their transactions")
                st.rerun()


# =============================================================================
# REPORTS
# =============================================================================

def render_reports_page(components: AppComponents, user_id: str):
    st.title("📊 Reports")
    year = date.today().year
    col1, col2, col3 = st.columns(3)
    report_type = col1.selectbox("Report", options=list(REPORT_NAMES), format_func=REPORT_NAMES.get)
    start = col2.date_input("From", value=date(year, 1, 1))
    end = col3.date_input("To", value=date(year, 12, 31))
    company_id = company_picker(components, user_id, key="report_company")

    try:
        report = run_async(components.reports.build(user_id, report_type, start, end, company_id))
    except Exception as e:
        show_error(e, "Building the report")
        return

    st.subheader(report.title)
    st.caption(report.period_label)
    figures = report.key_figures()
    if figures:
        for column, (label, value) in zip(st.columns(len(figures)), figures):
            column.metric(label, value)
    for table in report.tables():
        st.markdown(f"**{table.title}**")
        st.dataframe(pd.DataFrame(table.rows, columns=table.columns), hide_index=True, use_container_width=True)

    col1, col2 = st.columns(2)
    for column, fmt in ((col1, "pdf"), (col2, "csv")):
        try:
            rendered = run_async(components.reports.generate(
                user_id, report_type, start, end, company_id, fmt=fmt
            ))
        except Exception as e:
            show_error(e, f"Rendering {fmt.upper()}")
            continue
        column.download_button(
            f"⬇️ Download {fmt.upper()}",
            data=rendered.content,
            file_name=rendered.file_name,
            mime=rendered.media_type,
        )


# =============================================================================
# SETTINGS
# =============================================================================

def render_settings_page(components: AppComponents, user_id: str):
    st.title("⚙️ Settings")
    st.markdown("### Connection Status")
    status = validate_all_settings()
    services = [
        ("Supabase (Storage)", "supabase"),
        ("Google Sheets (Storage)", "google_sheets"),
        ("Mindee (Receipt OCR)", "mindee"),
        ("Gemini (AI classification)", "gemini"),
    ]
    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            st.error(f"❌ {name} - {status.get(f'{key}_error', 'Not configured')}")

    st.markdown("---")
    st.markdown(f"**Storage backend:** {get_settings().app.storage_backend}")
    st.markdown(
        "To configure the application, create a `.env` file with your API keys. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
