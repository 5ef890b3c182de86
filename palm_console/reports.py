"""
Printable reports.

build_agent_report() gathers one agent's statement from the same kpis
functions the dashboard uses; render_agent_report_html() lays it out as an
A4 document that prints itself when opened.
"""

import html
import logging
import tempfile
import webbrowser
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path

import pandas as pd

from .config import (
    BALANCE_DEFICIT_LABEL,
    BALANCE_SURPLUS_LABEL,
    COMPANY_NAME,
    COMPANY_TAGLINE,
    CURRENCY_SYMBOL,
    UNKNOWN_NAME,
)
from .formatting import format_currency, format_date, format_text, format_weight
from .kpis import collection_spend_table, compute_totals
from .loaders.utils import coerce_amount, utc_now

logger = logging.getLogger(__name__)


def balance_label(balance: Decimal) -> str:
    return BALANCE_SURPLUS_LABEL if balance >= 0 else BALANCE_DEFICIT_LABEL


def breakdown_line(weight_kg, price_per_kg) -> str:
    """'2.00kg @ GH₵10.00/kg'"""
    return (
        f"{coerce_amount(weight_kg):.2f}kg @ "
        f"{CURRENCY_SYMBOL}{coerce_amount(price_per_kg):.2f}/kg"
    )


@dataclass
class AgentReport:
    agent_id: str
    agent_name: str
    agent_status: str
    generated_at: pd.Timestamp
    period_label: str
    collections: list[dict] = field(default_factory=list)
    advances: list[dict] = field(default_factory=list)
    expenses: list[dict] = field(default_factory=list)
    total_advances: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    total_fruit_spend: Decimal = Decimal("0")
    total_weight: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")

    @property
    def is_surplus(self) -> bool:
        return self.balance >= 0

    @property
    def balance_label(self) -> str:
        return balance_label(self.balance)

    def calculation_lines(self) -> list[str]:
        """The balance statement, one line per step."""
        adv = format_currency(self.total_advances)
        exp = format_currency(self.total_expenses)
        spend = format_currency(self.total_fruit_spend)
        return [
            f"Total Advances: {adv}",
            f"Less Expenses: - {exp}",
            f"Less Amount Spent On Fruit: - {spend}",
            f"Balance = {adv} − ({exp} + {spend})",
            f"{self.balance_label}: {format_currency(abs(self.balance))}",
        ]


def build_agent_report(
    frames: dict[str, pd.DataFrame],
    agent_id: str | None = None,
    generated_at: pd.Timestamp | None = None,
    period_label: str = "All time",
) -> AgentReport:
    """Assemble one agent's statement.

    Parameters
    ----------
    frames : transforms.build_frames() output scoped to the agent
        (see loaders.fetch.load_agent_report_rows).
    agent_id : Which agent to report on. Defaults to the first agent row.

    The totals come from kpis.compute_totals(), so the report balance is the
    dashboard balance for the same rows.
    """
    agents = frames["agents"]
    if agent_id is None and not agents.empty:
        agent_id = agents["id"].iloc[0]

    match = agents[agents["id"] == agent_id]
    agent = match.iloc[0] if not match.empty else None

    def scoped(df: pd.DataFrame) -> pd.DataFrame:
        return df[df["agent_id"] == agent_id]

    collections = scoped(frames["collections"])
    collection_ids = set(collections["id"])
    items = frames["items"][frames["items"]["collection_id"].isin(collection_ids)]
    advances = scoped(frames["advances"])
    expenses = scoped(frames["expenses"])

    totals = compute_totals({
        "advances": advances,
        "expenses": expenses,
        "collections": collections,
        "items": items,
    })

    spend = collection_spend_table(collections, items)
    spend = spend.sort_values("collection_date", ascending=False, kind="stable")
    collection_rows = []
    for row in spend.itertuples(index=False):
        pairs = sorted(row.items, key=lambda p: coerce_amount(p[0]), reverse=True)
        collection_rows.append({
            "collection_id": row.id,
            "date": row.collection_date,
            "breakdown": [breakdown_line(w, p) for w, p in pairs],
            "total_weight_kg": row.total_weight_kg,
            "effective_spend": row.effective_spend,
            "driver_name": row.driver_name,
        })

    advance_rows = [
        {
            "advance_id": row.id,
            "date": row.advance_date,
            "payment_method": row.payment_method,
            "signed_by": row.signed_by,
            "amount": row.amount,
        }
        for row in advances.sort_values("advance_date", ascending=False, kind="stable").itertuples(index=False)
    ]
    expense_rows = [
        {
            "expense_id": row.id,
            "date": row.expense_date,
            "expense_type": row.expense_type,
            "amount": row.amount,
        }
        for row in expenses.sort_values("expense_date", ascending=False, kind="stable").itertuples(index=False)
    ]

    report = AgentReport(
        agent_id=agent_id,
        agent_name=(agent["full_name"] if agent is not None else "") or UNKNOWN_NAME,
        agent_status=agent["status"] if agent is not None else "",
        generated_at=generated_at if generated_at is not None else utc_now(),
        period_label=period_label,
        collections=collection_rows,
        advances=advance_rows,
        expenses=expense_rows,
        total_advances=totals["total_advances"],
        total_expenses=totals["total_expenses"],
        total_fruit_spend=totals["total_fruit_spend"],
        total_weight=totals["total_weight"],
        balance=totals["cash_balance"],
    )
    logger.info(
        "Built report for agent %s: %d collections, %d advances, %d expenses",
        agent_id, len(collection_rows), len(advance_rows), len(expense_rows),
    )
    return report


# ---------------------------------------------------------------------------
# HTML rendering
# ---------------------------------------------------------------------------
_esc = html.escape

_REPORT_CSS = """
@page { size: A4; margin: 14mm 12mm 16mm 12mm; }
body { font-family: Arial, sans-serif; color:#0f172a; }
footer { position: fixed; bottom: -8mm; left: 0; right: 0; font-size: 11px; color: #64748b; }
.muted { color:#64748b; }
.topbar { display:flex; justify-content:space-between; gap:12px; padding-bottom:10px; border-bottom:1px solid #e2e8f0; }
.card { border:1px solid #e2e8f0; border-radius:16px; padding:12px 14px; }
.kpis { display:flex; gap:10px; flex-wrap:wrap; margin-top:12px; }
.kpi { min-width:210px; border:1px solid #e2e8f0; border-radius:16px; padding:12px 14px; }
.kpi .label { font-size:12px; color:#64748b; }
.kpi .value { font-size:18px; font-weight:900; margin-top:4px; }
.calc { margin-top:14px; padding:14px; border:1px dashed #94a3b8; border-radius:14px; background:#f8fafc; line-height:1.7; }
table { width:100%; border-collapse:collapse; border:1px solid #e2e8f0; margin-top:8px; }
thead { background:#f1f5f9; }
th { text-align:left; font-size:12px; padding:10px; color:#334155; border-bottom:1px solid #e2e8f0; }
td { font-size:13px; padding:10px; vertical-align:top; border-bottom:1px solid #e5e7eb; }
.right { text-align:right; }
.section-title { margin: 14px 0 8px 0; font-size: 15px; font-weight: 900; }
.signature-grid { display:grid; grid-template-columns: 1fr 1fr 1fr; gap:12px; margin-top:16px; }
.sig-box { border:1px solid #e2e8f0; border-radius:14px; padding:12px; height:88px; display:flex; flex-direction:column; justify-content:space-between; }
.sig-line { border-top:1px solid #94a3b8; padding-top:8px; font-size:12px; color:#334155; }
"""

_SURPLUS_COLOR = "#0f7a3a"
_DEFICIT_COLOR = "#b42318"


def _table(headers: list[tuple[str, str]], rows: list[str], empty: str) -> str:
    head = "".join(f'<th class="{cls}">{_esc(label)}</th>' for label, cls in headers)
    body = "".join(rows) or f'<tr><td colspan="{len(headers)}" class="muted">{_esc(empty)}</td></tr>'
    return f"<table><thead><tr>{head}</tr></thead><tbody>{body}</tbody></table>"


def _document(title: str, body: str, footer: str, auto_print: bool) -> str:
    script = "<script>window.onload = function () { window.print(); };</script>" if auto_print else ""
    return (
        "<!DOCTYPE html><html><head>"
        f'<meta charset="utf-8" /><title>{_esc(title)}</title>'
        f"<style>{_REPORT_CSS}</style></head><body>"
        f"<footer>{footer}</footer>{body}{script}</body></html>"
    )


def render_agent_report_html(
    report: AgentReport,
    company_name: str = COMPANY_NAME,
    company_tagline: str = COMPANY_TAGLINE,
    auto_print: bool = True,
) -> str:
    """Standalone HTML for one agent's general account report."""
    color = _SURPLUS_COLOR if report.is_surplus else _DEFICIT_COLOR
    generated = format_date(report.generated_at)

    collection_rows = []
    for c in report.collections:
        breakdown = "".join(f"<div>{_esc(line)}</div>" for line in c["breakdown"])
        breakdown = breakdown or '<div class="muted">No breakdown</div>'
        collection_rows.append(
            "<tr>"
            f"<td>{_esc(format_date(c['date']))}</td>"
            f"<td>{breakdown}<div class=\"muted\"><b>Total Weight:</b> {_esc(format_weight(c['total_weight_kg']))}</div></td>"
            f"<td class=\"right\"><b>{_esc(format_currency(c['effective_spend']))}</b></td>"
            f"<td>{_esc(format_text(c['driver_name']))}</td>"
            "</tr>"
        )

    advance_rows = [
        "<tr>"
        f"<td>{_esc(format_date(a['date']))}</td>"
        f"<td>{_esc(format_text(a['payment_method']))}</td>"
        f"<td>{_esc(format_text(a['signed_by']))}</td>"
        f"<td class=\"right\"><b>{_esc(format_currency(a['amount']))}</b></td>"
        "</tr>"
        for a in report.advances
    ]

    expense_rows = [
        "<tr>"
        f"<td>{_esc(format_date(e['date']))}</td>"
        f"<td>{_esc(e['expense_type'])}</td>"
        f"<td class=\"right\"><b>{_esc(format_currency(e['amount']))}</b></td>"
        "</tr>"
        for e in report.expenses
    ]

    calc = report.calculation_lines()
    calc_html = "".join(f"<div>{_esc(line)}</div>" for line in calc[:-1])
    calc_html += f'<div style="margin-top:10px;font-size:16px;font-weight:900;color:{color};">{_esc(calc[-1])}</div>'

    kpis = [
        ("Total Advances", format_currency(report.total_advances)),
        ("Total Expenses", format_currency(report.total_expenses)),
        ("Total Amount Spent On Fruit", format_currency(report.total_fruit_spend)),
        ("Total Weight (All Collections)", format_weight(report.total_weight)),
    ]
    kpi_html = "".join(
        f'<div class="kpi"><div class="label">{_esc(label)}</div><div class="value">{_esc(value)}</div></div>'
        for label, value in kpis
    )

    body = f"""
<div class="topbar">
  <div>
    <div style="font-size:16px;font-weight:900;">{_esc(company_name)}</div>
    <div class="muted">{_esc(company_tagline)}</div>
    <div class="muted" style="margin-top:8px;">Agent: <b>{_esc(report.agent_name)}</b> &bull; Period: {_esc(report.period_label)} &bull; Generated: {_esc(generated)}</div>
  </div>
  <div class="card" style="min-width:260px;text-align:right;">
    <div class="muted" style="font-size:12px;">Account Status</div>
    <div style="font-weight:900;margin-top:6px;color:{color};">{_esc(report.balance_label)}</div>
    <div style="font-size:22px;font-weight:900;margin-top:6px;color:{color};">{_esc(format_currency(abs(report.balance)))}</div>
  </div>
</div>
<div class="kpis">{kpi_html}</div>
<div class="calc"><div class="muted"><b>How this account balance is calculated</b></div>{calc_html}</div>
<div class="section-title">Fruit Collections (with price breakdown)</div>
{_table([("Date", ""), ("Breakdown (Weight @ Price)", ""), ("Amount Spent", "right"), ("Driver", "")], collection_rows, "No collections")}
<div class="section-title">Cash Advances</div>
{_table([("Date", ""), ("Method", ""), ("Signed By", ""), ("Amount", "right")], advance_rows, "No advances")}
<div class="section-title">Expenses</div>
{_table([("Date", ""), ("Type", ""), ("Amount", "right")], expense_rows, "No expenses")}
<div class="signature-grid">
  <div class="sig-box"><div class="muted">Prepared By</div><div class="sig-line">Name &amp; Signature</div></div>
  <div class="sig-box"><div class="muted">Approved By</div><div class="sig-line">Name &amp; Signature</div></div>
  <div class="sig-box"><div class="muted">Agent</div><div class="sig-line">{_esc(report.agent_name)}</div></div>
</div>
"""
    footer = f"{_esc(company_name)} &bull; {_esc(generated)}"
    return _document(f"General Account Report - {report.agent_name}", body, footer, auto_print)


def render_consolidated_html(
    balances: pd.DataFrame,
    period_label: str,
    generated_at: pd.Timestamp | None = None,
    company_name: str = COMPANY_NAME,
    auto_print: bool = True,
) -> str:
    """All-agent statement from kpis.agent_balances()."""
    generated = format_date(generated_at if generated_at is not None else utc_now())

    rows = []
    for b in balances.itertuples(index=False):
        color = _SURPLUS_COLOR if b.cash_balance >= 0 else _DEFICIT_COLOR
        rows.append(
            "<tr>"
            f"<td>{_esc(b.full_name or UNKNOWN_NAME)}</td>"
            f"<td class=\"right\">{_esc(format_currency(b.total_advances))}</td>"
            f"<td class=\"right\">{_esc(format_currency(b.total_expenses))}</td>"
            f"<td class=\"right\">{_esc(format_currency(b.total_fruit_spend))}</td>"
            f"<td class=\"right\">{_esc(format_weight(b.total_weight))}</td>"
            f"<td class=\"right\" style=\"color:{color};font-weight:900;\">{_esc(format_currency(b.cash_balance))}</td>"
            "</tr>"
        )

    totals = {
        col: sum(balances[col], Decimal("0"))
        for col in ("total_advances", "total_expenses", "total_fruit_spend", "total_weight", "cash_balance")
    }
    rows.append(
        "<tr style=\"background:#f1f5f9;font-weight:900;\"><td>TOTAL</td>"
        f"<td class=\"right\">{_esc(format_currency(totals['total_advances']))}</td>"
        f"<td class=\"right\">{_esc(format_currency(totals['total_expenses']))}</td>"
        f"<td class=\"right\">{_esc(format_currency(totals['total_fruit_spend']))}</td>"
        f"<td class=\"right\">{_esc(format_weight(totals['total_weight']))}</td>"
        f"<td class=\"right\">{_esc(format_currency(totals['cash_balance']))}</td></tr>"
    )

    body = f"""
<div class="topbar">
  <div>
    <div style="font-size:16px;font-weight:900;">{_esc(company_name)}</div>
    <div class="muted">Consolidated Agent Statement &bull; Period: {_esc(period_label)} &bull; Generated: {_esc(generated)}</div>
  </div>
</div>
<div class="section-title">Agent Balances</div>
{_table([("Agent", ""), ("Advances", "right"), ("Expenses", "right"), ("Fruit Spend", "right"), ("Weight", "right"), ("Balance", "right")], rows, "No agents")}
"""
    footer = f"{_esc(company_name)} &bull; {_esc(generated)}"
    return _document(f"Consolidated Report - {period_label}", body, footer, auto_print)


def open_print_window(document: str, directory: str | None = None) -> Path:
    """Write the document to a temp file and open it in a new browser tab.

    The document's own onload handler starts printing.
    """
    with tempfile.NamedTemporaryFile(
        "w", suffix=".html", delete=False, encoding="utf-8", dir=directory,
    ) as fh:
        fh.write(document)
        path = Path(fh.name)

    logger.info("Opening report %s for printing", path)
    webbrowser.open_new_tab(path.resolve().as_uri())
    return path
