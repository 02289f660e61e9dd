from __future__ import annotations

from html import escape
from typing import Any
from urllib.parse import quote

_STYLE = """
    :root {
      --bg: #eef2f3;
      --panel: #ffffff;
      --ink: #1c2a38;
      --muted: #5d6d79;
      --line: #d5dde2;
      --accent: #146c94;
      --ok: #1f7a42;
      --err: #a4202c;
      --warn: #8a6a00;
    }
    * { box-sizing: border-box; }
    body {
      margin: 0;
      font-family: "Space Grotesk", sans-serif;
      color: var(--ink);
      background: var(--bg);
    }
    .wrap {
      max-width: 1150px;
      margin: 22px auto 40px;
      padding: 0 16px;
      display: grid;
      gap: 16px;
    }
    .card {
      background: var(--panel);
      border: 1px solid var(--line);
      border-radius: 16px;
      box-shadow: 0 10px 24px rgba(17, 34, 51, 0.06);
      padding: 16px;
    }
    .title { margin: 0; font-size: clamp(1.2rem, 2.6vw, 2rem); }
    .sub { margin: 6px 0 0; color: var(--muted); font-size: 0.95rem; }
    .summary-grid {
      display: grid;
      grid-template-columns: repeat(4, minmax(0, 1fr));
      gap: 10px;
    }
    @media (max-width: 900px) {
      .summary-grid { grid-template-columns: 1fr; }
    }
    .metric {
      border: 1px solid var(--line);
      border-radius: 12px;
      background: #fafcfd;
      padding: 10px;
    }
    .metric .k { font-size: 0.76rem; color: var(--muted); font-family: "IBM Plex Mono", monospace; }
    .metric .v { font-size: 1.2rem; margin-top: 4px; font-weight: 700; }
    table { width: 100%; border-collapse: collapse; font-size: 0.9rem; }
    th, td { text-align: left; padding: 8px; border-bottom: 1px solid var(--line); }
    th { color: var(--muted); font-weight: 600; }
    .abnormal { color: var(--err); font-weight: 700; }
    .normal { color: var(--ok); }
    .severity-high { color: var(--err); }
    .severity-moderate { color: var(--warn); }
    .empty { color: var(--muted); font-style: italic; }
    .bar { height: 10px; border-radius: 5px; background: var(--accent); }
    a { color: var(--accent); }
"""


def _page(*, app_name: str, title: str, body: str) -> str:
    return f"""<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>{escape(title)} | {escape(app_name)}</title>
  <style>{_STYLE}</style>
</head>
<body>
  <main class="wrap">
{body}
  </main>
</body>
</html>
"""


def _metric(label: str, value: Any) -> str:
    return (
        f'<div class="metric"><div class="k">{escape(label)}</div>'
        f'<div class="v">{escape(str(value))}</div></div>'
    )


def _date(value: Any) -> str:
    return escape(str(value or "")[:10])


def _report_rows(reports: list[dict[str, Any]], user: str) -> str:
    if not reports:
        return '<tr><td colspan="3" class="empty">No reports uploaded yet.</td></tr>'
    rows = []
    for report in reports:
        values = report.get("extractedValues") or []
        abnormal = sum(1 for item in values if item.get("status") == "abnormal")
        status = (
            f'<span class="abnormal">{abnormal} abnormal</span>'
            if abnormal
            else '<span class="normal">Normal</span>'
        )
        href = f"/reports/{quote(str(report['id']))}/view?user={quote(user)}"
        rows.append(
            f'<tr><td><a href="{href}">{escape(str(report.get("name", "")))}</a></td>'
            f"<td>{_date(report.get('uploadedAt'))}</td><td>{status}</td></tr>"
        )
    return "\n".join(rows)


def _prescription_rows(prescriptions: list[dict[str, Any]], user: str) -> str:
    if not prescriptions:
        return '<tr><td colspan="3" class="empty">No prescriptions uploaded yet.</td></tr>'
    rows = []
    for prescription in prescriptions:
        medicines = ", ".join(
            escape(str(item.get("name", ""))) for item in prescription.get("medicines") or []
        )
        interactions = len(prescription.get("interactions") or [])
        href = f"/prescriptions/{quote(str(prescription['id']))}/view?user={quote(user)}"
        rows.append(
            f'<tr><td><a href="{href}">{escape(str(prescription.get("name", "")))}</a></td>'
            f"<td>{medicines or '-'}</td><td>{interactions}</td></tr>"
        )
    return "\n".join(rows)


def _metric_rows(points: list[dict[str, Any]]) -> str:
    if not points:
        return (
            '<tr><td colspan="3" class="empty">'
            "No cholesterol data found in your reports yet.</td></tr>"
        )
    peak = max(max(float(point["value"]) for point in points), 0.0) or 1.0
    return "\n".join(
        f"<tr><td>{_date(point.get('uploadedAt'))}</td>"
        f"<td>{escape(str(point['value']))} {escape(str(point.get('unit') or ''))}</td>"
        f'<td><div class="bar" style="width: {float(point["value"]) / peak * 100:.0f}%">'
        "</div></td></tr>"
        for point in points
    )


def _reminder_rows(reminders: list[dict[str, Any]]) -> str:
    if not reminders:
        return '<tr><td colspan="3" class="empty">No reminders set.</td></tr>'
    return "\n".join(
        f"<tr><td>{escape(str(item.get('medicineName', '')))}</td>"
        f"<td>{escape(str(item.get('time', '')))} {escape(str(item.get('recurrence', '')))}</td>"
        f"<td>{'On' if item.get('enabled') else 'Off'}</td></tr>"
        for item in reminders
    )


def render_dashboard(
    *,
    app_name: str,
    user: str,
    overview: dict[str, Any],
    reports: list[dict[str, Any]],
    prescriptions: list[dict[str, Any]],
    reminders: list[dict[str, Any]],
) -> str:
    body = f"""
    <section class="card">
      <h1 class="title">{escape(app_name)}</h1>
      <p class="sub">Signed in as {escape(user)}</p>
    </section>
    <section class="card summary-grid">
      {_metric("Abnormal results (latest report)", overview.get("abnormalResults", 0))}
      {_metric("Prescriptions", overview.get("prescriptionCount", 0))}
      {_metric("Interactions found", overview.get("interactionCount", 0))}
      {_metric("Active reminders", overview.get("activeReminders", 0))}
    </section>
    <section class="card">
      <h2>Health metrics over time</h2>
      <p class="sub">Total cholesterol from your reports</p>
      <table>
        <thead><tr><th>Date</th><th>Value</th><th></th></tr></thead>
        <tbody>{_metric_rows(overview.get("healthMetrics") or [])}</tbody>
      </table>
    </section>
    <section class="card">
      <h2>Reports</h2>
      <table>
        <thead><tr><th>Name</th><th>Uploaded</th><th>Status</th></tr></thead>
        <tbody>{_report_rows(reports, user)}</tbody>
      </table>
    </section>
    <section class="card">
      <h2>Prescriptions</h2>
      <table>
        <thead><tr><th>Name</th><th>Medicines</th><th>Interactions</th></tr></thead>
        <tbody>{_prescription_rows(prescriptions, user)}</tbody>
      </table>
    </section>
    <section class="card">
      <h2>Medication reminders</h2>
      <table>
        <thead><tr><th>Medicine</th><th>Schedule</th><th>Enabled</th></tr></thead>
        <tbody>{_reminder_rows(reminders)}</tbody>
      </table>
    </section>"""
    return _page(app_name=app_name, title="Dashboard", body=body)


def _reference(item: dict[str, Any]) -> str:
    reference = item.get("referenceRange") or {}
    low, high = reference.get("low"), reference.get("high")
    if low is not None and high is not None:
        return f"{escape(str(low))} - {escape(str(high))}"
    if low is not None:
        return f"&ge; {escape(str(low))}"
    if high is not None:
        return f"&le; {escape(str(high))}"
    return "-"


def render_report(*, app_name: str, user: str, report: dict[str, Any]) -> str:
    value_rows = "\n".join(
        f"<tr><td>{escape(str(item.get('test', '')))}</td>"
        f"<td>{escape(str(item.get('value', '')))} {escape(str(item.get('unit') or ''))}</td>"
        f"<td>{_reference(item)}</td>"
        f"<td class=\"{escape(str(item.get('status') or ''))}\">"
        f"{escape(str(item.get('status') or '-'))}</td></tr>"
        for item in report.get("extractedValues") or []
    ) or '<tr><td colspan="4" class="empty">No values extracted.</td></tr>'
    follow_ups = "\n".join(
        f"<li><strong>{escape(str(item.get('test', '')))}</strong> "
        f"({escape(str(item.get('priority', '')))}): {escape(str(item.get('reason', '')))}</li>"
        for item in report.get("suggestedFollowUps") or []
    ) or '<li class="empty">None suggested.</li>'
    risks = "\n".join(
        f"<li><strong>{escape(str(item.get('condition', '')))}</strong> "
        f"({escape(str(item.get('confidence', '')))}): {escape(str(item.get('note', '')))}</li>"
        for item in report.get("riskSummary") or []
    ) or '<li class="empty">No risks identified.</li>'
    body = f"""
    <section class="card">
      <p class="sub"><a href="/?user={quote(user)}">&larr; Back to dashboard</a></p>
      <h1 class="title">{escape(str(report.get("name", "")))}</h1>
      <p class="sub">Uploaded {_date(report.get("uploadedAt"))}</p>
    </section>
    <section class="card">
      <h2>Extracted values</h2>
      <table>
        <thead><tr><th>Test</th><th>Value</th><th>Reference range</th><th>Status</th></tr></thead>
        <tbody>{value_rows}</tbody>
      </table>
    </section>
    <section class="card">
      <h2>What this means</h2>
      <p>{escape(str(report.get("patientExplanation", "")))}</p>
      <h3>Suggested follow-ups</h3>
      <ul>{follow_ups}</ul>
      <h3>Risk summary</h3>
      <ul>{risks}</ul>
    </section>"""
    return _page(app_name=app_name, title=str(report.get("name", "Report")), body=body)


def _reminder_status(medicine: str, reminders: list[dict[str, Any]]) -> str:
    for item in reminders:
        if str(item.get("medicineName", "")).lower() == medicine.lower():
            return "On" if item.get("enabled") else "Off"
    return "Not set"


def render_prescription(
    *,
    app_name: str,
    user: str,
    prescription: dict[str, Any],
    reminders: list[dict[str, Any]],
) -> str:
    linked = [item for item in reminders if item.get("prescriptionId") == prescription.get("id")]
    medicine_rows = "\n".join(
        f"<tr><td>{escape(str(item.get('name', '')))}</td>"
        f"<td>{escape(str(item.get('dosage', '')))}</td>"
        f"<td>{escape(str(item.get('frequency', '')))}</td>"
        f"<td>{escape(str(item.get('route', '')))}</td>"
        f"<td>{escape(str(item.get('reason') or '-'))}</td>"
        f"<td>{_reminder_status(str(item.get('name', '')), linked)}</td></tr>"
        for item in prescription.get("medicines") or []
    ) or '<tr><td colspan="6" class="empty">No medicines extracted.</td></tr>'
    interactions = "\n".join(
        f"<li><span class=\"severity-{escape(str(item.get('severity', '')))}\">"
        f"[{escape(str(item.get('severity', '')))} risk]</span> "
        f"<strong>{escape(str(item.get('drugA', '')))} + {escape(str(item.get('drugB', '')))}"
        f"</strong>: {escape(str(item.get('message', '')))}</li>"
        for item in prescription.get("interactions") or []
    ) or '<li class="empty">No interactions found.</li>'
    body = f"""
    <section class="card">
      <p class="sub"><a href="/?user={quote(user)}">&larr; Back to dashboard</a></p>
      <h1 class="title">{escape(str(prescription.get("name", "")))}</h1>
      <p class="sub">Uploaded {_date(prescription.get("uploadedAt"))}</p>
    </section>
    <section class="card">
      <h2>Extracted medications</h2>
      <table>
        <thead><tr><th>Medicine</th><th>Dosage</th><th>Frequency</th><th>Route</th>
        <th>Reason for use</th><th>Reminder</th></tr></thead>
        <tbody>{medicine_rows}</tbody>
      </table>
    </section>
    <section class="card">
      <h2>Drug interaction check</h2>
      <ul>{interactions}</ul>
    </section>"""
    return _page(
        app_name=app_name, title=str(prescription.get("name", "Prescription")), body=body
    )
