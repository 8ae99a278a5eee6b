from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from html import escape
from io import StringIO
from typing import Any, Dict, List

from fastapi import FastAPI, Form, HTTPException
from fastapi.responses import HTMLResponse, RedirectResponse, Response

from .config import configure_logging
from .scoring import (
    COMPLETENESS_CATEGORIES,
    SCORE_FIELDS,
    SUITABLE_CHOICES,
    FieldError,
)
from .session import ScoringSession, SessionRegistry
from .store import (
    ReferenceDataError,
    SqliteScoreStore,
    init_db,
    list_judges,
    list_teams,
    replace_judges,
    replace_teams,
    scores_dataframe,
)
from .submission import SAVED_MESSAGE

log = logging.getLogger(__name__)

sessions = SessionRegistry()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    configure_logging()
    init_db()
    yield


app = FastAPI(lifespan=lifespan)


def get_session(token: str) -> ScoringSession:
    session = sessions.get(token)
    if session is None:
        raise HTTPException(404, "Scoring session not found.")
    return session


def back_to_sheet(token: str) -> RedirectResponse:
    return RedirectResponse(url=f"/onsite/{token}", status_code=303)


def truthy(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


# -----------------------
# UI helpers
# -----------------------
def page(title: str, body: str) -> HTMLResponse:
    html = f"""
    <html>
      <head>
        <title>{title}</title>
        <meta name="viewport" content="width=device-width, initial-scale=1.0">
        <style>
          body {{ font-family: system-ui, Arial; max-width: 720px; margin: 0 auto; padding: 22px; }}
          select, textarea, button {{ font-size: 16px; padding: 6px 10px; }}
          textarea {{ width: 100%; }}
          .card {{ border: 1px solid #ddd; border-radius: 12px; padding: 16px; margin: 16px 0; }}
          .grid {{ display: flex; flex-wrap: wrap; gap: 6px; margin: 6px 0 14px; }}
          .grid button {{ background: #eee; border: 1px solid #ccc; border-radius: 4px; }}
          .grid button.selected {{ background: #aaf; }}
          .grid button:disabled {{ cursor: not-allowed; }}
          table {{ border-collapse: collapse; width: 100%; }}
          th, td {{ border: 1px solid #ddd; padding: 8px; }}
          th {{ text-align: left; background: #f7f7f7; }}
          .muted {{ color: #666; }}
          .fail {{ background: #fdd; padding: 12px; border-radius: 6px; margin-bottom: 16px; }}
          .danger {{ color: #b00020; font-weight: bold; }}
          .ok {{ color: #2e7d32; font-weight: bold; }}
          a {{ text-decoration: none; }}
        </style>
      </head>
      <body>
        <h1>{title}</h1>
        {body}
      </body>
    </html>
    """
    return HTMLResponse(html)


def _disabled(flag: bool) -> str:
    return "" if flag else " disabled"


def render_selector(token: str, label: str, name: str, chosen: str, options: List[Dict[str, Any]], id_key: str, name_key: str) -> str:
    # Once chosen, the selector collapses to a read-only echo until reset.
    if chosen:
        return f'<p>{label}: <b>{escape(chosen)}</b></p>'
    opts = "".join(
        f'<option value="{escape(str(o[id_key]))}">{escape(str(o[name_key]))}</option>' for o in options
    )
    return f"""
    <form method="post" action="/onsite/{token}/field">
      <input type="hidden" name="name" value="{name}" />
      <label>{label}:
        <select name="value" onchange="this.form.submit()">
          <option value="">Select</option>{opts}
        </select>
      </label>
      <button type="submit">Set</button>
    </form>
    """


def render_score_grid(token: str, key: str, label: str, scores, value, enabled: bool) -> str:
    buttons = ""
    for s in scores:
        css = ' class="selected"' if value == s else ""
        buttons += f'<button type="submit" name="value" value="{s}"{css}{_disabled(enabled)}>{s}</button>'
    selected = f' <span class="muted">Selected: <b>{value}</b></span>' if value is not None else ""
    return f"""
    <form method="post" action="/onsite/{token}/field">
      <input type="hidden" name="name" value="{key}" />
      <label>{escape(label)}:</label>{selected}
      <div class="grid">{buttons}</div>
    </form>
    """


def render_sheet(token: str, session: ScoringSession) -> HTMLResponse:
    view = session.view()
    entry = view["entry"]
    enabled = view["enabled"]

    team_label = view["team_name"] or ("" if entry["team_id"] is None else str(entry["team_id"]))
    judge_label = view["judge_name"] or ("" if entry["judge_id"] is None else str(entry["judge_id"]))
    site_options = [{"site_number": t["site_number"]} for t in session.teams if t.get("site_number")]
    selectors = "".join([
        render_selector(token, "Team", "team_id", team_label, session.teams, "id", "name"),
        render_selector(token, "Site", "site_number", entry["site_number"], site_options, "site_number", "site_number"),
        render_selector(token, "Judge", "judge_id", judge_label, session.judges, "id", "name"),
    ])

    suitable_opts = "".join(
        f'<option value="{c}"{" selected" if entry["suitable"] == c else ""}>{c or "Select"}</option>'
        for c in SUITABLE_CHOICES
    )
    suitable = f"""
    <form method="post" action="/onsite/{token}/field">
      <input type="hidden" name="name" value="suitable" />
      <label>Suitable for Consumption:
        <select name="value" onchange="this.form.submit()">{suitable_opts}</select>
      </label>
      <button type="submit">Set</button>
    </form>
    """

    fail = ""
    if view["gated"]:
        fail = f"""
        <div class="fail">
          <strong>Fail: Not suitable for consumption.</strong><br />
          <form method="post" action="/onsite/{token}/override" style="margin-top:8px;">
            <button type="submit">Continue Scoring Anyway</button>
          </form>
        </div>
        """

    grids = "".join(
        render_score_grid(token, f.key, f.label, f.scores, entry[f.key], enabled[f.key]) for f in SCORE_FIELDS
    )

    checks = ""
    for cat in COMPLETENESS_CATEGORIES:
        on = entry["completeness"][cat.key]
        checks += f"""
        <form method="post" action="/onsite/{token}/completeness" style="display:inline-block; margin-right:8px;">
          <input type="hidden" name="key" value="{cat.key}" />
          <button type="submit" name="satisfied" value="{'0' if on else '1'}"{_disabled(enabled[cat.key])}>
            {'&#9745;' if on else '&#9744;'} {escape(cat.label)} (+{cat.bonus_value})
          </button>
        </form>
        """

    save_disabled = _disabled(enabled["save"])
    message = ""
    if view["message"]:
        css = "ok" if view["message"] == SAVED_MESSAGE else "danger"
        message = f'<div class="{css}" style="margin-top:16px;">{escape(view["message"])}</div>'

    body = f"""
    <div class="card">
      <p><a href="/">&larr; Home</a></p>
      {selectors}
      {suitable}
      {fail}
      {grids}
      <label>Completeness:</label>
      <div class="grid">{checks}</div>
      <div>
        <form method="post" action="/onsite/{token}/save" style="display:inline-block;">
          <button type="submit"{save_disabled}>Save Entry</button>
        </form>
        <form method="post" action="/onsite/{token}/reset" style="display:inline-block;">
          <button type="submit">Clear</button>
        </form>
      </div>
      {message}
    </div>
    """
    return page("Onsite Scoring Sheet", body)


# -----------------------
# Routes: Home
# -----------------------
@app.get("/", response_class=HTMLResponse)
def home():
    return page(
        "Onsite Scoring",
        """
        <div class="card">
          <p><a href="/onsite">Start a scoring sheet</a> | <a href="/admin">Admin</a></p>
          <p class="muted">
            One record per team per site. Marking an entry not suitable locks the scores
            unless the judge chooses to continue scoring anyway.
          </p>
        </div>
        """,
    )


# -----------------------
# Routes: Scoring sheet
# -----------------------
@app.get("/onsite")
def onsite_open():
    session = ScoringSession(SqliteScoreStore(), list_teams(), list_judges())
    token = sessions.open(session)
    log.info("opened scoring session with %d teams, %d judges", len(session.teams), len(session.judges))
    return back_to_sheet(token)


@app.get("/onsite/{token}", response_class=HTMLResponse)
def onsite_sheet(token: str):
    return render_sheet(token, get_session(token))


@app.post("/onsite/{token}/field")
def onsite_field(token: str, name: str = Form(...), value: str = Form("")):
    session = get_session(token)
    try:
        session.set_field(name, value)
    except FieldError as e:
        session.message = e.message
    return back_to_sheet(token)


@app.post("/onsite/{token}/completeness")
def onsite_completeness(token: str, key: str = Form(...), satisfied: str = Form("0")):
    session = get_session(token)
    try:
        session.set_completeness(key, truthy(satisfied))
    except FieldError as e:
        session.message = e.message
    return back_to_sheet(token)


@app.post("/onsite/{token}/override")
def onsite_override(token: str):
    get_session(token).set_fail_override()
    return back_to_sheet(token)


@app.post("/onsite/{token}/reset")
def onsite_reset(token: str):
    session = get_session(token)
    session.reset()
    session.message = ""
    return back_to_sheet(token)


@app.post("/onsite/{token}/save")
def onsite_save(token: str):
    get_session(token).save()
    return back_to_sheet(token)


# -----------------------
# Routes: Admin
# -----------------------
def render_admin(error: str = "") -> HTMLResponse:
    teams = list_teams()
    judges = list_judges()

    team_rows = "".join(
        f"<tr><td>{t['id']}</td><td>{escape(t['name'])}</td><td>{escape(t['site_number'])}</td></tr>" for t in teams
    ) or '<tr><td colspan="3" class="muted">No teams yet.</td></tr>'
    judge_rows = "".join(
        f"<tr><td>{j['id']}</td><td>{escape(j['name'])}</td></tr>" for j in judges
    ) or '<tr><td colspan="2" class="muted">No judges yet.</td></tr>'

    notice = f'<p class="danger">{escape(error)}</p>' if error else ""

    body = f"""
    <div class="card">
      <p><a href="/">&larr; Home</a> | <a href="/admin/download/scores">Download Scores CSV</a></p>
      {notice}
    </div>

    <div class="card">
      <h2>Teams</h2>
      <table>
        <thead><tr><th>ID</th><th>Name</th><th>Site</th></tr></thead>
        <tbody>{team_rows}</tbody>
      </table>
      <form method="post" action="/admin/teams">
        <textarea name="teams" rows="5" placeholder="One team per line: name,site_number"></textarea>
        <p class="muted">This replaces the team list. Saved scores are kept.</p>
        <button type="submit">Save Teams</button>
      </form>
    </div>

    <div class="card">
      <h2>Judges</h2>
      <table>
        <thead><tr><th>ID</th><th>Name</th></tr></thead>
        <tbody>{judge_rows}</tbody>
      </table>
      <form method="post" action="/admin/judges">
        <textarea name="judges" rows="5" placeholder="One judge per line"></textarea>
        <p class="muted">This replaces the judge list. Saved scores are kept.</p>
        <button type="submit">Save Judges</button>
      </form>
    </div>
    """
    return page("Admin", body)


@app.get("/admin", response_class=HTMLResponse)
def admin_home():
    return render_admin()


@app.post("/admin/teams")
def admin_teams(teams: str = Form("")):
    try:
        replace_teams(teams)
    except ReferenceDataError as e:
        log.warning("team list rejected: %s", e)
        return render_admin(f"Teams not saved. {e}")
    return RedirectResponse(url="/admin", status_code=303)


@app.post("/admin/judges")
def admin_judges(judges: str = Form("")):
    replace_judges(judges)
    return RedirectResponse(url="/admin", status_code=303)


@app.get("/admin/download/scores")
def download_scores():
    buf = StringIO()
    scores_dataframe().to_csv(buf, index=False)
    return Response(
        content=buf.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="onsite_scores.csv"'},
    )
