# dashboard.py
import os
from html import escape

from fastapi import Depends, FastAPI
from fastapi.responses import HTMLResponse, JSONResponse

import codec
import documents  # noqa: F401  registers document kinds
import scraping  # noqa: F401  registers scraping kinds
from models import DecodeError, NotFound, Status
from storage import DEFAULT_DB_PATH, Storage

app = FastAPI()
_db = None


def get_db():
    global _db
    if _db is None:
        _db = Storage(os.environ.get("CMDQUEUE_DB", DEFAULT_DB_PATH))
    return _db


# ---------- Shared UI ----------
BASE_STYLE = """
  body { font-family: Arial, sans-serif; margin: 0; background: #f9f9f9; color: #333; }
  h1 { background: #2196F3; color: white; padding: 15px; margin: 0; }
  h2 { margin-top: 30px; color: #2196F3; }
  .container { padding: 20px; }
  .navbar { background: #1976D2; padding: 10px 20px; display: flex; gap: 20px; }
  .navbar a { color: white; text-decoration: none; font-weight: bold; }
  table { border-collapse: collapse; width: 100%; margin-top: 10px; background: white; }
  th, td { border: 1px solid #ddd; padding: 8px; text-align: left; }
  th { background-color: #2196F3; color: white; }
  tr:nth-child(even) { background-color: #f2f2f2; }
  .cards { display: grid; grid-template-columns: repeat(auto-fit,minmax(220px,1fr)); gap: 16px; margin-top: 20px; }
  .card { background: white; border: 1px solid #ddd; border-radius: 6px; padding: 12px; }
  .muted { color: #555; }
"""


def page(title: str, body_html: str) -> str:
    return f"""
    <html>
    <head>
      <title>{title}</title>
      <style>{BASE_STYLE}</style>
    </head>
    <body>
      <h1>{title}</h1>
      <div class="navbar">
        <a href="/">🏠 Home</a>
        <a href="/config">⚙ Config</a>
      </div>
      <div class="container">
        {body_html}
      </div>
    </body>
    </html>
    """


def _status_cards(counts) -> str:
    cards = "".join(
        f'<div class="card"><h3>{state.name.title()}</h3><p>{count}</p></div>' for state, count in counts.items()
    )
    return f'<div class="cards">{cards}</div>'


# ---------- Home ----------
@app.get("/", response_class=HTMLResponse)
def home(db: Storage = Depends(get_db)):
    rows = db.list_rows(limit=50, newest_first=True)

    table_html = """
    <h2>Recent commands</h2>
    <table>
      <tr><th>ID</th><th>Status</th><th>Command</th><th>Updated</th></tr>
    """
    for r in rows:
        table_html += (
            f"<tr><td><a href='/command/{r['id']}'>{r['id']}</a></td>"
            f"<td>{Status(r['status']).name.lower()}</td>"
            f"<td>{escape(codec.describe(r['payload']))}</td><td>{r['updated_at']}</td></tr>"
        )
    table_html += "</table>"
    if not rows:
        table_html += "<p class='muted'>No commands yet.</p>"

    return page("📊 Command Queue", _status_cards(db.count_by_status()) + table_html)


# ---------- Status (JSON) ----------
@app.get("/status/json", response_class=JSONResponse)
def status_json(db: Storage = Depends(get_db)):
    counts = db.count_by_status()
    return {state.name.lower(): count for state, count in counts.items()}


# ---------- Config ----------
@app.get("/config", response_class=HTMLResponse)
def config_page(db: Storage = Depends(get_db)):
    rows = db.list_config()

    body = """
      <h2>Runtime configuration</h2>
      <table>
        <tr><th>Key</th><th>Value</th><th>Updated</th></tr>
    """
    if not rows:
        body += "</table><p class='muted'>No config entries found.</p>"
    else:
        for r in rows:
            body += f"<tr><td>{escape(r['key'])}</td><td>{escape(r['value'])}</td><td>{r['updated_at']}</td></tr>"
        body += "</table><p class='muted'>Use CLI config set/get to manage values.</p>"

    return page("⚙ Config", body)


# ---------- Command detail ----------
@app.get("/command/{command_id}", response_class=HTMLResponse)
def command_detail(command_id: int, db: Storage = Depends(get_db)):
    try:
        row = db.get(command_id)
    except NotFound:
        return HTMLResponse(page("❌ Command not found", f"<p>Command {command_id} not found.</p>"), status_code=404)

    try:
        command = codec.decode(row["payload"])
        fields_html = "".join(
            f"<tr><th>{escape(name)}</th><td>{escape(str(value))}</td></tr>"
            for name, value in command.payload().items()
        )
        payload_html = f"<h3>Kind</h3><p>{escape(command.kind)}</p><h3>Payload</h3><table>{fields_html}</table>"
    except DecodeError as e:
        payload_html = f"<h3>Undecodable payload</h3><pre>{escape(str(e))}</pre>"

    body = f"""
      <h2>Command {row['id']}</h2>
      <div class="cards">
        <div class="card"><b>Status</b><p>{Status(row['status']).name.lower()}</p></div>
        <div class="card"><b>Created</b><p>{row['created_at']}</p></div>
        <div class="card"><b>Updated</b><p>{row['updated_at']}</p></div>
      </div>
      {payload_html}
    """
    return page(f"🔎 Command {row['id']} Detail", body)
