"""Flask REST API and dashboard page."""

from datetime import timedelta

from flask import Flask, Response, jsonify, request

from avatarwatch import messages, sessions, stats
from avatarwatch.heygen import HeyGenClient, HeyGenError, HeyGenNotConfigured
from avatarwatch.sessions import SessionNotFound
from avatarwatch.sync import reconcile
from avatarwatch.timestamps import utcnow
from avatarwatch.version import get_version_info

app = Flask(__name__)

# Set by app.py / __main__.py so /api/status and /api/refresh can reach the worker
_worker = None
_client = None

DEFAULT_LIST_DAYS = 7


def set_worker(worker):
    global _worker
    _worker = worker


def set_client(client):
    global _client
    _client = client


def get_client():
    global _client
    if _client is None:
        _client = HeyGenClient()
    return _client


def _error(message: str, code: int):
    return jsonify({"error": message}), code


@app.errorhandler(SessionNotFound)
def _session_not_found(exc):
    return _error(str(exc), 404)


@app.errorhandler(ValueError)
def _bad_request(exc):
    return _error(str(exc), 400)


@app.errorhandler(HeyGenNotConfigured)
def _provider_not_configured(exc):
    return _error(str(exc), 503)


@app.errorhandler(HeyGenError)
def _provider_error(exc):
    return _error(str(exc), 502)


def _body() -> dict:
    return request.get_json(silent=True) or {}


def _optional_bool(body: dict, key: str = "value"):
    if key not in body:
        return None
    value = body[key]
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


@app.route("/api/status")
def api_status():
    if _worker is None:
        return jsonify({"state": "idle", "step": "", "ready": True})
    return jsonify(_worker.status)


@app.route("/api/version")
def api_version():
    return jsonify(get_version_info())


def _requested_range():
    return stats.date_range(
        request.args.get("range", "7days"),
        start=request.args.get("start"),
        end=request.args.get("end"),
    )


@app.route("/api/overview")
def api_overview():
    start, end = _requested_range()
    return jsonify(stats.summary(start, end))


@app.route("/api/dashboard")
def api_dashboard():
    start, end = _requested_range()
    metric = request.args.get("metric", "sessions")
    interval = request.args.get("interval", "day")

    result = stats.dashboard_stats(start, end)
    result["summary"] = stats.summary(start, end)
    result["series"] = stats.chart_series(start, end, metric=metric, interval=interval)
    return jsonify(result)


@app.route("/api/sessions")
def api_sessions():
    view = request.args.get("view", "active")
    status = request.args.get("status")
    start = request.args.get("start")
    end = request.args.get("end")
    limit = max(1, min(int(request.args.get("limit", 100)), 500))
    offset = max(0, int(request.args.get("offset", 0)))

    if start is None and end is None and view != "trash":
        days = int(request.args.get("days", DEFAULT_LIST_DAYS))
        end_dt = utcnow()
        start, end = end_dt - timedelta(days=days), end_dt

    return jsonify(
        sessions.list_sessions(
            view=view, status=status, start=start, end=end, limit=limit, offset=offset
        )
    )


@app.route("/api/sessions", methods=["POST"])
def api_register_session():
    body = _body()
    session = sessions.register_session(
        body.get("session_id", ""),
        status=body.get("status", "active"),
        start_time=body.get("start_time"),
    )
    return jsonify({"ok": True, "session": session}), 201


@app.route("/api/sessions/<session_id>")
def api_session_detail(session_id):
    return jsonify({"session": sessions.get_session(session_id)})


@app.route("/api/sessions/<session_id>/messages")
def api_session_messages(session_id):
    return jsonify({"messages": messages.list_messages(session_id)})


@app.route("/api/sessions/<session_id>/messages", methods=["POST"])
def api_add_message(session_id):
    body = _body()
    msg = messages.add_message(
        session_id,
        body.get("sender", ""),
        body.get("message", ""),
        timestamp=body.get("timestamp"),
    )
    return jsonify({"ok": True, "message": msg}), 201


@app.route("/api/sessions/<session_id>/messages/refresh", methods=["POST"])
def api_refresh_messages(session_id):
    inserted = messages.sync_messages(session_id, get_client())
    return jsonify({
        "ok": True,
        "inserted": inserted,
        "messages": messages.list_messages(session_id),
    })


@app.route("/api/sessions/<session_id>/send", methods=["POST"])
def api_send_message(session_id):
    """Send operator text to the avatar, then pull the updated transcript."""
    text = (_body().get("message") or "").strip()
    if not text:
        return _error("message is required", 400)
    sessions.get_session(session_id)

    client = get_client()
    response = client.send_message(session_id, text)
    inserted = messages.sync_messages(session_id, client)
    return jsonify({"ok": True, "response": response, "inserted": inserted})


@app.route("/api/sessions/<session_id>/stats")
def api_session_stats(session_id):
    return jsonify(messages.session_stats(session_id))


@app.route("/api/sessions/<session_id>/relevant", methods=["POST"])
def api_toggle_relevant(session_id):
    value = _optional_bool(_body())
    if value is None:
        session = sessions.toggle_relevant(session_id)
    else:
        session = sessions.set_relevant(session_id, value)
    return jsonify({"ok": True, "session": session})


@app.route("/api/sessions/<session_id>/archive", methods=["POST"])
def api_toggle_archived(session_id):
    value = _optional_bool(_body())
    if value is None:
        session = sessions.toggle_archived(session_id)
    else:
        session = sessions.set_archived(session_id, value)
    return jsonify({"ok": True, "session": session})


@app.route("/api/sessions/<session_id>/trash", methods=["POST"])
def api_move_to_trash(session_id):
    return jsonify({"ok": True, "session": sessions.move_to_trash(session_id)})


@app.route("/api/sessions/<session_id>/restore", methods=["POST"])
def api_restore(session_id):
    return jsonify({"ok": True, "session": sessions.restore_from_trash(session_id)})


@app.route("/api/sessions/<session_id>/stop", methods=["POST"])
def api_stop_session(session_id):
    result = sessions.stop_session(session_id, get_client())
    return jsonify({
        "ok": True,
        "provider": result,
        "session": sessions.get_session(session_id),
    })


@app.route("/api/refresh", methods=["POST"])
def api_refresh():
    """Trigger a reconciliation pass.

    With a background worker this is non-blocking; poll /api/status for
    progress. Without one the pass runs inline and its stats are returned.
    """
    if _worker is not None:
        queued = _worker.is_busy
        _worker.request_refresh()
        return jsonify({"ok": True, "queued": queued})

    result = reconcile(get_client())
    return jsonify({"ok": True, "result": result})


@app.route("/")
def index():
    return Response(DASHBOARD_HTML, mimetype="text/html")


DASHBOARD_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>Avatar Session Monitor</title>
<style>
body { font-family: -apple-system, system-ui, sans-serif; margin: 0; color: #1f2328; background: #f6f8fa; }
#topbar { display: flex; gap: 24px; align-items: center; padding: 10px 16px; background: #fff; border-bottom: 1px solid #d0d7de; }
.brand { font-weight: 700; color: #ce861b; }
.stat-label { font-size: 11px; text-transform: uppercase; color: #656d76; margin-right: 6px; }
#main { display: flex; height: calc(100vh - 46px); }
#list-panel { width: 46%; overflow-y: auto; border-right: 1px solid #d0d7de; background: #fff; }
#detail-panel { flex: 1; overflow-y: auto; padding: 16px; }
#controls { display: flex; gap: 8px; padding: 8px; border-bottom: 1px solid #d0d7de; }
table { width: 100%; border-collapse: collapse; font-size: 13px; }
td, th { padding: 6px 8px; border-bottom: 1px solid #eaeef2; text-align: left; }
tr.sel { background: #fff4e0; }
tr:hover { background: #f0f4f8; cursor: pointer; }
button { font-size: 12px; }
.msg { max-width: 70%; padding: 6px 10px; border-radius: 8px; margin: 4px 0; }
.msg.user { margin-left: auto; background: #ce861b; color: #fff; }
.msg.avatar { background: #eaeef2; }
.msg-time { font-size: 10px; opacity: .7; }
.placeholder { color: #656d76; padding: 32px; text-align: center; }
</style>
</head>
<body>
<div id="topbar">
  <span class="brand">Avatar Session Monitor</span>
  <span><span class="stat-label">Sessions (7d)</span><span id="s-total">-</span></span>
  <span><span class="stat-label">Messages</span><span id="s-msgs">-</span></span>
  <span><span class="stat-label">Avg msgs</span><span id="s-avg">-</span></span>
  <span><span class="stat-label">Running</span><span id="s-running">-</span></span>
  <button onclick="refresh()">Refresh</button>
  <span id="refresh-status"></span>
</div>
<div id="main">
  <div id="list-panel">
    <div id="controls">
      <select id="view" onchange="loadSessions()">
        <option value="active">Active</option>
        <option value="archived">Archived</option>
        <option value="trash">Trash</option>
      </select>
      <select id="status" onchange="loadSessions()">
        <option value="all">All statuses</option>
        <option value="active">active</option>
        <option value="connecting">connecting</option>
        <option value="connected">connected</option>
        <option value="completed">completed</option>
        <option value="error">error</option>
      </select>
      <select id="days" onchange="loadSessions()">
        <option value="7">Last 7 days</option>
        <option value="14">Last 14 days</option>
        <option value="30">Last 30 days</option>
      </select>
    </div>
    <table><tbody id="session-tbody"></tbody></table>
  </div>
  <div id="detail-panel"><div class="placeholder">Select a session to see its transcript</div></div>
</div>
<script>
let selected = null;
const esc = s => String(s ?? '').replace(/[&<>"]/g, c => ({'&':'&amp;','<':'&lt;','>':'&gt;','"':'&quot;'}[c]));
const fmtDur = s => s >= 3600 ? Math.floor(s/3600)+'h '+Math.floor(s%3600/60)+'m' : s >= 60 ? Math.floor(s/60)+'m '+(s%60)+'s' : s+'s';

async function post(path, body) {
  const r = await fetch(path, {method: 'POST', headers: {'Content-Type': 'application/json'}, body: JSON.stringify(body || {})});
  return r.json();
}

async function loadOverview() {
  const d = await (await fetch('/api/overview')).json();
  document.getElementById('s-total').textContent = d.total_sessions;
  document.getElementById('s-msgs').textContent = d.total_messages;
  document.getElementById('s-avg').textContent = d.avg_messages_per_session;
  document.getElementById('s-running').textContent = d.running_sessions;
}

async function loadSessions() {
  const view = document.getElementById('view').value;
  const q = new URLSearchParams({view, status: document.getElementById('status').value});
  if (view !== 'trash') q.set('days', document.getElementById('days').value);
  const d = await (await fetch('/api/sessions?' + q)).json();
  const tbody = document.getElementById('session-tbody');
  tbody.innerHTML = '';
  for (const s of d.sessions) {
    const tr = document.createElement('tr');
    if (s.session_id === selected) tr.className = 'sel';
    const actions = s.deleted_at
      ? `<button data-act="restore">Restore</button> <small>purged ${esc(s.purge_at.slice(0, 10))}</small>`
      : `<button data-act="relevant">${s.is_relevant ? '&#9733;' : '&#9734;'}</button>
         ${view === 'archived' ? '<button data-act="trash">Trash</button>' : `<button data-act="archive">${s.is_archived ? 'Unarchive' : 'Archive'}</button>`}
         ${s.status === 'active' && s.heygen_status !== 'completed' ? '<button data-act="stop">Stop</button>' : ''}`;
    tr.innerHTML = `<td>${esc(s.session_id.slice(0, 8))}</td><td>${esc(s.display_status)}</td>
      <td>${fmtDur(s.duration_seconds)}</td><td>${esc(s.start_time.replace('T', ' ').slice(0, 19))}</td><td>${actions}</td>`;
    tr.addEventListener('click', async e => {
      const act = e.target.dataset && e.target.dataset.act;
      if (act) { e.stopPropagation(); await post(`/api/sessions/${s.session_id}/${act}`); loadSessions(); return; }
      selected = s.session_id; loadSessions(); loadDetail(s.session_id);
    });
    tbody.appendChild(tr);
  }
  if (!d.sessions.length) tbody.innerHTML = '<tr><td class="placeholder">No sessions found</td></tr>';
}

async function loadDetail(id) {
  const dp = document.getElementById('detail-panel');
  const [m, st] = await Promise.all([
    fetch(`/api/sessions/${id}/messages`).then(r => r.json()),
    fetch(`/api/sessions/${id}/stats`).then(r => r.json()),
  ]);
  const msgs = (m.messages || []).map(x =>
    `<div class="msg ${x.sender}">${esc(x.message)}<div class="msg-time">${esc(x.timestamp.slice(11, 19))}</div></div>`).join('');
  dp.innerHTML = `<h3>Session ${esc(id)} <button onclick="refreshMessages('${esc(id)}')">Refresh messages</button></h3>
    <p>${st.total_messages} messages (${st.user_messages} user, ${st.avatar_messages} avatar),
       avg response ${st.average_response_seconds}s, duration ${fmtDur(st.duration_seconds)}</p>
    ${msgs || '<div class="placeholder">No messages for this session</div>'}`;
}

async function refreshMessages(id) { await post(`/api/sessions/${id}/messages/refresh`); loadDetail(id); }

async function refresh() {
  await post('/api/refresh');
  document.getElementById('refresh-status').textContent = 'refreshed ' + new Date().toLocaleTimeString();
  loadSessions(); loadOverview();
}

loadSessions(); loadOverview();
setInterval(() => { loadSessions(); loadOverview(); if (selected) loadDetail(selected); }, 10000);
</script>
</body>
</html>
"""
