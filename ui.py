# ui.py

from html import escape

from config import UPLOAD_ACCEPT_ATTRIBUTE, COPY_LABEL_IDLE
from schemas import SlotRole

PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>Trade AI - Document Intelligence</title>
<style>
  body {{ font-family: system-ui, sans-serif; background: #f5f7fb; color: #1f2937; margin: 0; }}
  .container {{ max-width: 960px; margin: 0 auto; padding: 32px 16px; }}
  .logo-badge {{ display: inline-block; background: #1d4ed8; color: #fff; border-radius: 999px; padding: 4px 12px; font-size: 12px; }}
  .upload-grid {{ display: grid; grid-template-columns: repeat(auto-fit, minmax(220px, 1fr)); gap: 16px; margin: 24px 0; }}
  .upload-card {{ background: #fff; border-radius: 12px; padding: 16px; box-shadow: 0 1px 3px rgba(0,0,0,.08); }}
  .drop-zone {{ display: block; border: 2px dashed #cbd5e1; border-radius: 8px; padding: 24px; text-align: center; cursor: pointer; }}
  .drop-zone.has-file {{ border-color: #16a34a; background: #f0fdf4; }}
  .upload-card input[type=file] {{ display: none; }}
  .analyze-button {{ background: #1d4ed8; color: #fff; border: 0; border-radius: 8px; padding: 12px 24px; font-size: 16px; }}
  .analyze-button:disabled {{ opacity: .5; cursor: not-allowed; }}
  .error-card {{ background: #fef2f2; color: #b91c1c; border-radius: 8px; padding: 12px; margin-top: 16px; }}
  .results-wrapper {{ background: #fff; border-radius: 12px; margin-top: 24px; padding: 16px; }}
  .results-toolbar {{ display: flex; justify-content: space-between; align-items: center; }}
  .result-body pre {{ white-space: pre-wrap; }}
  [hidden] {{ display: none !important; }}
</style>
</head>
<body>
<div class="container">
  <header>
    <div class="logo-badge">Trade AI</div>
    <h1>Document Intelligence</h1>
    <p>Extract structural data from CI, PL, and BL documents instantly.</p>
  </header>

  <div class="upload-grid">
{upload_cards}
  </div>

  <div class="actions">
    <button id="analyze" class="analyze-button" disabled>Start Extraction</button>
  </div>

  <div id="error" class="error-card" role="alert" hidden></div>

  <div id="results" class="results-wrapper" hidden>
    <div class="results-toolbar">
      <h2>Extraction Results</h2>
      <button id="copy" class="copy-btn">{copy_label}</button>
    </div>
    <div class="result-body"><pre id="result-text"></pre></div>
  </div>
</div>
<script>
const roles = {roles_json};
let sessionId = null;
let status = null;
let pollTimer = null;

async function api(method, path, body) {{
  const response = await fetch(path, {{ method, body }});
  const payload = await response.json();
  if (!response.ok) {{ throw new Error(payload.detail || 'An unexpected error occurred.'); }}
  return payload;
}}

function render(next) {{
  status = next;
  const busy = status.state === 'encoding' || status.state === 'awaiting_response';
  const button = document.getElementById('analyze');
  button.disabled = !status.can_analyze;
  button.textContent = busy ? (status.status_message || 'Analyzing...') : 'Start Extraction';
  for (const slot of status.slots) {{
    const zone = document.getElementById(slot.role + '-zone');
    zone.classList.toggle('has-file', !!slot.filename);
    zone.textContent = slot.filename ? slot.filename + ' (' + slot.size_kb.toFixed(1) + ' KB)' : 'Upload File';
  }}
  const error = document.getElementById('error');
  error.hidden = !status.error;
  error.textContent = status.error || '';
  document.getElementById('results').hidden = !status.result;
  document.getElementById('result-text').textContent = status.result || '';
  document.getElementById('copy').textContent = status.copy_label;
  if (busy && !pollTimer) {{ pollTimer = setInterval(refresh, 1000); }}
  if (!busy && pollTimer) {{ clearInterval(pollTimer); pollTimer = null; }}
}}

function showError(message) {{
  const error = document.getElementById('error');
  error.hidden = false;
  error.textContent = message;
}}

async function refresh() {{
  render(await api('GET', '/sessions/' + sessionId));
}}

for (const role of roles) {{
  document.getElementById(role + '-file').addEventListener('change', async (event) => {{
    if (!event.target.files || event.target.files.length === 0) {{ return; }}
    const form = new FormData();
    form.append('file', event.target.files[0]);
    try {{ render(await api('PUT', '/sessions/' + sessionId + '/slots/' + role, form)); }}
    catch (err) {{ showError(err.message); }}
  }});
}}

document.getElementById('analyze').addEventListener('click', async () => {{
  try {{ render(await api('POST', '/sessions/' + sessionId + '/analyze')); }}
  catch (err) {{ showError(err.message); }}
}});

document.getElementById('copy').addEventListener('click', async () => {{
  try {{
    const copied = await api('POST', '/sessions/' + sessionId + '/copy');
    await navigator.clipboard.writeText(copied.text);
    document.getElementById('copy').textContent = copied.copy_label;
    setTimeout(refresh, {copy_delay_ms});
  }} catch (err) {{ showError(err.message); }}
}});

window.addEventListener('pagehide', () => {{
  if (sessionId) {{ fetch('/sessions/' + sessionId, {{ method: 'DELETE', keepalive: true }}); }}
}});

api('POST', '/sessions').then((created) => {{ sessionId = created.session_id; render(created); }});
</script>
</body>
</html>
"""

UPLOAD_CARD_TEMPLATE = """    <div class="upload-card">
      <label class="card-label" for="{role}-file">{label}</label>
      <label for="{role}-file" id="{role}-zone" class="drop-zone">Upload File</label>
      <input id="{role}-file" type="file" accept="{accept}">
    </div>"""


def render_index_page(copy_delay: float) -> str:
    """The single-page upload form. All state lives server side in the session."""
    upload_cards = "\n".join(
        UPLOAD_CARD_TEMPLATE.format(role=role.value, label=escape(role.label), accept=UPLOAD_ACCEPT_ATTRIBUTE)
        for role in SlotRole
    )
    roles_json = "[" + ", ".join(f"'{role.value}'" for role in SlotRole) + "]"
    return PAGE_TEMPLATE.format(
        upload_cards=upload_cards,
        roles_json=roles_json,
        copy_label=escape(COPY_LABEL_IDLE),
        copy_delay_ms=int(copy_delay * 1000) + 50,
    )
