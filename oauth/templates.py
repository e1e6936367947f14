"""HTML for the login and consent steps of the authorization flow."""

from html import escape

# One stylesheet for both pages; braces doubled for str.format
_STYLE = """
    :root {{ --cream: #FAF9F7; --accent: #D97756; --accent-dark: #C4684A; --ink: #1A1915;
             --muted: #6B6860; --line: #E5E4E0; --panel: #F5F5F0; }}
    * {{ box-sizing: border-box; }}
    body {{ margin: 0; min-height: 100vh; display: grid; place-items: center; background: var(--cream);
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif; color: var(--ink); }}
    main {{ width: 100%; max-width: 460px; padding: 36px; background: #fff; border: 1px solid var(--line);
            border-radius: 14px; box-shadow: 0 6px 20px rgba(26, 25, 21, 0.06); }}
    h1 {{ margin: 0 0 6px; font-size: 22px; }}
    .hint, .meta {{ color: var(--muted); font-size: 14px; }}
    .hint {{ margin: 0 0 22px; }}
    .alert {{ margin-bottom: 18px; padding: 10px 12px; border-radius: 8px; color: #B91C1C;
              background: #FEF2F2; border: 1px solid #FECACA; }}
    label.field {{ display: block; margin-bottom: 16px; font-size: 14px; font-weight: 500; }}
    label.field input {{ display: block; width: 100%; margin-top: 6px; padding: 11px 13px; font-size: 15px;
                         border: 1px solid var(--line); border-radius: 8px; background: var(--cream); }}
    label.field input:focus {{ outline: 2px solid var(--accent); outline-offset: -1px; }}
    .card {{ margin: 16px 0; padding: 14px 16px; border-radius: 8px; background: var(--panel); }}
    .scope {{ border-left: 3px solid var(--accent); }}
    .actions {{ display: flex; gap: 10px; margin-top: 22px; }}
    button {{ flex: 1; padding: 13px; font-size: 15px; font-weight: 600; border-radius: 8px; cursor: pointer; }}
    button.primary {{ color: #fff; background: var(--accent); border: 0; }}
    button.primary:hover {{ background: var(--accent-dark); }}
    button.secondary {{ color: var(--muted); background: #fff; border: 1px solid var(--line); }}
"""

_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{title} - Ticket Service</title>
<style>""" + _STYLE + """</style>
</head>
<body>
<main>
{body}
</main>
</body>
</html>
"""

LOGIN_BODY = """<h1>Sign in</h1>
<p class="hint">Sign in to continue the authorization request.</p>
{error}
<form method="POST" action="/auth/login">
  <input type="hidden" name="return_to" value="{return_to}">
  <label class="field">Username or email
    <input type="text" name="username" required autocomplete="username">
  </label>
  <label class="field">Password
    <input type="password" name="password" required autocomplete="current-password">
  </label>
  <div class="actions"><button type="submit" class="primary">Sign in</button></div>
</form>"""

CONSENT_BODY = """<h1>Authorize access</h1>
<p class="meta">Signed in as {username}</p>
<div class="card">
  <strong>{client_name}</strong>
  <div class="meta">Client ID: {client_id}</div>
</div>
<p class="hint">This application is requesting:</p>
{scopes}
<form method="POST" action="/authorize/decision" id="consent-form">
  <input type="hidden" name="ticket" value="{ticket}">
  {authorization_details}
  <div class="actions">
    <button type="submit" name="authorized" value="false" class="secondary">Deny</button>
    <button type="submit" name="authorized" value="true" class="primary">Allow</button>
  </div>
</form>"""

SCOPE_ITEM = """<div class="card scope"><strong>{name}</strong><div class="meta">{description}</div></div>"""

# Amount cap for the "ticket-reservation" authorization details type (RFC 9396)
AUTHORIZATION_DETAILS_BLOCK = """<div class="card">
    <label><input type="radio" name="detail_mode" value="scope-only" checked> Allow all requested scopes</label><br>
    <label><input type="radio" name="detail_mode" value="custom"> Cap reservations at
      <input type="number" name="max_amount" min="0" step="100" value="10000"> JPY</label>
    <input type="hidden" name="authorization_details" id="authorization_details">
  </div>
  <script>
    document.getElementById("consent-form").addEventListener("submit", function () {
      var field = document.getElementById("authorization_details");
      var custom = document.querySelector('input[name="detail_mode"][value="custom"]');
      if (!custom.checked) { field.value = ""; return; }
      var maxAmount = parseInt(document.querySelector('input[name="max_amount"]').value, 10);
      field.value = JSON.stringify([{
        type: "ticket-reservation",
        actions: ["book", "cancel"],
        otherFields: JSON.stringify({maxAmount: maxAmount, currency: "JPY"})
      }]);
    });
  </script>"""


def _page(title: str, body: str) -> str:
    return _PAGE.format(title=escape(title), body=body)


def render_login(return_to: str, error: str = "") -> str:
    error_html = f'<div class="alert">{escape(error)}</div>' if error else ""
    return _page("Sign in", LOGIN_BODY.format(return_to=escape(return_to, quote=True), error=error_html))


def render_consent(ticket: str, client, scopes: list, username: str) -> str:
    """Consent page listing the pending client and scopes in request order."""
    scope_items = "\n".join(
        SCOPE_ITEM.format(name=escape(scope.name), description=escape(scope.description))
        for scope in scopes
    )
    details = ""
    if "ticket-reservation" in client.authorization_details_types:
        details = AUTHORIZATION_DETAILS_BLOCK
    body = CONSENT_BODY.format(
        username=escape(username),
        client_name=escape(client.client_name or "Unknown Application"),
        client_id=escape(client.display_id),
        scopes=scope_items,
        ticket=escape(ticket, quote=True),
        authorization_details=details,
    )
    return _page("Authorize", body)
