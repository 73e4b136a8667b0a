"""Minimal Flask demo app for FlowPilot runs.

This app provides a signup flow that exercises the field heuristics:
  - Homepage with a collapsible "Authentication" menu
  - Signup page with separate first/last name, password and confirm password
  - OTP page with six one-character boxes
  - Dashboard page shown after successful verification

Run: python app.py
Then: flowpilot run plan.yaml -s selectors.yaml -d data.yaml --no-headless
"""

from flask import Flask, redirect, render_template_string, request, session, url_for

app = Flask(__name__)
app.secret_key = "flowpilot-demo-secret-key"

DEMO_OTP = "123456"

_LAYOUT = """<!doctype html>
<html>
<head>
  <title>FlowPilot Demo</title>
  <style>
    body { font-family: sans-serif; display: flex; margin: 0; }
    nav { width: 200px; padding: 1rem; background: #f3f3f3; min-height: 100vh; }
    nav details a { display: block; margin: .4rem 0 0 .8rem; }
    main { padding: 2rem; }
    label { display: block; margin-top: .8rem; }
    .otp input { width: 2rem; text-align: center; font-size: 1.4rem; }
    .error { color: #b00020; }
  </style>
</head>
<body>
  <nav>
    <details {% if menu_open %}open{% endif %}>
      <summary><a href="#" onclick="return false;">Authentication</a></summary>
      <a href="{{ url_for('signup') }}">Sign Up</a>
      <a href="{{ url_for('verify_otp') }}">Verify OTP</a>
    </details>
  </nav>
  <main>{{ body | safe }}</main>
</body>
</html>"""

_HOME = """<h1>Welcome</h1><p>Open the Authentication menu to create an account.</p>"""

_SIGNUP = """<h1>Create Account</h1>
{% if error %}<p class="error">{{ error }}</p>{% endif %}
<form method="post">
  <label>First Name <input name="firstName" placeholder="First Name"></label>
  <label>Last Name <input name="lastName" placeholder="Last Name"></label>
  <label>Email <input type="email" name="email" placeholder="Email"></label>
  <label>Password <input type="password" name="password" placeholder="Password"></label>
  <label>Confirm Password <input type="password" name="confirmPassword" placeholder="Confirm Password"></label>
  <button type="submit">Create Account</button>
</form>"""

_OTP = """<h1>Verify OTP</h1>
{% if error %}<p class="error">{{ error }}</p>{% endif %}
<form method="post" class="otp">
  {% for i in range(6) %}<input name="d{{ i }}" maxlength="1" inputmode="numeric" aria-label="Digit {{ i + 1 }}">{% endfor %}
  <button type="submit">Verify</button>
</form>"""

_DASHBOARD = """<h1>Dashboard</h1><p>Signed up as {{ name }} ({{ email }}).</p>"""


def _page(body: str, menu_open: bool = False, **context) -> str:
    return render_template_string(_LAYOUT, body=render_template_string(body, **context), menu_open=menu_open)


@app.route("/")
def homepage():
    """Landing page with the collapsed Authentication menu."""
    return _page(_HOME)


@app.route("/signup", methods=["GET", "POST"])
def signup():
    """Signup form with split name fields and password confirmation."""
    if request.method == "POST":
        form = request.form
        fields = ("firstName", "lastName", "email", "password", "confirmPassword")
        if not all(form.get(f) for f in fields):
            return _page(_SIGNUP, menu_open=True, error="Please fill in all fields.")
        if form["password"] != form["confirmPassword"]:
            return _page(_SIGNUP, menu_open=True, error="Passwords do not match.")
        session["name"] = f"{form['firstName']} {form['lastName']}"
        session["email"] = form["email"]
        return redirect(url_for("verify_otp"))
    return _page(_SIGNUP, menu_open=True, error=None)


@app.route("/verify-otp", methods=["GET", "POST"])
def verify_otp():
    """Six single-digit boxes; the demo code is 123456."""
    if request.method == "POST":
        code = "".join(request.form.get(f"d{i}", "") for i in range(6))
        if code != DEMO_OTP:
            return _page(_OTP, menu_open=True, error="Invalid code.")
        return redirect(url_for("dashboard"))
    return _page(_OTP, menu_open=True, error=None)


@app.route("/dashboard")
def dashboard():
    """Dashboard page shown after successful verification."""
    return _page(
        _DASHBOARD,
        name=session.get("name", "Demo User"),
        email=session.get("email", "user@example.com"),
    )


if __name__ == "__main__":
    app.run(host="127.0.0.1", port=5000, debug=True)
