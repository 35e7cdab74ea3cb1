import os
import re
import json
import logging
import threading
from dataclasses import dataclass
from typing import Optional
from datetime import datetime, timedelta, timezone
from flask import Flask, current_app, request, render_template_string


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=LOG_LEVEL, format="%(message)s")
logger = logging.getLogger("crash-demo")

COOKIE_NAME = "crashCount"
COOKIE_TTL = timedelta(hours=1)
ERROR_THRESHOLD = 5
COUNTER_PATTERN = re.compile(r"\s*\+?[0-9]+\s*")

BUTTON_COLOR = "#22c55e"
BUTTON_HOVER = "#15803d"


class SimulatedFault(RuntimeError):
    """Raised on purpose once the click threshold is passed with injection on."""


@dataclass(frozen=True)
class Settings:
    inject_error: bool = False
    port: int = 8080


def load_settings() -> Settings:
    return Settings(
        inject_error=os.getenv("INJECT_ERROR") == "1",
        port=int(os.getenv("PORT", "8080")),
    )


def log_json(level_func, payload: dict) -> None:
    payload = {
        **payload,
        "pid": os.getpid(),
        "tid": threading.get_ident(),
    }
    level_func(json.dumps(payload, ensure_ascii=False))


def parse_counter(raw) -> int:
    if raw is None:
        return 0

    # plain ASCII decimal only; int() alone would take "1_0" or non-ASCII digits
    if not COUNTER_PATTERN.fullmatch(raw):
        log_json(logger.warning, {"event": "cookie_parse_failed", "value": raw})
        return 0
    return int(raw)


def next_counter(current: int, safe_mode: bool, button_pressed: bool) -> int:
    # safe mode wins over a press
    if safe_mode:
        return 0
    if button_pressed:
        return current + 1
    return current


def should_fail(settings: Settings, safe_mode: bool, button_pressed: bool, counter: int) -> bool:
    return settings.inject_error and not safe_mode and button_pressed and counter > ERROR_THRESHOLD


PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>Button Click Demo</title>
    <style>
        body {
            background: #f8fafc;
            font-family: 'Segoe UI', Arial, sans-serif;
            text-align: center;
            margin: 0; padding: 0;
        }
        .container {
            margin-top: 80px;
            background: #fff;
            border-radius: 18px;
            box-shadow: 0 6px 24px rgba(0,0,0,0.08);
            display: inline-block;
            padding: 40px 36px 36px 36px;
        }
        .number {
            font-size: 3.2em;
            color: #2563eb;
            margin-bottom: 18px;
        }
        .note {
            margin-top: 12px;
            color: #ad6800;
            font-size: 1em;
        }
        .warning {
            margin-top: 30px;
            color: #b91c1c;
            font-weight: bold;
            font-size: 1.3em;
        }
        button {
            margin-top: 30px;
            background: {{ button_color }};
            color: #fff;
            border: none;
            border-radius: 6px;
            font-size: 1.2em;
            padding: 12px 28px;
            cursor: pointer;
            transition: background 0.2s;
        }
        button:hover:enabled {
            background: {{ button_hover }};
        }
        .safe-btn {
            margin-top: 16px;
            background: #2563eb;
            font-size: 1em;
            padding: 8px 22px;
        }
        .safe-btn:hover:enabled {
            background: #1e40af;
        }
    </style>
</head>
<body>
    <div class="container">
        <div class="number" id="counter">{{ counter }}</div>
        <form method="GET" style="display:inline">
            <input type="hidden" name="crash" value="1" />
            <button id="incrementBtn" type="submit">Increment</button>
        </form>
        <form method="GET" style="display:inline">
            <input type="hidden" name="safe" value="1" />
            <button class="safe-btn" type="submit">Reset Counter</button>
        </form>
        {% if inject_error %}
        <div class="note">Button clicked <b>{{ counter }}</b> times (error on {{ threshold + 1 }}th click).</div>
        <div class="warning">ERROR INJECTION ENABLED: Simulated error will occur after {{ threshold }} clicks.<br/>This is for troubleshooting demos.<br/>To stop the HTTP 500s, append "?safe=1" to the URL.</div>
        {% endif %}
        <div class="note">Note: For the demo to work, set app setting <b>INJECT_ERROR=1</b> on the slot you want to simulate errors!</div>
    </div>
</body>
</html>
"""


def create_app(settings: Optional[Settings] = None) -> Flask:
    flask_app = Flask(__name__)
    flask_app.config["SETTINGS"] = settings if settings is not None else load_settings()

    @flask_app.get("/")
    def index():
        settings = current_app.config["SETTINGS"]
        safe_mode = "safe" in request.args
        button_pressed = "crash" in request.args

        counter = next_counter(parse_counter(request.cookies.get(COOKIE_NAME)), safe_mode, button_pressed)
        if safe_mode:
            log_json(logger.info, {"event": "reset", "counter": counter})
        elif button_pressed:
            log_json(logger.info, {"event": "increment", "counter": counter})

        if should_fail(settings, safe_mode, button_pressed, counter):
            log_json(logger.error, {"event": "simulated_fault", "counter": counter})
            raise SimulatedFault(f"Simulated error after {ERROR_THRESHOLD} button clicks!")

        body = render_template_string(
            PAGE_TEMPLATE,
            counter=counter,
            inject_error=settings.inject_error,
            threshold=ERROR_THRESHOLD,
            button_color=BUTTON_COLOR,
            button_hover=BUTTON_HOVER,
        )
        response = current_app.make_response(body)
        response.set_cookie(COOKIE_NAME, str(counter), expires=datetime.now(timezone.utc) + COOKIE_TTL)
        return response

    return flask_app


app = create_app()


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=app.config["SETTINGS"].port)
