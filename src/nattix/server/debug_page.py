"""Self-contained debug error page renderer.

Plain f-strings, no template engine, so a broken template setup cannot
prevent error reporting. Shows the error level, message, the file and
line the exception was raised from, and the traceback.
"""

import html
import traceback
from typing import Any

LEVEL_STYLES: dict[str, str] = {
    "error": "background-color: tomato; color: #FFFFFF;",
    "warning": "background-color: #FFA500; color: #000000;",
    "info": "background-color: #007BFF; color: #FFFFFF;",
    "critical": "background-color: #FF0000; color: #FFFFFF; font-weight: bold;",
}

_CSS = """\
body { margin: 0; padding: 0; background-color: #F0F0F0; font-family: sans-serif; }
.error-container { display: flex; align-items: center; justify-content: center;
  min-height: 100vh; }
.error-box { background-color: #FFF; width: 80%; max-width: 900px;
  border: 1px solid #E0E0E0; border-radius: 5px; padding: 20px; }
h2 { text-transform: uppercase; color: #333; text-align: center; }
.error-level { border-radius: 5px; padding: 10px; margin-top: 10px; }
pre { overflow-x: auto; background: #1a1b26; color: #c0caf5; padding: 1em;
  border-radius: 5px; font-size: 13px; }
"""


def error_origin(exc: BaseException) -> tuple[str, int]:
    """File and line of the innermost frame of *exc*'s traceback."""
    frames = traceback.extract_tb(exc.__traceback__)
    if not frames:
        return "<unknown>", 0
    last = frames[-1]
    return last.filename, last.lineno or 0


def error_level(exc: BaseException) -> str:
    level = getattr(exc, "level", "error")
    return level if level in LEVEL_STYLES else "error"


def render_debug_page(exc: BaseException, request: Any = None) -> str:
    """Full HTML page describing *exc*."""
    level = error_level(exc)
    filename, lineno = error_origin(exc)
    message = f"{type(exc).__name__}: {exc}"
    trace = "".join(traceback.format_exception(exc))

    request_line = ""
    if request is not None:
        request_line = (
            f"<p><strong>Request:</strong> {html.escape(request.method)} "
            f"{html.escape(request.path)}</p>"
        )

    return f"""\
<!DOCTYPE html>
<html lang="en-us">
<head>
<meta charset="utf-8">
<title>Nattix Error</title>
<style>{_CSS}</style>
</head>
<body>
<div class="error-container">
<div class="error-box">
<h2>Nattix Error</h2>
<div class="error-level" style="{LEVEL_STYLES[level]}">
<strong>{level}:</strong> {html.escape(message)}
<p><strong>File:</strong> {html.escape(filename)}</p>
<p><strong>Line:</strong> {lineno}</p>
</div>
{request_line}
<pre>{html.escape(trace)}</pre>
</div>
</div>
</body>
</html>
"""
