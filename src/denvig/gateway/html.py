"""Static pages served by the gateway's default server and error pages."""

from __future__ import annotations

from pathlib import Path
from typing import Dict

from ..paths import StoreRoot

_STYLE = """  <style>
    * { margin: 0; padding: 0; box-sizing: border-box; }
    body { font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif; background: #0a0a0a; color: #e0e0e0; display: flex; align-items: center; justify-content: center; min-height: 100vh; }
    .container { text-align: center; max-width: 480px; padding: 2rem; }
    .code { font-size: 3rem; font-weight: 700; color: #555; margin-bottom: 0.5rem; }
    h1 { font-size: 1.5rem; font-weight: 600; margin-bottom: 0.75rem; color: #fff; }
    p { font-size: 0.95rem; line-height: 1.6; color: #888; margin-bottom: 1rem; }
    a { color: #6ea4f7; text-decoration: none; }
    code { background: #1a1a1a; padding: 0.15rem 0.4rem; border-radius: 4px; font-size: 0.85rem; color: #ccc; }
  </style>
"""


def _page(title: str, body: str) -> str:
    return (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n'
        "<head>\n"
        '  <meta charset="utf-8">\n'
        '  <meta name="viewport" content="width=device-width, initial-scale=1">\n'
        f"  <title>{title}</title>\n"
        f"{_STYLE}"
        "</head>\n"
        "<body>\n"
        '  <div class="container">\n'
        f"{body}"
        "  </div>\n"
        "</body>\n"
        "</html>\n"
    )


INDEX_HTML = _page(
    "Denvig Gateway",
    "    <h1>Denvig Gateway</h1>\n"
    "    <p>This nginx server is managed by denvig.</p>\n"
    "    <p>Configure services with <code>http.domain</code> in your <code>.denvig.yml</code> to route traffic here.</p>\n",
)

ERROR_404_HTML = _page(
    "404 - Not Found",
    '    <div class="code">404</div>\n'
    "    <h1>Service Not Found</h1>\n"
    "    <p>No service is configured for this domain. Check the <code>http.domain</code> setting in <code>.denvig.yml</code>.</p>\n"
    "    <p>Inspect the gateway with <code>denvig gateway status</code></p>\n",
)

ERROR_504_HTML = _page(
    "504 - Service Unavailable",
    '    <div class="code">504</div>\n'
    "    <h1>Service Unavailable</h1>\n"
    "    <p>This service is configured but does not appear to be running. Start it with <code>denvig services start</code>.</p>\n"
    "    <p>Check service status with <code>denvig services list</code></p>\n",
)


def gateway_html_files() -> Dict[str, str]:
    return {
        "index.html": INDEX_HTML,
        "errors/404.html": ERROR_404_HTML,
        "errors/504.html": ERROR_504_HTML,
    }


def write_gateway_html_files(root: StoreRoot) -> Path:
    html_dir = root.gateway_html_dir
    for rel, content in gateway_html_files().items():
        target = html_dir / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    return html_dir
