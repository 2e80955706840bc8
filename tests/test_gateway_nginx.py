from __future__ import annotations

import json
from pathlib import Path
from typing import List

import pytest

from denvig.gateway.nginx import (
    NginxConfigOptions,
    NginxController,
    generate_nginx_config,
    generate_nginx_main_config,
    get_nginx_conf_path,
    get_nginx_config_path,
    remove_all_nginx_configs,
    write_nginx_config,
)
from denvig.shell import CommandOutcome


def _opts(tmp_path: Path, **kw) -> NginxConfigOptions:
    base = dict(
        project_id="p1",
        project_path=Path("/Users/dev/src/acme/shop"),
        project_slug="acme/shop",
        service_name="web",
        port=3000,
        domain="shop.localhost",
        html_dir=tmp_path / "html",
    )
    base.update(kw)
    return NginxConfigOptions(**base)


@pytest.mark.basic
def test_plain_http_config(tmp_path: Path) -> None:
    text = generate_nginx_config(_opts(tmp_path, cnames=["www.shop.localhost"]))

    assert text.startswith("# denvig:\n# slug: acme/shop\n# path: /Users/dev/src/acme/shop\n# service: web\n")
    assert "upstream denvig-p1--web { server 127.0.0.1:3000 max_fails=0 fail_timeout=30; }" in text
    assert "  server_name shop.localhost www.shop.localhost;" in text
    assert "  root /Users/dev/src/acme/shop/public;" in text
    assert "client_max_body_size 100M;" in text
    assert f"    alias {tmp_path / 'html'}/errors/;" in text
    assert "proxy_pass http://denvig-p1--web;" in text
    assert 'proxy_set_header Connection "upgrade";' in text
    assert "listen 443" not in text
    assert "ssl_certificate" not in text


@pytest.mark.basic
def test_tls_block_requires_both_files(tmp_path: Path) -> None:
    cert = tmp_path / "fullchain.pem"
    key = tmp_path / "privkey.pem"
    cert.write_text("c", encoding="utf-8")

    text = generate_nginx_config(_opts(tmp_path, ssl_cert_path=cert, ssl_key_path=key))
    assert "listen 443" not in text

    key.write_text("k", encoding="utf-8")
    text = generate_nginx_config(_opts(tmp_path, ssl_cert_path=cert, ssl_key_path=key))
    assert "  listen 443 ssl;\n  http2 on;\n" in text
    assert f"  ssl_certificate {cert};" in text
    assert f"  ssl_certificate_key {key};" in text
    assert "ssl_protocols TLSv1.2 TLSv1.3;" in text


@pytest.mark.basic
def test_config_paths(tmp_path: Path) -> None:
    servers = tmp_path / "nginx" / "servers"
    assert get_nginx_config_path("abc", "web", servers) == servers / "denvig.abc.web.conf"
    assert get_nginx_conf_path(servers) == tmp_path / "nginx" / "nginx.conf"


@pytest.mark.basic
def test_main_config_includes_servers(tmp_path: Path) -> None:
    servers = tmp_path / "nginx" / "servers"
    text = generate_nginx_main_config(servers, tmp_path / "html")
    assert text.startswith("# Managed by denvig")
    assert f"include {tmp_path / 'nginx'}/mime.types;" in text
    assert f"include {servers}/*;" in text
    assert "listen 80 default_server;" in text
    assert f"root {tmp_path / 'html'};" in text


@pytest.mark.basic
def test_remove_all_only_touches_denvig_files(tmp_path: Path) -> None:
    servers = tmp_path / "servers"
    assert write_nginx_config(_opts(tmp_path), servers).success
    assert write_nginx_config(_opts(tmp_path, service_name="api", port=4000), servers).success
    (servers / "mysite.conf").write_text("server {}", encoding="utf-8")
    (servers / "denvig.notes.txt").write_text("keep", encoding="utf-8")

    result = remove_all_nginx_configs(servers)
    assert result.success
    assert result.removed == ["denvig.p1.api.conf", "denvig.p1.web.conf"]
    assert sorted(p.name for p in servers.iterdir()) == ["denvig.notes.txt", "mysite.conf"]


@pytest.mark.basic
def test_remove_all_reports_missing_directory(tmp_path: Path) -> None:
    result = remove_all_nginx_configs(tmp_path / "nope")
    assert not result.success
    assert "Failed to remove nginx configs" in str(result.message)


@pytest.mark.basic
def test_nginx_controller_commands() -> None:
    calls: List[List[str]] = []

    def runner(args: List[str], **_kw) -> CommandOutcome:
        calls.append(list(args))
        if args[0] == "brew":
            payload = [{"name": "nginx", "running": True, "pid": 321, "status": "started"}]
            return CommandOutcome(success=True, output=json.dumps(payload), returncode=0)
        return CommandOutcome(success=True, returncode=0)

    controller = NginxController(nginx_bin="/usr/local/bin/nginx", runner=runner)
    assert controller.reload().success
    assert controller.status() == {"running": True, "pid": 321, "status": "started"}
    assert calls == [["/usr/local/bin/nginx", "-s", "reload"], ["brew", "services", "info", "nginx", "--json"]]


@pytest.mark.basic
def test_nginx_status_tolerates_bad_output() -> None:
    controller = NginxController(runner=lambda args, **_kw: CommandOutcome(success=True, output="not json"))
    assert controller.status() == {"running": False, "pid": None, "status": None}
    failing = NginxController(runner=lambda args, **_kw: CommandOutcome(success=False, output="brew: not found"))
    assert failing.status()["running"] is False
