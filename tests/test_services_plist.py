from __future__ import annotations

import plistlib
from pathlib import Path

import pytest

from denvig.services.launchctl import LaunchctlRegistry, parse_list_output, parse_print_output
from denvig.services.plist import PlistOptions, generate_plist, generate_wrapper_script
from denvig.shell import CommandOutcome


@pytest.mark.basic
def test_wrapper_script_quotes_command_and_timestamps_output() -> None:
    script = generate_wrapper_script("npm run dev -- --port '3000'")
    lines = script.splitlines()
    assert lines[0] == "#!/bin/bash"
    assert any(line.startswith("exec > >(") and line.endswith("2>&1") for line in lines)
    assert "date -u +%Y-%m-%dT%H:%M:%SZ" in script
    assert lines[-1] == "exec /bin/bash -lc 'npm run dev -- --port '\"'\"'3000'\"'\"''"


@pytest.mark.basic
def test_plist_payload_round_trips(tmp_path: Path) -> None:
    data = generate_plist(
        PlistOptions(
            label="denvig.abc.web",
            wrapper_path=tmp_path / "run.sh",
            working_directory=tmp_path,
            standard_out_path=tmp_path / "logs" / "stdout.log",
            standard_error_path=tmp_path / "logs" / "stderr.log",
            environment_variables={"PORT": "3000", "A": "b & <c>"},
            keep_alive=False,
        )
    )
    assert data.startswith(b"<?xml")
    parsed = plistlib.loads(data)
    assert parsed["Label"] == "denvig.abc.web"
    assert parsed["ProgramArguments"] == [str(tmp_path / "run.sh")]
    assert parsed["WorkingDirectory"] == str(tmp_path)
    assert parsed["EnvironmentVariables"] == {"PORT": "3000", "A": "b & <c>"}
    assert parsed["KeepAlive"] is False
    assert parsed["RunAtLoad"] is True
    assert parsed["StandardErrorPath"].endswith("stderr.log")


@pytest.mark.basic
def test_parse_print_output() -> None:
    output = """gui/501/denvig.abc.web = {
\tactive count = 1
\tpath = /Users/dev/.denvig/services/abc.web/denvig.abc.web.plist
\tstate = running
\tprogram = /Users/dev/.denvig/services/abc.web/run.sh
\tpid = 8123
\tlast exit code = (never exited)
}"""
    info = parse_print_output(output, "denvig.abc.web")
    assert info.running
    assert info.pid == 8123
    assert info.last_exit_code is None

    crashed = parse_print_output("state = not running\n\tlast exit code = 1\n", "x")
    assert crashed.state == "not running"
    assert not crashed.running
    assert crashed.last_exit_code == 1


@pytest.mark.basic
def test_parse_list_output_filters_prefix() -> None:
    output = "PID\tStatus\tLabel\n123\t0\tdenvig.abc.web\n-\t78\tdenvig.abc.api\n-\t0\tcom.apple.foo\nbroken\n"
    entries = parse_list_output(output, "denvig.")
    assert [e.label for e in entries] == ["denvig.abc.web", "denvig.abc.api"]
    assert entries[0].pid == 123 and entries[0].status == 0
    assert entries[1].pid is None and entries[1].status == 78


@pytest.mark.basic
def test_launchctl_registry_commands(tmp_path: Path) -> None:
    calls = []

    def runner(args, **_kw) -> CommandOutcome:
        calls.append(list(args))
        if args[1] == "print":
            return CommandOutcome(success=False, output="Could not find service", returncode=113)
        return CommandOutcome(success=True, output="PID\tStatus\tLabel\n", returncode=0)

    registry = LaunchctlRegistry(uid=501, runner=runner)
    assert registry.register("denvig.x.web", tmp_path / "a.plist").success
    assert registry.unregister("denvig.x.web").success
    assert registry.info("denvig.x.web") is None
    assert registry.list("denvig.") == []
    assert calls == [
        ["launchctl", "bootstrap", "gui/501", str(tmp_path / "a.plist")],
        ["launchctl", "bootout", "gui/501/denvig.x.web"],
        ["launchctl", "print", "gui/501/denvig.x.web"],
        ["launchctl", "list"],
    ]
