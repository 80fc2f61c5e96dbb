from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import write_status
from hotspot_attach.cli.main import EXIT_ATTACH_FAILED, EXIT_CONFIG_ERROR, EXIT_OK, main


def _overlay(tmp_path: Path, procfs_root: Path) -> Path:
    p = tmp_path / "overlay.yaml"
    p.write_text(f"paths:\n  procfs_root: {procfs_root}\n", encoding="utf-8")
    return p


def test_locate_prints_paths(tmp_path: Path, procfs_root: Path, capsys: pytest.CaptureFixture[str]) -> None:
    write_status(procfs_root, 100, "NSpid:\t100\t7\n")
    code = main(["locate", "100", "--config", str(_overlay(tmp_path, procfs_root))])
    out = json.loads(capsys.readouterr().out)

    assert code == EXIT_OK
    assert out["ok"] is True
    assert out["host_pid"] == 100
    assert out["inner_pid"] == 7
    assert out["socket_path"] == f"{procfs_root}/100/root/tmp/.java_pid7"
    assert out["trigger_path"] == f"{procfs_root}/100/cwd/.attach_pid7"


def test_probe_invalid_pid_reports_error(capsys: pytest.CaptureFixture[str]) -> None:
    code = main(["probe", "not-a-pid"])
    out = json.loads(capsys.readouterr().out)
    assert code == EXIT_ATTACH_FAILED
    assert out["ok"] is False
    assert out["error"]["code"] == "INVALID_IDENTIFIER"


def test_probe_self_attach_refused(capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch) -> None:
    import os

    monkeypatch.delenv("HOTSPOT_ATTACH_ALLOW_ATTACH_SELF", raising=False)
    code = main(["probe", str(os.getpid())])
    out = json.loads(capsys.readouterr().out)
    assert code == EXIT_ATTACH_FAILED
    assert out["error"]["code"] == "SELF_ATTACH_REFUSED"
    assert out["report"]["state"] == "failed"


def test_invalid_config_exits_with_config_error(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    bad = tmp_path / "bad.yaml"
    bad.write_text("handshake:\n  unknown: 1\n", encoding="utf-8")
    code = main(["locate", "1", "--config", str(bad)])
    out = json.loads(capsys.readouterr().out)
    assert code == EXIT_CONFIG_ERROR
    assert out["error"]["code"] == "CONFIG_INVALID"


def test_missing_config_exits_with_config_error(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = main(["locate", "1", "--config", str(tmp_path / "missing.yaml")])
    out = json.loads(capsys.readouterr().out)
    assert code == EXIT_CONFIG_ERROR
    assert out["error"]["code"] == "CONFIG_LOAD_FAILED"
