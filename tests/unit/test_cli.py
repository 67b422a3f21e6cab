"""Tests for the kubedelta click CLI."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

from click.testing import CliRunner

from kubedelta import __version__
from kubedelta.cli import cli

_OLD = """\
apiVersion: apps/v1
kind: Deployment
metadata:
  name: web
  resourceVersion: "1"
spec:
  replicas: 1
  template:
    spec:
      containers:
        - name: web
          image: nginx:1.25
"""


def _write(tmp_path: Path, name: str, text: str) -> Path:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


class TestDiffCommand:
    def test_prints_change_set(self, tmp_path: Path) -> None:
        old = _write(tmp_path, "old.yaml", _OLD)
        new = _write(
            tmp_path,
            "new.yaml",
            _OLD.replace("replicas: 1", "replicas: 4").replace('resourceVersion: "1"', 'resourceVersion: "2"'),
        )
        result = CliRunner().invoke(cli, ["diff", str(old), str(new)])
        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == {"/spec/replicas": {"old": 1, "new": 4}}

    def test_accepts_json(self, tmp_path: Path) -> None:
        old = _write(tmp_path, "old.json", json.dumps({"spec": {"image": "a"}}))
        new = _write(tmp_path, "new.json", json.dumps({"spec": {"image": "b"}}))
        result = CliRunner().invoke(cli, ["diff", str(old), str(new)])
        assert json.loads(result.output) == {"/spec/image": {"old": "a", "new": "b"}}

    def test_no_change(self, tmp_path: Path) -> None:
        old = _write(tmp_path, "old.yaml", _OLD)
        result = CliRunner().invoke(cli, ["diff", "--exit-code", str(old), str(old)])
        assert result.exit_code == 0
        assert json.loads(result.output) == {}

    def test_exit_code_flag(self, tmp_path: Path) -> None:
        old = _write(tmp_path, "old.yaml", _OLD)
        new = _write(tmp_path, "new.yaml", _OLD.replace("nginx:1.25", "nginx:1.26"))
        result = CliRunner().invoke(cli, ["diff", "--exit-code", str(old), str(new)])
        assert result.exit_code == 1

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        old = _write(tmp_path, "old.yaml", _OLD)
        bad = _write(tmp_path, "bad.yaml", "spec: [unclosed\n")
        result = CliRunner().invoke(cli, ["diff", str(old), str(bad)])
        assert result.exit_code == 2
        assert "bad.yaml" in result.output

    def test_missing_file(self, tmp_path: Path) -> None:
        old = _write(tmp_path, "old.yaml", _OLD)
        result = CliRunner().invoke(cli, ["diff", str(old), str(tmp_path / "nope.yaml")])
        assert result.exit_code == 2


class TestOtherCommands:
    def test_version(self) -> None:
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_kinds_prints_discovered_kinds(self) -> None:
        with patch(
            "kubedelta.cli.main._discover_kinds",
            AsyncMock(return_value=["deployments.apps/v1", "pods.v1"]),
        ):
            result = CliRunner().invoke(cli, ["kinds"])
        assert result.exit_code == 0
        assert result.output.splitlines() == ["deployments.apps/v1", "pods.v1"]

    def test_kinds_reports_discovery_failure(self) -> None:
        with patch("kubedelta.cli.main._discover_kinds", AsyncMock(side_effect=ConnectionError("refused"))):
            result = CliRunner().invoke(cli, ["kinds"])
        assert result.exit_code == 1
        assert "discovery failed" in result.output

    def test_run_invokes_agent(self) -> None:
        with patch("kubedelta.app.main", AsyncMock()) as agent_main:
            result = CliRunner().invoke(cli, ["run"])
        assert result.exit_code == 0
        agent_main.assert_awaited_once()
