"""Tests for the go command runner."""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from gopin.errors import ToolchainError, UnsupportedVersion
from gopin.runner import (
    GoVersion,
    Runner,
    UpdatePolicy,
    insert_modfile_flag,
    is_supported_version,
    parse_go_version,
)


@pytest.mark.parametrize(
    ("output", "expected", "supported"),
    [
        ("go version go1.12rc1 linux/amd64", GoVersion(1, 12), False),
        ("go version go1.13.2 darwin/amd64", GoVersion(1, 13, 2), False),
        ("go version go1.14 linux/amd64", GoVersion(1, 14), True),
        ("go version go1.16beta1 linux/amd64", GoVersion(1, 16), True),
        ("go version go1.24.1 linux/arm64", GoVersion(1, 24, 1), True),
        ("go version devel +abc go1.22.0 linux/amd64", GoVersion(1, 22), True),
        ("go version go2 linux/amd64", GoVersion(2), True),
    ],
)
def test_parse_go_version(output: str, expected: GoVersion, supported: bool) -> None:  # noqa: FBT001
    v = parse_go_version(output)
    assert v == expected
    if supported:
        is_supported_version(v)
    else:
        with pytest.raises(UnsupportedVersion, match="requires go 1.14.x or higher"):
            is_supported_version(v)


def test_parse_go_version_unexpected_output() -> None:
    with pytest.raises(ToolchainError) as excinfo:
        parse_go_version("gcc (GCC) 13.2.0")
    assert str(excinfo.value) == (
        "unexpected go version output; expected 'go version go<semver> ...; found gcc (GCC) 13.2.0"
    )


def test_go_version_ordering() -> None:
    assert GoVersion(1, 15, 9) < GoVersion(1, 16)
    assert GoVersion.parse("1.21rc2") == GoVersion(1, 21)
    assert GoVersion(1, 24, 1).mod_directive() == "1.24"
    assert str(GoVersion(1, 24)) == "1.24.0"


@pytest.mark.parametrize(
    ("args", "expected"),
    [
        (["get", "-d", "x"], ["get", "-modfile=/m/a.mod", "-d", "x"]),
        (["list", "-m", "all"], ["list", "-modfile=/m/a.mod", "-m", "all"]),
        (["build", "-o=out", "pkg"], ["build", "-modfile=/m/a.mod", "-o=out", "pkg"]),
        (["env", "GOPATH"], ["env", "GOPATH"]),
    ],
)
def test_insert_modfile_flag(args: list[str], expected: list[str]) -> None:
    assert insert_modfile_flag(args, Path("/m/a.mod")) == expected
    assert insert_modfile_flag(args, None) == args


def test_update_policy_flags() -> None:
    assert UpdatePolicy.NONE.flags() == []
    assert UpdatePolicy.UPGRADE_MINOR.flags() == ["-u"]
    assert UpdatePolicy.UPGRADE_PATCH.flags() == ["-u=patch"]
    assert UpdatePolicy("upgrade-patch") is UpdatePolicy.UPGRADE_PATCH


def completed(returncode: int = 0, stdout: str = "") -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout)


def test_exec_environment(tmp_path: Path) -> None:
    """Module mode is forced and workspaces are ignored."""
    runner = Runner("go", insecure=True)
    mod_file = tmp_path / "tool.tmp.mod"
    with patch("subprocess.run", return_value=completed(stdout="\n")) as mock_run:
        runner.get_d(mod_file, "github.com/acme/tool@v1.0.0", update=UpdatePolicy.UPGRADE_MINOR)

    cmd = mock_run.call_args.args[0]
    assert cmd == [
        "go",
        "get",
        f"-modfile={mod_file}",
        "-d",
        "-insecure",
        "-u",
        "github.com/acme/tool@v1.0.0",
    ]
    kwargs = mock_run.call_args.kwargs
    assert kwargs["env"]["GO111MODULE"] == "on"
    assert kwargs["env"]["GOWORK"] == "off"
    assert kwargs["cwd"] == tmp_path


def test_build_passes_envs_and_flags(tmp_path: Path) -> None:
    runner = Runner("go")
    mod_file = tmp_path / "tool.mod"
    with patch("subprocess.run", return_value=completed()) as mock_run:
        runner.build(mod_file, "github.com/acme/tool", tmp_path / "tool-v1.0.0", ["-tags=netgo"], ["CGO_ENABLED=0"])

    cmd = mock_run.call_args.args[0]
    assert cmd[1:4] == ["build", f"-modfile={mod_file}", f"-o={tmp_path / 'tool-v1.0.0'}"]
    assert cmd[-2:] == ["-tags=netgo", "github.com/acme/tool"]
    assert mock_run.call_args.kwargs["env"]["CGO_ENABLED"] == "0"


def test_exec_failure_message(tmp_path: Path) -> None:
    """Only verbose runners include the command and its output."""
    mod_file = tmp_path / "tool.mod"
    failed = completed(returncode=1, stdout="go: module github.com/x/y: not found\n")

    with patch("subprocess.run", return_value=failed):
        with pytest.raises(ToolchainError) as excinfo:
            Runner("go").list(mod_file, "-m", "all")
    assert str(excinfo.value) == "exit status 1"
    assert excinfo.value.output == "go: module github.com/x/y: not found"

    with patch("subprocess.run", return_value=failed):
        with pytest.raises(ToolchainError) as excinfo:
            Runner("go", verbose=True).list(mod_file, "-m", "all")
    assert str(excinfo.value) == (
        f"error while running command 'go list -modfile={mod_file} -m all'; err: exit status 1\n"
        "go: module github.com/x/y: not found"
    )


def test_exec_missing_binary() -> None:
    with patch("subprocess.run", side_effect=FileNotFoundError("no such file: gox")):
        with pytest.raises(ToolchainError, match="gox env"):
            Runner("gox").go_env("GOPATH")


def test_new_detects_version() -> None:
    with patch("subprocess.run", return_value=completed(stdout="go version go1.21.5 linux/amd64\n")):
        runner = Runner.new("go")
    assert runner.go_version == GoVersion(1, 21, 5)

    with patch("subprocess.run", return_value=completed(stdout="go version go1.13 linux/amd64\n")):
        with pytest.raises(UnsupportedVersion):
            Runner.new("go")

    with pytest.raises(ToolchainError, match="Runner.new"):
        _ = Runner("go").go_version


def test_new_exec_failure() -> None:
    mock_run = MagicMock(side_effect=OSError("permission denied"))
    with patch("subprocess.run", mock_run):
        with pytest.raises(ToolchainError, match="exec go to detect the version"):
            Runner.new("go")
