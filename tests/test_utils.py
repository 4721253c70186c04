"""Tests for environment lookups and symlinks."""

from __future__ import annotations

import os
from pathlib import Path

import pytest
from _pytest.monkeypatch import MonkeyPatch
from conftest import FakeToolchain

from gopin.utils import encode_path, gobin, gomodcache, install_symlink


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("github.com/acme/tool", "github.com/acme/tool"),
        ("github.com/Azure/azure-sdk", "github.com/!azure/azure-sdk"),
        ("github.com/BurntSushi/toml@v1.0.0", "github.com/!burnt!sushi/toml@v1.0.0"),
    ],
)
def test_encode_path(path: str, expected: str) -> None:
    assert encode_path(path) == expected


def test_gobin_lookup(monkeypatch: MonkeyPatch, fake_go: FakeToolchain) -> None:
    """GOBIN wins, then the first GOPATH entry, then ``go env``."""
    monkeypatch.setenv("GOBIN", "/custom/bin")
    assert gobin(fake_go) == Path("/custom/bin")

    monkeypatch.delenv("GOBIN")
    monkeypatch.setenv("GOPATH", os.pathsep.join(["/first", "/second"]))
    assert gobin(fake_go) == Path("/first/bin")

    monkeypatch.delenv("GOPATH")
    assert gobin(fake_go) == Path("/fake/gopath/bin")
    assert fake_go.calls_to("go_env") == [("GOPATH",)]


def test_gomodcache_lookup(monkeypatch: MonkeyPatch) -> None:
    monkeypatch.setenv("GOMODCACHE", "/cache")
    assert gomodcache() == Path("/cache")

    monkeypatch.delenv("GOMODCACHE")
    monkeypatch.setenv("GOPATH", "/gp")
    assert gomodcache() == Path("/gp/pkg/mod")


def test_install_symlink_replaces_existing(tmp_path: Path) -> None:
    (tmp_path / "tool-v1.0.0").write_text("old")
    (tmp_path / "tool-v1.1.0").write_text("new")

    install_symlink(tmp_path, "tool-v1.0.0", "tool")
    install_symlink(tmp_path, "tool-v1.1.0", "tool")

    link = tmp_path / "tool"
    assert os.readlink(link) == "tool-v1.1.0"
    assert link.read_text() == "new"
