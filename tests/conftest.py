"""Configuration for pytest fixtures used in gopin tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import pytest

from gopin.errors import ToolchainError
from gopin.get import GetConfig
from gopin.modfile import Require, format_mod, parse_mod
from gopin.runner import GoVersion, Toolchain, UpdatePolicy

DEFAULT_MODULES = {
    "github.com/acme/tool": ["v1.0.0", "v1.1.0", "v1.2.0"],
    "github.com/acme/multi/v2": ["v2.0.0", "v2.1.0"],
    "github.com/acme/lib": ["v0.1.0"],
    "github.com/yolo/f2": ["v1.0.0", "v1.1.0", "v1.2.0", "v1.3.0", "v1.4.0", "v1.5.0"],
}
NON_MAIN = {"github.com/acme/lib"}


class FakeToolchain(Toolchain):
    """Scripted stand-in for the go command that records every call.

    ``modules`` maps module paths to their published versions (latest last).
    Any package below a module path belongs to that module.
    """

    def __init__(
        self,
        modules: dict[str, list[str]] | None = None,
        non_main: set[str] | None = None,
        version: GoVersion = GoVersion(1, 24, 1),  # noqa: B008
        gopath: str = "/fake/gopath",
    ) -> None:
        self.modules = dict(DEFAULT_MODULES if modules is None else modules)
        self.non_main = set(NON_MAIN if non_main is None else non_main)
        self.failing_builds: set[str] = set()  # binary names
        self.version = version
        self.gopath = gopath
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    @property
    def go_version(self) -> GoVersion:
        return self.version

    def calls_to(self, method: str) -> list[tuple[Any, ...]]:
        return [args for name, args in self.calls if name == method]

    def _module_for(self, package: str) -> str | None:
        matches = [m for m in self.modules if package == m or package.startswith(m + "/")]
        return max(matches, key=len) if matches else None

    def get_d(
        self,
        mod_file: Path,
        *packages: str,
        update: UpdatePolicy = UpdatePolicy.NONE,
    ) -> str:
        self.calls.append(("get_d", (mod_file, *packages)))
        syntax = parse_mod(mod_file.read_text())
        for p in packages:
            path, _, version = p.partition("@")
            module = self._module_for(path)
            if module is None:
                msg = "exit status 1"
                raise ToolchainError(msg, output=f"go: module {path}: not found")
            versions = self.modules[module]
            if version in ("", "latest"):
                version = versions[-1]
            elif version not in versions:
                msg = "exit status 1"
                raise ToolchainError(msg, output=f"go: {p}: invalid version: unknown revision")
            syntax.requires.append(Require(module, version, indirect=True))
        mod_file.write_text(format_mod(syntax))
        return ""

    def list(self, mod_file: Path, *args: str, envs: list[str] | None = None) -> str:
        self.calls.append(("list", (mod_file, *args)))
        package = args[-1]
        if self._module_for(package) in self.non_main:
            return "lib"
        return "main"

    def build(
        self,
        mod_file: Path,
        package: str,
        out: Path,
        flags: list[str] | None = None,
        envs: list[str] | None = None,
    ) -> None:
        self.calls.append(("build", (mod_file, package, out)))
        if out.name in self.failing_builds:
            msg = "exit status 1"
            raise ToolchainError(msg, output=f"{package}: build failed")
        out.write_text(f"#!/bin/sh\necho {package}\n")
        out.chmod(0o755)

    def tidy(self, mod_file: Path) -> None:
        self.calls.append(("tidy", (mod_file,)))

    def go_env(self, *names: str) -> str:
        self.calls.append(("go_env", names))
        return self.gopath


@pytest.fixture
def fake_go() -> FakeToolchain:
    """A fake toolchain knowing a handful of modules."""
    return FakeToolchain()


@pytest.fixture
def mod_dir(tmp_path: Path) -> Path:
    return tmp_path / ".gopin"


@pytest.fixture
def gobin_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolated GOBIN and module cache."""
    gobin = tmp_path / "bin"
    monkeypatch.setenv("GOBIN", str(gobin))
    monkeypatch.setenv("GOMODCACHE", str(tmp_path / "modcache"))
    return gobin


@pytest.fixture
def make_config(
    fake_go: FakeToolchain,
    mod_dir: Path,
    gobin_dir: Path,
) -> Callable[..., GetConfig]:
    """Create a ``GetConfig`` bound to the fake toolchain.

    Usage:
        get(make_config(name="other"), "github.com/acme/tool@v1.0.0")
    """

    def _make(**kwargs: Any) -> GetConfig:
        return GetConfig(runner=fake_go, mod_dir=mod_dir, gobin=gobin_dir, **kwargs)

    return _make


def snapshot(directory: Path) -> dict[str, bytes]:
    """File name to content mapping of ``directory``."""
    if not directory.exists():
        return {}
    return {p.name: p.read_bytes() for p in sorted(directory.iterdir()) if p.is_file()}
