"""Invocation of the Go toolchain against isolated module files."""

from __future__ import annotations

import abc
import enum
import logging
import os
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .errors import ToolchainError, UnsupportedVersion

logger = logging.getLogger(__name__)

_GO_VERSION_RE = re.compile(r"^go version.* go((?:[0-9]+)(?:\.[0-9]+)?(?:\.[0-9]+)?)")

# Subcommands accepting -modfile; the flag goes right after the first one found.
MODFILE_COMMANDS = ("init", "get", "install", "list", "build")


@dataclass(frozen=True, order=True)
class GoVersion:
    major: int
    minor: int = 0
    patch: int = 0

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    def mod_directive(self) -> str:
        """Value for the ``go`` directive of newly created descriptors."""
        return f"{self.major}.{self.minor}"

    @classmethod
    def parse(cls, version: str) -> GoVersion:
        """Parse ``1``, ``1.21`` or ``1.21.3``, ignoring any pre-release suffix."""
        parts = []
        for part in version.split(".")[:3]:
            digits = re.match(r"[0-9]*", part).group()
            parts.append(int(digits) if digits else 0)
        return cls(*parts)


GO_1_14 = GoVersion(1, 14)
GO_1_16 = GoVersion(1, 16)


def parse_go_version(output: str) -> GoVersion:
    """Extract the version from ``go version`` output."""
    m = _GO_VERSION_RE.match(output)
    if m is None:
        msg = f"unexpected go version output; expected 'go version go<semver> ...; found {output}"
        raise ToolchainError(msg, output=output)
    return GoVersion.parse(m.group(1))


def is_supported_version(v: GoVersion) -> None:
    """Raise ``UnsupportedVersion`` for toolchains older than 1.14."""
    if v < GO_1_14:
        msg = f"found unsupported go version: {v}; requires go 1.14.x or higher"
        raise UnsupportedVersion(msg)


class UpdatePolicy(enum.Enum):
    NONE = "none"
    UPGRADE_MINOR = "upgrade-minor"
    UPGRADE_PATCH = "upgrade-patch"

    def flags(self) -> list[str]:
        if self is UpdatePolicy.UPGRADE_MINOR:
            return ["-u"]
        if self is UpdatePolicy.UPGRADE_PATCH:
            return ["-u=patch"]
        return []


class Toolchain(abc.ABC):
    """The operations gopin needs from the Go toolchain."""

    @property
    @abc.abstractmethod
    def go_version(self) -> GoVersion: ...

    @abc.abstractmethod
    def get_d(
        self,
        mod_file: Path,
        *packages: str,
        update: UpdatePolicy = UpdatePolicy.NONE,
    ) -> str:
        """Resolve and download ``packages`` into ``mod_file``."""

    @abc.abstractmethod
    def list(self, mod_file: Path, *args: str, envs: list[str] | None = None) -> str:
        """Run ``go list`` against ``mod_file``."""

    @abc.abstractmethod
    def build(
        self,
        mod_file: Path,
        package: str,
        out: Path,
        flags: list[str] | None = None,
        envs: list[str] | None = None,
    ) -> None:
        """Build ``package`` into ``out``."""

    @abc.abstractmethod
    def tidy(self, mod_file: Path) -> None:
        """Record the full module graph of ``mod_file`` in it and its sum file."""

    @abc.abstractmethod
    def go_env(self, *names: str) -> str:
        """Return the output of ``go env names...``."""


def insert_modfile_flag(args: list[str], mod_file: Path | None) -> list[str]:
    """Insert ``-modfile=`` right after the first subcommand that accepts it."""
    if mod_file is None:
        return list(args)
    for i, arg in enumerate(args):
        if arg in MODFILE_COMMANDS:
            return [*args[: i + 1], f"-modfile={mod_file}", *args[i + 1 :]]
    return list(args)


class Runner(Toolchain):
    """Runs the real ``go`` binary."""

    def __init__(
        self,
        go_cmd: str = "go",
        insecure: bool = False,  # noqa: FBT001, FBT002
        verbose: bool = False,  # noqa: FBT001, FBT002
        timeout: float | None = None,
        cwd: Path | None = None,
    ) -> None:
        self.go_cmd = go_cmd
        self.insecure = insecure
        self.verbose = verbose
        self.timeout = timeout
        self.cwd = cwd
        self._go_version: GoVersion | None = None

    @classmethod
    def new(
        cls,
        go_cmd: str = "go",
        insecure: bool = False,  # noqa: FBT001, FBT002
        verbose: bool = False,  # noqa: FBT001, FBT002
        timeout: float | None = None,
        cwd: Path | None = None,
    ) -> Runner:
        """Create a runner after checking that the toolchain is recent enough."""
        r = cls(go_cmd, insecure, verbose, timeout, cwd)
        try:
            output = r._exec(["version"])
        except ToolchainError as e:
            e.wrap("exec go to detect the version")
            raise
        r._go_version = parse_go_version(output)
        is_supported_version(r._go_version)
        logger.info("Using %s %s", go_cmd, r._go_version)
        return r

    @property
    def go_version(self) -> GoVersion:
        if self._go_version is None:
            msg = "go version not detected; create the runner with Runner.new"
            raise ToolchainError(msg)
        return self._go_version

    def _exec(
        self,
        args: list[str],
        mod_file: Path | None = None,
        envs: list[str] | None = None,
        cwd: Path | None = None,
    ) -> str:
        args = insert_modfile_flag(args, mod_file.absolute() if mod_file else None)
        cmd = [self.go_cmd, *args]
        env = dict(os.environ)
        for kv in envs or []:
            key, _, value = kv.partition("=")
            env[key] = value
        env["GO111MODULE"] = "on"
        env["GOWORK"] = "off"

        logger.info("exec '%s'", " ".join(cmd))
        try:
            result = subprocess.run(  # noqa: S603
                cmd,
                cwd=cwd or self.cwd,
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            msg = f"error while running command '{' '.join(cmd)}'; err: {e}"
            raise ToolchainError(msg, command=cmd) from e

        output = result.stdout.strip("\n")
        if result.returncode != 0:
            if self.verbose:
                msg = (
                    f"error while running command '{' '.join(cmd)}'; "
                    f"err: exit status {result.returncode}\n{output}"
                )
            else:
                msg = f"exit status {result.returncode}"
            raise ToolchainError(msg, command=cmd, output=output)
        return output

    def get_d(
        self,
        mod_file: Path,
        *packages: str,
        update: UpdatePolicy = UpdatePolicy.NONE,
    ) -> str:
        args = ["get", "-d"]
        if self.insecure:
            args.append("-insecure")
        args.extend(update.flags())
        return self._exec([*args, *packages], mod_file=mod_file, cwd=mod_file.parent)

    def list(self, mod_file: Path, *args: str, envs: list[str] | None = None) -> str:
        return self._exec(["list", *args], mod_file=mod_file, envs=envs, cwd=mod_file.parent)

    def build(
        self,
        mod_file: Path,
        package: str,
        out: Path,
        flags: list[str] | None = None,
        envs: list[str] | None = None,
    ) -> None:
        args = ["build", f"-o={Path(out).absolute()}", *(flags or []), package]
        output = self._exec(args, mod_file=mod_file, envs=envs, cwd=mod_file.parent)
        if output.strip():
            logger.info(output.strip())

    def tidy(self, mod_file: Path) -> None:
        self._exec(["list", "-mod=mod", "-m", "all"], mod_file=mod_file, cwd=mod_file.parent)

    def go_env(self, *names: str) -> str:
        return self._exec(["env", *names])
