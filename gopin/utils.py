"""Utility functions for gopin."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .runner import Toolchain

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:  # noqa: FBT001, FBT002
    """Configure logging level based on verbosity."""
    log_level = logging.INFO if verbose else logging.WARNING
    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )


def _first_gopath() -> str:
    gopath = os.environ.get("GOPATH", "")
    return gopath.split(os.pathsep)[0] if gopath else ""


def gobin(toolchain: Toolchain | None = None) -> Path:
    """Directory where ``go install`` would place binaries."""
    if os.environ.get("GOBIN"):
        return Path(os.environ["GOBIN"])
    gopath = _first_gopath()
    if not gopath and toolchain is not None:
        gopath = toolchain.go_env("GOPATH").split(os.pathsep)[0]
    if not gopath:
        gopath = str(Path.home() / "go")
    return Path(gopath) / "bin"


def gomodcache(toolchain: Toolchain | None = None) -> Path:
    """Root of the local Go module cache."""
    if os.environ.get("GOMODCACHE"):
        return Path(os.environ["GOMODCACHE"])
    gopath = _first_gopath()
    if gopath:
        return Path(gopath) / "pkg" / "mod"
    if toolchain is not None:
        return Path(toolchain.go_env("GOMODCACHE"))
    return Path.home() / "go" / "pkg" / "mod"


def encode_path(path: str) -> str:
    """Escape upper-case letters the way the module cache stores them.

    ``github.com/Azure/x`` is stored as ``github.com/!azure/x``.
    """
    return "".join(f"!{c.lower()}" if "A" <= c <= "Z" else c for c in path)


def install_symlink(directory: Path, target_name: str, link_name: str) -> Path:
    """Point ``directory/link_name`` at ``target_name`` with a relative symlink."""
    link = directory / link_name
    if link.is_symlink() or link.exists():
        link.unlink()
    link.symlink_to(target_name)
    logger.info("Linked %s -> %s", link, target_name)
    return link
