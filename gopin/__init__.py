"""gopin - Go tool version pinning.

Pins Go tools a project depends on, one separate module file per tool and
version, so that every developer and CI job builds exactly the same binary.
Helper files for Make and shells point at the versioned binaries in $GOBIN.
"""

from __future__ import annotations

__version__ = "0.1.0"

from . import cli, config, errors, get, helpers, index, moddir, modfile, runner, utils  # noqa: E402
from .cli import main  # noqa: E402
from .config import GopinConfig  # noqa: E402
from .get import GetConfig, parse_target  # noqa: E402
from .index import ToolEntry, list_pinned_tools  # noqa: E402
from .modfile import ModFile, Package  # noqa: E402
from .runner import Runner, Toolchain  # noqa: E402
from .utils import setup_logging  # noqa: E402

__all__ = [
    "GetConfig",
    "GopinConfig",
    "ModFile",
    "Package",
    "Runner",
    "ToolEntry",
    "Toolchain",
    "cli",
    "config",
    "errors",
    "get",
    "helpers",
    "index",
    "list_pinned_tools",
    "main",
    "moddir",
    "modfile",
    "parse_target",
    "runner",
    "setup_logging",
    "utils",
]
