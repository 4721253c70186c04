"""The module directory: the only persisted state of gopin."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from rich.console import Console

from .modfile import sum_file_path

console = Console()
logger = logging.getLogger(__name__)

FAKE_ROOT_MOD_FILE = "go.mod"
TMP_SUFFIX = ".tmp.mod"

FAKE_ROOT_MOD = (
    "module _ // Fake go.mod auto-created by 'gopin' for go -moddir compatibility "
    "with non-Go projects. Commit this file, together with other .mod files."
)

README_FMT = """# Project Development Dependencies.

This is directory which stores Go modules with pinned buildable package that is used within this repository, managed by gopin.

* Run `gopin get` to install all tools having each own module file in this directory.
* Run `gopin get <tool>` to install <tool> that have own module file in this directory.
* For Makefile: Make sure to put `include {dir}/Variables.mk` in your Makefile, then use $(<upper case tool name>) variable where <tool> is the {dir}/<tool>.mod.
* For shell: Run `source {dir}/variables.env` to source all environment variable for each tool.
* See `gopin --help` on how to add, remove or change binaries dependencies.

## Requirements

* Go 1.14+
"""

GITIGNORE = """
# Ignore everything
*

# But not these files:
!.gitignore
!*.mod
!*.sum
!README.md
!Variables.mk
!variables.env

*tmp.mod
"""


def variant_index(stem: str, name: str) -> int | None:
    """Return N for a ``<name>.N`` stem, 0 for ``<name>`` and None otherwise."""
    if stem == name:
        return 0
    prefix = name + "."
    if stem.startswith(prefix) and stem[len(prefix) :].isdigit():
        return int(stem[len(prefix) :])
    return None


class ModDir:
    """Directory holding one descriptor (plus checksum file) per tool version."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def __repr__(self) -> str:
        return f"ModDir({str(self.path)!r})"

    def mod_file(self, name: str, i: int = 0) -> Path:
        """Descriptor of the i-th version of tool ``name``."""
        if i == 0:
            return self.path / f"{name}.mod"
        return self.path / f"{name}.{i}.mod"

    def tmp_mod_file(self, name: str, i: int = 0) -> Path:
        """Staging descriptor for the i-th version of tool ``name``."""
        return self.mod_file(name, i).with_suffix(TMP_SUFFIX)

    def empty_tmp_mod_file(self, name: str, i: int = 0) -> Path:
        """Scratch module used to resolve the i-th version of ``name``."""
        stem = self.mod_file(name, i).name[: -len(".mod")]
        return self.path / f"{stem}-e{TMP_SUFFIX}"

    def mod_files(self) -> list[Path]:
        """All tool descriptors in sorted order."""
        if not self.path.is_dir():
            return []
        return sorted(
            p
            for p in self.path.glob("*.mod")
            if p.name != FAKE_ROOT_MOD_FILE and not p.name.endswith(TMP_SUFFIX)
        )

    def existing_mod_files(self, name: str) -> list[Path]:
        """Descriptors of tool ``name``, ordered by version index."""
        found = []
        for p in self.mod_files():
            i = variant_index(p.stem, name)
            if i is not None:
                found.append((i, p))
        return [p for _, p in sorted(found)]

    def remove_mod_file(self, mod_file: Path) -> None:
        mod_file.unlink(missing_ok=True)
        sum_file_path(mod_file).unlink(missing_ok=True)

    def remove_tool(self, name: str) -> list[Path]:
        """Delete every descriptor of tool ``name``; built binaries are untouched."""
        removed = self.existing_mod_files(name)
        for p in removed:
            self.remove_mod_file(p)
        return removed

    def remove_variants_from(self, name: str, count: int) -> None:
        """Delete array descriptors of ``name`` with an index >= ``count``."""
        for p in self.existing_mod_files(name):
            if variant_index(p.stem, name) >= count:
                logger.info("Removing unused array descriptor %s", p)
                self.remove_mod_file(p)

    def commit(self, tmp_mod_file: Path, mod_file: Path) -> None:
        """Move a staged descriptor and its checksum file into place."""
        tmp_sum = sum_file_path(tmp_mod_file)
        os.replace(tmp_mod_file, mod_file)
        if tmp_sum.exists():
            os.replace(tmp_sum, sum_file_path(mod_file))
        else:
            sum_file_path(mod_file).unlink(missing_ok=True)

    def clean_tmp_files(self) -> None:
        """Remove staging files left by a previous run."""
        if not self.path.is_dir():
            return
        for p in self.path.glob("*.tmp.*"):
            p.unlink()

    def ensure_exists(self, rel_mod_dir: str) -> None:
        """Create the directory together with its fake root module and docs."""
        if not self.path.exists():
            console.print(
                f"📁 [blue]gopin not used before here, creating directory for pinned modules at {rel_mod_dir}[/blue]",
            )
            self.path.mkdir(parents=True)
        (self.path / FAKE_ROOT_MOD_FILE).write_text(FAKE_ROOT_MOD)
        (self.path / "README.md").write_text(README_FMT.format(dir=rel_mod_dir))
        (self.path / ".gitignore").write_text(GITIGNORE)
