"""Listing of pinned tools grouped by name."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from .errors import DescriptorError
from .moddir import ModDir
from .modfile import ModFile

logger = logging.getLogger(__name__)

TABLE_HEADER = ("Name", "Binary Name", "Package @ Version")


def name_from_mod_file(mod_file: Path) -> tuple[str, bool]:
    """Return the tool name for a descriptor and whether it is an array variant.

    ``tool.mod`` gives ``("tool", False)`` and ``tool.3.mod`` gives
    ``("tool", True)``. Only an all-digit last component marks a variant.
    """
    stem = Path(mod_file).name[: -len(".mod")]
    name, sep, last = stem.rpartition(".")
    if sep and last.isdigit():
        return name, True
    return stem, False


def env_var_name(name: str) -> str:
    return name.upper().replace(".", "_").replace("-", "_")


@dataclass
class ToolVersion:
    version: str
    mod_file: str


@dataclass
class ToolEntry:
    """All pinned versions of one tool."""

    name: str
    package_path: str
    versions: list[ToolVersion] = field(default_factory=list)

    @property
    def env_var_name(self) -> str:
        base = env_var_name(self.name)
        if len(self.versions) > 1:
            return base + "_ARRAY"
        return base

    def binary_name(self, version: str) -> str:
        return f"{self.name}-{version}"


def _direct_package(mod_file: Path) -> tuple[str, str]:
    with ModFile.open(mod_file) as mf:
        pkg = mf.direct_package
        if pkg is None:
            msg = f"empty module found in {mod_file}"
            raise DescriptorError(msg)
        return pkg.path(), pkg.version


def list_pinned_tools(
    mod_dir: Path,
    remove_malformed: bool = False,  # noqa: FBT001, FBT002
) -> list[ToolEntry]:
    """Scan ``mod_dir`` and fold its descriptors into tool entries.

    A bare ``<name>.mod`` is placed in front of the versions already collected
    for ``<name>``; numbered ``<name>.N.mod`` files are appended in scan
    order. This reproduces the order in which versions were requested.
    """
    store = ModDir(mod_dir)
    entries: list[ToolEntry] = []
    for f in store.mod_files():
        try:
            package_path, version = _direct_package(f)
        except DescriptorError as e:
            if remove_malformed:
                logger.warning("Found malformed module file %s, removing due to error: %s", f, e)
                store.remove_mod_file(f)
            else:
                logger.info("Skipping malformed module file %s: %s", f, e)
            continue

        name, _ = name_from_mod_file(f)
        tool_version = ToolVersion(version=version, mod_file=f.name)
        for entry in entries:
            if entry.name == name:
                if f.name == f"{name}.mod":
                    entry.versions.insert(0, tool_version)
                else:
                    entry.versions.append(tool_version)
                break
        else:
            entries.append(
                ToolEntry(name=name, package_path=package_path, versions=[tool_version]),
            )
    return entries


def sort_entries(entries: list[ToolEntry]) -> list[ToolEntry]:
    return sorted(entries, key=lambda e: e.name + ".mod")


def _select(entries: list[ToolEntry], target: str) -> list[ToolEntry]:
    if not target:
        return sort_entries(entries)
    return [e for e in sort_entries(entries) if e.name == target]


def table_rows(entries: list[ToolEntry], target: str = "") -> list[tuple[str, str, str]]:
    return [
        (e.name, e.binary_name(v.version), f"{e.package_path}@{v.version}")
        for e in _select(entries, target)
        for v in e.versions
    ]


def format_table(entries: list[ToolEntry], target: str = "") -> str:
    """Render the ``list`` table with a dashed rule under the header."""
    rows = table_rows(entries, target)
    widths = [
        max(len(r[col]) for r in [TABLE_HEADER, *rows]) for col in range(len(TABLE_HEADER))
    ]
    rule = tuple("-" * w for w in widths)
    lines = []
    for row in [TABLE_HEADER, rule, *rows]:
        line = "".join(cell.ljust(w + 2) for cell, w in zip(row, widths))
        lines.append(line.rstrip())
    return "\n".join(lines)


def to_json(entries: list[ToolEntry], target: str = "") -> str:
    return json.dumps(
        [
            {
                "name": e.name,
                "package": e.package_path,
                "env_var": e.env_var_name,
                "versions": [
                    {
                        "version": v.version,
                        "binary": e.binary_name(v.version),
                        "mod_file": v.mod_file,
                    }
                    for v in e.versions
                ],
            }
            for e in _select(entries, target)
        ],
        indent=2,
    )
