"""Generated helper files that expose pinned binaries to build systems."""

from __future__ import annotations

import logging
from pathlib import Path

from .index import ToolEntry

logger = logging.getLogger(__name__)

MAKEFILE_NAME = "Variables.mk"
ENV_NAME = "variables.env"


def render_makefile(entries: list[ToolEntry], rel_mod_dir: str, version: str) -> str:
    """Render ``Variables.mk``: one variable and one install rule per tool."""
    first = entries[0]
    lines = [
        f"# Auto generated binary variables helper managed by gopin v{version}. DO NOT EDIT.",
        "# All tools are designed to be build inside $GOBIN.",
        "GOPATH ?= $(shell go env GOPATH)",
        "GOBIN  ?= $(firstword $(subst :, ,${GOPATH}))/bin",
        "GO     ?= $(shell which go)",
        "",
        "# Below generated variables ensure that every time a tool under each variable is invoked, the correct version",
        "# will be used; reinstalling only if needed.",
        f"# For example for {first.name} variable:",
        "#",
        "# In your main Makefile (for non array binaries):",
        "#",
        f"#include {rel_mod_dir}/Variables.mk # Assuming -moddir was set to {rel_mod_dir} .",
        "#",
        f"#command: $({first.env_var_name})",
        f'#\t@echo "Running {first.name}"',
        f"#\t@$({first.env_var_name}) <flags/args..>",
        "#",
    ]
    for e in entries:
        binaries = " ".join(f"$(GOBIN)/{e.binary_name(v.version)}" for v in e.versions)
        mod_files = " ".join(f"{rel_mod_dir}/{v.mod_file}" for v in e.versions)
        lines.append(f"{e.env_var_name} := {binaries}")
        lines.append(f"$({e.env_var_name}): {mod_files}")
        lines.append("\t@# Install binary/ries using Go 1.14+ build command. This is using gopin-controlled, separate go module with pinned dependencies.")
        for v in e.versions:
            binary = e.binary_name(v.version)
            lines.append(f'\t@echo "(re)installing $(GOBIN)/{binary}"')
            lines.append(
                f"\t@cd {rel_mod_dir} && GOWORK=off $(GO) build -mod=mod -modfile={v.mod_file} "
                f'-o=$(GOBIN)/{binary} "{e.package_path}"',
            )
        lines.append("")
    return "\n".join(lines) + "\n"


def render_env(entries: list[ToolEntry], version: str) -> str:
    """Render ``variables.env`` for sourcing from a shell."""
    lines = [
        f"# Auto generated binary variables helper managed by gopin v{version}. DO NOT EDIT.",
        "# All tools are designed to be build inside $GOBIN.",
        "# Those variables will work only until 'gopin get' was invoked, or if tools were installed via Makefile's Variables.mk.",
        "GOBIN=${GOBIN:=$(go env GOBIN)}",
        "",
        'if [ -z "$GOBIN" ]; then',
        '\tGOBIN="$(go env GOPATH)/bin"',
        "fi",
        "",
    ]
    for e in entries:
        binaries = " ".join(f"${{GOBIN}}/{e.binary_name(v.version)}" for v in e.versions)
        lines.append(f'{e.env_var_name}="{binaries}"')
        lines.append("")
    return "\n".join(lines)


def remove_helpers(mod_dir: Path) -> None:
    for name in (MAKEFILE_NAME, ENV_NAME):
        (mod_dir / name).unlink(missing_ok=True)


def gen_helpers(
    mod_dir: Path,
    rel_mod_dir: str,
    version: str,
    entries: list[ToolEntry],
) -> None:
    """Regenerate helper files, or remove them when nothing is pinned."""
    if not entries:
        logger.info("No tools pinned, removing helpers from %s", mod_dir)
        remove_helpers(mod_dir)
        return
    (mod_dir / MAKEFILE_NAME).write_text(render_makefile(entries, rel_mod_dir, version))
    (mod_dir / ENV_NAME).write_text(render_env(entries, version))
