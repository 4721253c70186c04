"""Tests for the generated Makefile and shell helpers."""

from __future__ import annotations

from pathlib import Path

from gopin.helpers import ENV_NAME, MAKEFILE_NAME, gen_helpers, render_env, render_makefile
from gopin.index import ToolEntry, ToolVersion

ENTRIES = [
    ToolEntry(
        "f2",
        "github.com/yolo/f2",
        [ToolVersion("v1.3.0", "f2.mod"), ToolVersion("v1.4.0", "f2.1.mod")],
    ),
    ToolEntry("go-bindata", "github.com/go-bindata/go-bindata/go-bindata", [ToolVersion("v3.1.1", "go-bindata.mod")]),
]


def test_render_makefile() -> None:
    content = render_makefile(ENTRIES, ".gopin", "0.1.0")
    lines = content.splitlines()

    assert lines[0] == "# Auto generated binary variables helper managed by gopin v0.1.0. DO NOT EDIT."
    assert "#include .gopin/Variables.mk # Assuming -moddir was set to .gopin ." in lines
    assert "#command: $(F2_ARRAY)" in lines
    assert "F2_ARRAY := $(GOBIN)/f2-v1.3.0 $(GOBIN)/f2-v1.4.0" in lines
    assert "$(F2_ARRAY): .gopin/f2.mod .gopin/f2.1.mod" in lines
    assert (
        '\t@cd .gopin && GOWORK=off $(GO) build -mod=mod -modfile=f2.1.mod -o=$(GOBIN)/f2-v1.4.0 "github.com/yolo/f2"'
        in lines
    )
    assert "GO_BINDATA := $(GOBIN)/go-bindata-v3.1.1" in lines
    assert "$(GO_BINDATA): .gopin/go-bindata.mod" in lines
    assert content.endswith("\n")


def test_render_env() -> None:
    content = render_env(ENTRIES, "0.1.0")
    assert 'F2_ARRAY="${GOBIN}/f2-v1.3.0 ${GOBIN}/f2-v1.4.0"' in content.splitlines()
    assert 'GO_BINDATA="${GOBIN}/go-bindata-v3.1.1"' in content.splitlines()
    assert "GOBIN=${GOBIN:=$(go env GOBIN)}" in content


def test_gen_helpers_writes_and_removes(tmp_path: Path) -> None:
    """Helpers follow the pinned set and disappear with the last tool."""
    gen_helpers(tmp_path, ".gopin", "0.1.0", ENTRIES)
    assert (tmp_path / MAKEFILE_NAME).read_text() == render_makefile(ENTRIES, ".gopin", "0.1.0")
    assert (tmp_path / ENV_NAME).read_text() == render_env(ENTRIES, "0.1.0")

    gen_helpers(tmp_path, ".gopin", "0.1.0", [])
    assert not (tmp_path / MAKEFILE_NAME).exists()
    assert not (tmp_path / ENV_NAME).exists()

    # Removing twice is fine.
    gen_helpers(tmp_path, ".gopin", "0.1.0", [])
