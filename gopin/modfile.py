"""Reading and writing of per-tool module descriptor files.

A descriptor is a regular Go module file that pins exactly one tool:

    module _ // Auto generated by gopin. DO NOT EDIT

    go 1.24

    require github.com/acme/tool/v2 v2.1.0 // cmd/tool

The suffix comment of the single direct requirement holds the package path
relative to the module root, plus optional build envs (``KEY=VALUE``) and
build flags (``-flag``) that a user can add by hand.
"""

from __future__ import annotations

import logging
import os
import posixpath
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO

from .errors import MalformedDescriptor, ParseError

logger = logging.getLogger(__name__)

SENTINEL_COMMENT = "Auto generated by gopin. DO NOT EDIT"
NO_DIRECTIVES_FETCH = "gopin:no_directives_fetch"
INDIRECT = "indirect"


@dataclass
class Package:
    """A resolvable Go package: module, version and path inside the module.

    With an empty ``module_path`` the package is in "unknown module" mode and
    ``rel_path`` carries the full package path until resolution splits it.
    """

    module_path: str = ""
    version: str = ""
    rel_path: str = ""
    build_envs: list[str] = field(default_factory=list)
    build_flags: list[str] = field(default_factory=list)

    def path(self) -> str:
        """Full import path of the package."""
        if self.module_path and self.rel_path:
            return posixpath.join(self.module_path, self.rel_path)
        return self.module_path or self.rel_path

    def __str__(self) -> str:
        if self.version:
            return f"{self.path()}@{self.version}"
        return self.path()


@dataclass
class Require:
    path: str
    version: str
    indirect: bool = False
    comment: str = ""


@dataclass
class Replace:
    old_path: str
    old_version: str
    new_path: str
    new_version: str

    def __str__(self) -> str:
        old = f"{self.old_path} {self.old_version}".strip()
        new = f"{self.new_path} {self.new_version}".strip()
        return f"{old} => {new}"


@dataclass
class Exclude:
    path: str
    version: str


@dataclass
class Retract:
    low: str
    high: str
    rationale: str = ""

    def interval(self) -> str:
        """Render as a single version or a closed ``[low, high]`` interval."""
        if self.low == self.high:
            return self.low
        return f"[{self.low}, {self.high}]"


@dataclass
class ModSyntax:
    """Parsed contents of a module file."""

    module_path: str = ""
    module_comment: str = ""
    go: str = ""
    toolchain: str = ""
    directives_auto_fetch_disabled: bool = False
    comments: list[str] = field(default_factory=list)
    # Free-standing comments keyed by the directive they precede ("" for end of file).
    notes: dict[str, list[str]] = field(default_factory=dict)
    requires: list[Require] = field(default_factory=list)
    replaces: list[Replace] = field(default_factory=list)
    excludes: list[Exclude] = field(default_factory=list)
    retracts: list[Retract] = field(default_factory=list)


_BLOCK_DIRECTIVES = ("require", "replace", "exclude", "retract")


def _split_comment(line: str) -> tuple[str, str | None]:
    """Split ``line`` into its code and its ``//`` comment (if any)."""
    in_quote = False
    for i, ch in enumerate(line):
        if ch == '"':
            in_quote = not in_quote
        elif not in_quote and line.startswith("//", i):
            comment = line[i + 2 :]
            if comment.startswith(" "):
                comment = comment[1:]
            return line[:i].strip(), comment.rstrip()
    return line.strip(), None


def _tokens(code: str) -> list[str]:
    return [t.strip('"') for t in code.split()]


class _Parser:
    def __init__(self, filename: str, strict: bool) -> None:  # noqa: FBT001
        self.filename = filename
        self.strict = strict
        self.syntax = ModSyntax()
        self.pending: list[str] = []
        self.free: list[str] = []
        self.started = False

    def error(self, lineno: int, reason: str) -> ParseError:
        return ParseError(self.filename, lineno, reason)

    def flush_pending(self) -> None:
        self.free.extend(self.pending)
        self.pending = []

    def attach_free(self, verb: str) -> None:
        """Attach comments seen so far to the directive that follows them."""
        self.flush_pending()
        if self.free:
            if self.started:
                self.syntax.notes.setdefault(verb, []).extend(self.free)
            else:
                self.syntax.comments.extend(self.free)
            self.free = []
        self.started = self.started or bool(verb)

    def parse(self, text: str) -> ModSyntax:
        block: str | None = None
        for lineno, raw in enumerate(text.splitlines(), start=1):
            code, comment = _split_comment(raw)
            if comment is not None and comment.strip() == NO_DIRECTIVES_FETCH:
                self.syntax.directives_auto_fetch_disabled = True
                comment = None
                if not code:
                    continue
            if not code:
                if comment is None:
                    self.flush_pending()
                else:
                    self.pending.append(comment)
                continue

            if block is not None:
                if code == ")":
                    block = None
                    self.flush_pending()
                    continue
                self.directive(lineno, block, _tokens(code), comment)
                continue

            tokens = _tokens(code)
            verb = tokens[0]
            if len(tokens) == 2 and tokens[1] == "(":  # noqa: PLR2004
                if verb not in _BLOCK_DIRECTIVES:
                    if self.strict:
                        raise self.error(lineno, f"unknown block type: {verb}")
                    self.attach_free("")
                    block = "_ignored"
                    continue
                self.attach_free(verb)
                block = verb
                continue
            self.directive(lineno, verb, tokens[1:], comment)

        if block is not None:
            raise self.error(lineno, "unterminated block")
        self.attach_free("")
        return self.syntax

    def directive(  # noqa: C901, PLR0912
        self,
        lineno: int,
        verb: str,
        args: list[str],
        comment: str | None,
    ) -> None:
        s = self.syntax
        if verb == "retract":
            if comment is not None:
                rationale = comment
            else:
                rationale = "\n".join(self.pending)
                self.pending = []
            self.attach_free(verb)
            s.retracts.append(self.retract(lineno, args, rationale))
            return

        self.attach_free("" if verb == "_ignored" else verb)
        if verb == "_ignored":
            return
        if verb == "module":
            if len(args) != 1:
                raise self.error(lineno, "usage: module module/path")
            s.module_path = args[0]
            s.module_comment = comment or ""
        elif verb == "go":
            if len(args) != 1:
                raise self.error(lineno, "usage: go 1.23")
            s.go = args[0]
        elif verb == "toolchain":
            if len(args) != 1:
                raise self.error(lineno, "usage: toolchain name")
            s.toolchain = args[0]
        elif verb == "require":
            if len(args) != 2:  # noqa: PLR2004
                raise self.error(lineno, "usage: require module/path v1.2.3")
            indirect = False
            extra = comment or ""
            if extra == INDIRECT or extra.startswith(INDIRECT + ";"):
                indirect = True
                extra = extra[len(INDIRECT) :].lstrip(";").strip()
            s.requires.append(Require(args[0], args[1], indirect, extra))
        elif verb == "replace":
            s.replaces.append(self.replace(lineno, args))
        elif verb == "exclude":
            if len(args) != 2:  # noqa: PLR2004
                raise self.error(lineno, "usage: exclude module/path v1.2.3")
            s.excludes.append(Exclude(args[0], args[1]))
        elif self.strict:
            raise self.error(lineno, f"unknown directive: {verb}")

    def replace(self, lineno: int, args: list[str]) -> Replace:
        if "=>" not in args:
            raise self.error(lineno, "usage: replace module/path [v1.2.3] => other/module v1.4")
        arrow = args.index("=>")
        old, new = args[:arrow], args[arrow + 1 :]
        if len(old) not in (1, 2) or len(new) not in (1, 2):
            raise self.error(lineno, "usage: replace module/path [v1.2.3] => other/module v1.4")
        return Replace(
            old[0],
            old[1] if len(old) > 1 else "",
            new[0],
            new[1] if len(new) > 1 else "",
        )

    def retract(self, lineno: int, args: list[str], rationale: str) -> Retract:
        spec = " ".join(args)
        if spec.startswith("["):
            if not spec.endswith("]"):
                raise self.error(lineno, f"invalid retract interval: {spec}")
            bounds = [b.strip() for b in spec[1:-1].split(",")]
            if len(bounds) != 2 or not all(bounds):  # noqa: PLR2004
                raise self.error(lineno, f"invalid retract interval: {spec}")
            return Retract(bounds[0], bounds[1], rationale)
        if len(args) != 1:
            raise self.error(lineno, "usage: retract version | retract [low, high]")
        return Retract(args[0], args[0], rationale)


def parse_mod(text: str, filename: str = "go.mod", strict: bool = True) -> ModSyntax:  # noqa: FBT001, FBT002
    """Parse module file ``text``.

    In strict mode unknown directives are a ``ParseError``; otherwise they are
    skipped, which is what reading an arbitrary upstream ``go.mod`` requires.
    """
    return _Parser(filename, strict).parse(text)


def _format_block(verb: str, entries: list[str]) -> list[str]:
    if len(entries) == 1 and "\n" not in entries[0]:
        return [f"{verb} {entries[0]}"]
    lines = [f"{verb} ("]
    lines.extend("\t" + e.replace("\n", "\n\t") for e in entries)
    lines.append(")")
    return lines


def _with_comment(code: str, comment: str) -> str:
    return f"{code} // {comment}" if comment else code


def format_mod(syntax: ModSyntax) -> str:
    """Serialize ``syntax`` into the canonical module file text."""
    sections: list[list[str]] = []
    if syntax.comments:
        sections.append([f"// {c}".rstrip() for c in syntax.comments])
    sections.append([_with_comment(f"module {syntax.module_path}", syntax.module_comment)])
    notes = dict(syntax.notes)

    def add_notes(verb: str) -> None:
        if notes.get(verb):
            sections.append([f"// {c}".rstrip() for c in notes.pop(verb)])

    add_notes("go")
    header = []
    if syntax.go:
        header.append(f"go {syntax.go}")
    if syntax.directives_auto_fetch_disabled:
        header.append(f"// {NO_DIRECTIVES_FETCH}")
    if syntax.toolchain:
        if notes.get("toolchain"):
            if header:
                sections.append(header)
            add_notes("toolchain")
            header = []
        header.append(f"toolchain {syntax.toolchain}")
    if header:
        sections.append(header)

    direct = [
        _with_comment(f"{r.path} {r.version}", r.comment)
        for r in syntax.requires
        if not r.indirect
    ]
    indirect = [
        _with_comment(
            f"{r.path} {r.version}",
            f"{INDIRECT}; {r.comment}" if r.comment else INDIRECT,
        )
        for r in syntax.requires
        if r.indirect
    ]
    replaces = [str(r) for r in syntax.replaces]
    excludes = [f"{e.path} {e.version}" for e in syntax.excludes]
    retracts = []
    for r in syntax.retracts:
        if r.rationale and "\n" not in r.rationale:
            retracts.append(_with_comment(r.interval(), r.rationale))
        elif r.rationale:
            rationale = "\n".join(f"// {line}".rstrip() for line in r.rationale.split("\n"))
            retracts.append(f"{rationale}\n{r.interval()}")
        else:
            retracts.append(r.interval())

    for verb, entries in (
        ("require", direct),
        ("require", indirect),
        ("replace", replaces),
        ("exclude", excludes),
        ("retract", retracts),
    ):
        add_notes(verb)
        if entries:
            sections.append(_format_block(verb, entries))
    for verb in [*sorted(v for v in notes if v), ""]:
        add_notes(verb)

    return "\n\n".join("\n".join(s) for s in sections) + "\n"


def package_comment(pkg: Package) -> str:
    """Render the suffix comment recorded on a direct requirement."""
    tokens = [*pkg.build_envs]
    if pkg.rel_path:
        tokens.append(pkg.rel_path)
    tokens.extend(pkg.build_flags)
    return " ".join(tokens)


def package_from_require(req: Require) -> Package:
    """Rebuild the pinned package from a direct requirement."""
    pkg = Package(module_path=req.path, version=req.version)
    for token in req.comment.split():
        if token.startswith("-"):
            pkg.build_flags.append(token)
        elif "=" in token:
            pkg.build_envs.append(token)
        else:
            pkg.rel_path = token
    return pkg


def sum_file_path(mod_path: Path) -> Path:
    """Return the checksum file that accompanies ``mod_path``."""
    return mod_path.with_suffix(".sum")


def read_mod(path: Path) -> ModSyntax:
    """Read any module file (e.g. an upstream ``go.mod``) without locking it."""
    return parse_mod(path.read_text(), str(path), strict=False)


class ModFile:
    """An opened descriptor file, kept open read/write until ``close``."""

    def __init__(self, path: Path, handle: IO[str]) -> None:
        self.path = path
        self._handle = handle
        self.syntax = ModSyntax()
        self._direct: Package | None = None

    @classmethod
    def open(cls, path: Path) -> ModFile:
        """Open and validate an existing descriptor."""
        handle = path.open("r+")
        mf = cls(path, handle)
        try:
            mf.reload()
            if mf.syntax.module_comment != SENTINEL_COMMENT:
                msg = (
                    f"{path}: expected {SENTINEL_COMMENT!r} comment on module directive, "
                    f"found {mf.syntax.module_comment!r}"
                )
                raise MalformedDescriptor(msg)
        except Exception:
            handle.close()
            raise
        return mf

    @classmethod
    def create(
        cls,
        path: Path,
        go_version: str,
        template: Path | None = None,
    ) -> ModFile:
        """Create ``path`` as a copy of ``template`` or as an empty descriptor."""
        if template is not None and template.exists():
            shutil.copyfile(template, path)
            template_sum = sum_file_path(template)
            if template_sum.exists():
                shutil.copyfile(template_sum, sum_file_path(path))
            else:
                sum_file_path(path).unlink(missing_ok=True)
        else:
            syntax = ModSyntax(
                module_path="_",
                module_comment=SENTINEL_COMMENT,
                go=go_version,
            )
            path.write_text(format_mod(syntax))
            sum_file_path(path).unlink(missing_ok=True)
        return cls.open(path)

    def __enter__(self) -> ModFile:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def reload(self) -> None:
        """Re-read the file from disk."""
        self._handle.seek(0)
        self.syntax = parse_mod(self._handle.read(), str(self.path))
        self._direct = None

    def flush(self) -> None:
        """Rewrite the file from the in-memory state and reload it."""
        content = format_mod(self.syntax)
        self._handle.seek(0)
        self._handle.truncate()
        self._handle.write(content)
        self._handle.flush()
        os.fsync(self._handle.fileno())
        self.reload()

    def close(self) -> None:
        self._handle.close()

    @property
    def go_version(self) -> str:
        return self.syntax.go

    @property
    def comments(self) -> list[str]:
        return self.syntax.comments

    @property
    def directives_auto_fetch_disabled(self) -> bool:
        return self.syntax.directives_auto_fetch_disabled

    @property
    def require_directives(self) -> list[Require]:
        return self.syntax.requires

    @property
    def replace_directives(self) -> list[Replace]:
        return self.syntax.replaces

    @property
    def exclude_directives(self) -> list[Exclude]:
        return self.syntax.excludes

    @property
    def retract_directives(self) -> list[Retract]:
        return self.syntax.retracts

    @property
    def direct_package(self) -> Package | None:
        """The pinned package, or ``None`` for a descriptor without one."""
        if self._direct is None:
            for req in self.syntax.requires:
                if not req.indirect:
                    self._direct = package_from_require(req)
                    break
        return self._direct

    @property
    def direct_module(self) -> Require | None:
        for req in self.syntax.requires:
            if not req.indirect:
                return req
        return None

    def indirect_modules(self) -> list[Require]:
        return [r for r in self.syntax.requires if r.indirect]

    def set_direct_require(self, pkg: Package) -> None:
        """Drop every requirement and pin ``pkg`` as the only one."""
        self.syntax.requires = [
            Require(pkg.module_path, pkg.version, False, package_comment(pkg)),  # noqa: FBT003
        ]
        self._direct = None

    def set_replace_directives(self, directives: list[Replace]) -> None:
        self.syntax.replaces = list(directives)

    def set_exclude_directives(self, directives: list[Exclude]) -> None:
        self.syntax.excludes = list(directives)

    def set_retract_directives(self, directives: list[Retract]) -> None:
        self.syntax.retracts = list(directives)

    def set_directives_auto_fetch_disabled(self, disabled: bool) -> None:  # noqa: FBT001
        self.syntax.directives_auto_fetch_disabled = disabled
