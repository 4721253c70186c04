"""The ``get`` command: create, update, rename, clone and remove pinned tools.

Every version of a requested tool is first staged in a ``<name>[.N].tmp.mod``
file, resolved, tidied and built. Descriptors are only replaced once all
versions succeeded, so a failing request leaves the module directory as it
was (apart from staging files, which are kept for debugging).
"""

from __future__ import annotations

import logging
import posixpath
import re
from dataclasses import dataclass, field
from pathlib import Path

from rich.console import Console

from .errors import (
    ConflictingFlags,
    DescriptorError,
    DuplicateVersionInRequest,
    GopinError,
    InvalidName,
    InvalidNoneInArray,
    NotBuildable,
    ReservedName,
    ToolchainError,
    UnknownTarget,
    ValidationError,
)
from .index import list_pinned_tools
from .moddir import FAKE_ROOT_MOD_FILE, ModDir
from .modfile import Exclude, ModFile, Package, Replace, Require, Retract, read_mod
from .runner import GO_1_16, GoVersion, Toolchain, UpdatePolicy
from .utils import encode_path, gobin, gomodcache, install_symlink

console = Console()
logger = logging.getLogger(__name__)

_GO_MOD_VERSION_RE = re.compile(r"^v[0-9]*$")
_NAME_RE = re.compile(r"^[A-Za-z0-9._-]+$")
_VARIANT_SUFFIX_RE = re.compile(r"\.[0-9]+$")
_STAGING_PART_RE = re.compile(r"\.tmp(\.|$)")

NONE_VERSION = "none"
RESERVED_NAMES = ("cmd", FAKE_ROOT_MOD_FILE[: -len(".mod")])


def parse_target(raw_target: str) -> tuple[str, str, list[str]]:
    """Split ``package[@v1[,v2...]]`` or ``name[@v...]`` into its parts.

    Returns the tool name, the package path ("" when referenced by name) and
    the requested versions ([""] when none were given).
    """
    if not raw_target:
        msg = "target is empty, this should be filtered earlier"
        raise ValidationError(msg)

    name_or_package, sep, version_expr = raw_target.partition("@")
    versions = version_expr.split(",") if sep else [""]

    if len(versions) > 1:
        seen: set[str] = set()
        for v in versions:
            if v in seen:
                msg = f"version duplicates are not allowed, got: [{' '.join(versions)}]"
                raise DuplicateVersionInRequest(msg)
            seen.add(v)
            if v == NONE_VERSION:
                msg = (
                    "none is not allowed when there are more than one specified Version, "
                    f"got: [{' '.join(versions)}]"
                )
                raise InvalidNoneInArray(msg)

    name = name_or_package
    pkg_path = ""
    if "/" in name_or_package:
        pkg_path = name_or_package
        name = posixpath.basename(pkg_path)
        parts = pkg_path.split("/")
        # Major version suffixes like /v2 are not a useful tool name.
        if len(parts) > 3 and _GO_MOD_VERSION_RE.match(name):  # noqa: PLR2004
            name = parts[-2]
        name = name.lower()
        _check_not_staging_name("package", name)
    return name, pkg_path, versions


def validate_name(flag: str, value: str) -> None:
    """Reject tool names that are unsafe as file names or read back as variants."""
    if not _NAME_RE.match(value):
        msg = f"{flag}: invalid name {value!r}; only letters, digits, '.', '-' and '_' are allowed"
        raise InvalidName(msg)
    if _VARIANT_SUFFIX_RE.search(value):
        msg = f"{flag}: invalid name {value!r}; name cannot end with '.<number>'"
        raise InvalidName(msg)
    _check_not_staging_name(flag, value)


def _check_not_staging_name(flag: str, value: str) -> None:
    # <name>.tmp.mod and <name>-e.tmp.mod are staging files.
    if _STAGING_PART_RE.search(value):
        msg = f"{flag}: invalid name {value!r}; '.tmp' is reserved for staging files"
        raise InvalidName(msg)


def validate_flags(name: str, rename: str) -> None:
    """Check ``-n``/``-r`` before anything touches the disk or the toolchain."""
    if name and rename:
        msg = "both -n and -r were specified, choose one"
        raise ConflictingFlags(msg)
    if name:
        validate_name("-n", name)
    if rename:
        validate_name("-r", rename)


def validate_target_name(name: str) -> None:
    if name == "cmd":
        msg = (
            f"package would be installed with ambiguous name {name}. This is a common, but slightly "
            "annoying package layout. It's advised to choose unique name with -n flag"
        )
        raise ReservedName(msg)
    if name in RESERVED_NAMES:
        msg = f"requested binary with name {name!r}. This is impossible, choose different name using -n flag"
        raise ReservedName(msg)


def _validate_new_name(flag: str, versions: list[str], old: str, new: str) -> None:
    if new == old:
        msg = f"{flag}: cannot be the same as module name {new}"
        raise ValidationError(msg)
    if versions[0] == NONE_VERSION:
        msg = f"{flag}: cannot use with @none logic"
        raise ValidationError(msg)


@dataclass
class GetConfig:
    """Everything a ``get`` request needs besides the target expression."""

    runner: Toolchain
    mod_dir: Path
    rel_mod_dir: str = ""
    name: str = ""
    rename: str = ""
    link: bool = False
    gobin: Path | None = None
    update: UpdatePolicy = UpdatePolicy.NONE

    def __post_init__(self) -> None:
        self.mod_dir = Path(self.mod_dir)
        if not self.rel_mod_dir:
            self.rel_mod_dir = str(self.mod_dir)

    @property
    def store(self) -> ModDir:
        return ModDir(self.mod_dir)

    def bin_dir(self) -> Path:
        if self.gobin is None:
            self.gobin = gobin(self.runner)
        return self.gobin


@dataclass
class NonRequireDirectives:
    replace: list[Replace] = field(default_factory=list)
    exclude: list[Exclude] = field(default_factory=list)
    retract: list[Retract] = field(default_factory=list)


def get(config: GetConfig, raw_target: str) -> None:
    """Pin, update, rename, clone or remove the tool described by ``raw_target``.

    An empty target reinstalls every pinned tool.
    """
    validate_flags(config.name, config.rename)
    store = config.store

    if not raw_target:
        if config.name:
            msg = "name cannot be specified if no target was given"
            raise ValidationError(msg)
        if config.rename:
            msg = "rename cannot be specified if no target was given"
            raise ValidationError(msg)
        store.clean_tmp_files()
        store.ensure_exists(config.rel_mod_dir)
        get_all(config)
        return

    try:
        name, pkg_path, versions = parse_target(raw_target)
    except GopinError as e:
        e.wrap(f"parse {raw_target}")
        raise

    if config.rename:
        if pkg_path:
            msg = f"-r rename has to reference installed tool by name not path, got: {pkg_path}"
            raise ValidationError(msg)
        _validate_new_name("-r", versions, name, config.rename)
        validate_target_name(config.rename)
        taken = store.existing_mod_files(config.rename)
        if taken:
            msg = (
                f"found existing installed binaries {[p.name for p in taken]} under name you want to "
                f"rename on. Remove target name {config.rename} or use different one"
            )
            raise ValidationError(msg)
        sources = store.existing_mod_files(name)
        if not sources:
            msg = f"nothing to rename, tool {name} is not installed"
            raise UnknownTarget(msg)
        _get_versions(config, config.rename, name, "", versions, sources)
        store.remove_tool(name)
        console.print(f"✅ [green]Renamed {name} to {config.rename}[/green]")
        return

    target_name = name
    clone_sources: list[Path] | None = None
    if config.name:
        _validate_new_name("-n", versions, name, config.name)
        target_name = config.name
        if not pkg_path:
            # Clone of an installed tool under a new name.
            clone_sources = store.existing_mod_files(name)
            if not clone_sources:
                msg = f"nothing to clone, tool {name} is not installed"
                raise UnknownTarget(msg)
            taken = store.existing_mod_files(target_name)
            if taken:
                msg = (
                    f"found existing installed binaries {[p.name for p in taken]} under name you want "
                    f"to clone to. Remove target name {target_name} or use different one"
                )
                raise ValidationError(msg)
    validate_target_name(target_name)

    existing = store.existing_mod_files(target_name)
    if versions[0] == NONE_VERSION:
        if not existing:
            msg = f"nothing to delete, tool {target_name} is not installed"
            raise UnknownTarget(msg)
        store.clean_tmp_files()
        store.remove_tool(target_name)
        console.print(
            f"🗑️ [yellow]Removed {target_name} from {config.rel_mod_dir}; built binaries were left in place[/yellow]",
        )
        return

    _get_versions(
        config,
        target_name,
        name,
        pkg_path,
        versions,
        existing if clone_sources is None else clone_sources,
    )


def get_all(config: GetConfig) -> None:
    """Reinstall every pinned tool with all of its versions."""
    for entry in list_pinned_tools(config.mod_dir):
        get(config, entry.name)


def _open_source(path: Path, name: str) -> Package | None:
    try:
        with ModFile.open(path) as mf:
            return mf.direct_package
    except DescriptorError as e:
        msg = f"found unparsable mod file {path}. Uninstall it first via get {name}@none or fix it manually"
        e.wrap(msg)
        raise


def _plan_targets(
    target_name: str,
    name: str,
    pkg_path: str,
    versions: list[str],
    sources: list[Path],
) -> tuple[list[Package], list[Package | None]]:
    """Work out the package for every requested version without any side effect."""
    if versions == [""] and len(sources) > 1:
        # No version requested for an array: keep all of its versions.
        versions = [""] * len(sources)

    path_was_specified = bool(pkg_path)
    targets: list[Package] = []
    pinned: list[Package | None] = []
    for i, version in enumerate(versions):
        target = Package(version=version, rel_path=pkg_path)
        current = _open_source(sources[i], name) if i < len(sources) else None
        if current is not None:
            if target.path() and target.path() != current.path():
                if path_was_specified:
                    msg = (
                        f"found mod file {sources[i]} that has different package path {current.path()!r} "
                        f"than given {target.path()!r}. Uninstall existing tool using `{target_name}@none` "
                        "or use `-n` flag to choose different name"
                    )
                else:
                    msg = (
                        f"found array mod file {sources[i]} that has different package path "
                        f"{current.path()!r} than previous in array {target.path()!r}. Manual edit? "
                        f"Uninstall existing tool using `{target_name}@none` or use `-n` flag to choose "
                        "different name"
                    )
                raise ValidationError(msg)
            target.module_path = current.module_path
            target.rel_path = current.rel_path
            if not target.version:
                target.version = current.version
            pkg_path = target.path()
        elif i < len(sources) and not target.path():
            msg = (
                f"failed to install tool {target_name}; found empty mod file {sources[i]}; "
                "Use full path to install tool again"
            )
            raise DescriptorError(msg)
        if not target.path():
            msg = (
                f"tool referenced by name {name} that was never installed before; "
                "Use full path to install a tool"
            )
            raise UnknownTarget(msg)
        targets.append(target)
        pinned.append(current)
    return targets, pinned


def _get_versions(
    config: GetConfig,
    target_name: str,
    name: str,
    pkg_path: str,
    versions: list[str],
    sources: list[Path],
) -> None:
    store = config.store
    targets, pinned = _plan_targets(target_name, name, pkg_path, versions, sources)
    store.clean_tmp_files()
    store.ensure_exists(config.rel_mod_dir)

    staged = []
    for i, target in enumerate(targets):
        template = sources[i] if i < len(sources) else None
        try:
            staged.append(
                _stage_package(config, i, target_name, target, template, pinned[i]),
            )
        except GopinError as e:
            e.wrap(f"{store.mod_file(target_name, i).name}: getting {target}")
            raise

    for i, tmp in enumerate(staged):
        store.commit(tmp, store.mod_file(target_name, i))
    store.remove_variants_from(target_name, len(staged))
    store.clean_tmp_files()

    # Only committed binaries get the unversioned link; the last version wins.
    if config.link:
        install_symlink(config.bin_dir(), f"{target_name}-{targets[-1].version}", target_name)

    pinned_versions = ", ".join(t.version for t in targets)
    console.print(
        f"✅ [green]Pinned {target_name} to {targets[0].path()}@{pinned_versions}[/green]",
    )


def _needs_resolution(
    target: Package,
    pinned: Package | None,
    update: UpdatePolicy,
) -> bool:
    if update is not UpdatePolicy.NONE:
        return True
    if not target.module_path or not target.version.startswith("v"):
        return True
    return (
        pinned is None
        or pinned.module_path != target.module_path
        or pinned.version != target.version
    )


def _stage_package(
    config: GetConfig,
    i: int,
    name: str,
    target: Package,
    template: Path | None,
    pinned: Package | None,
) -> Path:
    """Resolve and build one version of ``name`` in a staging descriptor."""
    store = config.store
    runner = config.runner
    go_directive = runner.go_version.mod_directive()
    logger.info("getting target %s (module %s)", target, target.module_path)

    fetched: NonRequireDirectives | None = None
    if _needs_resolution(target, pinned, config.update):
        with ModFile.create(store.empty_tmp_mod_file(name, i), go_directive) as empty:
            resolve_package(runner, empty, target, config.update)
        fetched = NonRequireDirectives()
        if not target.version.endswith("+incompatible"):
            fetched = auto_fetch_directives(runner, target)
    else:
        logger.info("%s already pinned, skipping resolution", target)

    tmp_path = store.tmp_mod_file(name, i)
    with ModFile.create(tmp_path, go_directive, template=template) as mf:
        if fetched is not None and not mf.directives_auto_fetch_disabled:
            mf.set_replace_directives(fetched.replace)
            mf.set_exclude_directives(fetched.exclude)
            mf.set_retract_directives(fetched.retract)

        # Build envs and flags can only be set by editing the descriptor by hand.
        old = mf.direct_package
        if old is not None:
            target.build_envs = list(old.build_envs)
            target.build_flags = list(old.build_flags)
        mf.set_direct_require(target)
        mf.flush()

        runner.tidy(mf.path)
        mf.reload()
        install(config, name, mf)
    return tmp_path


def _apply_module(target: Package, mod: Require) -> None:
    full = target.path()
    if full == mod.path:
        target.rel_path = ""
    elif full.startswith(mod.path + "/"):
        target.rel_path = full[len(mod.path) + 1 :]
    target.module_path = mod.path
    target.version = mod.version


def resolve_package(
    runner: Toolchain,
    empty: ModFile,
    target: Package,
    update: UpdatePolicy = UpdatePolicy.NONE,
) -> None:
    """Find the module and exact version providing ``target``.

    ``go get -d`` against an empty module tells which module provides the
    package. When it fails or is ambiguous the local module cache is searched
    instead, which helps with modules depending on broken modules.
    """
    get_err: GopinError
    try:
        output = runner.get_d(empty.path, str(target), update=update)
    except ToolchainError as e:
        get_err = e
    else:
        empty.reload()
        mods = empty.indirect_modules()
        if not mods:
            msg = f"no indirect module found on {empty.path}"
            raise ToolchainError(msg, output=output)
        if len(mods) == 1:
            _apply_module(target, mods[0])
            return
        for m in mods:
            if m.path == (target.module_path or target.path()):
                _apply_module(target, m)
                return
        if target.module_path:
            msg = f"no indirect module found on {empty.path} for {target.module_path} module"
            raise ToolchainError(msg, output=output)
        get_err = ToolchainError(output, output=output)

    logger.info("go get failed to resolve %s, looking in the local module cache", target)
    try:
        resolve_in_go_mod_cache(gomodcache(runner), target)
    except GopinError as e:
        msg = f"fallback to local go mod cache resolution failed after go get failure: {get_err}"
        raise e.wrap(msg) from get_err


def _latest_version(list_file: Path) -> str:
    versions = list_file.read_text().split()
    if not versions:
        msg = f"get latest version from {list_file}: empty file"
        raise ToolchainError(msg)
    return versions[-1]


def resolve_in_go_mod_cache(cache: Path, target: Package) -> None:
    """Look up the module of ``target`` in ``cache/cache/download``.

    The package path is shortened one element at a time until a module
    directory with a matching version is found.
    """
    meta_cache = cache / "cache" / "download"
    module_path = target.path()
    lookup = encode_path(module_path)
    version = target.version

    while len(lookup.split("/")) >= 2:  # noqa: PLR2004
        meta_dir = meta_cache / lookup / "@v"
        found: str | None = None
        if not meta_dir.is_dir():
            logger.info("resolve in mod cache: %s directory does not exist", meta_dir)
        elif version in ("", "latest"):
            found = _latest_version(meta_dir / "list")
        elif version.startswith("v"):
            if (meta_dir / f"{version}.info").exists():
                found = version
            elif (meta_dir / f"{version}+incompatible.info").exists():
                found = version + "+incompatible"
            else:
                logger.info("resolve in mod cache: no %s.info in %s", version, meta_dir)
        elif len(version) > 12:  # noqa: PLR2004
            for f in sorted(meta_dir.iterdir()):
                if f.is_file() and f.name.endswith(f"{version[:12]}.info"):
                    found = f.name[: -len(".info")]
                    break
            else:
                logger.info("resolve in mod cache: no .info file for sha %s in %s", version[:12], meta_dir)

        if found is not None:
            _apply_module(target, Require(module_path, found))
            return
        lookup = posixpath.dirname(lookup)
        module_path = posixpath.dirname(module_path)

    msg = f"no module was cached matching given package {target.path()}"
    raise ToolchainError(msg)


def auto_fetch_directives(runner: Toolchain, target: Package) -> NonRequireDirectives:
    """Copy replace, exclude and retract directives from the tool's own module.

    ``go get`` leaves the module sources in the module cache, so its ``go.mod``
    can be read from there. Packages without a ``go.mod`` have none.
    """
    d = NonRequireDirectives()
    module_dir = encode_path(f"{target.module_path}@{target.version}")
    go_mod = gomodcache(runner) / module_dir / "go.mod"
    if not go_mod.exists():
        logger.info("No go.mod found at %s, assuming pre-module package", go_mod)
        return d

    upstream = read_mod(go_mod)
    if upstream.go and GoVersion.parse(upstream.go) > runner.go_version:
        logger.warning(
            "Go module you are trying to install requires higher Go version (%s) than you are using (%s). "
            "Use newer Go version to install it if you encounter build errors.",
            upstream.go,
            runner.go_version,
        )

    for r in upstream.replaces:
        if r.new_path.startswith((".", "/")):
            logger.info("Skipping replace %s pointing at a local directory", r)
            continue
        d.replace.append(r)
    d.exclude = list(upstream.excludes)
    d.retract = list(upstream.retracts)

    if d.retract and runner.go_version < GO_1_16:
        msg = "target Go module is using new 'retract' directive. Use Go1.16+ to build it"
        raise ToolchainError(msg)
    return d


def install(config: GetConfig, name: str, mf: ModFile) -> Path:
    """Build the package pinned in ``mf`` into ``<gobin>/<name>-<version>``."""
    runner = config.runner
    pkg = mf.direct_package
    if pkg is None:
        msg = f"empty module found in {mf.path}"
        raise DescriptorError(msg)
    try:
        validate_target_name(name)
    except GopinError as e:
        e.wrap(str(pkg))
        raise

    # go list with -mod=mod both checks for a main package and completes go.sum.
    list_output = runner.list(
        mf.path,
        *pkg.build_flags,
        "-mod=mod",
        "-f={{.Name}}",
        pkg.path(),
        envs=pkg.build_envs,
    )
    if not list_output.endswith("main"):
        msg = f"package {pkg.path()} is non-main (go list output {list_output!r}), nothing to get and build"
        raise NotBuildable(msg, output=list_output)

    bin_dir = config.bin_dir()
    bin_dir.mkdir(parents=True, exist_ok=True)
    bin_path = bin_dir / f"{name}-{pkg.version}"
    try:
        runner.build(mf.path, pkg.path(), bin_path, pkg.build_flags, pkg.build_envs)
    except ToolchainError as e:
        if "module declares its path as: " in e.output and f"but was required as: {pkg.path()}" in e.output:
            logger.warning(
                "The %s module is a potential fork, since go.mod has mismatching module. "
                "Building forks is not supported yet.",
                pkg.path(),
            )
        e.wrap("build versioned")
        raise
    logger.info("Built %s", bin_path)
    return bin_path
