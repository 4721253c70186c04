"""Exception hierarchy for gopin."""

from __future__ import annotations


class GopinError(Exception):
    """Base class for all errors raised by gopin."""

    def wrap(self, context: str) -> GopinError:
        """Prefix the message with ``context`` while keeping the error type."""
        self.args = (f"{context}: {self}", *self.args[1:])
        return self


class ValidationError(GopinError):
    """Bad flags, names or target expressions, caught before any I/O."""


class InvalidName(ValidationError):
    """A ``-n``/``-r`` value outside the allowed character set."""


class ConflictingFlags(ValidationError):
    """Both ``-n`` and ``-r`` were given."""


class ReservedName(ValidationError):
    """The tool name would shadow the toolchain or is ambiguous."""


class UnknownTarget(ValidationError):
    """A tool referenced by name was never pinned."""


class DuplicateVersionInRequest(ValidationError):
    """The same version appears twice in one array expression."""


class InvalidNoneInArray(ValidationError):
    """``none`` was combined with other versions."""


class DescriptorError(GopinError):
    """Corrupt on-disk descriptor state."""


class ParseError(DescriptorError):
    """The descriptor does not follow the module file syntax."""

    def __init__(self, filename: str, line: int, reason: str) -> None:
        super().__init__(f"{filename}:{line}: {reason}")
        self.filename = filename
        self.line = line
        self.reason = reason


class MalformedDescriptor(DescriptorError):
    """The descriptor lacks the auto-generated sentinel comment."""


class ToolchainError(GopinError):
    """The Go toolchain exited with an error."""

    def __init__(
        self,
        message: str,
        command: list[str] | None = None,
        output: str = "",
    ) -> None:
        super().__init__(message)
        self.command = command or []
        self.output = output


class UnsupportedVersion(ToolchainError):
    """The Go toolchain is older than 1.14."""


class NotBuildable(ToolchainError):
    """The package is not a main package."""
