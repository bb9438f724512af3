"""Push refspec parsing and ref-name validation."""

from __future__ import annotations

from dataclasses import dataclass

from .errors import ConfigurationError, RefspecError

FULL_REF_PREFIX = "refs/"
BRANCH_REF_PREFIX = "refs/heads/"

MAX_REF_NAME_LENGTH = 255

_FORBIDDEN_CHARS = set(" \t\n\r~^:?*[\\")
_FORBIDDEN_SUBSTRINGS = ("..", "//", "@{")


def validate_ref_name(name: str) -> None:
    """Check a short ref name (branch or tag) against git's naming rules.

    Raises ConfigurationError describing the first rule that is broken.
    """
    if not name:
        raise ConfigurationError("name cannot be empty")
    if len(name) > MAX_REF_NAME_LENGTH:
        raise ConfigurationError(f"name too long (max {MAX_REF_NAME_LENGTH} characters)")

    for pattern in _FORBIDDEN_SUBSTRINGS:
        if pattern in name:
            raise ConfigurationError(f"name contains invalid pattern {pattern!r}")

    for prefix in ("-", ".", "/"):
        if name.startswith(prefix):
            raise ConfigurationError(f"name cannot start with {prefix!r}")
    for suffix in (".lock", ".", "/"):
        if name.endswith(suffix):
            raise ConfigurationError(f"name cannot end with {suffix!r}")

    for char in name:
        if ord(char) < 32 or ord(char) == 127:
            raise ConfigurationError("name contains a control character")
        if char in _FORBIDDEN_CHARS:
            raise ConfigurationError(f"name contains invalid character {char!r}")


@dataclass(frozen=True)
class ParsedRefspec:
    """A validated ``[+]source[:destination]`` push refspec."""

    source: str
    destination: str = ""
    force: bool = False

    @property
    def source_branch(self) -> str:
        return _strip_branch_prefix(self.source)

    @property
    def destination_branch(self) -> str:
        return _strip_branch_prefix(self.destination or self.source)

    def __str__(self) -> str:
        text = ("+" if self.force else "") + self.source
        if self.destination:
            text += ":" + self.destination
        return text


def _strip_branch_prefix(ref: str) -> str:
    if ref.startswith(BRANCH_REF_PREFIX):
        return ref[len(BRANCH_REF_PREFIX) :]
    return ref


def validate_refspec(refspec: str) -> ParsedRefspec:
    """Parse and validate a push refspec.

    Valid forms: ``branch``, ``local:remote``, ``+local:remote`` and full refs
    such as ``refs/heads/main:refs/heads/master``.
    """
    if not refspec:
        raise RefspecError(refspec, "refspec cannot be empty")

    force = refspec.startswith("+")
    body = refspec[1:] if force else refspec

    parts = body.split(":")
    if len(parts) > 2:
        raise RefspecError(refspec, "too many ':' separators")

    source = parts[0]
    if not source:
        raise RefspecError(refspec, "source (left side) cannot be empty")

    destination = ""
    if len(parts) == 2:
        destination = parts[1]
        if not destination:
            raise RefspecError(refspec, "destination (right side) cannot be empty when ':' is present")

    for side, name in (("source", source), ("destination", destination)):
        if not name:
            continue
        try:
            if name.startswith(FULL_REF_PREFIX):
                _validate_full_ref(name)
            else:
                validate_ref_name(name)
        except ConfigurationError as e:
            raise RefspecError(refspec, f"invalid {side} {name!r}: {e}") from None

    return ParsedRefspec(source=source, destination=destination, force=force)


def _validate_full_ref(name: str) -> None:
    """Check a ``refs/...`` name: the same rules apply to the part after ``refs/``."""
    rest = name[len(FULL_REF_PREFIX) :]
    if not rest:
        raise ConfigurationError("ref name cannot be just 'refs/'")
    validate_ref_name(rest)
    for component in rest.split("/"):
        if component.startswith(".") or component.endswith(".lock"):
            raise ConfigurationError(f"invalid path component {component!r}")
