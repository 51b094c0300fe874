"""Addon identity model.

An addon is declared as ``[<name>=]<source>[@<branch>][#<checksum>]`` where
``source`` is either a short LuaCATS name (``love2d``) or an explicit clone
URL (``https://github.com/org/repo.git``, ``git@host:org/repo.git``, ...).
"""
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Union

# Hosting convention used to resolve short addon names
DEFAULT_HOSTING_URL = "https://github.com/LuaCATS/{name}.git"

_NAME_RE = re.compile(r"^[A-Za-z0-9._-]+$")
_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://")
_SCP_RE = re.compile(r"^[^/:@\s]+@[^/:\s]+:.+")

# Manifest keys owned by the Addon record; everything else is passthrough
_KNOWN_KEYS = ("name", "url", "branch", "checksum")


def is_valid_name(name: str) -> bool:
    """Check a name is usable as a directory under the addons dir."""
    return bool(name) and name not in (".", "..") and bool(_NAME_RE.match(name))


def _looks_like_url(value: str) -> bool:
    return bool(
        _SCHEME_RE.match(value)
        or _SCP_RE.match(value)
        or value.startswith("/")
        or value.startswith("./")
        or value.startswith("../")
    )


@dataclass(frozen=True)
class ShortSource:
    """Addon resolved against the hosting convention."""
    name: str

    def clone_url(self, hosting_url: str = DEFAULT_HOSTING_URL) -> str:
        return hosting_url.format(name=self.name)

    def short_name(self) -> str:
        return self.name

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class UrlSource:
    """Addon cloned from an explicit URL."""
    url: str

    def clone_url(self, hosting_url: str = DEFAULT_HOSTING_URL) -> str:
        return self.url

    def short_name(self) -> str:
        tail = re.split(r"[/:]", self.url.rstrip("/"))[-1]
        if tail.endswith(".git"):
            tail = tail[: -len(".git")]
        return tail

    def __str__(self) -> str:
        return self.url


AddonSource = Union[ShortSource, UrlSource]


def parse_source(value: str) -> AddonSource:
    """Parse a source string into a short name or explicit URL source."""
    value = value.strip()
    if not value:
        raise ValueError("addon source must not be empty")
    if _looks_like_url(value):
        return UrlSource(value)
    if not is_valid_name(value):
        raise ValueError(f"invalid addon name: {value!r}")
    return ShortSource(value)


@dataclass
class Addon:
    """A declared addon and its target (branch / pinned checksum)."""
    name: str
    source: AddonSource
    branch: Optional[str] = None
    checksum: Optional[str] = None
    # Unknown manifest fields, written back untouched
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not is_valid_name(self.name):
            raise ValueError(f"invalid addon name: {self.name!r}")

    @classmethod
    def from_source(
        cls,
        source: AddonSource,
        branch: Optional[str] = None,
        checksum: Optional[str] = None,
        name: Optional[str] = None,
    ) -> "Addon":
        return cls(
            name=name or source.short_name(),
            source=source,
            branch=branch,
            checksum=checksum,
        )

    @classmethod
    def parse(cls, declaration: str) -> "Addon":
        """
        Parse a declaration of the form ``[name=]source[@branch][#checksum]``.

        Raises:
            ValueError: if the declaration is malformed
        """
        text = declaration.strip()
        if not text:
            raise ValueError("empty addon declaration")

        checksum = None
        if "#" in text:
            text, checksum = text.rsplit("#", 1)
            if not checksum:
                raise ValueError(f"empty checksum in {declaration!r}")

        name = None
        head, sep, rest = text.partition("=")
        if sep and is_valid_name(head) and rest:
            name, text = head, rest

        # Only an '@' in the final path segment selects a branch, so the
        # user part of scp-like URLs is left alone.
        branch = None
        cut = max(text.rfind("/"), text.rfind(":"))
        at = text.find("@", cut + 1)
        if at != -1:
            text, branch = text[:at], text[at + 1:]
            if not branch:
                raise ValueError(f"empty branch in {declaration!r}")

        return cls.from_source(parse_source(text), branch=branch, checksum=checksum, name=name)

    def clone_url(self, hosting_url: str = DEFAULT_HOSTING_URL) -> str:
        return self.source.clone_url(hosting_url)

    def same_target(self, other: "Addon") -> bool:
        """True when both declare the same name, branch and checksum."""
        return (
            self.name == other.name
            and self.branch == other.branch
            and self.checksum == other.checksum
        )

    def merge(self, other: "Addon") -> None:
        """
        Merge a newer declaration into this entry in place.

        Fields left unset on ``other`` keep their current value. A short
        source naming this same entry is only a reference to it and keeps
        the current source.
        """
        if other.name != self.name:
            raise ValueError(f"cannot merge {other.name!r} into {self.name!r}")

        if not (isinstance(other.source, ShortSource) and other.source.name == self.name):
            self.source = other.source
        if other.branch is not None:
            self.branch = other.branch
        if other.checksum is not None:
            self.checksum = other.checksum
        self.extra.update(other.extra)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a manifest entry."""
        data: dict[str, Any] = {}
        if isinstance(self.source, UrlSource):
            data["url"] = self.source.url
        else:
            data["name"] = self.source.name
        if self.branch is not None:
            data["branch"] = self.branch
        if self.checksum is not None:
            data["checksum"] = self.checksum
        for key, value in self.extra.items():
            if key not in _KNOWN_KEYS:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> "Addon":
        """Build from a manifest entry keyed by ``name``."""
        if not isinstance(data, dict):
            raise ValueError(f"addon entry {name!r} must be an object")

        if data.get("url"):
            source: AddonSource = UrlSource(str(data["url"]))
        else:
            source = ShortSource(str(data.get("name") or name))

        branch = data.get("branch")
        checksum = data.get("checksum")
        return cls(
            name=name,
            source=source,
            branch=str(branch) if branch is not None else None,
            checksum=str(checksum) if checksum is not None else None,
            extra={k: v for k, v in data.items() if k not in _KNOWN_KEYS},
        )

    def __str__(self) -> str:
        text = str(self.source)
        if self.branch:
            text += f"@{self.branch}"
        if self.checksum:
            text += f"#{self.checksum}"
        return text


@dataclass(frozen=True)
class SomeOrAll:
    """Selects either an explicit list of addons or every manifest entry."""
    addons: Optional[tuple[Addon, ...]] = None

    @classmethod
    def all(cls) -> "SomeOrAll":
        return cls(None)

    @classmethod
    def some(cls, addons: Iterable[Addon]) -> "SomeOrAll":
        return cls(tuple(addons))

    @property
    def is_all(self) -> bool:
        return self.addons is None

    def resolve(self, known: dict[str, Addon]) -> list[Addon]:
        """Expand against the manifest entries."""
        if self.addons is None:
            return [Addon.from_dict(name, entry.to_dict()) for name, entry in known.items()]
        return list(self.addons)
