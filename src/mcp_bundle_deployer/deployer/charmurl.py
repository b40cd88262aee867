"""Charm URL parsing.

A charm URL looks like ``cs:~user/trusty/wordpress-3``:

    schema   cs or local
    user     optional owner, only for cs URLs
    series   optional distribution series
    name     charm name
    revision optional trailing -N
"""
import re
from dataclasses import dataclass, replace

from .errors import CharmURLError

SCHEMAS = ("cs", "local")

_USER_RE = re.compile(r"^[a-z0-9][a-zA-Z0-9+.-]+$")
_SERIES_RE = re.compile(r"^[a-z]+([a-z0-9]+)?$")
_NAME_RE = re.compile(r"^[a-z][a-z0-9]*(-[a-z0-9]*[a-z][a-z0-9]*)*$")
_REVISION_RE = re.compile(r"^(?P<name>.+?)-(?P<revision>\d+)$")


@dataclass(frozen=True)
class CharmURL:
    """A parsed charm URL."""
    schema: str
    name: str
    series: str = ""
    user: str = ""
    revision: int = -1

    @classmethod
    def parse(cls, url: str) -> "CharmURL":
        """Parse a charm URL; a missing schema means the charm store."""
        if not url:
            raise CharmURLError("charm URL is empty")

        schema, sep, rest = url.partition(":")
        if not sep:
            schema, rest = "cs", url
        if schema not in SCHEMAS:
            raise CharmURLError(f"charm URL has invalid schema: {url!r}")

        parts = rest.split("/")
        user = ""
        if parts[0].startswith("~"):
            if schema == "local":
                raise CharmURLError(f"local charm URL with user name: {url!r}")
            user = parts.pop(0)[1:]
            if not _USER_RE.match(user):
                raise CharmURLError(f"charm URL has invalid user name: {url!r}")

        if len(parts) == 2:
            series, name_part = parts
            if not _SERIES_RE.match(series):
                raise CharmURLError(f"charm URL has invalid series: {url!r}")
        elif len(parts) == 1:
            series, name_part = "", parts[0]
        else:
            raise CharmURLError(f"charm URL has invalid form: {url!r}")

        revision = -1
        match = _REVISION_RE.match(name_part)
        if match:
            name_part = match.group("name")
            revision = int(match.group("revision"))

        if not _NAME_RE.match(name_part):
            raise CharmURLError(f"charm URL has invalid charm name: {url!r}")

        return cls(schema=schema, name=name_part, series=series, user=user, revision=revision)

    def with_revision(self, revision: int) -> "CharmURL":
        return replace(self, revision=revision)

    @property
    def path(self) -> str:
        """The URL without its schema, e.g. ``~user/trusty/wordpress-3``."""
        parts = []
        if self.user:
            parts.append(f"~{self.user}")
        if self.series:
            parts.append(self.series)
        name = self.name
        if self.revision >= 0:
            name = f"{name}-{self.revision}"
        parts.append(name)
        return "/".join(parts)

    def __str__(self) -> str:
        return f"{self.schema}:{self.path}"


def same_charm(first: str, second: str) -> bool:
    """Whether two charm URLs name the same charm, ignoring revisions."""
    a = CharmURL.parse(first).with_revision(-1)
    b = CharmURL.parse(second).with_revision(-1)
    return a.path == b.path
