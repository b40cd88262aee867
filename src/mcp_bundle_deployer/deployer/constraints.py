"""Machine constraints parsing.

Constraints are space separated ``key=value`` pairs, for instance
``mem=4G cpu-cores=2 arch=amd64``. Parsing is used as the constraint checker
during bundle verification, before anything is deployed.
"""
import re
from dataclasses import dataclass, field
from typing import Optional

from .errors import ConstraintsError

ARCHES = {"amd64", "i386", "armhf", "arm64", "ppc64el", "s390x"}
CONTAINER_TYPES = {"lxc", "lxd", "kvm"}

# Size multipliers relative to megabytes
SIZE_SUFFIXES = {
    "": 1,
    "M": 1,
    "G": 1024,
    "T": 1024 * 1024,
    "P": 1024 * 1024 * 1024,
}

_SIZE_RE = re.compile(r"^(?P<value>\d+(\.\d+)?)(?P<suffix>[MGTP]?)$")


@dataclass
class Constraints:
    """Parsed machine constraints. Sizes are in megabytes."""
    arch: Optional[str] = None
    container: Optional[str] = None
    cpu_cores: Optional[int] = None
    cpu_power: Optional[int] = None
    mem: Optional[int] = None
    root_disk: Optional[int] = None
    tags: list[str] = field(default_factory=list)
    spaces: list[str] = field(default_factory=list)
    instance_type: Optional[str] = None
    virt_type: Optional[str] = None


def _parse_choice(key: str, value: str, choices: set[str]) -> str:
    if value not in choices:
        raise ConstraintsError(
            f"bad {key!r} constraint: {value!r} not recognized (valid: {', '.join(sorted(choices))})"
        )
    return value


def _parse_count(key: str, value: str) -> int:
    if not value.isdigit():
        raise ConstraintsError(f"bad {key!r} constraint: must be a non-negative integer")
    return int(value)


def _parse_size(key: str, value: str) -> int:
    match = _SIZE_RE.match(value)
    if not match:
        raise ConstraintsError(f"bad {key!r} constraint: must be a non-negative float with optional M/G/T/P suffix")
    megabytes = float(match.group("value")) * SIZE_SUFFIXES[match.group("suffix")]
    return int(round(megabytes))


def _parse_list(value: str) -> list[str]:
    return [item for item in value.split(",") if item]


def parse_constraints(text: str) -> Constraints:
    """Parse a constraints string.

    Raises:
        ConstraintsError: On unknown or repeated keys and malformed values
    """
    result = Constraints()
    seen: set[str] = set()

    for pair in (text or "").split():
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ConstraintsError(f"malformed constraint {pair!r}")
        if key in seen:
            raise ConstraintsError(f"bad {key!r} constraint: already set")
        seen.add(key)

        if key == "arch":
            result.arch = _parse_choice(key, value, ARCHES)
        elif key == "container":
            result.container = _parse_choice(key, value, CONTAINER_TYPES)
        elif key == "cpu-cores":
            result.cpu_cores = _parse_count(key, value)
        elif key == "cpu-power":
            result.cpu_power = _parse_count(key, value)
        elif key == "mem":
            result.mem = _parse_size(key, value)
        elif key == "root-disk":
            result.root_disk = _parse_size(key, value)
        elif key == "tags":
            result.tags = _parse_list(value)
        elif key == "spaces":
            result.spaces = _parse_list(value)
        elif key == "instance-type":
            result.instance_type = value
        elif key == "virt-type":
            result.virt_type = value
        else:
            raise ConstraintsError(f"unknown constraint {key!r}")

    return result


def check_constraints(text: str) -> None:
    """Constraint checker for bundle verification: raise if text does not parse."""
    parse_constraints(text)
