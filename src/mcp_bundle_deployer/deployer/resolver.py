"""Placeholder resolution against the results of earlier changes.

A placeholder is a string like "$deploy-42" or "$addCharm-2": a dollar sign
followed by the id of a change applied earlier in the same run. Relation
endpoints may add a relation name, as in "$deploy-42:db".
"""
from typing import Mapping

from .errors import InvariantViolation
from .schema import PLACEHOLDER_PREFIX


def resolve(placeholder: str, results: Mapping[str, str]) -> str:
    """Return the result recorded for the change a placeholder refers to.

    A change that has not produced a result resolves to "" and callers that
    need a value must check for it.

    Raises:
        InvariantViolation: If the token does not start with "$"
    """
    if not placeholder.startswith(PLACEHOLDER_PREFIX):
        raise InvariantViolation(f"placeholder {placeholder!r} does not start with {PLACEHOLDER_PREFIX!r}")
    return results.get(placeholder[len(PLACEHOLDER_PREFIX):], "")


def resolve_endpoint(endpoint: str, results: Mapping[str, str]) -> str:
    """Resolve the service placeholder of a relation endpoint, keeping the relation name."""
    token, sep, relation = endpoint.partition(":")
    service = resolve(token, results)
    if not sep:
        return service
    return f"{service}:{relation}"
