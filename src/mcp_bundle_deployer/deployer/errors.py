"""Errors raised while verifying and deploying a bundle."""
from typing import Optional


class DeployError(Exception):
    """Base class for bundle deployment failures."""


class InvariantViolation(Exception):
    """An internal contract between the change builder and the engine was broken.

    Raised for programming errors only (for instance a placeholder that does
    not start with "$"). It is never wrapped into a DeployError.
    """


class ParseError(ValueError):
    """Error parsing a bundle document."""


class CharmURLError(ValueError):
    """A charm URL could not be parsed."""


class ConstraintsError(ValueError):
    """A constraints string could not be parsed."""


class BundleVerificationError(DeployError):
    """The bundle failed pre-flight verification; nothing was deployed."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("cannot deploy bundle: " + "; ".join(self.errors))


class UnknownChangeKindError(DeployError):
    """The engine received a change it has no handler for."""

    def __init__(self, change_id: str, kind: object):
        self.change_id = change_id
        self.kind = kind
        super().__init__(f"cannot deploy bundle: unknown change type {kind!r} (change {change_id})")


class IncompatibleCharmError(DeployError):
    """An existing service runs a charm that cannot be upgraded to the bundle's."""

    def __init__(self, service: str, existing: str, requested: str):
        self.service = service
        self.existing = existing
        self.requested = requested
        super().__init__(
            f"bundle charm {requested!r} is incompatible with existing charm {existing!r}"
        )


class UnresolvedPlaceholderError(DeployError):
    """A placeholder resolved to nothing."""

    def __init__(self, change_id: str, placeholder: str):
        self.change_id = change_id
        self.placeholder = placeholder
        super().__init__(f"change {change_id}: placeholder {placeholder!r} has no recorded result")


class ChangeFailedError(DeployError):
    """A change failed; the run was aborted and earlier changes were kept."""

    def __init__(
        self,
        change_id: str,
        kind: str,
        operation: str,
        cause: Optional[BaseException] = None,
    ):
        self.change_id = change_id
        self.kind = kind
        self.operation = operation
        self.cause = cause
        message = f"cannot deploy bundle: {operation}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
