"""Idempotency policies for changes whose target may already exist.

They let a bundle be deployed again over an environment that already holds
part or all of it:

- services: reuse when the charm matches, upgrade to another revision of the
  same charm, refuse anything else;
- relations: an existing relation is the desired outcome;
- machines: reuse an unclaimed machine with the same container type, parent
  and constraints;
- units: reuse an unclaimed unit of the service, on the requested machine
  when a placement is given.
"""
import logging
from typing import Optional

from .charmurl import same_charm
from .context import RunContext
from .errors import IncompatibleCharmError

logger = logging.getLogger(__name__)


async def reconcile_service(ctx: RunContext, service: str, charm: str) -> None:
    """Handle an AddService change for a service that is already deployed.

    Raises:
        IncompatibleCharmError: If the existing service runs a different charm
    """
    ctx.operation = f"cannot retrieve info for service {service!r}"
    existing = await ctx.client.get_service_charm_url(service)
    if existing == charm:
        ctx.infof("reusing service %s (charm: %s)", service, charm)
        return

    if not same_charm(charm, existing):
        raise IncompatibleCharmError(service, existing, charm)

    ctx.operation = f"cannot upgrade service {service!r}"
    await ctx.client.set_service_charm_url(service, charm, False)
    ctx.infof("upgraded charm for existing service %s (from %s to %s)", service, existing, charm)


def relation_exists(ctx: RunContext, endpoint1: str, endpoint2: str) -> None:
    """An already established relation satisfies the change."""
    ctx.infof("%s and %s are already related", endpoint1, endpoint2)


def _normalize_constraints(constraints: str) -> str:
    return " ".join(sorted((constraints or "").split()))


async def claim_machine(
    ctx: RunContext,
    constraints: str,
    container_type: Optional[str],
    parent_id: Optional[str],
) -> Optional[str]:
    """Return an existing machine matching the request, claiming it for this run.

    A container requested on a new machine (no parent id) matches a container
    of the same type on any unclaimed non-controller parent; that parent is
    claimed along with it.
    """
    wanted = _normalize_constraints(constraints)
    machines = await ctx.client.list_machines()
    by_id = {machine.id: machine for machine in machines}
    any_parent = bool(container_type) and not parent_id

    for machine in machines:
        if machine.manages_environment or ctx.is_claimed("machine", machine.id):
            continue
        if (machine.container_type or None) != (container_type or None):
            continue
        if _normalize_constraints(machine.constraints) != wanted:
            continue
        if any_parent:
            parent = by_id.get(machine.parent_id or "")
            if parent is None or parent.manages_environment or ctx.is_claimed("machine", parent.id):
                continue
            ctx.claim("machine", parent.id)
        elif (machine.parent_id or None) != (parent_id or None):
            continue

        ctx.claim("machine", machine.id)
        ctx.infof("reusing machine %s", machine.id)
        return machine.id

    return None


async def claim_unit(ctx: RunContext, service: str, machine_id: Optional[str]) -> Optional[str]:
    """Return an existing unit of the service matching the placement, claiming it."""
    for unit in await ctx.client.list_units(service):
        if ctx.is_claimed("unit", unit.name):
            continue
        if machine_id is not None and unit.machine != machine_id:
            continue

        ctx.claim("unit", unit.name)
        ctx.infof("reusing unit %s", unit.name)
        return unit.name

    logger.debug(f"No reusable unit of {service} (placement: {machine_id or 'any'})")
    return None
