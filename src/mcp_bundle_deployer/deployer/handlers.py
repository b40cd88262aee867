"""Change handlers and the registry the engine dispatches through.

Each handler applies one change kind against the control plane and returns
the value recorded for the change (an empty string when the change has no
referenceable result). Before each control-plane step a handler stores a
description of it in ``ctx.operation`` so the engine can annotate failures.
"""
import logging
from typing import Awaitable, Callable, Optional

import yaml

from ..client.base import RelationExistsError, ServiceExistsError
from . import policy
from .charmurl import CharmURL
from .context import RunContext
from .errors import DeployError
from .schema import (
    AddCharmChange,
    AddMachineChange,
    AddRelationChange,
    AddServiceChange,
    AddUnitChange,
    Change,
    ChangeKind,
    SetAnnotationsChange,
)

logger = logging.getLogger(__name__)

Handler = Callable[[RunContext, Change], Awaitable[str]]


class HandlerRegistry:
    """Closed mapping from change kind to handler."""

    def __init__(self) -> None:
        self._handlers: dict[ChangeKind, Handler] = {}

    def register(self, kind: ChangeKind, handler: Handler) -> None:
        self._handlers[kind] = handler

    def get(self, kind: object) -> Optional[Handler]:
        """Handler for a kind, or None when the kind is unknown."""
        if not isinstance(kind, ChangeKind):
            return None
        return self._handlers.get(kind)

    def kinds(self) -> list[ChangeKind]:
        return list(self._handlers)


async def add_charm(ctx: RunContext, change: AddCharmChange) -> str:
    """Add a charm to the environment, returning its resolved URL."""
    ctx.operation = f"cannot resolve URL {change.charm!r}"
    url = CharmURL.parse(change.charm)
    if url.series == "bundle":
        raise DeployError(f"expected charm URL, got bundle URL {change.charm!r}")

    ctx.operation = f"cannot add charm {change.charm!r}"
    added = await ctx.client.add_charm(change.charm)
    ctx.infof("added charm %s", added)
    return added


async def add_service(ctx: RunContext, change: AddServiceChange) -> str:
    """Deploy a service with no units, or reconcile an existing one; then set options."""
    charm = ctx.value(change, change.charm)
    service = change.service

    ctx.operation = f"cannot deploy service {service!r}"
    try:
        await ctx.client.deploy_service(charm, service, 0, "", change.constraints, "")
    except ServiceExistsError:
        await policy.reconcile_service(ctx, service, charm)
    else:
        ctx.infof("service %s deployed (charm: %s)", service, charm)

    if change.options:
        ctx.operation = f"cannot set options for service {service!r}"
        config_yaml = yaml.safe_dump({service: change.options}, default_flow_style=False)
        await ctx.client.set_service_config(service, config_yaml)
        ctx.infof("service %s configured", service)

    return service


async def add_relation(ctx: RunContext, change: AddRelationChange) -> str:
    """Relate two services; an existing relation counts as success."""
    ep1 = ctx.endpoint(change, change.endpoint1)
    ep2 = ctx.endpoint(change, change.endpoint2)

    ctx.operation = f"cannot add relation between {ep1!r} and {ep2!r}"
    try:
        await ctx.client.add_relation(ep1, ep2)
    except RelationExistsError:
        policy.relation_exists(ctx, ep1, ep2)
    else:
        ctx.infof("related %s and %s", ep1, ep2)
    return ""


async def add_machine(ctx: RunContext, change: AddMachineChange) -> str:
    """Provision a machine or container, reusing a matching unclaimed one."""
    parent = ctx.value(change, change.parent_id) if change.parent_id else None

    if change.container_type:
        ctx.operation = f"cannot create {change.container_type} container"
    else:
        ctx.operation = "cannot create machine"

    existing = await policy.claim_machine(ctx, change.constraints, change.container_type, parent)
    if existing:
        return existing

    machine_id = await ctx.client.add_machine(
        change.constraints, change.container_type, parent, change.series
    )
    ctx.claim("machine", machine_id)
    if change.container_type:
        ctx.infof("created %s container %s in machine %s", change.container_type, machine_id, parent or "new")
    else:
        ctx.infof("created new machine %s", machine_id)
    return machine_id


async def add_unit(ctx: RunContext, change: AddUnitChange) -> str:
    """Add a unit to a service, reusing an unclaimed existing unit."""
    service = ctx.value(change, change.service)
    machine = ctx.value(change, change.placement) if change.placement else None

    ctx.operation = f"cannot add unit for service {service!r}"
    existing = await policy.claim_unit(ctx, service, machine)
    if existing:
        return existing

    unit = await ctx.client.add_unit(service, machine)
    ctx.claim("unit", unit)
    if machine:
        ctx.infof("added %s unit to machine %s", unit, machine)
    else:
        ctx.infof("added %s unit to new machine", unit)
    return unit


async def set_annotations(ctx: RunContext, change: SetAnnotationsChange) -> str:
    """Set annotations on a service or machine. Existing keys are overwritten."""
    target = ctx.value(change, change.target)

    ctx.operation = f"cannot set annotations for {change.target_kind} {target!r}"
    await ctx.client.set_annotations(change.target_kind, target, change.annotations)
    ctx.infof("annotations set for %s %s", change.target_kind, target)
    return ""


def register_default_handlers(registry: HandlerRegistry) -> HandlerRegistry:
    """Register the handler of every known change kind."""
    registry.register(ChangeKind.ADD_CHARM, add_charm)
    registry.register(ChangeKind.ADD_SERVICE, add_service)
    registry.register(ChangeKind.ADD_RELATION, add_relation)
    registry.register(ChangeKind.ADD_MACHINE, add_machine)
    registry.register(ChangeKind.ADD_UNIT, add_unit)
    registry.register(ChangeKind.SET_ANNOTATIONS, set_annotations)
    return registry
