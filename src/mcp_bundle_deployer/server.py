"""MCP Server for Juju bundle deployment.

Deploys bundles (services, machines, units, relations and annotations) to the
controller environments listed in the inventory. Re-deploying a bundle is
safe: existing services are reused or upgraded and existing relations are
left alone.

Tools exposed:
- list_environments: List all configured controller environments
- verify_bundle: Check a bundle and preview its changes without deploying
- deploy_bundle: Deploy a bundle to an environment (supports dry_run)
- get_audit_log: Show recent changes from the audit log
"""
import asyncio
import json
import logging
import os
from typing import Any, Optional

import yaml
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    TextContent,
    Tool,
    Resource,
)
from pydantic import AnyUrl, BaseModel, Field

from .config.inventory import EnvironmentInventory, CONFIG_ENV_VAR
from .deployer import BundleDeployer, DeployOptions, LoggingDeploymentLogger
from .utils.logging_config import setup_logging, timed_section
from .utils.audit_log import setup_audit_logging, get_recent_changes

logger = logging.getLogger(__name__)

# Global inventory (initialized on first tool call)
inventory: Optional[EnvironmentInventory] = None


def get_inventory() -> EnvironmentInventory:
    """Get or create the environment inventory."""
    global inventory
    if inventory is None:
        inventory = EnvironmentInventory(os.environ.get(CONFIG_ENV_VAR))
    return inventory


# === TOOL ARGUMENTS ===

class BundleArgs(BaseModel):
    """A bundle given either as a decoded document or as YAML text."""
    bundle: Optional[dict[str, Any]] = None
    bundle_yaml: Optional[str] = None
    name: Optional[str] = None

    def document(self) -> dict[str, Any]:
        if self.bundle is not None:
            return self.bundle
        if self.bundle_yaml is None:
            raise ValueError("either 'bundle' or 'bundle_yaml' is required")
        data = yaml.safe_load(self.bundle_yaml)
        if not isinstance(data, dict):
            raise ValueError("bundle_yaml must hold a mapping")
        return data


class DeployBundleArgs(BundleArgs):
    environment: str
    dry_run: bool = False
    audit_context: str = ""


class AuditLogArgs(BaseModel):
    environment: Optional[str] = None
    operation: Optional[str] = None
    limit: int = Field(default=20, ge=1, le=1000)


_BUNDLE_PROPERTIES = {
    "bundle": {
        "type": "object",
        "description": "Bundle document with services, machines and relations"
    },
    "bundle_yaml": {
        "type": "string",
        "description": "Bundle as YAML text (alternative to 'bundle')"
    },
    "name": {
        "type": "string",
        "description": "Bundle to pick when the document holds several"
    },
}


# Create MCP server
server = Server("bundlecraft")


# === TOOLS ===

@server.list_tools()
async def list_tools() -> list[Tool]:
    """List all available tools."""
    return [
        Tool(
            name="list_environments",
            description="List all configured controller environments",
            inputSchema={
                "type": "object",
                "properties": {},
                "required": []
            }
        ),
        Tool(
            name="verify_bundle",
            description="""Verify a bundle without deploying it.

Checks charm URLs, constraints, placement directives and relations, and
lists the changes a deployment would apply in order.""",
            inputSchema={
                "type": "object",
                "properties": dict(_BUNDLE_PROPERTIES),
                "required": []
            }
        ),
        Tool(
            name="deploy_bundle",
            description="""Deploy a bundle to a controller environment.

Applies the bundle changes one at a time:
1. Adds the charms
2. Deploys services (existing services are reused or upgraded)
3. Creates machines and containers
4. Adds relations (existing relations are kept)
5. Adds units and sets annotations

Deployment stops at the first failing change; changes applied before it are
kept and listed. Running the same bundle again picks up where it stopped.

Use dry_run=True to preview the changes without contacting the controller.""",
            inputSchema={
                "type": "object",
                "properties": {
                    "environment": {
                        "type": "string",
                        "description": "Environment name from the inventory"
                    },
                    **_BUNDLE_PROPERTIES,
                    "dry_run": {
                        "type": "boolean",
                        "description": "Preview changes without applying",
                        "default": False
                    },
                    "audit_context": {
                        "type": "string",
                        "description": "Reason for the deployment, recorded in the audit log",
                        "default": ""
                    }
                },
                "required": ["environment"]
            }
        ),
        Tool(
            name="get_audit_log",
            description="Get recent bundle changes from the audit log",
            inputSchema={
                "type": "object",
                "properties": {
                    "environment": {
                        "type": "string",
                        "description": "Filter by environment name"
                    },
                    "operation": {
                        "type": "string",
                        "description": "Filter by change kind (e.g., 'addService', 'addRelation')"
                    },
                    "limit": {
                        "type": "integer",
                        "description": "Maximum records to return (default: 20)",
                        "default": 20
                    }
                },
                "required": []
            }
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool calls."""
    environment = arguments.get("environment")

    async with timed_section(f"tool:{name}", environment):
        try:
            if name == "list_environments":
                return await handle_list_environments(get_inventory())

            elif name == "verify_bundle":
                return await handle_verify_bundle(BundleArgs(**arguments))

            elif name == "deploy_bundle":
                return await handle_deploy_bundle(get_inventory(), DeployBundleArgs(**arguments))

            elif name == "get_audit_log":
                args = AuditLogArgs(**arguments)
                return await handle_get_audit_log(args.environment, args.operation, args.limit)

            else:
                return [TextContent(type="text", text=f"Unknown tool: {name}")]

        except Exception as e:
            logger.exception(f"Tool {name} failed")
            return [TextContent(type="text", text=f"Error: {str(e)}")]


# === TOOL HANDLERS ===

async def handle_list_environments(inv: EnvironmentInventory) -> list[TextContent]:
    """List all configured environments."""
    environments = []
    for env_name in inv.get_environment_ids():
        config = inv.get_environment_config(env_name)
        environments.append({
            "name": env_name,
            "type": config.get("type", "juju"),
            "description": config.get("description", ""),
            "api_url": config.get("api_url"),
            "model": config.get("model"),
        })

    return [TextContent(
        type="text",
        text=json.dumps({"environments": environments}, indent=2)
    )]


async def handle_verify_bundle(args: BundleArgs) -> list[TextContent]:
    """Verify a bundle and list the changes it would apply."""
    # Verification never talks to a controller, so no inventory is needed
    deployer = BundleDeployer(inventory=None)
    document = args.document()

    validation = deployer.verify(document, name=args.name)
    response: dict[str, Any] = {
        "valid": validation.valid,
        "errors": validation.errors,
        "warnings": validation.warnings,
    }
    if validation.valid:
        changes = deployer.plan(document, name=args.name)
        response["changes"] = [
            {"id": c.id, "kind": c.kind.value, "requires": c.requires, "description": c.describe()}
            for c in changes
        ]

    return [TextContent(
        type="text",
        text=json.dumps(response, indent=2)
    )]


async def handle_deploy_bundle(
    inv: EnvironmentInventory,
    args: DeployBundleArgs,
) -> list[TextContent]:
    """
    Deploy a bundle to an environment.

    Use dry_run=True to preview the changes without applying.
    """
    deployer = BundleDeployer(inv)
    log = LoggingDeploymentLogger()

    result = await deployer.deploy(
        args.document(),
        args.environment,
        DeployOptions(dry_run=args.dry_run, audit_context=args.audit_context),
        log=log,
        name=args.name,
    )

    response = result.to_dict()
    response["messages"] = log.messages

    return [TextContent(
        type="text",
        text=json.dumps(response, indent=2)
    )]


async def handle_get_audit_log(
    environment: Optional[str] = None,
    operation: Optional[str] = None,
    limit: int = 20
) -> list[TextContent]:
    """Get recent bundle changes from the audit log."""
    records = get_recent_changes(
        environment=environment,
        operation=operation,
        limit=limit
    )

    formatted_records = []
    for r in records:
        formatted_records.append({
            "timestamp": r.timestamp,
            "environment": r.environment,
            "change_id": r.change_id,
            "operation": r.operation,
            "success": r.success,
            "parameters": r.parameters,
            "result": r.result,
            "context": r.context,
            "error": r.error,
        })

    return [TextContent(
        type="text",
        text=json.dumps({
            "total_records": len(formatted_records),
            "filters": {
                "environment": environment,
                "operation": operation,
                "limit": limit,
            },
            "records": formatted_records,
        }, indent=2)
    )]


# === RESOURCES ===

@server.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    inv = get_inventory()
    resources = []

    for env_name in inv.get_environment_ids():
        resources.append(Resource(
            uri=AnyUrl(f"env://{env_name}/audit"),
            name=f"{env_name} Deployment History",
            description=f"Recent bundle changes applied to {env_name}",
            mimeType="application/json",
        ))

    return resources


@server.read_resource()
async def read_resource(uri: AnyUrl) -> str:
    """Read a resource."""
    # Parse URI: env://<environment>/audit
    uri_str = str(uri)
    if uri_str.startswith("env://"):
        parts = uri_str[6:].split("/")
        if len(parts) >= 2 and parts[1] == "audit":
            result = await handle_get_audit_log(environment=parts[0])
            return result[0].text

    return json.dumps({"error": f"Unknown resource: {uri}"})


def main():
    """Run the MCP server."""
    setup_audit_logging()
    setup_logging()

    async def run():
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options()
            )

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass
    finally:
        # Cleanup
        if inventory:
            asyncio.run(inventory.close_all())


if __name__ == "__main__":
    main()
