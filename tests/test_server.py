"""Tests for the MCP tool handlers."""
import json

import pytest
import yaml
from pydantic import ValidationError

from mcp_bundle_deployer import server
from mcp_bundle_deployer.server import (
    AuditLogArgs,
    BundleArgs,
    DeployBundleArgs,
    handle_deploy_bundle,
    handle_verify_bundle,
)


def payload(contents):
    return json.loads(contents[0].text)


class TestToolArguments:

    def test_bundle_from_yaml(self, wordpress_bundle):
        args = BundleArgs(bundle_yaml=yaml.safe_dump(wordpress_bundle))

        assert args.document()["services"].keys() == wordpress_bundle["services"].keys()

    def test_bundle_required(self):
        with pytest.raises(ValueError):
            BundleArgs().document()

    def test_environment_required(self):
        with pytest.raises(ValidationError):
            DeployBundleArgs(bundle={"services": {}})

    def test_audit_limit_bounds(self):
        with pytest.raises(ValidationError):
            AuditLogArgs(limit=0)


class TestTools:

    @pytest.mark.asyncio
    async def test_list_tools(self):
        tools = await server.list_tools()

        assert [t.name for t in tools] == [
            "list_environments", "verify_bundle", "deploy_bundle", "get_audit_log",
        ]

    @pytest.mark.asyncio
    async def test_verify_bundle_lists_changes(self, wordpress_bundle):
        result = payload(await handle_verify_bundle(BundleArgs(bundle=wordpress_bundle)))

        assert result["valid"] is True
        assert len(result["changes"]) == 9
        assert result["changes"][2] == {
            "id": "deploy-2",
            "kind": "addService",
            "requires": ["addCharm-0"],
            "description": "deploy service mysql using $addCharm-0",
        }

    @pytest.mark.asyncio
    async def test_verify_bundle_reports_errors(self):
        result = payload(await handle_verify_bundle(BundleArgs(bundle={"services": {}})))

        assert result["valid"] is False
        assert "changes" not in result

    @pytest.mark.asyncio
    async def test_deploy_bundle(self, fake_inventory, fake_client, wordpress_bundle):
        args = DeployBundleArgs(bundle=wordpress_bundle, environment="test-env")

        result = payload(await handle_deploy_bundle(fake_inventory, args))

        assert result["success"] is True
        assert "related wordpress:db and mysql:db" in result["messages"]
        assert fake_client.services == {
            "mysql": "cs:trusty/mysql-10",
            "wordpress": "cs:trusty/wordpress-3",
        }

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        result = await server.call_tool("reboot_controller", {})

        assert result[0].text == "Unknown tool: reboot_controller"

    @pytest.mark.asyncio
    async def test_invalid_arguments_reported(self):
        result = await server.call_tool("get_audit_log", {"limit": -5})

        assert result[0].text.startswith("Error:")
