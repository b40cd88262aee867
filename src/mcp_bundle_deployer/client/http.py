"""Controller API client over HTTPS.

Requests are JSON RPC envelopes posted to ``{api_url}/rpc``:

    {"RequestId": 7, "Type": "Client", "Version": 0,
     "Request": "ServiceDeploy", "Params": {...}}

Replies carry either ``Response`` or ``Error`` plus an optional ``ErrorCode``.
Error classification uses the code only, never the message text.
"""
import itertools
import logging
from typing import Any, Optional

import httpx

from .base import (
    CODE_ALREADY_EXISTS,
    AlreadyExistsError,
    ControlPlaneClient,
    ControlPlaneError,
    EnvironmentConfig,
    MachineInfo,
    RelationExistsError,
    ServiceExistsError,
    UnitInfo,
)
from ..utils.connection import with_retry
from ..utils.logging_config import timed

logger = logging.getLogger(__name__)


def _unit_number(name: str) -> int:
    """Numeric suffix of a unit name such as wordpress/10."""
    return int(name.rsplit("/", 1)[1])


class JujuAPIClient(ControlPlaneClient):
    """Controller client speaking the RPC envelope format over httpx."""

    FACADE_ADMIN = "Admin"
    FACADE_CLIENT = "Client"

    def __init__(
        self,
        config: EnvironmentConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(config.name)
        self.config = config
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None
        self._request_ids = itertools.count(1)
        self._base_url = config.api_url.rstrip("/")

    # === Session ===

    async def connect(self) -> bool:
        """Log in to the controller, retrying transient transport failures."""
        if self._connected:
            return True

        logger.info(f"Connecting to environment {self.environment} at {self._base_url}")
        login = with_retry(
            max_attempts=max(1, self.config.retries),
            min_wait=self.config.retry_delay,
            max_wait=self.config.retry_delay * 5,
        )(self._login)
        try:
            await login()
        except httpx.HTTPError as e:
            raise ControlPlaneError(f"cannot connect to {self.environment}: {e}") from e

        self._connected = True
        logger.info(f"Connected to {self.environment}")
        return True

    async def _login(self) -> None:
        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout),
                verify=self.config.verify_ssl,
                headers=self.config.headers,
                transport=self._transport,
            )

        params: dict[str, Any] = {
            "auth-tag": f"user-{self.config.username}",
            "credentials": self.config.get_password(),
        }
        if self.config.model:
            params["model-tag"] = f"model-{self.config.model}"

        # Transport errors propagate untouched so the retry policy sees them
        resp = await self._http.post(
            f"{self._base_url}/rpc",
            json=self._envelope(self.FACADE_ADMIN, "Login", params),
        )
        data = self._decode(resp, "Admin.Login")
        if data.get("Error"):
            raise ControlPlaneError(
                f"login to {self.environment} failed: {data['Error']}",
                code=data.get("ErrorCode"),
            )

    async def disconnect(self) -> None:
        """Close the HTTP session."""
        if self._http:
            await self._http.aclose()
            self._http = None
        self._connected = False
        logger.info(f"Disconnected from {self.environment}")

    # === RPC plumbing ===

    def _envelope(self, facade: str, request: str, params: dict[str, Any]) -> dict[str, Any]:
        return {
            "RequestId": next(self._request_ids),
            "Type": facade,
            "Version": 0,
            "Request": request,
            "Params": params,
        }

    @staticmethod
    def _decode(resp: httpx.Response, what: str) -> dict[str, Any]:
        try:
            data = resp.json()
        except ValueError:
            raise ControlPlaneError(f"{what}: unexpected HTTP {resp.status_code} reply")
        if not isinstance(data, dict):
            raise ControlPlaneError(f"{what}: malformed reply")
        return data

    async def _call(
        self,
        request: str,
        params: dict[str, Any],
        facade: str = FACADE_CLIENT,
        exists_error: type[AlreadyExistsError] = AlreadyExistsError,
    ) -> dict[str, Any]:
        """Send one RPC request and return its Response payload."""
        if not self._connected or self._http is None:
            raise ControlPlaneError(f"not connected to {self.environment}")

        what = f"{facade}.{request}"
        try:
            resp = await self._http.post(
                f"{self._base_url}/rpc",
                json=self._envelope(facade, request, params),
            )
        except httpx.HTTPError as e:
            raise ControlPlaneError(f"{what}: {e}") from e

        data = self._decode(resp, what)
        if data.get("Error"):
            self._raise_error(data["Error"], data.get("ErrorCode"), exists_error)
        return data.get("Response") or {}

    @staticmethod
    def _raise_error(
        message: str,
        code: Optional[str],
        exists_error: type[AlreadyExistsError],
    ) -> None:
        if code == CODE_ALREADY_EXISTS:
            raise exists_error(message)
        raise ControlPlaneError(message, code=code)

    @staticmethod
    def _item_error(item: dict[str, Any]) -> Optional[ControlPlaneError]:
        """Per-item errors of bulk calls: {"Error": {"Message": ..., "Code": ...}}."""
        error = item.get("Error")
        if not error:
            return None
        return ControlPlaneError(error.get("Message", "unknown error"), code=error.get("Code"))

    # === Charms ===

    @timed("add_charm")
    async def add_charm(self, charm: str) -> str:
        resolved = await self._call("ResolveCharms", {"References": [charm]})
        urls = resolved.get("URLs") or []
        if not urls:
            raise ControlPlaneError(f"cannot resolve charm {charm!r}")
        first = urls[0]
        item_error = self._item_error(first)
        if item_error:
            raise item_error
        url = first.get("URL") or charm

        await self._call("AddCharm", {"URL": url})
        return url

    # === Services ===

    @timed("deploy_service")
    async def deploy_service(
        self,
        charm: str,
        service: str,
        num_units: int,
        config_yaml: str,
        constraints: str,
        placement: str,
    ) -> None:
        await self._call(
            "ServiceDeploy",
            {
                "ServiceName": service,
                "CharmUrl": charm,
                "NumUnits": num_units,
                "ConfigYAML": config_yaml,
                "Constraints": constraints,
                "ToMachineSpec": placement,
            },
            exists_error=ServiceExistsError,
        )

    @timed("get_service_charm_url")
    async def get_service_charm_url(self, service: str) -> str:
        response = await self._call("ServiceGetCharmURL", {"ServiceName": service})
        url = response.get("Result")
        if not url:
            raise ControlPlaneError(f"no charm URL reported for service {service!r}")
        return url

    @timed("set_service_charm_url")
    async def set_service_charm_url(self, service: str, charm: str, force_units: bool) -> None:
        await self._call(
            "ServiceSetCharm",
            {"ServiceName": service, "CharmUrl": charm, "ForceUnits": force_units},
        )

    @timed("set_service_config")
    async def set_service_config(self, service: str, config_yaml: str) -> None:
        await self._call("ServiceSetYAML", {"ServiceName": service, "Config": config_yaml})

    # === Relations ===

    @timed("add_relation")
    async def add_relation(self, endpoint1: str, endpoint2: str) -> None:
        await self._call(
            "AddRelation",
            {"Endpoints": [endpoint1, endpoint2]},
            exists_error=RelationExistsError,
        )

    # === Machines and units ===

    @timed("add_machine")
    async def add_machine(
        self,
        constraints: str,
        container_type: Optional[str],
        parent_id: Optional[str],
        series: str,
    ) -> str:
        machine_params = {
            "Jobs": ["JobHostUnits"],
            "Constraints": constraints,
            "Series": series,
            "ContainerType": container_type or "",
            "ParentId": parent_id or "",
        }
        response = await self._call("AddMachinesV2", {"MachineParams": [machine_params]})
        machines = response.get("Machines") or []
        if not machines:
            raise ControlPlaneError("controller returned no machine")
        item_error = self._item_error(machines[0])
        if item_error:
            raise item_error
        return str(machines[0]["Machine"])

    @timed("list_machines")
    async def list_machines(self) -> list[MachineInfo]:
        response = await self._call("FullStatus", {"Patterns": []})
        machines: list[MachineInfo] = []
        for status in (response.get("Machines") or {}).values():
            self._collect_machines(status, machines)
        return machines

    def _collect_machines(self, status: dict[str, Any], out: list[MachineInfo]) -> None:
        machine_id = str(status.get("Id", ""))
        container_type = None
        parent_id = None
        # Containers are named <parent>/<type>/<n>
        parts = machine_id.split("/")
        if len(parts) >= 3:
            container_type = parts[-2]
            parent_id = "/".join(parts[:-2])

        out.append(MachineInfo(
            id=machine_id,
            container_type=container_type,
            parent_id=parent_id,
            constraints=status.get("Constraints", "") or "",
            series=status.get("Series", "") or "",
            jobs=list(status.get("Jobs") or []),
        ))
        for child in (status.get("Containers") or {}).values():
            self._collect_machines(child, out)

    @timed("add_unit")
    async def add_unit(self, service: str, machine_id: Optional[str]) -> str:
        response = await self._call(
            "AddServiceUnits",
            {"ServiceName": service, "NumUnits": 1, "ToMachineSpec": machine_id or ""},
        )
        units = response.get("Units") or []
        if not units:
            raise ControlPlaneError(f"controller added no unit to {service!r}")
        return units[0]

    @timed("list_units")
    async def list_units(self, service: str) -> list[UnitInfo]:
        response = await self._call("FullStatus", {"Patterns": [service]})
        service_status = (response.get("Services") or {}).get(service) or {}
        units = service_status.get("Units") or {}
        return [
            UnitInfo(name=name, machine=(status or {}).get("Machine") or None)
            for name, status in sorted(units.items(), key=lambda item: _unit_number(item[0]))
        ]

    # === Annotations ===

    @timed("set_annotations")
    async def set_annotations(self, kind: str, entity_id: str, annotations: dict[str, Any]) -> None:
        pairs = {key: str(value) for key, value in annotations.items()}
        # Container ids such as 0/lxc/1 become the tag machine-0-lxc-1
        tag = f"{kind}-{entity_id.replace('/', '-')}"
        await self._call("SetAnnotations", {"Tag": tag, "Pairs": pairs})
