"""Parser for bundle documents.

Converts dict/YAML input to a typed BundleData object. A bundle looks like:

    series: trusty
    services:
      wordpress:
        charm: cs:trusty/wordpress-3
        num_units: 2
        to: ["0", "lxc:1"]
        options: {debug: "yes"}
        annotations: {gui-x: "100", gui-y: "200"}
      mysql:
        charm: cs:trusty/mysql-10
        constraints: mem=4G
    machines:
      "0": {constraints: cpu-cores=2}
      "1": {}
    relations:
      - ["wordpress:db", "mysql:db"]

Legacy documents holding several named bundles at the top level are
accepted too; pick one with ``name``.
"""
import hashlib
import json
from typing import Any, Optional

import yaml

from .errors import ParseError
from .schema import BundleData, MachineSpec, ServiceSpec

SERVICE_KEYS = ("services", "applications")


class BundleParser:
    """Parse bundles from dict/YAML format."""

    def parse_yaml(self, text: str, name: Optional[str] = None) -> BundleData:
        """Parse a YAML encoded bundle.

        Raises:
            ParseError: If the YAML is invalid or does not describe a bundle
        """
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ParseError(f"cannot parse bundle YAML: {e}") from e
        return self.parse(data, name=name)

    def parse(self, data: Any, name: Optional[str] = None) -> BundleData:
        """
        Parse a bundle dict into a BundleData object.

        Args:
            data: Decoded bundle document
            name: Bundle to select when the document holds several

        Returns:
            BundleData object

        Raises:
            ParseError: If the document is structurally invalid
        """
        if not isinstance(data, dict):
            raise ParseError("bundle must be a mapping")

        data = self._select_bundle(data, name)

        services_key = next((k for k in SERVICE_KEYS if k in data), None)
        if services_key is None:
            raise ParseError("bundle has no services section")

        return BundleData(
            services=self._parse_services(data.get(services_key)),
            machines=self._parse_machines(data.get("machines")),
            relations=self._parse_relations(data.get("relations")),
            series=str(data.get("series") or ""),
        )

    def _select_bundle(self, data: dict[str, Any], name: Optional[str]) -> dict[str, Any]:
        """Unwrap legacy multi-bundle documents."""
        if any(k in data for k in SERVICE_KEYS):
            if name is not None:
                raise ParseError(f"bundle {name!r} requested but the document holds a single bundle")
            return data

        candidates = {
            key: value for key, value in data.items()
            if isinstance(value, dict) and any(k in value for k in SERVICE_KEYS)
        }
        if name is not None:
            if name not in candidates:
                raise ParseError(f"bundle {name!r} not found in document")
            return candidates[name]
        if len(candidates) == 1:
            return next(iter(candidates.values()))
        if len(candidates) > 1:
            raise ParseError(
                f"document holds several bundles ({', '.join(sorted(candidates))}); "
                f"a bundle name is required"
            )
        return data

    def _parse_services(self, services: Any) -> dict[str, ServiceSpec]:
        """Parse service declarations."""
        if not isinstance(services, dict):
            raise ParseError("services must be a mapping")

        parsed = {}
        for service_name, config in services.items():
            parsed[str(service_name)] = self._parse_single_service(str(service_name), config)
        return parsed

    def _parse_single_service(self, service_name: str, config: Any) -> ServiceSpec:
        """Parse a single service declaration."""
        if not isinstance(config, dict):
            raise ParseError(f"service {service_name!r} must be a mapping")

        num_units = config.get("num_units", 0)
        if isinstance(num_units, bool) or not isinstance(num_units, int):
            raise ParseError(f"service {service_name!r}: num_units must be an integer")

        return ServiceSpec(
            charm=str(config.get("charm") or ""),
            num_units=num_units,
            to=self._parse_placement(service_name, config.get("to")),
            options=self._mapping(f"service {service_name!r} options", config.get("options")),
            annotations=self._mapping(f"service {service_name!r} annotations", config.get("annotations")),
            constraints=str(config.get("constraints") or ""),
        )

    def _parse_placement(self, service_name: str, to: Any) -> list[str]:
        """Placement may be a single directive or a list of them."""
        if to is None:
            return []
        if isinstance(to, (str, int)):
            return [str(to)]
        if isinstance(to, list):
            return [str(item) for item in to]
        raise ParseError(f"service {service_name!r}: invalid placement {to!r}")

    def _parse_machines(self, machines: Any) -> dict[str, MachineSpec]:
        """Parse machine declarations. Keys may be integers in YAML."""
        if machines is None:
            return {}
        if not isinstance(machines, dict):
            raise ParseError("machines must be a mapping")

        parsed = {}
        for machine_id, config in machines.items():
            key = str(machine_id)
            config = config or {}
            if not isinstance(config, dict):
                raise ParseError(f"machine {key!r} must be a mapping")
            parsed[key] = MachineSpec(
                series=str(config.get("series") or ""),
                constraints=str(config.get("constraints") or ""),
                annotations=self._mapping(f"machine {key!r} annotations", config.get("annotations")),
            )
        return parsed

    def _parse_relations(self, relations: Any) -> list[tuple[str, str]]:
        """
        Parse relations.

        Examples:
            [["wordpress:db", "mysql:db"]] -> [("wordpress:db", "mysql:db")]
            [["haproxy", ["web1", "web2"]]] -> [("haproxy", "web1"), ("haproxy", "web2")]
        """
        if relations is None:
            return []
        if not isinstance(relations, list):
            raise ParseError("relations must be a list")

        parsed: list[tuple[str, str]] = []
        for relation in relations:
            if not isinstance(relation, list) or len(relation) != 2:
                raise ParseError(f"relation {relation!r} must be a pair of endpoints")
            head, tails = relation
            if isinstance(tails, list):
                parsed.extend((str(head), str(tail)) for tail in tails)
            else:
                parsed.append((str(head), str(tails)))
        return parsed

    @staticmethod
    def _mapping(what: str, value: Any) -> dict[str, Any]:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ParseError(f"{what} must be a mapping")
        return {str(k): v for k, v in value.items()}


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA256 checksum of a bundle document.

    Recorded with each deployment to tell which bundle revision was applied.
    """
    bundle_str = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    hash_bytes = hashlib.sha256(bundle_str.encode()).hexdigest()
    return f"sha256:{hash_bytes[:16]}"
