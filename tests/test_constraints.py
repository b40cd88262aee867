"""Tests for machine constraints parsing."""
import pytest

from mcp_bundle_deployer.deployer.constraints import (
    Constraints,
    check_constraints,
    parse_constraints,
)
from mcp_bundle_deployer.deployer.errors import ConstraintsError


class TestParseConstraints:
    """Tests for parse_constraints()."""

    def test_empty(self):
        assert parse_constraints("") == Constraints()

    def test_common_keys(self):
        result = parse_constraints("mem=4G cpu-cores=2 arch=amd64 root-disk=20480")

        assert result.mem == 4096
        assert result.cpu_cores == 2
        assert result.arch == "amd64"
        assert result.root_disk == 20480

    def test_size_suffixes(self):
        assert parse_constraints("mem=512M").mem == 512
        assert parse_constraints("mem=1.5G").mem == 1536
        assert parse_constraints("root-disk=1T").root_disk == 1024 * 1024

    def test_lists(self):
        result = parse_constraints("tags=ssd,fast spaces=db")

        assert result.tags == ["ssd", "fast"]
        assert result.spaces == ["db"]

    def test_container_and_instance(self):
        result = parse_constraints("container=lxd instance-type=m3.large virt-type=kvm")

        assert result.container == "lxd"
        assert result.instance_type == "m3.large"
        assert result.virt_type == "kvm"

    @pytest.mark.parametrize("bad", [
        "mem",
        "=4G",
        "mem=4X",
        "mem=-1",
        "cpu-cores=two",
        "arch=sparc",
        "container=docker",
        "colour=blue",
        "mem=1G mem=2G",
    ])
    def test_invalid(self, bad):
        with pytest.raises(ConstraintsError):
            parse_constraints(bad)

    def test_errors_are_value_errors(self):
        """The validator catches ValueError from any checker."""
        with pytest.raises(ValueError):
            check_constraints("mem=lots")

    def test_check_accepts_valid(self):
        check_constraints("mem=2G cpu-power=100")
