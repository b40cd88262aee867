"""Tests for bundle verification."""
from mcp_bundle_deployer.deployer import (
    BundleData,
    BundleParser,
    BundleValidator,
    MachineSpec,
    ServiceSpec,
)


def verify(bundle_dict, validator=None):
    return (validator or BundleValidator()).verify(BundleParser().parse(bundle_dict))


class TestBundleValidator:
    """Tests for the BundleValidator."""

    def test_valid_bundle(self, wordpress_bundle):
        """A consistent bundle passes."""
        result = verify(wordpress_bundle)

        assert result.valid
        assert result.errors == []

    def test_no_services(self):
        result = BundleValidator().verify(BundleData())

        assert not result.valid
        assert "bundle has no services" in result.errors

    def test_invalid_charm_url(self):
        result = verify({"services": {"mysql": {"charm": "http://example.com/mysql"}}})

        assert not result.valid
        assert "invalid charm URL in service 'mysql'" in result.errors[0]

    def test_empty_charm(self):
        result = verify({"services": {"mysql": {"num_units": 1}}})

        assert "empty charm path in service 'mysql'" in result.errors

    def test_bundle_url_rejected(self):
        result = verify({"services": {"wp": {"charm": "cs:bundle/wordpress-simple-1"}}})

        assert not result.valid
        assert "refers to a bundle" in result.errors[0]

    def test_negative_units(self):
        bundle = BundleData(services={"mysql": ServiceSpec(charm="cs:trusty/mysql-10", num_units=-1)})

        result = BundleValidator().verify(bundle)

        assert "negative number of units specified on service 'mysql'" in result.errors

    def test_invalid_service_name(self):
        result = verify({"services": {"My_SQL": {"charm": "mysql"}}})

        assert "invalid service name 'My_SQL'" in result.errors


class TestConstraintChecks:
    """Constraints go through the constraint checker."""

    def test_invalid_service_constraints(self):
        result = verify({"services": {"mysql": {"charm": "mysql", "constraints": "mem=lots"}}})

        assert not result.valid
        assert "invalid constraints 'mem=lots' in service 'mysql'" in result.errors[0]

    def test_invalid_machine_constraints(self):
        result = verify({
            "services": {"mysql": {"charm": "mysql", "num_units": 1, "to": "0"}},
            "machines": {"0": {"constraints": "bogus=1"}},
        })

        assert not result.valid
        assert "machine '0'" in result.errors[0]

    def test_custom_checker_is_used(self):
        """The checker is called once per constraints string."""
        seen = []

        def checker(text):
            seen.append(text)
            if text == "reject":
                raise ValueError("rejected")

        result = verify(
            {
                "services": {
                    "mysql": {"charm": "mysql", "constraints": "reject"},
                    "wordpress": {"charm": "wordpress", "constraints": "mem=2G"},
                },
            },
            BundleValidator(constraint_checker=checker),
        )

        assert sorted(seen) == ["mem=2G", "reject"]
        assert len(result.errors) == 1


class TestPlacementChecks:

    def test_undeclared_machine(self):
        result = verify({"services": {"mysql": {"charm": "mysql", "num_units": 1, "to": "3"}}})

        assert not result.valid
        assert "undeclared machine '3'" in result.errors[0]

    def test_unsupported_directive(self):
        result = verify({
            "services": {
                "mysql": {"charm": "mysql", "num_units": 1},
                "wordpress": {"charm": "wordpress", "num_units": 1, "to": "mysql/0"},
            },
        })

        assert "invalid placement syntax 'mysql/0' in service 'wordpress'" in result.errors

    def test_unknown_container_type(self):
        result = verify({
            "services": {"mysql": {"charm": "mysql", "num_units": 1, "to": "docker:0"}},
            "machines": {"0": {}},
        })

        assert not result.valid

    def test_too_many_directives(self):
        result = verify({
            "services": {"mysql": {"charm": "mysql", "num_units": 1, "to": ["0", "1"]}},
            "machines": {"0": {}, "1": {}},
        })

        assert "too many units specified in unit placement for service 'mysql'" in result.errors

    def test_new_and_containers_accepted(self):
        result = verify({
            "services": {"mysql": {"charm": "mysql", "num_units": 3, "to": ["new", "lxc:0", "kvm:new"]}},
            "machines": {"0": {}},
        })

        assert result.valid

    def test_unused_machine_warns(self):
        bundle = BundleData(
            services={"mysql": ServiceSpec(charm="mysql")},
            machines={"4": MachineSpec()},
        )

        result = BundleValidator().verify(bundle)

        assert result.valid
        assert result.warnings == ["machine '4' is not referred to by a placement directive"]


class TestRelationChecks:

    def test_unknown_service(self):
        result = verify({
            "services": {"wordpress": {"charm": "wordpress"}},
            "relations": [["wordpress:db", "mysql:db"]],
        })

        assert not result.valid
        assert "service 'mysql' not defined" in result.errors[0]

    def test_self_relation(self):
        result = verify({
            "services": {"mysql": {"charm": "mysql"}},
            "relations": [["mysql:cluster", "mysql:cluster"]],
        })

        assert "relates a service to itself" in result.errors[0]

    def test_duplicate_relation(self):
        result = verify({
            "services": {"wordpress": {"charm": "wordpress"}, "mysql": {"charm": "mysql"}},
            "relations": [["wordpress:db", "mysql:db"], ["mysql:db", "wordpress:db"]],
        })

        assert result.errors == ["relation ['mysql:db', 'wordpress:db'] is defined more than once"]

    def test_invalid_relation_name(self):
        result = verify({
            "services": {"wordpress": {"charm": "wordpress"}, "mysql": {"charm": "mysql"}},
            "relations": [["wordpress:DB!", "mysql:db"]],
        })

        assert "invalid relation syntax 'wordpress:DB!'" in result.errors
