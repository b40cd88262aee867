"""Tests for charm URL parsing and comparison."""
import pytest

from mcp_bundle_deployer.deployer.charmurl import CharmURL, same_charm
from mcp_bundle_deployer.deployer.errors import CharmURLError


class TestCharmURLParse:
    """Tests for CharmURL.parse()."""

    def test_full_url(self):
        url = CharmURL.parse("cs:~bob/trusty/wordpress-3")

        assert url == CharmURL(schema="cs", name="wordpress", series="trusty", user="bob", revision=3)
        assert str(url) == "cs:~bob/trusty/wordpress-3"

    def test_missing_schema_means_store(self):
        url = CharmURL.parse("trusty/mysql")

        assert url.schema == "cs"
        assert url.revision == -1
        assert str(url) == "cs:trusty/mysql"

    def test_name_only(self):
        url = CharmURL.parse("mysql-10")

        assert url.name == "mysql"
        assert url.series == ""
        assert url.revision == 10

    def test_dashed_name_without_revision(self):
        assert CharmURL.parse("cs:trusty/rabbitmq-server").name == "rabbitmq-server"

    def test_local_charm(self):
        url = CharmURL.parse("local:xenial/mycharm-1")

        assert url.schema == "local"
        assert url.path == "xenial/mycharm-1"

    @pytest.mark.parametrize("bad", [
        "",
        "http:trusty/mysql",
        "local:~bob/trusty/mysql",
        "cs:trusty/extra/mysql",
        "cs:trusty/MySQL",
        "cs:~/trusty/mysql",
    ])
    def test_invalid_urls(self, bad):
        with pytest.raises(CharmURLError):
            CharmURL.parse(bad)

    def test_with_revision(self):
        url = CharmURL.parse("cs:trusty/mysql-10").with_revision(-1)

        assert str(url) == "cs:trusty/mysql"


class TestSameCharm:
    """Revision-insensitive comparison."""

    def test_other_revision_is_same_charm(self):
        assert same_charm("cs:trusty/wordpress-3", "cs:trusty/wordpress-5")

    def test_other_name_is_different(self):
        assert not same_charm("cs:trusty/wordpress-3", "cs:trusty/mediawiki-1")

    def test_other_series_is_different(self):
        assert not same_charm("cs:trusty/wordpress-3", "cs:xenial/wordpress-3")

    def test_other_user_is_different(self):
        assert not same_charm("cs:~bob/trusty/wordpress-3", "cs:trusty/wordpress-3")
