"""Tests for the deployment audit trail."""
import logging

import pytest

from mcp_bundle_deployer.utils.audit_log import (
    ChangeRecord,
    ChangeTracker,
    audit_logger,
    get_recent_changes,
    setup_audit_logging,
)


@pytest.fixture
def audit_file(tmp_path):
    """Route audit records to a temporary directory."""
    path = setup_audit_logging(str(tmp_path))
    yield path
    for handler in list(audit_logger.handlers):
        handler.close()
        audit_logger.removeHandler(handler)


def flush():
    for handler in audit_logger.handlers:
        handler.flush()


class TestChangeTracker:
    """Tests for ChangeTracker."""

    def test_records_are_kept(self):
        tracker = ChangeTracker("staging", user="alice", context="release 4")
        record = tracker.log_change("deploy-1", "addService", {"service": "mysql"}, True, result="mysql")

        assert tracker.records == [record]
        assert record.environment == "staging"
        assert record.user == "alice"
        assert record.context == "release 4"
        assert record.error is None

    def test_error_is_truncated(self):
        tracker = ChangeTracker("staging")
        record = tracker.log_change("addRelation-2", "addRelation", {}, False, error="x" * 5000)

        assert len(record.error) == 1000

    def test_json_round_trip(self):
        tracker = ChangeTracker("staging")
        record = tracker.log_change("addCharm-0", "addCharm", {"charm": "mysql"}, True, result="cs:trusty/mysql-10")

        assert ChangeRecord.from_json(record.to_json()) == record


class TestAuditFile:
    """Records written to and read back from the audit log."""

    def test_records_written_as_json_lines(self, audit_file):
        tracker = ChangeTracker("staging")
        tracker.log_change("addCharm-0", "addCharm", {"charm": "mysql"}, True, result="cs:trusty/mysql-10")
        flush()

        with open(audit_file) as f:
            lines = f.read().splitlines()

        assert len(lines) == 1
        assert ChangeRecord.from_json(lines[0]).result == "cs:trusty/mysql-10"

    def test_audit_logger_does_not_propagate(self, audit_file):
        assert audit_logger.propagate is False
        assert audit_logger.level == logging.INFO

    def test_recent_changes_filtered(self, audit_file):
        ChangeTracker("staging").log_change("addCharm-0", "addCharm", {}, True)
        ChangeTracker("prod").log_change("addCharm-0", "addCharm", {}, True)
        ChangeTracker("staging").log_change("deploy-1", "addService", {}, True)
        flush()

        staging = get_recent_changes(audit_file, environment="staging")
        assert [r.change_id for r in staging] == ["deploy-1", "addCharm-0"]

        services = get_recent_changes(audit_file, operation="addService")
        assert len(services) == 1

        assert len(get_recent_changes(audit_file, limit=2)) == 2

    def test_malformed_lines_skipped(self, audit_file):
        ChangeTracker("staging").log_change("addCharm-0", "addCharm", {}, True)
        flush()
        with open(audit_file, "a") as f:
            f.write("not json\n\n")

        assert len(get_recent_changes(audit_file)) == 1

    def test_missing_file(self, tmp_path):
        assert get_recent_changes(str(tmp_path / "missing.log")) == []
