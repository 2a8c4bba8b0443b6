"""
Tests de la bitácora de auditoría
"""
import pytest
from decimal import Decimal
from uuid import uuid4

from app.common.exceptions import AuditWriteFailure
from app.dependencies.userDependencies import Actor
from app.modules.audit.models import AuditAction, AuditLogEntry
from app.modules.audit.service import AuditLogService, AuditRecorder, snapshot
from app.modules.billing.states import DocumentStatus


class MemorySink:
    def __init__(self):
        self.entries = []

    def write(self, entry):
        self.entries.append(entry)


class BrokenSink:
    def write(self, entry):
        raise AuditWriteFailure("disco lleno")


class UnreachableSink:
    def write(self, entry):
        raise ConnectionError("syslog no disponible")


class TestAuditRecorder:
    def test_writes_entry_with_actor(self, db_session, actor):
        record_id = uuid4()
        warning = AuditRecorder(db_session).record(
            actor, AuditAction.UPDATE, "invoices", record_id,
            {"status": "pending"}, {"status": "paid", "total": Decimal("1130.00")}
        )

        assert warning is None
        entry = db_session.query(AuditLogEntry).one()
        assert entry.user_id == "user-1"
        assert entry.user_email == "cajero@ally.cr"
        assert entry.action == "UPDATE"
        assert entry.record_id == str(record_id)
        assert entry.old_values == {"status": "pending"}
        assert entry.new_values["total"] == "1130.00"
        assert entry.timestamp is not None

    def test_custom_sink_receives_serializable_entry(self, db_session, actor):
        sink = MemorySink()
        AuditRecorder(db_session, sink).record(actor, AuditAction.INSERT, "bills", "abc", None, {"total": Decimal("5")})

        assert sink.entries[0]["old_values"] is None
        assert sink.entries[0]["new_values"] == {"total": "5"}

    def test_failure_becomes_warning(self, db_session, actor):
        warning = AuditRecorder(db_session, BrokenSink()).record(actor, AuditAction.PAYMENT, "invoices", "abc")

        assert "disco lleno" in warning
        assert db_session.query(AuditLogEntry).count() == 0

    def test_unexpected_sink_error_becomes_warning(self, db_session, actor):
        warning = AuditRecorder(db_session, UnreachableSink()).record(
            actor, AuditAction.PAYMENT, "invoices", "abc", None, {"amount": Decimal("400")}
        )

        assert warning.startswith("Auditoría no registrada para invoices/abc")
        assert "ConnectionError: syslog no disponible" in warning

    def test_unserializable_values_become_warning(self, db_session, actor):
        sink = MemorySink()
        warning = AuditRecorder(db_session, sink).record(
            actor, AuditAction.UPDATE, "bills", "abc", None, {"handle": object()}
        )

        assert warning is not None
        assert sink.entries == []

    def test_snapshot_serializes_enums(self):
        class Doc:
            status = DocumentStatus.PARTIAL
            total = Decimal("10.50")

        assert snapshot(Doc(), ("status", "total", "missing")) == {
            "status": "partial", "total": "10.50", "missing": None
        }


class TestAuditLogService:
    @pytest.fixture
    def entries(self, db_session, actor):
        recorder = AuditRecorder(db_session)
        other = Actor(user_id="user-2")
        recorder.record(actor, AuditAction.INSERT, "invoices", "inv-1", None, {"total": "10"})
        recorder.record(actor, AuditAction.PAYMENT, "invoices", "inv-1", {"status": "pending"}, {"status": "paid"})
        recorder.record(other, AuditAction.INSERT, "bills", "bill-1", None, {"total": "5"})

    def test_filters(self, db_session, entries):
        service = AuditLogService(db_session)

        assert service.get_entries().total == 3
        assert service.get_entries(table_name="invoices").total == 2
        assert service.get_entries(user_id="user-2").total == 1
        assert service.get_entries(action=AuditAction.PAYMENT).entries[0].record_id == "inv-1"
        assert service.get_entries(record_id="bill-1").entries[0].table_name == "bills"

    def test_history_by_record(self, db_session, entries):
        history = AuditLogService(db_session).get_history("invoices", "inv-1")
        assert {entry.action for entry in history} == {"INSERT", "PAYMENT"}

    def test_endpoint(self, api_client, auth_headers, entries):
        response = api_client.get("/audit-log/", headers=auth_headers, params={"table_name": "bills"})
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["entries"][0]["user_id"] == "user-2"

    def test_endpoint_requires_actor(self, api_client):
        assert api_client.get("/audit-log/").status_code == 401
