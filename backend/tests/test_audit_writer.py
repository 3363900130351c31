from datetime import datetime, timezone

import pytest

from audit_trail.config import settings
from audit_trail.core.correlation import AuditContext, request_context
from audit_trail.core.exceptions import (
    ConfigurationError,
    PersistenceError,
    ResourceNotFoundError,
    ValidationError,
)
from audit_trail.models.audit import AuditEvent, AuditSubject
from audit_trail.services.audit_writer import AuditWriter, audit_writer


def _write_product_update(db, **kwargs):
    return audit_writer.write(
        db,
        "product.updated",
        subjects=[{"subject_type": "products", "subject_id": "42", "role": "primary"}],
        message_data={"name": "Widget"},
        payload={"name": "Widget", "price": 9.99},
        diff={"price": ["8.99", "9.99"]},
        **kwargs,
    )


def test_write_persists_event_subject_and_verifiable_checksum(db):
    event_id = _write_product_update(db)

    event = db.query(AuditEvent).filter(AuditEvent.id == event_id).one()
    assert event.event == "product.updated"
    assert event.checksum
    assert event.payload == {"name": "Widget", "price": 9.99}
    assert event.diff == {"price": ["8.99", "9.99"]}
    assert event.level == settings.AUDIT_DEFAULT_LEVEL
    assert [(s.subject_type, s.subject_id, s.role) for s in event.subjects] == [
        ("products", "42", "primary")
    ]
    assert audit_writer.verify(db, event_id) is True


def test_verification_fails_after_tampering(db):
    event_id = _write_product_update(db)

    event = db.query(AuditEvent).filter(AuditEvent.id == event_id).one()
    event.payload = {"name": "Widget", "price": 0.99}
    db.commit()
    db.expire_all()

    assert audit_writer.verify(db, event_id) is False


def test_checksum_is_computed_over_redacted_values(db):
    event_id = audit_writer.write(
        db,
        "user.created",
        subjects=[{"subject_type": "users", "subject_id": 5}],
        payload={"email": "a@example.com", "password": "hunter2"},
    )

    event = db.query(AuditEvent).filter(AuditEvent.id == event_id).one()
    assert event.payload == {"email": "a@example.com", "password": "***"}
    assert event.subjects[0].subject_id == "5"
    assert event.subjects[0].role == "primary"
    assert audit_writer.verify_event(event) is True


def test_empty_mappings_are_stored_as_null(db):
    event_id = audit_writer.write(db, "report.exported", message_data={}, payload=None, diff={})

    event = db.query(AuditEvent).filter(AuditEvent.id == event_id).one()
    assert event.message_data is None
    assert event.diff is None
    assert event.subjects == []
    assert audit_writer.verify_event(event) is True


def test_actor_and_reference_come_from_request_scope(db):
    with request_context("ref-123", actor_id=9):
        event_id = _write_product_update(db)

    event = db.query(AuditEvent).filter(AuditEvent.id == event_id).one()
    assert event.reference_id == "ref-123"
    assert event.actor_id == "9"


def test_explicit_actor_and_context_take_precedence(db):
    context = AuditContext(reference_id="job-7", actor_id="system")
    with request_context("ref-ignored", actor_id="someone"):
        event_id = _write_product_update(db, actor_id="admin-1", context=context)

    event = db.query(AuditEvent).filter(AuditEvent.id == event_id).one()
    assert event.actor_id == "admin-1"
    assert event.reference_id == "job-7"


def test_naive_timestamp_is_treated_as_utc(db):
    event_id = _write_product_update(db, created_at=datetime(2026, 3, 1, 12, 0, 0))

    event = db.query(AuditEvent).filter(AuditEvent.id == event_id).one()
    assert event.created_at.replace(tzinfo=timezone.utc) == datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_duplicate_subjects_are_written_once(db):
    event_id = audit_writer.write(
        db,
        "order.shipped",
        subjects=[
            {"subject_type": "orders", "subject_id": "1"},
            {"subject_type": "orders", "subject_id": "1", "role": "primary"},
            {"subject_type": "customers", "subject_id": "8", "role": "parent"},
        ],
    )

    assert db.query(AuditSubject).filter(AuditSubject.audit_event_id == event_id).count() == 2


@pytest.mark.parametrize(
    "subjects",
    [
        [{"subject_id": "1"}],
        [{"subject_type": "orders"}],
        [{"subject_type": "orders", "subject_id": "  "}],
        ["orders:1"],
    ],
)
def test_malformed_subjects_are_rejected_before_persisting(db, subjects):
    with pytest.raises(ValidationError):
        audit_writer.write(db, "order.shipped", subjects=subjects)
    assert db.query(AuditEvent).count() == 0


def test_invalid_event_name_and_level_are_rejected(db):
    with pytest.raises(ValidationError):
        audit_writer.write(db, "  ")
    with pytest.raises(ValidationError):
        audit_writer.write(db, "order.shipped", level=-1)


def test_missing_audit_key_writes_nothing(db, monkeypatch):
    monkeypatch.setattr(settings, "AUDIT_KEY", None)

    with pytest.raises(ConfigurationError):
        _write_product_update(db)
    assert db.query(AuditEvent).count() == 0


def test_storage_failure_rolls_back_event_and_subjects(db, monkeypatch):
    # Let a duplicate subject through so the unique constraint fails at commit.
    def keep_duplicates(subjects):
        return [
            {"subject_type": s["subject_type"], "subject_id": s["subject_id"], "role": "primary"}
            for s in subjects
        ]

    monkeypatch.setattr(AuditWriter, "prepare_subjects", staticmethod(keep_duplicates))

    with pytest.raises(PersistenceError):
        audit_writer.write(
            db,
            "order.shipped",
            subjects=[
                {"subject_type": "orders", "subject_id": "1"},
                {"subject_type": "orders", "subject_id": "1"},
            ],
        )

    assert db.query(AuditEvent).count() == 0
    assert db.query(AuditSubject).count() == 0


def test_verify_unknown_event_raises_not_found(db):
    with pytest.raises(ResourceNotFoundError):
        audit_writer.verify(db, "does-not-exist")


def test_uncommitted_write_joins_caller_transaction(db):
    event_id = _write_product_update(db, commit=False)
    db.rollback()

    assert db.query(AuditEvent).filter(AuditEvent.id == event_id).first() is None


def test_boolean_level_is_rejected(db):
    with pytest.raises(ValidationError):
        audit_writer.write(db, "order.shipped", level=True)
    assert db.query(AuditEvent).count() == 0


def test_deeply_nested_payload_is_collapsed_not_rejected(db):
    payload = {"leaf": 1}
    for _ in range(5000):
        payload = {"child": payload}

    event_id = audit_writer.write(db, "import.finished", payload=payload)

    event = db.query(AuditEvent).filter(AuditEvent.id == event_id).one()
    node = event.payload
    for _ in range(settings.AUDIT_REDACTION_MAX_DEPTH):
        node = node["child"]
    assert node == "***"
    assert audit_writer.verify(db, event_id) is True


def test_absent_json_values_are_stored_as_sql_null(db):
    with_diff = _write_product_update(db)
    without_diff = audit_writer.write(db, "order.shipped")

    assert [event.id for event in db.query(AuditEvent).filter(AuditEvent.diff.is_(None))] == [without_diff]
    assert [event.id for event in db.query(AuditEvent).filter(AuditEvent.payload.isnot(None))] == [with_diff]
