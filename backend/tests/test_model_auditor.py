from audit_trail.models.audit import AuditEvent
from audit_trail.services.audit_writer import audit_writer
from audit_trail.services.model_auditor import AuditableConfig, ModelAuditor, ParentSubject, lookup_path

PRODUCTS = AuditableConfig(
    subject_type="products",
    message_fields={"name": "name", "category": "category.title"},
    parents=[ParentSubject(field="category_id", subject_type="categories")],
    level=2,
)


def _product(**overrides):
    fields = {
        "id": 42,
        "name": "Widget",
        "price": "8.99",
        "category_id": 3,
        "category": {"title": "Tools"},
        "updated_at": "2026-01-01T00:00:00",
    }
    fields.update(overrides)
    return fields


def test_created_event_has_payload_message_and_parent_subjects(db):
    auditor = ModelAuditor(PRODUCTS)

    event_id = auditor.created(db, _product(), actor_id="7")

    event = db.query(AuditEvent).filter(AuditEvent.id == event_id).one()
    assert event.event == "product.created"
    assert event.level == 2
    assert event.message_data == {"name": "Widget", "category": "Tools"}
    assert "id" not in event.payload
    assert event.payload["price"] == "8.99"
    assert event.diff is None
    assert [(s.subject_type, s.subject_id, s.role) for s in event.subjects] == [
        ("products", "42", "primary"),
        ("categories", "3", "parent"),
    ]
    assert audit_writer.verify_event(event) is True


def test_update_with_only_ignored_changes_writes_nothing(db):
    auditor = ModelAuditor(PRODUCTS)

    result = auditor.updated(db, _product(), _product(updated_at="2026-02-02T00:00:00"))

    assert result is None
    assert db.query(AuditEvent).count() == 0


def test_update_records_diff(db):
    auditor = ModelAuditor(PRODUCTS)

    event_id = auditor.updated(db, _product(), _product(price="9.99", updated_at="2026-02-02"))

    event = db.query(AuditEvent).filter(AuditEvent.id == event_id).one()
    assert event.event == "product.updated"
    assert event.diff == {"price": ["8.99", "9.99"]}


def test_overrides_are_scoped(db):
    auditor = ModelAuditor(PRODUCTS)

    with auditor.with_event_type("imported"), auditor.with_level(0):
        imported_id = auditor.created(db, _product())
    with auditor.without_auditing():
        assert auditor.deleted(db, _product()) is None
    created_id = auditor.created(db, _product(id=43))

    imported = db.query(AuditEvent).filter(AuditEvent.id == imported_id).one()
    created = db.query(AuditEvent).filter(AuditEvent.id == created_id).one()
    assert (imported.event, imported.level) == ("product.imported", 0)
    assert (created.event, created.level) == ("product.created", 2)
    assert db.query(AuditEvent).count() == 2


def test_disabled_actions_are_skipped(db):
    auditor = ModelAuditor(AuditableConfig(subject_type="sessions", events=("created",)))

    assert auditor.deleted(db, {"id": 1}) is None
    assert auditor.created(db, {"id": 1, "ip": "10.0.0.1"}) is not None


def test_parent_matching_primary_is_not_repeated():
    auditor = ModelAuditor(
        AuditableConfig(
            subject_type="nodes",
            parents=[ParentSubject(field="root_id", subject_type="nodes")],
        )
    )

    assert auditor.build_subjects({"id": 1, "root_id": 1}) == [
        {"subject_type": "nodes", "subject_id": "1", "role": "primary"}
    ]


def test_lookup_path_walks_mappings_and_attributes():
    class Owner:
        email = "o@example.com"

    assert lookup_path({"owner": Owner()}, "owner.email") == "o@example.com"
    assert lookup_path({"owner": None}, "owner.email") is None


def test_event_prefix_defaults_to_singular_subject_type():
    assert AuditableConfig(subject_type="categories").resolved_prefix() == "category"
    assert AuditableConfig(subject_type="users").resolved_prefix() == "user"
    assert AuditableConfig(subject_type="users", event_prefix="account").resolved_prefix() == "account"
