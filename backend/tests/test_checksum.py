import hashlib
import hmac

import pytest

from audit_trail.config import settings
from audit_trail.core.canonical import canonicalize, normalize, stable_json
from audit_trail.core.checksum import compute_checksum, verify_checksum
from audit_trail.core.exceptions import ConfigurationError


def _record(**overrides):
    record = {
        "event": "product.updated",
        "message_data": {"name": "Widget"},
        "payload": {"name": "Widget", "price": 9.99},
        "diff": {"price": ["8.99", "9.99"]},
        "actor_id": "7",
        "subjects": [{"subject_type": "products", "subject_id": "42", "role": "primary"}],
    }
    record.update(overrides)
    return record


def test_checksum_is_lowercase_hex_hmac_sha256(audit_key):
    record = _record()
    digest = compute_checksum(record)

    expected = hmac.new(
        audit_key.encode("utf-8"),
        canonicalize(**record),
        hashlib.sha256,
    ).hexdigest()
    assert digest == expected
    assert len(digest) == 64
    assert digest == digest.lower()


def test_verify_accepts_own_checksum():
    record = _record()
    assert verify_checksum(record, compute_checksum(record)) is True


@pytest.mark.parametrize(
    "field, value",
    [
        ("event", "product.deleted"),
        ("message_data", {"name": "Gadget"}),
        ("payload", {"name": "Widget", "price": 10.0}),
        ("diff", {"price": ["8.99", "9.98"]}),
        ("actor_id", "8"),
        ("subjects", [{"subject_type": "products", "subject_id": "43", "role": "primary"}]),
    ],
)
def test_any_field_mutation_breaks_verification(field, value):
    record = _record()
    checksum = compute_checksum(record)

    assert verify_checksum(_record(**{field: value}), checksum) is False


def test_subject_order_is_part_of_the_checksum():
    subjects = [
        {"subject_type": "products", "subject_id": "42", "role": "primary"},
        {"subject_type": "categories", "subject_id": "3", "role": "parent"},
    ]
    forward = compute_checksum(_record(subjects=subjects))
    backward = compute_checksum(_record(subjects=list(reversed(subjects))))
    assert forward != backward


def test_different_key_yields_different_checksum():
    record = _record()
    assert compute_checksum(record, secret="one-key") != compute_checksum(record, secret="other-key")


def test_missing_key_raises_configuration_error(monkeypatch):
    monkeypatch.setattr(settings, "AUDIT_KEY", None)
    with pytest.raises(ConfigurationError):
        compute_checksum(_record())

    monkeypatch.setattr(settings, "AUDIT_KEY", "")
    with pytest.raises(ConfigurationError):
        verify_checksum(_record(), "abc")


def test_empty_expected_checksum_never_verifies():
    assert verify_checksum(_record(), None) is False
    assert verify_checksum(_record(), "") is False


def test_canonical_envelope_keeps_field_order_unicode_and_floats():
    envelope = canonicalize(
        "city.renamed",
        {"name": "Zürich"},
        {"ratio": 1.0, "b": 1, "a": 2},
        None,
        None,
        [],
    ).decode("utf-8")

    assert envelope == (
        '{"event":"city.renamed",'
        '"message_data":"{\\"name\\":\\"Zürich\\"}",'
        '"payload":"{\\"ratio\\":1.0,\\"b\\":1,\\"a\\":2}",'
        '"diff":"null",'
        '"actor_id":null,'
        '"subjects":[]}'
    )


def test_stable_json_has_no_whitespace_and_no_escaping():
    assert stable_json({"a": [1, 2], "ü": "é"}) == '{"a":[1,2],"ü":"é"}'


def test_normalize_maps_empty_to_none_and_converts_host_types():
    from datetime import datetime, timezone
    from decimal import Decimal

    assert normalize({}) is None
    assert normalize(None) is None
    assert normalize(
        {"at": datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc), "amount": Decimal("9.90")}
    ) == {"at": "2026-01-02T03:04:05+00:00", "amount": "9.90"}


def test_normalize_collapses_containers_past_the_depth_cap():
    assert normalize({"a": {"b": {"c": 1}}}, max_depth=2) == {"a": {"b": "***"}}
    assert normalize({"a": [[1]]}, max_depth=2) == {"a": ["***"]}
