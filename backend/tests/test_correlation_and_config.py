import asyncio

import pytest

from audit_trail.config import Settings
from audit_trail.core.correlation import (
    bind_actor,
    coerce_reference_id,
    current_context,
    get_reference_id,
    request_context,
    resolve_reference_id,
)


def test_reference_ids_are_uuid_strings_and_unique():
    first = resolve_reference_id(None)
    second = resolve_reference_id("")
    assert first != second
    assert len(first) == 36 and first.count("-") == 4


def test_incoming_reference_id_is_validated():
    assert coerce_reference_id(" abc-123 ") == "abc-123"
    assert coerce_reference_id("x" * 65) is None
    assert coerce_reference_id("bad\nid") is None
    assert resolve_reference_id("trace-7") == "trace-7"


def test_scope_is_restored_after_exit():
    assert get_reference_id() is None
    with request_context("outer"):
        with request_context("inner"):
            assert get_reference_id() == "inner"
        assert get_reference_id() == "outer"
    assert get_reference_id() is None


def test_actor_bound_in_worker_thread_is_visible_to_scope():
    async def handle():
        with request_context("ref-a") as context:
            await asyncio.to_thread(bind_actor, 12)
            return context.actor_id, current_context().actor_id

    assert asyncio.run(handle()) == ("12", "12")


def test_concurrent_scopes_do_not_leak():
    async def handle(reference_id, delay):
        with request_context(reference_id):
            await asyncio.sleep(delay)
            return get_reference_id()

    async def run():
        return await asyncio.gather(handle("a", 0.02), handle("b", 0.0))

    assert asyncio.run(run()) == ["a", "b"]


def test_list_settings_accept_json_or_comma_separated(monkeypatch):
    monkeypatch.setenv("AUDIT_SENSITIVE_FIELDS", '["iban", "pin"]')
    monkeypatch.setenv("REQUEST_LOGGING_EXCLUDE_PATHS", "/health, /ready")
    monkeypatch.setenv("EVENT_RETENTION_DAYS", "null")
    monkeypatch.setenv("REQUEST_RETENTION_DAYS", "14")

    configured = Settings(_env_file=None)

    assert configured.AUDIT_SENSITIVE_FIELDS == ["iban", "pin"]
    assert configured.REQUEST_LOGGING_EXCLUDE_PATHS == ["/health", "/ready"]
    assert configured.retention_days_for("events") is None
    assert configured.retention_days_for("requests") == 14


def test_production_requires_audit_key(monkeypatch):
    monkeypatch.delenv("AUDIT_KEY", raising=False)
    configured = Settings(
        _env_file=None,
        ENVIRONMENT="production",
        SECRET_KEY="s" * 40,
        AUDIT_KEY=None,
    )

    with pytest.raises(ValueError, match="AUDIT_KEY"):
        configured.validate_security_settings()
