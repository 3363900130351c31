from audit_trail.core.redaction import (
    HEADER_REDACTION_MARKER,
    REDACTION_MARKER,
    SensitiveFieldRegistry,
    add_sensitive_fields,
    header_lists,
    redact_headers,
    sanitize,
    sanitize_body,
    sensitive_fields,
)


def test_nested_sensitive_keys_are_redacted():
    data = {"password": "abc123", "profile": {"api_key": "xyz", "city": "Paris"}}

    assert sanitize(data) == {"password": "***", "profile": {"api_key": "***", "city": "Paris"}}
    # Input is left untouched.
    assert data["password"] == "abc123"


def test_sanitize_is_idempotent():
    data = {"token": "t", "nested": {"secret_key": "s", "items": [{"password": "p"}, 3]}}
    once = sanitize(data)
    assert sanitize(once) == once


def test_matching_is_case_insensitive_substring():
    result = sanitize({"User_Password_Hash": "x", "X-Api_Key-Id": "y", "name": "n"})
    assert result == {"User_Password_Hash": REDACTION_MARKER, "X-Api_Key-Id": REDACTION_MARKER, "name": "n"}


def test_matched_key_value_is_not_descended_into():
    assert sanitize({"secret": {"public": "value"}}) == {"secret": REDACTION_MARKER}


def test_mappings_inside_lists_are_sanitized():
    result = sanitize({"cards": [{"card_number": "4111", "brand": "visa"}, "plain"]})
    assert result == {"cards": [{"card_number": REDACTION_MARKER, "brand": "visa"}, "plain"]}


def test_non_mapping_values_pass_through():
    assert sanitize("password") == "password"
    assert sanitize(None) is None
    assert sanitize([{"password": "x"}]) == [{"password": "x"}]


def test_depth_cap_collapses_deep_subtrees():
    deep = {"a": {"b": {"c": {"d": "leaf"}}}}
    assert sanitize(deep, max_depth=2) == {"a": {"b": REDACTION_MARKER}}
    assert sanitize(deep, max_depth=10) == deep


def test_registered_fields_apply_to_later_calls():
    assert sanitize({"iban": "DE00"}) == {"iban": "DE00"}

    add_sensitive_fields(["IBAN"])

    assert "iban" in sensitive_fields.patterns()
    assert sanitize({"iban": "DE00"}) == {"iban": REDACTION_MARKER}


def test_registry_ignores_blank_and_duplicate_patterns():
    registry = SensitiveFieldRegistry(["pin", " PIN ", "", "otp"])
    assert registry.patterns() == ("pin", "otp")
    assert sanitize({"pin_code": "1234", "note": "ok"}, registry=registry) == {
        "pin_code": REDACTION_MARKER,
        "note": "ok",
    }


def test_headers_are_masked_and_excluded_case_insensitively():
    headers = header_lists(
        [
            ("Authorization", "Bearer abc"),
            ("Cookie", "session=1"),
            ("User-Agent", "pytest"),
            ("Accept", "text/html"),
            ("Accept", "application/json"),
        ]
    )

    result = redact_headers(headers, exclude=["user-agent"])

    assert result == {
        "Authorization": [HEADER_REDACTION_MARKER],
        "Cookie": [HEADER_REDACTION_MARKER],
        "Accept": ["text/html", "application/json"],
    }


def test_sanitize_body_drops_empty_and_sanitizes_lists():
    assert sanitize_body({}) is None
    assert sanitize_body([]) is None
    assert sanitize_body("") is None
    assert sanitize_body([{"password": "x"}, {"name": "y"}]) == [
        {"password": REDACTION_MARKER},
        {"name": "y"},
    ]
