import pytest

from pipeline.errors import InjectionDetected, PayloadTooLarge, UnsupportedContentType
from pipeline.guards import FORM, JSON, check_body_size, check_content_type, check_injection, find_injection


@pytest.mark.parametrize(
    "text",
    [
        "<script>alert(1)</script>",
        "< SCRIPT src=x>",
        "JavaScript:void(0)",
        '<img src=x onerror="boom">',
        "<iframe src=evil>",
        "<object data=x>",
        "<embed src=x>",
    ],
)
def test_dangerous_strings_are_detected(text):
    assert find_injection({"description": text})


def test_nested_values_and_query_are_scanned():
    assert find_injection({"tags": ["ok", {"deep": "<script>"}]})
    assert find_injection({}, {"category": "javascript:alert(1)"})


def test_plain_finance_text_passes():
    assert not find_injection({"description": "Monthly salary", "notes": "Paid on 1/6 & on time", "amount": 10})


def test_injection_error_does_not_echo_input():
    with pytest.raises(InjectionDetected) as exc_info:
        check_injection({"description": "<script>steal()</script>"})
    body = exc_info.value.body()
    assert exc_info.value.status_code == 400
    assert "steal" not in str(body)


def test_content_type_only_applies_to_mutating_methods():
    check_content_type("GET", None, (JSON,))
    check_content_type("POST", "application/json; charset=utf-8", (JSON,))
    check_content_type("POST", FORM, (JSON, FORM))
    with pytest.raises(UnsupportedContentType):
        check_content_type("PUT", "text/plain", (JSON,))
    with pytest.raises(UnsupportedContentType):
        check_content_type("POST", None, (JSON,))


def test_body_size_checks_declared_and_actual_length():
    check_body_size("10", b"x" * 10, 10)
    with pytest.raises(PayloadTooLarge) as exc_info:
        check_body_size("2048", b"", 1024)
    assert exc_info.value.status_code == 413
    assert "1KB" in exc_info.value.details
    with pytest.raises(PayloadTooLarge):
        check_body_size(None, b"x" * 11, 10)
