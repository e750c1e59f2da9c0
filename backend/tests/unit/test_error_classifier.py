"""
Unit Tests for ErrorClassifier
"""

import httpx

from scenegen.services.error_classifier import ErrorClassifier


def _http_status_error(status_code: int, text: str = "error") -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://example.com")
    response = httpx.Response(status_code, request=request, text=text)
    return httpx.HTTPStatusError("error", request=request, response=response)


def test_classify_auth_errors():
    classifier = ErrorClassifier()

    for status in (401, 403):
        result = classifier.classify_status(status)
        assert result["code"] == "AUTH_ERROR"
        assert result["retryable"] is False
        assert result["terminal"] is True


def test_classify_quota_exceeded():
    result = ErrorClassifier().classify_status(429)

    assert result["code"] == "QUOTA_EXCEEDED"
    assert result["retryable"] is False
    assert result["classification"] == "non_retryable"


def test_classify_validation_echoes_upstream_detail():
    classifier = ErrorClassifier()

    result = classifier.classify_status(400, '{"detail": "keyframes.frame0.url is not reachable"}')

    assert result["code"] == "VALIDATION_ERROR"
    assert result["message"] == "keyframes.frame0.url is not reachable"
    assert result["retryable"] is False


def test_classify_validation_without_json_body():
    result = ErrorClassifier().classify_status(422, "<html>bad</html>")

    assert result["code"] == "VALIDATION_ERROR"
    assert result["message"] == "Invalid request to the video provider"


def test_classify_server_error_is_retryable():
    result = ErrorClassifier().classify_status(503)

    assert result["code"] == "SERVER_ERROR"
    assert result["retryable"] is True
    assert result["classification"] == "retryable"


def test_classify_unrecognized_status():
    result = ErrorClassifier().classify_status(302)

    assert result["code"] == "API_ERROR"
    assert result["retryable"] is False


def test_classify_timeout():
    classifier = ErrorClassifier()
    error = httpx.ReadTimeout("timeout", request=httpx.Request("GET", "https://example.com"))

    result = classifier.classify_exception(error)

    assert result["code"] == "NETWORK_ERROR"
    assert result["retryable"] is True


def test_classify_network_error():
    classifier = ErrorClassifier()
    error = httpx.ConnectError("refused", request=httpx.Request("GET", "https://example.com"))

    result = classifier.classify_exception(error)

    assert result["code"] == "NETWORK_ERROR"
    assert result["retryable"] is True


def test_classify_http_status_exception_uses_status():
    result = ErrorClassifier().classify_exception(_http_status_error(429))

    assert result["code"] == "QUOTA_EXCEEDED"


def test_classify_unknown_exception():
    result = ErrorClassifier().classify_exception(RuntimeError("unexpected"))

    assert result["code"] == "API_ERROR"
    assert result["message"] == "Scene generation failed"
    assert result["retryable"] is False


def test_classify_archive_failure_is_distinct():
    result = ErrorClassifier().classify_archive_failure(_http_status_error(404))

    assert result["code"] == "ARCHIVE_ERROR"
    assert "404" in result["message"]
    assert result["retryable"] is False
