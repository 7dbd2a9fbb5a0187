import logging

from rimg_shared import (
    ErrorCode,
    Result,
    content_type_for,
    format_timestamp,
    is_image_file,
    normalize_extensions,
    sanitize_error_message,
)
from rimg_shared.log import CorrelationFilter, TaggedFormatter, get_logger, request_id_var


def test_normalize_extensions_lowercases_and_adds_dot() -> None:
    assert normalize_extensions(["JPG", ".Png", " webp ", "", None]) == frozenset({".jpg", ".png", ".webp"})
    assert normalize_extensions(None) == frozenset()


def test_is_image_file_is_case_insensitive() -> None:
    assert is_image_file("photo.JPG")
    assert is_image_file("cats/b.png")
    assert not is_image_file("notes.txt")
    assert not is_image_file("README")
    assert is_image_file("x.tiff", frozenset({".tiff"}))


def test_content_type_for_known_and_unknown() -> None:
    assert content_type_for("a.jpg") == "image/jpeg"
    assert content_type_for("A.JPEG") == "image/jpeg"
    assert content_type_for("b.webp") == "image/webp"
    assert content_type_for("blob.zzz-unknown") == "application/octet-stream"


def test_format_timestamp() -> None:
    assert format_timestamp(None) is None
    assert format_timestamp(0) == "1970-01-01T00:00:00.000Z"
    assert format_timestamp(1.5) == "1970-01-01T00:00:01.500Z"


def test_result_helpers() -> None:
    ok = Result.Ok("cats/b.png", attempts=1)
    assert ok.ok and ok.code == "OK" and ok.meta == {"attempts": 1}
    assert ok.data == "cats/b.png"
    assert ok.reason is None

    err = Result.Err(ErrorCode.NOT_FOUND, "nothing", reason="empty index")
    assert not err.ok
    assert err.data is None
    assert err.code == "NOT_FOUND"
    assert err.error == "nothing"
    assert err.reason == "empty index"

    assert Result.Err("SCAN_FAILED", "x").reason is None


def test_sanitize_error_message_masks_paths() -> None:
    msg = sanitize_error_message(RuntimeError("cannot open /srv/images/secret.png"), "Failed to send image")
    assert msg.startswith("Failed to send image:")
    assert "/srv/images" not in msg
    assert "[path]" in msg


def test_sanitize_error_message_returns_fallback_for_empty() -> None:
    assert sanitize_error_message("", "Fallback") == "Fallback"
    assert sanitize_error_message(None, "Fallback") == "Fallback"


def test_get_logger_strips_package_prefix() -> None:
    logger = get_logger("rimg_backend.features.index.catalog")
    assert logger.name == "rimg.features.index.catalog"
    assert logger.propagate is False
    assert any(isinstance(f, CorrelationFilter) for f in logger.filters)


def test_formatter_includes_request_id() -> None:
    record = logging.LogRecord("rimg.test", logging.WARNING, __file__, 1, "hello", None, None)
    token = request_id_var.set("rid-42")
    try:
        CorrelationFilter().filter(record)
    finally:
        request_id_var.reset(token)
    line = TaggedFormatter().format(record)
    assert line == "[rimg] [WRN] rimg.test [rid-42]: hello"
