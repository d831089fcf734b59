"""
Logging helper tests
"""

import io
import json
import logging

from socialize.utils.logger import ContextFilter, JSONFormatter, log_context, log_publish_operation


def capture(formatter):
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(ContextFilter())
    handler.setFormatter(formatter)
    logger = logging.getLogger("tests.logger")
    logger.handlers = [handler]
    logger.propagate = False
    logger.setLevel(logging.DEBUG)
    return logger, stream


def test_json_lines_carry_context_and_extra_fields():
    logger, stream = capture(JSONFormatter())

    with log_context(tenant_id="t1", upload_id="u1"):
        logger.info("claimed", extra={"worker": "w-1"})
    logger.info("outside")

    inside, outside = [json.loads(line) for line in stream.getvalue().splitlines()]
    assert inside["message"] == "claimed"
    assert inside["tenant_id"] == "t1"
    assert inside["upload_id"] == "u1"
    assert inside["worker"] == "w-1"
    assert "tenant_id" not in outside


def test_nested_context_is_restored():
    logger, stream = capture(logging.Formatter("%(message)s%(context_suffix)s"))

    with log_context(job_id="j1"):
        with log_context(upload_id="u2"):
            logger.info("inner")
        logger.info("outer")

    assert stream.getvalue().splitlines() == ["inner [job_id=j1 upload_id=u2]", "outer [job_id=j1]"]


def test_failed_publish_is_logged_as_warning():
    logger, stream = capture(JSONFormatter())

    log_publish_operation(logger, "FAILED", "u3", "x", error="HTTP 503")

    entry = json.loads(stream.getvalue())
    assert entry["level"] == "WARNING"
    assert entry["platform_type"] == "x"
    assert entry["error"] == "HTTP 503"
