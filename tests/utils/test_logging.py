import logging

from IHE_Manifest_QA.config import LoggingSettings
from IHE_Manifest_QA.utils.logging import (
    JsonFormatter,
    bind_run_id,
    configure_logging,
    get_run_id,
    reset_run_id,
)


def test_configure_logging_accepts_level_names():
    configure_logging(level="DEBUG")
    assert logging.getLogger().level == logging.DEBUG
    configure_logging(level="not-a-level")
    assert logging.getLogger().level == logging.INFO


def test_structured_logging_includes_run_id(caplog):
    settings = LoggingSettings(level="INFO", scrub_fields=["patient_name"])
    configure_logging(settings=settings)
    token = bind_run_id("run-123")
    logger = logging.getLogger("manifest")
    logger.info("validated", extra={"patient_name": "DOE^JANE", "detail": "ok"})
    reset_run_id(token)
    assert '"run_id": "run-123"' in caplog.text
    assert '"patient_name": "***"' in caplog.text


def test_run_id_binding_is_restored():
    outer = bind_run_id("outer")
    inner = bind_run_id("inner")
    assert get_run_id() == "inner"
    reset_run_id(inner)
    assert get_run_id() == "outer"
    reset_run_id(outer)
    assert get_run_id() is None


def test_formatter_scrubs_nested_values():
    formatter = JsonFormatter(scrub_fields=["PatientID"])
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
    record.payload = {"patientid": "123", "other": [{"PatientID": "456"}]}
    rendered = formatter.format(record)
    assert "123" not in rendered
    assert "456" not in rendered
