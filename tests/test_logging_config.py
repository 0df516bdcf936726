"""Tests for the JSON log format and context adapter."""

import json
import logging

from catalog_cache.logging_config import CatalogJsonFormatter, get_logger, setup_logging


def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="catalog_cache.ingest.scraper",
        level=logging.ERROR,
        pathname=__file__,
        lineno=10,
        msg="Failed to scrape %s",
        args=("category",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_adds_service_and_context():
    formatter = CatalogJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")

    payload = json.loads(formatter.format(make_record(component="scraper", route="category")))

    assert payload["message"] == "Failed to scrape category"
    assert payload["level"] == "ERROR"
    assert payload["service"] == "catalog_cache"
    assert payload["component"] == "scraper"
    assert payload["route"] == "category"
    assert "slug" not in payload


def test_adapter_merges_bound_and_call_context():
    adapter = get_logger("catalog_cache.test", component="worker", entity="category")

    _, kwargs = adapter.process("msg", {"extra": {"entity": "product", "slug": "the-hobbit"}})

    assert kwargs["extra"] == {"component": "worker", "entity": "product", "slug": "the-hobbit"}


def test_setup_logging_writes_json_files(tmp_path):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        setup_logging(log_dir=tmp_path, log_level="info")
        get_logger("catalog_cache.test", component="scraper").error("boom")
        for handler in root.handlers:
            handler.flush()

        line = (tmp_path / "error.log").read_text().strip().splitlines()[-1]
        assert json.loads(line)["component"] == "scraper"
        assert (tmp_path / "app.log").exists()
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
