import logging

from care_refresh.observability import _ContextFormatter, _ProbeAccessLogFilter


def _record(msg: str, args=(), **extra) -> logging.LogRecord:
    record = logging.LogRecord("care_refresh.test", logging.INFO, __file__, 1, msg, args, None)
    record.__dict__.update(extra)
    return record


def test_context_formatter_appends_extra_fields() -> None:
    formatter = _ContextFormatter("%(levelname)s %(message)s")

    line = formatter.format(_record("refresh_kind_completed", region="IN", kind="laws"))

    assert line == "INFO refresh_kind_completed kind=laws region=IN"


def test_context_formatter_leaves_plain_records_alone() -> None:
    assert _ContextFormatter("%(message)s").format(_record("plain")) == "plain"


def test_probe_filter_drops_successful_probe_access_logs() -> None:
    probe_filter = _ProbeAccessLogFilter(ignored_paths=("/healthz", "/metrics"))

    assert probe_filter.filter(_record("%s", ("127.0.0.1", "GET", "/healthz/", "1.1", 200))) is False
    assert probe_filter.filter(_record("%s", ("127.0.0.1", "GET", "/metrics?x=1", "1.1", 200))) is False
    assert probe_filter.filter(_record("%s", ("127.0.0.1", "GET", "/healthz", "1.1", 503))) is True
    assert probe_filter.filter(_record("%s", ("127.0.0.1", "GET", "/status", "1.1", 200))) is True
