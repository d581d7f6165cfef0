from datetime import datetime

from notecharts.utils.time import bucket_label, date_label, parse_any_datetime, to_naive_utc, to_timezone

def test_parse_any_datetime_formats():
    assert parse_any_datetime("2025-12-01") == datetime(2025, 12, 1)
    assert parse_any_datetime("2025/12/01") == datetime(2025, 12, 1)
    assert parse_any_datetime("2025-12-01 08:30:00") == datetime(2025, 12, 1, 8, 30)
    assert parse_any_datetime("") is None
    assert parse_any_datetime(None) is None
    assert parse_any_datetime("not a date") is None

def test_parse_any_datetime_epoch_ms_and_iso_offset():
    dt = parse_any_datetime(0)
    assert dt is not None and dt.year == 1970
    iso = parse_any_datetime("2025-12-01T08:00:00Z")
    assert iso is not None and iso.tzinfo is not None

def test_to_timezone_and_naive_utc():
    local = to_timezone(datetime(2025, 12, 1, 8, 0), "Asia/Shanghai")
    assert local.utcoffset().total_seconds() == 8 * 3600
    assert to_naive_utc(local) == datetime(2025, 12, 1, 0, 0)
    naive = datetime(2025, 1, 1)
    assert to_naive_utc(naive) is naive

def test_date_label():
    assert date_label(datetime(2025, 3, 7, 23, 59)) == "2025-03-07"

def test_bucket_label_granularities():
    assert bucket_label("2025-12-03", "day") == "2025-12-03"
    # weeks start on Monday
    assert bucket_label("2025-12-03", "week") == "2025-12-01"
    assert bucket_label("2025-12-03", "month") == "2025-12"
    assert bucket_label("garbage", "month") is None
    assert bucket_label("2025-12-03", "none") == "2025-12-03"
    assert bucket_label("", "none") is None
