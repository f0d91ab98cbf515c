import logging
from datetime import date, datetime, timezone

import pytest

from stele import utils
from stele.dates import DateFormat, get_timezone, prepare_formatters, to_date_formats, to_timestamp
from stele.html_utils import join_root_url, render_element, resolve_asset

TS = datetime(2025, 1, 1, 8, 5, 9, 123000, tzinfo=timezone.utc).timestamp()


def test_slugify_and_permalink():
    assert utils.slugify("This <is a> bracket") == "this-is-a-bracket"
    assert utils.slugify("  Hello, World!  ") == "hello-world"
    assert utils.slugify("!!!") == ""

    assert utils.permalink("blog/hello", "http://h/") == "http://h/blog/hello/"
    assert utils.permalink("feed.xml", "http://h") == "http://h/feed.xml"
    assert utils.permalink("", "http://h/") == "http://h/"
    assert utils.permalink("about", "") == "/about/"


def test_replace_tokens_is_single_pass():
    tokens = {"{{a}}": "{{b}}", "{{b}}": "B", "{{ab}}": "AB"}
    assert utils.replace_tokens("{{a}}-{{b}}-{{ab}}", tokens) == "{{b}}-B-AB"
    assert utils.replace_tokens("plain", {}) == "plain"


def test_merge_dicts_is_recursive():
    base = {"a": {"x": 1, "y": 2}, "b": 1}
    merged = utils.merge_dicts(base, {"a": {"y": 3}, "c": 4})
    assert merged == {"a": {"x": 1, "y": 3}, "b": 1, "c": 4}
    assert base["a"]["y"] == 2


def test_ensure_clean_dir(tmp_path):
    target = tmp_path / "build"
    target.mkdir()
    (target / "old.txt").write_text("old", encoding="utf-8")
    utils.ensure_clean_dir(target)
    assert list(target.iterdir()) == []

    missing = tmp_path / "missing-dir"
    utils.ensure_clean_dir(missing)
    assert missing.exists()


def test_html_helpers():
    assert join_root_url("https://example.com/", "about") == "https://example.com/about"
    assert join_root_url("", "about") == "/about"
    assert render_element("img", [("src", 'a"b')]) == '<img src="a&quot;b">'
    assert render_element("p", contents="x") == "<p>x</p>"

    assert resolve_asset("./assets/a.png", "http://h", "assets", "blog/x") == (
        "http://h/assets/blog/x/a.png"
    )
    assert resolve_asset("/logo.png", "http://h/", "assets", "x") == "http://h/logo.png"
    assert resolve_asset("https://cdn/a.png", "http://h", "assets", "x") == "https://cdn/a.png"
    assert resolve_asset("{{site.logo}}", "http://h", "assets", "x") == "{{site.logo}}"


def test_date_formats():
    formatters = prepare_formatters("UTC", {"year": "%Y", "day": DateFormat("%d")})
    formats = to_date_formats(TS, formatters)

    assert formats["timestamp"] == TS
    assert formats["iso8601"] == "2025-01-01T08:05:09.123Z"
    assert formats["rss"] == "Wed, 01 Jan 2025 08:05:09 +0000"
    assert formats["sitemap"] == "2025-01-01"
    assert formats["date"]["full"] == "Wednesday, January 01, 2025"
    assert formats["date"]["short"] == "01/01/25"
    assert formats["time"]["medium"] == "08:05:09"
    assert formats["year"] == "2025"
    assert formats["day"] == "01"


def test_date_formats_use_time_zone():
    formatters = prepare_formatters(
        "Europe/Budapest", {"utc": {"format": "%H:%M", "timeZone": "UTC"}, "local": "%H:%M"}
    )
    formats = to_date_formats(TS, formatters)
    assert formats["local"] == "09:05"
    assert formats["utc"] == "08:05"
    assert formats["iso8601"] == "2025-01-01T08:05:09.123Z"


def test_to_timestamp():
    utc = get_timezone("UTC")
    assert to_timestamp(date(2025, 1, 1), utc) == datetime(
        2025, 1, 1, tzinfo=timezone.utc
    ).timestamp()
    assert to_timestamp("2025-01-01T08:05:09Z", utc) == int(TS)
    assert to_timestamp("01/02/2025", utc, "%d/%m/%Y") == datetime(
        2025, 2, 1, tzinfo=timezone.utc
    ).timestamp()
    assert to_timestamp(12.5, utc) == 12.5
    assert to_timestamp("not a date", utc) is None
    assert to_timestamp(True, utc) is None


def test_unknown_time_zone():
    with pytest.raises(ValueError, match="Unknown time zone `Mars/Olympus`"):
        get_timezone("Mars/Olympus")
    with pytest.raises(ValueError):
        DateFormat.from_value({"format": "%H", "timeZone": "Mars/Olympus"})


def test_clashing_date_format_names_are_skipped(caplog):
    with caplog.at_level(logging.WARNING, logger="stele.dates"):
        formatters = prepare_formatters(
            "UTC",
            {"custom": "%Y", "custom.x": "%m", "date": "%d", "rss.short": "%a", "date.full": "%Y"},
        )
    formats = to_date_formats(TS, formatters)

    assert formats["custom"] == "2025"
    assert formats["date"]["full"] == "2025"
    assert formats["date"]["short"] == "01/01/25"
    assert formats["rss"] == "Wed, 01 Jan 2025 08:05:09 +0000"
    assert "custom.x" not in formatters
    assert "Skipping date format `custom.x`" in caplog.text
    assert "Skipping date format `date`" in caplog.text
    assert "Skipping date format `rss.short`" in caplog.text
