import json

import pytest

from backend.py_models.task import TaskLabel
from backend.zillow.errors import InputError
from backend.zillow.filters import decode_box
from backend.zillow.geo import BoundingBox
from backend.zillow.settings import load_input, parse_input

from conftest import SEARCH_URL, detail_url


def test_seed_shapes():
    settings = parse_input({
        "startUrls": [
            SEARCH_URL,
            detail_url(1),
            {"url": "https://www.zillow.com/b/some-building/", "userData": {"label": "detail"}},
            {"url": SEARCH_URL + "2_p/", "label": "page"},
            {"box": {"left": -1.0, "top": 2.0, "right": 3.0, "bottom": -4.0}},
        ],
    })
    labels = [t.label for t in settings.start_urls]
    assert labels == [
        TaskLabel.SEARCH_RESULTS,
        TaskLabel.DETAIL,
        TaskLabel.DETAIL,
        TaskLabel.SEARCH_RESULTS,
        TaskLabel.SEARCH_RESULTS,
    ]
    assert all(t.level == 0 and t.retry_count == 0 for t in settings.start_urls)
    assert decode_box(settings.start_urls[-1].url) == BoundingBox(-1.0, 2.0, 3.0, -4.0)


def test_defaults():
    s = parse_input({"startUrls": []})
    assert s.max_level is None
    assert s.max_pages is None
    assert s.show_facts is False
    assert s.concurrency == 5
    assert s.page_threshold == 20
    assert s.max_challenge_retries == 4
    assert s.max_request_retries == 3


def test_camel_case_options():
    s = parse_input({"startUrls": [], "maxLevel": 3, "maxPages": 10, "showFacts": True, "liveView": True})
    assert (s.max_level, s.max_pages, s.show_facts, s.live_view) == (3, 10, True, True)


@pytest.mark.parametrize("start_urls", ["https://www.zillow.com/", {"url": SEARCH_URL}, None, 5])
def test_start_urls_must_be_a_list(start_urls):
    with pytest.raises(InputError, match="must be an array"):
        parse_input({"startUrls": start_urls})


@pytest.mark.parametrize("bad", [
    {"startUrls": [{"box": {"left": 1, "top": 2, "right": 3}}]},
    {"startUrls": [{"box": {"left": "a", "top": 2, "right": 3, "bottom": 4}}]},
    {"startUrls": [{"label": "detail"}]},
    {"startUrls": [{"url": SEARCH_URL, "label": "sideways"}]},
    {"startUrls": [], "maxPages": -1},
    {"startUrls": [], "concurrency": 0},
    {"startUrls": [], "fetcher": "curl"},
])
def test_malformed_input(bad):
    with pytest.raises(InputError):
        parse_input(bad)


def test_input_error_is_a_value_error():
    with pytest.raises(ValueError):
        parse_input([])


def test_load_input(tmp_path):
    path = tmp_path / "INPUT.json"
    path.write_text(json.dumps({"startUrls": [SEARCH_URL], "maxLevel": 2}), encoding="utf-8")
    assert load_input(path).max_level == 2

    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(InputError):
        load_input(path)

    with pytest.raises(InputError):
        load_input(tmp_path / "missing.json")


def test_launch_proxy(monkeypatch):
    s = parse_input({"startUrls": [], "proxyConfig": {"server": "http://proxy:8000", "username": "u", "useApifyProxy": True}})
    assert s.launch_proxy() == {"server": "http://proxy:8000", "username": "u"}

    monkeypatch.setattr("backend.zillow.settings.ZILLOW_PROXY", "http://env-proxy:1")
    assert parse_input({"startUrls": []}).launch_proxy() == {"server": "http://env-proxy:1"}
