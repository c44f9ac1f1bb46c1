# test_sun_client.py
import json
import threading

import pytest
import requests

from grid_locator import InvalidLocatorFormat
from sun_client import (
    ApiError,
    ApiUnavailableError,
    CombinedEventData,
    MalformedResponseError,
    MoonEventData,
    SunEventData,
    SunTimesClient,
)

SUN = {
    "date": "2025-06-21",
    "qth": "JN18EU",
    "timezone": "Europe/Paris",
    "events": {
        "Astronomical Dawn": "03:02",
        "Nautical Dawn": "04:05",
        "Civil Dawn (Aurore)": "05:04",
        "Sunrise": "05:47",
    },
}

MOON = {
    "date": "2025-06-21",
    "qth": "JN18EU",
    "timezone": "Europe/Paris",
    "phase": "Waning Crescent",
    "events": {"Moonrise": "02:11", "Moonset": "17:40"},
}


class FakeResponse:
    def __init__(self, body, status_code=200, url="http://example.test/"):
        self.text = body if isinstance(body, str) else json.dumps(body)
        self.status_code = status_code
        self.url = url

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return json.loads(self.text)


class FakeSession:
    """requests.Session の代わり：パスごとに応答（または例外）を返す"""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []
        self.closed = False
        self._lock = threading.Lock()

    def get(self, url, params=None, timeout=None):
        with self._lock:
            self.calls.append((url, params, timeout))
        path = "/" + url.rsplit("/", 1)[-1]
        result = self.routes[path]
        if isinstance(result, Exception):
            raise result
        return result

    def close(self):
        self.closed = True


def _client(routes, **kwargs):
    session = FakeSession(routes)
    return SunTimesClient("http://example.test:2630/", session=session, **kwargs), session


def test_get_sun_times():
    client, session = _client({"/sun_times": FakeResponse(SUN)})
    data = client.get_sun_times(" jn18eu ")
    assert data == SunEventData(
        date="2025-06-21",
        astronomical_dawn="03:02",
        civil_dawn="05:04",
        nautical_dawn="04:05",
        sunrise="05:47",
        qth="JN18EU",
        timezone="Europe/Paris",
    )
    url, params, timeout = session.calls[0]
    assert url == "http://example.test:2630/sun_times"
    assert params == {"qth": "JN18EU"}
    assert timeout == (3.0, 10.0)


def test_get_moon_times():
    client, _ = _client({"/moon_times": FakeResponse(MOON)})
    data = client.get_moon_times("JN18EU")
    assert data == MoonEventData(
        date="2025-06-21",
        moonrise="02:11",
        moonset="17:40",
        qth="JN18EU",
        timezone="Europe/Paris",
        phase="Waning Crescent",
    )


def test_moon_phase_is_optional():
    body = dict(MOON)
    del body["phase"]
    client, _ = _client({"/moon_times": FakeResponse(body)})
    assert client.get_moon_times("JN18EU").phase is None


def test_get_all_joins_both():
    client, session = _client({
        "/sun_times": FakeResponse(SUN),
        "/moon_times": FakeResponse(MOON),
    })
    result = client.get_all("JN18EU")
    assert isinstance(result, CombinedEventData)
    assert result.sun.sunrise == "05:47"
    assert result.moon.moonrise == "02:11"
    assert sorted(c[0] for c in session.calls) == [
        "http://example.test:2630/moon_times",
        "http://example.test:2630/sun_times",
    ]


def test_get_all_fails_if_either_fails():
    client, session = _client({
        "/sun_times": FakeResponse(SUN),
        "/moon_times": FakeResponse("oops", status_code=500),
    })
    with pytest.raises(ApiError) as excinfo:
        client.get_all("JN18EU")
    assert excinfo.value.status_code == 500
    # 失敗しても太陽側のリクエストは実行されている
    assert len(session.calls) == 2


def test_get_all_fails_if_sun_unreachable():
    client, _ = _client({
        "/sun_times": requests.ConnectionError("refused"),
        "/moon_times": FakeResponse(MOON),
    })
    with pytest.raises(ApiUnavailableError):
        client.get_all("JN18EU")


def test_invalid_qth_is_rejected_before_request():
    client, session = _client({"/sun_times": FakeResponse(SUN)})
    with pytest.raises(InvalidLocatorFormat):
        client.get_sun_times("JN18E")
    with pytest.raises(InvalidLocatorFormat):
        client.get_all("")
    assert session.calls == []


def test_server_error_status():
    client, _ = _client({"/sun_times": FakeResponse("Not Found", status_code=404)})
    with pytest.raises(ApiError) as excinfo:
        client.get_sun_times("JN18EU")
    err = excinfo.value
    assert err.status_code == 404
    assert err.response_text == "Not Found"
    assert "404" in str(err)


@pytest.mark.parametrize("exc", [requests.Timeout("slow"), requests.ConnectionError("down")])
def test_unreachable_server(exc):
    client, _ = _client({"/sun_times": exc})
    with pytest.raises(ApiUnavailableError):
        client.get_sun_times("JN18EU")


def test_empty_body():
    client, _ = _client({"/sun_times": FakeResponse("  ")})
    with pytest.raises(MalformedResponseError) as excinfo:
        client.get_sun_times("JN18EU")
    assert "Empty" in excinfo.value.message


def test_non_json_body():
    client, _ = _client({"/sun_times": FakeResponse("<html>")})
    with pytest.raises(MalformedResponseError):
        client.get_sun_times("JN18EU")


@pytest.mark.parametrize("key", ["events", "date", "qth", "timezone"])
def test_missing_top_level_key(key):
    body = dict(SUN)
    del body[key]
    client, _ = _client({"/sun_times": FakeResponse(body)})
    with pytest.raises(MalformedResponseError) as excinfo:
        client.get_sun_times("JN18EU")
    assert key in excinfo.value.message


def test_missing_sun_event():
    body = dict(SUN, events={"Sunrise": "05:47"})
    client, _ = _client({"/sun_times": FakeResponse(body)})
    with pytest.raises(MalformedResponseError) as excinfo:
        client.get_sun_times("JN18EU")
    assert "Astronomical Dawn" in excinfo.value.message


def test_missing_moon_event():
    body = dict(MOON, events={"Moonrise": "02:11"})
    client, _ = _client({"/moon_times": FakeResponse(body)})
    with pytest.raises(MalformedResponseError):
        client.get_moon_times("JN18EU")


def test_response_not_an_object():
    client, _ = _client({"/sun_times": FakeResponse([1, 2, 3])})
    with pytest.raises(MalformedResponseError):
        client.get_sun_times("JN18EU")


def test_base_url_required():
    with pytest.raises(ValueError):
        SunTimesClient("")
    with pytest.raises(ValueError):
        SunTimesClient("   ")


def test_custom_timeouts_and_close():
    client, session = _client({"/sun_times": FakeResponse(SUN)}, connect_timeout=1, read_timeout=2)
    client.get_sun_times("JN18EU")
    assert session.calls[0][2] == (1.0, 2.0)
    client.close()
    assert session.closed
