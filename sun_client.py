"""
日の出・月の出サーバー用クライアント（requests使用）

GET {base_url}/sun_times?qth=JN18EU  -> 薄明・日の出時刻
GET {base_url}/moon_times?qth=JN18EU -> 月の出・月の入り時刻

get_all() は2つを並行に取得して両方そろってから返す（片方でも失敗したら例外）。
天文計算はサーバー側で行い、ここでは JSON の検証と整形だけを行う。
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from grid_locator import normalize_locator

logger = logging.getLogger(__name__)

JsonDict = Dict[str, Any]

REQUIRED_KEYS = ("events", "date", "qth", "timezone")
SUN_EVENTS = ("Astronomical Dawn", "Civil Dawn (Aurore)", "Nautical Dawn", "Sunrise")
MOON_EVENTS = ("Moonrise", "Moonset")


@dataclass
class ApiError(Exception):
    message: str
    status_code: Optional[int] = None
    url: Optional[str] = None
    response_text: Optional[str] = None

    def __str__(self) -> str:
        parts = [self.message]
        if self.status_code is not None:
            parts.append(f"(status={self.status_code})")
        if self.url:
            parts.append(f"url={self.url}")
        return " ".join(parts)


class ApiUnavailableError(ApiError):
    """Server is unreachable or timed out."""


class MalformedResponseError(ApiError):
    """Empty body, non-JSON body, or missing keys/events."""


@dataclass(frozen=True)
class SunEventData:
    date: str
    astronomical_dawn: str
    civil_dawn: str
    nautical_dawn: str
    sunrise: str
    qth: str
    timezone: str


@dataclass(frozen=True)
class MoonEventData:
    date: str
    moonrise: str
    moonset: str
    qth: str
    timezone: str
    phase: Optional[str] = None


@dataclass(frozen=True)
class CombinedEventData:
    sun: SunEventData
    moon: MoonEventData


def _check_keys(obj: JsonDict, required_events, url: str) -> JsonDict:
    if not isinstance(obj, dict):
        raise MalformedResponseError(message="Malformed server response (not an object)", url=url)
    missing = [k for k in REQUIRED_KEYS if k not in obj]
    if missing:
        raise MalformedResponseError(
            message=f"Malformed server response (missing keys: {', '.join(missing)})", url=url)
    events = obj["events"]
    if not isinstance(events, dict):
        raise MalformedResponseError(message="Malformed server response (events is not an object)", url=url)
    missing = [e for e in required_events if e not in events]
    if missing:
        raise MalformedResponseError(
            message=f"Malformed server response (missing events: {', '.join(missing)})", url=url)
    return events


def parse_sun_events(obj: JsonDict, url: str = "") -> SunEventData:
    events = _check_keys(obj, SUN_EVENTS, url)
    return SunEventData(
        date=str(obj["date"]),
        astronomical_dawn=str(events["Astronomical Dawn"]),
        civil_dawn=str(events["Civil Dawn (Aurore)"]),
        nautical_dawn=str(events["Nautical Dawn"]),
        sunrise=str(events["Sunrise"]),
        qth=str(obj["qth"]),
        timezone=str(obj["timezone"]),
    )


def parse_moon_events(obj: JsonDict, url: str = "") -> MoonEventData:
    events = _check_keys(obj, MOON_EVENTS, url)
    phase = obj.get("phase")
    return MoonEventData(
        date=str(obj["date"]),
        moonrise=str(events["Moonrise"]),
        moonset=str(events["Moonset"]),
        qth=str(obj["qth"]),
        timezone=str(obj["timezone"]),
        phase=None if phase is None else str(phase),
    )


class SunTimesClient:
    def __init__(self, base_url, connect_timeout=3.0, read_timeout=10.0, session=None):
        base_url = (base_url or "").strip()
        if not base_url:
            raise ValueError("Server URL is not configured")
        self.base_url = base_url.rstrip("/")
        self.timeout = (float(connect_timeout), float(read_timeout))
        self.session = session or requests.Session()

    def _get_json(self, path: str, qth: str) -> JsonDict:
        url = f"{self.base_url}{path}"
        logger.debug("GET %s qth=%s", url, qth)
        try:
            resp = self.session.get(url, params={"qth": qth}, timeout=self.timeout)
        except (requests.Timeout, requests.ConnectionError) as e:
            logger.error("Error fetching %s: %s", url, e)
            raise ApiUnavailableError(message=str(e), url=url) from e

        if not resp.ok:
            logger.error("Server error %s for %s", resp.status_code, resp.url)
            raise ApiError(
                message=f"Server error: {resp.status_code}",
                status_code=resp.status_code,
                url=str(resp.url),
                response_text=resp.text,
            )

        if not resp.text.strip():
            raise MalformedResponseError(
                message="Empty response from server",
                status_code=resp.status_code,
                url=str(resp.url),
            )

        try:
            return resp.json()
        except ValueError as e:
            logger.error("Error parsing JSON response from %s", resp.url)
            raise MalformedResponseError(
                message="Server returned non-JSON response",
                status_code=resp.status_code,
                url=str(resp.url),
                response_text=resp.text,
            ) from e

    def get_sun_times(self, qth: str) -> SunEventData:
        qth = normalize_locator(qth)
        data = parse_sun_events(self._get_json("/sun_times", qth), url=f"{self.base_url}/sun_times")
        logger.info("Sun times fetched for %s (%s)", data.qth, data.date)
        return data

    def get_moon_times(self, qth: str) -> MoonEventData:
        qth = normalize_locator(qth)
        data = parse_moon_events(self._get_json("/moon_times", qth), url=f"{self.base_url}/moon_times")
        logger.info("Moon times fetched for %s (%s)", data.qth, data.date)
        return data

    def get_all(self, qth: str) -> CombinedEventData:
        """太陽・月を並行取得。どちらかが失敗したらその例外をそのまま送出"""
        qth = normalize_locator(qth)
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="sunrise-qth") as pool:
            sun_future = pool.submit(self.get_sun_times, qth)
            moon_future = pool.submit(self.get_moon_times, qth)
            # 片方が失敗してももう片方は最後まで実行させる
            sun_exc = sun_future.exception()
            moon_exc = moon_future.exception()
        if sun_exc is not None:
            raise sun_exc
        if moon_exc is not None:
            raise moon_exc
        return CombinedEventData(sun=sun_future.result(), moon=moon_future.result())

    def close(self):
        self.session.close()
