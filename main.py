"""
SunriseQTH: QTHロケーターから日の出・薄明時刻を取得するツール
コマンドライン版

位置の入力：
  --qth IM58KS         ロケーターを直接指定
  --lat 48.85 --lon 2.35  緯度経度を指定（ロケーターに変換）
  --gps                GPS受信機から測位（ロケーターに変換）
どれも無ければ前回使ったQTHを使う。
--precision より長いロケーターはその桁数に切り詰める。

License: MIT
"""
from __future__ import annotations

import argparse
import logging
import logging.handlers
import sys
from typing import Optional

import requests

from config import Config
from grid_locator import PRECISIONS, GridLocatorError, cell_size, decode, normalize_locator
from location import (
    GPSLocationProvider,
    LocationUnavailable,
    ManualLocationProvider,
    acquire_locator,
    list_serial_ports,
)
from sun_client import ApiError, CombinedEventData, MoonEventData, SunEventData, SunTimesClient

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2

EVENT_INFO = """\
Astronomical Dawn:
    The Sun is 18 degrees below the horizon. The sky starts to lighten,
    but no natural light is visible yet.

Nautical Dawn:
    The Sun is 12 degrees below the horizon. The outline of the horizon
    becomes visible, useful for navigation.

Civil Dawn:
    The Sun is 6 degrees below the horizon. There is enough light for
    outdoor activities without artificial lighting.

Sunrise:
    The upper edge of the Sun appears on the horizon.
"""


def _setup_logging(debug: bool = False, log_file: Optional[str] = None, max_log_size_mb: float = 10) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if log_file:
        handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=int(max_log_size_mb * 1024 * 1024),
            backupCount=1,
            encoding="utf-8",
        )
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logging.getLogger().addHandler(handler)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="sunrise-qth",
        description="Fetch twilight and sunrise times for a grid locator (QTH).",
    )
    src = p.add_mutually_exclusive_group()
    src.add_argument("--qth", help="grid locator, e.g. IM58KS")
    src.add_argument("--lat", type=float, help="latitude in degrees (north positive)")
    src.add_argument("--gps", action="store_true", help="read the position from a GPS receiver")
    p.add_argument("--lon", type=float, help="longitude in degrees (east positive), with --lat")

    p.add_argument("--port", help="GPS serial port (overrides config)")
    p.add_argument("--baud", type=int, help="GPS baud rate (overrides config)")
    p.add_argument("--fix-timeout", type=float, help="seconds to wait for a GPS fix")

    p.add_argument("--precision", type=int, choices=PRECISIONS, default=None)
    p.add_argument("--moon", action="store_true", help="also fetch moonrise/moonset")
    p.add_argument("--server", help="server base URL (overrides config)")
    p.add_argument("--save-server", action="store_true", help="store --server in the config file")
    p.add_argument("--locator-only", action="store_true", help="print the locator and exit")

    p.add_argument("--decode", metavar="LOCATOR", help="print the center of a locator cell and exit")
    p.add_argument("--list-ports", action="store_true", help="list serial ports and exit")
    p.add_argument("--info", action="store_true", help="describe the twilight events and exit")

    p.add_argument("--config", default="sunrise_qth_config.json")
    p.add_argument("--debug", action="store_true")
    ns = p.parse_args(argv)

    if (ns.lat is None) != (ns.lon is None):
        p.error("--lat and --lon must be given together")
    if ns.save_server and not ns.server:
        p.error("--save-server requires --server")
    return ns


def format_sun_events(data: SunEventData) -> str:
    return "\n".join([
        f"Results for QTH: {data.qth}",
        f"Date: {data.date} ({data.timezone})",
        f"  Astronomical Dawn: {data.astronomical_dawn}",
        f"  Nautical Dawn:     {data.nautical_dawn}",
        f"  Civil Dawn:        {data.civil_dawn}",
        f"  Sunrise:           {data.sunrise}",
    ])


def format_moon_events(data: MoonEventData) -> str:
    lines = [
        f"  Moonrise:          {data.moonrise}",
        f"  Moonset:           {data.moonset}",
    ]
    if data.phase:
        lines.append(f"  Moon phase:        {data.phase}")
    return "\n".join(lines)


def _resolve_qth(ns: argparse.Namespace, config: Config, precision: int) -> str:
    """入力元（手入力 / GPS / 前回値）からQTHを決める"""
    if ns.qth is not None:
        return normalize_locator(ns.qth)[:precision]

    if ns.lat is not None:
        provider = ManualLocationProvider(ns.lat, ns.lon)
        return acquire_locator(provider, precision)

    if ns.gps:
        provider = GPSLocationProvider(
            port=ns.port or config.get('gps', 'com_port'),
            baud_rate=ns.baud or config.get('gps', 'baud_rate') or 9600,
            fix_timeout=ns.fix_timeout or config.get('gps', 'fix_timeout') or 30.0,
        )
        return acquire_locator(provider, precision)

    last_qth = config.get('locator', 'last_qth')
    if not last_qth:
        raise GridLocatorError("Please enter a QTH locator (--qth, --lat/--lon or --gps)")
    return normalize_locator(last_qth)[:precision]


def run(ns: argparse.Namespace, config: Config, session: Optional[requests.Session] = None) -> int:
    log = logging.getLogger("sunrise_qth.main")

    if ns.info:
        print(EVENT_INFO, end="")
        return EXIT_OK

    if ns.list_ports:
        ports = list_serial_ports()
        print("\n".join(ports) if ports else "No serial ports found")
        return EXIT_OK

    if ns.decode is not None:
        coord = decode(ns.decode.strip())
        print(f"{coord.latitude:.6f} {coord.longitude:.6f}")
        return EXIT_OK

    precision = ns.precision or config.get('locator', 'precision') or 6
    cell_size(precision)  # 設定ファイルの値も 2/4/6 のみ
    qth = _resolve_qth(ns, config, precision)

    if ns.locator_only:
        print(qth)
        return EXIT_OK

    server_url = (ns.server or config.server_url).strip()
    if ns.server and ns.save_server:
        config.save_server_url(ns.server)
        log.info("Server URL saved: %s", config.server_url)

    client = SunTimesClient(
        server_url,
        connect_timeout=config.get('server', 'connect_timeout') or 3.0,
        read_timeout=config.get('server', 'read_timeout') or 10.0,
        session=session,
    )
    try:
        if ns.moon or config.get('server', 'include_moon'):
            result = client.get_all(qth)
        else:
            result = client.get_sun_times(qth)
    finally:
        client.close()

    if isinstance(result, CombinedEventData):
        print(format_sun_events(result.sun))
        print(format_moon_events(result.moon))
    else:
        print(format_sun_events(result))

    config.set('locator', 'last_qth', value=qth)
    config.save()
    return EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    ns = parse_args(argv)
    config = Config(ns.config)

    _setup_logging(
        debug=ns.debug or bool(config.get('debug')),
        log_file=config.get('logging', 'log_file') if config.get('logging', 'save_to_file') else None,
        max_log_size_mb=config.get('logging', 'max_log_size_mb') or 10,
    )
    log = logging.getLogger("sunrise_qth.main")

    try:
        return run(ns, config)
    except (GridLocatorError, ValueError) as e:
        log.debug("invalid input", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE
    except LocationUnavailable as e:
        log.warning("Failed to get location: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except ApiError as e:
        log.warning("Error fetching sun times: %s", e)
        print(f"Error: {e.message}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
