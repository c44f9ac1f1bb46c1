"""
位置取得モジュール
- ManualLocationProvider: 手入力の緯度経度
- GPSLocationProvider:    シリアル接続のGPS受信機（NMEA 0183）から1回測位
取得した位置は acquire_locator() でそのままロケーターに変換する（共有状態は持たない）
"""
from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional

import serial
import serial.tools.list_ports

from grid_locator import Coordinate, check_coordinate, encode
from nmea_parser import NMEAParser

logger = logging.getLogger(__name__)


class LocationUnavailable(RuntimeError):
    """位置が取得できなかった（ポートが開けない / 測位タイムアウト）"""


class LocationProvider:
    name = "location"

    def get_location(self) -> Coordinate:
        raise NotImplementedError


class ManualLocationProvider(LocationProvider):
    name = "manual"

    def __init__(self, latitude: float, longitude: float):
        latitude = float(latitude)
        longitude = float(longitude)
        check_coordinate(latitude, longitude)
        self._coordinate = Coordinate(latitude, longitude)

    def get_location(self) -> Coordinate:
        return self._coordinate


class GPSLocationProvider(LocationProvider):
    """
    GPS受信機から位置を取得する。

    ポートを開き、RMC/GGA から位置が得られるまで読み続けてから閉じる。
    fix_timeout 秒以内に位置が得られなければ LocationUnavailable。
    """
    name = "gps"

    def __init__(
        self,
        port: str,
        baud_rate: int = 9600,
        fix_timeout: float = 30.0,
        serial_factory: Optional[Callable[..., object]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.port = port
        self.baud_rate = baud_rate
        self.fix_timeout = fix_timeout
        self._serial_factory = serial_factory or serial.Serial
        self._clock = clock

    def get_location(self) -> Coordinate:
        if not self.port:
            raise LocationUnavailable("No GPS port configured")

        try:
            ser = self._serial_factory(self.port, self.baud_rate, timeout=1)
        except (serial.SerialException, OSError) as e:
            raise LocationUnavailable(f"Cannot open GPS port {self.port}: {e}") from e

        logger.info("GPS started: %s @ %sbps", self.port, self.baud_rate)
        parser = NMEAParser()
        deadline = self._clock() + self.fix_timeout
        try:
            while self._clock() < deadline:
                try:
                    raw = ser.readline()
                except (serial.SerialException, OSError) as e:
                    raise LocationUnavailable(f"GPS read error on {self.port}: {e}") from e
                line = raw.decode('ascii', errors='ignore').strip()
                if not line:
                    continue
                logger.debug("NMEA: %s", line)
                parser.parse(line)
                if parser.has_fix:
                    coord = parser.coordinate
                    logger.info("Location fetched: lat=%.6f lon=%.6f", coord.latitude, coord.longitude)
                    return coord
        finally:
            ser.close()

        raise LocationUnavailable(f"No GPS fix within {self.fix_timeout:g}s on {self.port}")


def list_serial_ports() -> List[str]:
    """利用可能なシリアルポート名の一覧"""
    return sorted(p.device for p in serial.tools.list_ports.comports())


def acquire_locator(provider: LocationProvider, precision: int = 6) -> str:
    """provider から位置を取得してロケーターに変換"""
    coord = provider.get_location()
    locator = encode(coord.latitude, coord.longitude, precision)
    logger.info("Calculated QTH (%s): %s", provider.name, locator)
    return locator
