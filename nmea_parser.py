"""
NMEA 0183パーサー（位置取得版）
- RMC: UTC時刻・位置
- GGA: 位置・高度（Fix品質0は無視）
- 位置更新ごとに6桁グリッドロケーターを再計算
"""
import logging
from datetime import datetime, timezone

from grid_locator import Coordinate, GridLocatorError, check_coordinate, encode

logger = logging.getLogger(__name__)


class NMEAParser:
    def __init__(self, precision=6):
        self.precision = precision
        self.last_time = None
        self.latitude = None
        self.longitude = None
        self.altitude = None
        self.grid_locator = None
        self.last_time_update = None

    @property
    def has_fix(self):
        return self.latitude is not None and self.longitude is not None

    @property
    def coordinate(self):
        if not self.has_fix:
            return None
        return Coordinate(self.latitude, self.longitude)

    def parse(self, nmea_sentence):
        if not nmea_sentence.startswith('$'):
            return None
        parts = nmea_sentence.split(',')
        msg_type = parts[0]

        if 'RMC' in msg_type:
            return self._parse_rmc(parts)
        elif 'GGA' in msg_type:
            self._parse_gga(parts)
        return None

    def _parse_rmc(self, parts):
        try:
            if len(parts) < 10 or parts[2] != 'A':
                return None
            dt = datetime.strptime(parts[9] + parts[1][:6], "%d%m%y%H%M%S").replace(tzinfo=timezone.utc)
            if self.last_time_update == dt:
                return None
            self.last_time = self.last_time_update = dt
            if parts[3] and parts[5]:
                self._update_position(parts[3], parts[4], parts[5], parts[6])
            return dt
        except (ValueError, IndexError) as e:
            logger.debug("RMC parse failed: %s (%s)", ','.join(parts), e)
        return None

    def _parse_gga(self, parts):
        try:
            if len(parts) <= 9:
                return
            # Fix品質 0 = 測位なし
            if parts[6] in ('', '0'):
                return
            if parts[2] and parts[4]:
                self._update_position(parts[2], parts[3], parts[4], parts[5])
            if parts[9]:
                self.altitude = float(parts[9])
        except (ValueError, IndexError) as e:
            logger.debug("GGA parse failed: %s (%s)", ','.join(parts), e)

    def _update_position(self, lat_str, lat_dir, lon_str, lon_dir):
        lat = self._parse_coordinate(lat_str, lat_dir)
        lon = self._parse_coordinate(lon_str, lon_dir)
        # 範囲外の位置は受信エラーとして捨てる（前回の位置を維持）
        check_coordinate(lat, lon)
        self.latitude = lat
        self.longitude = lon
        self._calculate_grid_locator()

    def _parse_coordinate(self, s, d):
        """ddmm.mmmm / dddmm.mmmm → 10進数（S/Wは負）"""
        dot = s.index('.')
        dec = int(s[:dot - 2]) + float(s[dot - 2:]) / 60.0
        return -dec if d in ['S', 'W'] else dec

    def _calculate_grid_locator(self):
        try:
            self.grid_locator = encode(self.latitude, self.longitude, self.precision)
        except GridLocatorError as e:
            logger.warning("Grid locator not updated: %s", e)
            self.grid_locator = None
