"""
グリッドロケーター（Maidenhead Locator System）変換モジュール
6桁対応（例：JN18EU）

- encode(): 緯度経度 → ロケーター（2/4/6桁）
- decode(): ロケーター → セル中心の緯度経度
- サブスクエア（5-6桁目）も大文字で出力する（サーバー側がこの表記に依存）
"""
from __future__ import annotations

import math
from dataclasses import dataclass

PRECISIONS = (2, 4, 6)

# (桁の種類, 経度方向の分割数, 経度セル幅, 緯度セル幅)
_TIERS = (
    ('letter', 18, 20.0, 10.0),             # フィールド：20度×10度
    ('digit', 10, 2.0, 1.0),                # スクエア：2度×1度
    ('letter', 24, 2.0 / 24.0, 1.0 / 24.0), # サブスクエア：5分×2.5分
)


class GridLocatorError(ValueError):
    """グリッドロケーター変換エラーの基底クラス"""


class InvalidPrecision(GridLocatorError):
    pass


class CoordinateOutOfRange(GridLocatorError):
    pass


class InvalidLocatorFormat(GridLocatorError):
    pass


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float


def _check_precision(precision):
    # bool は int のサブクラスなので明示的に弾く
    if isinstance(precision, bool) or not isinstance(precision, int) or precision not in PRECISIONS:
        raise InvalidPrecision(f"precision must be one of {PRECISIONS}, got {precision!r}")


def check_coordinate(lat, lon):
    """緯度経度の範囲チェック（NaNも範囲外扱い）"""
    if math.isnan(lat) or not -90.0 <= lat <= 90.0:
        raise CoordinateOutOfRange(f"latitude out of range: {lat}")
    if math.isnan(lon) or not -180.0 <= lon <= 180.0:
        raise CoordinateOutOfRange(f"longitude out of range: {lon}")


def cell_size(precision):
    """精度ごとのセルの大きさ (経度幅, 緯度幅) を度で返す"""
    _check_precision(precision)
    _, _, lon_step, lat_step = _TIERS[precision // 2 - 1]
    return lon_step, lat_step


def _index(value, step, count):
    """
    value を step で割った区画番号を [0, count-1] に丸める。
    上端（経度180度・緯度90度）では count が返るので最後の区画に寄せる。
    """
    idx = int(math.floor(value / step))
    return min(max(idx, 0), count - 1)


def _char(kind, idx):
    if kind == 'digit':
        return str(idx)
    return chr(ord('A') + idx)


def encode(latitude, longitude, precision=6):
    """
    緯度経度をグリッドロケーターに変換

    Args:
        latitude: 緯度（度）北緯が正
        longitude: 経度（度）東経が正
        precision: 桁数（2, 4, 6）

    Returns:
        グリッドロケーター文字列（すべて大文字）

    Raises:
        InvalidPrecision: precision が 2/4/6 以外
        CoordinateOutOfRange: 緯度経度が範囲外
    """
    _check_precision(precision)
    lat = float(latitude)
    lon = float(longitude)
    check_coordinate(lat, lon)

    # 経度を0-360、緯度を0-180に正規化
    adj_lon = lon + 180.0
    adj_lat = lat + 90.0

    grid = ""
    for kind, count, lon_step, lat_step in _TIERS[:precision // 2]:
        lon_idx = _index(adj_lon, lon_step, count)
        lat_idx = _index(adj_lat, lat_step, count)
        grid += _char(kind, lon_idx) + _char(kind, lat_idx)
        # 上端で丸めた場合、余りはセル幅ぶん残るので次の桁も最後の区画になる
        adj_lon -= lon_idx * lon_step
        adj_lat -= lat_idx * lat_step

    return grid


def _parse_char(kind, count, ch, pos, locator):
    if kind == 'digit':
        if ch not in '0123456789':
            raise InvalidLocatorFormat(f"expected digit at position {pos + 1}: {locator!r}")
        return int(ch)
    idx = ord(ch.upper()) - ord('A')
    if not ch.isascii() or not ch.isalpha() or not 0 <= idx < count:
        last = chr(ord('A') + count - 1)
        raise InvalidLocatorFormat(f"expected letter A-{last} at position {pos + 1}: {locator!r}")
    return idx


def decode(locator):
    """
    グリッドロケーターを緯度経度に変換（最小セルの中心を返す）

    大文字・小文字は区別しない。

    Raises:
        InvalidLocatorFormat: 桁数が 2/4/6 以外、または各桁の文字種が不正
    """
    if not isinstance(locator, str):
        raise InvalidLocatorFormat(f"locator must be a string, got {type(locator).__name__}")
    if len(locator) not in PRECISIONS:
        raise InvalidLocatorFormat(f"locator length must be 2, 4 or 6: {locator!r}")

    adj_lon = 0.0
    adj_lat = 0.0
    lon_step = lat_step = 0.0
    for tier, (kind, count, lon_step, lat_step) in enumerate(_TIERS[:len(locator) // 2]):
        pos = tier * 2
        adj_lon += _parse_char(kind, count, locator[pos], pos, locator) * lon_step
        adj_lat += _parse_char(kind, count, locator[pos + 1], pos + 1, locator) * lat_step

    # 最後に解決したセルの中心
    adj_lon += lon_step / 2.0
    adj_lat += lat_step / 2.0
    return Coordinate(latitude=adj_lat - 90.0, longitude=adj_lon - 180.0)


def normalize_locator(text):
    """前後の空白を除去して検証し、大文字のロケーターを返す"""
    if not isinstance(text, str):
        raise InvalidLocatorFormat(f"locator must be a string, got {type(text).__name__}")
    locator = text.strip()
    decode(locator)
    return locator.upper()


def is_valid_locator(text):
    try:
        normalize_locator(text)
    except InvalidLocatorFormat:
        return False
    return True
