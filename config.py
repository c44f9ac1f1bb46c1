"""
設定管理モジュール
JSON形式で設定を保存/読み込み
"""
import json
import logging
import os

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = 'http://planckplex.site:2630'


class Config:
    def __init__(self, config_file='sunrise_qth_config.json'):
        self.config_file = config_file
        self.settings = self._load_default_settings()
        self.load()

    def _load_default_settings(self):
        """デフォルト設定"""
        return {
            # サーバー設定
            'server': {
                'url': DEFAULT_SERVER_URL,
                'connect_timeout': 3.0,
                'read_timeout': 10.0,
                'include_moon': False,  # 月の出・月の入りも取得
            },

            # ロケーター設定
            'locator': {
                'precision': 6,  # 2, 4, 6
                'last_qth': '',  # 最後に使ったQTH
            },

            # GPS設定
            'gps': {
                'com_port': '',
                'baud_rate': 9600,
                'fix_timeout': 30.0,  # 測位待ち（秒）
            },

            # デバッグモード
            'debug': False,

            # ログ設定
            'logging': {
                'save_to_file': False,
                'log_file': 'sunrise_qth.log',
                'max_log_size_mb': 10,
            },
        }

    def load(self):
        """設定をファイルから読み込み"""
        try:
            if os.path.exists(self.config_file):
                with open(self.config_file, 'r', encoding='utf-8') as f:
                    loaded = json.load(f)
                    # デフォルト設定にマージ（新しいキーがあっても対応）
                    self._merge_settings(self.settings, loaded)
                    return True
        except (OSError, ValueError) as e:
            logger.warning("設定読み込みエラー: %s", e)
        return False

    def _merge_settings(self, default, loaded):
        """デフォルト設定に読み込んだ設定をマージ"""
        if not isinstance(loaded, dict):
            return
        for key, value in loaded.items():
            if key in default:
                if isinstance(value, dict) and isinstance(default[key], dict):
                    self._merge_settings(default[key], value)
                else:
                    default[key] = value

    def save(self):
        """設定をファイルに保存"""
        try:
            with open(self.config_file, 'w', encoding='utf-8') as f:
                json.dump(self.settings, f, indent=4, ensure_ascii=False)
            return True
        except OSError as e:
            logger.warning("設定保存エラー: %s", e)
            return False

    def get(self, *keys):
        """設定を取得（ネストされたキーに対応）"""
        value = self.settings
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return None
        return value

    def set(self, *keys, value):
        """設定を変更（ネストされたキーに対応）"""
        if len(keys) == 0:
            return False

        settings = self.settings
        for key in keys[:-1]:
            if key not in settings:
                settings[key] = {}
            settings = settings[key]

        settings[keys[-1]] = value
        return True

    def reset(self):
        """設定をデフォルトに戻す"""
        self.settings = self._load_default_settings()
        return self.save()

    @property
    def server_url(self):
        return self.get('server', 'url') or ''

    def save_server_url(self, url):
        """サーバーURLを変更して保存"""
        self.set('server', 'url', value=url.strip())
        return self.save()
