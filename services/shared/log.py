"""
Shared — ロギング設定
"""

import logging

LOG_FORMAT = "%(asctime)s - {service} - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str, service_name: str) -> None:
    """プロセス起動時に一度だけ呼ぶ。既にハンドラがあれば何もしない。"""
    logging.basicConfig(
        level=level.upper(),
        format=LOG_FORMAT.format(service=service_name),
    )
