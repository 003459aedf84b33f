"""
配置模块：
- 定义了应用的所有配置项 (SettingsDict)。
- 提供 load_settings 函数：默认值 -> JSON 配置文件 -> 环境变量，逐层覆盖。
- 时长类配置兼容 Go 风格写法（如 "30s"、"100ms"、"1m30s"）。
"""

import copy
import json
import os
import re
from importlib import metadata
from typing import Any, Dict, Mapping, Optional, TypedDict

from .errors import ConfigError

DISTRIBUTION_NAME = "counter-service"

# 存储键中固定的命名空间段
KEY_NAMESPACE = "next"

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


# ===== 类型定义 =====
class ServerSettings(TypedDict):
    host: str
    port: int
    admin_port: int

class RedisSettings(TypedDict):
    url: str
    password: str
    db: int
    prefix: str
    healthy_connect_timeout: float
    health_check_interval: float

class SettingsDict(TypedDict):
    server: ServerSettings
    redis: RedisSettings
    graceful_shutdown_timeout: float
    log_level: str
    version: str


def get_build_version() -> str:
    """返回安装包的版本号；未安装（源码直接运行）时返回 "dev"。"""
    try:
        return metadata.version(DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        return "dev"


# ===== 默认配置 =====
def _get_default_settings() -> SettingsDict:
    """生成默认配置。"""
    data: SettingsDict = {
        "server": {"host": "0.0.0.0", "port": 80, "admin_port": 9000},
        "redis": {
            "url": "localhost:6379",
            "password": "",
            "db": 0,
            "prefix": "counter",
            "healthy_connect_timeout": 0.1,
            "health_check_interval": 10.0,
        },
        "graceful_shutdown_timeout": 30.0,
        "log_level": "info",
        "version": get_build_version(),
    }
    return data


# ===== 解析辅助函数 =====
def parse_duration(value: Any, name: str = "duration") -> float:
    """
    将时长解析为秒数。

    接受数字（视为秒）、纯数字字符串（视为秒）以及 Go 风格的时长字符串，
    例如 "300ms"、"1.5s"、"1m30s"。负数与无法识别的格式会抛出 ConfigError。
    """
    if isinstance(value, bool):
        raise ConfigError(f"invalid {name}: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = str(value).strip()
        if not text:
            raise ConfigError(f"invalid {name}: empty value")
        try:
            seconds = float(text)
        except ValueError:
            seconds = _parse_go_duration(text, name)
    if seconds < 0:
        raise ConfigError(f"invalid {name}: {value!r} must not be negative")
    return seconds

def _parse_go_duration(text: str, name: str) -> float:
    pos = 0
    total = 0.0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if not match:
            raise ConfigError(f"invalid {name}: {text!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    return total

def parse_port(value: Any, name: str) -> int:
    """解析端口号，必须是 0..65535 之间的整数。"""
    port = parse_int(value, name)
    if not 0 <= port <= 65535:
        raise ConfigError(f"invalid {name}: {port} is out of range")
    return port

def parse_int(value: Any, name: str, minimum: Optional[int] = None) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"invalid {name}: {value!r}")
    try:
        number = int(str(value).strip()) if not isinstance(value, int) else value
    except ValueError:
        raise ConfigError(f"invalid {name}: {value!r} is not an integer") from None
    if minimum is not None and number < minimum:
        raise ConfigError(f"invalid {name}: {number} is below {minimum}")
    return number


# ===== 加载 =====
def _apply_file_config(settings: SettingsDict, user_config: Dict[str, Any]):
    server_config = user_config.get("server", {})
    if "host" in server_config:
        settings["server"]["host"] = str(server_config["host"])
    if "port" in server_config:
        settings["server"]["port"] = parse_port(server_config["port"], "server.port")
    if "admin_port" in server_config:
        settings["server"]["admin_port"] = parse_port(server_config["admin_port"], "server.admin_port")

    redis_config = user_config.get("redis", {})
    if "url" in redis_config:
        settings["redis"]["url"] = str(redis_config["url"])
    if "password" in redis_config:
        settings["redis"]["password"] = str(redis_config["password"])
    if "db" in redis_config:
        settings["redis"]["db"] = parse_int(redis_config["db"], "redis.db", minimum=0)
    if "prefix" in redis_config:
        settings["redis"]["prefix"] = str(redis_config["prefix"])
    if "healthy_connect_timeout" in redis_config:
        settings["redis"]["healthy_connect_timeout"] = parse_duration(
            redis_config["healthy_connect_timeout"], "redis.healthy_connect_timeout"
        )
    if "health_check_interval" in redis_config:
        settings["redis"]["health_check_interval"] = parse_duration(
            redis_config["health_check_interval"], "redis.health_check_interval"
        )

    if "graceful_shutdown_timeout" in user_config:
        settings["graceful_shutdown_timeout"] = parse_duration(
            user_config["graceful_shutdown_timeout"], "graceful_shutdown_timeout"
        )
    if "log_level" in user_config:
        settings["log_level"] = str(user_config["log_level"])
    if "version" in user_config:
        settings["version"] = str(user_config["version"])

def _apply_env_config(settings: SettingsDict, environ: Mapping[str, str]):
    # 环境变量名与容器镜像中约定的名称保持一致
    if "HOST" in environ:
        settings["server"]["host"] = environ["HOST"]
    if "PORT" in environ:
        settings["server"]["port"] = parse_port(environ["PORT"], "PORT")
    if "ADMIN_PORT" in environ:
        settings["server"]["admin_port"] = parse_port(environ["ADMIN_PORT"], "ADMIN_PORT")
    if "GRACEFUL_SHUTDOWN_TIMEOUT" in environ:
        settings["graceful_shutdown_timeout"] = parse_duration(
            environ["GRACEFUL_SHUTDOWN_TIMEOUT"], "GRACEFUL_SHUTDOWN_TIMEOUT"
        )
    if "REDIS_URL" in environ:
        settings["redis"]["url"] = environ["REDIS_URL"]
    if "REDIS_PW" in environ:
        settings["redis"]["password"] = environ["REDIS_PW"]
    if "REDIS_DB" in environ:
        settings["redis"]["db"] = parse_int(environ["REDIS_DB"], "REDIS_DB", minimum=0)
    if "REDIS_PREFIX" in environ:
        settings["redis"]["prefix"] = environ["REDIS_PREFIX"]
    if "REDIS_HEALTHY_CONNECT_TIMEOUT_THRESHOLD" in environ:
        settings["redis"]["healthy_connect_timeout"] = parse_duration(
            environ["REDIS_HEALTHY_CONNECT_TIMEOUT_THRESHOLD"], "REDIS_HEALTHY_CONNECT_TIMEOUT_THRESHOLD"
        )
    if "REDIS_HEALTH_CHECK_INTERVAL" in environ:
        settings["redis"]["health_check_interval"] = parse_duration(
            environ["REDIS_HEALTH_CHECK_INTERVAL"], "REDIS_HEALTH_CHECK_INTERVAL"
        )
    if "LOG_LEVEL" in environ:
        settings["log_level"] = environ["LOG_LEVEL"]
    if "COUNTER_VERSION" in environ:
        settings["version"] = environ["COUNTER_VERSION"]

def load_settings(config_path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> SettingsDict:
    """读取配置文件与环境变量，与默认值合并。任何解析失败都抛出 ConfigError。"""
    settings = _get_default_settings()

    if config_path:
        if not os.path.exists(config_path):
            raise ConfigError(f"config file not found: {config_path}")
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                user_config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"failed to read config file {config_path}: {e}") from e
        if not isinstance(user_config, dict):
            raise ConfigError(f"config file {config_path} must contain a JSON object")
        _apply_file_config(settings, user_config)

    _apply_env_config(settings, os.environ if environ is None else environ)
    return settings

def describe_settings(settings: SettingsDict) -> Dict[str, Any]:
    """返回可安全打印的配置副本（密码已脱敏）。"""
    from ..utils.sanitizer import mask_secret

    data = copy.deepcopy(dict(settings))
    data["redis"]["password"] = mask_secret(settings["redis"]["password"])
    return data
