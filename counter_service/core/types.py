"""
核心类型定义模块。

该文件包含了应用内部跨模块共享的、非 API 模型的类型定义、
数据类和类型别名，以促进代码的类型安全和解耦。
"""

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

# ===== 类型别名 =====

# 代表一个健康检查函数：健康时正常返回，不健康时抛出异常，异常信息即原因
HealthCheck = Callable[[], Awaitable[None]]


# ===== 常量 =====

DEFAULT_LABEL = "default"
SERVICE_NAME = "counter"


# ===== 数据类 =====

class ServerStatus(str, Enum):
    """主监听服务的生命周期状态，只能按定义顺序单向推进。"""
    STARTING = "starting"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting down"

    @property
    def order(self) -> int:
        return list(ServerStatus).index(self)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class CounterRequest:
    """一次计数请求的已校验参数。"""
    label: str = DEFAULT_LABEL


@dataclass(frozen=True)
class AboutInfo:
    """/about 端点暴露的静态进程信息。"""
    name: str
    version: str
    hostname: str

    def to_dict(self) -> dict:
        return {"name": self.name, "version": self.version, "hostname": self.hostname}
