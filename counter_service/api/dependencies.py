"""
API 依赖注入模块。

提供用于 FastAPI 路由的依赖项，以便从应用状态中获取服务实例。
"""

from fastapi import Request
from prometheus_client import CollectorRegistry
from ..core.types import AboutInfo
from ..services.counter import CounterService
from ..services.health_checker import HealthRegistry

def get_counter_service(request: Request) -> CounterService:
    """依赖项：从应用状态获取 CounterService 实例。"""
    return request.app.state.counter_service

def get_health_registry(request: Request) -> HealthRegistry:
    """依赖项：从应用状态获取 HealthRegistry 实例。"""
    return request.app.state.health_registry

def get_metrics_registry(request: Request) -> CollectorRegistry:
    """依赖项：从应用状态获取 Prometheus CollectorRegistry 实例。"""
    return request.app.state.metrics_registry

def get_about_info(request: Request) -> AboutInfo:
    """依赖项：从应用状态获取 AboutInfo。"""
    return request.app.state.about_info
