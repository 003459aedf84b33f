"""
管理路由模块（运行在独立的管理端口上）：
- /metrics：Prometheus 指标。
- /live、/ready：存活与就绪检查，?full=1 时返回每项检查的详情。
- /about：服务名、构建版本与主机名。
"""

import logging
from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

from ...core.types import AboutInfo
from ...services.health_checker import HealthRegistry
from ..dependencies import get_about_info, get_health_registry, get_metrics_registry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Admin"])

def _health_response(healthy: bool, report: dict, full: bool) -> JSONResponse:
    return JSONResponse(
        status_code=200 if healthy else 503,
        content=report if full else {},
    )

@router.get("/metrics")
async def metrics(registry: CollectorRegistry = Depends(get_metrics_registry)):
    return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)

@router.get("/live")
async def live(full: bool = False, health: HealthRegistry = Depends(get_health_registry)):
    healthy, report = await health.live()
    return _health_response(healthy, report, full)

@router.get("/ready")
async def ready(full: bool = False, health: HealthRegistry = Depends(get_health_registry)):
    healthy, report = await health.ready()
    if not healthy:
        logger.debug(f"Readiness check failed: {report}")
    return _health_response(healthy, report, full)

@router.get("/about")
async def about(info: AboutInfo = Depends(get_about_info)):
    return info.to_dict()
