"""
计数路由模块：
- GET / ?label=<label>，返回 {"value": <新值>}。
- 也接受 POST 表单（表单体中的参数优先于查询串），表单体最大 10 MiB。
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ...core.errors import ValidationError, ValidationKind
from ...services.counter import CounterService
from ..dependencies import get_counter_service

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
MAX_FORM_BODY_BYTES = 10 << 20

router = APIRouter(tags=["Counter"])


async def read_form_body(request: Request, limit: int) -> bytes:
    """读取表单体；超过 limit 字节时不再继续读取，直接判定为 malformed。"""
    too_large = ValidationError(ValidationKind.MALFORMED, "http: POST too large")

    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > limit:
        raise too_large

    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            raise too_large
    return bytes(body)


@router.api_route("/", methods=["GET", "POST"])
async def increment_counter(
    request: Request,
    counter_service: CounterService = Depends(get_counter_service),
):
    """对标签对应的计数器加一并返回新值。"""
    sources = []
    if request.method == "POST" and request.headers.get("content-type", "").startswith(FORM_CONTENT_TYPE):
        sources.append(await read_form_body(request, MAX_FORM_BODY_BYTES))
    sources.append(request.scope.get("query_string", b""))

    value = await counter_service.handle(*sources)
    return JSONResponse(content={"value": value})
