"""
请求参数校验模块：
- 把原始查询串 / 表单体解析为 CounterRequest。
- 未知参数被忽略；百分号编码损坏或非 UTF-8 时判定为 Malformed。
- 标签只要求包含至少一段字母数字（子串匹配，而非整串匹配）。
"""

import re
from typing import Dict, List, Union
from urllib.parse import parse_qs

from .errors import ValidationError, ValidationKind
from .types import CounterRequest, DEFAULT_LABEL

LABEL_PARAM = "label"
LABEL_PATTERN = re.compile(r"[a-zA-Z0-9]+")

# 一个 "%" 后面必须紧跟两位十六进制数字
_BAD_PERCENT_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def parse_params(raw: Union[str, bytes]) -> Dict[str, List[str]]:
    """解析 application/x-www-form-urlencoded 格式的参数串。"""
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            raise ValidationError(ValidationKind.MALFORMED, "invalid parameter encoding: not UTF-8") from None

    bad_escape = _BAD_PERCENT_ESCAPE.search(raw)
    if bad_escape:
        snippet = raw[bad_escape.start():bad_escape.start() + 3]
        raise ValidationError(ValidationKind.MALFORMED, f"invalid URL escape {snippet!r}")

    try:
        return parse_qs(raw, keep_blank_values=True, encoding="utf-8", errors="strict")
    except (UnicodeDecodeError, ValueError) as e:
        raise ValidationError(ValidationKind.MALFORMED, f"invalid parameter encoding: {e}") from e


def validate(*raw_sources: Union[str, bytes]) -> CounterRequest:
    """
    校验入站参数并返回 CounterRequest。

    可以传入多个参数源（例如查询串和表单体），按顺序合并，
    同名参数取第一个出现的值。
    """
    params: Dict[str, List[str]] = {}
    for raw in raw_sources:
        for name, values in parse_params(raw).items():
            params.setdefault(name, []).extend(values)

    values = params.get(LABEL_PARAM)
    label = values[0] if values else DEFAULT_LABEL

    if not LABEL_PATTERN.search(label):
        raise ValidationError(ValidationKind.INVALID_LABEL, "invalid label")

    return CounterRequest(label=label)
