"""
通用脱敏工具模块。
"""
from typing import Optional

MASK = "******"

def mask_secret(secret: Optional[str]) -> str:
    """
    对密码类配置进行脱敏处理。
    规则：空值原样返回空字符串，非空值一律替换为固定掩码，不泄露长度。
    """
    if not secret:
        return ""
    return MASK

def sanitize_address(address: Optional[str]) -> str:
    """
    对 "user:password@host:port" 形式的地址进行脱敏处理。
    规则：只保留 @ 之后的主机部分。
    """
    if not address or "@" not in address:
        return str(address)
    return f"{MASK}@{address.rsplit('@', 1)[1]}"
