"""
存储键命名模块：
- 由逻辑标签确定性地派生 Redis 键，格式为 <prefix>.next.<label>。
- 标签中的分隔符 "." 与转义符 "\\" 会被转义，保证不同标签不会映射到同一个键。
"""

from .config import KEY_NAMESPACE

SEPARATOR = "."
ESCAPE = "\\"


def escape_label(label: str) -> str:
    """转义标签中的转义符与分隔符（先转义转义符本身）。"""
    return label.replace(ESCAPE, ESCAPE * 2).replace(SEPARATOR, ESCAPE + SEPARATOR)


class KeyNamer:
    """把计数标签映射为带前缀和命名空间的存储键。纯函数，无副作用。"""

    def __init__(self, prefix: str, namespace: str = KEY_NAMESPACE):
        self.prefix = prefix
        self.namespace = namespace

    def derive_key(self, label: str) -> str:
        return SEPARATOR.join((self.prefix, self.namespace, escape_label(label)))
