"""
订单编号与导入文本处理工具

- 订单编号：<前缀>-<毫秒时间戳后4位>-<4位随机数>，例如 OID-4821-5307
- 导入表格里的“商品及数量”单元格：每行一个商品，格式 `商品名 (SKU: A1, A2) x3`
"""

from __future__ import annotations

import random
import re
import time
from dataclasses import dataclass, field


_PRODUCT_LINE_RE = re.compile(r"(.*?)\s*\(SKU:\s*([^)]+)\)\s*x(\d+)", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")


def generate_order_code(prefix: str = "OID") -> str:
    """生成候选订单编号（唯一性由调用方校验）"""
    stamp = str(int(time.time() * 1000))[-4:]
    return f"{prefix}-{stamp}-{random.randint(1000, 9999)}"


def clean_text(raw: object) -> str:
    """去掉制表符、首尾空白，并把中间连续空白压缩成单空格；空值 / nan 返回空串"""
    if raw is None:
        return ""
    s = str(raw).replace("\t", "").strip()
    if not s or s.lower() == "nan":
        return ""
    return _WHITESPACE_RE.sub(" ", s)


@dataclass
class ParsedProductLine:
    product_name: str
    skus: list[str] = field(default_factory=list)
    quantity: int = 1


def parse_product_lines(raw: object) -> list[ParsedProductLine]:
    """
    解析“商品及数量”单元格

    无法匹配格式的行直接忽略。
    """
    text = "" if raw is None else str(raw)
    lines: list[ParsedProductLine] = []
    for item in text.splitlines():
        match = _PRODUCT_LINE_RE.search(item)
        if not match:
            continue
        name, sku_list, qty = match.groups()
        skus = [clean_text(s) for s in sku_list.split(",")]
        lines.append(
            ParsedProductLine(
                product_name=clean_text(name),
                skus=[s for s in skus if s],
                quantity=int(qty),
            )
        )
    return lines
