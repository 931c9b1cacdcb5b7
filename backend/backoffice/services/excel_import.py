"""
Excel 订单导入服务
"""
import pandas as pd
from typing import Any, Awaitable, Callable, Dict, List, Optional
import anyio
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.config import Settings
from backoffice.services.order_import import OrderImporter

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[str], Awaitable[None]]


class ExcelImportService:
    """Excel 导入服务"""

    # 批量大小（每批结束后汇报一次进度）
    BATCH_SIZE = 100

    # 表头 -> 行字段
    COLUMN_MAP = {
        "订单编号": "code",
        "下单日期": "order_date",
        "备注": "note",
        "下单客户": "orderer",
        "收货客户": "delivery_target",
        "发货地点": "delivery_place",
        "销售渠道": "sales_channel",
        "商品及数量": "products",
        "支付状态": "payment_status",
        "支付日期": "payment_date",
        "收款方式": "payment_method",
        "总金额": "final_price",
        "快递单号": "receipt_number",
        "运费": "shipping_cost",
        "物流类型": "shipping_type",
        "物流服务": "shipping_service",
        "折扣": "discount",
    }

    REQUIRED_COLUMNS = ("下单客户", "商品及数量")

    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None):
        self.db = db
        self.importer = OrderImporter(db, settings)

    @classmethod
    def frame_to_rows(cls, df: pd.DataFrame) -> List[Dict[str, Any]]:
        """表格 -> 行字段 dict 列表（NaN / NaT 统一为 None）"""
        df = df.rename(columns=lambda col: str(col).strip())
        missing = [col for col in cls.REQUIRED_COLUMNS if col not in df.columns]
        if missing:
            raise ValueError(f"缺少必需的列：{', '.join(missing)}")

        df = df[[col for col in cls.COLUMN_MAP if col in df.columns]].rename(columns=cls.COLUMN_MAP)
        df = df.astype(object).where(pd.notna(df), None)
        return df.to_dict(orient="records")

    async def import_orders(self, file_path: str, on_progress: Optional[ProgressCallback] = None) -> Dict[str, Any]:
        """
        导入订单表格

        Args:
            file_path: Excel文件路径
            on_progress: 每批处理完后的进度回调

        Returns:
            导入统计信息
        """
        # pandas 解析 Excel 是阻塞操作：放到线程池，避免阻塞事件循环
        df = await anyio.to_thread.run_sync(pd.read_excel, file_path)
        rows = self.frame_to_rows(df)
        return await self.import_records(rows, on_progress)

    async def import_records(
        self,
        rows: List[Dict[str, Any]],
        on_progress: Optional[ProgressCallback] = None,
    ) -> Dict[str, Any]:
        """分批导入已解析的行"""
        stats: Dict[str, Any] = {"total": 0, "created": 0, "skipped": 0, "failed": 0, "errors": []}

        total_rows = len(rows)
        for batch_start in range(0, total_rows, self.BATCH_SIZE):
            batch = rows[batch_start:batch_start + self.BATCH_SIZE]
            # 表头占第 1 行，数据从第 2 行开始
            batch_stats = await self.importer.import_rows(batch, start_row=batch_start + 2)

            for key in ("total", "created", "skipped", "failed"):
                stats[key] += batch_stats[key]
            stats["errors"].extend(batch_stats["errors"])

            done = min(batch_start + self.BATCH_SIZE, total_rows)
            logger.info("导入批次完成", done=done, total=total_rows)
            if on_progress is not None:
                await on_progress(f"已处理 {done}/{total_rows} 行")

        return stats
