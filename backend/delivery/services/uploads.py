"""上传后的异步索引调度。"""

from __future__ import annotations

import logging

from ..tasks import index_photo, remove_photo_from_index

logger = logging.getLogger(__name__)


class IndexDispatcher:
    """把索引推送交给 Celery，不阻塞也不影响调用方。"""

    def dispatch_upsert(self, photo_id: int) -> None:
        try:
            index_photo.delay(photo_id)
        except Exception:  # broker 不可用等，索引可稍后批量重建
            logger.exception("索引任务派发失败", extra={"photo_id": photo_id})

    def dispatch_remove(self, photo_id: int) -> None:
        try:
            remove_photo_from_index.delay(photo_id)
        except Exception:
            logger.exception("删除索引任务派发失败", extra={"photo_id": photo_id})
