"""调用方持有的交互缓冲区。

取代“模块级全局列表”：缓冲区由调用方创建并传给编排器，
达到 flush_size 时自动写入语料，也可以随时显式 flush()。
写入失败时样本保留在缓冲区中，下次 flush 再试。
"""

import threading
from typing import List, Optional

from assistant_core.config.settings import settings
from assistant_core.domain.models import TrainingExample
from assistant_core.training.curator import CorpusCurator


class InteractionBuffer:
    def __init__(self, curator: CorpusCurator, flush_size: Optional[int] = None):
        self._curator = curator
        self._flush_size = max(1, int(flush_size or settings.corpus_flush_size))
        self._items: List[TrainingExample] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def add(self, example: TrainingExample) -> int:
        """加入一条样本，返回本次自动写入的条数（未触发时为 0）。"""

        with self._lock:
            self._items.append(example)
            if len(self._items) < self._flush_size:
                return 0
            return self._flush_locked()

    def flush(self) -> int:
        with self._lock:
            return self._flush_locked()

    def close(self) -> None:
        self.flush()

    def __enter__(self) -> "InteractionBuffer":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _flush_locked(self) -> int:
        if not self._items:
            return 0
        written = self._curator.append_many(self._items)
        self._items = []
        return written
