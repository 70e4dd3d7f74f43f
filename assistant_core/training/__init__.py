"""训练语料管理。

- curator: CorpusCurator，追加样本、修复并去重损坏的语料文件。
- buffer: 调用方持有的交互缓冲区，显式或按阈值写入语料。
- scanner: 基于花括号平衡的记录切分。
- export: 把会话历史导出为训练样本。
"""

from assistant_core.training.buffer import InteractionBuffer
from assistant_core.training.curator import CorpusCurator, RepairResult
from assistant_core.training.export import examples_from_messages

__all__ = ["CorpusCurator", "InteractionBuffer", "RepairResult", "examples_from_messages"]
