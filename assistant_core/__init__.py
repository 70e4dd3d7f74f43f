"""BTP 平面图助手核心包。

提供施工平面图的文本提取与元素统计、分层应答（远程 AI -> 规则表 -> 启发式顾问）、
会话持久化以及训练语料的追加与修复。
"""

from assistant_core.api.service import flush_corpus, repair_corpus, run_chat

__all__ = ["flush_corpus", "repair_corpus", "run_chat"]
