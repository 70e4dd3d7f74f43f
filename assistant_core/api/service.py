"""对外 API 服务模块。

提供简化的函数接口供上层应用调用（HTTP 层、CLI 或桌面端）。
编排器、会话存储和语料缓冲区在首次调用时按 settings 懒加载为单例。
"""

import threading
from typing import Any, Dict, Mapping, Optional

from assistant_core.config.settings import settings
from assistant_core.domain.conversation import ConversationStore
from assistant_core.domain.exceptions import BusinessError
from assistant_core.domain.models import ChatTurnRequest, DocumentUpload
from assistant_core.infrastructure.logging.logger import logger
from assistant_core.infrastructure.storage.json_store import JsonConversationStore
from assistant_core.orchestration.orchestrator import ResponseOrchestrator
from assistant_core.responders.remote import create_remote_responder
from assistant_core.training.buffer import InteractionBuffer
from assistant_core.training.curator import CorpusCurator


_init_lock = threading.Lock()
_store: Optional[ConversationStore] = None
_curator: Optional[CorpusCurator] = None
_buffer: Optional[InteractionBuffer] = None
_orchestrator: Optional[ResponseOrchestrator] = None


def get_default_orchestrator() -> ResponseOrchestrator:
    """获取默认的编排器实例（单例）。"""
    global _store, _curator, _buffer, _orchestrator
    with _init_lock:
        if _store is None:
            _store = JsonConversationStore(root=settings.storage_root)
        if _curator is None:
            _curator = CorpusCurator(settings.corpus_path)
        if _buffer is None:
            _buffer = InteractionBuffer(_curator, flush_size=settings.corpus_flush_size)
        if _orchestrator is None:
            _orchestrator = ResponseOrchestrator(
                store=_store,
                remote=create_remote_responder(settings),
                buffer=_buffer,
            )
        return _orchestrator


def get_default_curator() -> CorpusCurator:
    get_default_orchestrator()
    return _curator


def run_chat(
    user_id: str,
    message: Optional[str] = None,
    document: Optional[bytes] = None,
    mime_type: Optional[str] = None,
    project_type: Optional[str] = None,
    values: Optional[Mapping[str, Any]] = None,
    filename: Optional[str] = None,
) -> Dict[str, Any]:
    """处理一次聊天请求。

    Args:
        user_id: 用户ID（会话按用户保存）
        message: 用户输入（可选，与 document 至少提供一个）
        document: 上传的平面图字节（PDF 或图片，可选）
        mime_type: document 的 MIME 类型
        project_type: 项目类型（generic / batiment / tp），未知类型按 generic 处理
        values: 已知数值，如 {"surface": 120, "volume": 2}

    Returns:
        包含 reply、estimation、questions、extractedPlan、tier、fallbackReasons、
        userMessage、assistantMessage 的字典

    Raises:
        InvalidRequest: userId 为空，或 message 与 document 都没有提供
    """
    upload = None
    if document is not None:
        upload = DocumentUpload(data=document, mime_type=mime_type or "", filename=filename)
    request = ChatTurnRequest(
        user_id=user_id,
        message=message,
        document=upload,
        project_type=project_type or "generic",
        values=dict(values or {}),
    )
    try:
        result = get_default_orchestrator().handle(request)
    except BusinessError as e:
        logger.error(f"Chat failed: {e.message}", extra={"extra": {
            "user_id": user_id,
            "code": e.code,
        }})
        raise
    return result.to_dict()


def repair_corpus(path: Optional[str] = None, output_path: Optional[str] = None) -> Dict[str, Any]:
    """修复训练语料文件。

    先把缓冲区中的样本写入语料，再做修复，保证新样本参与去重。

    Returns:
        {"path", "outputPath", "kept", "dropped"}
    """
    curator = get_default_curator()
    if path is None:
        flush_corpus()
    result = curator.repair(path, output_path)
    source = path or str(curator.path)
    return {
        "path": source,
        "outputPath": output_path or source,
        "kept": len(result.examples),
        "dropped": result.dropped,
    }


def flush_corpus() -> int:
    """把缓冲区中的样本写入语料，返回写入条数。"""
    get_default_orchestrator()
    return _buffer.flush()
