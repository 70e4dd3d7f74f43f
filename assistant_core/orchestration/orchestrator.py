"""分层应答编排器。

状态机：IDLE -> AWAITING_REMOTE -> AWAITING_RULE -> AWAITING_HEURISTIC -> DONE

- 远程层在线程池中执行，最多等待 remote_timeout 秒；超时后放弃该调用，
  立即进入本地层，不等待远程线程结束。
- 远程层的任何失败都归类为 FallbackReason，记录日志后降级，不抛给调用方。
- 规则层返回 NoMatch 时进入启发式层；启发式层总能给出答复。
- 任何一层给出非空答复后立即进入 DONE，不再回退或重试。

唯一会抛给调用方的错误是请求校验失败（InvalidRequest）。
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from uuid import uuid4

from assistant_core.config.knowledge import load_knowledge
from assistant_core.config.settings import settings
from assistant_core.domain.conversation import ConversationStore, MessageRecord
from assistant_core.domain.exceptions import (
    AuthError,
    BusinessError,
    InvalidRequest,
    MalformedResponseError,
    NetworkError,
    RateLimitError,
    RemoteUnavailable,
)
from assistant_core.domain.models import (
    ChatMessage,
    ChatTurnRequest,
    ChatTurnResult,
    DocumentUpload,
    ExtractedPlan,
    ResponderResult,
    Tier,
    TrainingExample,
)
from assistant_core.extraction.element_parser import ElementParser
from assistant_core.extraction.text_extractor import TextExtractor
from assistant_core.infrastructure.logging.logger import log_event
from assistant_core.prompts import load_system_prompt
from assistant_core.responders.heuristic_responder import HeuristicResponder
from assistant_core.responders.remote import RemoteResponder
from assistant_core.responders.rule_responder import RuleResponder
from assistant_core.training.buffer import InteractionBuffer
from assistant_core.training.curator import CorpusCurator


DOCUMENT_ONLY_PROMPT = "Analyse le plan fourni."


class OrchestratorState(str, Enum):
    IDLE = "idle"
    AWAITING_REMOTE = "awaiting_remote"
    AWAITING_RULE = "awaiting_rule"
    AWAITING_HEURISTIC = "awaiting_heuristic"
    DONE = "done"


class FallbackReason(str, Enum):
    DISABLED = "disabled"
    TIMEOUT = "timeout"
    NETWORK = "network"
    AUTH = "auth"
    RATE_LIMITED = "rate_limited"
    MALFORMED = "malformed"
    EMPTY = "empty"
    ERROR = "error"


# 按顺序匹配，子类需排在父类之前
_REASON_BY_ERROR: Tuple[Tuple[type, FallbackReason], ...] = (
    (AuthError, FallbackReason.AUTH),
    (RateLimitError, FallbackReason.RATE_LIMITED),
    (NetworkError, FallbackReason.NETWORK),
    (MalformedResponseError, FallbackReason.MALFORMED),
)


class ResponseOrchestrator:
    def __init__(
        self,
        store: ConversationStore,
        remote: Optional[RemoteResponder] = None,
        rule_responder: Optional[RuleResponder] = None,
        heuristic_responder: Optional[HeuristicResponder] = None,
        extractor: Optional[TextExtractor] = None,
        parser: Optional[ElementParser] = None,
        curator: Optional[CorpusCurator] = None,
        buffer: Optional[InteractionBuffer] = None,
        remote_timeout: Optional[float] = None,
        max_context_messages: Optional[int] = None,
        max_remote_workers: int = 4,
    ):
        self._store = store
        self._remote = remote
        self._rules = rule_responder or RuleResponder()
        self._heuristic = heuristic_responder or HeuristicResponder()
        self._extractor = extractor or TextExtractor()
        self._parser = parser or ElementParser()
        self._curator = curator
        self._buffer = buffer
        self._remote_timeout = remote_timeout if remote_timeout is not None else settings.remote_timeout
        self._max_context = max_context_messages or settings.max_context_messages
        self._fallback_reply = load_knowledge().fallback_reply
        self._system_prompt = load_system_prompt("btp-assistant") if remote is not None else ""
        self._executor = (
            ThreadPoolExecutor(max_workers=max_remote_workers, thread_name_prefix="remote-tier")
            if remote is not None
            else None
        )

    def handle(self, request: ChatTurnRequest) -> ChatTurnResult:
        """处理一次用户请求，恰好返回一个答复。"""

        self._validate(request)
        start_time = time.time()
        log_ctx: Dict[str, Any] = {"trace_id": f"tr-{uuid4().hex}", "user_id": request.user_id}
        transitions: List[str] = [OrchestratorState.IDLE.value]
        project_type = (request.project_type or "generic").strip() or "generic"

        plan = self._extract(request.document, log_ctx) if request.document is not None else None
        message = (request.message or "").strip()
        prompt_text = message or DOCUMENT_ONLY_PROMPT

        user_rec = self._safe_append(
            request.user_id,
            "user",
            prompt_text,
            {"project_type": project_type, "has_document": request.document is not None},
            log_ctx,
        )
        history = self._load_history(request.user_id, user_rec, prompt_text, log_ctx)
        values = HeuristicResponder.known_values(request.values, plan)

        result, reasons = self._run_tiers(message, history, plan, project_type, values, transitions, log_ctx)

        assistant_rec = self._safe_append(request.user_id, "assistant", result.reply, {"tier": result.tier.value}, log_ctx)
        self._record_example(history, result, project_type, plan, log_ctx)

        self._log(
            logging.INFO,
            "Completed chat turn",
            log_ctx,
            tier=result.tier.value,
            fallback_reasons=[r.value for r in reasons],
            elapsed_seconds=round(time.time() - start_time, 2),
        )
        return ChatTurnResult(
            reply=result.reply,
            tier=result.tier,
            estimation=dict(result.estimation),
            questions=list(result.follow_up_questions),
            extracted_plan=plan,
            fallback_reasons=[r.value for r in reasons],
            transitions=transitions,
            user_message=user_rec,
            assistant_message=assistant_rec,
        )

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "ResponseOrchestrator":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ---- 状态机 ----

    def _run_tiers(
        self,
        message: str,
        history: Sequence[Any],
        plan: Optional[ExtractedPlan],
        project_type: str,
        values: Mapping[str, float],
        transitions: List[str],
        log_ctx: Dict[str, Any],
    ) -> Tuple[ResponderResult, List[FallbackReason]]:
        reasons: List[FallbackReason] = []
        state = OrchestratorState.IDLE
        result: Optional[ResponderResult] = None

        while state is not OrchestratorState.DONE:
            if state is OrchestratorState.IDLE:
                state = OrchestratorState.AWAITING_REMOTE
            elif state is OrchestratorState.AWAITING_REMOTE:
                try:
                    reply = self._call_remote(history, plan, log_ctx)
                    result = ResponderResult(reply=reply, tier=Tier.REMOTE)
                    state = OrchestratorState.DONE
                except RemoteUnavailable as e:
                    reason = e.extra["reason"]
                    reasons.append(reason)
                    self._log(logging.WARNING, "Remote tier unavailable, falling back", log_ctx, reason=reason.value, error=e.message)
                    state = OrchestratorState.AWAITING_RULE
            elif state is OrchestratorState.AWAITING_RULE:
                result = self._call_rules(message, values, log_ctx)
                state = OrchestratorState.DONE if result is not None else OrchestratorState.AWAITING_HEURISTIC
            elif state is OrchestratorState.AWAITING_HEURISTIC:
                result = self._call_heuristic(history, plan, project_type, values, log_ctx)
                state = OrchestratorState.DONE
            transitions.append(state.value)
            self._log(logging.INFO, "Orchestrator transition", log_ctx, state=state.value)

        assert result is not None
        return result, reasons

    def _call_remote(self, history: Sequence[Any], plan: Optional[ExtractedPlan], log_ctx: Dict[str, Any]) -> str:
        if self._remote is None or self._executor is None:
            raise _unavailable(FallbackReason.DISABLED, "remote tier not configured")
        system_prompt = self._system_prompt
        if plan is not None and plan.non_zero():
            system_prompt = f"{system_prompt}\n\nDonnées extraites du plan : {plan.summary()}"
        messages = self._remote_messages(history)
        future = self._executor.submit(self._remote.complete, system_prompt, messages)
        try:
            reply = future.result(timeout=self._remote_timeout)
        except FuturesTimeout:
            future.cancel()
            raise _unavailable(FallbackReason.TIMEOUT, f"no answer within {self._remote_timeout}s")
        except BusinessError as e:
            raise _unavailable(_classify(e), f"{e.code}: {e.message}")
        except Exception as e:  # noqa: BLE001 - 远程层的任何异常都只触发降级
            self._log(logging.ERROR, "Unexpected remote tier error", log_ctx, exc_info=True)
            raise _unavailable(FallbackReason.ERROR, str(e))
        if not isinstance(reply, str) or not reply.strip():
            raise _unavailable(FallbackReason.EMPTY, "remote returned an empty reply")
        return reply.strip()

    def _call_rules(self, message: str, values: Mapping[str, float], log_ctx: Dict[str, Any]) -> Optional[ResponderResult]:
        try:
            match = self._rules.match(message, values)
        except Exception:  # noqa: BLE001 - 规则层异常按 NoMatch 处理
            self._log(logging.ERROR, "Rule tier raised, treating as no match", log_ctx, exc_info=True)
            return None
        if match is None or not match.reply.strip():
            return None
        self._log(logging.INFO, "Rule tier matched", log_ctx, keyword=match.keyword)
        return ResponderResult(
            reply=match.reply,
            tier=Tier.RULE,
            estimation=dict(match.computed),
            keyword=match.keyword,
        )

    def _call_heuristic(
        self,
        history: Sequence[Any],
        plan: Optional[ExtractedPlan],
        project_type: str,
        values: Mapping[str, float],
        log_ctx: Dict[str, Any],
    ) -> ResponderResult:
        try:
            result = self._heuristic.advise(history, plan, project_type, values)
        except Exception:  # noqa: BLE001 - 最后一层不允许把异常抛给调用方
            self._log(logging.ERROR, "Heuristic tier raised, using fallback reply", log_ctx, exc_info=True)
            return ResponderResult(reply=self._fallback_reply, tier=Tier.HEURISTIC)
        if not result.reply.strip():
            result.reply = self._fallback_reply
        return result

    # ---- 辅助方法 ----

    @staticmethod
    def _validate(request: ChatTurnRequest) -> None:
        if not isinstance(request.user_id, str) or not request.user_id.strip():
            raise InvalidRequest(code="INVALID_REQUEST", message="userId is required")
        has_message = isinstance(request.message, str) and bool(request.message.strip())
        has_document = request.document is not None and bool(request.document.data)
        if not has_message and not has_document:
            raise InvalidRequest(code="INVALID_REQUEST", message="message or document is required")
        if request.values is not None and not isinstance(request.values, Mapping):
            raise InvalidRequest(code="INVALID_REQUEST", message="values must be a mapping")

    def _extract(self, document: DocumentUpload, log_ctx: Dict[str, Any]) -> Optional[ExtractedPlan]:
        try:
            text = self._extractor.extract(document.data, document.mime_type)
            plan = self._parser.parse(text)
        except Exception:  # noqa: BLE001 - 提取失败不影响应答
            self._log(logging.ERROR, "Plan extraction failed", log_ctx, exc_info=True, filename=document.filename)
            return None
        self._log(logging.INFO, "Parsed plan elements", log_ctx, elements=plan.summary())
        return plan

    def _safe_append(
        self,
        user_id: str,
        role: str,
        content: str,
        meta: Dict[str, Any],
        log_ctx: Dict[str, Any],
    ) -> Optional[MessageRecord]:
        try:
            return self._store.append(user_id, role, content, meta)
        except BusinessError as e:
            self._log(logging.ERROR, "Failed to store message", log_ctx, role=role, code=e.code, error=e.message)
            return None

    def _load_history(
        self,
        user_id: str,
        user_rec: Optional[MessageRecord],
        prompt_text: str,
        log_ctx: Dict[str, Any],
    ) -> List[Any]:
        try:
            history: List[Any] = list(self._store.list_messages(user_id))
        except BusinessError as e:
            self._log(logging.ERROR, "Failed to load history", log_ctx, code=e.code, error=e.message)
            history = []
        if user_rec is None or not any(getattr(m, "id", None) == user_rec.id for m in history):
            history.append(ChatMessage(role="user", content=prompt_text))
        return history

    def _remote_messages(self, history: Sequence[Any]) -> List[ChatMessage]:
        messages = [ChatMessage(role=m.role, content=m.content) for m in history]
        if len(messages) > self._max_context:
            messages = messages[-self._max_context:]
        return messages

    def _record_example(
        self,
        history: Sequence[Any],
        result: ResponderResult,
        project_type: str,
        plan: Optional[ExtractedPlan],
        log_ctx: Dict[str, Any],
    ) -> None:
        if self._buffer is None and self._curator is None:
            return
        example = TrainingExample(
            history=[{"role": m.role, "content": m.content} for m in history],
            response=result.reply,
            project_type=project_type,
            plan_summary=plan.summary() if plan is not None else "",
            keyword=result.keyword,
            meta={"tier": result.tier.value},
        )
        try:
            if self._buffer is not None:
                self._buffer.add(example)
            else:
                self._curator.append(example)
        except BusinessError as e:
            self._log(logging.ERROR, "Failed to record training example", log_ctx, code=e.code, error=e.message)

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], exc_info: bool = False, **fields: Any) -> None:
        log_event(level, message, log_ctx, exc_info=exc_info, **fields)


def _classify(error: BusinessError) -> FallbackReason:
    for error_type, reason in _REASON_BY_ERROR:
        if isinstance(error, error_type):
            return reason
    return FallbackReason.ERROR


def _unavailable(reason: FallbackReason, message: str) -> RemoteUnavailable:
    return RemoteUnavailable(code="REMOTE_UNAVAILABLE", message=message, http_status=503, reason=reason)
