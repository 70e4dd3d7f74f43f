"""应答编排：Remote -> Rule -> Heuristic 的降级状态机。"""

from assistant_core.orchestration.orchestrator import FallbackReason, OrchestratorState, ResponseOrchestrator

__all__ = ["FallbackReason", "OrchestratorState", "ResponseOrchestrator"]
