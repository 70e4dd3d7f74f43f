"""应答层：远程 AI、规则表、启发式顾问。

编排器按 Remote -> Rule -> Heuristic 的顺序调用这些应答器；
两个本地层都是纯函数，不访问网络。
"""

from assistant_core.responders.heuristic_responder import HeuristicResponder
from assistant_core.responders.remote import ProviderRemoteResponder, RemoteResponder, create_remote_responder
from assistant_core.responders.rule_responder import RuleMatch, RuleResponder

__all__ = [
    "HeuristicResponder",
    "ProviderRemoteResponder",
    "RemoteResponder",
    "RuleMatch",
    "RuleResponder",
    "create_remote_responder",
]
