"""Node handlers, one per workflow node kind."""

from .agent import AgentNodeHandler
from .approval import ApprovalNodeHandler
from .base import NodeHandler
from .condition import ConditionNodeHandler
from .delay import DelayNodeHandler
from .output import OutputNodeHandler
from .trigger import TriggerNodeHandler

__all__ = [
    "AgentNodeHandler",
    "ApprovalNodeHandler",
    "ConditionNodeHandler",
    "DelayNodeHandler",
    "NodeHandler",
    "OutputNodeHandler",
    "TriggerNodeHandler",
]
