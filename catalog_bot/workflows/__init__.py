from .engine import ABORT, COMMIT, FlowContext, FlowEngine, FlowTable, InboundEvent, Step
from .router import ConversationRouter
from .session import ConversationState, ConversationStore

__all__ = [
    "ABORT",
    "COMMIT",
    "ConversationRouter",
    "ConversationState",
    "ConversationStore",
    "FlowContext",
    "FlowEngine",
    "FlowTable",
    "InboundEvent",
    "Step",
]
