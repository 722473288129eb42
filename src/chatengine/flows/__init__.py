"""Multi-step flows: definitions, context in session data and resolution."""

from chatengine.flows.context import (
    FlowContext,
    advance_flow,
    clear_flow,
    get_flow,
    start_flow,
    update_draft,
)
from chatengine.flows.definitions import (
    FLOW_STEPS,
    NUMERIC_STEPS,
    FlowName,
    first_step,
    next_step,
    step_intent,
)
from chatengine.flows.resolver import (
    CANCEL_FLOW_INTENT,
    OTP_WAIT_KEY,
    STALE_REPLY_INTENT,
    FlowResolver,
    flow_marker,
    is_flow_marker,
)

__all__ = [
    "FlowName",
    "FLOW_STEPS",
    "NUMERIC_STEPS",
    "first_step",
    "next_step",
    "step_intent",
    "FlowContext",
    "get_flow",
    "start_flow",
    "advance_flow",
    "update_draft",
    "clear_flow",
    "FlowResolver",
    "flow_marker",
    "is_flow_marker",
    "OTP_WAIT_KEY",
    "STALE_REPLY_INTENT",
    "CANCEL_FLOW_INTENT",
]
