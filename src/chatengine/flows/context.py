"""Flow context stored in session data under "flow", "step" and "draft"."""

import logging
from dataclasses import dataclass, field
from typing import Any

from chatengine.flows.definitions import NUMERIC_STEPS, FlowName, first_step, is_valid_step
from chatengine.session.state import Session

logger = logging.getLogger(__name__)

FLOW_KEY = "flow"
STEP_KEY = "step"
DRAFT_KEY = "draft"


@dataclass
class FlowContext:
    """The flow a sender is in, the step awaited and the fields collected."""

    flow: FlowName
    step: str
    draft: dict[str, Any] = field(default_factory=dict)

    @property
    def expects_numeric(self) -> bool:
        """Whether the awaited answer is a bare number."""
        return (self.flow, self.step) in NUMERIC_STEPS


def get_flow(session: Session) -> FlowContext | None:
    """Read the active flow, ignoring malformed or unknown entries."""
    flow_name = session.data.get(FLOW_KEY)
    step = session.data.get(STEP_KEY)
    if not flow_name or not step:
        return None
    try:
        flow = FlowName(flow_name)
    except ValueError:
        logger.warning(
            "Unknown flow in session data (sender_id=%s, flow=%s)", session.sender_id, flow_name
        )
        return None
    if not is_valid_step(flow, step):
        logger.warning(
            "Unknown step in session data (sender_id=%s, flow=%s, step=%s)",
            session.sender_id,
            flow_name,
            step,
        )
        return None
    return FlowContext(flow=flow, step=step, draft=dict(session.data.get(DRAFT_KEY, {})))


def start_flow(
    session: Session,
    flow: FlowName,
    draft: dict[str, Any] | None = None,
    step: str | None = None,
) -> FlowContext:
    """Enter a flow, replacing any flow already in progress.

    Args:
        session: Session to update.
        flow: Flow to start.
        draft: Fields already known, e.g. from an inline command.
        step: Step to start on; defaults to the flow's first step.
    """
    context = FlowContext(flow=flow, step=step or first_step(flow), draft=dict(draft or {}))
    session.update_data(
        **{FLOW_KEY: context.flow.value, STEP_KEY: context.step, DRAFT_KEY: context.draft}
    )
    logger.debug(
        "Flow started (sender_id=%s, flow=%s, step=%s)",
        session.sender_id,
        flow.value,
        context.step,
    )
    return context


def advance_flow(session: Session, step: str, **draft_changes: Any) -> None:
    """Move to ``step`` and merge new fields into the draft."""
    draft = {**session.data.get(DRAFT_KEY, {}), **draft_changes}
    session.update_data(**{STEP_KEY: step, DRAFT_KEY: draft})


def update_draft(session: Session, **draft_changes: Any) -> None:
    """Merge new fields into the draft without changing step."""
    draft = {**session.data.get(DRAFT_KEY, {}), **draft_changes}
    session.update_data(**{DRAFT_KEY: draft})


def clear_flow(session: Session) -> None:
    """Leave the current flow and drop its draft."""
    session.discard_data(FLOW_KEY, STEP_KEY, DRAFT_KEY)
