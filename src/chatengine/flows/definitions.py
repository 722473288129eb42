"""Named multi-turn flows and their ordered steps."""

from enum import Enum


class FlowName(str, Enum):
    """Multi-turn sub-conversations."""

    REGISTRATION = "registration"
    LOGIN = "login"
    PASSWORD_RESET = "password_reset"
    PRODUCT_SEARCH = "product_search"
    CHECKOUT = "checkout"
    APPOINTMENT = "appointment"


FLOW_STEPS: dict[FlowName, tuple[str, ...]] = {
    FlowName.REGISTRATION: ("email", "name", "phone", "password"),
    FlowName.LOGIN: ("email", "password"),
    FlowName.PASSWORD_RESET: ("email", "otp", "new_password"),
    FlowName.PRODUCT_SEARCH: ("query",),
    FlowName.CHECKOUT: ("address", "phone", "payment"),
    FlowName.APPOINTMENT: ("specialty", "doctor", "datetime", "confirm"),
}

# Steps whose answers are bare digits; these win over an active list cursor
NUMERIC_STEPS = frozenset(
    {
        (FlowName.REGISTRATION, "phone"),
        (FlowName.CHECKOUT, "phone"),
        (FlowName.CHECKOUT, "payment"),
        (FlowName.PASSWORD_RESET, "otp"),
    }
)


def step_intent(flow: FlowName, step: str) -> str:
    """Intent tag for a flow step, e.g. "checkout_step_address"."""
    return f"{flow.value}_step_{step}"


def first_step(flow: FlowName) -> str:
    """Get the step a flow starts on."""
    return FLOW_STEPS[flow][0]


def next_step(flow: FlowName, step: str) -> str | None:
    """Get the step after ``step``, or None if it is the last one.

    Raises:
        ValueError: If ``step`` does not belong to the flow.
    """
    steps = FLOW_STEPS[flow]
    index = steps.index(step)
    return steps[index + 1] if index + 1 < len(steps) else None


def is_valid_step(flow: FlowName, step: str) -> bool:
    """Check that a step belongs to a flow."""
    return step in FLOW_STEPS[flow]
