"""Flow continuation and global interrupts.

A message sent while a flow is active belongs to that flow's current step,
unless it is a global interrupt. Interrupts are only live while an OTP is
awaited: a 4-digit code verifies it, "resend" issues a new one and
"cancel" abandons the pending registration.
"""

import logging
import re

from chatengine.auth.policy import requires_auth
from chatengine.flows.context import FlowContext, get_flow
from chatengine.flows.definitions import FlowName, is_valid_step, step_intent
from chatengine.nlp.results import IntentResult, ResolutionSource
from chatengine.session.state import Session

logger = logging.getLogger(__name__)

OTP_WAIT_KEY = "waitingForOTPVerification"
EMAIL_FAILED_KEY = "emailSendFailed"
REGISTRATION_KEY = "registration"

OTP_CODE_PATTERN = re.compile(r"^\d{4}$")
RESEND_PATTERN = re.compile(
    r"^(?:resend|retry|send again)(?:\s+(?:code|otp))?$", re.IGNORECASE
)
CANCEL_PATTERN = re.compile(r"^(?:cancel|stop|abort)$", re.IGNORECASE)
FLOW_MARKER_PATTERN = re.compile(r"^flow:([a-z_]+):([a-z_]+):(.*)$")

STALE_REPLY_INTENT = "stale_reply"
CANCEL_FLOW_INTENT = "cancel_flow"


def is_flow_marker(reply_id: str | None) -> bool:
    """Check whether an interactive reply id carries a flow step marker."""
    return bool(reply_id and FLOW_MARKER_PATTERN.match(reply_id))


def flow_marker(flow: FlowName, step: str, value: str) -> str:
    """Build an interactive reply id bound to a flow step."""
    return f"flow:{flow.value}:{step}:{value}"


class FlowResolver:
    """Resolves OTP interrupts, flow steps and flow-bound button replies."""

    def resolve_interrupt(self, session: Session, text: str) -> IntentResult | None:
        """Resolve a global interrupt.

        Args:
            session: Current session.
            text: Message text.

        Returns:
            ``verify_otp``, ``resend_otp`` or ``cancel_flow`` while an OTP
            is awaited, otherwise None.
        """
        if not session.data.get(OTP_WAIT_KEY):
            return None
        value = text.strip()
        if OTP_CODE_PATTERN.match(value):
            return IntentResult.resolved(
                "verify_otp", ResolutionSource.INTERRUPT, parameters={"code": value}
            )
        if RESEND_PATTERN.match(value):
            return IntentResult.resolved("resend_otp", ResolutionSource.INTERRUPT)
        if CANCEL_PATTERN.match(value) and get_flow(session) is None:
            return IntentResult(
                intent=CANCEL_FLOW_INTENT,
                confidence=1.0,
                parameters={"flow": FlowName.REGISTRATION.value},
                requires_auth=False,
                source=ResolutionSource.INTERRUPT,
            )
        return None

    def resolve_flow(self, session: Session, text: str) -> IntentResult | None:
        """Bind a message to the active flow step.

        Returns:
            ``<flow>_step_<step>`` with the raw text as ``value``, a
            ``cancel_flow`` intent, or None if no flow is active.
        """
        context = get_flow(session)
        if context is None:
            return None

        if CANCEL_PATTERN.match(text.strip()):
            return self._cancel(context)

        logger.debug(
            "Flow continuation (sender_id=%s, flow=%s, step=%s)",
            session.sender_id,
            context.flow.value,
            context.step,
        )
        return IntentResult.resolved(
            step_intent(context.flow, context.step),
            ResolutionSource.FLOW,
            parameters={"value": text},
        )

    def resolve_marker(self, session: Session, reply_id: str) -> IntentResult:
        """Resolve a button or list reply bound to a flow step.

        A marker for a flow or step that is no longer the active one is
        stale; it resolves to ``stale_reply`` and never reaches a step
        handler.
        """
        match = FLOW_MARKER_PATTERN.match(reply_id)
        if match is None:
            raise ValueError(f"Not a flow marker: {reply_id!r}")
        flow_name, step, value = match.groups()

        context = get_flow(session)
        if context is None or context.flow.value != flow_name or context.step != step:
            logger.info(
                "Stale flow reply rejected (sender_id=%s, marker=%s)", session.sender_id, reply_id
            )
            return IntentResult.resolved(STALE_REPLY_INTENT, ResolutionSource.INTERACTIVE)

        try:
            flow = FlowName(flow_name)
        except ValueError:
            return IntentResult.resolved(STALE_REPLY_INTENT, ResolutionSource.INTERACTIVE)
        if not is_valid_step(flow, step):
            return IntentResult.resolved(STALE_REPLY_INTENT, ResolutionSource.INTERACTIVE)

        return IntentResult.resolved(
            step_intent(flow, step), ResolutionSource.INTERACTIVE, parameters={"value": value}
        )

    @staticmethod
    def _cancel(context: FlowContext) -> IntentResult:
        # Cancelling needs the same access as continuing the flow
        return IntentResult(
            intent=CANCEL_FLOW_INTENT,
            confidence=1.0,
            parameters={"flow": context.flow.value},
            requires_auth=requires_auth(step_intent(context.flow, context.step)),
            source=ResolutionSource.FLOW,
        )
