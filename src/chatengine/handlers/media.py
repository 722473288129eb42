"""Prescription uploads and shared locations."""

import logging

from chatengine.handlers.base import TurnContext, handles
from chatengine.nlp.orders import parse_order_id
from chatengine.services.models import CatalogError

logger = logging.getLogger(__name__)

PENDING_PRESCRIPTION_KEY = "pendingPrescription"
LAST_LOCATION_KEY = "last_location"


async def _attach(ctx: TurnContext, order_id: str, media_id: str) -> bool:
    try:
        await ctx.services.orders.attach_prescription(ctx.user_id, order_id, media_id)
    except CatalogError as e:
        ctx.reply.text(f"{e}. Reply 'rx <order number>' to link the prescription.")
        return False
    ctx.session.discard_data(PENDING_PRESCRIPTION_KEY)
    ctx.reply.text(f"Prescription linked to order #{order_id}. Our pharmacist will review it.")
    return True


@handles("prescription_media")
async def prescription_media(ctx: TurnContext) -> None:
    media_id = ctx.params.get("media_id")
    if not media_id:
        ctx.reply.text("We couldn't read that file. Please send it again.")
        return

    order_id = parse_order_id(ctx.params.get("caption"), fallback=False)
    if order_id:
        if await _attach(ctx, order_id, media_id):
            return
    ctx.session.update_data(**{PENDING_PRESCRIPTION_KEY: media_id})
    if not order_id:
        ctx.reply.text(
            "Prescription received. Which order is it for? Reply 'rx <order number>'."
        )


@handles("attach_prescription")
async def attach_prescription(ctx: TurnContext) -> None:
    media_id = ctx.session.data.get(PENDING_PRESCRIPTION_KEY)
    if not media_id:
        ctx.reply.text("Send a photo of your prescription first.")
        return
    await _attach(ctx, ctx.params["order_id"], media_id)


@handles("share_location")
async def share_location(ctx: TurnContext) -> None:
    message = ctx.message
    ctx.session.update_data(
        **{
            LAST_LOCATION_KEY: {
                "latitude": message.latitude,
                "longitude": message.longitude,
                "name": message.location_name,
                "address": message.location_address,
            }
        }
    )
    ctx.reply.text("Thanks, we've saved your location for your next delivery.")
