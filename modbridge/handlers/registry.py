"""
Explicit dispatch table from handler names to handler coroutines.

Every HandlerName member must have an entry; a missing one fails at import
time rather than when the first task of that kind is withdrawn.
"""

from functools import partial

from modbridge.context import BridgeContext
from modbridge.handlers.audit import handle_mod_abuse, handle_mod_log
from modbridge.handlers.common import Handler
from modbridge.handlers.mod_mail import handle_mod_mail
from modbridge.handlers.moderation import (
    create_queue_listing,
    handle_deletion,
    handle_mod_queue,
    handle_removal,
    handle_removal_reason,
    handle_report,
    handle_spam_removal,
    handle_state_sync,
    handle_update,
)
from modbridge.handlers.submissions import (
    create_public_flair_listing,
    create_public_listing,
    handle_flair_watch,
    handle_mod_activity,
    handle_new_post,
    handle_public_post,
)
from modbridge.models.domain.states import ChannelClass
from modbridge.models.domain.task_domain import HandlerName

HANDLER_REGISTRY: dict[HandlerName, Handler] = {
    HandlerName.NEW_POST: handle_new_post,
    HandlerName.PUBLIC_POST: handle_public_post,
    HandlerName.STATE_SYNC: handle_state_sync,
    HandlerName.REMOVAL: handle_removal,
    HandlerName.SPAM_REMOVAL: handle_spam_removal,
    HandlerName.REMOVAL_REASON: handle_removal_reason,
    HandlerName.REPORT: handle_report,
    HandlerName.MOD_LOG: handle_mod_log,
    HandlerName.DELETION: handle_deletion,
    HandlerName.FLAIR_WATCH: handle_flair_watch,
    HandlerName.MOD_ACTIVITY: handle_mod_activity,
    HandlerName.MOD_ABUSE: handle_mod_abuse,
    HandlerName.MOD_MAIL: handle_mod_mail,
    HandlerName.MOD_QUEUE: handle_mod_queue,
    HandlerName.UPDATE: handle_update,
}

_missing = set(HandlerName) - set(HANDLER_REGISTRY)
if _missing:
    raise RuntimeError(
        f"No handler registered for: {', '.join(sorted(name.value for name in _missing))}"
    )


def register_creators(ctx: BridgeContext) -> None:
    """Give the reconciler a way to (re)create each visibility-gated notification."""
    ctx.reconciler.register_creator(
        ChannelClass.PUBLIC_NEW_POSTS, partial(create_public_listing, ctx)
    )
    ctx.reconciler.register_creator(
        ChannelClass.PUBLIC_FLAIR_WATCH, partial(create_public_flair_listing, ctx)
    )
    ctx.reconciler.register_creator(ChannelClass.MOD_QUEUE, partial(create_queue_listing, ctx))
