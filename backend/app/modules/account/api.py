from fastapi import APIRouter, Depends, HTTPException
import sqlalchemy as sa
from sqlalchemy.orm import Session

from app.api.deps import get_current_identity
from app.core.security import Identity
from app.db.session import get_db
from app.schemas.account import (
    AccountOut,
    BadgeVisibilityIn,
    BadgeVisibilityOut,
    LinkedProfileOut,
    LinkProfileIn,
    LinkProfileOut,
    SubscriptionOut,
    SuccessOut,
)
from app.services.app_users import (
    delete_app_user,
    get_app_user,
    link_profile,
    set_badge_visibility,
    unlink_profile,
    upsert_app_user,
)
from app.services.premium import is_subscription_active
from app.services.xp_levels import level_from_xp

router = APIRouter()


def _linked_profile(db: Session, profile_id: int | None) -> LinkedProfileOut | None:
    if not profile_id:
        return None
    player = db.execute(
        sa.text("SELECT profile_id, current_alias, country, xp FROM players WHERE profile_id=:pid"),
        {"pid": profile_id},
    ).mappings().first()
    if not player:
        return LinkedProfileOut(profile_id=profile_id)
    return LinkedProfileOut(
        profile_id=player["profile_id"],
        alias=player["current_alias"],
        country=player["country"],
        level=level_from_xp(player["xp"]),
    )


@router.get("", response_model=AccountOut)
def account(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    upsert_app_user(db, identity)
    db.commit()
    user = get_app_user(db, identity.sub)
    if not user:
        raise HTTPException(500, "lookup_failed")

    status = user["stripe_subscription_status"]
    period_end = user["premium_expires_at"]
    return AccountOut(
        auth0_sub=user["auth0_sub"],
        email=user["email"],
        profile=_linked_profile(db, user["primary_profile_id"]),
        subscription=SubscriptionOut(
            status=status,
            cancel_at_period_end=bool(user["stripe_subscription_cancel_at_period_end"]),
            current_period_end=period_end,
            active=is_subscription_active(status, period_end) and period_end is not None,
        ),
        show_badge=True if user["show_pro_badge"] is None else bool(user["show_pro_badge"]),
        has_used_trial=bool(user["has_used_trial"]),
    )


@router.delete("", response_model=SuccessOut)
def delete_account(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    delete_app_user(db, identity.sub)
    db.commit()
    return SuccessOut()


@router.post("/profile", response_model=LinkProfileOut)
def link_account_profile(
    payload: LinkProfileIn,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    try:
        player = link_profile(db, identity, payload.profile_id)
    except LookupError:
        raise HTTPException(404, "profile_not_found")
    db.commit()
    return LinkProfileOut(
        profile=LinkedProfileOut(
            profile_id=player["profile_id"],
            alias=player["current_alias"],
            country=player["country"],
            level=level_from_xp(player["xp"]),
        )
    )


@router.delete("/profile", response_model=SuccessOut)
def unlink_account_profile(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    unlink_profile(db, identity.sub)
    db.commit()
    return SuccessOut()


@router.get("/badge-visibility", response_model=BadgeVisibilityOut)
def badge_visibility(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    user = get_app_user(db, identity.sub)
    show = user["show_pro_badge"] if user else None
    return BadgeVisibilityOut(show_badge=True if show is None else bool(show))


@router.post("/badge-visibility", response_model=BadgeVisibilityOut)
def update_badge_visibility(
    payload: BadgeVisibilityIn,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    set_badge_visibility(db, identity.sub, payload.show_badge)
    db.commit()
    return BadgeVisibilityOut(show_badge=payload.show_badge)
