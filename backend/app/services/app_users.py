from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.logger import setup_logger
from app.core.security import Identity

logger = setup_logger(__name__)

# Columns callers may set through ``fields``.
UPDATABLE_COLUMNS = {
    "primary_profile_id",
    "show_pro_badge",
    "has_used_trial",
    "stripe_customer_id",
    "stripe_subscription_id",
    "stripe_subscription_status",
    "stripe_subscription_cancel_at_period_end",
    "premium_expires_at",
}


def _clean_fields(fields: dict | None) -> dict:
    if not fields:
        return {}
    unknown = set(fields) - UPDATABLE_COLUMNS
    if unknown:
        raise ValueError(f"unknown app_users columns: {sorted(unknown)}")
    return dict(fields)


def get_app_user(db: Session, auth0_sub: str):
    return db.execute(
        sa.text(
            """
            SELECT
                auth0_sub,
                email,
                email_verified,
                primary_profile_id,
                show_pro_badge,
                has_used_trial,
                stripe_customer_id,
                stripe_subscription_id,
                stripe_subscription_status,
                stripe_subscription_cancel_at_period_end,
                premium_expires_at
            FROM app_users
            WHERE auth0_sub=:sub
            """
        ),
        {"sub": auth0_sub},
    ).mappings().first()


def _update(db: Session, where_sub: str, values: dict) -> None:
    assignments = ", ".join(f"{col}=:{col}" for col in values)
    db.execute(
        sa.text(f"UPDATE app_users SET {assignments}, updated_at=now() WHERE auth0_sub=:where_sub"),
        {**values, "where_sub": where_sub},
    )


def upsert_app_user(db: Session, identity: Identity, fields: dict | None = None) -> None:
    """Create or refresh the app user behind ``identity``.

    Logging in through a different Auth0 connection yields a new ``sub`` for the
    same email; in that case the existing row is moved over to the new ``sub``.
    """
    extra = _clean_fields(fields)
    base = {"email": identity.email, "email_verified": identity.email_verified}

    existing = db.execute(
        sa.text("SELECT auth0_sub FROM app_users WHERE auth0_sub=:sub"),
        {"sub": identity.sub},
    ).first()
    if existing:
        _update(db, identity.sub, {**base, **extra})
        return

    values = {"auth0_sub": identity.sub, **base, **extra}
    columns = ", ".join(values)
    placeholders = ", ".join(f":{col}" for col in values)
    try:
        with db.begin_nested():
            db.execute(sa.text(f"INSERT INTO app_users ({columns}) VALUES ({placeholders})"), values)
        return
    except IntegrityError:
        if not identity.email:
            raise

    previous = db.execute(
        sa.text("SELECT auth0_sub FROM app_users WHERE email=:email"),
        {"email": identity.email},
    ).first()
    if not previous:
        raise ValueError("app user insert conflicted but no row matches the email")
    _update(db, previous[0], {"auth0_sub": identity.sub, **base, **extra})
    logger.info("Re-associated app user %s -> %s for %s", previous[0], identity.sub, identity.email)


def link_profile(db: Session, identity: Identity, profile_id: int):
    player = db.execute(
        sa.text("SELECT profile_id, current_alias, country, xp FROM players WHERE profile_id=:pid"),
        {"pid": profile_id},
    ).mappings().first()
    if not player:
        raise LookupError("profile_not_found")
    upsert_app_user(db, identity, {"primary_profile_id": player["profile_id"]})
    return player


def unlink_profile(db: Session, auth0_sub: str) -> None:
    db.execute(
        sa.text("UPDATE app_users SET primary_profile_id=NULL, updated_at=now() WHERE auth0_sub=:sub"),
        {"sub": auth0_sub},
    )


def set_badge_visibility(db: Session, auth0_sub: str, show: bool) -> None:
    db.execute(
        sa.text("UPDATE app_users SET show_pro_badge=:show, updated_at=now() WHERE auth0_sub=:sub"),
        {"sub": auth0_sub, "show": show},
    )


def delete_app_user(db: Session, auth0_sub: str) -> None:
    row = db.execute(
        sa.text("DELETE FROM app_users WHERE auth0_sub=:sub RETURNING primary_profile_id"),
        {"sub": auth0_sub},
    ).first()
    if row and row[0]:
        db.execute(
            sa.text("DELETE FROM premium_feature_activations WHERE profile_id=:pid"),
            {"pid": row[0]},
        )
