import logging
from collections import namedtuple
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload

from . import models
from .errors import AlreadyReported, NotFound, ValidationError
from .utils import is_valid_token, utcnow

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 300

UserSummary = namedtuple("UserSummary", ["user", "share_count", "total_views"])


def _report_count(db: Session, share_id: int) -> int:
    return (
        db.query(func.count(models.ShareReport.id))
        .filter(models.ShareReport.share_id == share_id)
        .scalar()
    )


def report_share(db: Session, reporter: models.User, token: str, reason: Optional[str] = None, clock=utcnow) -> int:
    """Record an abuse report and return the share's new report count."""
    if not is_valid_token(token):
        raise ValidationError("Invalid link.")
    reason = (reason or "").strip()
    if len(reason) > MAX_REASON_LENGTH:
        raise ValidationError(f"Reason must be at most {MAX_REASON_LENGTH} characters.")

    share = db.query(models.Share).filter(models.Share.token == token).first()
    if share is None:
        raise NotFound("Share not found.")

    already = (
        db.query(models.ShareReport.id)
        .filter(
            models.ShareReport.share_id == share.id,
            models.ShareReport.reported_by_id == reporter.id,
        )
        .first()
    )
    if already is not None:
        raise AlreadyReported()

    db.add(models.ShareReport(share_id=share.id, reported_by_id=reporter.id, reason=reason, created_at=clock()))
    try:
        db.commit()
    except IntegrityError:
        # A concurrent report from the same user landed first.
        db.rollback()
        raise AlreadyReported()

    count = _report_count(db, share.id)
    logger.info(f"User {reporter.id} reported share {share.id} ({count} reports)")
    return count


def _shares_query(db: Session):
    return db.query(models.Share).options(
        joinedload(models.Share.owner),
        selectinload(models.Share.reports),
    )


def list_reported(db: Session) -> List[models.Share]:
    """Shares with at least one report, most reported first, then newest first."""
    counts = (
        db.query(
            models.ShareReport.share_id.label("share_id"),
            func.count(models.ShareReport.id).label("report_count"),
        )
        .group_by(models.ShareReport.share_id)
        .subquery()
    )
    return (
        _shares_query(db)
        .join(counts, counts.c.share_id == models.Share.id)
        .order_by(counts.c.report_count.desc(), models.Share.created_at.desc(), models.Share.id.desc())
        .all()
    )


def list_users(db: Session, role: str = "all") -> List[UserSummary]:
    stats = (
        db.query(
            models.Share.owner_id.label("owner_id"),
            func.count(models.Share.id).label("share_count"),
            func.sum(models.Share.view_count + models.Share.download_count).label("total_views"),
        )
        .group_by(models.Share.owner_id)
        .subquery()
    )
    query = db.query(
        models.User,
        func.coalesce(stats.c.share_count, 0),
        func.coalesce(stats.c.total_views, 0),
    ).outerjoin(stats, stats.c.owner_id == models.User.id)
    if role != "all":
        query = query.filter(models.User.role == role)
    rows = query.order_by(models.User.created_at.desc(), models.User.id.desc()).all()
    return [UserSummary(user, int(share_count), int(total_views)) for user, share_count, total_views in rows]


def list_shares(db: Session, owner_role: str = "all") -> List[models.Share]:
    query = _shares_query(db)
    if owner_role != "all":
        query = query.join(models.User, models.User.id == models.Share.owner_id).filter(models.User.role == owner_role)
    return query.order_by(models.Share.created_at.desc(), models.Share.id.desc()).all()


def list_user_shares(db: Session, user_id: int) -> List[models.Share]:
    return (
        _shares_query(db)
        .filter(models.Share.owner_id == user_id)
        .order_by(models.Share.created_at.desc(), models.Share.id.desc())
        .all()
    )
