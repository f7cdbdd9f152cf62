from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..models import SHARE_FILE, SHARE_TEXT, Share
from ..moderation import list_reported, list_shares, list_user_shares, list_users
from ..utils import format_timestamp, require_admin

router = APIRouter(dependencies=[Depends(require_admin)])


def share_item(share: Share) -> dict:
    owner = share.owner
    return {
        "id": share.id,
        "token": share.token,
        "type": share.type,
        "text": (share.text or "") if share.type == SHARE_TEXT else None,
        "file": {
            "originalName": share.file_original_name or "",
            "mimeType": share.file_mime_type or "",
            "size": share.file_size or 0,
        } if share.type == SHARE_FILE else None,
        "owner": {
            "id": owner.id,
            "name": owner.name,
            "email": owner.email,
            "role": owner.role,
        } if owner is not None else None,
        "viewCount": share.view_count,
        "downloadCount": share.download_count,
        "maxViews": share.max_views,
        "oneTimeView": share.one_time_view,
        "hasPassword": share.has_password,
        "reportCount": share.report_count,
        "expiresAt": format_timestamp(share.expires_at),
        "createdAt": format_timestamp(share.created_at),
    }


@router.get("/users")
def users(role: str = Query("all"), db: Session = Depends(get_db)):
    return {
        "items": [
            {
                "id": summary.user.id,
                "name": summary.user.name,
                "email": summary.user.email,
                "role": summary.user.role,
                "shareCount": summary.share_count,
                "totalViews": summary.total_views,
                "createdAt": format_timestamp(summary.user.created_at),
            }
            for summary in list_users(db, role)
        ]
    }


@router.get("/users/{user_id}/shares")
def user_shares(user_id: int, db: Session = Depends(get_db)):
    return {"items": [share_item(share) for share in list_user_shares(db, user_id)]}


@router.get("/shares")
def shares(owner_role: str = Query("all", alias="ownerRole"), db: Session = Depends(get_db)):
    return {"items": [share_item(share) for share in list_shares(db, owner_role)]}


@router.get("/reported")
def reported(db: Session = Depends(get_db)):
    return {"items": [share_item(share) for share in list_reported(db)]}
