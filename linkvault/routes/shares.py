from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Header, Query, Request, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from ..database import get_db
from ..models import SHARE_TEXT, Share, User
from ..moderation import report_share
from ..schemas import CreateShareRequest, ReportRequest, UploadedFile
from ..shares import ShareEngine
from ..utils import format_timestamp, get_current_user

router = APIRouter()


def get_engine(request: Request) -> ShareEngine:
    return request.app.state.share_engine


def public_share(share: Share) -> dict:
    return {
        "token": share.token,
        "type": share.type,
        "expiresAt": format_timestamp(share.expires_at),
        "oneTimeView": share.one_time_view,
        "maxViews": share.max_views,
        "viewCount": share.view_count,
        "downloadCount": share.download_count,
        "hasPassword": share.has_password,
    }


def owned_share(engine: ShareEngine, share: Share) -> dict:
    item = public_share(share)
    item.update({
        "id": share.id,
        "text": share.text,
        "file": {
            "originalName": share.file_original_name,
            "mimeType": share.file_mime_type,
            "size": share.file_size,
        } if share.type != SHARE_TEXT else None,
        "reportCount": share.report_count,
        "createdAt": format_timestamp(share.created_at),
        "shareUrl": engine.share_url(share.token),
    })
    return item


@router.post("", status_code=201)
def create_share(
    text: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    expires_at: Optional[str] = Form(None, alias="expiresAt"),
    password: Optional[str] = Form(None),
    one_time_view: bool = Form(False, alias="oneTimeView"),
    max_views: Optional[str] = Form(None, alias="maxViews"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    engine: ShareEngine = Depends(get_engine),
):
    request = CreateShareRequest(
        text=text,
        expires_at=expires_at,
        password=password,
        one_time_view=one_time_view,
        max_views=max_views,
    )
    upload = None
    if file is not None and file.filename:
        upload = UploadedFile(filename=file.filename, content_type=file.content_type, stream=file.file)
    share = engine.create_share(db, current_user, request, upload)
    return owned_share(engine, share)


@router.get("/mine")
def my_shares(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    engine: ShareEngine = Depends(get_engine),
):
    return {"items": [owned_share(engine, share) for share in engine.list_owned_shares(db, current_user)]}


@router.delete("/id/{share_id}")
def delete_share(
    share_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    engine: ShareEngine = Depends(get_engine),
):
    engine.delete_share(db, current_user, share_id)
    return {"ok": True}


@router.get("/{token}")
def view_share(
    token: str,
    password: Optional[str] = Query(None),
    x_access_password: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    engine: ShareEngine = Depends(get_engine),
):
    share = engine.get_for_view(db, token, x_access_password or password or "")
    response = public_share(share)
    if share.type == SHARE_TEXT:
        response["text"] = share.text
    else:
        response["file"] = {
            "originalName": share.file_original_name,
            "mimeType": share.file_mime_type,
            "size": share.file_size,
            "downloadUrl": engine.download_url(share.token),
        }
    return response


@router.get("/{token}/download")
def download_share(
    token: str,
    password: Optional[str] = Query(None),
    x_access_password: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    engine: ShareEngine = Depends(get_engine),
):
    share = engine.get_for_download(db, token, x_access_password or password or "")
    return FileResponse(
        share.file_path,
        media_type=share.file_mime_type,
        filename=share.file_original_name,
    )


@router.post("/{token}/report", status_code=201)
def report(
    token: str,
    payload: Optional[ReportRequest] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    reason = payload.reason if payload is not None else None
    count = report_share(db, current_user, token, reason)
    return {"ok": True, "reportCount": count}
