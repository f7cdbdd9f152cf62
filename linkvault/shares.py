"""Share access control: creation, gated viewing/downloading and deletion.

Counters are only ever bumped by a single conditional ``UPDATE`` whose
``WHERE`` clause repeats the accessibility rules, so the check and the
increment cannot be split by a concurrent request.
"""
import logging
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models
from .errors import (
    AuthorizationError,
    InvalidLink,
    LinkExhausted,
    LinkExpired,
    LinkVaultError,
    NotFound,
    PasswordInvalid,
    PasswordRequired,
    ValidationError,
    WrongKind,
)
from .schemas import CreateShareRequest, UploadedFile
from .utils import generate_token, hash_password, is_valid_token, parse_timestamp, utcnow, verify_password

logger = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 20000
MAX_PASSWORD_LENGTH = 128
TOKEN_ATTEMPTS = 5


def parse_max_views(raw) -> Optional[int]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        raise ValidationError("maxViews must be a positive integer.")
    if isinstance(raw, str):
        raw = raw.strip()
        if not (raw.isascii() and raw.isdigit()):
            raise ValidationError("maxViews must be a positive integer.")
        raw = int(raw)
    if not isinstance(raw, int) or raw < 1:
        raise ValidationError("maxViews must be a positive integer.")
    return raw


def purge_share_records(db: Session, share_ids) -> int:
    """Delete shares and their reports by id. Ids already gone are skipped."""
    share_ids = list(share_ids)
    if not share_ids:
        return 0
    db.execute(
        delete(models.ShareReport)
        .where(models.ShareReport.share_id.in_(share_ids))
        .execution_options(synchronize_session=False)
    )
    result = db.execute(
        delete(models.Share)
        .where(models.Share.id.in_(share_ids))
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount


class ShareEngine:
    def __init__(self, settings, file_store, clock=utcnow):
        self.settings = settings
        self.file_store = file_store
        self.clock = clock

    def share_url(self, token: str) -> str:
        return f"{self.settings.base_url.rstrip('/')}/api/shares/{token}"

    def download_url(self, token: str) -> str:
        return f"{self.share_url(token)}/download"

    # Creation

    def _parse_expiry(self, raw: Optional[str], now):
        if raw is None or not str(raw).strip():
            return now + timedelta(minutes=self.settings.default_expiry_minutes)
        expires_at = parse_timestamp(str(raw))
        if expires_at is None:
            raise ValidationError("Invalid expiry date.")
        if expires_at <= now:
            raise ValidationError("Expiry must be in the future.")
        return expires_at

    def validate(self, request: CreateShareRequest, upload: Optional[UploadedFile], now):
        """Check a create request and return ``(text, expires_at, max_views, password)``.

        Rules run in a fixed order and the first failure wins.
        """
        text = (request.text or "").strip()
        has_text = len(text) > 0
        has_file = upload is not None
        if has_text == has_file:
            raise ValidationError("Provide either text or file, but not both.")
        if len(text) > MAX_TEXT_LENGTH:
            raise ValidationError(f"Text must be at most {MAX_TEXT_LENGTH} characters.")
        expires_at = self._parse_expiry(request.expires_at, now)
        max_views = parse_max_views(request.max_views)
        password = (request.password or "").strip()
        if len(password) > MAX_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at most {MAX_PASSWORD_LENGTH} characters.")
        return (text if has_text else None), expires_at, max_views, (password or None)

    def _token_taken(self, db: Session, token: str) -> bool:
        return db.query(models.Share.id).filter(models.Share.token == token).first() is not None

    def create_share(
        self,
        db: Session,
        owner: models.User,
        request: CreateShareRequest,
        upload: Optional[UploadedFile] = None,
    ) -> models.Share:
        now = self.clock()
        text, expires_at, max_views, password = self.validate(request, upload, now)

        password_hash = password_salt = None
        if password:
            password_hash, password_salt = hash_password(password)

        for attempt in range(TOKEN_ATTEMPTS):
            token = generate_token()
            if self._token_taken(db, token):
                continue

            share = models.Share(
                token=token,
                owner_id=owner.id,
                type=models.SHARE_TEXT if text is not None else models.SHARE_FILE,
                text=text,
                expires_at=expires_at,
                one_time_view=bool(request.one_time_view),
                max_views=max_views,
                view_count=0,
                download_count=0,
                password_hash=password_hash,
                password_salt=password_salt,
                created_at=now,
            )
            if upload is not None:
                if attempt and hasattr(upload.stream, "seek"):
                    upload.stream.seek(0)
                stored_name = self.file_store.stored_name_for(token, upload.filename)
                file_path, size = self.file_store.save(upload.stream, stored_name)
                share.file_original_name = upload.filename
                share.file_stored_name = stored_name
                share.file_mime_type = upload.content_type or "application/octet-stream"
                share.file_size = size
                share.file_path = file_path

            db.add(share)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                self.file_store.remove(share.file_path)
                if self._token_taken(db, token):
                    logger.warning("Share token collision, generating a new token")
                    continue
                raise
            except Exception:
                db.rollback()
                self.file_store.remove(share.file_path)
                raise

            db.refresh(share)
            logger.info(f"User {owner.id} created {share.type} share {share.id}")
            return share

        raise LinkVaultError("Could not allocate a share token")

    # Access

    def _lookup(self, db: Session, token: str) -> models.Share:
        if not is_valid_token(token):
            raise InvalidLink()
        share = db.query(models.Share).filter(models.Share.token == token).first()
        if share is None:
            raise InvalidLink()
        return share

    def _check_password(self, share: models.Share, password: Optional[str]):
        if not share.has_password:
            return
        if not password:
            raise PasswordRequired()
        if not verify_password(password, share.password_salt, share.password_hash):
            raise PasswordInvalid()

    def _check_gates(self, share: models.Share, password: Optional[str], now):
        if share.is_expired(now):
            raise LinkExpired()
        if share.is_exhausted():
            raise LinkExhausted()
        self._check_password(share, password)

    def _consume(self, db: Session, share: models.Share, counter: str, now) -> models.Share:
        share_id = share.id
        column = getattr(models.Share, counter)
        result = db.execute(
            update(models.Share)
            .where(models.Share.id == share_id, models.Share.accessible_clause(now))
            .values({column: column + 1})
            .execution_options(synchronize_session=False)
        )
        db.commit()
        if result.rowcount != 1:
            # Lost a race: find out what the share looks like now.
            current = (
                db.query(models.Share)
                .filter(models.Share.id == share_id)
                .populate_existing()
                .first()
            )
            if current is None:
                raise InvalidLink()
            if current.is_expired(now):
                raise LinkExpired()
            raise LinkExhausted()
        db.refresh(share)
        return share

    def get_for_view(self, db: Session, token: str, password: Optional[str] = None) -> models.Share:
        """Gate a view. Text shares count the view; file shares only expose metadata."""
        now = self.clock()
        share = self._lookup(db, token)
        self._check_gates(share, password, now)
        if share.type == models.SHARE_TEXT:
            return self._consume(db, share, "view_count", now)
        return share

    def get_for_download(self, db: Session, token: str, password: Optional[str] = None) -> models.Share:
        now = self.clock()
        share = self._lookup(db, token)
        if share.type != models.SHARE_FILE:
            raise WrongKind()
        self._check_gates(share, password, now)
        if not self.file_store.exists(share.file_path):
            logger.error(f"File missing on disk for share {share.id}: {share.file_path}")
            raise NotFound("File not found on server.")
        return self._consume(db, share, "download_count", now)

    # Ownership

    def list_owned_shares(self, db: Session, owner: models.User) -> List[models.Share]:
        return (
            db.query(models.Share)
            .filter(models.Share.owner_id == owner.id)
            .order_by(models.Share.created_at.desc(), models.Share.id.desc())
            .all()
        )

    def delete_share(self, db: Session, requester: models.User, share_id: int):
        share = db.query(models.Share).filter(models.Share.id == share_id).first()
        if share is None:
            raise NotFound("Share not found.")
        if share.owner_id != requester.id and not requester.is_admin:
            raise AuthorizationError("Forbidden")
        # File first: a crash in between leaves an orphan file, never a dangling record.
        if share.type == models.SHARE_FILE:
            self.file_store.remove(share.file_path)
        purge_share_records(db, [share.id])
        logger.info(f"User {requester.id} deleted share {share_id}")
