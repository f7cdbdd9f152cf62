import logging
from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler

from . import models
from .shares import purge_share_records
from .utils import utcnow

logger = logging.getLogger(__name__)

JOB_ID = "cleanup_expired_shares"


class ExpiryReaper:
    """Deletes expired shares and their stored files on a fixed interval.

    ``start`` schedules ``sweep`` on a background scheduler, running once right
    away and then every ``cleanup_interval_seconds`` until ``stop`` is called.
    ``sweep`` may also be called directly, including concurrently with the
    scheduled job: deleting ids that are already gone is a no-op.
    """

    def __init__(self, session_factory, file_store, settings, clock=utcnow):
        self.session_factory = session_factory
        self.file_store = file_store
        self.interval_seconds = settings.cleanup_interval_seconds
        self.batch_size = settings.cleanup_batch_size
        self.clock = clock
        self._scheduler = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def sweep(self) -> int:
        now = self.clock()
        with self.session_factory() as db:
            expired = (
                db.query(models.Share.id, models.Share.type, models.Share.file_path)
                .filter(models.Share.expires_at <= now)
                .order_by(models.Share.expires_at)
                .limit(self.batch_size)
                .all()
            )
            if not expired:
                return 0

            for share_id, share_type, file_path in expired:
                if share_type != models.SHARE_FILE:
                    continue
                try:
                    self.file_store.remove(file_path)
                except Exception:
                    logger.exception(f"Could not remove file of expired share {share_id}")

            deleted = purge_share_records(db, [row.id for row in expired])

        logger.info(f"Expired share cleanup removed {deleted} of {len(expired)} shares")
        return deleted

    def start(self):
        if self.running:
            return
        scheduler = BackgroundScheduler(daemon=True)
        scheduler.add_job(
            func=self._sweep_logged,
            trigger="interval",
            seconds=self.interval_seconds,
            id=JOB_ID,
            name="Clean up expired shares",
            next_run_time=datetime.now(),
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        scheduler.start()
        self._scheduler = scheduler

    def stop(self, wait=True):
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=wait)
            self._scheduler = None

    def _sweep_logged(self):
        try:
            self.sweep()
        except Exception:
            logger.exception("Expired share cleanup failed")
