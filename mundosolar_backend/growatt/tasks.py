from __future__ import annotations

import logging

from celery import shared_task

from . import cache, sync

logger = logging.getLogger(__name__)


@shared_task(bind=True, ignore_result=False)
def sync_growatt_data(self):
    results = sync.sync_all()
    logger.info(
        "Nightly Growatt sync: %s/%s clients refreshed",
        results["success"],
        results["total"],
    )
    return results


@shared_task(
    bind=True,
    ignore_result=False,
    autoretry_for=(Exception,),
    retry_backoff=True,
    max_retries=3,
)
def cleanup_growatt_cache(self):
    deleted = cache.cleanup_expired()
    logger.info("Removed %s expired Growatt cache row(s)", deleted)
    return {"deleted": deleted}
