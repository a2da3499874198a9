# nftmarket/scheduler.py
"""
Scheduler:
  - bids_checker_job: rejects bids ACTIVE for longer than BID_EXPIRY_DAYS (hourly).
  - drops_checker_job: activates SCHEDULED listings whose drop time has passed (every minute).
  - email_checker_job: emails notifications still PENDING (every minute).

Config via .env:
  SCHEDULER_ENABLED, BIDS_CHECK_INTERVAL_MIN, DROPS_CHECK_INTERVAL_SEC, EMAIL_CHECK_INTERVAL_SEC
"""
import logging

import pytz
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from nftmarket import config
from nftmarket.tasks.bids_checker import reject_expired_bids
from nftmarket.tasks.drops_checker import activate_due_listings
from nftmarket.tasks.notifications_checker import send_pending_emails

log = logging.getLogger("nftmarket.scheduler")

_scheduler = None
_BIDS_JOB_ID = "bids_checker_job_v1"
_DROPS_JOB_ID = "drops_checker_job_v1"
_EMAIL_JOB_ID = "email_checker_job_v1"

# job id -> (callable, trigger kwargs, name)
JOBS = {
    _BIDS_JOB_ID: (reject_expired_bids, {"minutes": config.BIDS_CHECK_INTERVAL_MIN}, "reject expired bids"),
    _DROPS_JOB_ID: (activate_due_listings, {"seconds": config.DROPS_CHECK_INTERVAL_SEC}, "activate dropped listings"),
    _EMAIL_JOB_ID: (send_pending_emails, {"seconds": config.EMAIL_CHECK_INTERVAL_SEC}, "send notification emails"),
}


# -------------------------
# Scheduler lifecycle
# -------------------------
def start_scheduler():
    global _scheduler
    if _scheduler is not None:
        log.info("Scheduler already running.")
        return _scheduler

    _scheduler = BackgroundScheduler(timezone=pytz.utc)

    for job_id, (func, interval, name) in JOBS.items():
        _scheduler.add_job(
            func=func,
            trigger=IntervalTrigger(**interval),
            id=job_id,
            name=name,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    _scheduler.start()
    log.info(
        "Scheduler started: bids every %d min, drops every %d s, emails every %d s",
        config.BIDS_CHECK_INTERVAL_MIN, config.DROPS_CHECK_INTERVAL_SEC, config.EMAIL_CHECK_INTERVAL_SEC,
    )
    return _scheduler


def stop_scheduler():
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        log.info("Scheduler stopped.")


def get_scheduler_status():
    status = {"running": False, "jobs": []}
    if _scheduler is None:
        return status
    status["running"] = True
    for job in _scheduler.get_jobs():
        status["jobs"].append({
            "id": job.id,
            "name": job.name,
            "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
            "max_instances": job.max_instances,
        })
    return status
