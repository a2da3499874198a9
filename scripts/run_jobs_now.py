# scripts/run_jobs_now.py
"""
Run the bid, drop and email checkers once, synchronously, and print JSON output.
Handy when the scheduler is disabled (SCHEDULER_ENABLED=false).
"""
import json

from nftmarket.db import init_db
from nftmarket.tasks.bids_checker import reject_expired_bids
from nftmarket.tasks.drops_checker import activate_due_listings
from nftmarket.tasks.notifications_checker import send_pending_emails


def run():
    init_db()
    print("=== BIDS JOB ===")
    print(json.dumps(reject_expired_bids(), indent=2))
    print()
    print("=== DROPS JOB ===")
    print(json.dumps(activate_due_listings(), indent=2))
    print()
    print("=== EMAIL JOB ===")
    print(json.dumps(send_pending_emails(), indent=2))


if __name__ == "__main__":
    run()
