"""
Run the no-show sweep once.

Marks CONFIRMED appointments whose grace period has passed as NO_SHOW and
prints a summary. Safe to run repeatedly.

Usage:
    python run_no_show_sweep.py
"""
import sys

from barbershop.jobs.booking_jobs import no_show_sweep_job


def main() -> int:
    result = no_show_sweep_job()
    if result is None:
        print("Another instance is already running the sweep")
        return 0

    print(f"Scanned {result.scanned} confirmed appointments past their grace period")
    print(f"Marked {result.marked_count} as NO_SHOW")
    for detail in result.details:
        print(
            f"  {detail.appointment_id} customer={detail.customer_id} "
            f"start={detail.start_time.isoformat()} no_shows={detail.no_show_count}"
        )
    for failed in result.failed:
        print(f"  FAILED {failed.appointment_id}: {failed.error}")
    return 1 if result.failed else 0


if __name__ == "__main__":
    sys.exit(main())
