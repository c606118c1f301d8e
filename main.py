import argparse
import getpass
import os
import sys
from datetime import date

from api.session_api import SessionManager
from api.timeclock_api import TimeClockAPI
from api.worker_api import WorkerAPI
from config import APP_NAME, APP_VERSION
from core.clock_session import ClockSession
from core.errors import ConfigurationError, InvalidInput, TimeClockError
from core.models import RecordAction, WorkerIdentity
from utils.datetime_conversion import local_timezone, resolve_timezone, to_local_display, to_local_short_time
from utils.logger import logger


def build_parser():
    parser = argparse.ArgumentParser(prog="timeclock", description=f"{APP_NAME} {APP_VERSION} - worker time clock")
    parser.add_argument("--email", default=os.getenv("TIMECLOCK_WORKER_EMAIL"), help="worker email")
    parser.add_argument("--company", help="company id (defaults to the first one)")
    parser.add_argument("--timezone", help="viewer IANA timezone (defaults to the host's)")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("companies", help="list your companies")
    sub.add_parser("status", help="show your current shift status")
    sub.add_parser("pause-types", help="list available pause types")
    sub.add_parser("entry", help="start your shift")
    sub.add_parser("exit", help="end your shift")
    pause_start = sub.add_parser("pause-start", help="start a pause")
    pause_start.add_argument("--pause-type", required=True, help="pause type id")
    sub.add_parser("pause-end", help="end the current pause")

    history = sub.add_parser("history", help="entry/exit records of a day")
    history.add_argument("--date", type=date.fromisoformat, default=date.today(), help="YYYY-MM-DD")

    incident = sub.add_parser("incident", help="file an incident")
    incident.add_argument("description")

    change = sub.add_parser("change-request", help="ask for an entry/exit time to be corrected")
    change.add_argument("--date", type=date.fromisoformat, required=True, help="YYYY-MM-DD")
    change.add_argument("--record", required=True, help="time record id")
    change.add_argument("--new-time", required=True, help="local time as YYYY-MM-DDTHH:MM")
    change.add_argument("--reason", required=True)

    sub.add_parser("pending", help="check for a pending change request")
    return parser


def _worker_from_args(args) -> WorkerIdentity:
    if not args.email:
        raise InvalidInput("Worker email is required (--email or TIMECLOCK_WORKER_EMAIL)")
    password = os.getenv("TIMECLOCK_WORKER_PASSWORD") or getpass.getpass("Password: ")
    return WorkerIdentity(email=args.email.strip(), password=password)


def _print_summary(clock: ClockSession) -> None:
    for key, value in clock.summary().items():
        if isinstance(value, list):
            value = ", ".join(value) or "-"
        print(f"{key:>20}: {value}")


def run(args, clock: ClockSession) -> None:
    companies = clock.load_companies()
    if args.command == "companies":
        for company in companies:
            print(f"{company.id}  {company.name}")
        return

    if args.company:
        clock.company_id = args.company
    if not clock.company_id:
        raise InvalidInput("You do not belong to any company")

    if args.command == "pending":
        print("Pending change request: " + ("yes" if clock.has_pending_change_request() else "no"))
        return
    if args.command == "incident":
        incident = clock.file_incident(args.description)
        print(f"Incident {incident.id} filed ({incident.status})")
        return
    if args.command == "history":
        for record in clock.day_records(args.date):
            print(f"{record.id}  {record.record_type.value:<6} {to_local_short_time(record.timestamp, clock.tz)}")
        return
    if args.command == "change-request":
        records = {record.id: record for record in clock.day_records(args.date)}
        record = records.get(args.record)
        if record is None:
            raise InvalidInput(f"No entry/exit record {args.record} on {args.date}")
        request = clock.request_change(record, args.new_time, args.reason, day=args.date)
        print(f"Change request {request.id} sent ({request.status})")
        return

    clock.select_company(clock.company_id)
    if args.command == "pause-types":
        for pause_type in clock.pause_types:
            print(f"{pause_type.id}  {clock.resolver.describe_pause(pause_type)}")
        return

    actions = {
        "entry": RecordAction.ENTRY,
        "exit": RecordAction.EXIT,
        "pause-start": RecordAction.PAUSE_START,
        "pause-end": RecordAction.PAUSE_END,
    }
    if args.command in actions:
        record = clock.perform(actions[args.command], getattr(args, "pause_type", None))
        line = f"{record.record_type.value} recorded at {to_local_display(record.timestamp, clock.tz)}"
        if record.duration_minutes:
            line += f" ({clock.resolver.format_duration(record.duration_minutes)})"
        print(line)
    _print_summary(clock)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        tz = resolve_timezone(args.timezone) if args.timezone else local_timezone()
        worker = _worker_from_args(args)
        session = SessionManager.from_config()
        clock = ClockSession(TimeClockAPI(session), WorkerAPI(session), worker, tz)
        run(args, clock)
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        print(str(exc), file=sys.stderr)
        return 2
    except TimeClockError as exc:
        logger.info("%s failed: %s", args.command, exc)
        print(str(exc), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
