import argparse
import asyncio
import logging
import sys
from prayer_board.core.app import PrayerBoardApp
from prayer_board.core.errors import PrayerBoardError
from prayer_board.plugins.prayer.resolver import DISPLAY_ORDER
from prayer_board.plugins.prayer.time_codec import to_12_hour
from prayer_board.plugins.ramadan.pipeline import RamadanCalendar, RamadanPhase

def setup_basic_logging():
    """Setup basic stdout logging before config is loaded"""
    root_logger = logging.getLogger()
    if not root_logger.handlers:  # Only add handler if none exists
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
        ))
        root_logger.addHandler(handler)
        root_logger.setLevel(logging.DEBUG)
        logging.debug("Basic logging initialized")

def print_today(app: PrayerBoardApp) -> int:
    snapshot = app.prayer_session.snapshot
    if snapshot.error:
        print(f"Failed to load prayer times: {snapshot.error}")
        return 1
    if not snapshot.timings:
        print("No location configured.")
        return 1

    print(f"{snapshot.location}  {snapshot.date_label or ''}".rstrip())
    state = app.prayer_session.state()
    for name in DISPLAY_ORDER:
        if name in snapshot.timings:
            marker = "*" if name == state.current else " "
            print(f" {marker} {name:<8} {to_12_hour(snapshot.timings[name])}")
    if state.next:
        print(f"Next: {state.next.name} ({to_12_hour(state.next.time)}) in {state.next.countdown_text}")
    else:
        print("All prayers completed for today")
    return 0

def print_ramadan(app: PrayerBoardApp) -> int:
    snapshot = app.ramadan_session.snapshot
    if snapshot.error:
        print(f"Failed to load Ramzan calendar: {snapshot.error}")
        return 1
    calendar = snapshot.calendar
    if calendar is None or len(calendar) == 0:
        print("No Ramzan days returned for this year/location.")
        return 0

    now = app.clock()
    if calendar.phase(now) == RamadanPhase.BEFORE:
        print(f"Ramadan {calendar.hijri_year} begins {calendar.start:%Y-%m-%d %H:%M} "
              f"({calendar.countdown_to_start(now)})")
    print(f"{'#':>2}  {'Hijri':<10}  {'Date':<10}  {'Sehri':>8}  "
          + "  ".join(f"{name:>8}" for name in ("Fajr", "Dhuhr", "Asr", "Maghrib", "Isha")))
    for idx, day in enumerate(calendar, 1):
        timings = day.timings
        print(f"{idx:>2}  {day.hijri_date:<10}  {day.gregorian_date:%d-%m-%Y}  "
              f"{RamadanCalendar.sehri(day) or '-':>8}  "
              + "  ".join(f"{timings.get(name, '-'):>8}" for name in ("Fajr", "Dhuhr", "Asr", "Maghrib", "Isha")))
    return 0

def main(argv=None) -> int:
    setup_basic_logging()

    parser = argparse.ArgumentParser(description='Prayer times, countdown and Ramadan calendar')
    parser.add_argument('--config',
                        help='Path to config file (default: ~/.prayer_board/config.yaml)')
    parser.add_argument('--once', action='store_true',
                        help="Print today's prayer times and exit")
    parser.add_argument('--ramadan', action='store_true',
                        help='Print the Ramadan timetable and exit')

    args = parser.parse_args(argv)

    try:
        app = PrayerBoardApp(config_path=args.config, watch_config=not (args.once or args.ramadan))
    except PrayerBoardError as e:
        print(f"Configuration error: {e}")
        return 2

    if args.once or args.ramadan:
        try:
            asyncio.run(app.load_once(include_ramadan=args.ramadan))
        finally:
            app.stop()
        return print_ramadan(app) if args.ramadan else print_today(app)

    app.run()
    return 0

if __name__ == "__main__":
    sys.exit(main())
