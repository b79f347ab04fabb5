"""Example usage of TrainTracker."""

import argparse
import logging
import sys
import threading
from pathlib import Path

# Add src to path so we can import taglage
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from taglage import TrainTracker, TrainNotFoundError, TaglageError
from taglage.table import route_table

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def print_result(result):
    """Print the route table for one refresh result."""
    print(f"\n{'='*70}")
    print(f"Train {result.train_id} ({result.service_date})")
    print(f"Updated: {result.last_updated.strftime('%H:%M:%S')}")
    if result.live_position:
        position = result.live_position
        print(f"GPS: {position.latitude:.5f}, {position.longitude:.5f} at {position.speed or 0:.0f} km/h")
    print(f"{'='*70}\n")

    frame = route_table(result)
    columns = ["name", "position", "track", "delay_min", "same_direction", "opposite_direction"]
    print(frame[columns].to_string(index=False, na_rep="-"))
    print()


def main():
    parser = argparse.ArgumentParser(description="Follow a train along its route")
    parser.add_argument("train", help="Advertised train number, e.g. 529")
    parser.add_argument("--date", help="Service date (YYYY-MM-DD), default today")
    parser.add_argument("--watch", action="store_true", help="Keep refreshing until Ctrl-C")
    args = parser.parse_args()

    tracker = TrainTracker()

    if not args.watch:
        try:
            print_result(tracker.refresh(args.train, args.date))
        except TrainNotFoundError as e:
            print(f"Error: {e}")
            sys.exit(1)
        except TaglageError as e:
            logger.error(f"Failed to fetch data: {e}", exc_info=True)
            sys.exit(1)
        return

    stop = threading.Event()
    try:
        tracker.run(
            args.train,
            stop,
            service_date=args.date,
            on_result=print_result,
            on_error=lambda e: print(f"Error: {e}"),
        )
    except KeyboardInterrupt:
        stop.set()
        print("\nGoodbye!")


if __name__ == "__main__":
    main()
