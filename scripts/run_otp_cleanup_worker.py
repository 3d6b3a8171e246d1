from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.core.logging import configure_logging
from app.workers import OTPCleanupWorker


def main() -> None:
    configure_logging()
    OTPCleanupWorker().run_forever()


if __name__ == "__main__":
    main()
