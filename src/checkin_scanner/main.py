from __future__ import annotations

from checkin_scanner.app_logging import configure_logging
from checkin_scanner.config.settings import settings


def main() -> None:
    configure_logging(settings.log_level)

    from checkin_scanner.ui.app import CheckInApp

    app = CheckInApp()
    app.run()


if __name__ == "__main__":
    main()
