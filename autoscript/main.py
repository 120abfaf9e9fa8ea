from __future__ import annotations

from autoscript.config import load_settings
from autoscript.logging_utils import configure_logging
from autoscript.telegram_app import build_application


def main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)
    application = build_application(settings)
    application.run_polling()


if __name__ == "__main__":
    main()
