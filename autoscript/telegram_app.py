from __future__ import annotations

from dataclasses import dataclass
import logging

from telegram.ext import Application, ApplicationBuilder

from autoscript.config import Settings
from autoscript.pending_service import PendingMessageService
from autoscript.scripting_lib.base import Messenger
from autoscript.scripting_lib.dispatch import Dispatcher
from autoscript.scripting_lib.placeholders import PlaceholderEngine
from autoscript.scripting_lib.providers.report_api_provider import HttpReportEngine
from autoscript.scripting_lib.providers.telegram_messenger import TelegramMessenger
from autoscript.scripting_lib.registry import ScriptRegistry, TriggerRegistry
from autoscript.scripting_lib.reports import ReportBridge
from autoscript.scripting_lib.runner import ScriptRunner
from autoscript.scripting_lib.scripts import register_send_message
from autoscript.scripting_lib.triggers import register_builtin_triggers
from autoscript.state_store import AutomationStateStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AutomationServices:
    scripts: ScriptRegistry
    triggers: TriggerRegistry
    placeholders: PlaceholderEngine
    dispatcher: Dispatcher
    runner: ScriptRunner


def build_services(
    settings: Settings,
    messenger: Messenger,
    state_store: AutomationStateStore,
) -> AutomationServices:
    engine = None
    if settings.report_api_base_url:
        engine = HttpReportEngine(
            base_url=settings.report_api_base_url,
            timeout_seconds=settings.request_timeout_seconds,
            api_key=settings.report_api_key,
            api_username=settings.report_api_username,
        )
    else:
        logger.warning(
            "report api not configured; REPORT placeholders render empty",
            extra={"event": "report_api_disabled"},
        )
    placeholders = PlaceholderEngine(ReportBridge(engine), site_title=settings.site_title)
    dispatcher = Dispatcher(messenger, state_store)

    triggers = register_builtin_triggers(TriggerRegistry())
    scripts = ScriptRegistry()
    register_send_message(scripts, placeholders, dispatcher)

    return AutomationServices(
        scripts=scripts,
        triggers=triggers,
        placeholders=placeholders,
        dispatcher=dispatcher,
        runner=ScriptRunner(scripts, triggers),
    )


async def _post_init(application: Application) -> None:
    pending = application.bot_data.get("pending_service")
    if pending is not None:
        await pending.start()


async def _post_shutdown(application: Application) -> None:
    pending = application.bot_data.get("pending_service")
    if pending is not None:
        await pending.stop()
    state_store = application.bot_data.get("state_store")
    if state_store is not None:
        state_store.close()


async def _error_handler(update, context) -> None:  # pragma: no cover - runtime safety
    logger.exception(
        "unhandled telegram exception",
        exc_info=context.error,
        extra={"event": "telegram_unhandled_error"},
    )


def build_application(settings: Settings) -> Application:
    state_store = AutomationStateStore(settings.state_db_path)
    application = (
        ApplicationBuilder()
        .token(settings.telegram_bot_token)
        .post_init(_post_init)
        .post_shutdown(_post_shutdown)
        .build()
    )
    messenger = TelegramMessenger(application.bot)
    services = build_services(settings, messenger, state_store)
    application.bot_data["state_store"] = state_store
    application.bot_data["services"] = services
    application.bot_data["pending_service"] = PendingMessageService(
        messenger=messenger,
        settings=settings,
        state_store=state_store,
    )
    application.add_error_handler(_error_handler)
    logger.info(
        "application built",
        extra={"event": "app_built", "result_count": len(services.scripts)},
    )
    return application
