"""Telegram bot integration for Mnemo."""

import asyncio
import logging

from telegram import Update
from telegram.constants import ChatAction
from telegram.ext import (
    Application,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from ..agent import StopReason
from ..app import Services, build_services
from ..config import Settings, config_from_env
from ..logging import JSONLLogger
from ..memory import RelationalStore, Role, Turn
from ..memory.models import utcnow

logger = logging.getLogger(__name__)

HELP_MESSAGE = """🧠 Mnemo

I'm an assistant that remembers what you tell me.

Commands:
/start, /help - Show this message
/todo [add|list|done|delete] [task|number] - Manage your todo list
/consolidate - Consolidate today's conversation into memory now
/memory - Show memory status

Just write to me to chat. Important things are remembered right away,
everything else is consolidated every night."""

TODO_USAGE = """Usage: /todo [add|list|done|delete] [task|number]

Examples:
/todo add Buy groceries
/todo list
/todo done 1
/todo delete 2"""

MAX_MESSAGE_LENGTH = 4096


def truncate_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    """Truncate message to fit Telegram limits."""
    if len(text) <= max_length:
        return text
    return text[: max_length - 20] + "\n... [truncated]"


def format_response(response: str, stop_reason: StopReason, turns: int) -> str:
    """Format agent response for Telegram."""
    text = response

    if stop_reason == StopReason.MAX_TURNS:
        text += f"\n\n⚠️ Reached the maximum number of turns ({turns})"
    elif stop_reason == StopReason.REPEATED_CALL:
        text += "\n\n⚠️ Detected a loop, stopped"
    elif stop_reason == StopReason.CONSECUTIVE_ERRORS:
        text += "\n\n⚠️ Too many consecutive errors"

    return truncate_message(text)


def run_todo_command(store: RelationalStore, args: list[str]) -> str:
    """Execute a /todo subcommand and return the reply text.

    Numbers refer to positions in the pending list, starting at 1.
    """
    subcommand = args[0].lower() if args else ""
    rest = args[1:]

    if subcommand == "add":
        task = " ".join(rest).strip()
        if not task:
            return "Please specify a task!"
        store.add_todo(task)
        return f"✅ Added: {task}"

    if subcommand in ("list", "show"):
        todos = store.get_todos()
        if not todos:
            return "No pending todos! 🎉"
        lines = [
            f"{i}. {t.task}" + (f" (due: {t.due_date[:10]})" if t.due_date else "")
            for i, t in enumerate(todos, start=1)
        ]
        return "📝 Your todos:\n" + "\n".join(lines)

    if subcommand in ("done", "complete", "delete", "remove"):
        try:
            index = int(rest[0]) if rest else 0
        except ValueError:
            index = 0
        if index < 1:
            return "Please specify a valid todo number!"
        todos = store.get_todos()
        if index > len(todos):
            return f"Todo #{index} doesn't exist!"
        todo = todos[index - 1]
        if subcommand in ("done", "complete"):
            store.complete_todo(todo.id)
            return f"✅ Completed: {todo.task}"
        store.delete_todo(todo.id)
        return f"🗑️ Deleted: {todo.task}"

    return TODO_USAGE


def turn_from_update(update: Update) -> Turn:
    """Build a Turn from an incoming text message."""
    assert update.message is not None
    assert update.effective_chat is not None

    user = update.effective_user
    author = "user"
    if user is not None:
        author = user.username or user.first_name or author

    return Turn(
        # Telegram message ids are only unique within a chat
        id=f"{update.effective_chat.id}:{update.message.message_id}",
        author=author,
        content=update.message.text or "",
        role=Role.USER,
        created_at=update.message.date or utcnow(),
    )


class TelegramBot:
    """Telegram host for the memory engine and the reply agent."""

    def __init__(
        self,
        token: str | None = None,
        settings: Settings | None = None,
        services: Services | None = None,
    ) -> None:
        settings = settings or (services.settings if services else config_from_env())
        self.token = token or settings.telegram_token
        if not self.token:
            raise ValueError("TELEGRAM_TOKEN not set")

        self.services = services or build_services(settings)
        # Turns are handled one at a time
        self._turn_lock = asyncio.Lock()
        self._app: Application | None = None

    @property
    def json_logger(self) -> JSONLLogger:
        return self.services.event_log

    def _get_chat_id(self, update: Update) -> str:
        assert update.effective_chat is not None
        return str(update.effective_chat.id)

    async def _handle_start(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /start and /help."""
        assert update.message is not None
        self.json_logger.log("telegram_start", chat_id=self._get_chat_id(update))
        await update.message.reply_text(HELP_MESSAGE)

    async def _handle_todo(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /todo."""
        assert update.message is not None
        try:
            reply = run_todo_command(self.services.relational, list(context.args or []))
        except Exception:
            logger.exception("Error in todo command")
            reply = "An error occurred while managing your todos."
        await update.message.reply_text(reply)

    async def _handle_consolidate(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /consolidate."""
        assert update.message is not None
        report = await self.services.consolidator.run_consolidation()

        if report.status == "skipped":
            reply = "A consolidation is already running."
        elif report.status == "noop":
            reply = "Nothing new to consolidate."
        elif report.status == "failed":
            reply = f"❌ Consolidation failed: {report.error}"
        else:
            reply = (
                f"🧠 Consolidated {report.gathered} message(s) into "
                f"{report.chunks_stored} memory chunk(s)."
            )
        await update.message.reply_text(reply)

    async def _handle_memory(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /memory."""
        assert update.message is not None
        services = self.services
        await update.message.reply_text(
            f"Processed messages: {services.relational.ledger_count()}\n"
            f"Stored memories: {services.semantic.count()}\n"
            f"Cached turns: {len(services.cache)}\n"
            f"Next consolidation at {services.scheduler.run_at.strftime('%H:%M')}"
        )

    async def _handle_message(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle incoming text messages."""
        assert update.message is not None
        assert update.message.text is not None

        chat_id = self._get_chat_id(update)
        turn = turn_from_update(update)
        services = self.services

        async with self._turn_lock:
            try:
                self.json_logger.log(
                    "telegram_message",
                    chat_id=chat_id,
                    message_id=turn.id,
                    message_length=len(turn.content),
                )
                await update.message.chat.send_action(ChatAction.TYPING)

                memory_context = await services.engine.on_turn(turn)
                history = services.engine.history(before_id=turn.id)
                result = await services.agent.run(
                    turn.content,
                    context=memory_context,
                    history=history,
                    chat_id=chat_id,
                )

                services.engine.record_reply(
                    Turn(
                        id=f"{turn.id}:reply",
                        author="mnemo",
                        content=result.response,
                        role=Role.ASSISTANT,
                    )
                )

                await update.message.reply_text(
                    format_response(result.response, result.stop_reason, result.turns)
                )

            except Exception as e:
                logger.exception("Error processing message")
                self.json_logger.log("telegram_error", chat_id=chat_id, error=str(e))
                await update.message.reply_text(
                    "Sorry, I encountered an error. Please try again."
                )

    async def _post_init(self, application: Application) -> None:
        """Called after Application.initialize()."""
        self.services.scheduler.start()

    async def _post_shutdown(self, application: Application) -> None:
        """Called after Application.shutdown()."""
        await self.services.close()

    def build_app(self) -> Application:
        """Build the Telegram application."""
        self._app = (
            Application.builder()
            .token(self.token)
            .post_init(self._post_init)
            .post_shutdown(self._post_shutdown)
            .build()
        )

        self._app.add_handler(CommandHandler(["start", "help"], self._handle_start))
        self._app.add_handler(CommandHandler("todo", self._handle_todo))
        self._app.add_handler(CommandHandler("consolidate", self._handle_consolidate))
        self._app.add_handler(CommandHandler("memory", self._handle_memory))
        self._app.add_handler(
            MessageHandler(filters.TEXT & ~filters.COMMAND, self._handle_message)
        )

        return self._app

    def run(self) -> None:
        """Run the bot (blocking)."""
        app = self.build_app()

        logger.info("Starting Telegram bot...")
        app.run_polling()
