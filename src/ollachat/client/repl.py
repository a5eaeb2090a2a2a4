"""Terminal chat client for ``ollachat chat``.

Streams replies as they arrive. Ctrl-C while a reply is streaming stops it
and keeps the partial text; Ctrl-C at the prompt (or Ctrl-D) quits.

Commands: ``/new``, ``/chats``, ``/load <id>``, ``/models``, ``/model <name>``,
``/attach <path>``, ``/image <path>``, ``/quit``.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import signal
from pathlib import Path

import httpx
from rich.console import Console
from rich.table import Table

from ollachat.attachments import image_data_uri
from ollachat.client.consumer import ChatStreamConsumer, ExchangeState
from ollachat.client.session import ConversationSession
from ollachat.errors import ChatError

logger = logging.getLogger(__name__)


class ChatREPL:
    def __init__(self, server_url: str, model: str, chat_id: str | None = None):
        self.server_url = server_url.rstrip("/")
        self.console = Console()
        self.session = ConversationSession(model=model, chat_id=chat_id)
        self._printed = 0
        self._pending_document: tuple[str, bytes] | None = None
        self._pending_image: str | None = None

    def _on_update(self, session: ConversationSession, index: int) -> None:
        text = session.turns[index].ai
        self.console.print(text[self._printed :], end="", markup=False, highlight=False)
        self._printed = len(text)

    def _print_chats(self, chats: list[dict]) -> None:
        table = Table("id", "name", "turns", "last activity")
        for chat in chats:
            table.add_row(
                chat["id"], chat["name"], str(chat["message_count"]), chat["datetime"][:19]
            )
        self.console.print(table)

    def _print_history(self) -> None:
        for turn in self.session.turns:
            self.console.print(f"[bold cyan]you>[/] {turn.user}", highlight=False)
            self.console.print(turn.display_text, markup=False, highlight=False)

    async def _stream(self, consumer: ChatStreamConsumer, text: str) -> None:
        self._printed = 0
        document, self._pending_document = self._pending_document, None
        image, self._pending_image = self._pending_image, None
        await consumer.send(text, image=image, document=document)

        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, lambda: asyncio.ensure_future(consumer.stop()))
            handler_installed = True
        except (NotImplementedError, RuntimeError):
            handler_installed = False
        try:
            state = await consumer.wait()
        finally:
            if handler_installed:
                loop.remove_signal_handler(signal.SIGINT)

        self.console.print()
        if state in (ExchangeState.ABORTED, ExchangeState.ERRORED):
            note = self.session.turns[-1].note or ""
            style = "yellow" if state == ExchangeState.ABORTED else "red"
            self.console.print(note, style=style, markup=False)

    async def _command(self, consumer: ChatStreamConsumer, line: str) -> bool:
        """Handle a slash command. Returns False to quit."""
        cmd, _, arg = line[1:].partition(" ")
        arg = arg.strip()
        if cmd in ("quit", "exit", "q"):
            return False
        if cmd == "new":
            self.session = consumer.session = ConversationSession(model=self.session.model)
            self.console.print("[dim]New chat[/]")
        elif cmd == "chats":
            self._print_chats(await consumer.list_chats())
        elif cmd == "load" and arg:
            self.session = consumer.session = ConversationSession(
                model=self.session.model, chat_id=arg
            )
            await consumer.load_chat(arg)
            self._print_history()
        elif cmd == "models":
            for name in await consumer.list_models():
                marker = "*" if name == self.session.model else " "
                self.console.print(f"{marker} {name}", highlight=False)
        elif cmd == "model" and arg:
            self.session.model = arg
            self.console.print(f"[dim]Model: {arg}[/]")
        elif cmd == "attach" and arg:
            path = Path(arg).expanduser()
            self._pending_document = (path.name, path.read_bytes())
            self.console.print(f"[dim]Attached {path.name} to the next message[/]")
        elif cmd == "image" and arg:
            path = Path(arg).expanduser()
            encoded = base64.b64encode(path.read_bytes()).decode("ascii")
            self._pending_image = image_data_uri(encoded)
            self.console.print(f"[dim]Image {path.name} goes with the next message[/]")
        else:
            self.console.print(f"[red]Unknown command: /{cmd}[/]")
        return True

    async def run(self) -> None:
        async with httpx.AsyncClient(base_url=self.server_url, timeout=None) as client:
            consumer = ChatStreamConsumer(self.session, client, on_update=self._on_update)
            if self.session.chat_id:
                await consumer.load_chat()
                self._print_history()
            self.console.print(
                f"[bold]ollachat[/] - model [green]{self.session.model}[/], /quit to exit"
            )
            while True:
                try:
                    line = await asyncio.to_thread(self.console.input, "[bold cyan]you>[/] ")
                except (EOFError, KeyboardInterrupt):
                    break
                line = line.strip()
                if not line:
                    continue
                try:
                    if line.startswith("/"):
                        if not await self._command(consumer, line):
                            break
                        continue
                    await self._stream(consumer, line)
                except (ChatError, httpx.HTTPError, OSError, ValueError) as e:
                    self.console.print(f"[red]{e}[/]")
            await consumer.stop()


async def run_chat(server_url: str, model: str, chat_id: str | None = None) -> None:
    await ChatREPL(server_url, model, chat_id).run()
