#!/usr/bin/env python3
"""Interactive terminal chat driving the streaming conversation engine."""

import asyncio
import os
import sys

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from airchat.errors import TurnInProgressError
from airchat.models.catalog import AVAILABLE_MODELS, DEFAULT_MODEL_ID
from airchat.models.messages import Conversation
from airchat.services.credentials import EnvCredentialProvider
from airchat.services.orchestrator import ConversationOrchestrator
from airchat.tools import ToolsRegistry
from airchat.utils.logging import LogConfig, setup_logging

SYSTEM_PROMPT = "You are a helpful AI assistant."


class ChatCLI:
    """Terminal front end: renders paced text as the scroll signals arrive."""

    def __init__(self, model_id: str):
        """Initialize chat CLI."""
        self.console = Console()
        self.conversation = Conversation(model=model_id, system_prompt=SYSTEM_PROMPT)
        self.orchestrator = ConversationOrchestrator(self.conversation, EnvCredentialProvider(), ToolsRegistry())
        self.orchestrator.scroll_bus.subscribe_immediate(self._render_progress)

        self._turn_start = 0
        self._rendered: dict[str, tuple[int, int]] = {}

    async def run(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold blue]💬 Airchat - Interactive Chat[/bold blue]\n"
                f"Model: [bold]{self.conversation.model}[/bold]\n"
                "Commands: /help, /models, /model <id>, /clear, /quit",
                border_style="blue",
            )
        )

        while True:
            user_input = await asyncio.to_thread(Prompt.ask, "\n[bold cyan]You[/bold cyan]")
            command = user_input.strip()

            if command.lower() in ["/quit", "/exit", "quit", "exit"]:
                break
            elif command.lower() == "/help":
                self._show_help()
                continue
            elif command.lower() == "/models":
                self._show_models()
                continue
            elif command.lower().startswith("/model "):
                self._switch_model(command.split(maxsplit=1)[1])
                continue
            elif command.lower() == "/clear":
                self.orchestrator.clear()
                self._rendered.clear()
                self.console.print("[yellow]🔄 Conversation cleared[/yellow]")
                continue
            elif command == "":
                continue

            await self._send(user_input)

        self.console.print("\n[yellow]👋 Goodbye![/yellow]")

    async def _send(self, text: str) -> None:
        self._turn_start = len(self.conversation)
        self.console.print("[bold green]Assistant[/bold green]")
        try:
            await self.orchestrator.submit(text)
        except TurnInProgressError as e:
            self.console.print(f"[red]❌ {e}[/red]")
            return
        self._render_progress()
        self.console.print()

    def _render_progress(self) -> None:
        """Print whatever became visible since the last signal."""
        for message in self.conversation.messages[self._turn_start :]:
            if message.role not in ("assistant", "tool"):
                continue

            shown_text, shown_reasoning = self._rendered.get(message.id, (0, 0))

            if message.role == "tool":
                if message.id not in self._rendered:
                    self.console.print("\n[dim]🔎 Searched the web[/dim]")
                    self._rendered[message.id] = (1, 0)
                continue

            reasoning = message.reasoning or ""
            if len(reasoning) > shown_reasoning:
                self.console.print(reasoning[shown_reasoning:], style="dim italic", end="", markup=False, highlight=False)
                shown_reasoning = len(reasoning)

            text = message.display_text
            if len(text) > shown_text:
                if shown_text == 0 and reasoning:
                    self.console.print()
                self.console.print(text[shown_text:], end="", markup=False, highlight=False)
                shown_text = len(text)

            self._rendered[message.id] = (shown_text, shown_reasoning)

    def _switch_model(self, model_id: str) -> None:
        try:
            self.orchestrator.switch_model(model_id.strip())
        except ValueError as e:
            self.console.print(f"[red]❌ {e}[/red]")
            return
        self.console.print(f"[green]✅ Now using {self.conversation.model}[/green]")

    def _show_models(self) -> None:
        table = Table(title="Available Models")
        table.add_column("Id", style="cyan")
        table.add_column("Name")
        table.add_column("Provider")
        table.add_column("Reasoning")
        for model in AVAILABLE_MODELS:
            marker = " *" if model.id == self.conversation.model else ""
            table.add_row(model.id + marker, model.name, model.provider, "yes" if model.supports_reasoning else "")
        self.console.print(table)

    def _show_help(self) -> None:
        """Show help information."""
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /models - List the models you can switch to
• /model <id> - Switch to another model
• /clear - Clear the conversation and start over
• /quit or /exit - Exit the chat

[bold]API keys (environment):[/bold]
• OPENROUTER_API_KEY, GEMINI_API_KEY, KIMI_API_KEY
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]❓ Help[/cyan]", border_style="cyan"))


def main():
    """Main entry point for the chat CLI."""
    setup_logging(LogConfig(level=os.getenv("LOG_LEVEL", "WARNING"), rich=True))
    model_id = sys.argv[1] if len(sys.argv) > 1 else os.getenv("AIRCHAT_MODEL", DEFAULT_MODEL_ID)

    chat = ChatCLI(model_id)
    try:
        asyncio.run(chat.run())
    except KeyboardInterrupt:
        chat.console.print("\n[yellow]👋 Goodbye![/yellow]")


if __name__ == "__main__":
    main()
