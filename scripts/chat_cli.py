#!/usr/bin/env python3
"""Interactive chat CLI for testing the browser copilot service."""

import sys

import httpx
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table


class ChatCLI:
    """Interactive chat interface for the browser copilot service."""

    def __init__(self, base_url: str = "http://localhost:8000"):
        """Initialize chat CLI."""
        self.base_url = base_url
        self.session_id: str | None = None
        self.console = Console()
        # Vision models can take minutes on the first request
        self.client = httpx.Client(timeout=300.0)

    def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold blue]Browser Copilot - Interactive Chat[/bold blue]\n"
                "Type your messages to chat with the assistant.\n"
                "Commands: /help, /models, /model <name>, /plan on|off, /clear, /quit",
                border_style="blue",
            )
        )

        health = self._health()
        if health is None:
            self.console.print("[red]Cannot connect to the service. Make sure it's running on port 8000.[/red]")
            return

        if not health.get("engine_running"):
            self.console.print("[yellow]Service is up but the inference engine is not reachable.[/yellow]")

        state = self._request("POST", "/sessions")
        if state is None:
            return
        self.session_id = state["session_id"]
        self.console.print(
            f"[green]Connected. Session {self.session_id}, model: {state['current_model'] or 'none'}[/green]\n"
        )

        try:
            while True:
                user_input = Prompt.ask("\n[bold cyan]You[/bold cyan]").strip()

                if user_input.lower() in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif user_input == "":
                    continue
                elif user_input.startswith("/"):
                    self._handle_command(user_input)
                    continue

                response = self._request("POST", "/chat", json={"message": user_input, "session_id": self.session_id})
                if response:
                    self._display_response(response)

        except KeyboardInterrupt:
            pass
        finally:
            self.console.print("\n[yellow]Goodbye![/yellow]")
            self.client.close()

    def _handle_command(self, command: str) -> None:
        name, _, argument = command.partition(" ")
        name = name.lower()
        argument = argument.strip()

        if name == "/help":
            self._show_help()
        elif name == "/models":
            self._show_models()
        elif name == "/model":
            state = self._request("PUT", f"/chat/{self.session_id}/model", json={"model": argument or None})
            if state:
                self.console.print(f"[yellow]Model set to {state['current_model'] or 'none'}[/yellow]")
        elif name == "/plan":
            enabled = argument.lower() in ("on", "true", "1")
            state = self._request("PUT", f"/chat/{self.session_id}/planning", json={"enabled": enabled})
            if state:
                self.console.print(f"[yellow]Planning mode {'on' if state['planning_mode'] else 'off'}[/yellow]")
        elif name == "/clear":
            if self._request("DELETE", f"/chat/{self.session_id}/messages") is not None:
                self.console.print("[yellow]Conversation cleared[/yellow]")
        else:
            self.console.print(f"[red]Unknown command: {name}[/red]")

    def _health(self) -> dict | None:
        try:
            response = self.client.get(f"{self.base_url}/health")
        except httpx.HTTPError:
            return None
        return response.json() if response.status_code == 200 else None

    def _request(self, method: str, path: str, json: dict | None = None) -> dict | list | None:
        """Call the service and report errors to the console."""
        try:
            with self.console.status("[dim]Thinking...[/dim]"):
                response = self.client.request(method, f"{self.base_url}{path}", json=json)
        except httpx.HTTPError as e:
            self.console.print(f"[red]Connection error: {e}[/red]")
            return None

        if response.status_code >= 400:
            detail = response.json().get("detail", response.text)
            self.console.print(f"[red]API Error: {response.status_code} - {detail}[/red]")
            return None
        return response.json()

    def _display_response(self, response: dict) -> None:
        """Display the assistant reply with nice formatting."""
        assistant_text = response.get("response") or "No response"
        state = response.get("state")
        border = "green" if state == "completed" else "red"

        self.console.print(
            Panel(
                Markdown(assistant_text),
                title=f"[bold {border}]Assistant[/bold {border}]",
                subtitle=f"[dim]{state}[/dim]",
                border_style=border,
                padding=(1, 2),
            )
        )

    def _show_models(self) -> None:
        models = self._request("GET", "/models")
        if not models:
            self.console.print("[yellow]No models installed[/yellow]")
            return

        table = Table(title="Installed Models")
        table.add_column("Name", style="cyan")
        table.add_column("Display Name")
        table.add_column("Size")
        table.add_column("Capabilities", style="green")
        for model in models:
            name = f"{model['name']} *" if model["recommended"] else model["name"]
            table.add_row(name, model["display_name"], model["size"] or "-", ", ".join(model["badges"]))
        self.console.print(table)

    def _show_help(self) -> None:
        """Show help information."""
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /models - List installed models (* marks recommended)
• /model <name> - Select the model for the next message
• /plan on|off - Let the model call browser tools
• /clear - Clear the conversation
• /quit or /exit - Exit the chat
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]Help[/cyan]", border_style="cyan"))


def main():
    """Main entry point for the chat CLI."""
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"

    chat = ChatCLI(base_url)
    chat.start()


if __name__ == "__main__":
    main()
