"""
CLI for Statewise

This script drives the Statewise engine from an interactive terminal session,
showing the response, the tracked state and the changed fields for every turn
with Rich terminal styling.
"""

__version__ = "0.1"

import asyncio
import json
import logging
import os
import sys
import time
import uuid
from dotenv import load_dotenv

# Rich imports for terminal output
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table
from rich import box
from rich.text import Text
from rich.logging import RichHandler

from src.statewise.config.constants import (
    app_settings,
    profile_settings,
    store_settings,
)

# Load environment variables
load_dotenv()

# Initialize Rich console
console = Console()

DEBUG_MODE = app_settings["debug_mode"]
log_file = app_settings["verbose_log_file"] if DEBUG_MODE else app_settings["log_file"]
os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)

# Debug mode logs everything to the terminal, normal mode only warnings
logging.basicConfig(
    level=logging.DEBUG if DEBUG_MODE else logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.FileHandler(log_file),
        RichHandler(rich_tracebacks=DEBUG_MODE),
    ],
)
if DEBUG_MODE:
    console.print(
        f"[bold yellow]🐛 Statewise CLI v{__version__} - Debug Mode (Verbose Logging Enabled)[/bold yellow]"
    )
    console.print(f"[dim]Logs will be displayed in terminal and saved to '{log_file}'[/dim]")
    console.print("[dim]" + "=" * 60 + "[/dim]\n")

logger = logging.getLogger(__name__)

# Statewise imports
from src.statewise.llm.rate_limiting import suppress_litellm_warnings  # noqa: E402

suppress_litellm_warnings()

from src.statewise.config.mcp_config import load_mcp_tools  # noqa: E402
from src.statewise.config.profile import AgentProfile  # noqa: E402
from src.statewise.graph.singletons import (  # noqa: E402
    get_state_llm,
    initialize_singletons,
)
from src.statewise.orchestrator import StateHandler, StatefulAgent  # noqa: E402
from src.statewise.state.store import JsonFileStateStore  # noqa: E402
from src.statewise.tools.catalog import describe_tools  # noqa: E402

SYSTEM_PREFIX = "/system "


class Statewise_CLI:
    """
    Statewise Command Line Interface

    Chats with a stateful agent, or feeds user and system messages to a
    state handler, persisting state per session in a JSON file.
    """

    def __init__(self):
        self.user_name, self.profile = self._setup_user_and_profile()
        self.mode = Prompt.ask(
            "[green]Mode[/green]", choices=["agent", "handler"], default="agent"
        )
        self.session_id = Prompt.ask(
            "[green]Session ID[/green]",
            default=f"{app_settings['default_session_prefix']}_{str(uuid.uuid4())[:8]}",
        )
        self.conversation_count = 0
        self._initialize_system()

    def _setup_user_and_profile(self):
        """Setup user name and profile selection at startup."""
        console.print()
        console.print(
            Panel(
                "[bold cyan]Welcome to Statewise Setup![/bold cyan]\n"
                "[dim]Pick a profile describing the state to track...[/dim]",
                title="Initial Setup",
                border_style="bright_blue",
                box=box.ROUNDED,
            )
        )

        user_name = Prompt.ask(
            "[green]Enter your name[/green]", default=app_settings["default_user"]
        )

        available_profiles = AgentProfile.get_available_profiles()
        if not available_profiles:
            console.print("[bold red]❌ No profile files found![/bold red]")
            console.print(
                f"[dim]Please add profile files to: {profile_settings['profiles_dir']}[/dim]"
            )
            sys.exit(1)

        profile_table = Table(
            title="📋 Available Profiles",
            box=box.ROUNDED,
            show_header=True,
            header_style="bold cyan",
        )
        profile_table.add_column("#", style="bold", width=3)
        profile_table.add_column("Profile", style="cyan", min_width=15)
        for i, profile_name in enumerate(available_profiles, 1):
            profile_table.add_row(str(i), profile_name)
        console.print(profile_table)

        while True:
            choice = Prompt.ask(
                f"\n[green]Select a profile (1-{len(available_profiles)})[/green]",
                default="1",
            )
            try:
                choice_idx = int(choice) - 1
            except ValueError:
                console.print("[red]Please enter a valid number[/red]")
                continue
            if 0 <= choice_idx < len(available_profiles):
                break
            console.print(
                f"[red]Please enter a number between 1 and {len(available_profiles)}[/red]"
            )

        try:
            profile = AgentProfile(available_profiles[choice_idx], user_name)
        except Exception as e:
            console.print(f"[bold red]❌ Failed to load profile: {str(e)}[/bold red]")
            sys.exit(1)

        console.print(f"\n[green]✅ Loaded profile: {profile.display_name}[/green]")
        return user_name, profile

    def _initialize_system(self):
        """Initialize the model, tools, store and engine with timing display."""
        start_time = time.time()
        console.print("[dim]⏱️  Initializing Statewise...[/dim]")

        initialize_singletons()
        # One loop for the whole session so async clients stay bound to it
        self.loop = asyncio.new_event_loop()
        self.store = JsonFileStateStore(self.session_id)

        try:
            self.tools = self.loop.run_until_complete(load_mcp_tools())
        except Exception as e:
            console.print(f"[dim]⚠️  Could not load MCP tools: {str(e)}[/dim]")
            logger.warning(f"MCP tool loading failed: {e}")
            self.tools = []

        if self.mode == "handler":
            self.engine = StateHandler(
                llm=get_state_llm(),
                tools=self.tools,
                store=self.store,
                state_model=self.profile.state_model,
            )
        else:
            self.engine = StatefulAgent(
                llm=get_state_llm(),
                tools=self.tools,
                store=self.store,
                state_model=self.profile.state_model,
                system_prompt=self.profile.get_system_prompt(),
                track_history=self.profile.track_history,
                single_prompt=self.profile.single_prompt,
            )

        total_time = time.time() - start_time
        console.print(
            f"[green]✅ Statewise {__version__} initialized in {total_time:.3f}s "
            f"({len(self.tools)} tools)[/green]\n"
        )

    def run(self):
        """Run the main menu loop."""
        self._display_welcome()

        while True:
            choice = self._show_main_menu()

            if choice == "1":
                self._chat_session()
            elif choice == "2":
                self._view_state()
            elif choice == "3":
                self._reset_session()
            elif choice == "4":
                self._display_system_info()
            elif choice == "5":
                console.print("\n[cyan]Goodbye! State is saved for next time.[/cyan]")
                break

    def close(self):
        """Shut down the session event loop."""
        loop = getattr(self, "loop", None)
        if loop is None or loop.is_closed():
            return
        loop.run_until_complete(loop.shutdown_asyncgens())
        loop.close()
        logger.info("Session event loop closed")

    def _display_welcome(self):
        welcome_text = Text()
        welcome_text.append("Welcome to ", style="cyan")
        welcome_text.append("Statewise ", style="bold magenta")
        welcome_text.append(f"v{__version__}\n\n", style="cyan")
        welcome_text.append(f"Profile: {self.profile.display_name}\n", style="dim cyan")
        welcome_text.append(f"Mode: {self.mode}\n", style="dim cyan")
        if self.mode == "handler":
            welcome_text.append(
                f"Prefix a message with '{SYSTEM_PREFIX.strip()}' to send it as a system message",
                style="green",
            )

        console.print(
            Panel(
                welcome_text,
                title="🤖 Statewise",
                border_style="bright_blue",
                box=box.ROUNDED,
                padding=(1, 2),
            )
        )

    def _show_main_menu(self):
        console.print()
        menu_table = Table(
            title="Menu",
            box=box.ROUNDED,
            title_style="bold bright_magenta",
            header_style="bold cyan",
        )
        menu_table.add_column("Option", style="bold", width=8)
        menu_table.add_column("Description", style="cyan")

        menu_table.add_row("1", "💬 Chat")
        menu_table.add_row("2", "📊 View Stored State")
        menu_table.add_row("3", "🧹 Reset Session")
        menu_table.add_row("4", "ℹ️  System Information")
        menu_table.add_row("5", "👋 Exit")
        console.print(menu_table)

        return Prompt.ask(
            "\n[bold cyan]What would you like to do?[/bold cyan]",
            choices=["1", "2", "3", "4", "5"],
            default="1",
        )

    def _process(self, user_input: str) -> dict:
        if self.mode == "handler" and user_input.startswith(SYSTEM_PREFIX):
            return self.loop.run_until_complete(
                self.engine.run(user_input[len(SYSTEM_PREFIX):], role="system")
            )
        return self.loop.run_until_complete(self.engine.run(user_input))

    def _chat_session(self):
        """Run an interactive chat session."""
        console.print()
        console.print(
            Panel(
                "[bold cyan]💬 Chat Session Started[/bold cyan]\n"
                "[dim]Type 'exit', 'quit', or 'back' to return to main menu[/dim]",
                title="Chat",
                border_style="green",
            )
        )

        while True:
            user_input = Prompt.ask("\n[bold green]You[/bold green]", default="")
            if user_input.lower() in ["exit", "quit", "back", ""]:
                console.print("[dim]Returning to main menu...[/dim]")
                break

            try:
                console.print("\n[dim]🤔 Thinking...[/dim]")
                start_time = time.time()
                result = self._process(user_input)
                processing_time = time.time() - start_time

                if "response" in result:
                    console.print(
                        "\n[bold bright_magenta]Assistant[/bold bright_magenta]: ",
                        Text(result["response"], style="yellow"),
                    )
                if "message" in result:
                    console.print(f"\n[bold cyan]{result['message']}[/bold cyan]")

                self._print_state(result["state"], result["stateChangedProps"])

                for tool_result in result.get("toolsInvoked", []):
                    status = "❌" if "error" in tool_result else "🔧"
                    console.print(
                        f"[dim]{status} {tool_result['tool_name']} -> "
                        f"{tool_result.get('state_field') or 'no field'}[/dim]"
                    )

                if DEBUG_MODE:
                    console.print(f"[dim]⏱️ Processed in {processing_time:.2f}s[/dim]")
                self.conversation_count += 1

            except Exception as e:
                console.print(f"[bold red]❌ Error during conversation: {str(e)}[/bold red]")
                logger.error(f"Chat session error: {str(e)}", exc_info=True)

    def _print_state(self, state: dict, changed: list):
        state_table = Table(title="State", box=box.ROUNDED, header_style="bold cyan")
        state_table.add_column("Field", style="bold")
        state_table.add_column("Value", style="green")
        state_table.add_column("Changed", width=8)

        for key, value in state.items():
            if key == "conversation_history":
                value = f"{len(value)} entries"
            elif not isinstance(value, str):
                value = json.dumps(value, ensure_ascii=False)
            if len(value) > 60:
                value = value[:57] + "..."
            state_table.add_row(key, value, "✅" if key in changed else "")

        console.print(state_table)

    def _view_state(self):
        """Display the stored state of the current session."""
        console.print()
        try:
            state = self.store.load_state()
        except Exception as e:
            console.print(f"[bold red]❌ Error loading state: {str(e)}[/bold red]")
            return

        if not state:
            console.print("[yellow]No state stored for this session yet.[/yellow]")
            return
        self._print_state(state, [])

    def _reset_session(self):
        """Back up and delete the stored state with confirmation."""
        console.print()
        console.print(
            Panel(
                "[bold red]⚠️  WARNING[/bold red]\n"
                f"This deletes the stored state of session '{self.session_id}'.\n"
                "A backup is kept.",
                title="Reset Session",
                border_style="red",
            )
        )

        confirm = Prompt.ask(
            "\n[bold red]Type 'RESET' to confirm[/bold red]", default="cancel"
        )
        if confirm != "RESET":
            console.print("[green]Reset cancelled.[/green]")
            return

        try:
            backup_file = self.store.reset_state()
            console.print("[green]✅ Session state has been reset.[/green]")
            if backup_file:
                console.print(f"[dim]📁 Previous state backed up to: {backup_file}[/dim]")
        except Exception as e:
            console.print(f"[bold red]❌ Error resetting session: {str(e)}[/bold red]")

    def _display_system_info(self):
        console.print()
        info_table = Table(
            title="ℹ️ System Information", box=box.ROUNDED, title_style="bold cyan"
        )
        info_table.add_column("Component", style="bold")
        info_table.add_column("Status/Info", style="green")

        model_info = get_state_llm().get_model_info()
        info_table.add_row("Statewise Version", __version__)
        info_table.add_row("Model", model_info["model"])
        info_table.add_row("Mode", self.mode)
        info_table.add_row("Profile", self.profile.display_name)
        info_table.add_row(
            "State Fields", str(len(self.engine.fields)) if self.engine.fields else "none"
        )
        info_table.add_row("History", "Enabled" if self.profile.track_history else "Disabled")
        info_table.add_row(
            "Prompt Mode", "single" if self.profile.single_prompt else "double"
        )
        info_table.add_row("State Directory", store_settings["state_dir"])
        info_table.add_row("Session ID", self.session_id)
        info_table.add_row("Turns This Session", str(self.conversation_count))
        info_table.add_row("Debug Mode", "Enabled" if DEBUG_MODE else "Disabled")
        console.print(info_table)

        if self.tools:
            tools_table = Table(title="🔧 Tools", box=box.ROUNDED, header_style="bold cyan")
            tools_table.add_column("Name", style="bold")
            tools_table.add_column("Description", style="cyan")
            for tool in describe_tools(self.tools):
                tools_table.add_row(tool["name"], tool["description"])
            console.print(tools_table)


def main():
    """Main entry point for the Statewise CLI application."""
    cli = None
    try:
        cli = Statewise_CLI()
        cli.run()
    except KeyboardInterrupt:
        console.print("\n\n[yellow]👋 Goodbye! Interrupted by user.[/yellow]")
    except Exception as e:
        console.print(f"\n[bold red]❌ Fatal error: {str(e)}[/bold red]")
        logger.error(f"Fatal application error: {str(e)}", exc_info=True)
        sys.exit(1)
    finally:
        if cli is not None:
            cli.close()


if __name__ == "__main__":
    main()
