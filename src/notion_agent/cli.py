"""CLI entry point for notion-agent."""

import asyncio
import json
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel

from notion_agent import __version__
from notion_agent.config import DEFAULT_CONFIG_PATH, ConfigManager
from notion_agent.services.agent import AFFIRMATIVE, NEGATIVE, NotionAgent
from notion_agent.services.command_parser import CommandParser
from notion_agent.utils.logging import configure_logging, get_logger


logger = get_logger(__name__)
console = Console()

EXIT_WORDS = frozenset({"exit", "quit", ":q"})


def load_config(path: Optional[Path]) -> ConfigManager:
    """
    Load configuration from the given path or ~/.config/notion-agent/config.yaml.

    Raises:
        click.ClickException: If config is missing, has invalid permissions, or validation fails
    """
    config_path = path or DEFAULT_CONFIG_PATH
    try:
        return ConfigManager.load_from_path(config_path)
    except (FileNotFoundError, PermissionError) as e:
        raise click.ClickException(str(e))
    except ValueError as e:
        raise click.ClickException(f"Configuration validation failed:\n{e}")


def _print_reply(content: str, requires_confirmation: bool = False) -> None:
    if requires_confirmation:
        console.print(f"[bold yellow]{content}[/bold yellow]")
    else:
        console.print(content, highlight=False)


@click.group()
@click.version_option(version=__version__, prog_name="notion-agent")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help=f"Config file (default: {DEFAULT_CONFIG_PATH})",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path]):
    """notion-agent: write to Notion pages with plain-language instructions."""
    configure_logging()
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@cli.command()
@click.option("--no-confirm", is_flag=True, help="Run destructive actions without asking first")
@click.pass_context
def chat(ctx: click.Context, no_confirm: bool):
    """Interactive session. Type 'exit' to leave."""
    config_manager = load_config(ctx.obj["config_path"])

    async def session():
        agent = NotionAgent.from_config(config_manager, require_confirm=not no_confirm)
        console.print(Panel.fit(
            f"notion-agent {__version__}  |  default page: {config_manager.agent.default_page}\n"
            "Type an instruction, or 'exit' to quit.",
            title="notion-agent",
        ))
        try:
            while True:
                try:
                    text = await asyncio.to_thread(console.input, "[bold cyan]> [/bold cyan]")
                except (EOFError, KeyboardInterrupt):
                    console.print()
                    break
                if text.strip().lower() in EXIT_WORDS:
                    break
                if not text.strip():
                    continue
                with console.status("Working..."):
                    response = await agent.chat(text)
                _print_reply(response.content, response.requires_confirmation)
        finally:
            await agent.aclose()

    asyncio.run(session())
    logger.info("chat_session_ended")


@cli.command()
@click.argument("instruction")
@click.option("--yes", "assume_yes", is_flag=True, help="Confirm destructive actions without prompting")
@click.pass_context
def run(ctx: click.Context, instruction: str, assume_yes: bool):
    """Run a single INSTRUCTION and print the result."""
    config_manager = load_config(ctx.obj["config_path"])

    async def execute() -> None:
        agent = NotionAgent.from_config(config_manager)
        try:
            response = await agent.chat(instruction)
            if response.requires_confirmation:
                if assume_yes:
                    confirmed = True
                else:
                    _print_reply(response.content, True)
                    confirmed = await asyncio.to_thread(click.confirm, "Proceed?", default=False)
                response = await agent.chat(AFFIRMATIVE if confirmed else NEGATIVE)
            _print_reply(response.content)
        finally:
            await agent.aclose()

    asyncio.run(execute())


@cli.command()
@click.argument("instruction")
@click.option("--offline", is_flag=True, help="Skip the LLM tier (no config file needed)")
@click.option("--default-page", default="Inbox", show_default=True, help="Page used with --offline")
@click.pass_context
def parse(ctx: click.Context, instruction: str, offline: bool, default_page: str):
    """Show the commands INSTRUCTION parses into, without touching Notion."""
    if offline:
        parser = CommandParser(default_page=default_page, offline=True)
    else:
        config_manager = load_config(ctx.obj["config_path"])
        agent = NotionAgent.from_config(config_manager)
        parser = agent.parser

    commands = asyncio.run(parser.parse(instruction))
    payload = [command.model_dump(mode="json", exclude_defaults=True) for command in commands]
    console.print_json(json.dumps({"commands": payload}))


def main():
    """Main entry point for setuptools console script."""
    cli()


if __name__ == "__main__":
    main()
