"""CLI entry point for the chat system."""

import json
import select
import sys
import time
from pathlib import Path
from typing import Optional
import click
import structlog

from ..config.settings import settings
from ..core.orchestrator import (
    ConversationConfig,
    ConversationOrchestrator,
    ConversationState,
)
from ..providers import registry
from ..utils.logging import setup_logging
from .ask import ask
from .render import MessagePrinter


logger = structlog.get_logger()


HELP_TEXT = (
    "Type a message and press Enter to send. "
    "Use /image <description> for pictures, /voice to speak, /quit to exit."
)


def validate_provider(ctx, param, value):
    """Validate provider selection."""
    if value is None:
        return value
    if param.name == "ai_provider":
        valid_providers = registry.list_gateways()
        provider_type = "AI"
    elif param.name == "speech_provider":
        valid_providers = registry.list_speech_engines() + ["none"]
        provider_type = "speech"
    else:
        return value

    if value not in valid_providers:
        raise click.BadParameter(
            f"Invalid {provider_type} provider '{value}'. "
            f"Available options: {', '.join(valid_providers)}"
        )
    return value


def _enter_pressed(timeout: float) -> bool:
    """Return True if a line is waiting on stdin within ``timeout`` seconds."""
    if not sys.stdin.isatty():
        time.sleep(timeout)
        return False
    ready, _, _ = select.select([sys.stdin], [], [], timeout)
    if ready:
        sys.stdin.readline()
        return True
    return False


def _run_voice_turn(orchestrator: ConversationOrchestrator) -> None:
    """Listen until the utterance ends or the user presses Enter."""
    orchestrator.toggle_voice()
    if orchestrator.state is not ConversationState.LISTENING:
        return

    click.echo(click.style("Listening... press Enter to stop.", fg="yellow"))
    while orchestrator.state is ConversationState.LISTENING:
        if _enter_pressed(0.1):
            orchestrator.toggle_voice()
            break


@click.command()
@click.option(
    "--ai-provider",
    callback=validate_provider,
    default=None,
    help="Generation provider to use",
)
@click.option(
    "--speech-provider",
    callback=validate_provider,
    default=None,
    help="Speech provider to use ('none' disables voice)",
)
@click.option("--mock", is_flag=True, help="Run in mock mode (no API calls, scripted voice)")
@click.option(
    "--image-dir",
    type=click.Path(file_okay=False),
    default="./images",
    show_default=True,
    help="Directory for generated images",
)
@click.option(
    "--config", type=click.Path(exists=True), help="Path to configuration file"
)
@click.option("--no-metrics", is_flag=True, help="Disable metrics collection")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def chat(
    ai_provider: Optional[str],
    speech_provider: Optional[str],
    mock: bool,
    image_dir: str,
    config: Optional[str],
    no_metrics: bool,
    debug: bool,
):
    """
    Start an interactive chat.

    Typed messages and voice transcripts go to the generation backend;
    replies are printed as text, fenced code, or saved images.
    """
    if config:
        settings.config_file = Path(config)
        settings.reload()

    setup_logging(
        debug=debug,
        log_file=settings.logging.file_enabled,
        log_level=settings.logging.level,
        log_format=settings.logging.format,
        file_rotation_mb=settings.logging.file_rotation_mb,
        file_backup_count=settings.logging.file_backup_count,
        quiet=True,
    )

    speech_provider = speech_provider or settings.speech_provider
    conversation_config = ConversationConfig(
        ai_provider=ai_provider or settings.ai_provider,
        speech_provider=None if speech_provider == "none" else speech_provider,
        enable_metrics=settings.metrics.enabled and not no_metrics,
        mock_mode=mock,
    )

    try:
        orchestrator = ConversationOrchestrator.from_config(conversation_config)
    except (ValueError, ImportError, OSError) as e:
        logger.error("Failed to create providers", error=str(e))
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)

    try:
        orchestrator.gateway.initialize()
    except Exception as e:
        logger.error("Failed to start chat", error=str(e))
        orchestrator.close()
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)

    orchestrator.subscribe(MessagePrinter(image_dir=Path(image_dir)))
    orchestrator.start()

    click.echo(click.style("AI BY A . H . S", fg="magenta", bold=True))
    click.echo(f"AI Provider: {conversation_config.ai_provider}")
    click.echo(f"Speech Provider: {conversation_config.speech_provider or 'disabled'}")
    if mock:
        click.echo(click.style("Running in MOCK mode - no API calls will be made", fg="yellow"))
    click.echo(HELP_TEXT + "\n")

    try:
        while True:
            line = click.prompt("You", default="", show_default=False, prompt_suffix="> ")
            command = line.strip().lower()

            if command in ("/quit", "/exit"):
                break
            if command == "/voice":
                _run_voice_turn(orchestrator)
            elif command:
                orchestrator.update_draft(line)
                orchestrator.submit_draft()
            else:
                continue

            if orchestrator.pending_response:
                click.echo(click.style("AI is thinking...", fg="yellow"))
            orchestrator.wait_until_idle()

    except (KeyboardInterrupt, EOFError, click.Abort):
        click.echo("\n\nShutting down...")
    finally:
        if orchestrator.metrics_collector and orchestrator.metrics_collector.current_session:
            summary = orchestrator.metrics_collector.get_summary()
            click.echo(f"\nTurns: {summary['total_turns']}")
            if summary["total_turns"] > 0:
                click.echo(f"Avg reply latency: {summary['generation_latency_ms']['avg']:.0f}ms")
            if settings.metrics.storage_path:
                orchestrator.metrics_collector.storage_path = Path(settings.metrics.storage_path)
                orchestrator.metrics_collector.save_metrics()

        orchestrator.close()
        orchestrator.gateway.stop()

    click.echo("\nGoodbye!")


@click.command()
def providers():
    """List available providers."""
    click.echo("Available Providers")
    click.echo("-" * 50)

    gateways = registry.list_gateways()
    click.echo(f"\nAI Providers ({len(gateways)})")
    for provider in gateways:
        click.echo(f"  - {provider}")

    engines = registry.list_speech_engines()
    click.echo(f"\nSpeech Providers ({len(engines)})")
    for provider in engines:
        click.echo(f"  - {provider}")

    click.echo("\nExample: ahs-chat chat --ai-provider gemini --speech-provider whisperkit")


@click.command(name="config")
@click.option(
    "--file", "config_file", type=click.Path(exists=True), help="Configuration file to load"
)
def show_config(config_file: Optional[str]):
    """Show effective settings and validation issues."""
    if config_file:
        settings.config_file = Path(config_file)
        settings.reload()

    click.echo(json.dumps(settings.to_dict(), indent=2))

    issues = settings.validate()
    if issues:
        click.echo(click.style("\nIssues:", fg="red"))
        for issue in issues:
            click.echo(f"  - {issue}")
        sys.exit(1)

    click.echo(click.style("\nConfiguration OK", fg="green"))


# Create CLI group
cli = click.Group(help="Chat with Gemini by text or voice.")
cli.add_command(chat)
cli.add_command(ask)
cli.add_command(providers)
cli.add_command(show_config)


if __name__ == "__main__":
    cli()
