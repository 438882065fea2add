"""One-shot ``ask`` subcommand: run a single turn and print the reply."""

import json
import sys
from pathlib import Path
from typing import Optional
import click
import structlog

from ..config.settings import settings
from ..core.messages import Sender
from ..core.orchestrator import ConversationConfig, ConversationOrchestrator
from ..utils.logging import setup_logging
from .render import format_message, save_image

logger = structlog.get_logger()


@click.command()
@click.argument("prompt", required=False)
@click.option(
    "--ai-provider",
    default=None,
    help="Generation provider to use (defaults to AI_PROVIDER or gemini)",
)
@click.option("--mock", is_flag=True, help="Use the mock provider (no API calls)")
@click.option(
    "--image-dir",
    type=click.Path(file_okay=False),
    default=".",
    show_default=True,
    help="Directory for generated images",
)
@click.option("--timeout", default=120.0, show_default=True, help="Seconds to wait for the reply")
@click.option("--json", "json_output", is_flag=True, help="Output messages as JSON")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def ask(
    prompt: Optional[str],
    ai_provider: Optional[str],
    mock: bool,
    image_dir: str,
    timeout: float,
    json_output: bool,
    debug: bool,
):
    """
    Send one message and print the AI reply.

    Examples:
    \b
        ahs-chat ask "Write hello world in Go"
        ahs-chat ask "/image a red bicycle" --image-dir ./images
        echo "What is your name?" | ahs-chat ask --json
    """
    setup_logging(debug=debug, log_file=False, quiet=not debug)

    if not prompt:
        prompt = sys.stdin.read().strip()
        if not prompt:
            click.echo("Error: No input provided", err=True)
            sys.exit(1)

    config = ConversationConfig(
        ai_provider=ai_provider or settings.ai_provider,
        speech_provider=None,
        enable_metrics=False,
        mock_mode=mock,
    )

    try:
        orchestrator = ConversationOrchestrator.from_config(config)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    try:
        orchestrator.gateway.initialize()
    except Exception as e:
        logger.error("Failed to initialize AI provider", error=str(e))
        orchestrator.close()
        click.echo(f"Error initializing {config.ai_provider}: {e}", err=True)
        sys.exit(1)

    try:
        orchestrator.update_draft(prompt)
        orchestrator.submit_draft()
        if not orchestrator.wait_until_idle(timeout):
            click.echo("Error: Timed out waiting for a reply", err=True)
            sys.exit(1)

        replies = [m for m in orchestrator.messages if m.sender is Sender.AI]
        if json_output:
            click.echo(json.dumps([m.to_dict() for m in replies], indent=2))
        else:
            for message in replies:
                image_path = save_image(message, Path(image_dir))
                click.echo(format_message(message, image_path))
    finally:
        orchestrator.close()
        orchestrator.gateway.stop()
