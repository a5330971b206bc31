"""Command line entry points: run the relay, or chat with one from a terminal."""

from __future__ import annotations

import asyncio
from pathlib import Path

import click

from chat_relay.client.consumer import ChatRequestFailed, StreamConsumer
from chat_relay.client.conversation import Conversation
from chat_relay.providers.catalog import AVAILABLE_MODELS, DEFAULT_MODEL
from chat_relay.schemas import GenerationSettings

MODEL_IDS = [m.id for m in AVAILABLE_MODELS]


@click.group()
def cli():
    """chat-relay: stream Gemini chat completions over server-sent events."""
    pass


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.option("--reload", is_flag=True, help="Restart on code changes")
def serve(host: str, port: int, reload: bool):
    """Run the relay API with uvicorn."""
    import uvicorn

    uvicorn.run("chat_relay.main:app", host=host, port=port, reload=reload, log_config=None)


@cli.command()
@click.option("--url", default="http://127.0.0.1:8000", show_default=True, help="Relay base URL")
@click.option("--model", type=click.Choice(MODEL_IDS), default=DEFAULT_MODEL, show_default=True)
@click.option("--temperature", type=float, default=0.7, show_default=True)
@click.option("--max-tokens", type=int, default=2048, show_default=True)
@click.option("--top-p", type=float, default=0.95, show_default=True)
@click.option("--top-k", type=int, default=40, show_default=True)
@click.option("--system", "system_instruction", default=None, help="System instruction")
@click.option(
    "--save",
    "save_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Load/save the conversation as JSON",
)
def chat(
    url: str,
    model: str,
    temperature: float,
    max_tokens: int,
    top_p: float,
    top_k: int,
    system_instruction: str | None,
    save_path: Path | None,
):
    """Interactive chat. Empty line or Ctrl-D quits."""
    settings = GenerationSettings(
        model=model,
        temperature=temperature,
        max_tokens=max_tokens,
        top_p=top_p,
        top_k=top_k,
        system_instruction=system_instruction,
    )
    if save_path is not None and save_path.exists():
        conversation = Conversation.load(save_path)
        click.echo(f"Resumed '{conversation.title}' ({len(conversation.messages)} messages)")
    else:
        conversation = Conversation(model=model)
    consumer = StreamConsumer(base_url=url)

    while True:
        try:
            text = click.prompt("you", default="", show_default=False, prompt_suffix="> ")
        except click.Abort:
            click.echo()
            break
        if not text.strip():
            break

        conversation.append("user", text.strip())
        click.echo("assistant> ", nl=False)
        try:
            result = asyncio.run(
                consumer.send(
                    conversation.history(),
                    settings,
                    on_fragment=lambda fragment: click.echo(fragment, nl=False),
                )
            )
        except ChatRequestFailed as e:
            click.echo()
            click.secho(f"Error: {e}", fg="red", err=True)
            continue
        click.echo()

        if result.failed_midstream:
            click.secho(f"Stream error: {result.error}", fg="yellow", err=True)
        elif result.partial:
            click.secho("Connection closed before the reply finished.", fg="yellow", err=True)
        conversation.append("assistant", result.text)

        if save_path is not None:
            conversation.save(save_path)


def main():
    cli()


if __name__ == "__main__":
    main()
