"""
geminichat CLI: serve the chat client.

Registered as the `geminichat` console script via pyproject.toml; also
runnable with `python -m geminichat`.
"""

import logging

import click
from pydantic import ValidationError

from .config import PROVIDERS, Config, configure_logging

logger = logging.getLogger("geminichat")


@click.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8050, show_default=True, type=int)
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False),
    default=None,
    help="Directory for saved chats and settings [env: GEMINICHAT_DATA_DIR].",
)
@click.option(
    "--provider",
    type=click.Choice(PROVIDERS, case_sensitive=False),
    default=None,
    help="LLM provider [env: GEMINICHAT_PROVIDER].",
)
@click.option(
    "--log-level",
    default=None,
    help="Logging level [env: GEMINICHAT_LOG_LEVEL].",
)
@click.option("--debug", is_flag=True, help="Run the Dash dev server in debug mode.")
def main(host, port, data_dir, provider, log_level, debug):
    """Run the chat client web server."""
    overrides = {"data_dir": data_dir, "provider": provider, "log_level": log_level}
    overrides = {k: v for k, v in overrides.items() if v}
    try:
        config = Config.from_env()
        if overrides:
            config = Config(**{**config.model_dump(), **overrides})
    except ValidationError as e:
        raise click.UsageError(str(e)) from e

    configure_logging(config.log_level)

    from . import GeminiChat

    app = GeminiChat(llm=config.build_llm(), storage=config.build_storage())
    logger.info(
        "Serving on http://%s:%d (provider=%s, data=%s)",
        host,
        port,
        config.provider,
        config.data_dir,
    )
    try:
        # The reloader would start a second copy of the event loop thread.
        app.run(host=host, port=port, debug=debug, use_reloader=False)
    finally:
        app.runner.stop()


if __name__ == "__main__":
    main()
