"""ollachat entry point.

  ollachat serve     Start the API server
  ollachat chat      Terminal chat against a running server
  ollachat models    List the models installed on the Ollama server
"""

import argparse
import asyncio
import logging
from importlib.metadata import version as get_version

from ollachat.config import get_settings
from ollachat.logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _print_models(settings) -> int:
    from rich.console import Console

    from ollachat.errors import GatewayError
    from ollachat.llm.gateway import OllamaGateway

    async def _fetch() -> list[str]:
        gateway = OllamaGateway(
            settings.ollama_host, connect_timeout=settings.connect_timeout, read_timeout=10.0
        )
        try:
            return await gateway.list_models()
        finally:
            await gateway.aclose()

    console = Console()
    try:
        names = asyncio.run(_fetch())
    except GatewayError as e:
        console.print(f"[red]{e}[/]")
        return 1
    for name in names:
        console.print(name, highlight=False)
    if not names:
        console.print(f"[yellow]No models installed on {settings.ollama_host}[/]")
    return 0


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="ollachat - chat with local Ollama models, with saved history",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  ollachat serve                     Start the API server on 127.0.0.1:3001
  ollachat serve --host 0.0.0.0      Listen on all interfaces
  ollachat chat --model llama3       Chat in the terminal
  ollachat chat --chat-id <id>       Continue a saved chat
  ollachat models                    List installed models
""",
    )
    parser.add_argument(
        "command",
        choices=["serve", "chat", "models"],
        help="What to run",
    )
    parser.add_argument("--host", type=str, default=None, help="Host to bind (serve)")
    parser.add_argument("--port", "-p", type=int, default=None, help="Port to bind (serve)")
    parser.add_argument(
        "--dev", action="store_true", help="Development mode with auto-reload (serve)"
    )
    parser.add_argument(
        "--server",
        type=str,
        default=None,
        help="ollachat server URL (chat; default: http://<api_host>:<api_port>)",
    )
    parser.add_argument("--model", "-m", type=str, default=None, help="Model name (chat)")
    parser.add_argument("--chat-id", type=str, default=None, help="Saved chat to continue (chat)")
    parser.add_argument("--log-level", type=str, default=None, help="Logging level")
    parser.add_argument(
        "--version",
        "-v",
        action="version",
        version=f"%(prog)s {get_version('ollachat')}",
    )

    args = parser.parse_args()

    settings = get_settings()
    setup_logging(level=args.log_level or settings.log_level)

    try:
        if args.command == "serve":
            from ollachat.api.serve import run_api_server

            run_api_server(host=args.host, port=args.port, dev=args.dev)
        elif args.command == "models":
            raise SystemExit(_print_models(settings))
        else:
            from ollachat.client.repl import run_chat

            model = args.model or settings.default_model
            if not model:
                parser.error("--model is required (or set OLLACHAT_DEFAULT_MODEL)")
            server = args.server or f"http://{settings.api_host}:{settings.api_port}"
            asyncio.run(run_chat(server, model, args.chat_id))
    except KeyboardInterrupt:
        logger.info("ollachat stopped.")


if __name__ == "__main__":
    main()
