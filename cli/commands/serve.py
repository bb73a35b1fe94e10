"""Server CLI command."""

import click


@click.command(name="serve")
def serve():
    """Run the relay pipeline and the HTTP/SSE server."""
    from src.main import main

    main()
