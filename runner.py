"""
CLI entrypoint for the property portal realtime toolkit.
"""
import asyncio

import httpx
import typer

from client.dashboard import run_dashboard
from resilience.policies import retry_with_rate_limit
from shared.config import settings
from shared.log_setup import configure_logging

app = typer.Typer(help="Property portal realtime toolkit CLI")

@app.callback()
def main(log_level: str = typer.Option(settings.LOG_LEVEL, help="Log level for stderr output")):
    configure_logging(log_level)

@app.command()
def server():
    """Start the FastAPI notification server using Uvicorn."""
    import uvicorn
    typer.echo(f"Starting server on port {settings.PORT}...")
    uvicorn.run("server.main:app", host="0.0.0.0", port=settings.PORT, log_level=settings.LOG_LEVEL.lower())

@app.command()
def feed(duration: float = typer.Option(60.0, help="How long to run the dashboard in seconds")):
    """Run the live notification feed dashboard against demo change streams."""
    # Log lines would tear through the Live layout.
    configure_logging("WARNING")
    try:
        asyncio.run(run_dashboard(duration))
    except KeyboardInterrupt:
        pass

@app.command()
def stats(base_url: str = typer.Option(f"http://127.0.0.1:{settings.PORT}", help="Server base URL")):
    """Query the server for live notification stats, backing off when rate limited."""
    async def fetch_stats() -> dict:
        async with httpx.AsyncClient(timeout=10.0) as client:
            resp = await client.get(f"{base_url}/stats")
            resp.raise_for_status()
            return resp.json()

    try:
        data = asyncio.run(retry_with_rate_limit(fetch_stats, "/stats"))
    except httpx.HTTPError as e:
        typer.echo(f"Failed to fetch stats: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(data)

if __name__ == "__main__":
    app()
