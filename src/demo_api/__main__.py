"""Run the vulnerable demo service: python -m demo_api"""

import click
import uvicorn

from pad_prober.log import configure_logging


@click.command()
@click.option("--host", default="127.0.0.1", show_default=True, envvar="PAD_PROBER_DEMO_HOST")
@click.option("--port", default=8000, show_default=True, type=int, envvar="PAD_PROBER_DEMO_PORT")
@click.option("--reload/--no-reload", default=False, show_default=True)
def main(host: str, port: int, reload: bool):
    """Serve the padding oracle demo API with uvicorn."""
    configure_logging("INFO")
    uvicorn.run("demo_api.api:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    main()
