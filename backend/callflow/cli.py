from pathlib import Path

import typer
from alembic import command
from alembic.config import Config

from callflow.core.config import settings

app = typer.Typer(help="Operational commands for the call routing service.")

ALEMBIC_INI = Path(__file__).resolve().parents[1] / "alembic.ini"


def alembic_config() -> Config:
    config = Config(str(ALEMBIC_INI))
    config.set_main_option("script_location", str(ALEMBIC_INI.parent / "alembic"))
    config.set_main_option("sqlalchemy.url", settings.database_url)
    return config


@app.command("init-db")
def init_db(revision: str = "head"):
    """Apply database migrations up to REVISION."""
    command.upgrade(alembic_config(), revision)
    typer.echo(f"Database upgraded to {revision}")


@app.command("check-config")
def check_config():
    """Exit non-zero when the webhooks cannot be verified or called back."""
    problems = settings.configuration_problems()
    for problem in problems:
        typer.echo(f"- {problem}", err=True)
    if problems:
        raise typer.Exit(code=1)
    typer.echo("Configuration OK")


if __name__ == "__main__":
    app()
