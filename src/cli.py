"""
survey-bot CLI - administration commands for the survey bot.

Usage:
    survey-bot init-db
    survey-bot serve
    survey-bot survey-create <file>
    survey-bot survey-update <guid> <file>
    survey-bot survey-delete <guid>
    survey-bot survey-state-delete <user_guid> <survey_guid>
    survey-bot survey-get-results [--from YYYY-MM-DD] [--to YYYY-MM-DD] > results.csv
"""

import sys
import uuid

import click

from src.config.settings import get_settings
from src.core.database import get_session_local, init_db
from src.core.logging_config import setup_logging
from src.database.repository import SqlRepository
from src.domain.errors import SurveyBotError
from src.domain.survey import ResultsFilter
from src.services.scoring import default_registry
from src.services.survey_service import SurveyService, read_survey_file


def _build_service() -> SurveyService:
    settings = get_settings()
    return SurveyService(
        repository=SqlRepository(get_session_local()),
        gateway=None,
        scoring=default_registry(),
        batch_size=settings.export.cli_batch_size,
    )


def _load_survey(path: str):
    try:
        return read_survey_file(path)
    except SurveyBotError as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.option("--log-level", default=None, help="Override the configured log level")
def cli(log_level):
    """survey-bot - manage surveys, survey states and results."""
    settings = get_settings()
    # Logs go to stderr so command output on stdout stays clean.
    setup_logging(log_level or settings.logging.level, settings.logging.format, stream=sys.stderr)


@cli.command("init-db")
def init_db_command():
    """Create database tables."""
    init_db()
    click.echo("Database tables initialized", err=True)


@cli.command()
@click.option("--host", default=None, help="Bind host (defaults to api.host)")
@click.option("--port", default=None, type=int, help="Bind port (defaults to api.port)")
def serve(host, port):
    """Run the HTTP API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.api.main:app",
        host=host or settings.api.host,
        port=port or settings.api.port,
    )


@cli.command("survey-create")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
def survey_create(file):
    """Create a survey from a JSON definition file."""
    survey = _load_survey(file)
    try:
        created = _build_service().create_survey(survey)
    except SurveyBotError as e:
        raise click.ClickException(f"failed to create survey: {e}") from e

    click.echo(f"Survey created: guid={created.guid} id={created.id}")


@cli.command("survey-update")
@click.argument("guid", type=click.UUID)
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
def survey_update(guid: uuid.UUID, file):
    """Update a survey's content; the number of questions must not change."""
    survey = _load_survey(file)
    survey.guid = guid
    try:
        _build_service().update_survey(survey)
    except SurveyBotError as e:
        raise click.ClickException(f"failed to update survey: {e}") from e

    click.echo(f"Survey updated: guid={guid}")


@cli.command("survey-delete")
@click.argument("guid", type=click.UUID)
def survey_delete(guid: uuid.UUID):
    """Soft-delete a survey."""
    try:
        _build_service().soft_delete_survey(guid)
    except SurveyBotError as e:
        raise click.ClickException(f"failed to delete survey: {e}") from e

    click.echo(f"Survey deleted: guid={guid}")


@cli.command("survey-state-delete")
@click.argument("user_guid", type=click.UUID)
@click.argument("survey_guid", type=click.UUID)
def survey_state_delete(user_guid: uuid.UUID, survey_guid: uuid.UUID):
    """Delete a user's progress on a survey so it can be retaken."""
    try:
        _build_service().delete_user_survey_state(user_guid, survey_guid)
    except SurveyBotError as e:
        raise click.ClickException(f"failed to delete survey state: {e}") from e

    click.echo(f"Survey state deleted: user={user_guid} survey={survey_guid}", err=True)


@cli.command("survey-get-results")
@click.option("--from", "from_", type=click.DateTime(formats=["%Y-%m-%d"]), default=None)
@click.option("--to", type=click.DateTime(formats=["%Y-%m-%d"]), default=None)
@click.option("--batch-size", type=click.IntRange(min=1), default=None)
@click.option("--newest-first", is_flag=True, help="Order rows by finish time descending")
def survey_get_results(from_, to, batch_size, newest_first):
    """Write finished surveys in the [from, to) window to stdout as CSV."""
    service = _build_service()
    try:
        total = service.save_finished_surveys(
            sys.stdout,
            ResultsFilter(from_=from_, to=to, newest_first=newest_first),
            batch_size,
        )
    except SurveyBotError as e:
        raise click.ClickException(f"failed to export results: {e}") from e

    click.echo(f"Exported {total} rows", err=True)


if __name__ == "__main__":
    cli()
