"""Entry-point for the Lecture to Slide service."""

from __future__ import annotations

import asyncio
import inspect
import logging
import shutil
from pathlib import Path
from typing import Optional

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from lecture_to_slide.bootstrap import initialize_app
from lecture_to_slide.config import AppConfig
from lecture_to_slide.logging_utils import DEFAULT_LOG_FORMAT, configure_logging, get_log_file_path
from lecture_to_slide.services.jobs import InMemoryJobStore, JobRecord
from lecture_to_slide.services.naming import build_upload_name, new_join_code
from lecture_to_slide.services.pipeline import build_pipeline
from lecture_to_slide.web import create_app
from lecture_to_slide.web.server import get_max_upload_bytes


LOGGER = logging.getLogger("lecture_to_slide.cli")


cli = typer.Typer(add_completion=False, help="Lecture to Slide management commands")


def _prepare_logging(storage_root: Path) -> None:
    log_file = get_log_file_path(storage_root)
    formatter = logging.Formatter(DEFAULT_LOG_FORMAT)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(formatter)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    configure_logging(handlers=[file_handler, stream_handler])


DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080


@cli.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Launch the web server when no explicit command is provided."""

    if ctx.invoked_subcommand is None:
        ctx.invoke(serve, host=DEFAULT_HOST, port=DEFAULT_PORT, root_path=None)


def _normalize_root_path(root_path: Optional[str]) -> str:
    if root_path is None:
        return ""
    normalized = root_path.strip()
    if not normalized:
        return ""
    if not normalized.startswith("/"):
        normalized = f"/{normalized}"
    return normalized.rstrip("/")


@cli.command()
def serve(
    host: str = typer.Option(DEFAULT_HOST, help="Host interface for the web server"),
    port: int = typer.Option(DEFAULT_PORT, help="Port for the web server"),
    root_path: Optional[str] = typer.Option(
        None,
        help="Prefix the application expects when mounted behind a proxy",
        envvar="LECTURE_TO_SLIDE_ROOT_PATH",
    ),
) -> None:
    """Run the HTTP API used by the recorder app and the PowerPoint add-in."""

    app_config = initialize_app()
    _prepare_logging(app_config.storage_root)

    normalized_root = _normalize_root_path(root_path)
    app = create_app(app_config, root_path=normalized_root)

    config_kwargs = {}
    max_upload_bytes = get_max_upload_bytes()
    if max_upload_bytes > 0:
        config_signature = inspect.signature(uvicorn.Config.__init__)
        if "limit_max_request_size" in config_signature.parameters:
            config_kwargs["limit_max_request_size"] = max_upload_bytes
        else:
            LOGGER.debug(
                "uvicorn.Config does not support 'limit_max_request_size'; "
                "relying on the upload handler's size check.",
            )

    server_config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_config=None,
        root_path=normalized_root,
        **config_kwargs,
    )
    server = uvicorn.Server(server_config)
    app.state.server = server
    LOGGER.info("Serving in '%s' mode on %s:%s", app_config.generation_mode, host, port)
    server.run()


def _render_summary(console: Console, record: Optional[JobRecord]) -> None:
    if record is None:
        console.print("[red]Job record disappeared.[/red]")
        return

    if record.error:
        console.print(f"[red]Job {record.code} failed[/red] ({record.error_kind.value if record.error_kind else 'error'}): {record.error}")
        return

    if record.output_path is not None:
        console.print(f"[green]Presentation written to[/green] {record.output_path}")
        return

    table = Table(title=f"Slides for job {record.code}")
    table.add_column("#", justify="right")
    table.add_column("Title")
    table.add_column("Bullets")
    table.add_column("Notes")
    slides = record.slide_deck.slides if record.slide_deck is not None else []
    for index, slide in enumerate(slides, start=1):
        table.add_row(str(index), slide.title, "\n".join(slide.bullets), slide.notes)
    console.print(table)


async def _run_single_job(
    config: AppConfig,
    *,
    audio: Optional[Path],
    notes: Optional[str],
    transcript: Optional[str],
) -> Optional[JobRecord]:
    store = InMemoryJobStore()
    pipeline = build_pipeline(config, store)
    code = new_join_code()
    store.create(code, notes)

    audio_copy: Optional[Path] = None
    if audio is not None:
        # The pipeline consumes its input, so work on a copy of the user's file.
        audio_copy = config.upload_root / build_upload_name(code, audio.suffix)
        shutil.copyfile(audio, audio_copy)

    task = pipeline.submit(
        code,
        audio_path=audio_copy,
        encoding_hint=audio.suffix if audio is not None else None,
        notes=notes,
        transcript=transcript,
    )
    await task
    return store.get(code)


@cli.command()
def generate(
    audio: Optional[Path] = typer.Argument(
        None,
        exists=True,
        dir_okay=False,
        help="Lecture recording to transcribe.",
    ),
    notes: Optional[str] = typer.Option(None, "--notes", "-n", help="Free-text instructions."),
    transcript: Optional[str] = typer.Option(
        None,
        "--transcript",
        "-t",
        help="Use this transcript instead of transcribing audio.",
    ),
) -> None:
    """Run one generation job in-process and print the result."""

    if audio is None and not transcript:
        raise typer.BadParameter("Provide an audio file or --transcript.", param_hint="AUDIO")

    config = initialize_app()
    _prepare_logging(config.storage_root)

    console = Console()
    with console.status("Generating presentation…"):
        record = asyncio.run(_run_single_job(config, audio=audio, notes=notes, transcript=transcript))
    _render_summary(console, record)
    if record is None or record.error:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    cli()
