import asyncio
import contextlib
import json
import signal
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from lotion_insights.cancellation import CancellationToken
from lotion_insights.cli.callbacks import load_file_callback, positive_int_callback
from lotion_insights.client import LemurAnalysisClient
from lotion_insights.config import AnalyzerSettings
from lotion_insights.exceptions import LotionInsightsError
from lotion_insights.models import Failed, PipelineReport, SentenceInsight, Succeeded, Unit
from lotion_insights.pipeline import ConversationAnalyzer, TranscriptReview, review_transcript
from lotion_insights.status import TrafficLight
from lotion_insights.transcription import TranscriptionClient, sentences_to_units
from lotion_insights.utils.files import read_sentences_file, write_jsonl_file
from lotion_insights.utils.logging import setup_logging

app = typer.Typer(no_args_is_help=True)


def build_analysis_client(settings: AnalyzerSettings) -> LemurAnalysisClient:
    return LemurAnalysisClient(settings=settings)


def build_transcription_client(settings: AnalyzerSettings) -> TranscriptionClient:
    return TranscriptionClient(settings=settings)


def describe_result(result) -> str:
    if isinstance(result, Failed):
        return f"[red]{escape(result.reason)}[/red]"
    if isinstance(result, Succeeded):
        try:
            insight = SentenceInsight.model_validate(result.payload)
        except ValidationError:
            return escape(json.dumps(result.payload))
        if insight.is_empty:
            return "[dim]nothing notable[/dim]"
        return escape(insight.summary())
    return "[yellow]Analyzing...[/yellow]"


def print_report(units: list[Unit], report: PipelineReport) -> None:
    table = Table("#", "Sentence", "Status", "Insight", title="Conversation timeline")
    for unit, result in zip(units, report.results):
        table.add_row(
            str(unit.index), escape(unit.payload), result.status.value, describe_result(result)
        )
    console = Console()
    console.print(table)
    summary = (
        f"Status: {report.status.value}\n"
        f"Succeeded: {report.succeeded}\n"
        f"Failed: {report.failed}"
    )
    if report.reason:
        summary += f"\nReason: {report.reason}"
    console.print(Panel(summary, title="Run", expand=False, highlight=True))


LIGHT_STYLES = {
    TrafficLight.RED: "bold red",
    TrafficLight.YELLOW: "bold yellow",
    TrafficLight.GREEN: "bold green",
}


def print_review(review: TranscriptReview) -> None:
    table = Table("Sentence", "Rating", "Insight", title=f"Transcript {review.transcript_id}")
    for sentence, rated in review.timeline():
        if rated is None:
            table.add_row(escape(sentence.text), "", "")
            continue
        light = rated.traffic_light
        table.add_row(
            escape(sentence.text),
            f"[{LIGHT_STYLES[light]}]{light.value}[/]",
            escape(rated.insight().summary()),
        )
    console = Console()
    console.print(table)

    overall = review.analysis.overall_analysis
    sections = [
        ("Strengths", overall.strengths),
        ("Areas for improvement", overall.areas_for_improvement),
        ("Key insights", overall.key_insights),
        ("Recommendations", overall.recommendations),
    ]
    body = "\n\n".join(
        f"[bold]{title}[/bold]\n" + "\n".join(f"- {escape(item)}" for item in items)
        for title, items in sections
        if items
    )
    counts = review.analysis.counts()
    console.print(
        Panel(
            body or "No overall analysis returned",
            title="Overall analysis",
            subtitle=" ".join(f"{light.value}: {counts[light]}" for light in TrafficLight),
            expand=False,
        )
    )


def review_rows(review: TranscriptReview) -> list[dict]:
    return [
        {
            **sentence.model_dump(),
            "analysis": rated.model_dump(mode="json") if rated is not None else None,
        }
        for sentence, rated in review.timeline()
    ]


def report_rows(units: list[Unit], report: PipelineReport) -> list[dict]:
    rows = []
    for unit, result in zip(units, report.results):
        row = {"index": unit.index, "text": unit.payload, "status": result.status.value}
        if isinstance(result, Succeeded):
            row["analysis"] = result.payload
        elif isinstance(result, Failed):
            row["reason"] = result.reason
        rows.append(row)
    return rows


async def _run_analysis(
    analyzer: ConversationAnalyzer, units: list[Unit], progress: Progress
) -> PipelineReport:
    task_id = progress.add_task(description="Analyzing sentences...", total=len(units))
    cancellation = CancellationToken()
    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
        loop.add_signal_handler(signal.SIGINT, cancellation.cancel)

    def on_snapshot(snapshot) -> None:
        progress.update(task_id, completed=sum(1 for result in snapshot if result.is_terminal))

    try:
        return await analyzer.analyze(
            units=units, on_snapshot=on_snapshot, cancellation=cancellation
        )
    finally:
        with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
            loop.remove_signal_handler(signal.SIGINT)


def _analyze_units(settings: AnalyzerSettings, units: list[Unit], output: Path | None) -> None:
    try:
        analyzer = ConversationAnalyzer(client=build_analysis_client(settings), settings=settings)
    except ValueError as error:
        typer.echo(f"Invalid configuration: {error}")
        raise typer.Exit(1)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        transient=True,
    ) as progress:
        report = asyncio.run(_run_analysis(analyzer=analyzer, units=units, progress=progress))

    print_report(units=units, report=report)
    if output is not None:
        write_jsonl_file(output, report_rows(units=units, report=report))
        typer.echo(f"Results written to {output.as_posix()}")


def _settings_from_options(**options) -> AnalyzerSettings:
    try:
        return AnalyzerSettings.from_env(**options)
    except ValidationError as error:
        typer.echo(f"Invalid configuration: {error}")
        raise typer.Exit(1)


@app.command(name="analyze")
def analyze_sentences(
    sentences_file: Annotated[
        Path,
        typer.Argument(
            help="JSONL file of sentences, or a .json AssemblyAI sentences payload",
            callback=load_file_callback,
        ),
    ],
    transcript_id: Annotated[
        str | None,
        typer.Option(help="Transcript the sentences belong to, sent as analysis context"),
    ] = None,
    batch_size: Annotated[
        int | None,
        typer.Option(help="Sentences per batch", callback=positive_int_callback),
    ] = None,
    inter_batch_delay: Annotated[
        float | None, typer.Option(help="Seconds to wait between batches")
    ] = None,
    intra_batch_delay: Annotated[
        float | None, typer.Option(help="Seconds to wait between sentences of a batch")
    ] = None,
    max_attempts: Annotated[
        int | None,
        typer.Option(
            help="Attempts per sentence when rate limited", callback=positive_int_callback
        ),
    ] = None,
    output: Annotated[
        Path | None, typer.Option(help="Optional JSONL file receiving one result per sentence")
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logs")] = False,
):
    """Analyze transcript sentences with the sales coaching prompt"""
    setup_logging(verbose=verbose)
    settings = _settings_from_options(
        batch_size=batch_size,
        inter_batch_delay_seconds=inter_batch_delay,
        intra_batch_delay_seconds=intra_batch_delay,
        max_attempts=max_attempts,
    )
    sentences = read_sentences_file(sentences_file)
    units = sentences_to_units(sentences=sentences, transcript_id=transcript_id)
    if not units:
        typer.echo(f"No sentences found in {sentences_file.as_posix()}")
        raise typer.Exit(1)
    _analyze_units(settings=settings, units=units, output=output)


@app.command(name="transcribe")
def transcribe_audio(
    audio_url: Annotated[str, typer.Argument(help="Publicly reachable audio URL")],
    output: Annotated[
        Path | None, typer.Option(help="Optional JSONL file receiving the sentences")
    ] = None,
    analyze: Annotated[
        bool, typer.Option("--analyze/--no-analyze", help="Analyze the sentences afterwards")
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logs")] = False,
):
    """Transcribe an audio file and print its sentences"""
    setup_logging(verbose=verbose)
    settings = _settings_from_options()
    try:
        transcription = build_transcription_client(settings)
    except ValueError as error:
        typer.echo(f"Invalid configuration: {error}")
        raise typer.Exit(1)
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        transient=True,
    ) as progress:
        progress.add_task(description="Waiting for transcript...", total=None)
        try:
            transcript_id, sentences = asyncio.run(transcription.transcribe(audio_url=audio_url))
        except LotionInsightsError as error:
            typer.echo(f"Transcription failed: {error}")
            raise typer.Exit(1)

    units = sentences_to_units(sentences=sentences, transcript_id=transcript_id)
    typer.echo(f"Transcript {transcript_id}: {len(units)} sentence(s)")
    if output is not None:
        write_jsonl_file(output, [sentence.model_dump() for sentence in sentences])
        typer.echo(f"Sentences written to {output.as_posix()}")
    if analyze and units:
        _analyze_units(settings=settings, units=units, output=None)
    else:
        for unit in units:
            typer.echo(f"[{unit.index}] {unit.payload}")


@app.command(name="review")
def review_conversation(
    transcript_id: Annotated[str, typer.Argument(help="Completed AssemblyAI transcript id")],
    output: Annotated[
        Path | None,
        typer.Option(help="Optional JSONL file receiving every sentence with its rating"),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logs")] = False,
):
    """Rate the key sentences of a conversation red, yellow or green in one review"""
    setup_logging(verbose=verbose)
    settings = _settings_from_options()
    try:
        client = build_analysis_client(settings)
        transcription = build_transcription_client(settings)
    except ValueError as error:
        typer.echo(f"Invalid configuration: {error}")
        raise typer.Exit(1)

    try:
        review = asyncio.run(
            review_transcript(
                transcript_id=transcript_id, transcription=transcription, client=client
            )
        )
    except LotionInsightsError as error:
        typer.echo(f"Review failed: {error}")
        raise typer.Exit(1)

    print_review(review)
    if output is not None:
        write_jsonl_file(output, review_rows(review))
        typer.echo(f"Review written to {output.as_posix()}")


if __name__ == "__main__":
    app()
