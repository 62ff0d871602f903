import asyncio
import sys

from dotenv import load_dotenv

from lotion_insights import ConversationAnalyzer, LemurAnalysisClient, TranscriptionClient
from lotion_insights.models import Failed, Succeeded

load_dotenv()


def render(snapshot) -> None:
    """Print one line per sentence, the way the timeline view shows them."""
    lines = []
    for index, result in enumerate(snapshot):
        if isinstance(result, Succeeded):
            insight = result.payload.get("ai_insight") or result.payload or "-"
            lines.append(f"{index:>3} | {insight}")
        elif isinstance(result, Failed):
            lines.append(f"{index:>3} | (failed: {result.reason})")
        else:
            lines.append(f"{index:>3} | Analyzing...")
    print("\n".join(lines), end="\n\n")


async def main(transcript_id: str) -> None:
    """Analyze every sentence of a completed transcript, streaming snapshots."""
    analyzer = ConversationAnalyzer(client=LemurAnalysisClient())
    _, report = await analyzer.analyze_transcript(
        transcript_id=transcript_id,
        transcription=TranscriptionClient(),
        on_snapshot=render,
    )
    print(f"{report.status.value}: {report.succeeded} succeeded, {report.failed} failed")


if __name__ == "__main__":
    asyncio.run(main(transcript_id=sys.argv[1]))
