from .cancellation import CancellationToken as CancellationToken
from .client import LemurAnalysisClient as LemurAnalysisClient
from .config import AnalyzerSettings as AnalyzerSettings
from .exceptions import ConfigurationError as ConfigurationError
from .extraction import extract_json_object as extract_json_object
from .models import Failed as Failed
from .models import Pending as Pending
from .models import Succeeded as Succeeded
from .models import TrafficLightAnalysis as TrafficLightAnalysis
from .models import Unit as Unit
from .pipeline import ConversationAnalyzer as ConversationAnalyzer
from .pipeline import review_transcript as review_transcript
from .retry import RetryController as RetryController
from .scheduler import BatchScheduler as BatchScheduler
from .store import ResultStore as ResultStore
from .transcription import TranscriptionClient as TranscriptionClient

__all__ = [
    "AnalyzerSettings",
    "BatchScheduler",
    "CancellationToken",
    "ConfigurationError",
    "ConversationAnalyzer",
    "Failed",
    "LemurAnalysisClient",
    "Pending",
    "ResultStore",
    "RetryController",
    "Succeeded",
    "TrafficLightAnalysis",
    "TranscriptionClient",
    "Unit",
    "extract_json_object",
    "review_transcript",
]
