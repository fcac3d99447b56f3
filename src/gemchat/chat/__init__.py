"""Client side of the streaming conversation pipeline.

Sessions are stored by :class:`SessionStore`, requests are streamed through
:class:`StreamTransport`, and :class:`GenerationOrchestrator` ties the two
together for send, regenerate and stop actions.
"""

from .errors import ErrorOutcome, MalformedRequestError, classify
from .models import Attachment, Message, Session
from .orchestrator import AttemptState, GenerationOrchestrator, GenerationResult
from .store import SessionStore
from .transport import CancellationToken, StreamTransport
from .worker import ChatWorker

__all__ = [
    "Attachment",
    "AttemptState",
    "CancellationToken",
    "ChatWorker",
    "ErrorOutcome",
    "GenerationOrchestrator",
    "GenerationResult",
    "MalformedRequestError",
    "Message",
    "Session",
    "SessionStore",
    "StreamTransport",
    "classify",
]
