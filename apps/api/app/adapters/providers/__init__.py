"""Transcription provider adapters."""

from .base import ProviderRequest, ProviderSubmission, TranscriptionProvider
from .deepgram import DeepgramProvider
from .local import LocalQueueProvider
from .replicate import ReplicateProvider

__all__ = [
    "DeepgramProvider",
    "LocalQueueProvider",
    "ProviderRequest",
    "ProviderSubmission",
    "ReplicateProvider",
    "TranscriptionProvider",
]
