"""Candidate generators: autonomous prompt sources and their registry."""

from companion.candidates.base import (
    CandidateGenerator,
    DispatchContext,
    DocumentSnapshot,
    ImagePrompt,
    PromptPayload,
    TextPrompt,
)
from companion.candidates.builtins import register_builtins
from companion.candidates.registry import CandidateRegistry

__all__ = [
    "CandidateGenerator",
    "CandidateRegistry",
    "DispatchContext",
    "DocumentSnapshot",
    "ImagePrompt",
    "PromptPayload",
    "TextPrompt",
    "register_builtins",
]
