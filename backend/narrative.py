"""Generated narrative text with a rule-based fallback.

The generative model is an external collaborator reached through the
:class:`TextGenerator` protocol.  :class:`GeminiNarrator` implements it on top
of ``google-generativeai``; tests and offline deployments inject their own.

Whatever the collaborator does, :class:`NarrativeService` always returns the
deterministic readout from :mod:`backend.resolver`, so a failed or missing
model never leaves the caller without an explanation.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from backend.resolver import InteractionResolver

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash-lite"

INTERACTION_SYSTEM_INSTRUCTION = (
    "You are a harm reduction expert. Your goal is to provide clear, non-judgmental, "
    "and scientifically accurate information about drug interactions to help people "
    "stay safe. Always prioritize safety and suggest seeking medical help if in doubt."
)

SUMMARY_SYSTEM_INSTRUCTION = (
    "You are a harm reduction expert. Provide accurate, non-judgmental information "
    "about substances to help people stay safe. Use clear headings and bullet points. "
    "Always include a disclaimer that this is not medical advice."
)


class NarrativeError(Exception):
    """Base class for classified text-generation failures."""

    code = "UNAVAILABLE"
    retryable = True


class MissingCredential(NarrativeError):
    code = "API_KEY_MISSING"
    retryable = False


class EmptyResponse(NarrativeError):
    code = "EMPTY_RESPONSE"


class QuotaExceeded(NarrativeError):
    code = "QUOTA_EXCEEDED"


class Unavailable(NarrativeError):
    code = "UNAVAILABLE"


@dataclass(frozen=True)
class RiskContext:
    confidence: Optional[str] = None
    sources: Optional[str] = None
    severity_rank: Optional[int] = None

    def describe(self) -> str:
        parts = []
        if self.severity_rank is not None:
            parts.append(f"severity rank {self.severity_rank} on a -1 (same entity) to 5 (dangerous) scale")
        if self.confidence:
            parts.append(f"curated confidence {self.confidence}")
        if self.sources:
            parts.append(f"sources: {self.sources}")
        return "; ".join(parts)


@dataclass(frozen=True)
class NarrativePrompt:
    text: str
    system_instruction: str


class TextGenerator(Protocol):
    def generate(self, prompt: NarrativePrompt, context: Optional[RiskContext] = None) -> str:
        """Return generated text or raise a :class:`NarrativeError`."""


def build_interaction_prompt(
    name_a: str,
    name_b: str,
    label: str,
    description: str,
) -> NarrativePrompt:
    text = (
        f"Explain the drug interaction between {name_a} and {name_b}.\n"
        f'The interaction is categorized as "{label}".\n'
        f"General description: {description}\n\n"
        "Provide a concise, empathetic, and harm-reduction focused explanation of why this "
        "interaction occurs and what the specific risks or effects are.\n"
        "Keep it under 100 words.\n"
        "Include a clear warning if it is dangerous.\n"
        "Format the output in Markdown."
    )
    return NarrativePrompt(text=text, system_instruction=INTERACTION_SYSTEM_INSTRUCTION)


def build_summary_prompt(name_a: str, name_b: Optional[str] = None) -> NarrativePrompt:
    if name_b:
        text = (
            f"Provide a combined summary for the interaction between {name_a} and {name_b}.\n"
            "For each drug, include:\n"
            "- Typical Effects\n"
            "- Onset Time\n"
            "- Duration\n\n"
            "Then, summarize the interaction risks and safety profile based on harm reduction "
            "principles.\n"
            "Present this in a clear, easy-to-understand Markdown format with headers.\n"
            "Keep the total response concise but informative."
        )
    else:
        text = (
            f"Provide a comprehensive summary for {name_a}.\n"
            "Include:\n"
            "- Typical Effects\n"
            "- Onset Time\n"
            "- Duration\n"
            "- Potential Risks (Short and Long term)\n\n"
            "Present this in a clear, easy-to-understand Markdown format with headers.\n"
            "Keep it concise and focused on harm reduction."
        )
    return NarrativePrompt(text=text, system_instruction=SUMMARY_SYSTEM_INSTRUCTION)


def classify_error(exc: Exception) -> NarrativeError:
    """Map a client exception onto the narrative failure taxonomy."""

    if isinstance(exc, NarrativeError):
        return exc
    message = str(exc)
    lowered = message.lower()
    if (
        isinstance(exc, google_exceptions.ResourceExhausted)
        or "quota" in lowered
        or "429" in lowered
        or "resource exhausted" in lowered
    ):
        return QuotaExceeded(message)
    if isinstance(exc, (google_exceptions.Unauthenticated, google_exceptions.PermissionDenied)):
        return MissingCredential(message)
    return Unavailable(message or type(exc).__name__)


class GeminiNarrator:
    """Thin wrapper around the Gemini text-generation API."""

    def __init__(self, api_key: Optional[str], model: str = DEFAULT_MODEL):
        self.api_key = api_key
        self.model_name = model
        self.available = bool(api_key)

        if not api_key:
            logger.info("Gemini API key not provided; generated narratives disabled")
            return

        genai.configure(api_key=api_key)

    @classmethod
    def from_environment(cls) -> "GeminiNarrator":
        return cls(
            api_key=os.getenv("GEMINI_API_KEY"),
            model=os.getenv("GEMINI_MODEL", DEFAULT_MODEL),
        )

    def generate(self, prompt: NarrativePrompt, context: Optional[RiskContext] = None) -> str:
        if not self.available:
            raise MissingCredential("GEMINI_API_KEY is not set")

        contents = prompt.text
        if context is not None and context.describe():
            contents = f"{contents}\n\nCurated risk context: {context.describe()}."

        try:
            model = genai.GenerativeModel(
                self.model_name,
                system_instruction=prompt.system_instruction,
            )
            response = model.generate_content(contents)
            text = _extract_text(response)
        except Exception as exc:
            raise classify_error(exc) from exc

        if not text:
            raise EmptyResponse("Gemini returned no text")
        return text


def _extract_text(response: Any) -> str:
    # ``response.text`` raises ValueError when the candidate was blocked or empty.
    try:
        text = response.text
    except ValueError:
        return ""
    return (text or "").strip()


@dataclass(frozen=True)
class NarrativeResult:
    readout: str
    narrative: Optional[str] = None
    error_code: Optional[str] = None
    retryable: bool = False

    @property
    def source(self) -> str:
        return "generated" if self.narrative else "rule-based"

    @property
    def text(self) -> str:
        """What to show: the generated narrative when present, else the readout."""

        return self.narrative or self.readout

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "text": self.text,
            "readout": self.readout,
            "narrative": self.narrative,
            "error": self.error_code,
            "retryable": self.retryable,
        }


class NarrativeService:
    """Combine resolver readouts with optional generated text."""

    def __init__(self, resolver: InteractionResolver, generator: Optional[TextGenerator] = None):
        self.resolver = resolver
        self.generator = generator

    def explain(self, a_id: str, b_id: str) -> NarrativeResult:
        found = self.resolver.lookup(a_id, b_id)
        readout = self.resolver.readout(a_id, b_id)
        if found.is_self_pair:
            return NarrativeResult(readout=readout)

        prompt = build_interaction_prompt(
            self.resolver.display_name(a_id),
            self.resolver.display_name(b_id),
            found.classification.label,
            found.evidence.summary,
        )
        context = RiskContext(
            confidence=found.evidence.confidence,
            sources=found.evidence.sources,
            severity_rank=found.classification.severity_rank,
        )
        return self._generate(prompt, context, readout)

    def summarize(self, a_id: str, b_id: Optional[str] = None) -> NarrativeResult:
        name_a = self.resolver.display_name(a_id)
        if not b_id or b_id == a_id:
            return self._generate(build_summary_prompt(name_a), None, self.resolver.profile(a_id))

        found = self.resolver.lookup(a_id, b_id)
        context = RiskContext(
            confidence=found.evidence.confidence,
            sources=found.evidence.sources,
            severity_rank=found.classification.severity_rank,
        )
        prompt = build_summary_prompt(name_a, self.resolver.display_name(b_id))
        return self._generate(prompt, context, self.resolver.readout(a_id, b_id))

    def _generate(
        self,
        prompt: NarrativePrompt,
        context: Optional[RiskContext],
        readout: str,
    ) -> NarrativeResult:
        if self.generator is None:
            return NarrativeResult(
                readout=readout,
                error_code=MissingCredential.code,
                retryable=MissingCredential.retryable,
            )
        try:
            narrative = self.generator.generate(prompt, context)
        except NarrativeError as exc:
            logger.warning("Narrative generation failed (%s): %s", exc.code, exc)
            return NarrativeResult(readout=readout, error_code=exc.code, retryable=exc.retryable)

        if not narrative or not narrative.strip():
            logger.warning("Narrative generator returned empty text")
            return NarrativeResult(
                readout=readout,
                error_code=EmptyResponse.code,
                retryable=EmptyResponse.retryable,
            )
        return NarrativeResult(readout=readout, narrative=narrative.strip())


__all__ = [
    "EmptyResponse",
    "GeminiNarrator",
    "MissingCredential",
    "NarrativeError",
    "NarrativePrompt",
    "NarrativeResult",
    "NarrativeService",
    "QuotaExceeded",
    "RiskContext",
    "TextGenerator",
    "Unavailable",
    "build_interaction_prompt",
    "build_summary_prompt",
    "classify_error",
]
