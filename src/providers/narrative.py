"""
Narrative analysis providers.

Summarizes claim text, scans it for fraud indicators and extracts entities.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from ..claims.errors import NarrativeAnalysisError

logger = logging.getLogger(__name__)


class NarrativeRiskAssessment(BaseModel):
    """Fraud risk read from a claim narrative."""
    risk_score: float = Field(ge=0.0, le=1.0)
    risk_level: str = "Low"
    indicators: List[str] = Field(default_factory=list)
    recommendation: str = "Approve"


class ExtractedEntities(BaseModel):
    """Entities found in claim text."""
    names: List[str] = Field(default_factory=list)
    dates: List[str] = Field(default_factory=list)
    amounts: List[float] = Field(default_factory=list)
    locations: List[str] = Field(default_factory=list)
    claim_type: str = "unknown"


def _risk_level(score: float) -> str:
    if score > 0.7:
        return "High"
    if score > 0.4:
        return "Medium"
    return "Low"


def _recommendation(score: float) -> str:
    if score > 0.7:
        return "Investigate"
    if score > 0.4:
        return "Review"
    return "Approve"


class NarrativeAnalyzer(ABC):
    """Base class for narrative NLP providers."""

    @abstractmethod
    async def summarize(self, description: str, document_text: str) -> str:
        """Summarize the claim in a few sentences."""
        pass

    @abstractmethod
    async def analyze_fraud_narrative(self, description: str) -> NarrativeRiskAssessment:
        """
        Score the narrative for fraud risk.

        Raises:
            NarrativeAnalysisError: if the provider fails
        """
        pass

    @abstractmethod
    async def extract_entities(self, text: str) -> ExtractedEntities:
        """Extract names, dates, amounts, locations and the claim type."""
        pass


class MockNarrativeAnalyzer(NarrativeAnalyzer):
    """Mock analyzer for testing (deterministic, no API calls)."""

    VAGUE_TERMS = ["somehow", "not sure", "can't remember", "cannot remember", "i think", "maybe", "unknown cause"]
    PRESSURE_TERMS = ["urgent", "immediately", "cash only", "asap", "need the money"]
    LOSS_TERMS = ["stolen", "total loss", "destroyed", "lost everything", "all receipts lost"]
    EMOTIONAL_TERMS = ["devastated", "furious", "desperate", "nightmare", "disaster"]

    CLAIM_TYPES = {
        "medical": ["hospital", "patient", "diagnosis", "treatment", "physician", "clinic"],
        "auto": ["vehicle", "car", "collision", "mechanic", "body shop"],
        "property": ["roof", "water damage", "fire", "burglary", "window", "ceiling"],
        "life": ["beneficiary", "death certificate", "deceased"],
    }

    async def summarize(self, description: str, document_text: str) -> str:
        combined = " ".join(part.strip() for part in (description, document_text) if part and part.strip())
        if not combined:
            return ""
        sentences = re.split(r"(?<=[.!?])\s+", combined)
        summary = " ".join(sentences[:3])
        return summary[:500]

    async def analyze_fraud_narrative(self, description: str) -> NarrativeRiskAssessment:
        text_lower = (description or "").lower()
        indicators = []
        score = 0.05

        if not text_lower.strip():
            indicators.append("No narrative text available")
            score += 0.1

        groups = [
            (self.VAGUE_TERMS, "Vague or uncertain details", 0.2),
            (self.PRESSURE_TERMS, "Pressure for fast payment", 0.25),
            (self.LOSS_TERMS, "Unverifiable total loss claimed", 0.2),
            (self.EMOTIONAL_TERMS, "Emotionally charged language", 0.1),
        ]
        for terms, label, weight in groups:
            if any(term in text_lower for term in terms):
                indicators.append(label)
                score += weight

        score = round(min(score, 1.0), 4)
        return NarrativeRiskAssessment(
            risk_score=score,
            risk_level=_risk_level(score),
            indicators=indicators,
            recommendation=_recommendation(score),
        )

    async def extract_entities(self, text: str) -> ExtractedEntities:
        text = text or ""
        text_lower = text.lower()

        amounts = []
        for match in re.finditer(r"\$\s*(\d{1,3}(?:,\d{3})*(?:\.\d{2})?|\d+(?:\.\d{2})?)", text):
            try:
                amounts.append(float(match.group(1).replace(",", "")))
            except ValueError:
                pass

        dates = re.findall(r"\b\d{4}-\d{2}-\d{2}\b|\b\d{1,2}/\d{1,2}/\d{2,4}\b", text)
        names = re.findall(r"\b(?:Mr|Mrs|Ms|Dr)\.?\s+[A-Z][a-z]+(?:\s+[A-Z][a-z]+)?", text)

        claim_type = "other"
        for label, keywords in self.CLAIM_TYPES.items():
            if any(keyword in text_lower for keyword in keywords):
                claim_type = label
                break

        return ExtractedEntities(names=names, dates=dates, amounts=amounts, claim_type=claim_type)


class LLMNarrativeAnalyzer(NarrativeAnalyzer):
    """LLM-based narrative analysis (OpenAI or Claude)."""

    SYSTEM_PROMPT = """You are a fraud detection analyst for an insurance company.
Analyze the claim narrative and identify potential fraud indicators.

Consider:
1. Inconsistent details
2. Vague or evasive descriptions
3. Unrealistic or exaggerated losses
4. Pressure for fast payment

Respond with JSON only:
{
    "riskScore": 0.0-1.0 (higher = more suspicious),
    "riskLevel": "Low" | "Medium" | "High",
    "indicators": ["list of specific concerns"],
    "recommendation": "Approve" | "Review" | "Investigate"
}

Be objective. Most claims are legitimate. Only flag genuine concerns."""

    def __init__(self, provider: str = "openai", model: Optional[str] = None, api_key: Optional[str] = None):
        self.provider = provider.lower()

        if self.provider == "openai":
            from openai import AsyncOpenAI
            self.client = AsyncOpenAI(api_key=api_key) if api_key else AsyncOpenAI()
            self.model = model or "gpt-4o-mini"
        elif self.provider == "claude":
            try:
                import anthropic
            except ImportError:
                raise ImportError(
                    "anthropic package required for Claude. "
                    "Install with: pip install 'claims-adjudication[claude]'"
                )
            self.client = anthropic.AsyncAnthropic(api_key=api_key) if api_key else anthropic.AsyncAnthropic()
            self.model = model or "claude-3-5-sonnet-20241022"
        else:
            raise ValueError(f"Unsupported LLM provider: {provider}")

    async def _complete(self, system: str, prompt: str, max_tokens: int = 500) -> str:
        if self.provider == "claude":
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                system=system,
                messages=[{"role": "user", "content": prompt}],
            )
            return response.content[0].text

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            temperature=0,
            max_tokens=max_tokens,
        )
        return response.choices[0].message.content

    @staticmethod
    def _parse_json(response: str) -> Dict[str, Any]:
        json_match = re.search(r"\{.*\}", response or "", re.DOTALL)
        if not json_match:
            raise NarrativeAnalysisError(f"No JSON found in LLM response: {response}")
        return json.loads(json_match.group(0))

    async def summarize(self, description: str, document_text: str) -> str:
        combined = f"{description}\n\nDocument:\n{document_text}"[:3000]
        prompt = (
            "Summarize this insurance claim in 2-3 sentences. "
            "Focus on what, when, where, and amount.\n\n"
            f"{combined}\n\nSummary:"
        )
        try:
            summary = await self._complete("You summarize insurance claims.", prompt, max_tokens=300)
        except Exception as e:
            raise NarrativeAnalysisError(f"Summarization failed: {e}") from e
        return summary.strip()

    async def analyze_fraud_narrative(self, description: str) -> NarrativeRiskAssessment:
        prompt = f"Analyze this claim narrative for fraud risk:\n\n{(description or '')[:2000]}"
        try:
            parsed = self._parse_json(await self._complete(self.SYSTEM_PROMPT, prompt))
            score = float(parsed.get("riskScore", parsed.get("risk_score", 0.0)))
            score = max(0.0, min(1.0, score))
            return NarrativeRiskAssessment(
                risk_score=score,
                risk_level=parsed.get("riskLevel") or _risk_level(score),
                indicators=[str(i) for i in parsed.get("indicators", [])],
                recommendation=parsed.get("recommendation") or _recommendation(score),
            )
        except NarrativeAnalysisError:
            raise
        except Exception as e:
            raise NarrativeAnalysisError(f"Fraud narrative analysis failed: {e}") from e

    async def extract_entities(self, text: str) -> ExtractedEntities:
        prompt = (
            "Extract entities from this insurance claim text. Return ONLY JSON with keys "
            '"names", "dates", "amounts" (numbers), "locations" and "claimType" '
            '("medical" | "auto" | "property" | "life" | "other").\n\n'
            f"{(text or '')[:1500]}"
        )
        try:
            parsed = self._parse_json(await self._complete("You extract entities from claims.", prompt))
            return ExtractedEntities(
                names=parsed.get("names", []),
                dates=parsed.get("dates", []),
                amounts=parsed.get("amounts", []),
                locations=parsed.get("locations", []),
                claim_type=parsed.get("claimType", "unknown"),
            )
        except (ValidationError, ValueError, TypeError) as e:
            raise NarrativeAnalysisError(f"Entity extraction returned invalid data: {e}") from e
        except NarrativeAnalysisError:
            raise
        except Exception as e:
            raise NarrativeAnalysisError(f"Entity extraction failed: {e}") from e


def create_narrative_analyzer(settings: Any = None) -> NarrativeAnalyzer:
    """Factory function to create appropriate narrative analyzer."""
    provider = getattr(settings, "narrative_provider", "mock").lower()

    if provider == "mock":
        return MockNarrativeAnalyzer()

    if provider == "openai":
        api_key = getattr(settings, "openai_api_key", None)
    else:
        api_key = getattr(settings, "anthropic_api_key", None)
    return LLMNarrativeAnalyzer(
        provider=provider,
        model=getattr(settings, "narrative_model", None),
        api_key=api_key,
    )
