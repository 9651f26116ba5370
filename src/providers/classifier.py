"""
Rule-based document classification.

Scores extracted text against keyword lists per document type, flags
suspicious content, and pulls monetary amounts out of free text.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Dict, List

from ..claims.schema import Document

UNKNOWN_TYPE = "Unknown"
OTHER_TYPE = "Other"

DOCUMENT_TYPE_KEYWORDS: Dict[str, List[str]] = {
    "Invoice": ["invoice", "invoice number", "invoice date", "bill to", "subtotal", "total due", "payment terms"],
    "Receipt": ["receipt", "paid", "transaction", "payment received", "thank you for your purchase"],
    "MedicalReport": ["medical", "diagnosis", "patient", "physician", "treatment", "prescription", "hospital", "clinic", "symptoms"],
    "InsurancePolicy": ["policy", "coverage", "premium", "deductible", "beneficiary", "insured", "underwriter"],
    "ClaimForm": ["claim form", "claimant", "date of loss", "description of damage", "claim number"],
    "PoliceReport": ["police", "officer", "incident", "report number", "witness", "accident report"],
    "RepairEstimate": ["estimate", "repair", "parts", "labor", "mechanic", "body shop", "damage assessment"],
    "BankStatement": ["bank statement", "account", "balance", "deposit", "withdrawal", "transaction history"],
}

SUSPICIOUS_PATTERNS = [
    r"photoshop",
    r"edited",
    r"modified",
    r"lorem ipsum",
    r"sample",
    r"test document",
    r"draft",
]

AMOUNT_PATTERNS = [
    r"\$\s*[\d,]+(?:\.\d+)?",
    r"USD\s*[\d,]+(?:\.\d+)?",
    r"[\d,]+(?:\.\d+)?\s*(?:dollars?|USD)",
    r"(?:total|amount|sum|balance):\s*\$?[\d,]+(?:\.\d+)?",
]

MIN_KEYWORD_MATCHES = 2
MIN_CONTENT_LENGTH = 50
MIN_CONTENT_CONFIDENCE = 0.5


class DocumentClassifier:
    """Keyword-scoring classifier for extracted document text."""

    def __init__(self, keywords: Dict[str, List[str]] = None):
        self.keywords = keywords or DOCUMENT_TYPE_KEYWORDS

    async def classify(self, extracted_text: str) -> str:
        return self.classify_text(extracted_text)

    def classify_text(self, extracted_text: str) -> str:
        """
        Classify text by keyword matches.

        Returns:
            Best matching type label (needs at least two keyword hits),
            'Other' when nothing matches well, 'Unknown' for blank text
        """
        if not extracted_text or not extracted_text.strip():
            return UNKNOWN_TYPE

        text_lower = extracted_text.lower()
        scores = {}
        for doc_type, keywords in self.keywords.items():
            score = sum(1 for keyword in keywords if keyword in text_lower)
            if score > 0:
                scores[doc_type] = score

        if scores:
            best_type, best_score = max(scores.items(), key=lambda item: item[1])
            if best_score >= MIN_KEYWORD_MATCHES:
                return best_type

        return OTHER_TYPE

    def validate_content(self, document: Document) -> bool:
        """Whether a document's extracted content looks trustworthy."""
        text = document.extracted_text
        if not text or not text.strip():
            return False
        if document.ocr_confidence is None or document.ocr_confidence < MIN_CONTENT_CONFIDENCE:
            return False

        text_lower = text.lower()
        if any(re.search(pattern, text_lower) for pattern in SUSPICIOUS_PATTERNS):
            return False

        return len(text) >= MIN_CONTENT_LENGTH

    def extract_amounts(self, text: str) -> List[Decimal]:
        """Extract distinct monetary amounts in order of first appearance."""
        amounts: List[Decimal] = []
        for pattern in AMOUNT_PATTERNS:
            for match in re.finditer(pattern, text or "", re.IGNORECASE):
                numeric = re.search(r"\d[\d,]*(?:\.\d+)?", match.group(0))
                if not numeric:
                    continue
                try:
                    value = Decimal(numeric.group(0).replace(",", ""))
                except InvalidOperation:
                    continue
                if value not in amounts:
                    amounts.append(value)
        return amounts
