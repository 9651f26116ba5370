"""
External collaborator contracts and their implementations.

- Document analysis (OCR) and classification
- Narrative NLP analysis
- Statistical fraud/approval scoring
"""

from .classifier import DocumentClassifier
from .document_analysis import (
    DocumentAnalysis,
    DocumentAnalyzer,
    LocalFileDocumentAnalyzer,
    StructuredDocumentAnalysis,
    TesseractDocumentAnalyzer,
    create_document_analyzer,
)
from .narrative import (
    ExtractedEntities,
    LLMNarrativeAnalyzer,
    MockNarrativeAnalyzer,
    NarrativeAnalyzer,
    NarrativeRiskAssessment,
    create_narrative_analyzer,
)
from .statistical import (
    ClaimFeatures,
    HeuristicStatisticalScorer,
    JoblibStatisticalScorer,
    StatisticalScore,
    StatisticalScorer,
    create_statistical_scorer,
)

__all__ = [
    # Document analysis
    "DocumentAnalysis",
    "DocumentAnalyzer",
    "DocumentClassifier",
    "LocalFileDocumentAnalyzer",
    "StructuredDocumentAnalysis",
    "TesseractDocumentAnalyzer",
    "create_document_analyzer",
    # Narrative
    "ExtractedEntities",
    "LLMNarrativeAnalyzer",
    "MockNarrativeAnalyzer",
    "NarrativeAnalyzer",
    "NarrativeRiskAssessment",
    "create_narrative_analyzer",
    # Statistical
    "ClaimFeatures",
    "HeuristicStatisticalScorer",
    "JoblibStatisticalScorer",
    "StatisticalScore",
    "StatisticalScorer",
    "create_statistical_scorer",
]
