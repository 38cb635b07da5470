"""
Evaluation Module for the Receipt Pipeline.

This module grades extraction results:
    - OCR and parsing quality analysis
    - Completeness and per-field confidence
    - Overall status and user-facing recommendations

Author: ML Engineering Team
"""

from .confidence_scorer import (
    CONFIDENCE_THRESHOLDS,
    ConfidenceAnalysis,
    ConfidenceScorer,
    FieldConfidence,
    ScoringConfig,
    analyze_confidence,
    get_confidence_status,
    get_overall_status,
    meets_quality_threshold
)

__all__ = [
    'CONFIDENCE_THRESHOLDS',
    'ConfidenceAnalysis',
    'ConfidenceScorer',
    'FieldConfidence',
    'ScoringConfig',
    'analyze_confidence',
    'get_confidence_status',
    'get_overall_status',
    'meets_quality_threshold'
]
