"""Turn a deduplicated review corpus into a validated analysis report."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from voc_pipeline.ai.inference_client import InferenceClient
from voc_pipeline.ai.prompts import ANALYSIS_SYSTEM_PROMPT, build_analysis_prompt
from voc_pipeline.ai.response_parser import parse_json_object
from voc_pipeline.analysis.schema import (
    AnalysisContext,
    AnalysisReport,
    missing_keys,
    no_data_report,
    stamp_metadata,
)
from voc_pipeline.constants import DEFAULT_ANALYSIS_MAX_TOKENS, DEFAULT_ANALYSIS_TEMPERATURE
from voc_pipeline.exceptions import AIProviderError, AnalysisSchemaError, ModelCallError
from voc_pipeline.logging_config import get_structured_logger
from voc_pipeline.scrapers.models import ScrapedReview

logger = logging.getLogger(__name__)


class AnalysisAdapter:
    """
    One model call per report.

    The prompt is deterministic for a given corpus and context. No retries:
    model failures raise ModelCallError and schema gaps raise
    AnalysisSchemaError, both fatal to the job.
    """

    def __init__(
        self,
        inference_client: Optional[InferenceClient] = None,
        temperature: float = DEFAULT_ANALYSIS_TEMPERATURE,
        max_tokens: int = DEFAULT_ANALYSIS_MAX_TOKENS,
    ):
        self._client = inference_client
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.slogger = get_structured_logger(__name__)

    @property
    def client(self) -> InferenceClient:
        if self._client is None:
            self._client = InferenceClient()
        return self._client

    def analyze(self, reviews: List[ScrapedReview], context: AnalysisContext) -> Dict[str, Any]:
        """
        Analyze a corpus.

        Args:
            reviews: Deduplicated reviews for the report
            context: Business name, URL, industry and per-source summaries

        Returns:
            Report document with pipeline-owned metadata stamped on

        Raises:
            ModelCallError: Provider error, timeout, or unparseable reply
            AnalysisSchemaError: Reply missing required sections
        """
        if context.generated_at is None:
            context.generated_at = datetime.now(timezone.utc).isoformat()

        if not reviews:
            logger.info("Empty corpus for %s; returning no-data report", context.business_name)
            self.slogger.ai_activity("analyze", "skipped", {"reason": "empty corpus"})
            return no_data_report(context)

        prompt = build_analysis_prompt(
            reviews,
            business_name=context.business_name,
            business_url=context.business_url,
            industry=context.industry,
            sources=context.platform_names,
        )

        self.slogger.ai_activity("analyze", "started", {"reviews": len(reviews)})
        try:
            result = self.client.execute(
                task_type="analysis",
                prompt=prompt,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system_prompt=ANALYSIS_SYSTEM_PROMPT,
            )
        except AIProviderError as e:
            self.slogger.ai_activity("analyze", "failed", {"error": str(e)})
            raise ModelCallError(f"Analysis model call failed: {e}") from e

        try:
            payload = parse_json_object(result.text)
        except ValueError as e:
            self.slogger.ai_activity("analyze", "failed", {"error": str(e), "model": result.model})
            raise ModelCallError(f"Analysis response was not a JSON object: {e}") from e

        document = self.validate(payload)
        self.slogger.ai_activity(
            "analyze", "completed", {"model": result.model, "tokens": result.total_tokens}
        )
        return stamp_metadata(document, context, total_reviews=len(reviews))

    @staticmethod
    def validate(payload: Dict[str, Any]) -> Dict[str, Any]:
        """Check required sections and their shapes; never fills in missing ones."""
        missing = missing_keys(payload)
        if missing:
            raise AnalysisSchemaError(missing)
        try:
            return AnalysisReport.model_validate(payload).to_document()
        except ValidationError as e:
            fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
            raise AnalysisSchemaError(
                fields, f"Analysis response has malformed sections: {', '.join(fields)}"
            ) from e
