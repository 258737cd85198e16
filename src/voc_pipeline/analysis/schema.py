"""
Pydantic schema for the VOC analysis report.

The model's JSON must carry every section in ``REQUIRED_KEYS``; business
metadata (name, URL, timestamps, review totals, data sources) is stamped by
the pipeline afterwards and never trusted from the model.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

REQUIRED_KEYS = [
    "executiveSummary",
    "keyInsights",
    "sentimentOverTime",
    "mentionsByTopic",
    "trendingTopics",
    "volumeOverTime",
    "competitorComparison",
    "marketGaps",
    "advancedMetrics",
    "suggestedActions",
    "vocDigest",
]

METADATA_KEYS = ["businessName", "businessUrl", "generatedAt", "totalReviews", "dataSources"]

NO_DATA_OVERVIEW = "No reviews found to analyze."


class AnalysisReport(BaseModel):
    """Validated analysis document. Unknown sections are kept as-is."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    executive_summary: Dict[str, Any] = Field(alias="executiveSummary")
    key_insights: List[Any] = Field(alias="keyInsights")
    sentiment_over_time: List[Any] = Field(alias="sentimentOverTime")
    mentions_by_topic: List[Any] = Field(alias="mentionsByTopic")
    trending_topics: List[Any] = Field(alias="trendingTopics")
    volume_over_time: List[Any] = Field(alias="volumeOverTime")
    competitor_comparison: List[Any] = Field(alias="competitorComparison")
    market_gaps: List[Any] = Field(alias="marketGaps")
    advanced_metrics: Dict[str, Any] = Field(alias="advancedMetrics")
    suggested_actions: List[Any] = Field(alias="suggestedActions")
    voc_digest: Dict[str, Any] = Field(alias="vocDigest")

    def to_document(self) -> Dict[str, Any]:
        """JSON-ready dict keyed the way clients read it."""
        return self.model_dump(by_alias=True)


@dataclass
class AnalysisContext:
    """Business context passed alongside the review corpus."""

    business_name: str
    business_url: str
    industry: Optional[str] = None
    # Per-source summaries: {platform, url, reviewCount, lastSync, success, error}
    sources: List[Dict[str, Any]] = field(default_factory=list)
    generated_at: Optional[str] = None

    @property
    def platform_names(self) -> List[str]:
        return [s["platform"] for s in self.sources if s.get("platform")]


def missing_keys(payload: Dict[str, Any]) -> List[str]:
    """Required sections absent from a model response, in canonical order."""
    return [key for key in REQUIRED_KEYS if key not in payload]


def data_sources_block(sources: List[Dict[str, Any]]) -> Dict[str, Any]:
    current = []
    for source in sources:
        current.append(
            {
                "name": source.get("platform"),
                "status": "active" if source.get("success") else "error",
                "reviews": source.get("reviewCount", 0),
                "lastSync": source.get("lastSync"),
            }
        )
    return {"current": current, "available": []}


def stamp_metadata(
    document: Dict[str, Any], context: AnalysisContext, total_reviews: int
) -> Dict[str, Any]:
    """Overwrite business metadata keys with pipeline-owned values."""
    stamped = dict(document)
    stamped.update(
        {
            "businessName": context.business_name,
            "businessUrl": context.business_url,
            "generatedAt": context.generated_at,
            "totalReviews": total_reviews,
            "dataSources": data_sources_block(context.sources),
        }
    )
    return stamped


def no_data_report(context: AnalysisContext) -> Dict[str, Any]:
    """Well-formed report for a business with no reviews. Deterministic for a given context."""
    report = AnalysisReport(
        executiveSummary={
            "sentimentChange": "0%",
            "volumeChange": "0%",
            "mostPraised": "",
            "topComplaint": "",
            "overview": NO_DATA_OVERVIEW,
            "alerts": [
                {
                    "type": "info",
                    "message": "No customer reviews were found on the checked platforms.",
                    "metric": "0 reviews",
                }
            ],
        },
        keyInsights=[],
        sentimentOverTime=[],
        mentionsByTopic=[],
        trendingTopics=[],
        volumeOverTime=[],
        competitorComparison=[],
        marketGaps=[],
        advancedMetrics={
            "trustScore": 0,
            "repeatComplaints": 0,
            "avgResolutionTime": "n/a",
            "vocVelocity": "0%",
        },
        suggestedActions=[
            "Ask recent customers to leave reviews on the platforms they use.",
        ],
        vocDigest={"summary": NO_DATA_OVERVIEW, "highlights": []},
    )
    return stamp_metadata(report.to_document(), context, total_reviews=0)
