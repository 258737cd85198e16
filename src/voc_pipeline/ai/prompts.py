"""Prompt templates for source discovery and VOC report analysis."""

import json
from typing import Any, Dict, List, Optional

from voc_pipeline.constants import MAX_PROMPT_REVIEW_CHARS, MAX_PROMPT_REVIEWS
from voc_pipeline.scrapers.models import ScrapedReview


class DiscoveryPrompts:
    """Prompts asking the model where a business is reviewed."""

    @staticmethod
    def platform_url_prompt(
        business_name: str, business_url: str, platform_name: str, hostnames: List[str]
    ) -> str:
        """
        Ask for the business's page on one review platform.

        Only the URL in the reply is used; the prompt asks for nothing else so
        the reply stays easy to scan with a URL regex.
        """
        hosts = ", ".join(hostnames)
        return (
            f"Find the {platform_name} review page for this business.\n\n"
            f"Business name: {business_name}\n"
            f"Business website: {business_url}\n\n"
            f"Reply with the full URL of the business's {platform_name} page "
            f"(host must be one of: {hosts}). If you are not sure the page exists, "
            f"reply with NONE. Do not add any explanation."
        )


ANALYSIS_SYSTEM_PROMPT = (
    "You are a senior Voice of Customer strategist and business analyst. "
    "You turn raw customer reviews into sharp, specific, business-relevant "
    "insights, and you answer with JSON only."
)

ANALYSIS_PROMPT_TEMPLATE = """Analyze the review dataset below and return a Voice of Customer report as a single JSON object.
Every section must be grounded in the review content. If a section has no real evidence, say so in that section instead of inventing data.

REVIEW DATA:
{reviews_data}

BUSINESS CONTEXT:
- Business Name: {business_name}
- Business URL: {business_url}
- Industry: {industry}
- Review Sources: {review_sources}
- Total Reviews: {total_reviews}

ANALYSIS OBJECTIVES:
- Diagnose root causes, not just symptoms.
- Prioritize issues by business impact, urgency and frequency.
- Highlight trust and retention barriers.
- Use confident, specific business language. Never write "reviews are mixed".

REQUIRED SECTIONS:
1. executiveSummary: {{"sentimentChange": "+14%", "volumeChange": "-8%", "mostPraised": str, "topComplaint": str, "overview": "2-3 sentences", "alerts": [{{"type": "warning|info|success", "message": str, "metric": str}}]}}
2. keyInsights (4-6): [{{"insight": str, "direction": "up|down|neutral", "mentions": int, "platforms": [str], "impact": "high|medium|low", "reviews": [{{"text": str, "topic": str, "sentiment": "positive|negative|neutral"}}]}}]
3. sentimentOverTime (6 months): [{{"month": "Jan", "business": 0-100, "competitorA": 0-100, "competitorB": 0-100, "competitorC": 0-100}}]
4. mentionsByTopic (5-8 topics): [{{"topic": str, "positive": int, "neutral": int, "negative": int, "total": int, "insight": "one actionable sentence"}}]
5. trendingTopics (5-8): [{{"topic": str, "increase": "+15%", "sources": [str], "sentiment": "positive|negative|neutral"}}]
6. volumeOverTime (8 weeks): [{{"week": "W1", "volume": int, "platform": str}}]
7. competitorComparison (5-8 topics): [{{"topic": str, "business": 1-5, "competitorA": 1-5, "competitorB": 1-5, "competitorC": 1-5}}]
8. marketGaps (4-6): [{{"gap": str, "mentions": int, "suggestion": str}}]
9. advancedMetrics: {{"trustScore": 0-100, "repeatComplaints": percent, "avgResolutionTime": "2.3 days", "vocVelocity": "+8%"}}
10. suggestedActions (4-6): [str]
11. vocDigest: {{"summary": "1-2 sentences", "highlights": ["3-4 bullets"]}}

VALIDATION RULES:
- Every section above MUST be present, named exactly as shown.
- Numbers must be realistic and consistent with the review volume.
- Return ONLY the JSON object. No markdown, no explanations.
"""


def _review_payload(review: ScrapedReview) -> Dict[str, Any]:
    text = review.text
    if len(text) > MAX_PROMPT_REVIEW_CHARS:
        text = text[:MAX_PROMPT_REVIEW_CHARS].rstrip() + "..."
    payload: Dict[str, Any] = {"source": review.source_platform, "text": text}
    if review.rating is not None:
        payload["rating"] = review.rating
    if review.date:
        payload["date"] = review.date
    if review.reviewer_name:
        payload["reviewer"] = review.reviewer_name
    return payload


def build_analysis_prompt(
    reviews: List[ScrapedReview],
    business_name: str,
    business_url: str,
    industry: Optional[str] = None,
    sources: Optional[List[str]] = None,
) -> str:
    """
    Render the analysis prompt with the corpus embedded as JSON.

    Output is deterministic for a given corpus and context: reviews keep
    their stored order and JSON keys are emitted in a fixed order.
    """
    sample = reviews[:MAX_PROMPT_REVIEWS]
    review_sources = sources or sorted({r.source_platform for r in reviews})
    return ANALYSIS_PROMPT_TEMPLATE.format(
        reviews_data=json.dumps([_review_payload(r) for r in sample], ensure_ascii=False),
        business_name=business_name,
        business_url=business_url,
        industry=industry or "Unknown",
        review_sources=", ".join(review_sources) or "none",
        total_reviews=len(reviews),
    )
