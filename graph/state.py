from typing import TypedDict, Optional

from graph.models import EnrichmentResult, LeadProjection


class ReportState(TypedDict, total=False):
    """State shape for the report generation workflow."""
    job_id: str
    email: str
    enrichment: Optional[EnrichmentResult]   # stage A output, handed straight to stage B
    report: Optional[str]                    # markdown narrative from the LLM
    lead_data: Optional[LeadProjection]
    error: Optional[str]                     # set when a stage failed; ends the run
