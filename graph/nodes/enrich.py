from graph.models import ReportStatus
from graph.state import ReportState
from tools.errors import EnrichmentError
from loguru import logger

ALREADY_FINISHED = "Report already finished elsewhere"


def make_enrich_node(enricher, store):
    """Build the stage A node: resolve the email via the enrichment provider."""

    async def enrich(state: ReportState) -> ReportState:
        job_id = state["job_id"]
        logger.info(f"Starting enrichment for report {job_id}: {state['email']}")

        try:
            enrichment = await enricher.enrich(state["email"])
        except EnrichmentError as e:
            logger.error(f"Enrichment failed for report {job_id}: {e}")
            await store.update_if_active(job_id, status=ReportStatus.FAILED, error=str(e))
            return {"error": str(e)}

        written = await store.update_if_active(
            job_id, enrichment=enrichment, status=ReportStatus.FETCHING_ENRICHMENT
        )
        if not written:
            logger.warning(f"Report {job_id} finished while enriching, dropping result")
            return {"error": ALREADY_FINISHED}

        logger.info(f"Enrichment completed for report {job_id}")
        return {"enrichment": enrichment}

    return enrich
