from graph.models import ReportStatus
from graph.state import ReportState
from tools.errors import GenerationFailed
from loguru import logger


def make_generate_node(generator, store):
    """Build the stage B node: narrative report plus lead projection."""

    async def generate(state: ReportState) -> ReportState:
        job_id = state["job_id"]
        logger.info(f"Starting report generation for {job_id}")

        try:
            report, lead_data = await generator.generate(state["enrichment"])
        except GenerationFailed as e:
            logger.error(f"Report generation failed for {job_id}: {e}")
            await store.update_if_active(job_id, status=ReportStatus.FAILED, error=str(e))
            return {"error": str(e)}

        written = await store.update_if_active(
            job_id, report=report, lead_data=lead_data, error=None, status=ReportStatus.COMPLETED
        )
        if not written:
            logger.warning(f"Report {job_id} finished while generating, dropping result")
            return {}

        logger.info(f"Report {job_id} completed")
        return {"report": report, "lead_data": lead_data}

    return generate
