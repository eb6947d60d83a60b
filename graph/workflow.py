from langgraph.graph import StateGraph, START, END
from loguru import logger

from graph.state import ReportState
from graph.nodes.enrich import make_enrich_node
from graph.nodes.generate import make_generate_node


def build_workflow(enricher, store, generator):
    """Build the two-stage report workflow: enrich, then generate."""
    workflow = StateGraph(ReportState)

    workflow.add_node("enrich", make_enrich_node(enricher, store))
    workflow.add_node("generate", make_generate_node(generator, store))

    workflow.add_edge(START, "enrich")

    # Stage B only runs on stage A success
    def after_enrich(state: ReportState) -> str:
        if state.get("error"):
            logger.info(f"Skipping generation for failed report {state.get('job_id')}")
            return "end"
        return "generate"

    workflow.add_conditional_edges("enrich", after_enrich, {"generate": "generate", "end": END})
    workflow.add_edge("generate", END)

    return workflow.compile()
