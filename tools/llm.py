import os
from typing import Optional, Tuple

from loguru import logger
from openai import AsyncOpenAI, OpenAIError

from graph.models import (
    CompanyDetails,
    ContactDetails,
    EnrichmentResult,
    LeadProjection,
    LeadScoring,
    Location,
    QualificationCriteria,
)
from tools.errors import GenerationFailed

PLACEHOLDER = "N/A"
LEAD_RATING = "⭐⭐⭐⭐⭐"
GENERATION_ERROR = "Failed to generate AI report. Please try again later."


def _headquarters(location: Optional[Location]) -> str:
    if location is None:
        return PLACEHOLDER
    parts = [p for p in (location.city, location.state, location.country) if p]
    return ", ".join(parts) or PLACEHOLDER


def build_lead_projection(enrichment: EnrichmentResult) -> LeadProjection:
    """
    Project enrichment data onto the fields the report is built from.

    Pure function of its input: absent fields become the "N/A" placeholder and
    the scoring block is fixed, so the projection never depends on the LLM.
    """
    org = enrichment.organization
    org_name = org.name if org else None

    return LeadProjection(
        name=enrichment.name or PLACEHOLDER,
        position=enrichment.title or PLACEHOLDER,
        company_name=org_name or PLACEHOLDER,
        photo=enrichment.photo_url or None,
        contact_details=ContactDetails(
            email=enrichment.email or PLACEHOLDER,
            phone=enrichment.phone_number or PLACEHOLDER,
            linkedin=enrichment.linkedin_url or PLACEHOLDER,
        ),
        about_lead=(
            f"{enrichment.name or 'The lead'} is {enrichment.title or 'a professional'} "
            f"at {org_name or 'their organization'}"
        ),
        about_company=(org.description if org else None) or PLACEHOLDER,
        company_details=CompanyDetails(
            headquarters=_headquarters(org.location if org else None),
            website=(org.website_url if org else None) or PLACEHOLDER,
            industry=(org.industry if org else None) or PLACEHOLDER,
            employees=(org.employee_count if org else None) or PLACEHOLDER,
        ),
        lead_scoring=LeadScoring(
            rating=LEAD_RATING,
            qualification_criteria=QualificationCriteria(
                decision_maker="YES",
                viewed_solution_deck="YES",
                have_budget="YES",
                need="YES",
            ),
        ),
        notes=[],
    )


def build_report_prompt(lead: LeadProjection) -> str:
    """Build the markdown report skeleton the model is asked to fill in."""
    criteria = lead.lead_scoring.qualification_criteria
    return f"""
Create a professional lead report with the following structure:

# {lead.name}
## {lead.position} at {lead.company_name}

### Contact Details
- **Phone:** {lead.contact_details.phone}
- **LinkedIn:** {lead.contact_details.linkedin}
- **Email:** {lead.contact_details.email}

### About Lead
{lead.about_lead}

### About Company
{lead.about_company}

### Company Details
- **Company HQ:** {lead.company_details.headquarters}
- **Company Website:** {lead.company_details.website}
- **Industry:** {lead.company_details.industry}
- **Employee Count:** {lead.company_details.employees}

### Lead Scoring
**Lead Rating:** {lead.lead_scoring.rating}

#### Qualification Criteria
- **Decision Maker:** {criteria.decision_maker}
- **Viewed Solution Deck:** {criteria.viewed_solution_deck}
- **Have Budget:** {criteria.have_budget}
- **Need:** {criteria.need}

### Engagement Strategy
Please provide specific recommendations for engaging with this lead based on their profile and company details.

### Notes
- Initial contact made through Apollo.io lead generation
"""


class ReportGenerator:
    """LLM client that turns enrichment data into a narrative lead report."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
        temperature: float = 0.7,
        max_tokens: int = 1500,
    ):
        self.api_key = api_key if api_key is not None else os.getenv("OPENAI_API_KEY")
        self.model = model or os.getenv("OPENAI_MODEL", "gpt-4")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client

        if not self.api_key and client is None:
            logger.warning("No OpenAI API key provided, report generation will fail")

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise GenerationFailed("OpenAI API key is not configured")
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def generate(self, enrichment: EnrichmentResult) -> Tuple[str, LeadProjection]:
        """
        Generate the narrative report for an enriched lead.

        Args:
            enrichment: Stage A output for the job

        Returns:
            Tuple of (markdown report, lead projection)

        Raises:
            GenerationFailed: the provider errored or returned no content
        """
        lead = build_lead_projection(enrichment)
        prompt = build_report_prompt(lead)

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self._get_system_prompt()},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except OpenAIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise GenerationFailed(GENERATION_ERROR)

        report = self._extract_content(response)
        if not report:
            logger.error(f"OpenAI response had no report content: {response!r}")
            raise GenerationFailed(GENERATION_ERROR)

        logger.info(f"LLM report generated for {lead.name} ({len(report)} chars)")
        return report, lead

    def _get_system_prompt(self) -> str:
        return (
            "You are a professional lead researcher. Create a detailed, well-structured report "
            "based on the provided data. Focus on business value, decision-making capacity, and "
            "potential engagement strategies. Use markdown formatting for better readability."
        )

    @staticmethod
    def _extract_content(response) -> Optional[str]:
        choices = getattr(response, "choices", None)
        if not choices:
            return None
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None)
        return content if isinstance(content, str) and content.strip() else None
