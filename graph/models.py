from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ReportStatus(str, Enum):
    PROCESSING = "processing"
    FETCHING_ENRICHMENT = "fetching_enrichment"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ReportStatus.COMPLETED, ReportStatus.FAILED)


class Location(BaseModel):
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None


class Organization(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    name: Optional[str] = None
    website_url: Optional[str] = None
    industry: Optional[str] = None
    employee_count: Optional[str] = None
    location: Optional[Location] = None
    description: Optional[str] = None


class EnrichmentResult(BaseModel):
    """Normalized person/organization facts for one email. Every field is optional."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    name: Optional[str] = None
    title: Optional[str] = None
    photo_url: Optional[str] = None
    phone_number: Optional[str] = None
    linkedin_url: Optional[str] = None
    facebook_url: Optional[str] = None
    email: Optional[str] = None
    organization: Optional[Organization] = None


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ContactDetails(_CamelModel):
    email: str
    phone: str
    linkedin: str


class CompanyDetails(_CamelModel):
    headquarters: str
    website: str
    industry: str
    employees: str


class QualificationCriteria(_CamelModel):
    decision_maker: str
    viewed_solution_deck: str
    have_budget: str
    need: str


class LeadScoring(_CamelModel):
    rating: str
    qualification_criteria: QualificationCriteria


class LeadProjection(_CamelModel):
    name: str
    position: str
    company_name: str
    photo: Optional[str] = None
    contact_details: ContactDetails
    about_lead: str
    about_company: str
    company_details: CompanyDetails
    lead_scoring: LeadScoring
    notes: List[str] = Field(default_factory=list)


class Job(_CamelModel):
    """One tracked report request, as persisted in the job store."""

    id: str
    email: str
    status: ReportStatus = ReportStatus.PROCESSING
    enrichment: Optional[EnrichmentResult] = None
    report: Optional[str] = None
    lead_data: Optional[LeadProjection] = None
    error: Optional[str] = None
    created_at: datetime


class StatusReport(BaseModel):
    """Result of a status query; `job` is only set once the report is completed."""

    status: ReportStatus
    error: Optional[str] = None
    job: Optional[Job] = None

    def to_response(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "error": self.error,
            "data": self.job.model_dump(mode="json", by_alias=True) if self.job else None,
        }
