"""
Company and principal models used by tenant resolution.

A **company** account in the system database is a tenant: it owns the isolated database
`jazzam_company_<id>`. Individual **users** join companies as team members and reach the
company's data through the company's tenant id.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class TeamMember(BaseModel):
    """Membership of a principal in a company's team."""

    company: str = Field(..., description="ID of the member account")
    role: Literal["owner", "member"] = Field("member", description="Role inside the company")
    joined_at: Optional[datetime] = Field(None, description="Join time")


class CompanyRecord(BaseModel):
    """Company account as stored in the system database `companies` collection."""

    id: str = Field(..., description="Company ID (tenant ID)")
    email: Optional[str] = Field(None, description="Account email")
    name: Optional[str] = Field(None, description="Company name")
    user_type: str = Field("user", description="Account type; only 'company' accounts own a tenant database")
    is_active: bool = Field(True, description="Whether the account is active")
    team_members: List[TeamMember] = Field(default_factory=list, description="Team members")

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "CompanyRecord":
        """Build a record from a raw MongoDB document (camelCase fields, ObjectIds)."""
        members = [
            TeamMember(
                company=str(member.get("company")),
                role=member.get("role", "member"),
                joined_at=member.get("joinedAt"),
            )
            for member in document.get("teamMembers", []) or []
            if member.get("company") is not None
        ]
        return cls(
            id=str(document["_id"]),
            email=document.get("email"),
            name=document.get("companyName") or document.get("name"),
            user_type=document.get("userType", "user"),
            is_active=document.get("isActive", True),
            team_members=members,
        )

    def has_team_member(self, principal_id: str) -> bool:
        return any(member.company == principal_id for member in self.team_members)


class Principal(BaseModel):
    """
    Authenticated identity supplied by the authentication layer.

    `user_type` is `"company"` for a tenant owner, `"user"` for a delegated team member, and
    `"admin"` for platform administrators.
    """

    id: str = Field(..., description="Account ID")
    user_type: str = Field(..., description="company, user or admin")
    email: Optional[str] = Field(None, description="Account email")


class TenantConnectionInfo(BaseModel):
    """Response body describing the tenant connection attached to a request."""

    tenant_id: str = Field(..., description="Resolved tenant ID")
    database: str = Field(..., description="Tenant database name")
    ready_state: str = Field(..., description="Connection ready state")
