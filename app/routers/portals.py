# File: app/routers/portals.py

from typing import Dict, List
from fastapi import APIRouter
from app.models.issue import IssueCategory
from app.schemas.issue import GovernmentPortal

router = APIRouter(prefix="/issues/portals", tags=["issues:portals"])

# official grievance portals citizens can escalate to themselves, per category
PORTALS: Dict[IssueCategory, List[GovernmentPortal]] = {
    IssueCategory.roads: [
        GovernmentPortal(name="NHAI Portal", url="https://nhai.gov.in/",
                         description="National Highways Authority of India"),
        GovernmentPortal(name="MoRTH", url="https://morth.nic.in/",
                         description="Ministry of Road Transport and Highways"),
    ],
    IssueCategory.garbage: [
        GovernmentPortal(name="Swachh Bharat Mission", url="https://swachhbharatmission.gov.in/",
                         description="Clean India Mission Official Portal"),
    ],
    IssueCategory.water: [
        GovernmentPortal(name="Jal Jeevan Mission", url="https://jaljeevanmission.gov.in/",
                         description="National Rural Water Mission"),
    ],
    IssueCategory.electricity: [
        GovernmentPortal(name="National Power Portal", url="https://npp.gov.in/",
                         description="Central Electricity Authority"),
    ],
    IssueCategory.street_lights: [
        GovernmentPortal(name="Municipal E-Governance", url="https://egovernments.org/",
                         description="Urban Infrastructure Management"),
    ],
    IssueCategory.public_safety: [
        GovernmentPortal(name="National Police Portal", url="https://digitalpolice.gov.in/",
                         description="Citizen Services for Public Safety"),
    ],
    IssueCategory.traffic: [
        GovernmentPortal(name="Parivahan Sewa", url="https://parivahan.gov.in/",
                         description="Transport Department Services"),
    ],
    IssueCategory.others: [
        GovernmentPortal(name="PG Portal", url="https://pgportal.gov.in/",
                         description="Centralized Public Grievance Redress and Monitoring System"),
    ],
}

@router.get("", response_model=Dict[str, List[GovernmentPortal]])
def list_portals():
    return {category.value: portals for category, portals in PORTALS.items()}

@router.get("/{category}", response_model=List[GovernmentPortal])
def portals_for_category(category: IssueCategory):
    return PORTALS[category]
