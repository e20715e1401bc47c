from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Tuple


@dataclass(frozen=True)
class JourneyStep:
    id: str
    title: str
    description: str
    cost_range: str
    time_estimate: str
    tips: Tuple[str, ...]
    requirements: Tuple[str, ...]


@dataclass(frozen=True)
class JourneyProgress:
    completed: int
    total: int

    @property
    def percent(self) -> float:
        return (self.completed / self.total) * 100 if self.total else 0.0


JOURNEY_STEPS: Tuple[JourneyStep, ...] = (
    JourneyStep(
        id="land",
        title="Land Acquisition & Title Deed",
        description="Secure your plot and ensure proper legal documentation",
        cost_range="KES 500K - 5M+",
        time_estimate="2-6 weeks",
        tips=(
            "Verify the title deed is genuine at the Ministry of Lands",
            "Check for any encumbrances or disputes",
            "Ensure the land is in a planned area with infrastructure",
        ),
        requirements=("Valid ID", "Proof of income", "Legal representation", "Site visit"),
    ),
    JourneyStep(
        id="design",
        title="Architectural Design & Approvals",
        description="Create detailed house plans and get county approval",
        cost_range="KES 100K - 500K",
        time_estimate="3-8 weeks",
        tips=(
            "Work with a registered architect",
            "Ensure compliance with local building codes",
            "Consider future expansion needs",
        ),
        requirements=("Registered architect", "Site survey", "Soil test results", "County submission"),
    ),
    JourneyStep(
        id="permits",
        title="Construction Permits",
        description="Obtain all necessary construction and planning permits",
        cost_range="KES 50K - 200K",
        time_estimate="2-4 weeks",
        tips=(
            "Apply early as processing takes time",
            "Ensure all documents are complete",
            "Work with county planning department",
        ),
        requirements=(
            "Approved building plans",
            "EIA certificate (if required)",
            "Development permission",
            "Construction permit",
        ),
    ),
    JourneyStep(
        id="contractor",
        title="Contractor & Labour Hiring",
        description="Select qualified contractors and skilled workers",
        cost_range="20-30% of budget",
        time_estimate="1-2 weeks",
        tips=(
            "Get at least 3 quotes from different contractors",
            "Check NCA registration and past projects",
            "Have clear contracts with payment schedules",
        ),
        requirements=("NCA registered contractor", "Valid insurance", "Portfolio review", "Reference checks"),
    ),
    JourneyStep(
        id="foundation",
        title="Foundation & Main Structure",
        description="Excavation, foundation laying, and structural framework",
        cost_range="40-50% of budget",
        time_estimate="6-12 weeks",
        tips=(
            "Ensure proper soil compaction",
            "Use quality cement and reinforcement",
            "Regular engineering supervision required",
        ),
        requirements=("Structural engineer", "Quality materials", "Proper curing time", "Regular inspections"),
    ),
    JourneyStep(
        id="roofing",
        title="Roofing & Exterior",
        description="Install roofing system and complete exterior walls",
        cost_range="15-25% of budget",
        time_estimate="3-6 weeks",
        tips=(
            "Choose roofing materials suitable for Kenya's climate",
            "Ensure proper drainage and guttering",
            "Quality waterproofing is essential",
        ),
        requirements=("Weather protection", "Proper insulation", "Drainage system", "Exterior finishes"),
    ),
    JourneyStep(
        id="interior",
        title="Interior Finishes",
        description="Flooring, painting, fixtures, and interior fittings",
        cost_range="20-30% of budget",
        time_estimate="4-8 weeks",
        tips=(
            "Plan electrical and plumbing before finishes",
            "Choose durable materials for high-traffic areas",
            "Consider maintenance requirements",
        ),
        requirements=("Electrical completion", "Plumbing completion", "Quality finishes", "Proper ventilation"),
    ),
    JourneyStep(
        id="inspection",
        title="Final Inspections",
        description="County inspections and compliance certification",
        cost_range="KES 20K - 50K",
        time_estimate="1-2 weeks",
        tips=(
            "Schedule inspections early",
            "Address any compliance issues promptly",
            "Keep all documentation organized",
        ),
        requirements=("Completion certificate", "Occupancy permit", "Utility connections", "Safety compliance"),
    ),
    JourneyStep(
        id="movein",
        title="Move-in Ready",
        description="Final touches, landscaping, and handover",
        cost_range="5-10% of budget",
        time_estimate="1-2 weeks",
        tips=(
            "Do a final walkthrough with contractor",
            "Secure warranty documents",
            "Plan landscaping and security features",
        ),
        requirements=("Final cleanup", "Landscaping", "Security installation", "Utility activation"),
    ),
)

_BY_ID = {step.id: step for step in JOURNEY_STEPS}


def get_step(step_id: str) -> JourneyStep:
    return _BY_ID[step_id]


def journey_progress(completed: Mapping[str, bool]) -> JourneyProgress:
    """Count finished steps; ids that are not journey steps are ignored."""
    done = sum(1 for step in JOURNEY_STEPS if completed.get(step.id))
    return JourneyProgress(completed=done, total=len(JOURNEY_STEPS))
