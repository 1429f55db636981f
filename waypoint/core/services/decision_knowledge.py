"""Decision -> knowledge auto-capture.

When a decision request is resolved, its context, options, outcome and
rationale are written to the plan's knowledge store so later agents can
find why things are the way they are.
"""

import logging
import re
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from waypoint.core.models.decision import DecisionStatus
from waypoint.core.models.knowledge import KnowledgeEntry
from waypoint.core.repositories.knowledge import KnowledgeRepository
from waypoint.core.repositories.plan import PlanRepository
from waypoint.core.schemas.decision import DecisionRequestResponse

logger = logging.getLogger(__name__)

TITLE_STOP_WORDS = frozenset({"the", "and", "for", "with", "this", "that", "from"})
MAX_TITLE_TAGS = 3


def build_decision_content(decision: DecisionRequestResponse) -> str:
    """Render a resolved decision as a markdown document."""
    sections: list[str] = []

    sections.append("## Context")
    sections.append(decision.context or "")
    sections.append("")

    if decision.options:
        sections.append("## Options Considered")
        for i, opt in enumerate(decision.options, start=1):
            recommended = " (recommended)" if opt.recommendation else ""
            sections.append(f"### {i}. {opt.option}{recommended}")

            if opt.pros:
                sections.append("**Pros:**")
                sections.extend(f"- {pro}" for pro in opt.pros)

            if opt.cons:
                sections.append("**Cons:**")
                sections.extend(f"- {con}" for con in opt.cons)
            sections.append("")

    sections.append("## Decision")
    sections.append(decision.decision or "")
    sections.append("")

    if decision.rationale:
        sections.append("## Rationale")
        sections.append(decision.rationale)

    return "\n".join(sections)


def extract_decision_tags(decision: DecisionRequestResponse) -> list[str]:
    """Tag a decision by urgency, origin and a few title keywords."""
    tags = ["decision", decision.urgency.value]

    if decision.requested_by_agent_name:
        tags.append("agent-requested")

    words = re.sub(r"[^a-z0-9\s]", "", decision.title.lower()).split()
    keywords = [w for w in words if len(w) > 3 and w not in TITLE_STOP_WORDS]
    tags.extend(keywords[:MAX_TITLE_TAGS])

    # Deduplicate, keep first occurrence
    return list(dict.fromkeys(tags))


async def capture_decision_as_knowledge(
    session: AsyncSession,
    decision: DecisionRequestResponse,
    user_id: UUID,
) -> KnowledgeEntry | None:
    """Create a knowledge entry from a resolved decision.

    Returns None when the decision is not in the ``decided`` state.
    Storage errors propagate to the caller.
    """
    if decision.status is not DecisionStatus.DECIDED:
        logger.info(
            "Skipping knowledge capture - decision status is %s",
            decision.status.value,
            extra={"decision_id": decision.id},
        )
        return None

    plan = await PlanRepository(session).get_by_id(decision.plan_id)
    store_name = f"{plan.title if plan else 'Plan'} Knowledge"

    repo = KnowledgeRepository(session)
    store = await repo.get_or_create_plan_store(decision.plan_id, store_name)

    entry = await repo.create_entry(
        store.id,
        entry_type="decision",
        title=f"Decision: {decision.title}",
        content=build_decision_content(decision),
        tags=extract_decision_tags(decision),
        metadata={
            "source": "decision_request",
            "decision_id": str(decision.id),
            "node_id": str(decision.node_id) if decision.node_id else None,
            "urgency": decision.urgency.value,
            "requested_by_agent": decision.requested_by_agent_name,
            "decided_at": decision.decided_at.isoformat() if decision.decided_at else None,
        },
        created_by=str(user_id),
    )

    logger.info(
        "Decision captured as knowledge entry %s in store %s",
        entry.id,
        store.id,
        extra={"decision_id": decision.id, "plan_id": decision.plan_id},
    )
    return entry
