"""Construction Architect Agent.

Structures a large project into standard Spanish construction chapters
(capítulos) with approximate quantities.
"""

from typing import List, Optional

import structlog

from agents.base_agent import BaseAgent
from models.agent_output import ArchitectChapter, ArchitectPlan

logger = structlog.get_logger()

ARCHITECT_SYSTEM_PROMPT = """You are a Senior Architect and Construction Manager.
Structure a construction project into standard Spanish construction chapters (capítulos).

Rules:
1. Use standard Spanish chapter names (Demoliciones, Albañilería, Fontanería, Electricidad,
   Revestimientos, Pavimentos, Carpintería, Pintura, Gestión de residuos...).
2. Only include chapters relevant to the project.
3. Estimate quantities from the total area:
   - Flooring and ceilings: usually the total area.
   - Wall finishes and painting: roughly the total area x 3.
   - Demolition: m2 or m3.
   - Kitchens and bathrooms: 'ud' for a whole-room renovation, m2 for flooring.

{"chapters": [{"name": "...", "description": "...", "estimatedComplexity": "LOW|MEDIUM|HIGH", "approxQuantity": 80, "unit": "m2"}]}
"""


class ConstructionArchitectAgent(BaseAgent):
    """Plans the chapter structure of a project."""

    def __init__(self, llm_service=None, timeout_seconds: Optional[float] = None):
        super().__init__(name="architect", llm_service=llm_service, timeout_seconds=timeout_seconds)

    async def plan(self, project_description: str, total_area: Optional[float] = None) -> List[ArchitectChapter]:
        """Plan chapters for a project.

        Returns:
            Chapters in execution order; empty if planning failed.
        """
        area = f"{total_area:g} m2" if total_area else "Unknown"
        plan = await self.generate_structured(
            ARCHITECT_SYSTEM_PROMPT,
            f'Project: "{project_description}"\nTotal area: {area}',
            ArchitectPlan
        )

        chapters = [c for c in (plan.chapters if plan else []) if c.name.strip()]
        logger.info("architect_plan_generated", chapters=len(chapters))
        return chapters
