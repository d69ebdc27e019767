# backend/siem_correlator/schemas/narrative.py
from typing import List, Optional

from pydantic import BaseModel, Field


class AttackNarrative(BaseModel):
    attack_narrative: Optional[str] = None
    attack_stage: Optional[str] = None
    recommended_actions: List[str] = Field(default_factory=list)
    mitre_techniques: List[str] = Field(default_factory=list)
