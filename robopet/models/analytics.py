from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

Trend = Literal["improving", "stable", "declining"]


class SkillMilestone(BaseModel):
    level: int
    description: str
    age_appropriate: bool
    achieved: bool = False


class SkillAssessment(BaseModel):
    skill_name: str
    current_level: float = Field(ge=0.0, le=100.0)
    progress_trend: Trend = "stable"
    last_assessed: datetime
    milestones: list[SkillMilestone] = []


class LearningPattern(BaseModel):
    preferred_learning_style: Literal["visual", "hands-on", "analytical", "creative"] = "hands-on"
    attention_span: float = 5.0  # minutes
    difficulty_preference: Literal["easy", "moderate", "challenging"] = "moderate"
    help_seeking_behavior: Literal["independent", "guided", "collaborative"] = "independent"


class EducationalInsight(BaseModel):
    category: Literal["strength", "improvement_area", "recommendation"]
    title: str
    description: str
    suggested_activities: list[str] = Field(min_length=1)
    parent_teacher_note: str
