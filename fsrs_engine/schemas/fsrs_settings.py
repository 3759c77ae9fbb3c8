from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from fsrs_engine.fsrs.parameters import Parameters


class ParametersUpdate(BaseModel):
    """
    Partial update of a learner's scheduling settings.

    Fields left as None keep their stored value. The ranges here are the
    ones offered to learners and are narrower than what Parameters accepts:
    a stored maximum_interval below 30 days (set by an operator or an older
    client) still loads, but cannot be chosen through this update.
    """
    request_retention: Optional[float] = Field(None, ge=0.7, le=0.99)
    maximum_interval: Optional[int] = Field(None, ge=30, le=36500)
    learning_steps: Optional[List[int]] = None
    relearning_steps: Optional[List[int]] = None
    graduating_interval: Optional[int] = Field(None, ge=1, le=365)
    easy_interval: Optional[int] = Field(None, ge=1, le=365)
    enable_fuzz: Optional[bool] = None
    fuzz_factor: Optional[float] = Field(None, ge=0, le=0.25)
    enable_short_term: Optional[bool] = None

    @field_validator("learning_steps", "relearning_steps")
    @classmethod
    def check_steps(cls, v: Optional[List[int]]) -> Optional[List[int]]:
        if v is None:
            return v
        if not v:
            raise ValueError("must contain at least one step")
        if any(step <= 0 for step in v):
            raise ValueError("steps must be positive minutes")
        return v

    def changes(self) -> dict:
        """Only the fields the caller actually set"""
        return self.model_dump(exclude_none=True)


class SettingsView(BaseModel):
    """Scheduling settings as shown to the learner"""
    weights: List[float]
    request_retention: float
    maximum_interval: int
    learning_steps: List[int]
    relearning_steps: List[int]
    graduating_interval: int
    easy_interval: int
    enable_fuzz: bool
    fuzz_factor: float
    enable_short_term: bool

    @classmethod
    def from_parameters(cls, params: Parameters) -> "SettingsView":
        return cls(
            weights=list(params.w),
            request_retention=params.request_retention,
            maximum_interval=params.maximum_interval,
            learning_steps=list(params.learning_steps),
            relearning_steps=list(params.relearning_steps),
            graduating_interval=params.graduating_interval,
            easy_interval=params.easy_interval,
            enable_fuzz=params.enable_fuzz,
            fuzz_factor=params.fuzz_factor,
            enable_short_term=params.enable_short_term,
        )
