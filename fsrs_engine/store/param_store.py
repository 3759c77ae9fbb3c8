"""
Parameter Store Adapter

Translates between persisted parameter rows and engine Parameters.

Rows mirror the relational layout used by the surrounding application:
weights and step lists are JSON text, booleans are 0/1 integers. The adapter
never talks to a database itself; callers load and save rows.
"""
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple, Union
import json
import logging
import uuid

from pydantic import BaseModel, Field

from fsrs_engine.core.config import settings
from fsrs_engine.fsrs.optimizer import OptimizationResult, OptimizationStatus, WeightComparison
from fsrs_engine.fsrs.parameters import InvalidParametersError, Parameters
from fsrs_engine.schemas.fsrs_settings import ParametersUpdate

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ParameterRow(BaseModel):
    """A learner's stored scheduling parameters (user_fsrs_params)"""
    user_id: str
    weights: str
    request_retention: float = 0.9
    maximum_interval: int = 36500
    learning_steps: str = "[1, 10]"
    relearning_steps: str = "[10]"
    graduating_interval: int = 1
    easy_interval: int = 4
    enable_fuzz: int = Field(1, ge=0, le=1)
    fuzz_factor: float = 0.05
    enable_short_term: int = Field(0, ge=0, le=1)

    # Optimization bookkeeping
    last_optimized_at: Optional[datetime] = None
    optimization_sample_size: int = 0
    optimization_loss: Optional[float] = None
    optimization_rmse: Optional[float] = None

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class DeckParameterRow(BaseModel):
    """Per-deck overrides (deck_fsrs_params); None means inherit"""
    deck_id: str
    weights: Optional[str] = None
    request_retention: Optional[float] = None
    maximum_interval: Optional[int] = None
    learning_steps: Optional[str] = None
    relearning_steps: Optional[str] = None
    graduating_interval: Optional[int] = None
    easy_interval: Optional[int] = None
    enable_fuzz: Optional[int] = Field(None, ge=0, le=1)
    fuzz_factor: Optional[float] = None

    last_optimized_at: Optional[datetime] = None
    optimization_sample_size: Optional[int] = None
    optimization_loss: Optional[float] = None


class OptimizationHistoryEntry(BaseModel):
    """Audit record of one optimization run (fsrs_optimization_history)"""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    deck_id: Optional[str] = None
    weights_before: str
    weights_after: str
    loss_before: float
    loss_after: float
    improvement_percent: float
    rmse: float
    sample_size: int
    iterations: int
    created_at: datetime = Field(default_factory=_utcnow)


def _parse_list(raw: str, field_name: str) -> List[Any]:
    try:
        value = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise InvalidParametersError(field_name, f"malformed JSON: {e}") from e
    if not isinstance(value, list):
        raise InvalidParametersError(field_name, "expected a JSON array")
    return value


def _parse_steps(raw: str, field_name: str) -> Tuple[int, ...]:
    steps = _parse_list(raw, field_name)
    if any(isinstance(s, bool) or not isinstance(s, (int, float)) or s != int(s) for s in steps):
        raise InvalidParametersError(field_name, "steps must be whole minutes")
    return tuple(int(s) for s in steps)


def _parse_weights(raw: str) -> Tuple[float, ...]:
    weights = _parse_list(raw, "weights")
    if any(isinstance(x, bool) or not isinstance(x, (int, float)) for x in weights):
        raise InvalidParametersError("weights", "weights must be numbers")
    return tuple(float(x) for x in weights)


def default_row(user_id: str, now: Optional[datetime] = None) -> ParameterRow:
    """Row created the first time a learner's parameters are requested"""
    now = now or _utcnow()
    return from_parameters(user_id, Parameters.default()).model_copy(
        update={"created_at": now, "updated_at": now}
    )


def to_parameters(row: ParameterRow) -> Parameters:
    """
    Build engine Parameters from a stored row

    Raises:
        InvalidParametersError: malformed JSON or out-of-range values
    """
    return Parameters(
        w=_parse_weights(row.weights),
        request_retention=row.request_retention,
        maximum_interval=row.maximum_interval,
        learning_steps=_parse_steps(row.learning_steps, "learning_steps"),
        relearning_steps=_parse_steps(row.relearning_steps, "relearning_steps"),
        graduating_interval=row.graduating_interval,
        easy_interval=row.easy_interval,
        enable_fuzz=row.enable_fuzz == 1,
        fuzz_factor=row.fuzz_factor,
        enable_short_term=row.enable_short_term == 1,
    )


def from_parameters(user_id: str, params: Parameters) -> ParameterRow:
    """Encode engine Parameters as a storable row"""
    return ParameterRow(
        user_id=user_id,
        weights=json.dumps(list(params.w)),
        request_retention=params.request_retention,
        maximum_interval=params.maximum_interval,
        learning_steps=json.dumps(list(params.learning_steps)),
        relearning_steps=json.dumps(list(params.relearning_steps)),
        graduating_interval=params.graduating_interval,
        easy_interval=params.easy_interval,
        enable_fuzz=int(params.enable_fuzz),
        fuzz_factor=params.fuzz_factor,
        enable_short_term=int(params.enable_short_term),
    )


def effective_parameters(
    row: ParameterRow, deck_row: Optional[DeckParameterRow] = None
) -> Parameters:
    """Learner parameters with any deck overrides applied"""
    base = to_parameters(row)
    if deck_row is None:
        return base

    overrides: Dict[str, Any] = {}
    if deck_row.weights:
        overrides["w"] = _parse_weights(deck_row.weights)
    if deck_row.learning_steps:
        overrides["learning_steps"] = _parse_steps(deck_row.learning_steps, "learning_steps")
    if deck_row.relearning_steps:
        overrides["relearning_steps"] = _parse_steps(deck_row.relearning_steps, "relearning_steps")
    if deck_row.enable_fuzz is not None:
        overrides["enable_fuzz"] = deck_row.enable_fuzz == 1
    for name in (
        "request_retention",
        "maximum_interval",
        "graduating_interval",
        "easy_interval",
        "fuzz_factor",
    ):
        value = getattr(deck_row, name)
        if value is not None:
            overrides[name] = value

    return replace(base, **overrides)


def apply_update(
    row: ParameterRow, update: ParametersUpdate, now: Optional[datetime] = None
) -> ParameterRow:
    """
    Apply a partial settings update to a row

    Only fields set on the update are written. The result is validated as a
    whole, so an update that is valid on its own but inconsistent with the
    stored row still raises InvalidParametersError.
    """
    changes = update.changes()
    if not changes:
        return row

    columns: Dict[str, Any] = {}
    for name, value in changes.items():
        if name in ("learning_steps", "relearning_steps"):
            columns[name] = json.dumps(list(value))
        elif name in ("enable_fuzz", "enable_short_term"):
            columns[name] = int(value)
        else:
            columns[name] = value
    columns["updated_at"] = now or _utcnow()

    updated = row.model_copy(update=columns)
    to_parameters(updated)
    logger.info(f"Updated FSRS settings for user {row.user_id}: {sorted(changes)}")
    return updated


def record_optimization(
    row: ParameterRow,
    result: OptimizationResult,
    comparison: WeightComparison,
    now: Optional[datetime] = None,
    deck_row: Optional[DeckParameterRow] = None,
) -> Tuple[Union[ParameterRow, DeckParameterRow], OptimizationHistoryEntry]:
    """
    Store fitted weights and write the audit entry

    A deck-scoped fit lands on the deck's override row; the learner's own
    weights are only replaced by a fit over their whole history.

    Args:
        row: The learner's parameter row
        result: Output of optimize()
        comparison: Output of compare_with_defaults() for the same events
        now: Timestamp for the bookkeeping columns
        deck_row: Deck override row when the fit covered a single deck

    Returns:
        (updated learner or deck row, history entry)

    Raises:
        ValueError: the result did not come from a completed optimization
    """
    if result.status != OptimizationStatus.OPTIMIZED:
        raise ValueError(f"Cannot record optimization with status {result.status.value}")

    now = now or _utcnow()
    weights_before = row.weights
    if deck_row is not None and deck_row.weights:
        weights_before = deck_row.weights

    entry = OptimizationHistoryEntry(
        user_id=row.user_id,
        deck_id=deck_row.deck_id if deck_row is not None else None,
        weights_before=weights_before,
        weights_after=json.dumps(result.weights),
        loss_before=comparison.default_loss,
        loss_after=result.loss,
        improvement_percent=comparison.improvement_percent,
        rmse=result.rmse,
        sample_size=result.sample_size,
        iterations=result.iterations,
        created_at=now,
    )

    if deck_row is not None:
        logger.info(
            f"Stored deck weights for user {row.user_id}, deck {deck_row.deck_id} "
            f"({result.sample_size} reviews)"
        )
        return deck_row.model_copy(
            update={
                "weights": entry.weights_after,
                "last_optimized_at": now,
                "optimization_sample_size": result.sample_size,
                "optimization_loss": result.loss,
            }
        ), entry

    logger.info(f"Stored weights for user {row.user_id} ({result.sample_size} reviews)")
    return row.model_copy(
        update={
            "weights": entry.weights_after,
            "last_optimized_at": now,
            "optimization_sample_size": result.sample_size,
            "optimization_loss": result.loss,
            "optimization_rmse": result.rmse,
            "updated_at": now,
        }
    ), entry


def optimization_window(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Review-log time range fed to the optimizer: the lookback period up to tomorrow"""
    now = now or _utcnow()
    return now - timedelta(days=settings.OPTIMIZER_LOOKBACK_DAYS), now + timedelta(days=1)
