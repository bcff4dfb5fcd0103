"""
Petalwise - Prompt Builder
===========================
Pure functions that assemble the generation prompt from a
``BatchQuery`` and the retrieved contexts.  No I/O, no clock access
unless ``now`` is omitted, so every prompt is reproducible in tests.

Layout of a prediction prompt::

    [context preamble + one block per context + guidance]   (only if contexts)
    batch details
    JSON format instructions
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone

from petalwise.config.prompt_templates import BATCH_DETAILS_TEMPLATE, CLOSING_NOTE_WITH_CONTEXT, CONTEXT_ENTRY_TEMPLATE, CONTEXT_GUIDANCE, CONTEXT_PREAMBLE, JSON_FORMAT_INSTRUCTIONS, NOT_SPECIFIED, REASONING_HINT_PLAIN, REASONING_HINT_WITH_CONTEXT
from petalwise.src.models.knowledge import RetrievedContext
from petalwise.src.models.prediction import BatchQuery


def _or_default(value: object) -> str:
    if value is None:
        return NOT_SPECIFIED
    text = str(value).strip()
    return text or NOT_SPECIFIED


def _context_header(ctx: RetrievedContext) -> str:
    header = ctx.flower_type.upper()
    return f"{header} ({ctx.variety})" if ctx.variety else header


def format_context_block(contexts: Sequence[RetrievedContext]) -> str:
    """
    Render retrieved contexts as labelled evidence blocks.

    Returns ``""`` when there is nothing to inject.
    """
    if not contexts:
        return ""

    blocks = [
        CONTEXT_ENTRY_TEMPLATE.format(header=_context_header(ctx), care_requirements=ctx.care_requirements, optimal_conditions=ctx.optimal_conditions, common_issues=ctx.common_issues, vase_life_tips=ctx.vase_life_tips, source=ctx.sources[0].name or "Unknown")
        for ctx in contexts
    ]
    return "\n\n".join(blocks)


def format_batch_details(batch: BatchQuery, now: datetime) -> str:
    """Render the batch attributes; absent values read ``Not specified``."""
    quantity = NOT_SPECIFIED
    if batch.quantity is not None:
        quantity = f"{batch.quantity:g} {batch.unit_of_measure or ''}".strip()

    shelf_life = NOT_SPECIFIED
    if batch.expected_shelf_life is not None:
        shelf_life = f"{batch.expected_shelf_life:g} {batch.shelf_life_unit}"

    return BATCH_DETAILS_TEMPLATE.format(
        flower_type=batch.flower_type.strip(),
        variety=_or_default(batch.variety),
        quantity=quantity,
        supplier=_or_default(batch.supplier),
        initial_condition=_or_default(batch.initial_condition),
        storage_environment=_or_default(batch.storage_environment),
        floral_food="Yes" if batch.floral_food_used else "No",
        vase_cleanliness=_or_default(batch.vase_cleanliness),
        water_type=_or_default(batch.water_type),
        humidity_level=_or_default(batch.humidity_level),
        expected_shelf_life=shelf_life,
        current_date=now.isoformat(),
        dynamic_spoilage_date=_or_default(batch.dynamic_spoilage_date),
    )


def build_prediction_prompt(batch: BatchQuery, contexts: Sequence[RetrievedContext], now: datetime | None = None) -> str:
    """
    Assemble the full user prompt for one prediction.

    Parameters
    ----------
    batch
        The batch being predicted on.
    contexts
        Retrieved evidence; may be empty, in which case the prompt
        carries no augmentation at all.
    now
        Timestamp written as ``Current Date``.  Defaults to UTC now.
    """
    now = now or datetime.now(timezone.utc)
    sections: list[str] = []

    block = format_context_block(contexts)
    if block:
        sections.extend((CONTEXT_PREAMBLE, block, CONTEXT_GUIDANCE))

    sections.append(format_batch_details(batch, now))
    sections.append(JSON_FORMAT_INSTRUCTIONS.format(reasoning_hint=REASONING_HINT_WITH_CONTEXT if block else REASONING_HINT_PLAIN, closing_note=CLOSING_NOTE_WITH_CONTEXT if block else ""))
    return "\n\n".join(sections)
