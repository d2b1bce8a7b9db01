"""Generation logger for the budget pipeline.

Provides highly visible, formatted logging for budget generation runs
with distinctive visual markers that stand out in log streams.
"""

import json
import structlog
from typing import Dict, Any, Optional
from datetime import datetime, timezone

logger = structlog.get_logger()

# Visual markers for different log types
BANNER_WIDTH = 80
AGENT_BANNER_CHAR = "═"
ITEM_BANNER_CHAR = "─"
VALIDATION_BANNER_CHAR = "░"
PIPELINE_BANNER_CHAR = "█"


def _create_banner(char: str, text: str, width: int = BANNER_WIDTH) -> str:
    """Create a centered banner with given character."""
    text_with_spaces = f" {text} "
    padding = (width - len(text_with_spaces)) // 2
    return char * padding + text_with_spaces + char * (width - padding - len(text_with_spaces))


def _format_json(data: Dict[str, Any], indent: int = 2) -> str:
    """Format dictionary as pretty JSON string."""
    try:
        return json.dumps(data, indent=indent, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(data)


def _truncate_large_values(data: Dict[str, Any], max_length: int = 500) -> Dict[str, Any]:
    """Truncate large string values for display purposes."""
    if not isinstance(data, dict):
        return data

    result = {}
    for key, value in data.items():
        if isinstance(value, str) and len(value) > max_length:
            result[key] = value[:max_length] + f"... [truncated {len(value) - max_length} chars]"
        elif isinstance(value, dict):
            result[key] = _truncate_large_values(value, max_length)
        elif isinstance(value, list) and len(value) > 10:
            result[key] = value[:10] + [f"... and {len(value) - 10} more items"]
        else:
            result[key] = value
    return result


def _preview(text: str, max_length: int = 60) -> str:
    text = text or ""
    return text[:max_length] + "..." if len(text) > max_length else text


def log_generation_start(session_id: Optional[str], narrative: str, mode: str = "flat") -> None:
    """Log budget generation start with prominent banner."""
    timestamp = datetime.now(timezone.utc).isoformat()

    print("\n")
    print(PIPELINE_BANNER_CHAR * BANNER_WIDTH)
    print(_create_banner(PIPELINE_BANNER_CHAR, "BUDGET GENERATION STARTED"))
    print(PIPELINE_BANNER_CHAR * BANNER_WIDTH)
    print(f"║ Session ID : {session_id or '-'}")
    print(f"║ Timestamp  : {timestamp}")
    print(f"║ Mode       : {mode}")
    print(f"║ Request    : \"{_preview(narrative)}\"")
    print(PIPELINE_BANNER_CHAR * BANNER_WIDTH)
    print("\n")

    logger.info(
        "generation_start_logged",
        session_id=session_id,
        mode=mode,
        narrative_length=len(narrative or "")
    )


def log_generation_complete(
    session_id: Optional[str],
    item_count: int,
    chapter_count: int,
    total: float,
    duration_ms: int
) -> None:
    """Log budget generation completion with summary."""
    timestamp = datetime.now(timezone.utc).isoformat()

    print("\n")
    print(PIPELINE_BANNER_CHAR * BANNER_WIDTH)
    print(_create_banner(PIPELINE_BANNER_CHAR, "✓ BUDGET GENERATED"))
    print(PIPELINE_BANNER_CHAR * BANNER_WIDTH)
    print(f"║ Session ID : {session_id or '-'}")
    print(f"║ Timestamp  : {timestamp}")
    print(f"║ Duration   : {duration_ms:,} ms ({duration_ms / 1000:.2f}s)")
    print(f"║ Chapters   : {chapter_count}")
    print(f"║ Items      : {item_count}")
    print(f"║ Total      : {total:,.2f} €")
    print(PIPELINE_BANNER_CHAR * BANNER_WIDTH)
    print("\n")

    logger.info(
        "generation_complete_logged",
        session_id=session_id,
        item_count=item_count,
        chapter_count=chapter_count,
        total=total,
        duration_ms=duration_ms
    )


def log_generation_failed(session_id: Optional[str], error: str) -> None:
    """Log budget generation failure."""
    print("\n")
    print("!" * BANNER_WIDTH)
    print(_create_banner("!", "✗ BUDGET GENERATION FAILED"))
    print("!" * BANNER_WIDTH)
    print(f"! Session ID : {session_id or '-'}")
    print(f"! Error      : {error}")
    print("!" * BANNER_WIDTH)
    print("\n")

    logger.error(
        "generation_failed_logged",
        session_id=session_id,
        error=error
    )


def log_triage_decision(task: str, tool: str, intent: Optional[str], reasoning: str) -> None:
    """Log which path the triage agent picked for a task."""
    print(AGENT_BANNER_CHAR * BANNER_WIDTH)
    print(_create_banner(AGENT_BANNER_CHAR, f"▶ TRIAGE → {tool}"))
    print(f"║ Task      : \"{_preview(task)}\"")
    print(f"║ Intent    : {intent or '-'}")
    print(f"║ Reasoning : {_preview(reasoning, 120)}")
    print(AGENT_BANNER_CHAR * BANNER_WIDTH)

    logger.info(
        "triage_decision_logged",
        tool=tool,
        intent=intent,
        task=_preview(task)
    )


def log_item_resolved(
    order: int,
    total_items: int,
    description: str,
    quantity: float,
    unit_price: float,
    total_price: float,
    is_estimate: bool
) -> None:
    """Log a resolved line item."""
    marker = "≈ ESTIMATE" if is_estimate else "✓ PRICED"

    print(ITEM_BANNER_CHAR * BANNER_WIDTH)
    print(_create_banner(ITEM_BANNER_CHAR, f"ITEM {order}/{total_items} {marker}"))
    print(f"│ {_preview(description, 70)}")
    print(f"│ {quantity:g} × {unit_price:,.2f} € = {total_price:,.2f} €")
    print(ITEM_BANNER_CHAR * BANNER_WIDTH)

    logger.info(
        "item_resolved_logged",
        order=order,
        total_items=total_items,
        total_price=total_price,
        is_estimate=is_estimate
    )


def log_validation_report(session_id: Optional[str], report: Dict[str, Any], truncate: bool = True) -> None:
    """Log the advisory validation report with full formatted data."""
    display_output = _truncate_large_values(report) if truncate else report
    formatted_output = _format_json(display_output)

    print("\n")
    print(VALIDATION_BANNER_CHAR * BANNER_WIDTH)
    print(_create_banner(VALIDATION_BANNER_CHAR, "VALIDATION REPORT"))
    print(VALIDATION_BANNER_CHAR * BANNER_WIDTH)
    for line in formatted_output.split('\n'):
        print(f"  {line}")
    print(VALIDATION_BANNER_CHAR * BANNER_WIDTH)
    print("\n")

    logger.info(
        "validation_report_logged",
        session_id=session_id,
        is_valid=report.get("isValid"),
        overall_score=report.get("overallScore"),
        issues_count=len(report.get("issues", []))
    )
