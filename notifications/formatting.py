"""
Digest Content Formatting.

============================================================
PURPOSE
============================================================
Plain-text sections written into daily digest records.

- Mapper section (accurate): per map, one block per record
- Mapper section (inaccurate): per map, activity line only
- Driver section: one line per overtaken position

============================================================
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional

from workers.records import MapResult


def format_time(milliseconds: int) -> str:
    """Format a race time as m:ss.mmm."""
    minutes, remainder = divmod(int(milliseconds), 60_000)
    seconds, millis = divmod(remainder, 1000)
    return f"{minutes}:{seconds:02d}.{millis:03d}"


def format_timestamp(epoch_seconds: int) -> str:
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def format_mapper_content(
    results: List[MapResult],
    names: Optional[Dict[str, str]] = None,
    max_records_per_map: int = 20,
    popular_map_message: str = "This map has more than 20 New Times",
) -> str:
    """
    Accurate-mode mapper section.

    Maps with more than max_records_per_map records are
    summarized with the popular-map message.
    """
    names = names or {}
    blocks = []

    for result in results:
        lines = [f"🗺️ Map: {result.map_name}"]
        if len(result.records) > max_records_per_map:
            lines.append(f"  {popular_map_message}")
        else:
            for record in result.records:
                player = record.player_name or names.get(record.account_id) or record.account_id
                lines.append(f"  🏎️ Player: {player}")
                lines.append(f"  📍 Zone: {record.zone_name}")
                lines.append(f"  🥇 Position: {record.position}")
                lines.append(f"  ⏱️ Time: {format_time(record.score)}")
                lines.append(f"  📅 Date: {format_timestamp(record.timestamp)}")
                lines.append("")
        blocks.append("\n".join(lines).rstrip())

    return "\n\n".join(blocks)


def format_activity_content(map_names: List[str]) -> str:
    """Inaccurate-mode mapper section."""
    return "\n\n".join(
        f"🗺️ Map: {name}\n  New times have been driven on this map" for name in map_names
    )


def format_position_change(
    map_name: str,
    player_name: str,
    old_position: int,
    new_position: int,
    old_score: int,
    new_score: int,
) -> str:
    return (
        f"🗺️ {map_name}: {player_name} moved from #{old_position} to #{new_position} "
        f"({format_time(old_score)} -> {format_time(new_score)})"
    )
