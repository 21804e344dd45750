"""Create a demo campaign with a synthetic session log for development/testing."""

import shutil
from typing import Any

from chat_archive import storage

DEMO_PLAYERS = ["Valeros", "Seoni", "Kyra"]
DEMO_NPCS = ["Goblin", "Goblin Warchanter", "Ameiko"]

_SECOND = 1000


def _record(rid: str, ts: int, author: str, body: str, **extra: Any) -> dict[str, Any]:
    return {"id": rid, "timestamp": ts, "author_name": author, "body_text": body, **extra}


def _roll(formula: str, total: int, results: list[int], modifier: int, label: str) -> list[dict[str, Any]]:
    return [{
        "formula": formula,
        "total": total,
        "terms": [
            {"faces": int(formula.split("d")[1].split("+")[0]), "number": int(formula.split("d")[0]), "results": results},
            {"operator": "+"},
            {"number": modifier, "flavor": label},
        ],
    }]


def demo_session_log(start: int = 1_700_000_000_000) -> list[dict[str, Any]]:
    """A short evening at the Rusty Dragon: talk, a goblin fight, loot."""
    t = start
    log = [
        _record("d01", t, "Ameiko", "<p>Welcome back to the Rusty Dragon!</p>", style_kind="in-character"),
        _record("d02", t + 20 * _SECOND, "Valeros", "<p>Another round of ale, if you please.</p>",
                style_kind="in-character"),
        _record("d03", t + 40 * _SECOND, "Seoni", "<em>glances at the door</em>", style_kind="emote"),
        _record("d04", t + 60 * _SECOND, "Gamemaster", "<p>Goblins burst in! Roll initiative!</p>",
                style_kind="system"),
        _record("d05", t + 70 * _SECOND, "Valeros", "Initiative", roll_payload=_roll("1d20+5", 19, [14], 5, "Perception"),
                flavor_text="Initiative", structured_annotations={"core": {"initiativeRoll": True}}),
        _record("d06", t + 80 * _SECOND, "Goblin", "Initiative", roll_payload=_roll("1d20+2", 11, [9], 2, "Perception"),
                flavor_text="Initiative", structured_annotations={"core": {"initiativeRoll": True}}),
        _record("d07", t + 100 * _SECOND, "Valeros", "Longsword Strike vs Goblin. Hit!",
                roll_payload=_roll("1d20+7", 22, [15], 7, "Strength"), flavor_text="Attack Roll",
                structured_annotations={"roll_type": "attack-roll", "target": "Goblin"}),
        _record("d08", t + 110 * _SECOND, "Valeros", "Longsword Damage",
                roll_payload=_roll("1d8+4", 9, [5], 4, "Strength"), flavor_text="Damage Roll",
                structured_annotations={"roll_type": "damage-roll", "target": "Goblin"}),
        _record("d09", t + 130 * _SECOND, "Goblin", "Dogslicer Strike vs Valeros. Miss.",
                roll_payload=_roll("1d20+6", 12, [6], 6, "Dexterity"), flavor_text="Attack Roll",
                structured_annotations={"roll_type": "attack-roll", "target": "Valeros"}),
        _record("d10", t + 150 * _SECOND, "Gamemaster", "<p>Round 2</p>", style_kind="system"),
        _record("d11", t + 160 * _SECOND, "Seoni", "Produce Flame vs Goblin. Critical hit!",
                roll_payload=_roll("1d20+9", 29, [20], 9, "Charisma"), flavor_text="Spell Attack Roll",
                structured_annotations={"roll_type": "spell-attack-roll", "outcome": "criticalSuccess"}),
        _record("d12", t + 170 * _SECOND, "Seoni", "Produce Flame Damage",
                roll_payload=_roll("2d4+0", 7, [3, 4], 0, "Fire"), flavor_text="Damage Roll",
                structured_annotations={"roll_type": "damage-roll"}),
        _record("d13", t + 175 * _SECOND, "Gamemaster", "<p>The Goblin dies in a burst of flame.</p>",
                style_kind="system"),
        _record("d14", t + 180 * _SECOND, "Gamemaster", "<p>All enemies defeated. Combat ended.</p>",
                style_kind="system"),
        _record("d15", t + 240 * _SECOND, "Kyra", "<p>Kyra finds 150 gold in the goblin's pouch.</p>",
                style_kind="emote"),
        _record("d16", t + 300 * _SECOND, "Gamemaster", "<p>Everyone gains 80 XP.</p>", style_kind="system"),
        _record("d17", t + 320 * _SECOND, "Kyra", "<p>Who sent them?</p>", style_kind="in-character",
                whisper_targets=["Gamemaster"]),
    ]
    return log


def create_demo_data() -> None:
    """Wipe existing campaigns and create a fresh demo campaign with pending records."""
    if storage.campaigns_dir().exists():
        shutil.rmtree(storage.campaigns_dir())
    storage.campaigns_dir().mkdir(parents=True, exist_ok=True)

    campaign = storage.create_campaign(
        "Rise of the Runelords",
        players=DEMO_PLAYERS,
        npcs=DEMO_NPCS,
        scene_name="The Rusty Dragon",
    )
    log = demo_session_log()
    storage.append_records(campaign["slug"], log)
    print(f"Created demo campaign '{campaign['slug']}' with {len(log)} pending records.")
