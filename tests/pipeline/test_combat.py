"""Tests for combat encounter detection."""

from chat_archive.models import ActorRoster, EventRecord
from chat_archive.pipeline.combat import CombatDetector, casualty_name

ROSTER = ActorRoster(players=["Valeros", "Seoni", "Kyra"], npcs=["Goblin"])


def _say(rid, ts, body, author="Gamemaster"):
    return EventRecord(id=rid, timestamp=ts, author_name=author, body_text=body, style_kind="system")


def _roll(rid, ts, author, body, total, roll_type, **structured):
    return EventRecord(
        id=rid,
        timestamp=ts,
        author_name=author,
        body_text=body,
        roll_payload=[{"formula": "1d20", "total": total,
                       "terms": [{"faces": 20, "number": 1, "results": [total]}]}],
        structured_annotations={"roll_type": roll_type, **structured},
    )


def _attack(rid, ts, author, target, total, result="Hit!", **structured):
    return _roll(rid, ts, author, f"Strike vs {target}. {result}", total, "attack-roll",
                 target=target, **structured)


def _damage(rid, ts, author, total):
    return _roll(rid, ts, author, "Damage", total, "damage-roll")


def _two_round_fight():
    return [
        _say("r1", 0, "Roll initiative!"),
        _attack("r2", 1000, "Valeros", "Goblin", 20),
        _damage("r3", 2000, "Valeros", 8),
        _attack("r4", 3000, "Goblin", "Valeros", 18),
        _damage("r5", 4000, "Goblin", 4),
        _say("r6", 5000, "Round 2"),
        _attack("r7", 6000, "Valeros", "Goblin", 25),
        _damage("r8", 7000, "Valeros", 10),
        _attack("r9", 8000, "Goblin", "Valeros", 15),
        _damage("r10", 9000, "Goblin", 3),
        _say("r11", 10000, "Combat ended"),
    ]


# ── Closure ─────────────────────────────────────────────────


def test_two_rounds_closed_by_end_signal():
    encounters = CombatDetector(ROSTER).detect(_two_round_fight())

    assert len(encounters) == 1
    fight = encounters[0]
    assert fight.end_reason == "signal"
    assert len(fight.rounds) == 2
    assert [r.number for r in fight.rounds] == [1, 2]
    assert fight.original_record_ids == [f"r{i}" for i in range(1, 12)]
    assert fight.start_time == 0
    assert fight.end_time == 10000


def test_damage_attaches_to_preceding_attack():
    fight = CombatDetector(ROSTER).detect(_two_round_fight())[0]

    first, second = fight.rounds
    assert [(a.actor, a.kind, a.target, a.damage) for a in first.actions] == [
        ("Valeros", "attack", "Goblin", 8),
        ("Goblin", "attack", "Valeros", 4),
    ]
    assert [(a.actor, a.damage) for a in second.actions] == [("Valeros", 10), ("Goblin", 3)]
    assert fight.stats.total_damage_dealt == 18
    assert fight.stats.total_damage_taken == 7


def test_participants_sides_and_title():
    fight = CombatDetector(ROSTER, scene_name="Sandpoint").detect(_two_round_fight())[0]
    assert fight.participants == ["Valeros", "Goblin"]
    assert fight.allies == ["Valeros"]
    assert fight.enemies == ["Goblin"]
    assert fight.title == "Goblin Encounter"
    assert fight.location == "Sandpoint"
    assert fight.outcome == "Unknown"


def test_timeout_closes_at_last_absorbed_record():
    records = [
        _say("r1", 0, "Roll initiative!"),
        _attack("r2", 10_000, "Valeros", "Goblin", 20),
        _say("r3", 200_000, "The goblin attacks again", author="Goblin"),
    ]
    encounters = CombatDetector(ROSTER, timeout_ms=60_000).detect(records)

    assert len(encounters) == 1
    assert encounters[0].end_reason == "timeout"
    assert encounters[0].end_time == 10_000
    assert "r3" not in encounters[0].original_record_ids


def test_record_after_timeout_can_open_next_encounter():
    records = [
        _say("r1", 0, "Roll initiative!"),
        _attack("r2", 10_000, "Valeros", "Goblin", 20),
        _say("r3", 200_000, "Roll initiative!"),
        _attack("r4", 201_000, "Seoni", "Goblin", 12),
    ]
    encounters = CombatDetector(ROSTER, timeout_ms=60_000).detect(records)
    assert [e.end_reason for e in encounters] == ["timeout", "exhausted"]
    assert encounters[1].original_record_ids == ["r3", "r4"]


def test_start_phrase_restarts():
    records = [
        _say("r1", 0, "Roll initiative!"),
        _attack("r2", 1000, "Valeros", "Goblin", 20),
        _say("r3", 2000, "More goblins! Roll for initiative!"),
        _attack("r4", 3000, "Kyra", "Goblin", 14),
        _say("r5", 4000, "Combat has ended"),
    ]
    encounters = CombatDetector(ROSTER).detect(records)
    assert [e.end_reason for e in encounters] == ["restart", "signal"]
    assert encounters[0].original_record_ids == ["r1", "r2"]
    assert encounters[1].original_record_ids == ["r3", "r4", "r5"]


def test_initiative_rolls_do_not_restart():
    records = [
        _say("r1", 0, "Roll initiative!"),
        _roll("r2", 1000, "Valeros", "Initiative", 19, "initiative", initiative_roll=True),
        _roll("r3", 2000, "Goblin", "Initiative", 11, "initiative", initiative_roll=True),
        _say("r4", 3000, "Combat ended"),
    ]
    encounters = CombatDetector(ROSTER).detect(records)
    assert len(encounters) == 1
    assert encounters[0].participants == ["Valeros", "Goblin"]


def test_exhausted_stream():
    records = [_say("r1", 0, "Roll initiative!"), _attack("r2", 1000, "Valeros", "Goblin", 20)]
    encounters = CombatDetector(ROSTER).detect(records)
    assert encounters[0].end_reason == "exhausted"
    assert encounters[0].end_time == 1000


def test_nothing_opens_without_start_signal():
    records = [_attack("r1", 0, "Valeros", "Goblin", 20), _damage("r2", 1000, "Valeros", 5)]
    assert CombatDetector(ROSTER).detect(records) == []


# ── Actions ─────────────────────────────────────────────────


def test_damage_after_miss_is_standalone():
    records = [
        _say("r1", 0, "Roll initiative!"),
        _attack("r2", 1000, "Goblin", "Valeros", 8, result="Miss."),
        _damage("r3", 2000, "Seoni", 6),
    ]
    actions = CombatDetector(ROSTER).detect(records)[0].rounds[0].actions
    assert [(a.kind, a.damage) for a in actions] == [("attack", None), ("damage", 6)]
    assert actions[0].hit is False


def test_critical_hit_key_moment():
    records = [
        _say("r1", 0, "Roll initiative!"),
        _roll("r2", 1000, "Seoni", "Produce Flame vs Goblin", 29, "spell-attack-roll",
              target="Goblin", outcome="criticalSuccess"),
        _damage("r3", 2000, "Seoni", 7),
    ]
    fight = CombatDetector(ROSTER).detect(records)[0]
    assert fight.stats.critical_actions == 1
    assert "Seoni scored a critical hit on Goblin (7 damage)" in fight.key_moments


def test_text_only_attack():
    records = [
        _say("r1", 0, "Roll initiative!"),
        _say("r2", 1000, "Goblin attacks Valeros and hits for 5 damage", author="Goblin"),
    ]
    action = CombatDetector(ROSTER).detect(records)[0].rounds[0].actions[0]
    assert action.actor == "Goblin"
    assert action.kind == "attack"
    assert action.hit is True


# ── Outcome and title ───────────────────────────────────────


def test_enemy_casualty_is_victory():
    records = [_say("r1", 0, "Roll initiative!"), _say("r2", 1000, "The Goblin dies."),
               _say("r3", 2000, "Combat ended")]
    fight = CombatDetector(ROSTER).detect(records)[0]
    assert fight.casualties == ["Goblin"]
    assert fight.outcome == "Victory"
    assert "Goblin was defeated" in fight.key_moments


def test_player_casualty_is_defeat():
    records = [_say("r1", 0, "Roll initiative!"), _say("r2", 1000, "Valeros falls unconscious")]
    fight = CombatDetector(ROSTER).detect(records)[0]
    assert fight.casualties == ["Valeros"]
    assert fight.outcome == "Defeat"


def test_title_keywords_and_fallback():
    ambush = [_say("r1", 0, "Ambush! Roll initiative!")]
    assert CombatDetector(ROSTER).detect(ambush)[0].title == "Ambush"

    players_only = [_say("r1", 0, "Roll initiative!"), _attack("r2", 1000, "Valeros", "Kyra", 10)]
    assert CombatDetector(ROSTER).detect(players_only)[0].title == "Combat Encounter"


def test_unknown_names_title_after_known_npcs():
    records = [
        _say("r1", 0, "Roll initiative!"),
        _attack("r2", 1000, "Bandit 2", "Valeros", 10),
        _attack("r3", 2000, "Goblin", "Valeros", 10),
    ]
    assert CombatDetector(ROSTER).detect(records)[0].title == "Goblin Encounter"

    records = records[:2]
    assert CombatDetector(ROSTER).detect(records)[0].title == "Bandit Encounter"


def test_casualty_name_sources():
    assert casualty_name(_say("r1", 0, "The Goblin Warchanter dies")) == "Goblin Warchanter"
    assert casualty_name(_say("r1", 0, "dropped to 0 hp", author="Kyra")) == "Kyra"
    assert casualty_name(_say("r1", 0, "The goblin dies.")) == "Goblin"
    assert casualty_name(_say("r1", 0, "Valeros swings. A skeleton 2 falls unconscious")) == "Skeleton 2"


def test_lowercase_casualty_is_not_the_narrator():
    records = [_say("r1", 0, "Roll initiative!"), _say("r2", 1000, "The goblin dies.")]
    fight = CombatDetector(ROSTER).detect(records)[0]
    assert fight.casualties == ["Goblin"]
    assert fight.outcome == "Victory"


def test_first_round_tag_sets_round_number():
    fight = CombatDetector(ROSTER).detect([_say("r1", 0, "Roll initiative! Round 2 begins")])[0]
    assert [r.number for r in fight.rounds] == [2]
