from chat_archive.models import EventRecord
from chat_archive.pipeline.classifier import (
    CombatState,
    classify_record,
    is_combat_end,
    is_combat_start,
)
from chat_archive.pipeline.rolls import analyze_roll

ATTACK_PAYLOAD = [{
    "formula": "1d20+7",
    "total": 22,
    "terms": [{"faces": 20, "number": 1, "results": [15]}, {"operator": "+"}, {"number": 7}],
}]

ACTIVE = CombatState(active=True)


def _rec(body="", style="other", **extra):
    return EventRecord(id="r1", timestamp=0, author_name="Valeros", body_text=body, style_kind=style, **extra)


def _classify(record, combat=None):
    return classify_record(record, combat, analyze_roll(record))


# ── Combat state ────────────────────────────────────────────


def test_start_and_end_signals():
    assert is_combat_start(_rec("<p>Goblins burst in! Roll initiative!</p>"))
    assert is_combat_start(_rec("Initiative", structured_annotations={"core": {"initiativeRoll": True}}))
    assert not is_combat_start(_rec("Another round of ale"))
    assert is_combat_end(_rec("All enemies defeated."))
    assert not is_combat_end(_rec("The goblin flees"))


def test_state_transitions():
    idle = CombatState()
    start = _rec("Combat has started")
    end = _rec("Combat is over")

    assert idle.entering(start).active
    assert idle.entering(end) is idle
    assert ACTIVE.leaving(end).active is False
    assert ACTIVE.leaving(start) is ACTIVE


# ── Categories ──────────────────────────────────────────────


def test_in_character_attack_in_combat_is_combat_and_roll():
    record = _rec(
        "Longsword Strike vs Goblin",
        style="in-character",
        roll_payload=ATTACK_PAYLOAD,
        structured_annotations={"roll_type": "attack-roll"},
    )
    result = _classify(record, ACTIVE)
    assert result.categories == ["combat", "roll", "speech"]


def test_no_combat_category_outside_combat():
    record = _rec("Longsword Strike vs Goblin", roll_payload=ATTACK_PAYLOAD,
                  structured_annotations={"roll_type": "attack-roll"})
    assert "combat" not in _classify(record, CombatState()).categories
    assert "combat" not in _classify(record, None).categories
    assert "roll" in _classify(record, None).categories


def test_combat_words_and_casualties_in_combat():
    assert "combat" in _classify(_rec("The ogre attacks Kyra"), ACTIVE).categories
    assert "combat" in _classify(_rec("Round 3"), ACTIVE).categories
    assert "combat" in _classify(_rec("The Goblin dies"), ACTIVE).categories
    assert "combat" not in _classify(_rec("Kyra hums a tune"), ACTIVE).categories


def test_sentinel_category():
    assert _classify(_rec("...")).categories == ["all"]


def test_style_categories():
    assert _classify(_rec("Hello", style="emote")).categories == ["emote"]
    assert _classify(_rec("Brb", style="out-of-character")).categories == ["system"]
    whisper = _rec("Who sent them?", style="in-character", whisper_targets=["Gamemaster"])
    assert _classify(whisper).categories == ["speech", "whispers"]


def test_content_categories_are_additive():
    result = _classify(_rec("The cleric heals Valeros and hands him the gold. Important!"))
    assert result.categories == ["healing", "items", "important"]


def test_gold_transfer_is_items_and_key_event():
    result = _classify(_rec("Goblin receives 150 gold"))
    assert "items" in result.categories
    assert result.is_key_event
    assert result.key_event_reason == "treasure"


# ── Critical records ────────────────────────────────────────


def test_critical_phrases():
    assert _classify(_rec("Critical hit!")).is_critical
    assert _classify(_rec("Everyone gains 80 XP.")).is_critical
    assert _classify(_rec("Kyra falls unconscious")).is_critical


def test_xp_needs_a_whole_word():
    assert not _classify(_rec("I expect trouble")).is_critical


def test_malformed_flag_is_carried():
    record = _rec("???")
    assert classify_record(record, malformed=True).malformed
    assert not classify_record(record).malformed
