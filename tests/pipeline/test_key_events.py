from chat_archive.models import EventRecord
from chat_archive.pipeline.key_events import key_event_reason, key_event_reasons


def _rec(body, flavor=None, **structured):
    return EventRecord(id="r1", timestamp=0, body_text=body, flavor_text=flavor,
                       structured_annotations=structured)


def test_high_level_spell_by_annotation():
    record = _rec("Bob casts Fireball (4th-level spell)", spell_level=4)
    assert key_event_reason(record) == "high-level spell"


def test_high_level_spell_by_text():
    assert key_event_reason(_rec("Seoni casts a 6th-rank spell")) == "high-level spell"


def test_low_level_spell_alone_is_not_key():
    assert key_event_reason(_rec("Seoni casts a 3rd-level spell", spell_level=3)) is None


def test_critical_phrase_outranks_spell_level():
    record = _rec("Critical Success! Seoni casts a 3rd-level spell", spell_level=3)
    assert key_event_reasons(record) == ["critical roll"]


def test_outcome_tag():
    assert key_event_reason(_rec("Strike", outcome="criticalFailure")) == "critical outcome"


def test_critical_style_class_in_markup():
    record = _rec('<span class="dice-total critical-success">22</span>')
    assert key_event_reason(record) == "critical roll"


def test_dying_and_recovery():
    assert key_event_reason(_rec("Valeros is dying")) == "dying or death"
    assert key_event_reason(_rec("Kyra attempts a recovery check")) == "death save"


def test_hero_point():
    assert key_event_reason(_rec("Rerolls the save", hero_point=True)) == "hero point"
    assert key_event_reason(_rec("Seoni spends a Hero Point")) == "hero point"


def test_experience():
    assert key_event_reason(_rec("Everyone gains 80 XP")) == "experience"
    assert key_event_reason(_rec("Valeros levels up!")) == "experience"


def test_currency_threshold():
    assert key_event_reason(_rec("Goblin receives 150 gold")) == "treasure"
    assert key_event_reason(_rec("The chest holds 1,200 gp")) == "treasure"
    assert key_event_reason(_rec("Kyra pays 5 gold for the room")) is None


def test_treasure_words():
    assert key_event_reason(_rec("They uncover an ancient relic")) == "treasure"


def test_conditions():
    assert key_event_reason(_rec("Valeros is frightened 2")) == "condition"
    assert key_event_reason(_rec("Takes 2 persistent damage")) == "condition"


def test_all_reasons_in_priority_order():
    record = _rec("The ogre dies and drops 300 gold")
    assert key_event_reasons(record) == ["dying or death", "treasure"]


def test_ordinary_speech_is_not_key():
    assert key_event_reasons(_rec("Welcome back to the Rusty Dragon!")) == []
