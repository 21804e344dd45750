"""Classification, combat detection and compression pipeline.

One pass over an ordered batch of chat records:
  1. Roll analysis — dice payload (or rendered roll text) into a structured
     result: type, total, dice, labelled modifiers, target, outcome.
  2. Classification — additive categories (combat, roll, speech, emote,
     whispers, system, healing, items, important; "all" when none fire),
     the always-preserve critical flag and the key-event rule table.
     The combat-active flag is threaded record to record.
  3. Combat detection — Idle/InEncounter state machine over the combat
     records with end-phrase, timeout and restart closure.
  4. Entries — one combat summary per encounter, then critical records,
     then everything else, sorted by (timestamp, input position).
  5. Aggregation — statistics and search index; merging a pass into an
     existing archive is idempotent through the consumed record ids.

Record format (EventRecord):
  {"id", "timestamp" (ms), "author_name", "body_text" (HTML), "flavor_text",
   "style_kind", "roll_payload": [{"formula", "total", "terms", "flavor"}],
   "structured_annotations": {...}, "whisper_targets": [...]}
"""

from .aggregate import (  # noqa: F401
    build_search_index,
    compute_statistics,
    merge_archive,
)
from .classifier import (  # noqa: F401
    CombatState,
    classify_record,
    is_combat_end,
    is_combat_start,
)
from .combat import CombatDetector  # noqa: F401
from .core import PipelineError, run_compression  # noqa: F401
from .key_events import key_event_reason, key_event_reasons  # noqa: F401
from .rolls import (  # noqa: F401
    analyze_roll,
    identify_roll_type,
    is_roll,
    roll_summary,
    zip_modifier_labels,
)
