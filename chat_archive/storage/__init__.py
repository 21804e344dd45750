"""File-based JSON storage using a tree of slugified objects.

Data layout:
  data/
    config.json                 App settings (storage backend, compression switches)
    campaigns/
      <slug>.json               Campaign metadata, roster, current session state
      <slug>/                   Child resources:
        records.json            Pending chat records (not yet compressed)
        archives/<id>.json      Document-backend archives
        archive-index.json      Flat-file-backend index records
        archive-files/<id>.json Flat-file-backend entries

Slug rules: title → Unicode normalize → strip non-ASCII → lowercase →
replace non-alnum runs with hyphen → strip leading/trailing hyphens.

Session state lives on the campaign:
  {"number", "name", "started_at" (ms), "last_pass_at" (ms), "combat_active"}

Config: get_config() returns defaults merged with stored values.
update_config() overwrites known keys and ignores the rest.
"""

# Re-export all public symbols so `from chat_archive import storage` keeps working.

from .core import (  # noqa: F401
    campaign_dir,
    campaigns_dir,
    data_dir,
    init_storage,
    slugify,
)

from .campaigns import (  # noqa: F401
    create_campaign,
    delete_campaign,
    get_campaign,
    list_campaigns,
    save_campaign,
    update_campaign,
)

from .records import (  # noqa: F401
    append_records,
    get_records,
    remove_records,
)

from .sessions import (  # noqa: F401
    get_session,
    record_pass,
    set_combat_active,
    start_session,
)

from .backends import (  # noqa: F401
    ArchiveBackend,
    ArchiveNotFoundError,
    DocumentBackend,
    FlatFileBackend,
    StorageError,
    all_backends,
    get_backend,
    new_archive_id,
)

from .config import (  # noqa: F401
    STORAGE_TYPES,
    get_config,
    update_config,
)
