"""FastMCP server exposing archive lookup as MCP tools.

Tools:
  - search_archive(campaign, query, ...)       — matching archived entries
  - session_highlights(campaign, session)      — key events of a session

Storage must be initialised first; running as __main__ uses DATA_DIR or
./data.

Usage:
    python -m chat_archive.mcp_server
"""

from mcp.server.fastmcp import FastMCP

from chat_archive import service, storage

mcp = FastMCP("chat-archive")


def _display(hit: dict) -> dict:
    entry = hit["entry"]
    return {
        "session_number": hit["session_number"],
        "archive_id": hit["archive_id"],
        "entry_id": entry["id"],
        "kind": entry["kind"],
        "timestamp": entry["timestamp"],
        "display_text": entry["display_text"],
    }


@mcp.tool()
def search_archive(
    campaign: str,
    query: str = "",
    session_number: int | None = None,
    kind: str | None = None,
    actor: str | None = None,
    limit: int = 20,
) -> list[dict]:
    """Search a campaign's archived chat entries. Returns one line per match."""
    if storage.get_campaign(campaign) is None:
        raise ValueError(f"Unknown campaign: {campaign}")
    hits = service.search(campaign, query, kind=kind, session_number=session_number, actor=actor)
    return [_display(hit) for hit in hits[:limit]]


@mcp.tool()
def session_highlights(campaign: str, session_number: int | None = None) -> list[dict]:
    """Key events (criticals, deaths, treasure, level ups...) of a session or all sessions."""
    if storage.get_campaign(campaign) is None:
        raise ValueError(f"Unknown campaign: {campaign}")
    return service.highlights(campaign, session_number=session_number)


if __name__ == "__main__":
    import os
    from pathlib import Path

    from dotenv import load_dotenv

    load_dotenv()
    storage.init_storage(Path(os.getenv("DATA_DIR", "data")))
    mcp.run()
