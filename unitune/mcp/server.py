"""
UniTune MCP Server - cross-platform music links for AI assistants

Provides link operations for Claude and other MCP clients:
- Resolve a music URL into links on every supported platform
- Create compact share links and open inbound ones
- Resolve small batches of URLs with partial success
- Publish mini playlists and import ones shared with the user

Architecture:
    MCP Client
        ↓ MCP Protocol (STDIO)
    UniTune MCP Server
        ↓
    LinkService (async context)
        ↓
    Lookup API + link cache

Usage in ~/.cursor/mcp.json:
    {
      "mcpServers": {
        "unitune": {
          "command": "uv",
          "args": ["run", "python", "-m", "unitune.mcp.server"],
          "env": {
            "UNITUNE_STORE_PATH": "~/.unitune/store.json"
          }
        }
      }
    }
"""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
import sys
from typing import Any

from fastmcp import Context, FastMCP

from unitune import __version__
from unitune.core.config import UniTuneConfig
from unitune.core.link_service import LinkService
from unitune.core.models import BatchResult, MiniPlaylist, Platform, ResolvedLinkSet

logger = logging.getLogger(__name__)


_service: LinkService | None = None


def normalize_param(value: str | list[str]) -> str:
    """
    Normalize MCP parameters that may arrive as lists.

    Some MCP clients send string params as single-element lists.
    """
    if isinstance(value, list):
        return " ".join(str(v) for v in value)
    return str(value)


def normalize_platform(value: str | None) -> Platform | None:
    """Map a tool argument to a Platform; unknown names mean no preference."""
    if not value:
        return None
    return Platform.lookup(value)


def get_service() -> LinkService:
    """Get initialized service or raise error."""
    if _service is None:
        msg = "LinkService not initialized. Server startup failed."
        raise RuntimeError(msg)
    return _service


def link_set_payload(result: ResolvedLinkSet | None, url: str) -> dict[str, Any]:
    if result is None:
        return {"resolved": False, "url": url, "links": {}}
    return {
        "resolved": True,
        "url": url,
        "title": result.title,
        "artist": result.artist,
        "thumbnail_url": result.thumbnail_url,
        "links": dict(result.links_by_platform),
    }


def batch_payload(result: BatchResult) -> dict[str, Any]:
    return {
        "success_count": result.success_count,
        "failed_count": result.failed_count,
        "errors": list(result.errors),
        "items": [
            link_set_payload(item, item.original_url or "") for item in result.items
        ],
    }


def playlist_payload(playlist: MiniPlaylist) -> dict[str, Any]:
    return {
        "id": playlist.id,
        "title": playlist.title,
        "description": playlist.description,
        "artists": playlist.artists,
        "tracks": [
            {
                "id": track.id,
                "title": track.title,
                "artist": track.artist,
                "url": track.original_url,
            }
            for track in playlist.tracks
        ],
    }


@asynccontextmanager
async def lifespan(app: FastMCP):
    """Own one LinkService for the server's lifetime."""
    global _service

    logger.info("Initializing UniTune MCP Server...")

    try:
        config = UniTuneConfig()
        _service = LinkService(config)

        logger.info("UniTune MCP Server ready")
        logger.info(f"   Lookup API: {config.api_base_url}")
        logger.info(f"   Share base: {config.share_base_url}")

        yield

    except Exception as e:
        logger.error(f"Failed to initialize server: {e}", exc_info=True)
        raise

    finally:
        if _service:
            logger.info("Shutting down UniTune MCP Server...")
            try:
                await _service.close()
                logger.info("Server shutdown complete")
            except Exception as e:
                logger.error(f"Error during shutdown: {e}", exc_info=True)

        _service = None


mcp = FastMCP(
    name="unitune",
    version=__version__,
    lifespan=lifespan,
)


@mcp.tool()
async def resolve_link(
    url: str | list[str],
    preferred_platform: str | None = None,
    ctx: Context | None = None,
) -> dict[str, Any]:
    """
    Resolve a music URL into equivalent links on every supported platform.

    Args:
        url: Spotify, Apple Music, Tidal, YouTube Music, Deezer or Amazon Music URL
        preferred_platform: Optional platform hint (e.g. "tidal")

    Returns:
        {"resolved": bool, "url": str, "title": str | None, "artist": str | None,
         "thumbnail_url": str | None, "links": {platform: url}}
    """
    url = normalize_param(url)
    if ctx:
        await ctx.info(f"Resolving {url}")

    result = await get_service().resolve(url, normalize_platform(preferred_platform))

    if ctx and result is None:
        await ctx.warning(f"Could not resolve {url}")

    return link_set_payload(result, url)


@mcp.tool()
async def create_share_link(url: str | list[str], ctx: Context | None = None) -> dict[str, Any]:
    """
    Create a compact UniTune share link (https://unitune.art/s/<token>).

    Returns:
        {"share_url": str | None, "identifier": str | None, "error": str | None,
         "message": str | None}
    """
    url = normalize_param(url)
    outcome = await get_service().create_share_link(url)

    if ctx and not outcome.ok:
        await ctx.warning(outcome.message or "Could not create share link")

    return {
        "share_url": outcome.share_url,
        "identifier": str(outcome.identifier) if outcome.identifier else None,
        "error": outcome.error.value if outcome.error else None,
        "message": outcome.message,
    }


@mcp.tool()
async def open_share_link(
    link: str | list[str],
    resolve: bool = False,
    ctx: Context | None = None,
) -> dict[str, Any]:
    """
    Decode an inbound share link into the canonical platform URL.

    Args:
        link: Share link (https://unitune.art/s/<token>)
        resolve: Also look up equivalent links on every platform

    Returns:
        {"url": str | None, "resolution": {...} | None}
    """
    link = normalize_param(link)
    service = get_service()

    url = service.open_share_link(link)
    if url is None:
        if ctx:
            await ctx.warning("Not a valid share link")
        return {"url": None, "resolution": None}

    resolution = None
    if resolve:
        resolution = link_set_payload(await service.resolve_share_link(link), url)

    return {"url": url, "resolution": resolution}


@mcp.tool()
async def resolve_batch(
    urls: list[str],
    preferred_platform: str | None = None,
    ctx: Context | None = None,
) -> dict[str, Any]:
    """
    Resolve 1-10 music URLs at once. Failed items are reported, not fatal.

    Returns:
        {"success_count": int, "failed_count": int, "errors": list[str],
         "items": list[{...}]}
    """
    if ctx:
        await ctx.info(f"Resolving batch of {len(urls)} URLs")

    try:
        result = await get_service().resolve_batch(urls, normalize_platform(preferred_platform))
    except Exception as e:
        logger.error(f"Batch resolution failed: {e}", exc_info=True)
        if ctx:
            await ctx.error(f"Batch resolution failed: {e}")
        raise

    return batch_payload(result)


@mcp.tool()
async def share_playlist(
    playlist_id: str | list[str], ctx: Context | None = None
) -> dict[str, Any]:
    """
    Publish one of the user's mini playlists and return its link.

    Returns:
        {"share_url": str | None, "error": str | None}
    """
    playlist_id = normalize_param(playlist_id)
    service = get_service()

    playlist = await service.playlists.get(playlist_id)
    if playlist is None:
        return {"share_url": None, "error": f"Playlist not found: {playlist_id}"}
    if not playlist.is_valid:
        return {"share_url": None, "error": "Playlist has no tracks"}

    share_url = await service.share_playlist(playlist)
    if share_url is None:
        if ctx:
            await ctx.warning(f"Could not publish playlist {playlist_id}")
        return {"share_url": None, "error": "Publishing failed"}

    return {"share_url": share_url, "error": None}


@mcp.tool()
async def import_playlist(
    link: str | list[str], ctx: Context | None = None
) -> dict[str, Any]:
    """
    Import a playlist from a link (https://unitune.art/p/<id>) into received playlists.

    Returns:
        {"imported": bool, "playlist": {...} | None}
    """
    link = normalize_param(link)
    playlist = await get_service().import_playlist(link)

    if playlist is None:
        if ctx:
            await ctx.warning(f"Could not import playlist from {link}")
        return {"imported": False, "playlist": None}

    return {"imported": True, "playlist": playlist_payload(playlist)}


@mcp.resource("config://unitune")
async def get_config() -> dict[str, Any]:
    """Get UniTune configuration."""
    config = get_service().config

    return {
        "version": __version__,
        "api_base_url": config.api_base_url,
        "share_base_url": config.share_base_url,
        "max_attempts": config.max_attempts,
        "cache_max_entries": config.cache_max_entries,
        "platforms": [platform.value for platform in Platform],
        "tools": [
            "resolve_link",
            "create_share_link",
            "open_share_link",
            "resolve_batch",
            "share_playlist",
            "import_playlist",
        ],
    }


@mcp.resource("status://cache")
async def get_cache_status() -> dict[str, Any]:
    """Get link cache statistics."""
    try:
        service = get_service()
        return {"status": "ok", **service.cache.stats}
    except Exception as e:
        return {
            "status": "error",
            "error": str(e),
        }


def run_server() -> None:
    """Run UniTune MCP server via STDIO."""
    try:
        mcp.run(transport="stdio")
    except KeyboardInterrupt:
        logger.info("Server interrupted by user")
    except Exception as e:
        logger.error(f"Server error: {e}", exc_info=True)
        raise


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    run_server()
