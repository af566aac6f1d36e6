"""Song catalog, review, comment and liked-song routes"""

from typing import Any, Dict
from urllib.parse import quote

from fastapi import APIRouter, Depends, Request

from ..infrastructure.upstream_relay import UpstreamRelay
from .dependencies import get_current_user, get_relay, read_json

router = APIRouter(prefix="/api")


async def _relay_for_user(
    request: Request,
    user: Dict[str, Any],
    relay: UpstreamRelay,
    endpoint: str,
    fallback_endpoint: str | None = None,
) -> Any:
    """Relay the request body with the authenticated user's email attached."""
    body = await read_json(request)
    payload = {**body, "email": user["email"]}
    return await relay.call(endpoint, payload, fallback_endpoint=fallback_endpoint)


@router.get("/songs")
@router.get("/song")
async def list_songs(relay: UpstreamRelay = Depends(get_relay)) -> Any:
    return await relay.call("/getAllSongs", method="GET")


@router.get("/songs/search/{query}")
async def search_songs(query: str, relay: UpstreamRelay = Depends(get_relay)) -> Any:
    return await relay.call(f"/api/searchSongs/{quote(query, safe='')}", method="GET")


@router.get("/songs/details/{track_id}")
async def song_details(track_id: str, relay: UpstreamRelay = Depends(get_relay)) -> Any:
    return await relay.call(f"/api/getSongDetails/{quote(track_id, safe='')}", method="GET")


@router.get("/songs/{song_id}")
async def get_song(song_id: str, relay: UpstreamRelay = Depends(get_relay)) -> Any:
    return await relay.call(f"/getSongById/{quote(song_id, safe='')}", method="GET")


@router.post("/songs/review")
async def add_review(
    request: Request,
    user: Dict[str, Any] = Depends(get_current_user),
    relay: UpstreamRelay = Depends(get_relay),
) -> Any:
    return await _relay_for_user(request, user, relay, "/api/addReview")


@router.post("/songs/comment")
async def add_comment(
    request: Request,
    user: Dict[str, Any] = Depends(get_current_user),
    relay: UpstreamRelay = Depends(get_relay),
) -> Any:
    # Fallback for upstreams without the /api prefix
    return await _relay_for_user(
        request, user, relay, "/api/addComment", fallback_endpoint="/addComment"
    )


@router.post("/songs/like")
async def add_to_liked(
    request: Request,
    user: Dict[str, Any] = Depends(get_current_user),
    relay: UpstreamRelay = Depends(get_relay),
) -> Any:
    return await _relay_for_user(request, user, relay, "/api/addToLiked")


@router.post("/songs/liked")
async def liked_songs(
    request: Request,
    user: Dict[str, Any] = Depends(get_current_user),
    relay: UpstreamRelay = Depends(get_relay),
) -> Any:
    return await _relay_for_user(request, user, relay, "/api/getLikedSongs")
