"""Media URL resolution route."""
from typing import Optional
from fastapi import APIRouter, Depends, Query

from eventfinder.deps import get_media_resolver
from eventfinder.schemas.location import MediaResolveOut
from eventfinder.services.media import MediaURLResolver

router = APIRouter()


@router.get("/resolve", response_model=MediaResolveOut)
def resolve_media(
    bucket: str = Query(...),
    ref: str = Query(..., description="Stored path or previously issued URL"),
    ttl: Optional[int] = Query(None, gt=0, description="Requested lifetime in seconds"),
    media: MediaURLResolver = Depends(get_media_resolver),
):
    """A currently valid URL for a stored object; falls back to the input."""
    return MediaResolveOut(bucket=bucket, ref=ref, url=media.resolve(bucket, ref, ttl))
