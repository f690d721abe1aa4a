from __future__ import annotations

from typing import Protocol

from .models import FetchedPhoto, PhotoCandidate


class PhotoSource(Protocol):
    """Supplies a restaurant's candidate photos and fetches their bytes."""

    def candidates(self) -> list[PhotoCandidate]: ...

    def fetch(self, candidate: PhotoCandidate, max_width_px: int | None = None) -> FetchedPhoto: ...


class StaticPhotoSource:
    """In-memory photo source, e.g. for photos uploaded together in one request."""

    def __init__(self, photos: list[tuple[PhotoCandidate, FetchedPhoto]]) -> None:
        self._candidates = [candidate for candidate, _ in photos]
        self._photos = {candidate.id: photo for candidate, photo in photos}

    def candidates(self) -> list[PhotoCandidate]:
        return list(self._candidates)

    def fetch(self, candidate: PhotoCandidate, max_width_px: int | None = None) -> FetchedPhoto:
        # Stored bytes are served as-is; there is no server-side thumbnailing.
        try:
            return self._photos[candidate.id]
        except KeyError:
            raise LookupError(f"unknown photo {candidate.id!r}") from None
