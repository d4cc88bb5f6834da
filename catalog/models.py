"""
Library Mirror - Catalog Records
Books discovered in the library and the bundles archived for them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

# Library lists
SAVED = "saved"
FINISHED = "finished"
LIST_NAMES = (SAVED, FINISHED)


def slug_to_id(slug: str) -> str:
    """Derive a book id from a card href ("/en/app/books/atomic-habits-en" -> "atomic-habits-en")."""
    return slug.rstrip("/").split("/")[-1] or slug


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class CatalogItem:
    """
    A book as listed on a library page.

    Attributes:
        id: Last path segment of the book's URL; unique across both lists
        title: Book title (card aria-label)
        author: Author line
        description: Short description shown on the card
        duration: Listening time in minutes (None if the card didn't say)
        rating: Average rating (None if the card didn't say)
        url: Canonical book URL
        img: Cover image URL
    """
    id: str
    title: str
    author: str
    description: str
    duration: Optional[float]
    rating: Optional[float]
    url: str
    img: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "description": self.description,
            "duration": self.duration,
            "rating": self.rating,
            "url": self.url,
            "img": self.img,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CatalogItem":
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            author=data.get("author", ""),
            description=data.get("description", ""),
            duration=_optional_float(data.get("duration")),
            rating=_optional_float(data.get("rating")),
            url=data.get("url", ""),
            img=data.get("img", ""),
        )


@dataclass
class Chapter:
    """One reader position: its name, heading, body markup and audio file."""
    name: str                     # Position indicator ("Introduction", "Key idea 3", "Summary")
    title: str
    text: str                     # Inner HTML of the reader content
    audio: Optional[str] = None   # Audio file name inside the book directory

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "title": self.title,
            "text": self.text,
            "audio": self.audio,
        }


@dataclass
class ArchiveBundle:
    """
    Everything archived for one book.

    Serialized as the catalog fields followed by the detail-page
    metadata, the download date, the reader position found before the
    walk, and the chapters. contentState is left out when the backend
    response was not captured.
    """
    item: CatalogItem
    ratings: Optional[str] = None
    duration_detail: Optional[str] = None
    categories: List[str] = field(default_factory=list)
    description_long: str = ""
    author_details: str = ""
    content_state: Optional[Dict[str, Any]] = None
    chapters: List[Chapter] = field(default_factory=list)
    original_chapter: Optional[str] = None
    archived_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def baseline(cls, item: CatalogItem) -> "ArchiveBundle":
        """Bundle with only what the library card already told us."""
        return cls(
            item=item,
            description_long=item.description or "",
            author_details=item.author or "",
        )

    @property
    def audio_files(self) -> List[str]:
        return [c.audio for c in self.chapters if c.audio]

    def to_dict(self) -> Dict[str, Any]:
        data = self.item.to_dict()
        data.update({
            "ratings": self.ratings,
            "durationDetail": self.duration_detail,
            "categories": list(self.categories),
            "descriptionLong": self.description_long,
            "authorDetails": self.author_details,
        })
        if self.content_state is not None:
            data["contentState"] = self.content_state
        data["downloadDate"] = self.archived_at.isoformat()
        data["orgChapter"] = self.original_chapter
        data["chapters"] = [c.to_dict() for c in self.chapters]
        return data
