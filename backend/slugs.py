"""URL slug helpers shared by the catalog routes.

Slugs are unique per collection. ``resolve_unique`` only sees collisions
that already exist when it checks, so concurrent writers can still race
between the check and the insert; the unique index on ``slug`` catches
those and the caller gets a ``DuplicateKeyError``.
"""

import re
import unicodedata
from typing import Callable, Optional

from bson import ObjectId

from .errors import SlugError, SlugResolutionError

DEFAULT_MAX_ATTEMPTS = 10000

_DISALLOWED_CHARS = re.compile(r"[^\w\s-]", re.ASCII)
_SEPARATOR_RUNS = re.compile(r"[\s_-]+", re.ASCII)

ExistsPredicate = Callable[[str, Optional[ObjectId]], bool]


def normalize(text: Optional[str]) -> str:
    if text is None or not str(text).strip():
        raise SlugError("Title is required")

    ascii_text = (
        unicodedata.normalize("NFKD", str(text))
        .encode("ascii", "ignore")
        .decode("ascii")
    )
    slug = ascii_text.lower().strip()
    slug = _DISALLOWED_CHARS.sub("", slug)
    slug = _SEPARATOR_RUNS.sub("-", slug)
    slug = slug.strip("-")
    if not slug:
        raise SlugError("Title must contain at least one letter or digit")
    return slug


def resolve_unique(
    candidate: str,
    exclude_id: Optional[ObjectId],
    exists: ExistsPredicate,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> str:
    """Return ``candidate`` or the first free ``candidate-N`` (N = 1, 2, ...).

    ``exclude_id`` is passed through to ``exists`` so that an update does not
    collide with the document's own slug. Errors raised by ``exists`` are not
    caught.
    """
    slug = candidate
    for counter in range(1, max_attempts + 1):
        if not exists(slug, exclude_id):
            return slug
        slug = f"{candidate}-{counter}"
    raise SlugResolutionError(
        f"Could not find a free slug for {candidate!r} after {max_attempts} attempts"
    )


def collection_slug_exists(collection) -> ExistsPredicate:
    def exists(slug: str, exclude_id: Optional[ObjectId] = None) -> bool:
        query = {"slug": slug}
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        return collection.find_one(query, {"_id": 1}) is not None

    return exists


def assign_slug(
    collection,
    title: Optional[str],
    exclude_id: Optional[ObjectId] = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> str:
    return resolve_unique(
        normalize(title),
        exclude_id,
        collection_slug_exists(collection),
        max_attempts=max_attempts,
    )
