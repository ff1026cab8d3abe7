"""
Product ratings and reviews.
"""

from typing import Any, Dict, Optional

from shared.logging import get_logger
from shared.errors import ValidationError
from ..auth.jwt_auth import AuthContext
from ..caching.cache_gateway import build_key
from ..caching.invalidator import WritePathInvalidator
from ..caching.policies import CacheTag, get_policy
from ..caching.read_through import CachedRead, ReadThroughAccessor
from ..persistence.postgres import StorefrontRepository
from .models import RatingRequest


def ratings_key(product_id: Optional[str]) -> str:
    if product_id:
        return build_key(CacheTag.RATINGS, "product", product_id)
    return build_key(CacheTag.RATINGS, "all")


class RatingService:

    def __init__(
        self,
        repository: StorefrontRepository,
        reader: ReadThroughAccessor,
        invalidator: WritePathInvalidator,
    ):
        self.repository = repository
        self.reader = reader
        self.invalidator = invalidator
        self.logger = get_logger("storefront.ratings")

    async def list_ratings(self, product_id: Optional[str] = None) -> CachedRead:
        """Public read; no authentication needed."""
        return await self.reader.fetch(
            ratings_key(product_id),
            get_policy(CacheTag.RATINGS),
            lambda: self.repository.list_ratings(product_id),
        )

    async def submit_rating(self, auth: AuthContext, request: RatingRequest) -> Dict[str, Any]:
        user_id = auth.require_user()
        images = []
        for image in request.images:
            if not image.startswith(("http://", "https://")):
                raise ValidationError("Review images must be hosted URLs")
            images.append(image)

        rating = await self.repository.create_rating({
            "user_id": user_id,
            "product_id": request.product_id,
            "rating": request.rating,
            "comment": request.comment,
            "images": images,
        })
        await self.invalidator.ratings_changed(request.product_id)
        self.logger.info("Rating submitted", product_id=request.product_id, user_id=user_id)
        return rating
