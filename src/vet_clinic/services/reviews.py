"""
Reviews and the practitioner rating derived from them.

The rating on the practitioner record is recomputed in its own transaction
after every review write, so two concurrent writes may briefly leave it one
step behind. The next write or an explicit ``recompute_rating`` settles it.
"""

import logging
import uuid
from typing import Any, Mapping, Optional, Tuple, Union

from sqlalchemy import func, select

from ..database.session import SessionManager
from ..exceptions import (
    DuplicateReviewException,
    ResourceNotFoundException,
    TransactionException,
)
from ..models.review import Review
from ..models.user import User
from ..schemas.review import RatingSummary, ReviewCreate, ReviewResponse, ReviewUpdate
from .access import Permission, authorize, has_permission
from .common import get_or_404, is_unique_violation, parse_id, parse_schema

logger = logging.getLogger(__name__)


class ReviewService:
    """Client reviews of veterinarians."""

    def __init__(self, session_manager: SessionManager):
        self.session_manager = session_manager

    async def add_review(
        self,
        client_id: uuid.UUID,
        veterinarian_id: uuid.UUID,
        rating: float,
        review: Optional[str] = None,
    ) -> Review:
        """
        Record a client's review of a veterinarian.

        Args:
            client_id: Reviewing client
            veterinarian_id: Reviewed practitioner
            rating: Score between 0 and 5
            review: Optional free text

        Returns:
            The stored review

        Raises:
            SchemaValidationException: If the rating is out of range
            ResourceNotFoundException: If the target is not a veterinarian
            AuthorizationException: If the author may not review
            DuplicateReviewException: If this client already reviewed this veterinarian
        """
        client_id = parse_id(client_id, "client_id")
        data = parse_schema(
            ReviewCreate,
            {"veterinarian_id": veterinarian_id, "rating": rating, "review": review},
        )

        try:
            async with self.session_manager.get_transaction("add_review") as session:
                client = await get_or_404(session, User, client_id, "User")
                authorize(client, Permission.REVIEW)
                veterinarian = await session.get(User, data.veterinarian_id)
                if veterinarian is None or not has_permission(
                    veterinarian, Permission.RECEIVE_REVIEWS
                ):
                    raise ResourceNotFoundException("Veterinarian", data.veterinarian_id)

                if await self._has_reviewed(session, client.id, veterinarian.id):
                    raise DuplicateReviewException(client.id, veterinarian.id)

                record = Review(
                    client_id=client.id,
                    veterinarian_id=veterinarian.id,
                    rating=data.rating,
                    review=data.review,
                )
                session.add(record)
                await session.flush()
        except TransactionException as e:
            # A concurrent duplicate slipped past the pre-check
            if is_unique_violation(
                e.original_error,
                "uq_reviews_client_vet",
                ("client_id", "veterinarian_id"),
            ):
                raise DuplicateReviewException(client_id, data.veterinarian_id) from e
            raise

        logger.info(f"Review {record.id} added for veterinarian {record.veterinarian_id}")
        await self.recompute_rating(record.veterinarian_id)
        return record

    async def update_review(
        self,
        review_id: uuid.UUID,
        client_id: uuid.UUID,
        rating: Optional[float] = None,
        review: Optional[str] = None,
    ) -> Review:
        """
        Edit one of the client's own reviews.

        Raises:
            ResourceNotFoundException: If the review does not exist or was
                written by someone else
        """
        patch = {}
        if rating is not None:
            patch["rating"] = rating
        if review is not None:
            patch["review"] = review
        return await self.apply_update(review_id, client_id, patch)

    async def apply_update(
        self,
        review_id: uuid.UUID,
        client_id: uuid.UUID,
        patch: Union[ReviewUpdate, Mapping[str, Any]],
    ) -> Review:
        client_id = parse_id(client_id, "client_id")
        data = parse_schema(ReviewUpdate, patch)
        async with self.session_manager.get_transaction("update_review") as session:
            record = await self._load_own(session, review_id, client_id)
            record.update_fields(**data.model_dump(exclude_unset=True))

        await self.recompute_rating(record.veterinarian_id)
        return record

    async def delete_review(self, review_id: uuid.UUID, client_id: uuid.UUID) -> None:
        """
        Delete one of the client's own reviews.

        Raises:
            ResourceNotFoundException: If the review does not exist or was
                written by someone else
        """
        client_id = parse_id(client_id, "client_id")
        async with self.session_manager.get_transaction("delete_review") as session:
            record = await self._load_own(session, review_id, client_id)
            veterinarian_id = record.veterinarian_id
            await session.delete(record)

        logger.info(f"Review {review_id} deleted")
        await self.recompute_rating(veterinarian_id)

    async def list_reviews(self, veterinarian_id: uuid.UUID) -> RatingSummary:
        """
        List a veterinarian's reviews, newest first, with the live aggregate.

        Raises:
            ResourceNotFoundException: If the veterinarian does not exist
        """
        async with self.session_manager.get_session() as session:
            veterinarian = await get_or_404(session, User, veterinarian_id, "Veterinarian")
            result = await session.execute(
                select(Review)
                .where(Review.veterinarian_id == veterinarian.id)
                .order_by(Review.created_at.desc(), Review.id)
            )
            reviews = list(result.scalars().all())

        average, count = self.summarize(r.rating for r in reviews)
        return RatingSummary(
            veterinarian_id=veterinarian.id,
            average_rating=average,
            total_reviews=count,
            reviews=[ReviewResponse.model_validate(r) for r in reviews],
        )

    async def recompute_rating(self, veterinarian_id: uuid.UUID) -> Tuple[float, int]:
        """
        Write the average rating and review count onto the practitioner.

        Returns:
            ``(average, count)``; ``(0.0, 0)`` when there are no reviews
        """
        async with self.session_manager.get_transaction("recompute_rating") as session:
            veterinarian = await get_or_404(session, User, veterinarian_id, "Veterinarian")
            row = (
                await session.execute(
                    select(func.avg(Review.rating), func.count(Review.id)).where(
                        Review.veterinarian_id == veterinarian.id
                    )
                )
            ).one()
            count = row[1] or 0
            average = round(float(row[0]), 2) if count else 0.0
            veterinarian.update_fields(rating=average, rating_count=count)

        logger.debug(
            f"Rating of veterinarian {veterinarian_id} is now {average} over {count} review(s)"
        )
        return average, count

    @staticmethod
    def summarize(ratings) -> Tuple[float, int]:
        values = list(ratings)
        if not values:
            return 0.0, 0
        return round(sum(values) / len(values), 2), len(values)

    @staticmethod
    async def _has_reviewed(
        session, client_id: uuid.UUID, veterinarian_id: uuid.UUID
    ) -> bool:
        existing = await session.execute(
            select(Review.id).where(
                Review.client_id == client_id,
                Review.veterinarian_id == veterinarian_id,
            )
        )
        return existing.first() is not None

    @staticmethod
    async def _load_own(session, review_id: uuid.UUID, client_id: uuid.UUID) -> Review:
        record = await get_or_404(session, Review, review_id, "Review")
        if record.client_id != client_id:
            raise ResourceNotFoundException("Review", review_id)
        return record
