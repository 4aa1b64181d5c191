from .derivation import effective_request_status
from .errors import AlreadyReviewed, NotEligible, ValidationError
from .gate import require_party
from .models import RequestStatus, Review, new_id, utcnow

MIN_COMMENT_LENGTH = 10


def can_review(request, reviewer_id: str, existing_reviews) -> bool:
    if request.party_of(reviewer_id) is None:
        return False
    if effective_request_status(request) is not RequestStatus.COMPLETED:
        return False
    return not any(r.reviewer_id == reviewer_id for r in existing_reviews)


def build_review(request, reviewer_id: str, reviewee_id: str, rating: int, comment: str, existing_reviews) -> Review:
    require_party(request, reviewer_id)

    if reviewee_id != request.counterparty_id(reviewer_id):
        raise ValidationError("The reviewee must be the other party of the request")
    if not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("rating must be an integer between 1 and 5")
    comment = (comment or "").strip()
    if len(comment) < MIN_COMMENT_LENGTH:
        raise ValidationError(f"comment must have at least {MIN_COMMENT_LENGTH} characters")

    if effective_request_status(request) is not RequestStatus.COMPLETED:
        raise NotEligible("Reviews open once the request is completed")
    if any(r.reviewer_id == reviewer_id for r in existing_reviews):
        raise AlreadyReviewed()

    return Review(
        id=new_id(),
        request_id=request.id,
        reviewer_id=reviewer_id,
        reviewee_id=reviewee_id,
        rating=rating,
        comment=comment,
        created_at=utcnow(),
    )
