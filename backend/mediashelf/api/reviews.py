"""Review endpoints."""

from fastapi import APIRouter, Depends, status

from mediashelf.api.deps import Services, get_current_user, get_services, query_params, success
from mediashelf.models.tables import Review, User
from mediashelf.schemas import ReviewCreate, ReviewUpdate

router = APIRouter(prefix="/reviews")


@router.get("")
async def list_reviews(params: dict = Depends(query_params), services: Services = Depends(get_services)):
    reviews, query = await services.reviews.list_reviews(params)
    records = [query.project(r, Review) for r in await services.reviews.hydrate(reviews)]
    return success(records, **query.meta(len(records)))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_review(
    body: ReviewCreate,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    review = await services.reviews.create_review(user.id, body.item_type, body.item_id, body.rating, body.text)
    return success(review.to_dict())


@router.get("/{review_id}")
async def get_review(review_id: str, services: Services = Depends(get_services)):
    review = await services.reviews.get_review(review_id)
    [record] = await services.reviews.hydrate([review])
    return success(record)


@router.patch("/{review_id}")
async def update_review(
    review_id: str,
    body: ReviewUpdate,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    review = await services.reviews.update_review(review_id, user.id, body.rating, body.text, role=user.role)
    return success(review.to_dict())


@router.delete("/{review_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_review(
    review_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    await services.reviews.delete_review(review_id, user.id, role=user.role)
