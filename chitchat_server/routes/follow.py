"""Follow edges, stored on both the follower and the followee."""

import logging

from fastapi import APIRouter, Depends

from shared.schemas import Follow, FollowRequest
from ..cache import user_key
from ..errors import ConflictError, ValidationError, server_errors
from ..services import Services, clean_email, concurrent_writes, get_services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["follow"])


def _emails(body: FollowRequest) -> tuple[str, str]:
    user_email = clean_email(body.user_email)
    follow_email = clean_email(body.follow_email)
    if not user_email or not follow_email:
        raise ValidationError("Both e-mails are required")
    if user_email == follow_email:
        raise ConflictError("Can't follow yourself")
    return user_email, follow_email


@router.post("/follow")
async def follow(body: FollowRequest, services: Services = Depends(get_services)):
    user_email, follow_email = _emails(body)

    with server_errors("Failed to follow user"):
        await services.user(user_email)
        await services.user(follow_email, "User to follow not found")
        if await services.db.is_following(user_email, follow_email):
            raise ConflictError("Already followed")

        edge = Follow(follower_email=user_email, followee_email=follow_email).to_doc()
        # Conditional on the follower not already following
        if not await services.db.add_following(edge):
            raise ConflictError("Already followed")
        await concurrent_writes("follow", follower=services.db.add_follower(edge))

    await services.cache.delete(user_key(user_email), user_key(follow_email))

    logger.info(f"{user_email} follows {follow_email}")
    return {"message": "Followed successfully", "follow": edge}


@router.post("/unfollow")
async def unfollow(body: FollowRequest, services: Services = Depends(get_services)):
    user_email, follow_email = _emails(body)

    with server_errors("Failed to unfollow user"):
        if not await services.db.is_following(user_email, follow_email):
            raise ConflictError("Not followed")
        # Conditional on the edge still being there
        if not await services.db.remove_following(user_email, follow_email):
            raise ConflictError("Not followed")
        await concurrent_writes(
            "unfollow", follower=services.db.remove_follower(follow_email, user_email)
        )

    await services.cache.delete(user_key(user_email), user_key(follow_email))
    logger.info(f"{user_email} unfollowed {follow_email}")
    return {"message": "Unfollowed successfully"}
