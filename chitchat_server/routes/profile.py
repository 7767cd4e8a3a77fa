"""Profile reads and profile/cover image uploads."""

import logging

from fastapi import APIRouter, Depends

from shared.schemas import MediaUploadRequest, new_id
from ..cache import POSTS_PAGE_PATTERN, USERS_LIST_KEY, post_key, user_key
from ..errors import ValidationError, server_errors
from ..media import IMAGE_TYPES, parse_data_url
from ..services import Services, clean_email, concurrent_writes, get_services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["profile"])

OWNER_FIELDS = (
    "first_name", "last_name", "email", "profile_image", "cover_image", "is_verified",
    "posts", "friends", "friend_requests", "notifications", "followers", "following",
    "created_at",
)
PUBLIC_FIELDS = ("first_name", "last_name", "email", "profile_image", "cover_image", "posts")


def _upload_input(body: MediaUploadRequest) -> tuple[str, str]:
    email = clean_email(body.email)
    if not email or not body.media:
        raise ValidationError("E-mail and image are required for upload")
    return email, body.media


@router.post("/chit-chat-profile-img")
async def upload_profile_image(body: MediaUploadRequest, services: Services = Depends(get_services)):
    """Replace the user's avatar everywhere it is denormalized."""
    email, media = _upload_input(body)
    mime, kind, data = parse_data_url(media)

    with server_errors("Failed to upload profile image"):
        await services.user(email)
        url = await services.media.upload(data, mime, services.settings.media_folder, new_id())
        await services.db.set_user_fields(email, {"profile_image": url})

        post_ids = await services.db.user_post_ids(email)
        embedded = {
            f"post:{post_id}": services.db.set_embedded_post_image(email, post_id, url)
            for post_id in post_ids
        }
        await concurrent_writes(
            "profile image",
            flat=services.db.set_flat_posts_image(email, url),
            **embedded,
        )

    await services.cache.delete(
        user_key(email), USERS_LIST_KEY, *(post_key(post_id) for post_id in post_ids)
    )
    await services.cache.delete_matching(POSTS_PAGE_PATTERN)
    services.fanout.emit_broadcast("newProfileImage", {"email": email, "image_url": url})

    logger.info(f"Profile image of {email} replaced ({len(post_ids)} posts)")
    return {"message": "Profile image uploaded successfully", "media_type": kind, "image_url": url}


@router.post("/chit-chat-cover-img")
async def upload_cover_image(body: MediaUploadRequest, services: Services = Depends(get_services)):
    email, media = _upload_input(body)
    mime, kind, data = parse_data_url(media, IMAGE_TYPES)

    with server_errors("Failed to upload cover image"):
        await services.user(email)
        url = await services.media.upload(data, mime, services.settings.media_folder, new_id())
        await services.db.set_user_fields(email, {"cover_image": url})

    await services.cache.delete(user_key(email))
    logger.info(f"Cover image of {email} replaced")
    return {"message": "Cover image uploaded successfully", "media_type": kind, "image_url": url}


@router.get("/getUserProfile/{email}")
async def get_profile(email: str, services: Services = Depends(get_services)):
    """The owner's view of their own profile."""
    with server_errors("Error fetching user profile"):
        user = await services.user(clean_email(email))
    return {
        "success": True,
        "user": {"id": user["_id"], **{field: user.get(field) for field in OWNER_FIELDS}},
    }


@router.get("/usersGetProfile/{email}")
async def get_public_profile(email: str, services: Services = Depends(get_services)):
    """Another user's profile as anyone may see it."""
    with server_errors("Error fetching user profile"):
        user = await services.user(clean_email(email))
    return {
        "success": True,
        "user": {"id": user["_id"], **{field: user.get(field) for field in PUBLIC_FIELDS}},
    }
