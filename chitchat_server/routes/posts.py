"""Posts, likes, comments and notification reads.

Posts live twice: embedded in their owner's `posts` array and in the flat
`posts` collection. Every mutation here writes both copies, then reconciles
the cached post, the owner's cached user and the cached listing pages.
"""

import logging
import math
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends

from shared.schemas import (
    Comment, CommentCreate, Identity, Like, LikeRequest, Notification,
    NotificationClearRequest, Post, PostCreate, PostDisplayRequest, is_valid_id,
)
from ..cache import POSTS_PAGE_PATTERN, post_key, posts_page_key, snapshot, user_key
from ..errors import (
    ConflictError, NotFoundError, RateLimitError, ValidationError, server_errors,
)
from ..media import parse_data_url
from ..services import Services, clean, clean_email, concurrent_writes, get_services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["posts"])


def utcnow() -> datetime:
    return datetime.utcnow()


async def reconcile_post(services: Services, owner_email: str, post: dict):
    """Bring cached copies of a post in line with the updated flat document."""
    settings = services.settings
    await services.cache.set_json(post_key(post["_id"]), post, settings.post_ttl)

    fresh = snapshot(post)

    def replace(user: dict) -> dict:
        user["posts"] = [fresh if p["_id"] == fresh["_id"] else p for p in user.get("posts", [])]
        return user

    await services.cache.update_json(user_key(owner_email), replace, settings.user_update_ttl)
    await services.cache.delete_matching(POSTS_PAGE_PATTERN)


async def _load_post(services: Services, post_id: str, owner_email: str) -> dict:
    post = await services.db.get_post(post_id)
    if not post or post["email"] != owner_email:
        raise NotFoundError("Post not found")
    return post


@router.post("/createImagePost")
async def create_post(body: PostCreate, services: Services = Depends(get_services)):
    """Create a post, optionally with an image or video."""
    email = clean_email(body.email)
    title = clean(body.title)
    if not email or not title:
        raise ValidationError("E-mail and title are required")

    media = parse_data_url(body.media) if body.media else None

    with server_errors("Failed to create post"):
        user = await services.user(email)
        post = Post(**Identity.of(user).model_dump(), title=title, post_text=clean(body.post_text))
        if media:
            mime, kind, data = media
            post.media_url = await services.media.upload(
                data, mime, services.settings.media_folder, post.id
            )
            post.media_type = kind
        doc = post.to_doc()
        await concurrent_writes(
            "create post",
            embedded=services.db.push_user_post(email, doc),
            flat=services.db.insert_post(doc),
        )

    await services.cache.delete(user_key(email))
    await services.cache.delete_matching(POSTS_PAGE_PATTERN)

    logger.info(f"Post {post.id} created by {email}")
    return {
        "message": "Post created successfully",
        "post_id": post.id,
        "media_url": post.media_url,
        "media_type": post.media_type,
        "post": doc,
    }


@router.get("/posts")
async def list_posts(page: int = 1, limit: int = 10, services: Services = Depends(get_services)):
    """List posts, newest first."""
    page = max(page, 1)
    if limit > 100:
        limit = 100
    limit = max(limit, 1)

    async def load():
        total = await services.db.count_posts()
        posts = await services.db.list_posts(skip=(page - 1) * limit, limit=limit)
        return {
            "total_count": total,
            "total_pages": math.ceil(total / limit),
            "current_page": page,
            "data": posts,
        }

    with server_errors("Failed to fetch posts"):
        result, source = await services.cache.read_through(
            posts_page_key(page, limit), load, services.settings.posts_page_ttl
        )
    return {**result, "source": source}


@router.post("/postDisplay")
async def display_post(body: PostDisplayRequest, services: Services = Depends(get_services)):
    """Get one post; optionally mark the notification that led to it as read."""
    email = clean_email(body.email)
    post_id = clean(body.post_id)
    notif_id: Optional[str] = clean(body.notif_id) or None
    if not email or not is_valid_id(post_id):
        raise ValidationError("E-mail and a valid post ID are required")

    with server_errors("Failed to display post"):
        post, source = await services.cache.read_through(
            post_key(post_id),
            lambda: services.db.get_post(post_id),
            services.settings.post_ttl,
        )
        if post is None:
            raise NotFoundError("Post not found")
        if notif_id and is_valid_id(notif_id):
            if await services.db.mark_notification_read(email, notif_id):
                await services.cache.delete(user_key(email))
            else:
                logger.warning(f"Notification {notif_id} not found for {email}")

    return {"post": post, "source": source}


@router.post("/likedPost")
async def like_post(body: LikeRequest, services: Services = Depends(get_services)):
    poster_email = clean_email(body.poster_email)
    liker_email = clean_email(body.liker_email)
    post_id = clean(body.post_id)
    if not poster_email or not liker_email or not is_valid_id(post_id):
        raise ValidationError("Poster, liker and a valid post ID are required")
    if poster_email == liker_email:
        raise ConflictError("You cannot like your own post")

    with server_errors("Failed to like post. Try again."):
        liker = await services.user(liker_email, "Liker not found")
        await services.user(poster_email, "Poster not found")
        post = await _load_post(services, post_id, poster_email)
        if any(like["liked_by_email"] == liker_email for like in post.get("liked", [])):
            raise ConflictError("You already liked this post")

        like = Like(
            post_id=post_id,
            post_owner_email=poster_email,
            liked_by_email=liker_email,
            first_name=liker.get("first_name"),
            last_name=liker.get("last_name"),
            profile_image=liker.get("profile_image"),
        ).to_doc()
        updated = await services.db.add_like_flat(post_id, like)
        if updated is None:
            raise ConflictError("You already liked this post")

        notification = Notification(
            **Identity.of(liker).model_dump(),
            action="liked your post",
            subject_id=post_id,
            title=post.get("title"),
        )
        await concurrent_writes(
            "like post",
            embedded=services.db.add_like_embedded(poster_email, post_id, like),
            notification=services.db.push_notification(poster_email, notification.to_doc()),
        )

    await reconcile_post(services, poster_email, updated)
    services.fanout.emit_broadcast("postLiked", {
        "post_id": post_id,
        "post_owner_email": poster_email,
        "like": like,
    })

    logger.info(f"{liker_email} liked post {post_id}")
    return {"message": "Post liked successfully", "like": like, "post": updated}


@router.post("/UnlikePost")
async def unlike_post(body: LikeRequest, services: Services = Depends(get_services)):
    poster_email = clean_email(body.poster_email)
    liker_email = clean_email(body.liker_email)
    post_id = clean(body.post_id)
    if not poster_email or not liker_email or not is_valid_id(post_id):
        raise ValidationError("Poster, liker and a valid post ID are required")
    if poster_email == liker_email:
        raise ConflictError("You cannot unlike your own post")

    with server_errors("Failed to unlike post. Try again."):
        await services.user(liker_email, "Liker not found")
        post = await _load_post(services, post_id, poster_email)
        if not any(like["liked_by_email"] == liker_email for like in post.get("liked", [])):
            raise ConflictError("You have not liked this post")

        updated = await services.db.remove_like_flat(post_id, liker_email)
        if updated is None:
            raise ConflictError("You have not liked this post")
        await concurrent_writes(
            "unlike post",
            embedded=services.db.remove_like_embedded(poster_email, post_id, liker_email),
        )

    await reconcile_post(services, poster_email, updated)
    services.fanout.emit_broadcast("postUnliked", {
        "post_id": post_id,
        "post_owner_email": poster_email,
        "liked_by_email": liker_email,
    })

    logger.info(f"{liker_email} unliked post {post_id}")
    return {"message": "Post unliked successfully", "post": updated}


def _latest_comment_at(post: dict, email: str) -> Optional[datetime]:
    times = [c["created_at"] for c in post.get("comments", []) if c.get("email") == email]
    return max(times) if times else None


@router.post("/commentedPost")
async def comment_on_post(body: CommentCreate, services: Services = Depends(get_services)):
    """Append a comment. Repeating the call appends again."""
    settings = services.settings
    post_email = clean_email(body.post_email)
    post_id = clean(body.post_id)
    commenter_email = clean_email(body.commenter_email)
    if not post_email or not post_id or not commenter_email or body.comment_text is None:
        raise ValidationError("Missing required data")
    if not is_valid_id(post_id):
        raise ValidationError("Invalid post ID")
    text = body.comment_text.strip()
    if not 1 <= len(text) <= settings.max_comment_length:
        raise ValidationError(
            f"Comment must be between 1 and {settings.max_comment_length} characters"
        )

    with server_errors("Failed to add comment"):
        commenter = await services.user(commenter_email, "Commenting user not found")
        await services.user(post_email, "Post owner not found")
        post = await _load_post(services, post_id, post_email)

        now = utcnow()
        last = _latest_comment_at(post, commenter_email)
        if last is not None and (now - last).total_seconds() < settings.comment_cooldown_seconds:
            raise RateLimitError("You're commenting too fast. Please wait a few seconds.")

        comment = Comment(
            **Identity.of(commenter).model_dump(), comment_text=text, created_at=now
        ).to_doc()
        writes = {
            "flat": services.db.add_comment_flat(post_id, comment),
            "embedded": services.db.add_comment_embedded(post_email, post_id, comment),
        }
        if commenter_email != post_email:
            notification = Notification(
                **Identity.of(commenter).model_dump(),
                action="commented on your post",
                subject_id=post_id,
                title=post.get("title"),
            )
            writes["notification"] = services.db.push_notification(post_email, notification.to_doc())
        results = await concurrent_writes("comment on post", **writes)

    if results["flat"] is not None:
        await reconcile_post(services, post_email, results["flat"])
    else:
        await services.cache.delete(post_key(post_id), user_key(post_email))
        await services.cache.delete_matching(POSTS_PAGE_PATTERN)

    logger.info(f"{commenter_email} commented on post {post_id}")
    return {"message": "Comment added successfully", "comment_id": comment["_id"], "comment": comment}


@router.post("/clearNotifications")
async def clear_notification(body: NotificationClearRequest, services: Services = Depends(get_services)):
    """Mark one notification read."""
    email = clean_email(body.email)
    notif_id = clean(body.notif_id)
    if not email or not is_valid_id(notif_id):
        raise ValidationError("E-mail and a valid notification ID are required")

    with server_errors("Failed to update notification. Try again."):
        found = await services.db.mark_notification_read(email, notif_id)
    if not found:
        raise NotFoundError("Notification not found")

    await services.cache.delete(user_key(email))
    return {"message": "Notification marked as read"}
