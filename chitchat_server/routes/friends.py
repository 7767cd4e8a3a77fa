"""Users directory, friend requests and friend edges."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends

from shared.schemas import (
    EmailRequest, Friend, FriendRequest, FriendRequestAccept, FriendRequestCreate,
    Identity, Notification, UnfriendRequest, is_valid_id, new_id,
)
from ..cache import USERS_LIST_KEY, friend_requests_key, user_key
from ..errors import ConflictError, NotFoundError, ValidationError, server_errors
from ..services import Services, clean_email, concurrent_writes, get_services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["friends"])


@router.get("/users")
async def list_users(services: Services = Depends(get_services)):
    """Registered users directory."""

    async def load():
        users = await services.db.list_users()
        return {"total_count": len(users), "data": users}

    with server_errors("Error fetching users"):
        result, source = await services.cache.read_through(
            USERS_LIST_KEY, load, services.settings.users_list_ttl
        )
    return {**result, "source": source}


@router.post("/addFriends")
async def send_friend_request(body: FriendRequestCreate, services: Services = Depends(get_services)):
    """Send a friend request from adder to receiver."""
    adder_email = clean_email(body.adder_email)
    receiver_email = clean_email(body.receiver_email)
    if not adder_email or not receiver_email:
        raise ValidationError("Both adder and receiver e-mails are required")
    if adder_email == receiver_email:
        raise ConflictError("You cannot send a friend request to yourself")

    with server_errors("Friend request was unsuccessful"):
        adder = await services.user(adder_email, "Adder not found")
        receiver = await services.user(receiver_email, "Receiver not found")

        if await services.db.has_pending_request(receiver_email, adder_email):
            raise ConflictError("Friend request sent before")
        if await services.db.has_pending_request(adder_email, receiver_email):
            raise ConflictError("This user already sent you a friend request")
        if await services.db.are_friends(adder_email, receiver_email):
            raise ConflictError("You are already friends")

        sender = Identity.of(adder).model_dump()
        request = FriendRequest(**sender)
        received = Notification(
            id=request.id,
            **sender,
            action=f"{adder['first_name']} sent you a friend request",
            subject_id=request.id,
        )
        sent = Notification(
            **Identity.of(receiver).model_dump(),
            action="You sent a friend request",
            subject_id=request.id,
        )
        # Conditional on no pending request from the adder
        if not await services.db.add_friend_request(receiver_email, request.to_doc(), received.to_doc()):
            raise ConflictError("Friend request sent before")
        await concurrent_writes(
            "send friend request",
            adder=services.db.push_notification(adder_email, sent.to_doc()),
        )

    await services.cache.delete(
        user_key(adder_email), user_key(receiver_email), friend_requests_key(receiver_email)
    )
    logger.info(f"Friend request {request.id}: {adder_email} -> {receiver_email}")
    return {"message": "friend request sent successfully", "request_id": request.id}


@router.get("/friendRequests/{email}")
async def list_friend_requests(email: str, services: Services = Depends(get_services)):
    """Pending friend requests of a user."""
    email = clean_email(email)
    with server_errors("Unable to get friend requests"):
        requests, source = await services.cache.read_through(
            friend_requests_key(email),
            lambda: services.db.list_friend_requests(email),
            services.settings.friend_requests_ttl,
        )
    if requests is None:
        raise NotFoundError("User not found")
    return {"data": requests, "source": source}


@router.post("/acceptFriendRequest/{request_id}")
async def accept_friend_request(
    request_id: str,
    body: FriendRequestAccept,
    services: Services = Depends(get_services),
):
    """Accept a pending request, creating a symmetric friend edge."""
    user_email = clean_email(body.user_email)
    friend_email = clean_email(body.friend_email)
    if not user_email or not friend_email or not is_valid_id(request_id):
        raise ValidationError("E-mails and a valid request ID are required")
    if user_email == friend_email:
        raise ConflictError("You cannot befriend yourself")

    with server_errors("Failed to accept friend request"):
        user = await services.user(user_email)
        friend = await services.user(friend_email, "Friend not found")
        if await services.db.are_friends(user_email, friend_email):
            raise ConflictError("You are already friends")

        request = await services.db.take_friend_request(
            user_email, request_id, sender_email=friend_email
        )
        if request is None:
            raise ConflictError("Friend request is no longer pending")

        edge_id = new_id()
        user_side = Friend(id=edge_id, **Identity.of(friend).model_dump()).to_doc()
        friend_side = Friend(id=edge_id, **Identity.of(user).model_dump()).to_doc()
        await concurrent_writes(
            "accept friend request",
            user=services.db.add_friend(
                user_email,
                user_side,
                Notification(
                    **Identity.of(friend).model_dump(),
                    action=f"You and {friend['first_name']} are now friends",
                    subject_id=edge_id,
                ).to_doc(),
            ),
            friend=services.db.add_friend(
                friend_email,
                friend_side,
                Notification(
                    **Identity.of(user).model_dump(),
                    action=f"{user['first_name']} accepted your friend request",
                    subject_id=edge_id,
                ).to_doc(),
            ),
        )
        await services.db.mark_notification_read(user_email, request_id)

    await services.cache.delete(
        user_key(user_email), user_key(friend_email), friend_requests_key(user_email)
    )
    logger.info(f"Friend request {request_id} accepted, edge {edge_id}")
    return {
        "message": "Friend request accepted successfully",
        "friend_id": edge_id,
        "friend": user_side,
    }


@router.delete("/deleteFriendRequest/{request_id}")
async def decline_friend_request(
    request_id: str,
    body: EmailRequest,
    services: Services = Depends(get_services),
):
    """Decline a pending request, removing it and its notification."""
    email = clean_email(body.email)
    if not email or not is_valid_id(request_id):
        raise ValidationError("Your e-mail or request ID is invalid")

    with server_errors("Failed to delete friend request"):
        request = await services.db.take_friend_request(email, request_id, drop_notification=True)
    if request is None:
        raise NotFoundError("Friend request not found")

    await services.cache.delete(user_key(email), friend_requests_key(email))
    logger.info(f"Friend request {request_id} declined by {email}")
    return {"message": "Friend request deleted successfully", "deleted_at": datetime.utcnow()}


@router.post("/unfriend/{friend_id}")
async def unfriend(
    friend_id: str,
    body: UnfriendRequest,
    services: Services = Depends(get_services),
):
    """Remove a friend edge from both users."""
    user_email = clean_email(body.user_email)
    receiver_email = clean_email(body.receiver_email)
    if not user_email or not receiver_email or not is_valid_id(friend_id):
        raise ValidationError("E-mails and a valid friend ID are required")

    with server_errors("Failed to unfriend"):
        results = await concurrent_writes(
            "unfriend",
            user=services.db.remove_friend(user_email, friend_id),
            receiver=services.db.remove_friend(receiver_email, friend_id),
        )
    if results["user"] is None and results["receiver"] is None:
        raise NotFoundError("Friend not found")

    ttl = services.settings.user_update_ttl
    for email, updated in ((user_email, results["user"]), (receiver_email, results["receiver"])):
        if updated is None:
            await services.cache.delete(user_key(email))
        else:
            await services.cache.set_json(user_key(email), updated, ttl)

    services.fanout.emit_to_room(user_email, "friendRemoved", {
        "friend_id": friend_id,
        "email": receiver_email,
        "message": "Unfriended successfully",
    })
    services.fanout.emit_to_room(receiver_email, "friendRemoved", {
        "friend_id": friend_id,
        "email": user_email,
        "message": "You were unfriended",
    })

    logger.info(f"Friend edge {friend_id} removed ({user_email}, {receiver_email})")
    return {"message": "Unfriended successfully", "updated_at": datetime.utcnow()}
