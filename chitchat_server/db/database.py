"""Record store operations for ChitChat over MongoDB (motor).

Users embed their posts, friends, friend requests, notifications and follow
edges; posts are also mirrored into a flat `posts` collection. Every array
mutation here is a single atomic update operator; no method reads a whole
document and writes it back.
"""

from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING, ReturnDocument

PUBLIC_USER = {"password_hash": 0, "otp_hash": 0}
USER_DIRECTORY = {"_id": 1, "email": 1, "first_name": 1, "last_name": 1, "profile_image": 1}


def connect(uri: str, name: str) -> Any:
    """Create a client and return the named database."""
    client = AsyncIOMotorClient(uri)
    return client[name]


class Database:
    """Collections and operations of the record store.

    Args:
        db: a motor (or motor-compatible) database handle
    """

    def __init__(self, db: Any):
        self.db = db
        self.users = db["users"]
        self.posts = db["posts"]

    async def ensure_indexes(self):
        """Create the indexes the queries below rely on."""
        await self.users.create_index("email", unique=True)
        await self.posts.create_index([("created_at", DESCENDING)])
        await self.posts.create_index([("email", ASCENDING)])

    # User operations

    async def create_user(self, user: dict) -> str:
        """Insert a new user. Returns the user ID."""
        await self.users.insert_one(user)
        return user["_id"]

    async def get_user(self, email: str) -> Optional[dict]:
        """Get a full user document, credentials included."""
        return await self.users.find_one({"email": email})

    async def get_user_public(self, email: str) -> Optional[dict]:
        """Get a user without credential fields."""
        return await self.users.find_one({"email": email}, PUBLIC_USER)

    async def list_users(self) -> list[dict]:
        """Registered users directory, ordered by e-mail."""
        cursor = self.users.find({}, USER_DIRECTORY).sort("email", ASCENDING)
        return await cursor.to_list(length=None)

    async def set_user_fields(self, email: str, fields: dict, unset: tuple = ()) -> bool:
        """Set (and optionally unset) top-level fields. Returns True if matched."""
        update: dict = {"$set": fields}
        if unset:
            update["$unset"] = {name: "" for name in unset}
        result = await self.users.update_one({"email": email}, update)
        return result.matched_count > 0

    # Post operations

    async def insert_post(self, post: dict):
        """Insert into the flat posts collection."""
        await self.posts.insert_one(dict(post))

    async def push_user_post(self, email: str, post: dict) -> bool:
        """Embed a post into its owner."""
        result = await self.users.update_one({"email": email}, {"$push": {"posts": dict(post)}})
        return result.matched_count > 0

    async def get_post(self, post_id: str) -> Optional[dict]:
        """Get a post from the flat collection."""
        return await self.posts.find_one({"_id": post_id})

    async def list_posts(self, skip: int, limit: int) -> list[dict]:
        """Posts, newest first."""
        cursor = (
            self.posts.find({})
            .sort([("created_at", DESCENDING), ("_id", DESCENDING)])
            .skip(skip)
            .limit(limit)
        )
        return await cursor.to_list(length=None)

    async def count_posts(self) -> int:
        return await self.posts.count_documents({})

    async def user_post_ids(self, email: str) -> list[str]:
        """IDs of the posts embedded in a user."""
        user = await self.users.find_one({"email": email}, {"posts": 1})
        if not user:
            return []
        return [p["_id"] for p in user.get("posts", [])]

    async def set_flat_posts_image(self, email: str, url: str) -> int:
        """Update the owner avatar on every flat post of a user."""
        result = await self.posts.update_many({"email": email}, {"$set": {"profile_image": url}})
        return result.modified_count

    async def set_embedded_post_image(self, email: str, post_id: str, url: str) -> bool:
        """Update the owner avatar on one embedded post."""
        result = await self.users.update_one(
            {"email": email, "posts": {"$elemMatch": {"_id": post_id}}},
            {"$set": {"posts.$.profile_image": url}},
        )
        return result.matched_count > 0

    # Like operations

    async def add_like_flat(self, post_id: str, like: dict) -> Optional[dict]:
        """Add a like unless this liker already liked. Returns the updated post or None."""
        return await self.posts.find_one_and_update(
            {"_id": post_id, "liked.liked_by_email": {"$ne": like["liked_by_email"]}},
            {"$push": {"liked": dict(like)}},
            return_document=ReturnDocument.AFTER,
        )

    async def add_like_embedded(self, owner_email: str, post_id: str, like: dict) -> bool:
        result = await self.users.update_one(
            {"email": owner_email, "posts": {"$elemMatch": {"_id": post_id}}},
            {"$push": {"posts.$.liked": dict(like)}},
        )
        return result.matched_count > 0

    async def remove_like_flat(self, post_id: str, liker_email: str) -> Optional[dict]:
        """Remove a like if present. Returns the updated post or None."""
        return await self.posts.find_one_and_update(
            {"_id": post_id, "liked.liked_by_email": liker_email},
            {"$pull": {"liked": {"liked_by_email": liker_email}}},
            return_document=ReturnDocument.AFTER,
        )

    async def remove_like_embedded(self, owner_email: str, post_id: str, liker_email: str) -> bool:
        result = await self.users.update_one(
            {"email": owner_email, "posts": {"$elemMatch": {"_id": post_id}}},
            {"$pull": {"posts.$.liked": {"liked_by_email": liker_email}}},
        )
        return result.matched_count > 0

    # Comment operations

    async def add_comment_flat(self, post_id: str, comment: dict) -> Optional[dict]:
        """Append a comment. Returns the updated post or None."""
        return await self.posts.find_one_and_update(
            {"_id": post_id},
            {"$push": {"comments": dict(comment)}},
            return_document=ReturnDocument.AFTER,
        )

    async def add_comment_embedded(self, owner_email: str, post_id: str, comment: dict) -> bool:
        result = await self.users.update_one(
            {"email": owner_email, "posts": {"$elemMatch": {"_id": post_id}}},
            {"$push": {"posts.$.comments": dict(comment)}},
        )
        return result.matched_count > 0

    # Notification operations

    async def push_notification(self, email: str, notification: dict) -> bool:
        result = await self.users.update_one(
            {"email": email}, {"$push": {"notifications": dict(notification)}}
        )
        return result.matched_count > 0

    async def mark_notification_read(self, email: str, notif_id: str) -> bool:
        """Mark one notification read. Returns True if it exists."""
        result = await self.users.update_one(
            {"email": email, "notifications": {"$elemMatch": {"_id": notif_id}}},
            {"$set": {"notifications.$.read": True}},
        )
        return result.matched_count > 0

    # Friend operations

    async def has_pending_request(self, receiver_email: str, sender_email: str) -> bool:
        found = await self.users.find_one(
            {"email": receiver_email, "friend_requests.email": sender_email}, {"_id": 1}
        )
        return found is not None

    async def are_friends(self, email: str, other_email: str) -> bool:
        found = await self.users.find_one(
            {"email": email, "friends.email": other_email}, {"_id": 1}
        )
        return found is not None

    async def add_friend_request(self, receiver_email: str, request: dict, notification: dict) -> bool:
        """Store a request and its notification unless one from the same sender is pending."""
        result = await self.users.update_one(
            {"email": receiver_email, "friend_requests.email": {"$ne": request["email"]}},
            {"$push": {"friend_requests": dict(request), "notifications": dict(notification)}},
        )
        return result.matched_count > 0

    async def take_friend_request(
        self,
        email: str,
        request_id: str,
        sender_email: Optional[str] = None,
        drop_notification: bool = False,
    ) -> Optional[dict]:
        """Atomically remove a pending request and return it, or None if absent.

        Exactly one concurrent caller gets the request back, which makes the
        request's accept/decline transition single-use.
        """
        match: dict = {"_id": request_id}
        if sender_email:
            match["email"] = sender_email
        pull: dict = {"friend_requests": {"_id": request_id}}
        if drop_notification:
            pull["notifications"] = {"_id": request_id}
        before = await self.users.find_one_and_update(
            {"email": email, "friend_requests": {"$elemMatch": match}},
            {"$pull": pull},
            projection={"friend_requests": 1},
            return_document=ReturnDocument.BEFORE,
        )
        if not before:
            return None
        for request in before.get("friend_requests", []):
            if request["_id"] == request_id:
                return request
        return None

    async def list_friend_requests(self, email: str) -> Optional[list[dict]]:
        """Pending requests of a user, or None if the user is unknown."""
        user = await self.users.find_one({"email": email}, {"friend_requests": 1})
        if not user:
            return None
        return user.get("friend_requests", [])

    async def add_friend(self, email: str, friend: dict, notification: dict) -> bool:
        """Add one side of a friend edge unless that counterpart is already a friend."""
        result = await self.users.update_one(
            {"email": email, "friends.email": {"$ne": friend["email"]}},
            {"$push": {"friends": dict(friend), "notifications": dict(notification)}},
        )
        return result.matched_count > 0

    async def remove_friend(self, email: str, friend_id: str) -> Optional[dict]:
        """Pull a friend edge. Returns the updated public user, or None if the edge was absent."""
        return await self.users.find_one_and_update(
            {"email": email, "friends": {"$elemMatch": {"_id": friend_id}}},
            {"$pull": {"friends": {"_id": friend_id}}},
            projection=PUBLIC_USER,
            return_document=ReturnDocument.AFTER,
        )

    async def get_friend(self, email: str, friend_id: str) -> Optional[dict]:
        """One friend edge of a user."""
        user = await self.users.find_one({"email": email}, {"friends": 1})
        if not user:
            return None
        for friend in user.get("friends", []):
            if friend["_id"] == friend_id:
                return friend
        return None

    # Follow operations

    async def is_following(self, email: str, target_email: str) -> bool:
        found = await self.users.find_one(
            {"email": email, "following.followee_email": target_email}, {"_id": 1}
        )
        return found is not None

    async def add_following(self, follow: dict) -> bool:
        result = await self.users.update_one(
            {"email": follow["follower_email"], "following.followee_email": {"$ne": follow["followee_email"]}},
            {"$push": {"following": dict(follow)}},
        )
        return result.matched_count > 0

    async def add_follower(self, follow: dict) -> bool:
        result = await self.users.update_one(
            {"email": follow["followee_email"]},
            {"$push": {"followers": dict(follow)}},
        )
        return result.matched_count > 0

    async def remove_following(self, email: str, target_email: str) -> bool:
        result = await self.users.update_one(
            {"email": email}, {"$pull": {"following": {"followee_email": target_email}}}
        )
        return result.modified_count > 0

    async def remove_follower(self, email: str, follower_email: str) -> bool:
        result = await self.users.update_one(
            {"email": email}, {"$pull": {"followers": {"follower_email": follower_email}}}
        )
        return result.matched_count > 0

    # Chat operations

    async def push_chat_message(self, email: str, friend_id: str, message: dict) -> bool:
        result = await self.users.update_one(
            {"email": email, "friends": {"$elemMatch": {"_id": friend_id}}},
            {"$push": {"friends.$.chats": dict(message)}},
        )
        return result.matched_count > 0
