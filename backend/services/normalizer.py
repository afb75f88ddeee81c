"""Map heterogeneous IMAI payloads onto the stable DTOs the web client reads.

The upstream is inconsistent: a user can be a direct object or nested under
``user``, an image URL can be ``display_url`` or buried in
``image_versions2.candidates[0].url``, reels wrap each post in ``media``.
Every field is resolved with an explicit, ordered fallback chain
(:func:`first_of`). ``None`` and ``""`` fall through to the next path; when
nothing matches, a safe default (``""``, ``0``, ``False``) is used. Optional
fields are omitted from the DTO instead of being emitted as ``null``.
"""

from typing import Any, Iterable, TypedDict

Path = str | tuple[str | int, ...]

IMAGE_URL_PATHS: tuple[Path, ...] = (
    "display_url",
    ("image_versions2", "candidates", 0, "url"),
    "thumbnail_url",
    "thumbnail_src",
)
VIDEO_URL_PATHS: tuple[Path, ...] = (
    "video_url",
    ("video_versions", 0, "url"),
)
PROFILE_PIC_PATHS: tuple[Path, ...] = (
    "profile_pic_url_hd",
    ("hd_profile_pic_url_info", "url"),
    "profile_pic_url",
)

SEARCH_USER_PATHS: tuple[Path, ...] = ("users", "list", ("data", "users"), ("data", "list"))

MEDIA_TYPE_LABELS = {1: "image", 2: "video", 8: "carousel"}


# ---------------------------------------------------------------------------
# DTOs
# ---------------------------------------------------------------------------


class _SearchUserRequired(TypedDict):
    username: str
    isVerified: bool


class SearchUser(_SearchUserRequired, total=False):
    fullName: str
    profilePicUrl: str
    followersCount: int


class Profile(TypedDict):
    username: str
    fullName: str
    bio: str
    profilePicUrl: str
    posts: int
    followers: int
    following: int


class _HighlightRequired(TypedDict):
    id: str
    title: str
    itemsCount: int


class Highlight(_HighlightRequired, total=False):
    coverUrl: str


class SimpleUser(TypedDict):
    username: str
    profilePicUrl: str


class _StoryItemRequired(TypedDict):
    id: str
    mediaType: int
    imageUrl: str
    takenAt: int
    expiringAt: int


class StoryItem(_StoryItemRequired, total=False):
    videoUrl: str


class StoriesResponse(TypedDict):
    status: str
    user: SimpleUser
    items: list[StoryItem]


class HighlightItems(TypedDict):
    id: str
    title: str
    items: list[StoryItem]


class _PostItemRequired(TypedDict):
    code: str
    displayUrl: str
    mediaType: int
    likeCount: int
    commentCount: int


class PostItem(_PostItemRequired, total=False):
    videoUrl: str


class PostPage(TypedDict):
    status: str
    items: list[PostItem]
    endCursor: str | None
    moreAvailable: bool


class HashtagFeedUser(TypedDict):
    username: str
    full_name: str
    profile_pic_url: str
    is_verified: bool


class _HashtagCarouselItemRequired(TypedDict):
    display_url: str


class HashtagCarouselItem(_HashtagCarouselItemRequired, total=False):
    video_url: str
    image_candidates_url: str


class _HashtagFeedItemRequired(TypedDict):
    pk: str
    code: str
    display_url: str
    taken_at: int
    like_count: int
    comment_count: int
    carousel_media_count: int
    user: HashtagFeedUser


class HashtagFeedItem(_HashtagFeedItemRequired, total=False):
    image_candidates_url: str
    view_count: int
    play_count: int
    video_url: str
    carousel_media: list[HashtagCarouselItem]


class HashtagFeed(TypedDict):
    items: list[HashtagFeedItem]
    more_available: bool
    end_cursor: str | None


class _MediaCarouselItemRequired(TypedDict):
    displayUrl: str
    mediaType: str


class MediaCarouselItem(_MediaCarouselItemRequired, total=False):
    videoUrl: str


class _MediaInfoRequired(TypedDict):
    code: str
    captionText: str
    takenAt: int
    mediaType: str
    displayUrl: str
    user: SimpleUser
    likeCount: int
    commentCount: int


class MediaInfo(_MediaInfoRequired, total=False):
    videoUrl: str
    carousel: list[MediaCarouselItem]


class Comment(TypedDict):
    id: str
    text: str
    createdAt: int
    likeCount: int
    user: SimpleUser


class CommentsPage(TypedDict):
    comments: list[Comment]
    endCursor: str | None
    hasMore: bool


# ---------------------------------------------------------------------------
# Fallback-chain primitives
# ---------------------------------------------------------------------------


def dig(obj: Any, path: Path) -> Any:
    """Follow ``path`` (keys for dicts, indexes for lists); ``None`` if any step is missing."""
    steps = (path,) if isinstance(path, str) else path
    current = obj
    for step in steps:
        if isinstance(step, int):
            if not isinstance(current, list) or not -len(current) <= step < len(current):
                return None
            current = current[step]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(step)
        if current is None:
            return None
    return current


def first_of(obj: Any, *paths: Path, default: Any = None) -> Any:
    """Value at the first path that resolves to something other than ``None``/``""``."""
    for path in paths:
        value = dig(obj, path)
        if value is not None and value != "":
            return value
    return default


def as_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value))
        except ValueError:
            return default
    return default


def as_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


def as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _set_optional(target: dict, key: str, value: Any) -> None:
    if value is not None and value != "":
        target[key] = value


def _user_of(obj: Any) -> dict | None:
    """A user object that is either ``obj`` itself or nested under ``obj["user"]``."""
    if not isinstance(obj, dict):
        return None
    if obj.get("username"):
        return obj
    nested = obj.get("user")
    if isinstance(nested, dict) and nested.get("username"):
        return nested
    return None


def _media_of(item: Any) -> dict:
    """Reels wrap each post as ``{"media": {...}}``; feeds don't."""
    if isinstance(item, dict):
        nested = item.get("media")
        if isinstance(nested, dict):
            return nested
        return item
    return {}


def _simple_user(user: Any, fallback_username: str = "") -> SimpleUser:
    return {
        "username": as_str(first_of(user, "username"), fallback_username),
        "profilePicUrl": as_str(first_of(user, "profile_pic_url")),
    }


def _dicts(values: Iterable) -> list[dict]:
    return [value for value in values if isinstance(value, dict)]


# ---------------------------------------------------------------------------
# Per-endpoint normalizers
# ---------------------------------------------------------------------------


def normalize_search_users(payload: dict) -> list[SearchUser]:
    """Users from the first of ``users``, ``list``, ``data.users``, ``data.list`` that is a list."""
    raw_users = next(
        (
            candidate
            for candidate in (dig(payload, path) for path in SEARCH_USER_PATHS)
            if isinstance(candidate, list)
        ),
        [],
    )
    users: list[SearchUser] = []
    for item in raw_users:
        user = _user_of(item)
        if user is None:
            continue
        result: SearchUser = {
            "username": as_str(user["username"]),
            "isVerified": bool(user.get("is_verified") or False),
        }
        _set_optional(result, "fullName", first_of(user, "full_name"))
        _set_optional(result, "profilePicUrl", first_of(user, "profile_pic_url"))
        followers = first_of(user, "follower_count")
        if followers:
            result["followersCount"] = as_int(followers)
        users.append(result)
    return users


def normalize_profile(payload: dict, username: str) -> Profile:
    user = _user_of(payload) or (payload.get("user") if isinstance(payload.get("user"), dict) else {})
    return {
        "username": as_str(first_of(user, "username"), username),
        "fullName": as_str(first_of(user, "full_name")),
        "bio": as_str(first_of(user, "biography")),
        "profilePicUrl": as_str(first_of(user, *PROFILE_PIC_PATHS)),
        "posts": as_int(first_of(user, "media_count", ("edge_owner_to_timeline_media", "count"))),
        "followers": as_int(first_of(user, "follower_count", ("edge_followed_by", "count"))),
        "following": as_int(first_of(user, "following_count", ("edge_follow", "count"))),
    }


def normalize_highlights(payload: dict) -> list[Highlight]:
    """Highlight tray from ``tray`` (preferred) or ``highlights``."""
    raw = as_list(first_of(payload, "tray", "highlights", default=[]))
    highlights: list[Highlight] = []
    for item in _dicts(raw):
        highlight: Highlight = {
            "id": as_str(first_of(item, "id", "pk")),
            "title": as_str(first_of(item, "title")),
            "itemsCount": as_int(first_of(item, "media_count")),
        }
        _set_optional(
            highlight,
            "coverUrl",
            first_of(
                item,
                ("cover_media", "cropped_image_version", "url"),
                ("cover_media", "thumbnail_src"),
                "cover_image_url",
            ),
        )
        highlights.append(highlight)
    return highlights


def normalize_story_item(item: dict) -> StoryItem:
    story: StoryItem = {
        "id": as_str(first_of(item, "id", "pk")),
        "mediaType": as_int(first_of(item, "media_type"), 1),
        "imageUrl": as_str(first_of(item, *IMAGE_URL_PATHS)),
        "takenAt": as_int(first_of(item, "taken_at")),
        "expiringAt": as_int(first_of(item, "expiring_at")),
    }
    _set_optional(story, "videoUrl", first_of(item, *VIDEO_URL_PATHS))
    return story


def normalize_stories(payload: dict, username: str) -> StoriesResponse:
    """Active stories; ``reel: null`` means no stories, not an error."""
    reel = first_of(payload, "reel", ("reels_media", 0), default={})
    return {
        "status": "ok",
        "user": _simple_user(dig(reel, "user"), username),
        "items": [normalize_story_item(item) for item in _dicts(as_list(dig(reel, "items")))],
    }


def normalize_highlight_items(payload: dict, highlight_id: str) -> HighlightItems:
    reel = first_of(payload, ("reels", highlight_id), ("reels_media", 0), default=payload)
    return {
        "id": highlight_id,
        "title": as_str(first_of(reel, "title")),
        "items": [normalize_story_item(item) for item in _dicts(as_list(dig(reel, "items")))],
    }


def normalize_post_item(item: dict) -> PostItem:
    media = _media_of(item)
    post: PostItem = {
        "code": as_str(first_of(media, "code", "shortcode", "pk", "id")),
        "displayUrl": as_str(first_of(media, *IMAGE_URL_PATHS)),
        "mediaType": as_int(first_of(media, "media_type")),
        "likeCount": as_int(first_of(media, "like_count")),
        "commentCount": as_int(first_of(media, "comment_count")),
    }
    _set_optional(post, "videoUrl", first_of(media, *VIDEO_URL_PATHS))
    return post


def normalize_post_page(payload: dict) -> PostPage:
    """Feed, reels, tagged and reposts all share this page shape."""
    cursor = first_of(payload, "end_cursor", "next_max_id")
    return {
        "status": "ok",
        "items": [normalize_post_item(item) for item in _dicts(as_list(dig(payload, "items")))],
        "endCursor": as_str(cursor) if cursor is not None else None,
        "moreAvailable": bool(first_of(payload, "more_available", default=False)),
    }


def _hashtag_user(item: dict) -> HashtagFeedUser:
    user = dig(item, "user")
    return {
        "username": as_str(first_of(user, "username"), "unknown"),
        "full_name": as_str(first_of(user, "full_name")),
        "profile_pic_url": as_str(first_of(user, "profile_pic_url")),
        "is_verified": bool(first_of(user, "is_verified", default=False)),
    }


def normalize_hashtag_item(item: dict) -> HashtagFeedItem:
    candidate_url = dig(item, ("image_versions2", "candidates", 0, "url"))
    carousel = None
    if isinstance(item.get("carousel_media"), list):
        carousel = []
        for child in _dicts(item["carousel_media"]):
            carousel_item: HashtagCarouselItem = {"display_url": as_str(first_of(child, *IMAGE_URL_PATHS))}
            _set_optional(carousel_item, "video_url", first_of(child, *VIDEO_URL_PATHS))
            _set_optional(carousel_item, "image_candidates_url", dig(child, ("image_versions2", "candidates", 0, "url")))
            carousel.append(carousel_item)

    feed_item: HashtagFeedItem = {
        "pk": as_str(first_of(item, "pk", "id")),
        "code": as_str(first_of(item, "code", "pk")),
        "display_url": as_str(first_of(item, *IMAGE_URL_PATHS)),
        "taken_at": as_int(first_of(item, "taken_at")),
        "like_count": as_int(first_of(item, "like_count")),
        "comment_count": as_int(first_of(item, "comment_count")),
        "carousel_media_count": as_int(
            first_of(item, "carousel_media_count"), len(carousel) if carousel else 0
        ),
        "user": _hashtag_user(item),
    }
    _set_optional(feed_item, "image_candidates_url", candidate_url)
    _set_optional(feed_item, "video_url", first_of(item, *VIDEO_URL_PATHS))
    if first_of(item, "view_count") is not None:
        feed_item["view_count"] = as_int(item["view_count"])
    if first_of(item, "play_count") is not None:
        feed_item["play_count"] = as_int(item["play_count"])
    if carousel is not None:
        feed_item["carousel_media"] = carousel
    return feed_item


def normalize_hashtag_feed(payload: dict) -> HashtagFeed:
    cursor = first_of(payload, "end_cursor", "next_max_id")
    return {
        "items": [normalize_hashtag_item(_media_of(item)) for item in _dicts(as_list(dig(payload, "items")))],
        "more_available": bool(first_of(payload, "more_available", default=False)),
        "end_cursor": as_str(cursor) if cursor is not None else None,
    }


def _media_type_label(value: Any) -> str:
    return MEDIA_TYPE_LABELS.get(as_int(value), "unknown")


def normalize_media_info(payload: dict) -> MediaInfo | None:
    """Post details from ``items[0]`` or ``media``; ``None`` when the payload has no post."""
    media = first_of(payload, ("items", 0), "media")
    if not isinstance(media, dict):
        return None

    info: MediaInfo = {
        "code": as_str(first_of(media, "code", "shortcode", "pk")),
        "captionText": as_str(first_of(media, ("caption", "text"), "caption_text")),
        "takenAt": as_int(first_of(media, "taken_at")),
        "mediaType": _media_type_label(first_of(media, "media_type")),
        "displayUrl": as_str(first_of(media, *IMAGE_URL_PATHS)),
        "user": _simple_user(first_of(media, "user", "owner")),
        "likeCount": as_int(first_of(media, "like_count")),
        "commentCount": as_int(first_of(media, "comment_count")),
    }
    _set_optional(info, "videoUrl", first_of(media, *VIDEO_URL_PATHS))

    children = _dicts(as_list(dig(media, "carousel_media")))
    if children:
        carousel: list[MediaCarouselItem] = []
        for child in children:
            carousel_item: MediaCarouselItem = {
                "displayUrl": as_str(first_of(child, *IMAGE_URL_PATHS)),
                "mediaType": _media_type_label(first_of(child, "media_type")),
            }
            _set_optional(carousel_item, "videoUrl", first_of(child, *VIDEO_URL_PATHS))
            carousel.append(carousel_item)
        info["carousel"] = carousel
    return info


def normalize_comments(payload: dict) -> CommentsPage:
    comments: list[Comment] = []
    for item in _dicts(as_list(first_of(payload, "comments", "items", default=[]))):
        comments.append(
            {
                "id": as_str(first_of(item, "pk", "id")),
                "text": as_str(first_of(item, "text")),
                "createdAt": as_int(first_of(item, "created_at", "created_at_utc")),
                "likeCount": as_int(first_of(item, "comment_like_count", "like_count")),
                "user": _simple_user(dig(item, "user")),
            }
        )
    cursor = first_of(payload, "end_cursor", "next_min_id", "next_max_id")
    return {
        "comments": comments,
        "endCursor": as_str(cursor) if cursor is not None else None,
        "hasMore": bool(first_of(payload, "has_more_comments", "has_more", "more_available", default=False)),
    }
