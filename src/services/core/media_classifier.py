"""Media classifier - extract media URLs from post text and categorize images."""

import re
from dataclasses import dataclass
from typing import Optional, Pattern
from urllib.parse import urlparse

from src.config.constants import DEFAULT_IMAGE_CATEGORY
from src.config.settings import settings
from src.models.feed_item import ClassifiedContent
from src.models.media_item import MediaItem, MediaType
from src.utils.logger import logger


@dataclass(frozen=True)
class ImageCategory:
    """Content category for images.

    Attributes:
        key: Stable identifier stored on media items (e.g. 'nature')
        name: Display name
        color: Hex colour used by the client for the category zone
        keywords: Substrings scored +1 each when present in post text or URL
        url_patterns: Regexes scored +3 each when they match post text or URL
    """

    key: str
    name: str
    color: str
    keywords: tuple
    url_patterns: tuple


def _pattern(words: str) -> Pattern:
    return re.compile(words, re.IGNORECASE)


# Enumeration order is the tie-break order: the first category reaching the
# highest score wins.
IMAGE_CATEGORIES = (
    ImageCategory(
        key="nature",
        name="Nature & Landscapes",
        color="#10b981",
        keywords=("nature", "landscape", "tree", "forest", "mountain", "ocean", "sunset", "flower", "garden", "park"),
        url_patterns=(_pattern(r"nature|landscape|tree|forest|mountain|ocean|sunset|flower"),),
    ),
    ImageCategory(
        key="food",
        name="Food & Drinks",
        color="#f59e0b",
        keywords=("food", "pizza", "burger", "coffee", "restaurant", "cooking", "recipe", "fruit", "drink"),
        url_patterns=(_pattern(r"food|pizza|burger|coffee|restaurant|cooking|recipe|fruit|drink"),),
    ),
    ImageCategory(
        key="tech",
        name="Tech & Crypto",
        color="#3b82f6",
        keywords=("bitcoin", "crypto", "blockchain", "tech", "computer", "code", "programming", "ai"),
        url_patterns=(_pattern(r"bitcoin|crypto|blockchain|tech|computer|code|programming|ai"),),
    ),
    ImageCategory(
        key="memes",
        name="Memes & Humor",
        color="#8b5cf6",
        keywords=("meme", "funny", "lol", "joke", "humor", "comic", "pepe", "wojak"),
        url_patterns=(_pattern(r"meme|funny|lol|joke|humor|comic|pepe|wojak"),),
    ),
    ImageCategory(
        key="art",
        name="Art & Creative",
        color="#ec4899",
        keywords=("art", "painting", "drawing", "creative", "design", "artist", "gallery"),
        url_patterns=(_pattern(r"art|painting|drawing|creative|design|artist|gallery"),),
    ),
)

CATEGORIES_BY_KEY = {category.key: category for category in IMAGE_CATEGORIES}


class MediaClassifier:
    """
    Pure extraction of media URLs from post text.

    Produces disjoint image/video/audio/document lists matched by file
    extension or known provider domain, a residual list of plain links,
    and the text with every recognized URL removed.
    """

    IMAGE_PATTERN = re.compile(
        r"https?://[^\s]+\.(?:jpg|jpeg|png|gif|webp|bmp|svg|tiff|ico|avif|heic)\b(?:\?[^\s]*)?",
        re.IGNORECASE,
    )
    VIDEO_PATTERN = re.compile(
        r"https?://[^\s]+\.(?:mp4|webm|mov|avi|mkv|m4v|flv|wmv|3gp|ogv)\b(?:\?[^\s]*)?"
        r"|https?://(?:www\.)?(?:youtube\.com/watch\?v=|youtu\.be/|vimeo\.com/|twitch\.tv/videos/|rumble\.com/|odysee\.com/)[^\s]+",
        re.IGNORECASE,
    )
    AUDIO_PATTERN = re.compile(
        r"https?://[^\s]+\.(?:mp3|wav|ogg|m4a|flac|aac|wma|opus)\b(?:\?[^\s]*)?"
        r"|https?://(?:open\.)?(?:spotify\.com/|soundcloud\.com/|anchor\.fm/|podcasts\.apple\.com/)[^\s]+",
        re.IGNORECASE,
    )
    DOCUMENT_PATTERN = re.compile(
        r"https?://[^\s]+\.(?:pdf|doc|docx|ppt|pptx|xls|xlsx|txt|md|rtf|odt|ods|odp)\b(?:\?[^\s]*)?",
        re.IGNORECASE,
    )
    LINK_PATTERN = re.compile(r"https?://[^\s]+", re.IGNORECASE)
    TRAILING_PUNCTUATION = ".,;:!?)]}\"'"

    EXTENSION_PATTERN = re.compile(r"\.([^.?]+)(?:\?|$)")
    YOUTUBE_QUERY_ID = re.compile(r"v=([^&]+)")

    VIDEO_PROVIDERS = (
        ("youtube.com", "youtube"),
        ("youtu.be", "youtube"),
        ("vimeo.com", "vimeo"),
        ("twitch.tv", "twitch"),
        ("rumble.com", "rumble"),
        ("odysee.com", "odysee"),
    )
    AUDIO_PROVIDERS = (
        ("spotify.com", "spotify"),
        ("soundcloud.com", "soundcloud"),
        ("anchor.fm", "podcast"),
        ("podcasts.apple.com", "apple-podcast"),
    )

    @classmethod
    def classify_content(cls, content: str) -> ClassifiedContent:
        """
        Classify all media referenced by a post.

        Args:
            content: Raw post text

        Returns:
            ClassifiedContent whose items have timestamp 0 and no event
            binding; callers attach those when archiving.
        """
        content = content or ""

        # (start, end) spans of text already taken by an earlier type
        claimed: list[tuple[int, int]] = []
        image_urls = cls._find(cls.IMAGE_PATTERN, content, claimed)
        video_urls = cls._find(cls.VIDEO_PATTERN, content, claimed)
        audio_urls = cls._find(cls.AUDIO_PATTERN, content, claimed)
        document_urls = cls._find(cls.DOCUMENT_PATTERN, content, claimed)
        link_urls = cls._find(cls.LINK_PATTERN, content, claimed, strip=cls.TRAILING_PUNCTUATION)

        result = ClassifiedContent(
            images=[cls._image_item(url) for url in image_urls],
            videos=[cls._video_item(url) for url in video_urls],
            audio=[cls._audio_item(url) for url in audio_urls],
            documents=[cls._document_item(url) for url in document_urls],
            links=[cls._link_item(url) for url in link_urls],
        )

        text = content
        for url in image_urls + video_urls + audio_urls + document_urls + link_urls:
            text = text.replace(url, "", 1).strip()
        result.text_content = text

        return result

    @staticmethod
    def _find(
        pattern: Pattern, content: str, claimed: list, strip: str = ""
    ) -> list[str]:
        """
        Ordered unique matches of ``pattern`` that overlap no claimed span.

        Spans of accepted matches are appended to ``claimed``. ``strip`` lists
        trailing characters dropped from each match (sentence punctuation).
        """
        found: list[str] = []
        for match in pattern.finditer(content):
            start, end = match.span()
            if any(start < taken_end and taken_start < end for taken_start, taken_end in claimed):
                continue
            claimed.append((start, end))
            url = match.group(0).rstrip(strip) if strip else match.group(0)
            if url not in found:
                found.append(url)
        return found

    # ==================== Metadata helpers ====================

    @classmethod
    def get_file_extension(cls, url: str) -> str:
        match = cls.EXTENSION_PATTERN.search(url)
        return match.group(1).lower() if match else "unknown"

    @classmethod
    def _provider(cls, url: str, providers: tuple) -> Optional[str]:
        for domain, name in providers:
            if domain in url:
                return name
        return None

    @classmethod
    def _youtube_id(cls, url: str) -> Optional[str]:
        if "youtube.com/watch?v=" in url:
            match = cls.YOUTUBE_QUERY_ID.search(url)
            return match.group(1) if match else None
        if "youtu.be/" in url:
            video_id = url.rstrip("/").split("/")[-1].split("?")[0]
            return video_id or None
        return None

    @classmethod
    def _image_item(cls, url: str) -> MediaItem:
        extension = cls.get_file_extension(url)
        return MediaItem(
            url=url,
            timestamp=0,
            type=MediaType.IMAGE,
            subtype=extension,
            title=f"Image: {extension.upper()}",
            thumbnail=url,  # images are their own thumbnails
        )

    @classmethod
    def _video_item(cls, url: str) -> MediaItem:
        subtype = cls._provider(url, cls.VIDEO_PROVIDERS) or cls.get_file_extension(url)
        youtube_id = cls._youtube_id(url)

        if youtube_id is not None or subtype == "youtube":
            title = f"📺 YouTube {(youtube_id or '')[:8]}"
        elif subtype == "vimeo":
            title = "📺 Vimeo Video"
        elif subtype == "twitch":
            title = "📺 Twitch Stream"
        else:
            title = f"📺 {cls.get_file_extension(url).upper()} Video"

        thumbnail = (
            f"https://img.youtube.com/vi/{youtube_id}/mqdefault.jpg" if youtube_id else None
        )
        return MediaItem(
            url=url,
            timestamp=0,
            type=MediaType.VIDEO,
            subtype=subtype,
            title=title,
            thumbnail=thumbnail,
        )

    @classmethod
    def _audio_item(cls, url: str) -> MediaItem:
        subtype = cls._provider(url, cls.AUDIO_PROVIDERS) or cls.get_file_extension(url)

        if subtype == "spotify":
            title = "🎵 Spotify Track"
        elif subtype == "soundcloud":
            title = "🎵 SoundCloud Audio"
        elif subtype in ("podcast", "apple-podcast"):
            title = "🎙️ Podcast"
        else:
            title = f"🎵 {cls.get_file_extension(url).upper()} Audio"

        return MediaItem(url=url, timestamp=0, type=MediaType.AUDIO, subtype=subtype, title=title)

    @classmethod
    def _document_item(cls, url: str) -> MediaItem:
        extension = cls.get_file_extension(url)
        return MediaItem(
            url=url,
            timestamp=0,
            type=MediaType.DOCUMENT,
            subtype=extension,
            title=f"📄 {extension.upper()} Document",
        )

    @classmethod
    def _link_item(cls, url: str) -> MediaItem:
        try:
            hostname = urlparse(url).hostname
        except ValueError:
            hostname = None
        title = f"🔗 {hostname.replace('www.', '', 1)}" if hostname else "🔗 External Link"
        return MediaItem(url=url, timestamp=0, type=MediaType.LINK, title=title)


class ImageCategorizer:
    """
    Best-effort keyword scoring of images into IMAGE_CATEGORIES.

    Results are memoized per URL: the first classification of a URL wins
    for the lifetime of the cache entry, whatever post text accompanies
    later calls.
    """

    def __init__(self, cache_size: Optional[int] = None):
        self.cache_size = cache_size or settings.CATEGORY_CACHE_SIZE
        self._cache: dict[str, str] = {}

    def classify(self, url: str, context: str = "") -> str:
        """
        Pick the category with the highest score for an image.

        Args:
            url: Image URL
            context: Post text the image appeared in

        Returns:
            Category key; DEFAULT_IMAGE_CATEGORY when nothing scores
        """
        cached = self._cache.get(url)
        if cached is not None:
            return cached

        category, score = self.score(url, context)

        if len(self._cache) >= self.cache_size:
            # Drop the oldest entry (dicts keep insertion order)
            self._cache.pop(next(iter(self._cache)))
        self._cache[url] = category

        logger.debug(f"[ImageCategorizer] '{category}' (score: {score}) for {url[:50]}")
        return category

    @staticmethod
    def score(url: str, context: str = "") -> tuple[str, int]:
        """Score all categories without touching the cache."""
        text = f"{context} {url}".lower()
        best_category = DEFAULT_IMAGE_CATEGORY
        best_score = 0

        for category in IMAGE_CATEGORIES:
            score = 0
            for pattern in category.url_patterns:
                if pattern.search(text):
                    score += 3
            for keyword in category.keywords:
                if keyword in text:
                    score += 1

            # Strictly greater: earlier categories win ties
            if score > best_score:
                best_score = score
                best_category = category.key

        return best_category, best_score

    @staticmethod
    def get_category(key: str) -> ImageCategory:
        """Category metadata, falling back to the default category."""
        return CATEGORIES_BY_KEY.get(key) or CATEGORIES_BY_KEY[DEFAULT_IMAGE_CATEGORY]

    def cache_len(self) -> int:
        return len(self._cache)

    def clear_cache(self) -> None:
        self._cache.clear()
