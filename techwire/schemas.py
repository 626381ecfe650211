"""Response schemas for every upstream API, validated at the boundary.

A payload that does not match its schema raises ``MalformedResponseError``
so the cascade moves on to the next provider instead of passing half-parsed
data downstream. Unknown fields are ignored.
"""
from __future__ import annotations

from typing import Any, List, Optional, Type, TypeVar, Union

import pydantic
from pydantic import BaseModel, TypeAdapter, field_validator

from techwire.errors import MalformedResponseError

T = TypeVar("T")


def parse(schema: Union[Type[T], TypeAdapter], data: Any, provider: str = "") -> T:
    """Validate ``data`` against a model class or ``TypeAdapter``."""
    try:
        if isinstance(schema, TypeAdapter):
            return schema.validate_python(data)
        return schema.model_validate(data)
    except pydantic.ValidationError as e:
        raise MalformedResponseError(
            f"response does not match {getattr(schema, '__name__', 'schema')}: {e.error_count()} error(s)",
            provider=provider,
        ) from e


# ---------------------------------------------------------------------------
# Hacker News
# ---------------------------------------------------------------------------


class HNItem(BaseModel):
    id: int
    type: str = "story"
    title: str = ""
    url: Optional[str] = None
    score: int = 0
    by: str = ""
    time: Optional[int] = None
    descendants: int = 0
    dead: bool = False
    deleted: bool = False


HNStoryIds = TypeAdapter(List[int])


class AlgoliaHit(BaseModel):
    objectID: str
    title: Optional[str] = None
    url: Optional[str] = None
    points: Optional[int] = 0
    author: str = ""
    created_at_i: Optional[int] = None
    num_comments: Optional[int] = 0


class AlgoliaResponse(BaseModel):
    hits: List[AlgoliaHit]


# ---------------------------------------------------------------------------
# Reddit
# ---------------------------------------------------------------------------


class RedditPostData(BaseModel):
    id: str
    title: str
    url: str = ""
    permalink: str = ""
    score: int
    author: str = ""
    created_utc: float
    num_comments: int = 0
    subreddit: str = ""
    is_self: bool = False
    stickied: bool = False


class RedditChild(BaseModel):
    data: RedditPostData


class RedditListingData(BaseModel):
    children: List[RedditChild]


class RedditListing(BaseModel):
    data: RedditListingData


# ---------------------------------------------------------------------------
# GitHub
# ---------------------------------------------------------------------------


class GitHubOwner(BaseModel):
    login: str


class GitHubRepo(BaseModel):
    id: int
    name: str
    full_name: str
    html_url: str
    description: Optional[str] = None
    stargazers_count: int = 0
    language: Optional[str] = None
    created_at: str
    owner: GitHubOwner


class GitHubSearch(BaseModel):
    items: List[GitHubRepo]


# ---------------------------------------------------------------------------
# Dev.to
# ---------------------------------------------------------------------------


class DevToUser(BaseModel):
    username: str


class DevToArticle(BaseModel):
    id: int
    title: str
    url: str
    published_at: str
    positive_reactions_count: int = 0
    comments_count: int = 0
    user: DevToUser
    tag_list: List[str] = []

    @field_validator("tag_list", mode="before")
    @classmethod
    def _split_tags(cls, v):
        # The single-article endpoint sends "a, b" instead of a list
        if isinstance(v, str):
            return [t.strip() for t in v.split(",") if t.strip()]
        return v


DevToArticles = TypeAdapter(List[DevToArticle])


# ---------------------------------------------------------------------------
# Lobsters
# ---------------------------------------------------------------------------


class LobstersStory(BaseModel):
    short_id: str
    title: str
    url: str = ""
    comments_url: str = ""
    score: int = 0
    comment_count: int = 0
    created_at: str
    submitter_user: str = ""

    @field_validator("submitter_user", mode="before")
    @classmethod
    def _username(cls, v):
        # Older API versions embed the whole user object
        if isinstance(v, dict):
            return v.get("username", "")
        return v or ""


LobstersStories = TypeAdapter(List[LobstersStory])


# ---------------------------------------------------------------------------
# Text generation
# ---------------------------------------------------------------------------


class GeminiPart(BaseModel):
    text: str = ""


class GeminiContent(BaseModel):
    parts: List[GeminiPart]


class GeminiCandidate(BaseModel):
    content: GeminiContent


class GeminiResponse(BaseModel):
    candidates: List[GeminiCandidate]

    @property
    def text(self) -> str:
        if not self.candidates:
            return ""
        return "".join(p.text for p in self.candidates[0].content.parts).strip()


class OpenAIMessage(BaseModel):
    content: Optional[str] = None


class OpenAIChoice(BaseModel):
    message: OpenAIMessage


class OpenAIUsage(BaseModel):
    total_tokens: int = 0


class OpenAIResponse(BaseModel):
    choices: List[OpenAIChoice]
    usage: Optional[OpenAIUsage] = None

    @property
    def text(self) -> str:
        if not self.choices:
            return ""
        return (self.choices[0].message.content or "").strip()


# ---------------------------------------------------------------------------
# Unsplash
# ---------------------------------------------------------------------------


class UnsplashUrls(BaseModel):
    small: Optional[str] = None
    regular: Optional[str] = None


class UnsplashPhoto(BaseModel):
    id: str = ""
    urls: UnsplashUrls


class UnsplashSearch(BaseModel):
    results: List[UnsplashPhoto]
