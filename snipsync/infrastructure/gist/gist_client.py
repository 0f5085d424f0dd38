"""
GitHub Gist access through PyGithub, one private gist per snippet.

PyGithub / requests failures are translated into the remote error taxonomy:
- 401 / bad credentials      -> RemoteAuthInvalid (abort the whole sync)
- 404 / unknown object       -> RemoteDocumentMissing (per item, recoverable)
- 403 / rate limit, network  -> RemoteUnavailable (caller may retry later)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Optional, TypeVar

import requests
from github import Auth, Github, InputFileContent
from github.GithubException import (
    BadCredentialsException,
    GithubException,
    RateLimitExceededException,
    UnknownObjectException,
)

from snipsync.domain.errors import (
    RemoteAuthInvalid,
    RemoteDocumentMissing,
    RemoteSyncError,
    RemoteUnavailable,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RemoteDocument:
    id: str
    files: Dict[str, str] = field(default_factory=dict)
    description: str = ""
    updated_at: Optional[datetime] = None

    def first_content(self) -> Optional[str]:
        for name in sorted(self.files):
            content = self.files[name]
            if content:
                return content
        return None


class IGistClient(ABC):
    @abstractmethod
    def create(self, description: str, file_name: str, content: str) -> str:
        raise NotImplementedError

    @abstractmethod
    def update(self, gist_id: str, description: str, file_name: str, content: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def fetch(self, gist_id: str) -> RemoteDocument:
        raise NotImplementedError

    @abstractmethod
    def delete(self, gist_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def verify(self) -> str:
        """Check the credential; returns the account login."""
        raise NotImplementedError


def translate_error(exc: Exception, gist_id: Optional[str] = None) -> RemoteSyncError:
    if isinstance(exc, BadCredentialsException):
        return RemoteAuthInvalid("GitHub token is invalid or expired", cause=exc)
    if isinstance(exc, UnknownObjectException):
        return RemoteDocumentMissing(gist_id or "?", cause=exc)
    if isinstance(exc, RateLimitExceededException):
        return RemoteUnavailable("GitHub rate limit exceeded", cause=exc)
    if isinstance(exc, GithubException):
        status = getattr(exc, "status", None)
        if status == 401:
            return RemoteAuthInvalid("GitHub token is invalid or expired", cause=exc)
        if status == 404:
            return RemoteDocumentMissing(gist_id or "?", cause=exc)
        if status == 403:
            return RemoteUnavailable(
                "GitHub refused the request (rate limit or missing gist scope)", cause=exc
            )
        return RemoteSyncError(f"GitHub error {status}: {getattr(exc, 'data', exc)}", cause=exc)
    if isinstance(exc, requests.RequestException):
        return RemoteUnavailable(f"network error talking to GitHub: {exc}", cause=exc)
    return RemoteSyncError(str(exc), cause=exc)


class GitHubGistClient(IGistClient):
    """Thin PyGithub adapter; every gist it creates is private."""

    def __init__(self, token: str, github: Optional[Github] = None) -> None:
        if not token and github is None:
            raise RemoteAuthInvalid("GitHub token not configured")
        self._github = github or Github(auth=Auth.Token(token))

    def _call(self, fn: Callable[[], T], gist_id: Optional[str] = None) -> T:
        try:
            return fn()
        except (GithubException, requests.RequestException) as exc:
            raise translate_error(exc, gist_id) from exc

    def verify(self) -> str:
        return self._call(lambda: self._github.get_user().login)

    def create(self, description: str, file_name: str, content: str) -> str:
        def _create() -> str:
            gist = self._github.get_user().create_gist(
                public=False,
                files={file_name: InputFileContent(content)},
                description=description,
            )
            return gist.id

        gist_id = self._call(_create)
        logger.debug("Created gist %s", gist_id)
        return gist_id

    def update(self, gist_id: str, description: str, file_name: str, content: str) -> None:
        def _update() -> None:
            gist = self._github.get_gist(gist_id)
            files: Dict[str, Optional[InputFileContent]] = {
                name: None for name in (gist.files or {}) if name != file_name
            }
            files[file_name] = InputFileContent(content)
            gist.edit(description=description, files=files)

        self._call(_update, gist_id)

    def fetch(self, gist_id: str) -> RemoteDocument:
        def _fetch() -> RemoteDocument:
            gist = self._github.get_gist(gist_id)
            files = {name: (f.content or "") for name, f in (gist.files or {}).items()}
            return RemoteDocument(
                id=gist.id,
                files=files,
                description=gist.description or "",
                updated_at=gist.updated_at,
            )

        return self._call(_fetch, gist_id)

    def delete(self, gist_id: str) -> None:
        self._call(lambda: self._github.get_gist(gist_id).delete(), gist_id)
