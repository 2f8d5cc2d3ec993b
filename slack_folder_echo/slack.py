from __future__ import annotations

import asyncio
import json
import logging
import mimetypes
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Union

import aiohttp
import requests

from .config import ChannelConfig
from .errors import (
    ApplicationRejection,
    FileSystemError,
    ResponseFormatError,
    TransportError,
    UploadTooLarge,
)

REQUEST_TIMEOUT = 300


@dataclass(frozen=True)
class FileMessage:
    path: Path
    title: str | None = None
    text: str | None = None


@dataclass(frozen=True)
class TextMessage:
    title: str | None = None
    text: str | None = None
    icon_emoji: str | None = None


OutgoingMessage = Union[FileMessage, TextMessage]


def get_proxy_from_env() -> str | None:
    https_proxy = os.environ.get("https_proxy") or os.environ.get("HTTPS_PROXY")
    if https_proxy:
        logging.debug("Using HTTPS proxy: %s", https_proxy)
        return https_proxy
    return None


def _guess_content_type(filename: str) -> str:
    mime_type, _ = mimetypes.guess_type(filename)
    return mime_type or "application/octet-stream"


def render_text(message: TextMessage) -> str | None:
    if message.title and message.text:
        return f"*{message.title}*\n{message.text}"
    if message.title:
        return f"*{message.title}*"
    return message.text


def parse_response(method: str, body: str) -> dict[str, Any]:
    """Check a Slack Web API response body, raising on anything but ``ok``."""
    try:
        data = json.loads(body)
    except ValueError as exc:
        logging.error("Slack %s response is not JSON: %r", method, body[:500])
        raise ResponseFormatError(
            f"Failed to parse Slack {method} response: {exc}"
        ) from exc
    if not isinstance(data, dict):
        raise ResponseFormatError(f"Slack {method} response is not an object")

    ok = data.get("ok")
    if ok is True:
        return data
    if ok is False:
        logging.error("Slack %s error response: %s", method, body[:500])
        error = data.get("error") or "No error field in response"
        raise ApplicationRejection(method, str(error))
    logging.error("Slack %s response: %s", method, body[:500])
    raise ResponseFormatError(f"No 'ok' field in Slack {method} response")


def validate_token(api_url: str, token: str) -> bool:
    url = f"{api_url}/auth.test"
    proxy = get_proxy_from_env()
    try:
        response = requests.post(
            url,
            headers={"Authorization": f"Bearer {token}"},
            proxies={"https": proxy} if proxy else None,
            timeout=15,
        )
        response.raise_for_status()
        data = response.json()
        logging.info(
            "Token test: ok=%s team=%s user=%s",
            data.get("ok"),
            data.get("team"),
            data.get("user"),
        )
        return bool(data.get("ok"))
    except (requests.RequestException, ValueError) as exc:
        logging.error("Token test failed: %s", exc)
        return False


class SlackClient:
    """Posts files and messages to one channel.

    Use as an async context manager; the underlying aiohttp session is kept
    open for the lifetime of the channel worker.
    """

    def __init__(self, config: ChannelConfig) -> None:
        self.config = config
        self.proxy = get_proxy_from_env()
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> "SlackClient":
        self._session = aiohttp.ClientSession(
            headers={"Authorization": f"Bearer {self.config.slack_token}"},
            timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT),
        )
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def send(self, message: OutgoingMessage) -> dict[str, Any]:
        if isinstance(message, FileMessage):
            return await self.upload_file(message)
        if isinstance(message, TextMessage):
            return await self.post_message(message)
        raise TypeError(f"Unsupported message type: {type(message).__name__}")

    async def upload_file(self, message: FileMessage) -> dict[str, Any]:
        path = message.path
        limit = self.config.max_upload_bytes
        try:
            size = path.stat().st_size
            if limit is not None and size > limit:
                raise UploadTooLarge(size, limit)
            data = path.read_bytes()
        except OSError as exc:
            raise FileSystemError(f"Cannot read {path}: {exc}") from exc

        logging.info(
            "[%s] Uploading %s (%d bytes) to %s",
            self.config.name,
            path.name,
            len(data),
            self.config.slack_channel,
        )
        form_data = aiohttp.FormData()
        if message.text:
            form_data.add_field("initial_comment", message.text)
        if message.title:
            form_data.add_field("title", message.title)
        form_data.add_field("username", self.config.bot_name)
        form_data.add_field("channels", self.config.slack_channel)
        form_data.add_field(
            "file",
            data,
            filename=path.name,
            content_type=_guess_content_type(path.name),
        )
        return await self._post("files.upload", form_data)

    async def post_message(self, message: TextMessage) -> dict[str, Any]:
        logging.info(
            "[%s] Posting message to %s: %r",
            self.config.name,
            self.config.slack_channel,
            message.title or message.text,
        )
        params = {
            "channel": self.config.slack_channel,
            "username": self.config.bot_name,
        }
        text = render_text(message)
        if text:
            params["text"] = text
        icon = message.icon_emoji or self.config.bot_icon
        if icon:
            params["icon_emoji"] = icon
        return await self._post("chat.postMessage", params)

    async def _post(self, method: str, payload: Any) -> dict[str, Any]:
        if self._session is None:
            raise RuntimeError("SlackClient used outside of 'async with'")
        url = f"{self.config.api_url}/{method}"
        try:
            async with self._session.post(
                url, data=payload, proxy=self.proxy
            ) as response:
                response.raise_for_status()
                body = await response.text()
        except aiohttp.ClientResponseError as exc:
            raise TransportError(
                f"Slack {method} HTTP error {exc.status}: {exc.message}"
            ) from exc
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportError(f"Slack {method} request failed: {exc!r}") from exc

        data = parse_response(method, body)
        logging.debug("[%s] Got ok from Slack %s", self.config.name, method)
        return data
