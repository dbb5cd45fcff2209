"""
框架无关的 HTTP 值对象 (Request / Uri / Response)

所有对象都是不可变的：修改操作返回新实例，原实例保持不变，
这样同一个 response 可以在中间件链中安全传递。
头部使用 starlette 的 Headers（大小写不敏感，只读）。
"""
from dataclasses import dataclass, replace
from typing import Iterable, Mapping, Optional, Tuple, Union
from urllib.parse import urlsplit, urlunsplit

from starlette.datastructures import Headers, MutableHeaders

HeadersInput = Union[Headers, Mapping[str, str], Iterable[Tuple[str, str]], None]


def _to_headers(headers: HeadersInput) -> Headers:
    if isinstance(headers, Headers):
        # 复制底层列表，避免与调用方共享 MutableHeaders
        return Headers(raw=list(headers.raw))
    if not headers:
        return Headers()
    items = headers.items() if isinstance(headers, Mapping) else headers
    return Headers(raw=[
        (str(name).lower().encode("latin-1"), str(value).encode("latin-1"))
        for name, value in items
    ])


@dataclass(frozen=True)
class Uri:
    """Request target. ``str(uri)`` gives the full form, ``base_url`` the landing page."""

    value: str = ""
    root_path: str = ""

    def __str__(self) -> str:
        return self.value

    @property
    def base_url(self) -> str:
        root = self.root_path.rstrip("/") + "/"
        parts = urlsplit(self.value)
        if parts.netloc:
            return urlunsplit((parts.scheme, parts.netloc, root, "", ""))
        return root


@dataclass(frozen=True)
class PipelineRequest:
    uri: Uri
    method: str = "GET"
    headers: HeadersInput = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", _to_headers(self.headers))

    @classmethod
    def from_url(cls, url: str, method: str = "GET", root_path: str = "", **kwargs) -> "PipelineRequest":
        return cls(uri=Uri(url, root_path=root_path), method=method, **kwargs)

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name, default)


@dataclass(frozen=True)
class PipelineResponse:
    status_code: int = 200
    headers: HeadersInput = None
    body: bytes = b""

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", _to_headers(self.headers))

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name, default)

    def has_header(self, name: str) -> bool:
        return name in self.headers

    def with_header(self, name: str, value: str) -> "PipelineResponse":
        """Copy with ``name`` set to ``value``; an existing header of that name is replaced."""
        headers = MutableHeaders(raw=list(self.headers.raw))
        headers[name] = str(value)
        return replace(self, headers=Headers(raw=headers.raw))

    def with_status(self, status_code: int) -> "PipelineResponse":
        return replace(self, status_code=status_code)
