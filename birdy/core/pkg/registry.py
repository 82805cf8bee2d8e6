"""注册中心 HTTP 客户端

职责:
- GET /packages/{name}/versions  查询版本列表（JSON 字符串数组）
- GET /packages/{name}/{version} 下载归档字节

只做单次请求，不做重试；错误按 ResolutionError / FetchError 归类。
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.parse
import urllib.request

from birdy.core.exceptions import FetchError, ResolutionError, ValidationError

logger = logging.getLogger(__name__)

REGISTRY_SCHEMES = ("http", "https")


def check_registry_url(url: str) -> None:
    """注册中心地址必须是带主机名的 http/https URL"""
    if not isinstance(url, str):
        raise ValidationError(f"注册中心地址必须是字符串: {url!r}")
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in REGISTRY_SCHEMES:
        raise ValidationError(
            f"不允许的注册中心协议 '{parsed.scheme}'，仅支持 http/https: {url}"
        )
    if not parsed.netloc:
        raise ValidationError(f"注册中心地址缺少主机名: {url}")


class RegistryClient:
    """远程包注册中心客户端"""

    def __init__(self, base_url: str, *, token: str = "", timeout: int = 60) -> None:
        check_registry_url(base_url)
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    def _url(self, *parts: str) -> str:
        quoted = "/".join(urllib.parse.quote(p, safe="") for p in parts)
        return f"{self.base_url}/packages/{quoted}"

    def _request(self, url: str) -> urllib.request.Request:
        req = urllib.request.Request(url)
        if self.token:
            req.add_header("Authorization", f"Bearer {self.token}")
        return req

    def list_versions(self, name: str) -> list[str]:
        """查询包在注册中心的全部版本"""
        url = self._url(name, "versions")
        logger.debug("查询版本列表: %s", url)
        try:
            with urllib.request.urlopen(  # nosec B310
                self._request(url), timeout=self.timeout,
            ) as resp:
                body = resp.read()
        except urllib.error.HTTPError as e:
            if e.code == 404:
                raise ResolutionError(
                    f"注册中心中不存在包 '{name}'",
                    kind=ResolutionError.NOT_FOUND,
                ) from e
            raise ResolutionError(
                f"查询 {name} 版本列表失败: HTTP {e.code}",
                kind=ResolutionError.REGISTRY_UNREACHABLE,
            ) from e
        except (urllib.error.URLError, OSError) as e:
            raise ResolutionError(
                f"注册中心不可达: {url} - {e}",
                kind=ResolutionError.REGISTRY_UNREACHABLE,
            ) from e

        try:
            versions = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ResolutionError(
                f"版本列表不是合法 JSON: {url}",
                kind=ResolutionError.REGISTRY_UNREACHABLE,
            ) from e
        if not isinstance(versions, list) or not all(isinstance(v, str) for v in versions):
            raise ResolutionError(
                f"版本列表应为字符串数组: {url}",
                kind=ResolutionError.REGISTRY_UNREACHABLE,
            )
        return versions

    def download(self, name: str, version: str) -> bytes:
        """下载指定版本的归档，返回完整响应体"""
        url = self._url(name, version)
        logger.info("下载: %s", url)
        try:
            with urllib.request.urlopen(  # nosec B310
                self._request(url), timeout=self.timeout,
            ) as resp:
                return resp.read()
        except urllib.error.HTTPError as e:
            raise FetchError(
                f"下载 {name}@{version} 失败: HTTP {e.code}", status=e.code,
            ) from e
        except (urllib.error.URLError, OSError) as e:
            raise FetchError(f"下载失败: {url} - {e}") from e
