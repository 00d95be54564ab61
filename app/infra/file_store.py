"""
源文件读取

版本只保存源文件的位置 (file_url)，摄取时再按需拉取：
- http:// / https:// : 通过 httpx 下载，主机必须在 file_allowed_hosts 中
- file://            : 直接读取，路径必须位于 file_storage_root 之内

提交时和拉取时都会校验位置，其他形式（裸路径、其他协议）一律拒绝。
拉取失败、超出大小上限都视为抽取失败，版本保持 PENDING。
"""

import logging
from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx

from app.config import get_settings
from app.exceptions import ExtractionFailure, InvalidFileLocationError

logger = logging.getLogger(__name__)


def check_file_location(file_url: str) -> Path | None:
    """
    校验源文件位置

    Returns:
        file:// 引用返回解析后的本地路径；http(s) 引用返回 None

    Raises:
        InvalidFileLocationError: 协议不支持、主机不在允许列表、路径在存储目录之外
    """
    settings = get_settings()
    parsed = urlparse(file_url)
    scheme = parsed.scheme.lower()

    if scheme in ("http", "https"):
        host = (parsed.hostname or "").lower()
        allowed = {h.lower() for h in settings.file_allowed_hosts}
        if not host or host not in allowed:
            raise InvalidFileLocationError(f"File host is not allowed: {host or file_url}")
        return None

    if scheme == "file":
        if parsed.netloc not in ("", "localhost"):
            raise InvalidFileLocationError(f"Remote file host is not allowed: {parsed.netloc}")
        root = Path(settings.file_storage_root).resolve()
        # resolve 会展开 .. 和符号链接
        path = Path(unquote(parsed.path)).resolve()
        if not path.is_relative_to(root):
            raise InvalidFileLocationError("File is outside the storage directory")
        return path

    raise InvalidFileLocationError("File reference must be a file:// or http(s):// URL")


async def fetch_file_bytes(file_url: str) -> bytes:
    """
    读取源文件内容

    Raises:
        ExtractionFailure: 位置不合法、文件不存在、下载失败或超过大小上限
    """
    settings = get_settings()
    try:
        path = check_file_location(file_url)
    except InvalidFileLocationError as e:
        logger.warning(f"拒绝读取源文件: {file_url}, 原因: {e.message}")
        raise ExtractionFailure(e.message) from e

    if path is None:
        data = await _download(file_url, settings.file_fetch_timeout_seconds)
    else:
        try:
            data = path.read_bytes()
        except OSError as e:
            raise ExtractionFailure(f"Failed to read file: {path.name}") from e

    if len(data) > settings.max_file_size_bytes:
        raise ExtractionFailure(
            f"File exceeds maximum size of {settings.max_file_size_mb}MB"
        )

    logger.debug(f"源文件读取完成: {file_url} ({len(data)} bytes)")
    return data


async def _download(url: str, timeout: float) -> bytes:
    # 不跟随重定向，避免跳转到允许列表之外的主机
    try:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=False) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.content
    except httpx.HTTPError as e:
        logger.warning(f"源文件下载失败: {url}, 原因: {e}")
        raise ExtractionFailure(f"Failed to fetch file: {e}") from e
