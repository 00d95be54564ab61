"""
文本向量化模块 (Embeddings)

将片段文本转换为向量表示，用于语义检索。

支持的 Embedding 提供者：
- OpenAI (text-embedding-3-small/large)
- Ollama (本地模型：bge-m3, nomic-embed-text 等)
- compatible: 其他 OpenAI 兼容服务
- hash: 确定性哈希向量，无语义，仅用于开发和测试

使用示例：
    from app.infra.embeddings import get_embeddings, get_embedding

    vec = await get_embedding("退款流程是什么？")
    vecs = await get_embeddings(["文本1", "文本2"])
"""

import hashlib
import logging
import math
from functools import lru_cache
from typing import Any

import httpx
from openai import AsyncOpenAI

from app.config import get_settings

logger = logging.getLogger(__name__)

OPENAI_COMPATIBLE_PROVIDERS = ("openai", "compatible")


@lru_cache(maxsize=8)
def _get_openai_compatible_client(api_key: str | None, base_url: str | None) -> AsyncOpenAI:
    """获取 OpenAI 兼容客户端（按 api_key + base_url 缓存）"""
    return AsyncOpenAI(
        api_key=api_key or "dummy",
        base_url=base_url,
        timeout=60.0,
    )


async def _ollama_embeddings_batch(texts: list[str], config: dict[str, Any]) -> list[list[float]]:
    """批量获取 Ollama Embedding（/api/embeddings 只接受单条，顺序调用）"""
    url = f"{config['base_url']}/api/embeddings"
    results: list[list[float]] = []
    async with httpx.AsyncClient(timeout=60.0) as client:
        for text in texts:
            response = await client.post(url, json={"model": config["model"], "prompt": text})
            response.raise_for_status()
            results.append(response.json()["embedding"])
    return results


async def _openai_compatible_embeddings_batch(
    texts: list[str],
    config: dict[str, Any],
    batch_size: int = 100,
) -> list[list[float]]:
    """分批调用 OpenAI 兼容 API，返回顺序与输入一致"""
    if not config.get("api_key"):
        raise RuntimeError(f"{config['provider'].upper()}_API_KEY 未配置，无法生成真实 Embedding")

    client = _get_openai_compatible_client(config.get("api_key"), config.get("base_url"))
    results: list[list[float]] = []

    for i in range(0, len(texts), batch_size):
        batch = texts[i:i + batch_size]
        response = await client.embeddings.create(
            model=config["model"],
            input=batch,
        )
        sorted_data = sorted(response.data, key=lambda x: x.index)
        results.extend([d.embedding for d in sorted_data])

    return results


def deterministic_hash_embed(text: str, dim: int = 1536) -> list[float]:
    """
    确定性哈希 Embedding（无需 API，用于测试）

    使用 MD5 而非 Python hash()，保证跨进程结果一致。

    Args:
        text: 输入文本
        dim: 向量维度

    Returns:
        list[float]: L2 归一化后的向量
    """
    vec = [0.0] * dim
    for token in text.lower().split():
        h = int(hashlib.md5(token.encode()).hexdigest(), 16)
        vec[h % dim] += 1.0

    norm = math.sqrt(sum(v * v for v in vec)) or 1.0
    return [v / norm for v in vec]


def current_embedding_model() -> str:
    """当前配置的模型名，写入片段元数据便于追溯"""
    return get_settings().get_embedding_config()["model"]


async def get_embeddings(texts: list[str]) -> list[list[float]]:
    """
    批量获取文本的 Embedding 向量

    Args:
        texts: 文本列表

    Returns:
        list[list[float]]: 向量列表，顺序与输入对应

    Raises:
        Exception: 提供者调用失败时原样抛出，由调用方包装
    """
    if not texts:
        return []

    settings = get_settings()
    config = settings.get_embedding_config()
    provider = config["provider"]

    try:
        if provider == "hash":
            return [deterministic_hash_embed(t, dim=config["dim"]) for t in texts]

        elif provider == "ollama":
            logger.debug(f"使用 Ollama 批量 Embedding: {config['model']}")
            return await _ollama_embeddings_batch(texts, config)

        elif provider in OPENAI_COMPATIBLE_PROVIDERS:
            logger.debug(f"使用 {provider} 批量 Embedding: {config['model']}")
            return await _openai_compatible_embeddings_batch(
                texts, config, settings.embedding_batch_size
            )

        else:
            raise RuntimeError(f"未知 Embedding 提供者: {provider}")

    except Exception as e:
        logger.error(f"批量 Embedding 生成失败 ({provider}): {e}")
        raise


async def get_embedding(text: str) -> list[float]:
    """获取单个文本（如检索问题）的 Embedding 向量"""
    vectors = await get_embeddings([text])
    return vectors[0]
