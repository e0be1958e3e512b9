"""Execution provider selection with CUDA / CoreML / CPU fallback."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

CPU_PROVIDER = "CPUExecutionProvider"
CUDA_PROVIDER = "CUDAExecutionProvider"
COREML_PROVIDER = "CoreMLExecutionProvider"

_DEVICE_NAMES = {
    CUDA_PROVIDER: "Cuda",
    COREML_PROVIDER: "CoreML",
    CPU_PROVIDER: "Cpu",
}


def get_providers(preferred: str = "auto") -> list[str]:
    """Select onnxruntime execution providers.

    Priority: CUDA > CoreML > CPU (when *preferred* is ``"auto"``).
    If a specific provider is requested but unavailable, falls back to CPU.
    The CPU provider is always appended last so unsupported ops still run.

    Parameters
    ----------
    preferred : str
        ``"auto"`` for automatic detection, or ``"cuda"``/``"coreml"``/``"cpu"``
        to request a specific backend.
    """
    preferred = preferred.lower()
    available = _available_providers()

    if preferred == "auto":
        for provider in (CUDA_PROVIDER, COREML_PROVIDER):
            if provider in available:
                logger.info("Using %s", provider)
                return [provider, CPU_PROVIDER]
        logger.info("Using %s", CPU_PROVIDER)
        return [CPU_PROVIDER]

    if preferred in ("cuda", "coreml"):
        provider = CUDA_PROVIDER if preferred == "cuda" else COREML_PROVIDER
        if provider in available:
            logger.warning("GPU support is experimental, it might not work on most platforms")
            return [provider, CPU_PROVIDER]
        logger.warning("%s requested but not available, falling back to CPU", preferred)
        return [CPU_PROVIDER]

    return [CPU_PROVIDER]


def device_name(providers: list[str]) -> str:
    """Human-readable name of the first provider in *providers*."""
    if not providers:
        return "Cpu"
    return _DEVICE_NAMES.get(providers[0], providers[0])


def _available_providers() -> list[str]:
    try:
        import onnxruntime as ort

        return list(ort.get_available_providers())
    except ImportError:
        return [CPU_PROVIDER]
