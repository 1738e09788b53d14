"""Closed set of image generation backends.

Every backend is either synchronous (the submit response already references
the images), asynchronous (the submit response carries a task id that is
polled until terminal) or Midjourney (asynchronous, followed by one upscale
task per requested image). A backend only describes its request body, its
endpoints and its status vocabulary; the polling and download pipeline is
shared.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar, Optional, Union

from ..core.errors import UnsupportedModelError, UpstreamError
from ..core.warnings import CallWarning
from ..tasks.poller import PollSettings, TaskStatus

DEFAULT_POLL = PollSettings(interval=2.0, max_wait=300.0, retryable_status_codes=frozenset())

_SIZE_PATTERN = re.compile(r"^\s*(\d+)\s*[x*]\s*(\d+)\s*$")
_RATIO_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*:\s*(\d+(?:\.\d+)?)\s*$")


@dataclass(frozen=True, slots=True)
class ImageRequest:
    """Generation settings shared by every backend."""

    prompt: str
    n: Optional[int] = None
    size: Optional[str] = None
    aspect_ratio: Optional[str] = None
    seed: Optional[int] = None
    provider_options: Mapping[str, Any] = field(default_factory=dict)


BuildBody = Callable[[str, ImageRequest, list[CallWarning]], dict[str, Any]]
Normalize = Callable[[Any], TaskStatus]


@dataclass(frozen=True, slots=True)
class SyncBackend:
    kind: ClassVar[str] = "sync"

    path: Callable[[str], str]
    build_body: BuildBody
    extract: Normalize
    form: bool = False


@dataclass(frozen=True, slots=True)
class AsyncBackend:
    kind: ClassVar[str] = "async"

    path: Callable[[str], str]
    build_body: BuildBody
    task_id: Callable[[Any], str]
    status_path: Callable[[str], str]
    normalize: Normalize
    poll: PollSettings = DEFAULT_POLL


@dataclass(frozen=True, slots=True)
class MidjourneyBackend:
    """Imagine task followed by one ``U{i}`` upscale task per image."""

    kind: ClassVar[str] = "midjourney"

    path: Callable[[str], str]
    build_body: BuildBody
    task_id: Callable[[Any], str]
    status_path: Callable[[str], str]
    normalize: Normalize
    action_path: str = "/mj/submit/action"
    max_images: int = 4
    poll: PollSettings = DEFAULT_POLL


ImageBackend = Union[SyncBackend, AsyncBackend, MidjourneyBackend]


def parse_size(size: str | None) -> tuple[int, int] | None:
    if not size:
        return None
    match = _SIZE_PATTERN.match(size)
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2))


def aspect_ratio_to_size(
    aspect_ratio: str | None,
    base: int,
    warnings: list[CallWarning],
) -> tuple[int, int] | None:
    """Scale ``base`` so the area stays ``base**2`` at ``aspect_ratio``, rounded to 64 px."""

    if not aspect_ratio:
        return None
    match = _RATIO_PATTERN.match(aspect_ratio)
    if match is None or float(match.group(2)) == 0:
        warnings.append(
            CallWarning.unsupported("aspectRatio", f"Invalid aspect ratio format: {aspect_ratio}")
        )
        return None
    ratio = float(match.group(1)) / float(match.group(2))
    width = round(base * math.sqrt(ratio) / 64) * 64
    height = round(base / math.sqrt(ratio) / 64) * 64
    return max(width, 64), max(height, 64)


def closest_option(
    width: int,
    height: int,
    options: tuple[str, ...],
    warnings: list[CallWarning],
    *,
    separator: str = "x",
) -> str:
    """Pick the supported size whose ratio is nearest to ``width/height``."""

    target = width / height
    best = options[0]
    best_diff = math.inf
    for option in options:
        w, h = (int(part) for part in option.split(separator))
        diff = abs(w / h - target)
        if diff < best_diff:
            best, best_diff = option, diff
    if best != f"{width}{separator}{height}":
        warnings.append(
            CallWarning.unsupported(
                "size", f"Size {width}x{height} converted to closest supported size: {best}"
            )
        )
    return best


def closest_aspect_ratio(
    aspect_ratio: str | None,
    supported: tuple[str, ...],
    warnings: list[CallWarning],
) -> str | None:
    if not aspect_ratio:
        return None
    if aspect_ratio in supported:
        return aspect_ratio
    match = _RATIO_PATTERN.match(aspect_ratio)
    if match is None or float(match.group(2)) == 0:
        warnings.append(
            CallWarning.unsupported("aspectRatio", f"Invalid aspect ratio format: {aspect_ratio}")
        )
        return None
    target = float(match.group(1)) / float(match.group(2))

    def distance(option: str) -> float:
        w, h = (float(part) for part in option.split(":"))
        return abs(w / h - target)

    best = min((option for option in supported if option != "auto"), key=distance)
    warnings.append(
        CallWarning.unsupported(
            "aspectRatio", f"Aspect ratio {aspect_ratio} not supported. Using closest: {best}"
        )
    )
    return best


def _warn_batch(request: ImageRequest, limit: int, warnings: list[CallWarning], details: str) -> None:
    if request.n is not None and request.n > limit:
        warnings.append(CallWarning.unsupported("n", details))


def _without_none(values: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


# dall-e-3

_DALLE_SIZES = ("256x256", "512x512", "1024x1024")


def _dalle_body(model_id: str, request: ImageRequest, warnings: list[CallWarning]) -> dict[str, Any]:
    _warn_batch(request, 1, warnings, "DALL-E 3 does not support batch generation")
    if request.size is not None and request.aspect_ratio is not None:
        warnings.append(
            CallWarning.unsupported("aspectRatio", "When size is provided, aspectRatio will be ignored")
        )
    elif request.size is None and request.aspect_ratio is not None:
        warnings.append(CallWarning.other("Using size calculated from aspect ratio with base size 1024"))
    if request.seed is not None:
        warnings.append(CallWarning.unsupported("seed"))

    width, height = (
        parse_size(request.size)
        or aspect_ratio_to_size(request.aspect_ratio, 1024, warnings)
        or (1024, 1024)
    )
    size = f"{width}x{height}"
    if size not in _DALLE_SIZES:
        size = closest_option(width, height, _DALLE_SIZES, warnings)
    return {"prompt": request.prompt, "model": "dall-e-3", "size": size, **request.provider_options}


def _dalle_extract(payload: Any) -> TaskStatus:
    urls = [item.get("url") for item in (payload or {}).get("data") or () if isinstance(item, Mapping)]
    return TaskStatus.succeeded(urls, raw=payload)


# qwen-image

_QWEN_RATIOS = ("1:1", "16:9", "9:16", "3:4", "4:3")


def _qwen_body(model_id: str, request: ImageRequest, warnings: list[CallWarning]) -> dict[str, Any]:
    if not request.prompt:
        msg = "Prompt is required for Qwen Image"
        raise ValueError(msg)
    _warn_batch(request, 1, warnings, "Qwen Image does not support batch generation")
    if request.size is not None:
        warnings.append(
            CallWarning.unsupported("size", "Qwen Image uses aspect_ratio instead of size parameter")
        )
    if request.seed is not None:
        warnings.append(CallWarning.unsupported("seed", "Qwen Image does not support seed parameter"))

    ratio = closest_aspect_ratio(request.aspect_ratio, _QWEN_RATIOS, warnings) or "1:1"
    extra = {
        key: value
        for key, value in request.provider_options.items()
        if value is not None and key not in ("prompt", "aspect_ratio")
    }
    return {"prompt": request.prompt, "aspect_ratio": ratio, **extra}


def _qwen_extract(payload: Any) -> TaskStatus:
    payload = payload or {}
    if payload.get("status") == "succeeded" and payload.get("output"):
        return TaskStatus.succeeded(payload["output"], raw=payload)
    return TaskStatus.failed(payload.get("error"), raw=payload)


# flux-2-pro / flux-2-flex

_FLUX_OPTIONS = (
    "input_image",
    "input_image_2",
    "input_image_3",
    "input_image_4",
    "input_image_5",
    "input_image_6",
    "input_image_7",
    "input_image_8",
    "output_format",
    "webhook_url",
    "webhook_secret",
    "safety_tolerance",
)


def _multiple_of_32(value: int, low: int, high: int) -> int:
    return min(max(round(value / 32) * 32, low), high)


def _flux_body(model_id: str, request: ImageRequest, warnings: list[CallWarning]) -> dict[str, Any]:
    display = "Flux-2-Flex" if model_id == "flux-2-flex" else "Flux-2-Pro"
    _warn_batch(request, 1, warnings, f"{display} generates one image per request")

    dimensions: tuple[int, int] | None = None
    if request.size:
        parsed = parse_size(request.size)
        if parsed is not None:
            dimensions = tuple(_multiple_of_32(value, 64, 4096) for value in parsed)  # type: ignore[assignment]
            if dimensions != parsed:
                warnings.append(
                    CallWarning.unsupported(
                        "size",
                        f"Size {parsed[0]}x{parsed[1]} adjusted to {dimensions[0]}x{dimensions[1]}",
                    )
                )
    elif request.aspect_ratio:
        dimensions = aspect_ratio_to_size(request.aspect_ratio, 1024, warnings)

    if request.size is not None and request.aspect_ratio is not None:
        warnings.append(
            CallWarning.unsupported(
                "aspectRatio",
                "Both size and aspectRatio provided. Size will be used and aspectRatio will be ignored.",
            )
        )

    body: dict[str, Any] = {"prompt": request.prompt, "seed": request.seed}
    if dimensions is not None:
        body["width"], body["height"] = dimensions
    for key in _FLUX_OPTIONS:
        body[key] = request.provider_options.get(key)
    return _without_none(body)


def _flux_normalize(payload: Any) -> TaskStatus:
    status = payload.get("status")
    if status == "Ready" and payload.get("result"):
        return TaskStatus.succeeded(payload["result"].get("sample"), raw=payload)
    if status in ("Failed", "Error"):
        return TaskStatus.failed(f"status {status}", raw=payload)
    return TaskStatus.pending(payload)


# kling-o1

_KLING_RATIOS = ("auto", "9:16", "2:3", "3:4", "1:1", "4:3", "3:2", "16:9")


def _kling_check(payload: Any) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping) or payload.get("code") != 0:
        message = payload.get("message") if isinstance(payload, Mapping) else None
        raise UpstreamError(f"API error: {message or 'Unknown error'}", payload=payload)
    return payload.get("data") or {}


def _kling_body(model_id: str, request: ImageRequest, warnings: list[CallWarning]) -> dict[str, Any]:
    _warn_batch(request, 9, warnings, "Kling O1 supports up to 9 images per generation")
    if request.size is not None:
        warnings.append(
            CallWarning.unsupported("size", "Kling O1 uses img_resolution and aspect_ratio instead of size")
        )

    ratio = "1:1"
    if request.aspect_ratio:
        if request.aspect_ratio in _KLING_RATIOS:
            ratio = request.aspect_ratio
        else:
            warnings.append(
                CallWarning.unsupported(
                    "aspectRatio",
                    f"Aspect ratio {request.aspect_ratio} not supported. Using 1:1. "
                    f"Supported: {', '.join(_KLING_RATIOS)}",
                )
            )

    options = request.provider_options
    images = list(options.get("images") or [])
    if len(images) > 10:
        warnings.append(
            CallWarning.unsupported("images", "Maximum 10 reference images allowed. Using first 10.")
        )
    count = request.n or options.get("imageCount") or 1
    return {
        "images": images[:10],
        "prompt": request.prompt,
        "imageCount": min(count, 9),
        "aspect_ratio": ratio,
        "img_resolution": options.get("img_resolution") or "1k",
    }


def _kling_task_id(payload: Any) -> str:
    return _require_task_id(_kling_check(payload).get("task_id"), payload)


def _kling_normalize(payload: Any) -> TaskStatus:
    data = _kling_check(payload)
    status = data.get("task_status")
    if status == "failed":
        return TaskStatus.failed(data.get("task_status_msg"), raw=payload)
    if status == "succeed":
        images = (data.get("task_result") or {}).get("images") or ()
        return TaskStatus.succeeded([image.get("url") for image in images], raw=payload)
    return TaskStatus.pending(payload)


# wan2.6-image

_WAN_SIZES = (
    "1280*1280",
    "1024*1024",
    "800*1200",
    "1200*800",
    "960*1280",
    "1280*960",
    "720*1280",
    "1280*720",
    "1344*576",
)


def _wan_body(model_id: str, request: ImageRequest, warnings: list[CallWarning]) -> dict[str, Any]:
    size = "1280*1280"
    if request.size:
        converted = request.size.replace("x", "*", 1)
        if converted in _WAN_SIZES:
            size = converted
        else:
            parsed = parse_size(request.size)
            if parsed is not None:
                size = closest_option(*parsed, _WAN_SIZES, warnings, separator="*")
    elif request.aspect_ratio:
        parsed = aspect_ratio_to_size(request.aspect_ratio, 1280, warnings)
        if parsed is not None:
            size = closest_option(*parsed, _WAN_SIZES, warnings, separator="*")

    options = request.provider_options
    content: list[dict[str, str]] = [{"text": request.prompt}]
    images = list(options.get("images") or [])
    content.extend({"image": image} for image in images)

    # Without input images the endpoint only accepts interleaved text and image output.
    interleave = options.get("enable_interleave")
    interleaved = interleave == "true" or (not images and interleave != "false")

    parameters: dict[str, Any] = {"size": size}
    if interleaved:
        parameters["enable_interleave"] = "true"
        parameters["max_images"] = options.get("max_images") or min(request.n or 1, 5)
    else:
        parameters["enable_interleave"] = "false"
        if request.n is not None:
            parameters["n"] = min(request.n, 4)
    for key in ("negative_prompt", "prompt_extend", "watermark", "seed"):
        if options.get(key) is not None:
            parameters[key] = options[key]

    return {
        "model": "wan2.6-image",
        "input": {"messages": [{"role": "user", "content": content}]},
        "parameters": parameters,
    }


def _wan_task_id(payload: Any) -> str:
    return _require_task_id((payload.get("output") or {}).get("task_id"), payload)


def _wan_normalize(payload: Any) -> TaskStatus:
    output = payload.get("output") or {}
    status = output.get("task_status")
    if status == "FAILED":
        return TaskStatus.failed(payload.get("message") or output.get("message"), raw=payload)
    if status == "SUCCEEDED":
        urls = [
            item.get("image")
            for choice in output.get("choices") or ()
            for item in ((choice.get("message") or {}).get("content") or ())
        ]
        return TaskStatus.succeeded(urls, raw=payload)
    return TaskStatus.pending(payload)


# vidu-viduq1 / vidu-viduq2

_VIDU_Q1_RATIOS = ("16:9", "9:16", "1:1", "3:4", "4:3")
_VIDU_Q2_RATIOS = ("auto", "16:9", "9:16", "1:1", "3:4", "4:3", "21:9", "2:3", "3:2")


def _vidu_body(model_id: str, request: ImageRequest, warnings: list[CallWarning]) -> dict[str, Any]:
    vidu_model = "viduq1" if model_id == "vidu-viduq1" else "viduq2"
    _warn_batch(request, 1, warnings, "Vidu generates one image per request")
    if request.size is not None:
        warnings.append(
            CallWarning.unsupported("size", "Vidu uses resolution and aspect_ratio instead of size")
        )

    supported = _VIDU_Q1_RATIOS if vidu_model == "viduq1" else _VIDU_Q2_RATIOS
    ratio = request.aspect_ratio
    if ratio and ratio not in supported:
        warnings.append(
            CallWarning.unsupported(
                "aspectRatio", f"Aspect ratio {ratio} not supported. Supported: {', '.join(supported)}"
            )
        )
        ratio = "16:9"

    options = request.provider_options
    images = options.get("images")
    resolution = options.get("resolution")
    if vidu_model == "viduq1":
        if resolution and resolution != "1080p":
            warnings.append(CallWarning.other("viduq1 only supports 1080p resolution. Using 1080p."))
        resolution = "1080p"
    if images is not None:
        if vidu_model == "viduq1" and not images:
            msg = "viduq1 requires at least 1 reference image"
            raise ValueError(msg)
        if len(images) > 7:
            warnings.append(CallWarning.other("Maximum 7 reference images allowed. Using first 7."))
        images = list(images)[:7]

    return _without_none(
        {
            "model": vidu_model,
            "prompt": request.prompt,
            "images": images,
            "seed": request.seed,
            "aspect_ratio": ratio,
            "resolution": resolution,
            "payload": options.get("payload"),
        }
    )


def _vidu_normalize(payload: Any) -> TaskStatus:
    if payload.get("state") == "success" and payload.get("creations"):
        return TaskStatus.succeeded([item.get("url") for item in payload["creations"]], raw=payload)
    if payload.get("state") == "failed" or payload.get("err_code"):
        return TaskStatus.failed(payload.get("err_code"), raw=payload)
    return TaskStatus.pending(payload)


# midjourney / nijijourney

_MJ_RATIOS = ("1:1", "16:9", "9:16", "2:3", "3:2", "4:5", "5:4")
_MJ_VERSION_FLAGS = {
    "midjourney/6.0": "--v 6.0",
    "midjourney/6.1": "--v 6.1",
    "nijijourney/6.0": "--niji 6",
}


def _midjourney_body(model_id: str, request: ImageRequest, warnings: list[CallWarning]) -> dict[str, Any]:
    _warn_batch(request, 4, warnings, "Midjourney supports up to 4 images per generation")
    if request.size is not None:
        warnings.append(CallWarning.unsupported("size"))

    prompt = request.prompt
    if request.aspect_ratio:
        if request.aspect_ratio in _MJ_RATIOS:
            prompt = f"{prompt} --ar {request.aspect_ratio}"
        else:
            warnings.append(
                CallWarning.unsupported(
                    "aspectRatio",
                    f"Unsupported aspect ratio: {request.aspect_ratio}. "
                    f"Supported values are: {', '.join(_MJ_RATIOS)}",
                )
            )
    if request.seed is not None:
        prompt = f"{prompt} --seed {request.seed}"
    prompt = f"{prompt} {_MJ_VERSION_FLAGS.get(model_id, '--v 6.0')}"

    bot_type = "NIJI_JOURNEY" if model_id.startswith("nijijourney") else "MID_JOURNEY"
    return {"prompt": prompt, "botType": bot_type, **request.provider_options}


def _midjourney_task_id(payload: Any) -> str:
    return _require_task_id(payload.get("result"), payload)


def _midjourney_normalize(payload: Any) -> TaskStatus:
    status = payload.get("status")
    if status == "FAILED":
        return TaskStatus.failed(payload.get("failReason"), raw=payload)
    if status == "SUCCESS":
        return TaskStatus.succeeded(payload.get("imageUrl"), raw=payload)
    return TaskStatus.pending(payload)


def upscale_custom_id(payload: Mapping[str, Any], index: int) -> str:
    """Return the ``customId`` of the ``U{index}`` button of a finished imagine task."""

    label = f"U{index}"
    for button in payload.get("buttons") or ():
        if button.get("label") == label and button.get("customId"):
            return button["customId"]
    raise UpstreamError(f"No upscale option available for {label}", payload=payload)


def _require_task_id(task_id: Any, payload: Any) -> str:
    if not task_id:
        raise UpstreamError("No task id returned by the image API", payload=payload)
    return str(task_id)


def _constant(path: str) -> Callable[[str], str]:
    return lambda _model_id: path


_flux = AsyncBackend(
    path=lambda model_id: f"/flux/v1/{model_id}",
    build_body=_flux_body,
    task_id=lambda payload: _require_task_id(payload.get("id"), payload),
    status_path=lambda task_id: f"/flux/v1/get_result?id={task_id}",
    normalize=_flux_normalize,
)
_vidu = AsyncBackend(
    path=_constant("/vidu/ent/v2/reference2image"),
    build_body=_vidu_body,
    task_id=lambda payload: _require_task_id(payload.get("task_id"), payload),
    status_path=lambda task_id: f"/vidu/ent/v2/tasks/{task_id}/creations",
    normalize=_vidu_normalize,
)
_midjourney = MidjourneyBackend(
    path=_constant("/mj/submit/imagine"),
    build_body=_midjourney_body,
    task_id=_midjourney_task_id,
    status_path=lambda task_id: f"/mj/task/{task_id}/fetch",
    normalize=_midjourney_normalize,
)

BACKENDS: dict[str, ImageBackend] = {
    "dall-e-3": SyncBackend(
        path=_constant("/v1/images/generations"),
        build_body=_dalle_body,
        extract=_dalle_extract,
    ),
    "qwen-image": SyncBackend(
        path=lambda model_id: f"/302/submit/{model_id}",
        build_body=_qwen_body,
        extract=_qwen_extract,
        form=True,
    ),
    "flux-2-pro": _flux,
    "flux-2-flex": _flux,
    "kling-o1": AsyncBackend(
        path=_constant("/klingai/mmu_omni_image"),
        build_body=_kling_body,
        task_id=_kling_task_id,
        status_path=lambda task_id: f"/klingai/task/{task_id}/fetch",
        normalize=_kling_normalize,
        poll=PollSettings(interval=2.0, max_wait=300.0, retryable_status_codes=frozenset({503})),
    ),
    "wan2.6-image": AsyncBackend(
        path=_constant("/aliyun/api/v1/services/aigc/image-generation/generation"),
        build_body=_wan_body,
        task_id=_wan_task_id,
        status_path=lambda task_id: f"/aliyun/api/v1/tasks/{task_id}",
        normalize=_wan_normalize,
        poll=PollSettings(interval=3.0, max_wait=300.0, retryable_status_codes=frozenset()),
    ),
    "vidu-viduq1": _vidu,
    "vidu-viduq2": _vidu,
    "midjourney/6.0": _midjourney,
    "midjourney/6.1": _midjourney,
    "nijijourney/6.0": _midjourney,
}


def resolve_backend(model_id: str) -> ImageBackend:
    try:
        return BACKENDS[model_id]
    except KeyError:
        raise UnsupportedModelError(model_id) from None


__all__ = [
    "AsyncBackend",
    "BACKENDS",
    "ImageBackend",
    "ImageRequest",
    "MidjourneyBackend",
    "SyncBackend",
    "aspect_ratio_to_size",
    "closest_aspect_ratio",
    "closest_option",
    "parse_size",
    "resolve_backend",
    "upscale_custom_id",
]
