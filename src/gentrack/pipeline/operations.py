"""Per-file operations: map a file plus parameters onto a remote task."""

from __future__ import annotations

import base64
from enum import StrEnum
from pathlib import Path
from typing import Any

from gentrack.errors.exceptions import ConfigurationError
from gentrack.remote.client import create_task


class FolderOperation(StrEnum):
    UPSCALE = "upscale"
    REMOVE_BACKGROUND = "removeBackground"
    CAPTION = "caption"
    VECTORIZE = "vectorize"
    CONTROLNET_PREPROCESS = "controlNetPreprocess"


_TASK_TYPES: dict[FolderOperation, str] = {
    FolderOperation.UPSCALE: "imageUpscale",
    FolderOperation.REMOVE_BACKGROUND: "imageBackgroundRemoval",
    FolderOperation.CAPTION: "imageCaption",
    FolderOperation.VECTORIZE: "vectorize",
    FolderOperation.CONTROLNET_PREPROCESS: "imageControlNetPreProcess",
}

_DEFAULT_MODELS: dict[FolderOperation, str] = {
    FolderOperation.REMOVE_BACKGROUND: "runware:109@1",
    FolderOperation.CAPTION: "runware:150@2",
    FolderOperation.VECTORIZE: "recraft:1@1",
}

CONTROLNET_PREPROCESSORS = frozenset({
    "canny", "depth", "mlsd", "normalbae", "openpose", "tile",
    "seg", "lineart", "lineart_anime", "shuffle", "scribble", "softedge",
})

_MIME_SUBTYPES = {
    ".jpg": "jpeg",
    ".jpeg": "jpeg",
    ".png": "png",
    ".webp": "webp",
    ".gif": "gif",
    ".bmp": "bmp",
}

# Parameters forwarded to the task as-is
_PASSTHROUGH_PARAMS = (
    "prompt", "width", "height", "outputFormat",
    "lowThresholdCanny", "highThresholdCanny", "includeHandsAndFaceOpenPose",
)


def parse_operation(value: str) -> FolderOperation:
    try:
        return FolderOperation(value)
    except ValueError as e:
        valid = ", ".join(op.value for op in FolderOperation)
        raise ConfigurationError(f"Unknown operation '{value}' (expected one of: {valid})") from e


def encode_image(path: Path) -> str:
    """Read an image file as a base64 data URI."""
    subtype = _MIME_SUBTYPES.get(path.suffix.lower(), "jpeg")
    data = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:image/{subtype};base64,{data}"


def build_operation_task(
    operation: FolderOperation | str,
    file_path: str | Path,
    params: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the remote task dict for running ``operation`` on one file."""
    op = parse_operation(operation) if isinstance(operation, str) else operation
    params = params or {}

    task_params: dict[str, Any] = {
        "inputImage": encode_image(Path(file_path)),
        "outputType": params.get("outputType", "URL"),
        "includeCost": True,
        # Submitted then polled via getResponse, so results must not come back inline
        "deliveryMethod": "async",
    }

    model = params.get("model") or _DEFAULT_MODELS.get(op)
    if model:
        task_params["model"] = model

    if op == FolderOperation.UPSCALE:
        factor = params.get("upscaleFactor", 2)
        if factor not in (2, 4):
            raise ConfigurationError(f"upscaleFactor must be 2 or 4, got {factor}")
        task_params["upscaleFactor"] = factor
    elif op == FolderOperation.CONTROLNET_PREPROCESS:
        preprocessor = params.get("preprocessor")
        if preprocessor not in CONTROLNET_PREPROCESSORS:
            raise ConfigurationError(f"Invalid preprocessor: {preprocessor}")
        task_params["preProcessorType"] = preprocessor

    for key in _PASSTHROUGH_PARAMS:
        if key in params:
            task_params[key] = params[key]

    return create_task(_TASK_TYPES[op], **task_params)


def output_path_for(
    input_path: str | Path,
    output_folder: str | Path | None,
    suffix: str,
    operation: FolderOperation | str,
) -> Path:
    """Where the processed version of ``input_path`` belongs."""
    source = Path(input_path)
    folder = Path(output_folder) if output_folder else source.parent

    extension = source.suffix
    if operation == FolderOperation.VECTORIZE:
        extension = ".svg"
    elif operation == FolderOperation.REMOVE_BACKGROUND:
        extension = ".png"

    return folder / f"{source.stem}{suffix}{extension}"
