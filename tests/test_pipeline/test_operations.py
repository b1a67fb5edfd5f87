"""Tests for per-file operations."""

from pathlib import Path

import pytest

from gentrack.errors.exceptions import ConfigurationError
from gentrack.pipeline.operations import (
    FolderOperation,
    build_operation_task,
    output_path_for,
    parse_operation,
)


@pytest.fixture
def png(tmp_path, sample_image_bytes):
    path = tmp_path / "photo.png"
    path.write_bytes(sample_image_bytes)
    return path


class TestParseOperation:
    def test_known(self):
        assert parse_operation("removeBackground") == FolderOperation.REMOVE_BACKGROUND

    def test_unknown_lists_choices(self):
        with pytest.raises(ConfigurationError, match="upscale"):
            parse_operation("sharpen")


class TestBuildOperationTask:
    @pytest.mark.parametrize(
        "operation, task_type",
        [
            ("upscale", "imageUpscale"),
            ("removeBackground", "imageBackgroundRemoval"),
            ("caption", "imageCaption"),
            ("vectorize", "vectorize"),
        ],
    )
    def test_task_types(self, png, operation, task_type):
        task = build_operation_task(operation, png)
        assert task["taskType"] == task_type
        assert task["taskUUID"]

    def test_async_delivery(self, png):
        assert build_operation_task("upscale", png)["deliveryMethod"] == "async"

    def test_input_is_data_uri(self, png):
        task = build_operation_task(FolderOperation.CAPTION, png)
        assert task["inputImage"].startswith("data:image/png;base64,")

    def test_default_model(self, png):
        assert build_operation_task("caption", png)["model"] == "runware:150@2"
        assert build_operation_task("caption", png, {"model": "custom:1@1"})["model"] == "custom:1@1"

    def test_upscale_factor(self, png):
        assert build_operation_task("upscale", png)["upscaleFactor"] == 2
        assert build_operation_task("upscale", png, {"upscaleFactor": 4})["upscaleFactor"] == 4
        with pytest.raises(ConfigurationError):
            build_operation_task("upscale", png, {"upscaleFactor": 3})

    def test_controlnet_requires_preprocessor(self, png):
        task = build_operation_task("controlNetPreprocess", png, {"preprocessor": "canny"})
        assert task["taskType"] == "imageControlNetPreProcess"
        assert task["preProcessorType"] == "canny"
        with pytest.raises(ConfigurationError):
            build_operation_task("controlNetPreprocess", png)

    def test_unknown_params_not_forwarded(self, png):
        task = build_operation_task("caption", png, {"prompt": "describe", "bogus": 1})
        assert task["prompt"] == "describe"
        assert "bogus" not in task


class TestOutputPathFor:
    def test_same_folder_by_default(self):
        assert output_path_for("/in/cat.jpg", None, "_up", "upscale") == Path("/in/cat_up.jpg")

    def test_output_folder(self):
        assert output_path_for("/in/cat.jpg", "/out", "", "caption") == Path("/out/cat.jpg")

    def test_extension_follows_operation(self):
        assert output_path_for("/in/cat.jpg", None, "", "vectorize").suffix == ".svg"
        assert output_path_for("/in/cat.jpg", None, "", "removeBackground").suffix == ".png"
