import pytest
from pydantic import ValidationError

from studio.config import Settings
from studio.errors import SubmissionValidationError
from studio.generation import MosaicSelections
from studio.models import (
    GenerationRequest,
    ImageRef,
    MosaicJob,
    MosaicSettings,
    SessionSnapshot,
    SessionState,
    SettingsUpdate,
)


def test_job_accepts_numeric_ids_and_legacy_result_url():
    job = MosaicJob.model_validate(
        {"id": 12, "status": "completed", "progress": 140.4, "result_url": "/out/12.jpg", "color_adjustment": 30}
    )

    assert job.id == "12"
    assert job.progress == 100
    assert job.sd_url == "/out/12.jpg"
    assert job.overlay_ratio == pytest.approx(0.3)
    assert job.is_terminal


def test_settings_accept_camel_case_and_validate_ranges():
    settings = MosaicSettings.model_validate({"tileSize": 25, "tileDensity": 60, "colorCorrection": False})

    assert settings.tile_size == 25
    assert settings.color_correction is False
    assert settings.overlay_ratio == 0.5
    with pytest.raises(ValidationError):
        MosaicSettings(tile_size=5)
    with pytest.raises(ValidationError):
        MosaicSettings(overlay_ratio=1.5)


def test_request_payload_is_flat_snake_case(valid_request):
    payload = valid_request.to_payload()

    assert payload == {
        "main_image_id": "img-main",
        "tile_image_ids": ["t1", "t2", "t3"],
        "tile_size": 40,
        "tile_density": 90,
        "overlay_ratio": 0.3,
        "style": "classic",
        "color_correction": True,
        "project_id": 7,
    }


def test_request_without_settings_has_no_payload():
    request = GenerationRequest(main_image_id="a", tile_image_ids=["t"])

    with pytest.raises(SubmissionValidationError):
        request.to_payload()


def test_settings_update_maps_legacy_color_adjustment():
    update = SettingsUpdate.model_validate({"colorAdjustment": 80})

    assert update.overlay_ratio == pytest.approx(0.8)
    assert update.tile_size is None


def test_selections_deduplicate_tiles_and_track_readiness():
    selections = MosaicSelections(min_tile_images=2)
    selections.set_main_image(ImageRef(id=1))

    assert selections.add_tile_images([ImageRef(id=10), ImageRef(id=10), ImageRef(id=11)]) == 2
    assert selections.is_ready
    assert selections.remove_tile_image("10")
    assert not selections.remove_tile_image("10")
    assert not selections.is_ready

    selections.clear_tile_images()
    assert selections.tile_images == ()


def test_selections_update_settings_partially():
    selections = MosaicSelections()

    updated = selections.update_settings(tile_size=30, style=None)
    assert updated.tile_size == 30
    assert updated.style.value == "classic"

    with pytest.raises(ValidationError):
        selections.update_settings(tile_density=0)
    assert selections.settings.tile_density == 80

    assert selections.reset_settings().tile_size == 50


def test_selections_build_request_and_track_session():
    selections = MosaicSelections()
    selections.set_main_image(ImageRef(id="main"))
    selections.add_tile_images([ImageRef(id="t1")])

    request = selections.build_request(project_id=4)
    assert request.main_image_id == "main"
    assert request.tile_image_ids == ["t1"]
    assert request.project_id == 4

    selections.track(SessionSnapshot(state=SessionState.polling, job=MosaicJob(id="m1", status="pending")))
    assert selections.generation_id == "m1"
    assert selections.generation_status == "polling"


def test_settings_from_env_overrides_scalars():
    config = Settings.from_env(
        {"MOSAIC_STUDIO_POLLING_INTERVAL_SECONDS": "0.5", "MOSAIC_STUDIO_API_URL": "http://api.test/api"}
    )

    assert config.polling_interval_seconds == 0.5
    assert config.api_url == "http://api.test/api"
    assert config.image_url("/out/m1.jpg") == "http://localhost:8034/out/m1.jpg"
    assert config.image_url("https://cdn.test/m1.jpg") == "https://cdn.test/m1.jpg"
    assert config.image_url(None) == ""
