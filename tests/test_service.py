from concurrent.futures import Future

import numpy as np
import pytest

from artifacts.store import ArtifactStore
from common.errors import TransportError
from common.model_settings import ModelSettings
from inference.messages import (
    Ack,
    ErrorResponse,
    InferenceResult,
    RunInference,
    UpdateSettings,
)
from inference.service import InferenceService, ServiceChannel
from inference.session import ModelSessionManager, SessionState


@pytest.fixture
def service(model_store, fake_ort):
    service = InferenceService(ModelSessionManager(model_store, ModelSettings()))
    yield service
    service.close()


def test_run_inference_loads_session_on_demand(service, fake_ort):
    response = ServiceChannel(service).call(
        RunInference(data=["we collect your data", "share data"])
    )

    assert isinstance(response, InferenceResult)
    assert response.data.shape == (2, 10)
    assert service.manager.state is SessionState.READY
    feeds = fake_ort.session.run.call_args.args[1]
    assert feeds["input_ids"].dtype == np.int64
    assert feeds["attention_mask"].dtype == np.float32
    assert feeds["input_ids"].shape == (2, 6)


def test_max_seq_len_comes_from_session_settings(service, fake_ort):
    service.handle(UpdateSettings(data=ModelSettings(max_seq_len=4)))

    service.handle(RunInference(data=["we collect your data"]))

    assert fake_ort.session.run.call_args.args[1]["input_ids"].shape == (1, 4)


def test_failures_become_error_responses(fake_ort):
    service = InferenceService(
        ModelSessionManager(ArtifactStore(":memory:"), ModelSettings())
    )
    try:
        response = ServiceChannel(service).call(RunInference(data=["we collect"]))
    finally:
        service.close()

    assert response == ErrorResponse("Model 'TinyBERT/base' not found in the artifact store.")


def test_update_settings_acknowledges(service):
    response = service.handle(UpdateSettings(data=ModelSettings(batch_size=4)))

    assert response == Ack("Settings updated")
    assert service.manager.state is SessionState.READY
    assert service.manager.settings.batch_size == 4


def test_update_settings_failure_is_reported(service):
    response = service.handle(UpdateSettings(data=ModelSettings(model_size="large")))

    assert isinstance(response, ErrorResponse)
    assert "TinyBERT/large" in response.message


def test_unknown_message_type(service):
    assert service.handle("ping") == ErrorResponse("Unknown message type: str")


def test_closed_service_raises_transport_error(service):
    service.close()

    with pytest.raises(TransportError, match="unavailable"):
        ServiceChannel(service).call(RunInference(data=["we collect"]))


def test_unanswered_request_raises_transport_error(service, mocker):
    mocker.patch.object(service, "submit", return_value=Future())

    with pytest.raises(TransportError, match="did not respond"):
        ServiceChannel(service, timeout=0.01).call(RunInference(data=["we collect"]))
