"""
Upload status machine tests
"""

import pytest

from socialize.core.errors import InvalidTransitionError
from socialize.db.models.content_upload import UploadStatus
from socialize.services.upload_state import can_transition, ensure_client_transition

S = UploadStatus


@pytest.mark.parametrize("current, target", [
    (S.pending, S.processing),
    (S.processing, S.published),
    (S.processing, S.failed),
    (S.failed, S.pending),
])
def test_allowed_transitions(current, target):
    assert can_transition(current, target)


@pytest.mark.parametrize("current, target", [
    (S.pending, S.published),
    (S.pending, S.failed),
    (S.processing, S.pending),
    (S.published, S.pending),
    (S.published, S.failed),
    (S.failed, S.published),
])
def test_rejected_transitions(current, target):
    assert not can_transition(current, target)
    with pytest.raises(InvalidTransitionError):
        ensure_client_transition(current, target)


def test_clients_may_only_requeue_failed_uploads():
    ensure_client_transition(S.failed, S.pending)

    with pytest.raises(InvalidTransitionError) as exc_info:
        ensure_client_transition(S.pending, S.processing)
    assert "publish pipeline" in exc_info.value.message
