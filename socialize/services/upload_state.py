from typing import Dict, FrozenSet

from socialize.core.errors import InvalidTransitionError
from socialize.db.models.content_upload import UploadStatus

TRANSITIONS: Dict[UploadStatus, FrozenSet[UploadStatus]] = {
    UploadStatus.pending: frozenset({UploadStatus.processing}),
    UploadStatus.processing: frozenset({UploadStatus.published, UploadStatus.failed}),
    UploadStatus.published: frozenset(),
    UploadStatus.failed: frozenset({UploadStatus.pending}),
}

# Transitions a client may request through an update. The rest belong to the
# publish pipeline, which holds the lease.
CLIENT_TRANSITIONS: FrozenSet[tuple] = frozenset({
    (UploadStatus.failed, UploadStatus.pending),
})


def can_transition(current: UploadStatus, target: UploadStatus) -> bool:
    return target in TRANSITIONS[current]


def ensure_client_transition(current: UploadStatus, target: UploadStatus) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Cannot change status from '{current.value}' to '{target.value}'",
            errors={"status": [f"Allowed from '{current.value}': "
                               f"{sorted(s.value for s in TRANSITIONS[current]) or 'none'}"]},
        )
    if (current, target) not in CLIENT_TRANSITIONS:
        raise InvalidTransitionError(
            f"Status '{target.value}' is only set by the publish pipeline",
            errors={"status": ["Use the publish endpoint"]},
        )
